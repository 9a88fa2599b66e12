import time
import numpy as np
from abc import ABC, abstractmethod
from numbers import Number
from typing import Callable, List, Literal, Sequence, Tuple, Union
from scipy.linalg import qr, svd
from sepfun import NP_FLOAT, EPS
from sepfun.fun import Fun, sample
from sepfun.prefs import Preferences, BASES, get_preferences
from sepfun.exceptions import RankCapError, DomainMismatchError
from sepfun.utils import (
    classify,
    chebpts2,
    trigpts,
    from_reference,
    prolong,
    trig_prolong,
    pivot_search,
)

"""
- Cross approximation builds the rank-1 terms one pivot at a time; the
  lists of terms are append-only.
- The residual is never formed as a function, only as grid samples and
  through evaluation of the target minus the current terms.
"""


# cross approximation


def _grid(n: int, interval: Tuple[float, float], basis: str) -> np.ndarray:
    nodes = chebpts2(n) if basis == "chebyshev" else trigpts(n)
    return from_reference(nodes, *interval)


def _pivot_tolerance(prefs: Preferences, n: int) -> float:
    return max(prefs.tolerance, EPS) * n ** (2.0 / 3.0)


def _bases(bases, prefs: Preferences, dimension: int) -> Tuple[str, ...]:
    if bases is None:
        return (prefs.basis,) * dimension
    if isinstance(bases, str):
        bases = (bases,) * dimension
    bases = tuple(bases)
    if len(bases) != dimension or any(b not in BASES for b in bases):
        raise ValueError(f"Invalid choice for bases: {bases}.")
    return bases


def _as_function(f) -> Callable:
    if isinstance(f, Number):
        value = f
        return lambda *points: np.full(np.broadcast(*points).shape, value)
    if not callable(f):
        raise ValueError("The target should be callable or a number.")
    return f


def _normalized(
    cols: Sequence[Fun], rows: Sequence[Fun], pivots: Sequence[Number]
) -> Tuple[List[Fun], List[Fun], np.ndarray]:
    """Rescale every factor to unit vscale, dropping vanishing terms."""
    cols_, rows_, pivots_ = [], [], []
    for c, r, d in zip(cols, rows, pivots):
        cs, rs = c.vscale, r.vscale
        if cs == 0.0 or rs == 0.0 or d == 0.0:
            continue
        cols_.append(c / cs)
        rows_.append(r / rs)
        pivots_.append(d * cs * rs)
    return cols_, rows_, np.asarray(pivots_)


def _sample_test(
    f: Callable,
    approximation: Callable,
    domain: Tuple[float, ...],
    tol: float,
) -> bool:
    """Compare target and approximation at pseudo-random off-grid points."""
    rng = np.random.default_rng(1)
    points = [
        domain[2 * i] + (domain[2 * i + 1] - domain[2 * i]) * rng.random(32)
        for i in range(len(domain) // 2)
    ]
    error = np.max(np.abs(sample(f, *points) - approximation(*points)))
    return error <= tol


def cross_approximation(
    f: Callable,
    domain: Tuple[float, float, float, float],
    bases: Tuple[str, str],
    prefs: Preferences,
    scale: float = None,
) -> Tuple[List[Fun], List[Fun], np.ndarray]:
    """
    Adaptive cross approximation of a bivariate function.

    Parameters
    ----------
    f : callable
        Vectorized target ``f(x, y)``.
    domain : tuple
        Bounds ``(xa, xb, ya, yb)``.
    bases : tuple
        Bases of the column and of the row factors.
    prefs : Preferences
    scale : float, optional
        Global scale the accuracy is measured against.

    Returns
    -------
    cols, rows, pivots
        Normalized factors with ``f(x, y) = sum_i cols[i](x) * pivots[i] * rows[i](y)``.

    Raises
    ------
    RankCapError
        If the rank exceeds ``prefs.max_rank`` or the pivot search grid
        exceeds ``prefs.max_sampling`` before convergence.

    Time Complexity
    ---------------
    O(n^2 k + k^2 (m_x + m_y)) evaluations for rank k, grid size n and
    factor lengths m_x, m_y.
    """
    xa, xb, ya, yb = domain
    n = prefs.sampling_density
    while n <= prefs.max_sampling:
        x, y = _grid(n, (xa, xb), bases[0]), _grid(n, (ya, yb), bases[1])
        X, Y = np.meshgrid(x, y, indexing="ij")
        R = sample(f, X, Y)
        R = R.astype(np.result_type(R, NP_FLOAT))
        local = np.max(np.abs(R))
        if local == 0.0:
            return [], [], np.zeros(0)
        vscale = local if scale is None else max(scale, local)
        tol = _pivot_tolerance(prefs, n) * vscale
        ###
        cols, rows, pivots = [], [], []
        resolved = True
        while True:
            i, j = pivot_search(R)
            value = R[i, j]
            if np.abs(value) <= tol:
                break
            if len(pivots) >= prefs.max_rank:
                raise RankCapError(
                    f"Cross approximation did not converge within rank {prefs.max_rank}."
                )
            if 2 * len(pivots) >= n:
                resolved = False
                break
            col = Fun.from_function(
                _column_residual(f, cols, rows, pivots, y[j]),
                (xa, xb),
                bases[0],
                prefs,
                vscale,
            )
            if col.vscale == 0.0:
                ### NOTE -- stagnation, the residual is at rounding level
                break
            row = Fun.from_function(
                _row_residual(f, cols, rows, pivots, x[i]),
                (ya, yb),
                bases[1],
                prefs,
                vscale,
            )
            cs, rs = col.vscale, row.vscale
            if rs == 0.0:
                break
            R = R - np.outer(col(x), row(y)) / value
            cols.append(col / cs)
            rows.append(row / rs)
            pivots.append(cs * rs / value)
        ###
        if resolved:
            approximation = _evaluator(cols, rows, np.asarray(pivots))
            if _sample_test(f, approximation, domain, 1e3 * tol):
                return cols, rows, np.asarray(pivots)
        n = 2 * n - 1
    raise RankCapError(
        f"Cross approximation not resolved on a grid of {prefs.max_sampling} points per dimension."
    )


def _column_residual(f, cols, rows, pivots, y: float) -> Callable:
    cols = list(cols)
    weights = [d * r(y) for r, d in zip(rows, pivots)]

    def residual(x: np.ndarray) -> np.ndarray:
        values = sample(f, x, np.full_like(x, y))
        for c, w in zip(cols, weights):
            values = values - w * c(x)
        return values

    return residual


def _row_residual(f, cols, rows, pivots, x: float) -> Callable:
    rows = list(rows)
    weights = [d * c(x) for c, d in zip(cols, pivots)]

    def residual(y: np.ndarray) -> np.ndarray:
        values = sample(f, np.full_like(y, x), y)
        for r, w in zip(rows, weights):
            values = values - w * r(y)
        return values

    return residual


def _evaluator(cols, rows, pivots) -> Callable:
    def evaluate(x: np.ndarray, y: np.ndarray) -> np.ndarray:
        values = np.zeros(np.broadcast(x, y).shape)
        for c, d, r in zip(cols, pivots, rows):
            values = values + c(x) * d * r(y)
        return values

    return evaluate


def _factor_matrix(funs: Sequence[Fun], n: int) -> np.ndarray:
    """Coefficients of the factors as columns, padded to length n"""
    return np.stack(
        [
            trig_prolong(f.coeffs, n) if f.basis == "trig" else prolong(f.coeffs, n)
            for f in funs
        ],
        axis=1,
    )


def _gram(funs: Sequence[Fun]) -> np.ndarray:
    k = len(funs)
    G = np.zeros((k, k), dtype=complex)
    for i in range(k):
        for j in range(i, k):
            G[i, j] = (funs[i].conj() * funs[j]).sum()
            G[j, i] = np.conj(G[i, j])
    return G


# separable functions


class SeparableFunction(ABC):
    @property
    @abstractmethod
    def domain(self) -> Tuple[float, ...]:
        """Returns the domain bounds"""
        pass

    @property
    @abstractmethod
    def rank(self) -> int:
        """Returns the number of separable terms"""
        pass

    @abstractmethod
    def lengths(self) -> Tuple[int, ...]:
        """Returns the lengths of the univariate factors"""
        pass

    @abstractmethod
    def cdr(self, diagonal: bool = False):
        """Returns the factors of the decomposition"""
        pass

    def length(self) -> int:
        """The rank of the separable representation."""
        return self.rank

    def __len__(self) -> int:
        return self.rank


class Chebfun2(SeparableFunction):
    """
    Low-rank approximation of a function of two variables.

    The function is represented as a sum of ``k`` outer products of
    univariate approximants,

        f(x, y) = sum_i cols[i](x) * pivots[i] * rows[i](y),

    with every column and row factor normalized to unit scale. The
    factors are computed by adaptive cross approximation.

    Attributes
    ----------
    domain : tuple
        The rectangle ``(xa, xb, ya, yb)``.
    rank : int
        The number ``k`` of separable terms.
    cols : tuple of Fun
        The column factors, functions of x.
    rows : tuple of Fun
        The row factors, functions of y.
    pivots : numpy.ndarray
        The diagonal of the decomposition.

    Examples
    --------
    >>> import numpy as np
    >>> from sepfun import Chebfun2
    >>> f = Chebfun2(lambda x, y: np.cos(x * y))
    >>> C, D, R = f.cdr()
    >>> value = f(0.3, -0.2)
    """

    def __init__(
        self,
        f: Union[Callable, Number],
        domain: Tuple[float, float, float, float] = (-1.0, 1.0, -1.0, 1.0),
        prefs: Preferences = None,
        bases: Union[str, Tuple[str, str]] = None,
    ):
        """
        Construct the approximation of ``f`` by cross approximation.

        Parameters
        ----------
        f : callable or number
            Vectorized target ``f(x, y)``.
        domain : tuple, optional
            The rectangle ``(xa, xb, ya, yb)``, default is the unit square [-1, 1]^2.
        prefs : Preferences, optional
            Accuracy target, rank cap and sampling options.
        bases : str or tuple, optional
            Bases of the column and row factors, default is ``prefs.basis``.

        Raises
        ------
        RankCapError
            If the function cannot be resolved within the rank cap.
        """
        construction_start = time.time()
        self._prefs = get_preferences(prefs)
        self._domain = classify(domain, 2)
        self._bases = _bases(bases, self._prefs, 2)
        f = _as_function(f)
        cols, rows, pivots = cross_approximation(
            f, self._domain, self._bases, self._prefs
        )
        self._set(cols, rows, pivots)
        self._construction_ms = (time.time() - construction_start) * 1000
        print(self) if self._prefs.report else None

    @classmethod
    def from_factors(
        cls,
        cols: Sequence[Fun],
        rows: Sequence[Fun],
        pivots: Sequence[Number],
        domain: Tuple[float, float, float, float] = None,
        prefs: Preferences = None,
    ) -> "Chebfun2":
        """Assemble an approximation from given factors, normalizing them."""
        cols, rows, pivots = list(cols), list(rows), np.atleast_1d(pivots)
        if not len(cols) == len(rows) == len(pivots):
            raise ValueError("The number of columns, rows and pivots should agree.")
        if domain is None:
            if len(cols) == 0:
                raise ValueError("The domain is required for an empty decomposition.")
            domain = cols[0].domain + rows[0].domain
        domain = classify(domain, 2)
        for c, r in zip(cols, rows):
            if not np.allclose(c.domain + r.domain, domain, rtol=0.0, atol=1e2 * EPS):
                raise DomainMismatchError("The factors do not live on the domain.")
        obj = cls.__new__(cls)
        obj._prefs = get_preferences(prefs)
        obj._domain = domain
        obj._bases = (
            (cols[0].basis, rows[0].basis) if cols else _bases(None, obj._prefs, 2)
        )
        obj._set(*_normalized(cols, rows, pivots))
        obj._construction_ms = None
        return obj

    def _set(self, cols, rows, pivots) -> None:
        self._cols = tuple(cols)
        self._rows = tuple(rows)
        self._pivots = np.asarray(pivots).copy()
        self._pivots.flags.writeable = False
        self._real = (
            all(f.isreal for f in self._cols + self._rows)
            and not np.iscomplexobj(self._pivots)
        )

    def _derived(self, cols, rows, pivots, real: bool = False) -> "Chebfun2":
        obj = Chebfun2.from_factors(cols, rows, pivots, self._domain, self._prefs)
        obj._real = obj._real or real
        return obj

    # properties

    @property
    def domain(self) -> Tuple[float, float, float, float]:
        return self._domain

    @property
    def bases(self) -> Tuple[str, str]:
        return self._bases

    @property
    def prefs(self) -> Preferences:
        return self._prefs

    @property
    def rank(self) -> int:
        return len(self._pivots)

    @property
    def cols(self) -> Tuple[Fun, ...]:
        return self._cols

    @property
    def rows(self) -> Tuple[Fun, ...]:
        return self._rows

    @property
    def pivots(self) -> np.ndarray:
        return self._pivots

    @property
    def isreal(self) -> bool:
        return self._real

    def lengths(self) -> Tuple[int, int]:
        """
        Lengths of the column and row factors.

        The number of coefficients the column (functions of x) and row
        (functions of y) factors need; this depends on the representation,
        not only on the rank. A rank 0 function has lengths ``(0, 0)``.
        """
        if self.rank == 0:
            return 0, 0
        return max(len(c) for c in self._cols), max(len(r) for r in self._rows)

    def cdr(self, diagonal: bool = False):
        """
        Column, diagonal, row decomposition.

        Parameters
        ----------
        diagonal : bool, optional
            If True, only the diagonal values are returned.

        Returns
        -------
        C, D, R
            ``C`` and ``R`` are lists of Funs, ``D`` is a diagonal matrix such
            that ``f(x, y) = sum_i C[i](x) * D[i, i] * R[i](y)``.
        """
        if diagonal:
            return self._pivots.copy()
        return list(self._cols), np.diag(self._pivots), list(self._rows)

    # evaluation

    def __call__(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        x, y = np.broadcast_arrays(
            np.asarray(x, dtype=NP_FLOAT), np.asarray(y, dtype=NP_FLOAT)
        )
        values = _evaluator(self._cols, self._rows, self._pivots)(x, y)
        values = np.real(values) if self._real else values
        return np.asarray(values)[()]

    def tensor_values(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Values on the tensor grid of x and y, O((len(x) + len(y)) k)"""
        x, y = np.asarray(x, dtype=NP_FLOAT), np.asarray(y, dtype=NP_FLOAT)
        if self.rank == 0:
            return np.zeros((len(x), len(y)))
        Cx = np.stack([c(x) for c in self._cols], axis=1)
        Ry = np.stack([r(y) for r in self._rows], axis=1)
        values = (Cx * self._pivots) @ Ry.T
        return np.real(values) if self._real else values

    def sample(self, nx: int = 101, ny: int = None):
        """Values on an equispaced tensor grid, returns (x, y, values)"""
        ny = nx if ny is None else ny
        xa, xb, ya, yb = self._domain
        x, y = np.linspace(xa, xb, int(nx)), np.linspace(ya, yb, int(ny))
        return x, y, self.tensor_values(x, y)

    def coeffs(self) -> np.ndarray:
        """Bivariate coefficient matrix (column basis along axis 0)"""
        if self.rank == 0:
            return np.zeros((1, 1))
        m, n = self.lengths()
        C, R = _factor_matrix(self._cols, m), _factor_matrix(self._rows, n)
        return (C * self._pivots) @ R.T

    # compression

    def compress(self, tol: float = None, scale: float = None) -> "Chebfun2":
        """
        Recompute the decomposition with the fewest terms.

        Orthogonalizes the column and row coefficients, takes the SVD of
        the core and drops singular values below ``tol`` times the largest,
        or times ``scale`` if that is larger.
        """
        if self.rank == 0:
            return self
        tol = 50.0 * max(self._prefs.tolerance, EPS) if tol is None else float(tol)
        m, n = self.lengths()
        C, R = _factor_matrix(self._cols, m), _factor_matrix(self._rows, n)
        Qc, Tc = qr(C, mode="economic")
        Qr, Tr = qr(R, mode="economic")
        U, S, Vh = svd((Tc * self._pivots) @ Tr.T)
        threshold = tol * max(S[0], 0.0 if scale is None else scale)
        keep = int(np.sum(S > threshold)) if S[0] > 0.0 else 0
        xdomain, ydomain = self._domain[:2], self._domain[2:]
        cols = [
            Fun(Qc @ U[:, i], xdomain, self._bases[0]).simplify()
            for i in range(keep)
        ]
        rows = [
            Fun(Qr @ Vh[i], ydomain, self._bases[1]).simplify()
            for i in range(keep)
        ]
        return self._derived(cols, rows, S[:keep], self._real)

    # algebra

    def _check(self, other: "Chebfun2") -> None:
        if not np.allclose(self._domain, other.domain, rtol=0.0, atol=1e2 * EPS):
            raise DomainMismatchError(
                f"Domain mismatch: {self._domain} and {other.domain}."
            )
        if self._bases != other.bases:
            raise DomainMismatchError("Functions use different bases.")

    def _constant(self, value: Number) -> "Chebfun2":
        xdomain, ydomain = self._domain[:2], self._domain[2:]
        one_x = Fun.constant(1.0, xdomain, self._bases[0])
        one_y = Fun.constant(1.0, ydomain, self._bases[1])
        return self._derived([one_x], [one_y], [value])

    def __add__(self, other) -> "Chebfun2":
        if isinstance(other, Number):
            if other == 0:
                return self
            other = self._constant(other)
        if not isinstance(other, Chebfun2):
            return NotImplemented
        self._check(other)
        pivots = np.concatenate((self._pivots, other.pivots))
        return self._derived(
            self._cols + other.cols,
            self._rows + other.rows,
            pivots,
            self._real and other.isreal,
        ).compress(scale=np.max(np.abs(pivots), initial=0.0))

    def __radd__(self, other) -> "Chebfun2":
        return self.__add__(other)

    def __neg__(self) -> "Chebfun2":
        return self._derived(self._cols, self._rows, -self._pivots, self._real)

    def __sub__(self, other) -> "Chebfun2":
        if isinstance(other, (Number, Chebfun2)):
            return self.__add__(-other)
        return NotImplemented

    def __rsub__(self, other) -> "Chebfun2":
        return (-self).__add__(other)

    def __mul__(self, other) -> "Chebfun2":
        if isinstance(other, Number):
            real = self._real and not np.iscomplexobj(other)
            return self._derived(self._cols, self._rows, self._pivots * other, real)
        if not isinstance(other, Chebfun2):
            return NotImplemented
        self._check(other)
        cols, rows, pivots = [], [], []
        for c, d, r in zip(self._cols, self._pivots, self._rows):
            for c_, d_, r_ in zip(other.cols, other.pivots, other.rows):
                cols.append(c * c_)
                rows.append(r * r_)
                pivots.append(d * d_)
        return self._derived(cols, rows, pivots, self._real and other.isreal).compress()

    def __rmul__(self, other) -> "Chebfun2":
        return self.__mul__(other)

    def __truediv__(self, other) -> "Chebfun2":
        if isinstance(other, Number):
            return self.__mul__(1.0 / other)
        return NotImplemented

    # calculus

    def diff(self, k: int = 1, dim: Literal[0, 1] = 0) -> "Chebfun2":
        """k-th partial derivative in x (``dim=0``) or y (``dim=1``)"""
        if dim not in (0, 1):
            raise ValueError("Invalid value for dim. Please choose 0 or 1.")
        if dim == 0:
            cols, rows = [c.diff(k) for c in self._cols], self._rows
        else:
            cols, rows = self._cols, [r.diff(k) for r in self._rows]
        return self._derived(cols, rows, self._pivots, self._real).compress()

    def sum(self) -> Number:
        """Integral over the domain."""
        return sum(
            c.sum() * d * r.sum()
            for c, d, r in zip(self._cols, self._pivots, self._rows)
        )

    def norm(self) -> float:
        """L2 norm over the domain."""
        if self.rank == 0:
            return 0.0
        G = _gram(self._cols) * _gram(self._rows)
        d = self._pivots
        return float(np.sqrt(max(np.real(np.conj(d) @ G @ d), 0.0)))

    def max_abs(self) -> float:
        """Maximum of the absolute value, estimated on a fine grid."""
        if self.rank == 0:
            return 0.0
        m, n = self.lengths()
        x, y, values = self.sample(4 * m + 1, 4 * n + 1)
        return float(np.max(np.abs(values)))

    def __repr__(self) -> str:
        return f"Chebfun2(rank={self.rank}, lengths={self.lengths()}, domain={self._domain})"

    def __str__(self) -> str:
        report = [
            f"Chebfun2 on {self._domain}",
            f"  rank            : {self.rank}",
            f"  lengths         : {self.lengths()}",
            f"  bases           : {self._bases}",
        ]
        if self._construction_ms is not None:
            report.append(f"  construction    : {self._construction_ms:.2f} ms")
        return "\n".join(report)


def cross_approximation3(
    f: Callable,
    domain: Tuple[float, ...],
    bases: Tuple[str, str, str],
    prefs: Preferences,
) -> Tuple[List[Fun], List[Fun], List[Fun], np.ndarray]:
    """
    Adaptive cross approximation of a trivariate function.

    Pivots are located on the unfolding x | (y, z); every pivot yields a
    column in x and a slice in (y, z), the slice being a ``Chebfun2`` of
    the residual. Slices are expanded into their terms, so the result is
    a sum of products of univariate factors with scalar pivots.
    """
    xa, xb, ya, yb, za, zb = domain
    n = prefs.sampling_density
    while n <= prefs.max_sampling:
        x = _grid(n, (xa, xb), bases[0])
        y = _grid(n, (ya, yb), bases[1])
        z = _grid(n, (za, zb), bases[2])
        X, Y, Z = np.meshgrid(x, y, z, indexing="ij")
        R = sample(f, X, Y, Z)
        R = R.astype(np.result_type(R, NP_FLOAT)).reshape(n, n * n)
        local = np.max(np.abs(R))
        if local == 0.0:
            return [], [], [], np.zeros(0)
        tol = _pivot_tolerance(prefs, n) * local
        ###
        cols, slices, weights = [], [], []
        resolved = True
        while True:
            i, jk = pivot_search(R)
            value = R[i, jk]
            if np.abs(value) <= tol:
                break
            if len(cols) >= prefs.max_rank:
                raise RankCapError(
                    f"Cross approximation did not converge within rank {prefs.max_rank}."
                )
            if 2 * len(cols) >= n:
                resolved = False
                break
            j, k = divmod(jk, n)
            col = Fun.from_function(
                _fiber_residual(f, cols, slices, weights, y[j], z[k]),
                (xa, xb),
                bases[0],
                prefs,
                local,
            )
            if col.vscale == 0.0:
                break
            slice_ = Chebfun2.from_factors(
                *cross_approximation(
                    _slice_residual(f, cols, slices, weights, x[i]),
                    (ya, yb, za, zb),
                    bases[1:],
                    prefs,
                    scale=local,
                ),
                domain=(ya, yb, za, zb),
                prefs=prefs,
            )
            cs = col.vscale
            if cs == 0.0 or slice_.rank == 0:
                break
            R = R - np.outer(col(x), slice_.tensor_values(y, z).ravel()) / value
            cols.append(col / cs)
            slices.append(slice_)
            weights.append(cs / value)
        ###
        C, Rr, T, D = [], [], [], []
        for c, w, s in zip(cols, weights, slices):
            for a, e, b in zip(s.cols, s.pivots, s.rows):
                C.append(c)
                Rr.append(a)
                T.append(b)
                D.append(w * e)
        D = np.asarray(D)
        if resolved and _sample_test(f, _evaluator3(C, Rr, T, D), domain, 1e3 * tol):
            return C, Rr, T, D
        n = 2 * n - 1
    raise RankCapError(
        f"Cross approximation not resolved on a grid of {prefs.max_sampling} points per dimension."
    )


def _fiber_residual(f, cols, slices, weights, y: float, z: float) -> Callable:
    cols = list(cols)
    coefficients = [w * s(y, z) for s, w in zip(slices, weights)]

    def residual(x: np.ndarray) -> np.ndarray:
        values = sample(f, x, np.full_like(x, y), np.full_like(x, z))
        for c, w in zip(cols, coefficients):
            values = values - w * c(x)
        return values

    return residual


def _slice_residual(f, cols, slices, weights, x: float) -> Callable:
    slices = list(slices)
    coefficients = [w * c(x) for c, w in zip(cols, weights)]

    def residual(y: np.ndarray, z: np.ndarray) -> np.ndarray:
        values = sample(f, np.full(np.broadcast(y, z).shape, x), y, z)
        for s, w in zip(slices, coefficients):
            values = values - w * s(y, z)
        return values

    return residual


def _evaluator3(cols, rows, tubes, pivots) -> Callable:
    def evaluate(x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
        values = np.zeros(np.broadcast(x, y, z).shape)
        for c, r, t, d in zip(cols, rows, tubes, pivots):
            values = values + d * c(x) * r(y) * t(z)
        return values

    return evaluate


class Chebfun3(SeparableFunction):
    """
    Low-rank approximation of a function of three variables.

        f(x, y, z) = sum_i pivots[i] * cols[i](x) * rows[i](y) * tubes[i](z)

    Examples
    --------
    >>> import numpy as np
    >>> from sepfun import Chebfun3
    >>> f = Chebfun3(lambda x, y, z: np.exp(x) * np.sin(y + z))
    >>> C, D, R, T = f.cdr()
    """

    def __init__(
        self,
        f: Union[Callable, Number],
        domain: Tuple[float, ...] = (-1.0, 1.0, -1.0, 1.0, -1.0, 1.0),
        prefs: Preferences = None,
        bases: Union[str, Tuple[str, str, str]] = None,
    ):
        construction_start = time.time()
        self._prefs = get_preferences(prefs)
        self._domain = classify(domain, 3)
        self._bases = _bases(bases, self._prefs, 3)
        f = _as_function(f)
        self._set(*cross_approximation3(f, self._domain, self._bases, self._prefs))
        self._construction_ms = (time.time() - construction_start) * 1000
        print(self) if self._prefs.report else None

    def _set(self, cols, rows, tubes, pivots) -> None:
        self._cols, self._rows, self._tubes = tuple(cols), tuple(rows), tuple(tubes)
        self._pivots = np.asarray(pivots).copy()
        self._pivots.flags.writeable = False
        self._real = (
            all(f.isreal for f in self._cols + self._rows + self._tubes)
            and not np.iscomplexobj(self._pivots)
        )

    def _derived(self, cols, rows, tubes, pivots) -> "Chebfun3":
        obj = Chebfun3.__new__(Chebfun3)
        obj._prefs, obj._domain, obj._bases = self._prefs, self._domain, self._bases
        obj._set(cols, rows, tubes, pivots)
        obj._construction_ms = None
        return obj

    @property
    def domain(self) -> Tuple[float, ...]:
        return self._domain

    @property
    def bases(self) -> Tuple[str, str, str]:
        return self._bases

    @property
    def rank(self) -> int:
        return len(self._pivots)

    @property
    def pivots(self) -> np.ndarray:
        return self._pivots

    def lengths(self) -> Tuple[int, int, int]:
        """Lengths of the column, row and tube factors."""
        if self.rank == 0:
            return 0, 0, 0
        return (
            max(len(c) for c in self._cols),
            max(len(r) for r in self._rows),
            max(len(t) for t in self._tubes),
        )

    def cdr(self, diagonal: bool = False):
        """
        Returns ``C, D, R, T`` with
        ``f(x, y, z) = sum_i C[i](x) * D[i, i] * R[i](y) * T[i](z)``,
        or the diagonal values only if ``diagonal`` is True.
        """
        if diagonal:
            return self._pivots.copy()
        return (
            list(self._cols),
            np.diag(self._pivots),
            list(self._rows),
            list(self._tubes),
        )

    def __call__(self, x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
        x, y, z = np.broadcast_arrays(
            *(np.asarray(p, dtype=NP_FLOAT) for p in (x, y, z))
        )
        values = _evaluator3(self._cols, self._rows, self._tubes, self._pivots)(x, y, z)
        values = np.real(values) if self._real else values
        return np.asarray(values)[()]

    def sample(self, n: int = 51):
        """Values on an equispaced n x n x n grid, returns (x, y, z, values)"""
        n = int(n)
        xa, xb, ya, yb, za, zb = self._domain
        x, y, z = np.linspace(xa, xb, n), np.linspace(ya, yb, n), np.linspace(za, zb, n)
        if self.rank == 0:
            return x, y, z, np.zeros((n, n, n))
        Cx = np.stack([c(x) for c in self._cols], axis=1)
        Ry = np.stack([r(y) for r in self._rows], axis=1)
        Tz = np.stack([t(z) for t in self._tubes], axis=1)
        values = np.einsum("ik,jk,lk,k->ijl", Cx, Ry, Tz, self._pivots)
        return x, y, z, (np.real(values) if self._real else values)

    def _check(self, other: "Chebfun3") -> None:
        if not np.allclose(self._domain, other.domain, rtol=0.0, atol=1e2 * EPS):
            raise DomainMismatchError(
                f"Domain mismatch: {self._domain} and {other.domain}."
            )
        if self._bases != other.bases:
            raise DomainMismatchError("Functions use different bases.")

    def __add__(self, other) -> "Chebfun3":
        if isinstance(other, Number):
            if other == 0:
                return self
            ones = [
                Fun.constant(1.0, self._domain[2 * i : 2 * i + 2], self._bases[i])
                for i in range(3)
            ]
            return self._derived(
                self._cols + (ones[0],),
                self._rows + (ones[1],),
                self._tubes + (ones[2],),
                np.append(self._pivots, other),
            )
        if not isinstance(other, Chebfun3):
            return NotImplemented
        self._check(other)
        return self._derived(
            self._cols + other._cols,
            self._rows + other._rows,
            self._tubes + other._tubes,
            np.concatenate((self._pivots, other.pivots)),
        )

    def __radd__(self, other) -> "Chebfun3":
        return self.__add__(other)

    def __neg__(self) -> "Chebfun3":
        return self._derived(self._cols, self._rows, self._tubes, -self._pivots)

    def __sub__(self, other) -> "Chebfun3":
        if isinstance(other, (Number, Chebfun3)):
            return self.__add__(-other)
        return NotImplemented

    def __rsub__(self, other) -> "Chebfun3":
        return (-self).__add__(other)

    def __mul__(self, other) -> "Chebfun3":
        if isinstance(other, Number):
            if other == 0:
                return self._derived((), (), (), np.zeros(0))
            return self._derived(
                self._cols, self._rows, self._tubes, self._pivots * other
            )
        return NotImplemented

    def __rmul__(self, other) -> "Chebfun3":
        return self.__mul__(other)

    def sum(self) -> Number:
        """Integral over the domain."""
        return sum(
            d * c.sum() * r.sum() * t.sum()
            for c, r, t, d in zip(self._cols, self._rows, self._tubes, self._pivots)
        )

    def norm(self) -> float:
        """L2 norm over the domain."""
        if self.rank == 0:
            return 0.0
        G = _gram(self._cols) * _gram(self._rows) * _gram(self._tubes)
        d = self._pivots
        return float(np.sqrt(max(np.real(np.conj(d) @ G @ d), 0.0)))

    def __repr__(self) -> str:
        return f"Chebfun3(rank={self.rank}, lengths={self.lengths()}, domain={self._domain})"

    def __str__(self) -> str:
        report = [
            f"Chebfun3 on {self._domain}",
            f"  rank            : {self.rank}",
            f"  lengths         : {self.lengths()}",
        ]
        if self._construction_ms is not None:
            report.append(f"  construction    : {self._construction_ms:.2f} ms")
        return "\n".join(report)


class Diskfun(SeparableFunction):
    """
    Low-rank approximation of a function on the unit disk.

    The function is stored through the doubled-up polar map
    ``g(theta, rho) = f(rho cos(theta), rho sin(theta))`` on
    ``[-pi, pi] x [-1, 1]``, a ``Chebfun2`` with trigonometric columns
    in theta and Chebyshev rows in rho. Rank and lengths are those of
    this separable representation.
    """

    def __init__(
        self,
        f: Union[Callable, Number],
        prefs: Preferences = None,
        coords: Literal["cartesian", "polar"] = "cartesian",
    ):
        if coords not in ("cartesian", "polar"):
            raise ValueError("Invalid choice for coords.")
        f = _as_function(f)
        if coords == "cartesian":
            g = lambda theta, rho: f(rho * np.cos(theta), rho * np.sin(theta))
        else:
            g = f
        self._separable = Chebfun2(
            g, (-np.pi, np.pi, -1.0, 1.0), prefs, bases=("trig", "chebyshev")
        )

    @classmethod
    def _wrap(cls, separable: Chebfun2) -> "Diskfun":
        obj = cls.__new__(cls)
        obj._separable = separable
        return obj

    @property
    def domain(self) -> Tuple[float, float, float, float]:
        return self._separable.domain

    @property
    def separable(self) -> Chebfun2:
        return self._separable

    @property
    def rank(self) -> int:
        return self._separable.rank

    def lengths(self) -> Tuple[int, int]:
        """Lengths of the theta (column) and rho (row) factors."""
        return self._separable.lengths()

    def cdr(self, diagonal: bool = False):
        return self._separable.cdr(diagonal)

    def __call__(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        x, y = np.asarray(x, dtype=NP_FLOAT), np.asarray(y, dtype=NP_FLOAT)
        if np.any(np.hypot(x, y) > 1.0 + 1e2 * EPS):
            raise ValueError("The points should lie in the unit disk.")
        return self._separable(np.arctan2(y, x), np.hypot(x, y))

    def polar(self, theta: np.ndarray, rho: np.ndarray) -> np.ndarray:
        return self._separable(np.mod(np.asarray(theta) + np.pi, 2 * np.pi) - np.pi, rho)

    def __add__(self, other) -> "Diskfun":
        if isinstance(other, Diskfun):
            return Diskfun._wrap(self._separable + other.separable)
        if isinstance(other, Number):
            return Diskfun._wrap(self._separable + other)
        if isinstance(other, SeparableFunction):
            raise DomainMismatchError("The unit disk and a rectangle are different domains.")
        return NotImplemented

    def __radd__(self, other) -> "Diskfun":
        return self.__add__(other)

    def __neg__(self) -> "Diskfun":
        return Diskfun._wrap(-self._separable)

    def __sub__(self, other) -> "Diskfun":
        if isinstance(other, (Number, Diskfun)):
            return self.__add__(-other)
        return NotImplemented

    def __mul__(self, other) -> "Diskfun":
        if isinstance(other, Number):
            return Diskfun._wrap(self._separable * other)
        return NotImplemented

    def __rmul__(self, other) -> "Diskfun":
        return self.__mul__(other)

    def __repr__(self) -> str:
        return f"Diskfun(rank={self.rank}, lengths={self.lengths()})"
