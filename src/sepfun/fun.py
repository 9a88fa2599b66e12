import operator
import numpy as np
from numbers import Number
from typing import Callable, Literal, Tuple
from sepfun import NP_FLOAT, NP_COMPLEX, EPS, NOISE_FACTOR
from sepfun.prefs import Preferences, BASES, get_preferences
from sepfun.exceptions import ConvergenceError, DomainMismatchError
from sepfun.utils import (
    classify,
    to_reference,
    from_reference,
    ###
    chebpts2,
    trigpts,
    ###
    vals2coeffs,
    coeffs2vals,
    trig_vals2coeffs,
    trig_coeffs2vals,
    trig_prolong,
    prolong,
    ###
    chebyshev_eval,
    trig_eval,
    chebyshev_diff,
    chebyshev_cumsum,
    chebyshev_integrals,
    chebyshev_roots,
    ###
    standard_chop,
    trig_chop,
    effective_tolerance,
)


def sample(f: Callable, *points: np.ndarray) -> np.ndarray:
    """Evaluate a vectorized callable, broadcasting constant results."""
    values = np.asarray(f(*points))
    shape = np.broadcast(*points).shape
    if values.shape != shape:
        values = np.broadcast_to(values, shape).copy()
    if not np.all(np.isfinite(values)):
        raise ValueError("The function returned non-finite values.")
    return values


def _is_real(coeffs: np.ndarray, basis: str) -> bool:
    if not np.iscomplexobj(coeffs):
        return True
    if basis == "chebyshev":
        return not np.any(coeffs.imag)
    scale = np.max(np.abs(coeffs))
    return np.max(np.abs(coeffs - np.conj(coeffs[::-1]))) <= 1e2 * EPS * scale


class Fun:
    """
    Univariate spectral approximant on an interval.

    A ``Fun`` is an immutable coefficient vector in either the Chebyshev
    basis (``basis="chebyshev"``) or the Fourier basis of a periodic
    function (``basis="trig"``, coefficients ordered by wave number
    ``-m, ..., m``).

    Examples
    --------
    >>> import numpy as np
    >>> from sepfun import Fun
    >>> f = Fun.from_function(np.exp)
    >>> df = f.diff()
    >>> integral = f.sum()
    """

    def __init__(
        self,
        coeffs: np.ndarray,
        domain: Tuple[float, float] = (-1.0, 1.0),
        basis: Literal["chebyshev", "trig"] = "chebyshev",
        real: bool = None,
    ):
        coeffs = np.atleast_1d(np.asarray(coeffs))
        if coeffs.ndim != 1 or len(coeffs) == 0:
            raise ValueError("The coefficients should be a non-empty vector.")
        if basis not in BASES:
            raise ValueError(f"Invalid choice for basis: {basis}.")
        if basis == "trig" and len(coeffs) % 2 == 0:
            raise ValueError("Trigonometric coefficients should have odd length.")
        self._domain = classify(domain)
        self._basis = str(basis)
        self._real = _is_real(coeffs, basis) if real is None else bool(real)
        if basis == "trig":
            coeffs = coeffs.astype(NP_COMPLEX)
        elif self._real:
            coeffs = np.real(coeffs).astype(NP_FLOAT)
        else:
            coeffs = coeffs.astype(NP_COMPLEX)
        self._coeffs = coeffs.copy()
        self._coeffs.flags.writeable = False

    # construction

    @classmethod
    def from_function(
        cls,
        f: Callable,
        domain: Tuple[float, float] = (-1.0, 1.0),
        basis: Literal["chebyshev", "trig"] = None,
        prefs: Preferences = None,
        vscale: float = None,
    ) -> "Fun":
        """
        Adaptive construction from a vectorized callable.

        Parameters
        ----------
        f : callable
            Vectorized function of one variable.
        domain : tuple, optional
            Interval of approximation.
        basis : {"chebyshev", "trig"}, optional
            Defaults to ``prefs.basis``.
        prefs : Preferences, optional
        vscale : float, optional
            Global scale the accuracy is measured against. Pieces of a
            larger approximation pass the scale of the whole; samples at
            rounding level of that scale give the zero function.

        Raises
        ------
        ConvergenceError
            If the function is not resolved with ``prefs.max_length`` samples.
        """
        prefs = get_preferences(prefs)
        basis = prefs.basis if basis is None else basis
        if basis not in BASES:
            raise ValueError(f"Invalid choice for basis: {basis}.")
        a, b = domain = classify(domain)
        n = prefs.min_samples
        if basis == "trig" and n % 2 == 0:
            n += 1
        while n <= prefs.max_length:
            nodes = chebpts2(n) if basis == "chebyshev" else trigpts(n)
            values = sample(f, from_reference(nodes, a, b))
            local = np.max(np.abs(values))
            if local == 0.0:
                return cls.constant(0.0, domain, basis)
            if vscale is not None and local <= NOISE_FACTOR * EPS * vscale:
                ### NOTE -- rounding noise of the global scale, nothing to resolve
                return cls.constant(0.0, domain, basis)
            fun = cls.from_values(values, domain, basis)
            tol = effective_tolerance(prefs.tolerance, local, vscale)
            if basis == "chebyshev":
                cutoff = standard_chop(fun.coeffs, tol)
                if cutoff < n:
                    return Fun(fun.coeffs[:cutoff], domain, basis, fun.isreal)
            else:
                cutoff = trig_chop(fun.coeffs, tol)
                if cutoff < (n + 1) // 2:
                    coeffs = trig_prolong(fun.coeffs, 2 * cutoff - 1)
                    return Fun(coeffs, domain, basis, fun.isreal)
            n = 2 * n - 1
        raise ConvergenceError(
            f"Function not resolved using {prefs.max_length} points. "
            "Is it continuous and, for the trig basis, periodic?"
        )

    @classmethod
    def from_values(
        cls,
        values: np.ndarray,
        domain: Tuple[float, float] = (-1.0, 1.0),
        basis: Literal["chebyshev", "trig"] = "chebyshev",
    ) -> "Fun":
        """Interpolant of values on Chebyshev points (or equispaced points for ``"trig"``)."""
        values = np.asarray(values)
        real = not np.iscomplexobj(values) or not np.any(values.imag)
        if basis == "trig":
            return cls(trig_vals2coeffs(values), domain, basis, real)
        return cls(vals2coeffs(values), domain, basis, real)

    @classmethod
    def constant(
        cls,
        value: Number,
        domain: Tuple[float, float] = (-1.0, 1.0),
        basis: Literal["chebyshev", "trig"] = "chebyshev",
    ) -> "Fun":
        return cls(np.array([value]), domain, basis)

    @classmethod
    def identity(cls, domain: Tuple[float, float] = (-1.0, 1.0)) -> "Fun":
        """The function x."""
        a, b = classify(domain)
        return cls(np.array([0.5 * (a + b), 0.5 * (b - a)]), (a, b))

    # properties

    @property
    def coeffs(self) -> np.ndarray:
        return self._coeffs

    @property
    def domain(self) -> Tuple[float, float]:
        return self._domain

    @property
    def basis(self) -> str:
        return self._basis

    @property
    def isreal(self) -> bool:
        return self._real

    @property
    def vscale(self) -> float:
        """Maximal magnitude of the values on the native grid."""
        return float(np.max(np.abs(self.values())))

    def __len__(self) -> int:
        return len(self._coeffs)

    def points(self, n: int = None) -> np.ndarray:
        n = len(self) if n is None else int(n)
        a, b = self._domain
        nodes = chebpts2(n) if self._basis == "chebyshev" else trigpts(n)
        return from_reference(nodes, a, b)

    def values(self, n: int = None) -> np.ndarray:
        """Values on ``n`` native points (defaults to the length)."""
        n = len(self) if n is None else int(n)
        if self._basis == "chebyshev":
            values = coeffs2vals(prolong(self._coeffs, n))
        else:
            values = trig_coeffs2vals(self._coeffs, n)
        return np.real(values) if self._real else values

    # evaluation

    def __call__(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=NP_FLOAT)
        a, b = self._domain
        s = to_reference(x.ravel(), a, b)
        if self._basis == "chebyshev":
            values = chebyshev_eval(self._coeffs, s)
        else:
            values = trig_eval(self._coeffs, s)
            values = np.real(values) if self._real else values
        return values.reshape(x.shape)[()]

    # calculus

    def diff(self, k: int = 1) -> "Fun":
        """k-th derivative"""
        k = int(k)
        if k < 0:
            raise ValueError("The order of the derivative should be non-negative.")
        a, b = self._domain
        if self._basis == "trig":
            m = (len(self) - 1) // 2
            wave = np.arange(-m, m + 1)
            factor = (1j * np.pi * wave * 2.0 / (b - a)) ** k
            return Fun(self._coeffs * factor, self._domain, "trig", self._real)
        coeffs = self._coeffs
        for _ in range(k):
            if np.iscomplexobj(coeffs):
                coeffs = chebyshev_diff(np.ascontiguousarray(coeffs.real)) + 1j * (
                    chebyshev_diff(np.ascontiguousarray(coeffs.imag))
                )
            else:
                coeffs = chebyshev_diff(coeffs)
        return Fun(coeffs * (2.0 / (b - a)) ** k, self._domain, "chebyshev")

    def cumsum(self) -> "Fun":
        """Indefinite integral vanishing at the left end point."""
        if self._basis == "trig":
            raise ValueError("The indefinite integral is not supported for the trig basis.")
        a, b = self._domain
        return Fun(chebyshev_cumsum(self._coeffs) * 0.5 * (b - a), self._domain)

    def sum(self) -> Number:
        """Definite integral over the domain."""
        a, b = self._domain
        if self._basis == "trig":
            m = (len(self) - 1) // 2
            result = self._coeffs[m] * (b - a)
        else:
            result = chebyshev_integrals(len(self)) @ self._coeffs * 0.5 * (b - a)
        return float(np.real(result)) if self._real else complex(result)

    def norm(self, p: float = 2) -> float:
        """2-norm or infinity-norm"""
        if p == 2:
            return float(np.sqrt(max((self.conj() * self).sum().real, 0.0)))
        if p == np.inf:
            return self.max_abs()
        raise ValueError("Only the 2-norm and the infinity-norm are supported.")

    def max_abs(self) -> float:
        """Maximum of the absolute value over the domain."""
        if len(self) == 1:
            return float(np.abs(self._coeffs[0]))
        if self._basis == "trig":
            return float(np.max(np.abs(self.values(8 * len(self) + 1))))
        a, b = self._domain
        square = self if self._real else (self.conj() * self).real()
        critical = square.diff().roots()
        points = np.concatenate(([a, b], critical))
        return float(np.max(np.abs(self(points))))

    def roots(self) -> np.ndarray:
        """Real roots in the domain."""
        if self._basis == "trig":
            raise ValueError("Root finding is not supported for the trig basis.")
        a, b = self._domain
        return from_reference(chebyshev_roots(self._coeffs), a, b)

    # transformations

    def prolong(self, n: int) -> "Fun":
        if self._basis == "trig":
            return Fun(trig_prolong(self._coeffs, n), self._domain, "trig", self._real)
        return Fun(prolong(self._coeffs, n), self._domain, "chebyshev")

    def simplify(self, tol: float = EPS) -> "Fun":
        """Chop trailing coefficients below ``tol`` relative to the largest."""
        if self._basis == "trig":
            cutoff = trig_chop(self._coeffs, tol)
            if cutoff < (len(self) + 1) // 2:
                return self.prolong(2 * cutoff - 1)
            return self
        cutoff = standard_chop(self._coeffs, tol)
        return self.prolong(cutoff) if cutoff < len(self) else self

    def real(self) -> "Fun":
        if self._real:
            return self
        if self._basis == "trig":
            coeffs = 0.5 * (self._coeffs + np.conj(self._coeffs[::-1]))
            return Fun(coeffs, self._domain, "trig", True)
        return Fun(self._coeffs.real, self._domain)

    def imag(self) -> "Fun":
        if self._real:
            return 0.0 * self
        if self._basis == "trig":
            coeffs = (self._coeffs - np.conj(self._coeffs[::-1])) / 2j
            return Fun(coeffs, self._domain, "trig", True)
        return Fun(self._coeffs.imag, self._domain)

    def conj(self) -> "Fun":
        if self._real:
            return self
        if self._basis == "trig":
            return Fun(np.conj(self._coeffs[::-1]), self._domain, "trig", False)
        return Fun(np.conj(self._coeffs), self._domain)

    # algebra

    def _check(self, other: "Fun") -> None:
        if self._basis != other.basis:
            raise DomainMismatchError("Functions use different bases.")
        if not np.allclose(self._domain, other.domain, rtol=0.0, atol=1e2 * EPS):
            raise DomainMismatchError(
                f"Domain mismatch: {self._domain} and {other.domain}."
            )

    def __add__(self, other) -> "Fun":
        if isinstance(other, Fun):
            self._check(other)
            n = max(len(self), len(other))
            real = self._real and other.isreal
            if self._basis == "trig":
                coeffs = trig_prolong(self._coeffs, n) + trig_prolong(other.coeffs, n)
                return Fun(coeffs, self._domain, "trig", real)
            return Fun(prolong(self._coeffs, n) + prolong(other.coeffs, n), self._domain)
        if isinstance(other, Number):
            coeffs = self._coeffs.astype(np.result_type(self._coeffs, other))
            coeffs[(len(self) - 1) // 2 if self._basis == "trig" else 0] += other
            real = self._real and not np.iscomplexobj(np.asarray(other))
            return Fun(coeffs, self._domain, self._basis, real)
        return NotImplemented

    def __radd__(self, other) -> "Fun":
        return self.__add__(other)

    def __neg__(self) -> "Fun":
        return Fun(-self._coeffs, self._domain, self._basis, self._real)

    def __pos__(self) -> "Fun":
        return self

    def __sub__(self, other) -> "Fun":
        if isinstance(other, (Fun, Number)):
            return self.__add__(-other)
        return NotImplemented

    def __rsub__(self, other) -> "Fun":
        if isinstance(other, Number):
            return (-self).__add__(other)
        return NotImplemented

    def __mul__(self, other) -> "Fun":
        if isinstance(other, Number):
            real = self._real and not np.iscomplexobj(np.asarray(other))
            return Fun(self._coeffs * other, self._domain, self._basis, real)
        if not isinstance(other, Fun):
            return NotImplemented
        self._check(other)
        real = self._real and other.isreal
        if self._basis == "trig":
            coeffs = np.convolve(self._coeffs, other.coeffs)
            return Fun(coeffs, self._domain, "trig", real).simplify()
        if len(self) == 1 or len(other) == 1:
            short, long_ = (self, other) if len(self) == 1 else (other, self)
            return Fun(long_.coeffs * short.coeffs[0], self._domain)
        n = len(self) + len(other) - 1
        values = coeffs2vals(prolong(self._coeffs, n)) * coeffs2vals(
            prolong(other.coeffs, n)
        )
        return Fun(vals2coeffs(values), self._domain).simplify()

    def __rmul__(self, other) -> "Fun":
        return self.__mul__(other)

    def __truediv__(self, other) -> "Fun":
        if isinstance(other, Number):
            return self.__mul__(1.0 / other)
        return NotImplemented

    def __pow__(self, k: int) -> "Fun":
        k = int(k)
        if k < 0:
            raise ValueError("Only non-negative integer powers are supported.")
        result = Fun.constant(1.0, self._domain, self._basis)
        for _ in range(k):
            result = result * self
        return result

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        """
        Numpy functions of ``Fun`` objects, e.g. ``np.exp(f)``.

        Arithmetic ufuncs use the operators above; other ufuncs
        rebuild the result adaptively from samples.
        """
        if method != "__call__" or kwargs:
            return NotImplemented
        inputs = [
            i.item() if isinstance(i, (np.ndarray, np.generic)) and i.ndim == 0 else i
            for i in inputs
        ]
        if not all(isinstance(i, (Fun, Number)) for i in inputs):
            return NotImplemented
        name = ufunc.__name__
        if name in _ARITHMETIC:
            return _ARITHMETIC[name](*inputs)
        if name == "true_divide" and isinstance(inputs[1], Number):
            return inputs[0] / inputs[1]
        funs = [i for i in inputs if isinstance(i, Fun)]
        for other in funs[1:]:
            funs[0]._check(other)
        return Fun.from_function(
            lambda x: ufunc(*[i(x) if isinstance(i, Fun) else i for i in inputs]),
            funs[0].domain,
            funs[0].basis,
        )

    def __repr__(self) -> str:
        return (
            f"Fun(length={len(self)}, domain={self._domain}, basis={self._basis!r}, "
            f"real={self._real})"
        )


_ARITHMETIC = {
    "add": operator.add,
    "subtract": operator.sub,
    "multiply": operator.mul,
    "negative": operator.neg,
    "positive": operator.pos,
}
