import numpy as np
from abc import ABC, abstractmethod
from typing import List, Tuple
from sepfun import NP_FLOAT
from sepfun.fun import Fun
from sepfun.prefs import Preferences
from sepfun.linop import (
    Block,
    Identity,
    Zero,
    Diff,
    Mult,
    Scale,
    Sum,
    Compose,
    Evaluation,
    Functional,
)
from sepfun.utils import (
    classify,
    to_reference,
    from_reference,
    chebpts1,
    chebpts2,
    chebpts2_weights,
    trigpts,
    vals2coeffs,
    trig_vals2coeffs,
    prolong,
    barycentric2derivative,
    barycentric2point,
    trig2derivative,
    clenshaw_curtis_weights,
    ultraspherical2derivative,
    ultraspherical2conversion,
    ultraspherical2multiplication,
    ultraspherical2point,
    standard_chop,
    trig_chop,
    effective_tolerance,
)


class Discretization(ABC):
    """
    Finite dimensional rendition of a linear operator with constraints.

    ``matrices`` returns ``PA, PM, B`` for the evolution problem
    ``PM u' = PA u`` subject to ``B u = 0``, where u is the vector of
    unknowns of the discretization.
    """

    periodic = False

    def __init__(self, domain: Tuple[float, float], n: int):
        self.domain = classify(domain)
        self.n = int(n)

    @abstractmethod
    def matrices(
        self, block: Block, constraints: List[Functional]
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        pass

    @abstractmethod
    def from_fun(self, u: Fun) -> np.ndarray:
        """Unknowns representing u"""
        pass

    @abstractmethod
    def to_fun(self, v: np.ndarray) -> Fun:
        """Function represented by the unknowns v"""
        pass

    @abstractmethod
    def is_resolved(self, v: np.ndarray, tol: float, vscale: float = None) -> bool:
        pass

    def _constraint_rows(self, constraints: List[Functional], row) -> np.ndarray:
        B = np.zeros((len(constraints), self.n))
        for i, functional in enumerate(constraints):
            for w, atom in functional.terms:
                B[i] += np.real(w * row(atom))
        return B

    @staticmethod
    def sizes(prefs: Preferences):
        """Discretization sizes tried in turn, 33, 65, 129, ..."""
        n = 33
        while n <= prefs.max_dimension:
            yield n
            n = 2 * n - 1


class Collocation(Discretization):
    """
    Rectangular collocation on Chebyshev points of the second kind.

    The operator is evaluated at ``n`` points and resampled onto
    ``n - nbc`` Chebyshev points of the first kind, leaving room for the
    ``nbc`` constraint rows.
    """

    def __init__(self, domain: Tuple[float, float], n: int):
        super().__init__(domain, n)
        a, b = self.domain
        self._s = chebpts2(self.n)
        self._w = chebpts2_weights(self.n)
        self.points = from_reference(self._s, a, b)
        self._D = barycentric2derivative(self._s, self._w) * (2.0 / (b - a))

    def _matrix(self, block: Block) -> np.ndarray:
        if isinstance(block, Identity):
            return np.eye(self.n)
        if isinstance(block, Zero):
            return np.zeros((self.n, self.n))
        if isinstance(block, Diff):
            return np.linalg.matrix_power(self._D, block.k)
        if isinstance(block, Mult):
            return np.diag(np.real(block.fun(self.points)))
        if isinstance(block, Scale):
            return block.c * self._matrix(block.block)
        if isinstance(block, Sum):
            return sum(self._matrix(term) for term in block.terms)
        if isinstance(block, Compose):
            return self._matrix(block.outer) @ self._matrix(block.inner)
        raise TypeError(f"Unsupported block: {block!r}.")

    def _row(self, atom) -> np.ndarray:
        a, b = self.domain
        A = self._matrix(atom.block)
        if isinstance(atom, Evaluation):
            s = to_reference(np.array([atom.point], dtype=NP_FLOAT), a, b)
            return (barycentric2point(s, self._s, self._w) @ A)[0]
        return 0.5 * (b - a) * clenshaw_curtis_weights(self.n) @ A

    def matrices(self, block: Block, constraints: List[Functional]):
        nbc = len(constraints)
        P = barycentric2point(chebpts1(self.n - nbc), self._s, self._w)
        PA = P @ self._matrix(block)
        return PA, P, self._constraint_rows(constraints, self._row)

    def from_fun(self, u: Fun) -> np.ndarray:
        return np.real(u(self.points)) if u.isreal else u(self.points)

    def to_fun(self, v: np.ndarray) -> Fun:
        return Fun.from_values(v, self.domain)

    def is_resolved(self, v: np.ndarray, tol: float, vscale: float = None) -> bool:
        coeffs = vals2coeffs(v)
        tol = effective_tolerance(tol, np.max(np.abs(v)), vscale)
        return standard_chop(coeffs, tol) < self.n


class Ultraspherical(Discretization):
    """
    Ultraspherical spectral method on Chebyshev coefficients.

    An operator of order K maps Chebyshev coefficients into the
    ultraspherical basis C^(K); the mass matrix is the conversion
    C^(0) -> C^(K). The last ``nbc`` rows are dropped for the constraints.
    """

    def _convert(self, A: np.ndarray, lam: int, target: int) -> np.ndarray:
        N = A.shape[0]
        for mu in range(lam, target):
            A = ultraspherical2conversion(N, mu) @ A
        return A

    def _multiplication(self, fun: Fun, N: int, lam: int) -> np.ndarray:
        fun = _chebyshev(fun)
        L = len(fun)
        b = fun.coeffs
        for mu in range(lam):
            b = ultraspherical2conversion(L, mu) @ b
        if np.iscomplexobj(b):
            return ultraspherical2multiplication(
                np.ascontiguousarray(b.real), N, lam
            ) + 1j * ultraspherical2multiplication(np.ascontiguousarray(b.imag), N, lam)
        return ultraspherical2multiplication(np.asarray(b, dtype=NP_FLOAT), N, lam)

    def _assemble(self, block: Block, lam: int, A: np.ndarray) -> Tuple[int, np.ndarray]:
        """Apply block to a function with C^(lam) coefficients A, O(N^2) per block"""
        N = A.shape[0]
        if isinstance(block, Identity):
            return lam, A
        if isinstance(block, Zero):
            return lam, np.zeros_like(A)
        if isinstance(block, Diff):
            a, b = self.domain
            for _ in range(block.k):
                A = ultraspherical2derivative(N, lam) @ A * (2.0 / (b - a))
                lam += 1
            return lam, A
        if isinstance(block, Mult):
            return lam, self._multiplication(block.fun, N, lam) @ A
        if isinstance(block, Scale):
            lam, A = self._assemble(block.block, lam, A)
            return lam, block.c * A
        if isinstance(block, Sum):
            parts = [self._assemble(term, lam, A) for term in block.terms]
            target = max(p[0] for p in parts)
            return target, sum(self._convert(A_, lam_, target) for lam_, A_ in parts)
        if isinstance(block, Compose):
            lam, A = self._assemble(block.inner, lam, A)
            return self._assemble(block.outer, lam, A)
        raise TypeError(f"Unsupported block: {block!r}.")

    def _padded(self, block: Block) -> int:
        """Working size so that truncating products to n is exact"""
        return self.n + _bandwidth(block) + 2

    def _row(self, atom) -> np.ndarray:
        a, b = self.domain
        N = self._padded(atom.block)
        lam, A = self._assemble(atom.block, 0, np.eye(N)[:, : self.n])
        if isinstance(atom, Evaluation):
            s = to_reference(np.array([atom.point], dtype=NP_FLOAT), a, b)
            return (ultraspherical2point(s, N, lam) @ A)[0]
        V = ultraspherical2point(chebpts2(N), N, lam)
        return 0.5 * (b - a) * clenshaw_curtis_weights(N) @ (V @ A)

    def matrices(self, block: Block, constraints: List[Functional]):
        nbc = len(constraints)
        order = block.order
        N = self._padded(block)
        lam, A = self._assemble(block, 0, np.eye(N)[:, : self.n])
        A = self._convert(A, lam, order)[: self.n]
        M = self._convert(np.eye(N)[:, : self.n], 0, order)[: self.n]
        return A[: self.n - nbc], M[: self.n - nbc], self._constraint_rows(
            constraints, self._row
        )

    def from_fun(self, u: Fun) -> np.ndarray:
        if u.basis == "chebyshev":
            return prolong(u.coeffs, self.n)
        a, b = self.domain
        values = u(from_reference(chebpts2(self.n), a, b))
        return vals2coeffs(np.real(values) if u.isreal else values)

    def to_fun(self, v: np.ndarray) -> Fun:
        return Fun(v, self.domain)

    def is_resolved(self, v: np.ndarray, tol: float, vscale: float = None) -> bool:
        local = np.max(np.abs(Fun(v, self.domain).values()))
        tol = effective_tolerance(tol, local, vscale)
        return standard_chop(v, tol) < self.n


def _chebyshev(fun: Fun) -> Fun:
    if fun.basis == "chebyshev":
        return fun
    return Fun.from_function(fun, fun.domain, "chebyshev")


def _bandwidth(block: Block) -> int:
    if isinstance(block, Mult):
        return len(_chebyshev(block.fun))
    if isinstance(block, Diff):
        return block.k
    if isinstance(block, Scale):
        return _bandwidth(block.block)
    if isinstance(block, Sum):
        return max(_bandwidth(term) for term in block.terms)
    if isinstance(block, Compose):
        return _bandwidth(block.outer) + _bandwidth(block.inner)
    return 0


class TrigCollocation(Discretization):
    """
    Fourier collocation on ``n`` (odd) equispaced points of a period.

    Periodicity is built into the basis, so no constraints are imposed
    and the mass matrix is the identity.
    """

    periodic = True

    def __init__(self, domain: Tuple[float, float], n: int):
        n = int(n) + 1 - int(n) % 2
        super().__init__(domain, n)
        a, b = self.domain
        self.points = from_reference(trigpts(self.n), a, b)
        self._D = trig2derivative(self.n, b - a)

    def _matrix(self, block: Block) -> np.ndarray:
        if isinstance(block, Identity):
            return np.eye(self.n)
        if isinstance(block, Zero):
            return np.zeros((self.n, self.n))
        if isinstance(block, Diff):
            return np.linalg.matrix_power(self._D, block.k)
        if isinstance(block, Mult):
            return np.diag(np.real(block.fun(self.points)))
        if isinstance(block, Scale):
            return block.c * self._matrix(block.block)
        if isinstance(block, Sum):
            return sum(self._matrix(term) for term in block.terms)
        if isinstance(block, Compose):
            return self._matrix(block.outer) @ self._matrix(block.inner)
        raise TypeError(f"Unsupported block: {block!r}.")

    def matrices(self, block: Block, constraints: List[Functional]):
        if constraints:
            raise ValueError("Periodic discretizations take no constraints.")
        return self._matrix(block), np.eye(self.n), np.zeros((0, self.n))

    def from_fun(self, u: Fun) -> np.ndarray:
        return np.real(u(self.points)) if u.isreal else u(self.points)

    def to_fun(self, v: np.ndarray) -> Fun:
        return Fun.from_values(v, self.domain, "trig")

    def is_resolved(self, v: np.ndarray, tol: float, vscale: float = None) -> bool:
        coeffs = trig_vals2coeffs(v)
        tol = effective_tolerance(tol, np.max(np.abs(v)), vscale)
        return trig_chop(coeffs, tol) < (self.n + 1) // 2


DISCRETIZATION_TYPES = {
    "collocation": Collocation,
    "ultraspherical": Ultraspherical,
    "trig": TrigCollocation,
}


def select_discretization(
    prefs: Preferences, periodic: bool = False, prefs_given: bool = True
) -> type:
    """
    Discretization class for a problem.

    The trig basis selects Fourier collocation. Periodic boundary
    conditions do too when no preferences were passed; otherwise
    ``prefs.discretization`` decides.
    """
    if prefs.basis == "trig" or (periodic and not prefs_given):
        return TrigCollocation
    return DISCRETIZATION_TYPES[prefs.discretization]
