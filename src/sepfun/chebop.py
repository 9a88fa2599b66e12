import time
import warnings
import numpy as np
from numbers import Number
from typing import Callable, List, Sequence, Tuple, Union
from scipy.linalg import expm as matrix_exponential, null_space, solve, LinAlgError
from sepfun.fun import Fun
from sepfun.prefs import Preferences, get_preferences
from sepfun.exceptions import (
    BoundaryConditionError,
    ConvergenceError,
    DomainMismatchError,
    NonlinearOperatorError,
)
from sepfun.linop import (
    Functional,
    Linear,
    Nonlinear,
    Probe,
    arity,
    call_with_probe,
    linearize,
)
from sepfun.discretization import Discretization, select_discretization
from sepfun.utils import classify

BoundaryCondition = Union[None, Number, Callable, Sequence]


class Chebop:
    """
    Operator on functions of one variable with boundary conditions.

    Parameters
    ----------
    op : callable
        The operator, ``op(u)`` or ``op(x, u)``, written with the arithmetic
        of ``Fun`` (``u.diff(k)``, products with functions and numbers).
    domain : tuple, optional
        The interval, default is [-1, 1].
    lbc, rbc : number, callable or sequence, optional
        Conditions at the left and right end point. A number ``c`` imposes
        ``u = c``; a callable ``g`` imposes ``g(u) = 0`` at the end point; a
        sequence imposes its entries on ``u, u', u'', ...`` in turn.
    bc : "periodic" or callable, optional
        ``"periodic"`` matches the values and the derivatives below the
        order of the operator at both end points. A callable ``bc(x, u)``
        returns a functional or a list of functionals, e.g.
        ``lambda x, u: [u(-1), u.sum()]``.

    Examples
    --------
    >>> from sepfun import Chebop
    >>> L = Chebop(lambda u: u.diff(2), (-1, 1), lbc=0, rbc=0)
    """

    def __init__(
        self,
        op: Callable,
        domain: Tuple[float, float] = (-1.0, 1.0),
        lbc: BoundaryCondition = None,
        rbc: BoundaryCondition = None,
        bc: Union[None, str, Callable] = None,
    ):
        if not callable(op):
            raise ValueError("The operator should be callable.")
        if isinstance(bc, str) and bc != "periodic":
            raise BoundaryConditionError(f"Unknown boundary condition: {bc}.")
        self.op = op
        self.domain = classify(domain)
        self.lbc = lbc
        self.rbc = rbc
        self.bc = bc

    @property
    def is_periodic(self) -> bool:
        return isinstance(self.bc, str) and self.bc == "periodic"

    def __call__(self, u: Fun) -> Fun:
        if arity(self.op) == 2:
            return self.op(Fun.identity(self.domain), u)
        return self.op(u)

    def __mul__(self, other):
        if isinstance(other, Number):
            return self._scaled(other)
        if isinstance(other, Fun):
            return self(other)
        return NotImplemented

    def __rmul__(self, other) -> "Chebop":
        if isinstance(other, Number):
            return self._scaled(other)
        return NotImplemented

    def _scaled(self, c: Number) -> "Chebop":
        op = self.op
        if arity(op) == 2:
            scaled = lambda x, u: c * op(x, u)
        else:
            scaled = lambda u: c * op(u)
        return Chebop(scaled, self.domain, self.lbc, self.rbc, self.bc)

    def linop(self) -> Union[Linear, Nonlinear]:
        """Linearization of the operator."""
        return linearize(self.op, self.domain)

    def constraints(self, order: int) -> List[Functional]:
        """
        Boundary conditions as affine functionals ``F`` with ``F(u) = 0``.

        Parameters
        ----------
        order : int
            Differential order of the operator, the number of derivatives
            matched by periodic conditions.
        """
        a, b = self.domain
        functionals = self._endpoint(self.lbc, a) + self._endpoint(self.rbc, b)
        if self.is_periodic:
            u = Probe(self.domain)
            for k in range(order):
                functionals.append(u.diff(k)(a) - u.diff(k)(b))
        elif callable(self.bc):
            functionals += _as_functionals(call_with_probe(self.bc, self.domain), None)
        return functionals

    def _endpoint(self, condition: BoundaryCondition, point: float) -> List[Functional]:
        if condition is None:
            return []
        u = Probe(self.domain)
        if isinstance(condition, Number):
            return [u(point) - condition]
        if callable(condition):
            return _as_functionals(call_with_probe(condition, self.domain), point)
        functionals = []
        for k, item in enumerate(condition):
            if isinstance(item, Number):
                functionals.append(u.diff(k)(point) - item)
            elif callable(item):
                functionals += _as_functionals(call_with_probe(item, self.domain), point)
            else:
                raise BoundaryConditionError(f"Invalid boundary condition: {item!r}.")
        return functionals

    def __repr__(self) -> str:
        return (
            f"Chebop(domain={self.domain}, lbc={self.lbc!r}, rbc={self.rbc!r}, "
            f"bc={self.bc!r})"
        )


def _as_functionals(result, point: float) -> List[Functional]:
    if isinstance(result, (list, tuple)):
        return [f for item in result for f in _as_functionals(item, point)]
    if isinstance(result, Probe):
        if point is None:
            raise BoundaryConditionError(
                "A boundary condition should evaluate the unknown, e.g. u(-1)."
            )
        return [result(point)]
    if isinstance(result, Functional):
        return [result]
    if isinstance(result, Number) and result == 0:
        return []
    raise BoundaryConditionError(f"Invalid boundary condition: {result!r}.")


def _check_constraints(constraints: List[Functional], order: int, periodic: bool) -> None:
    for functional in constraints:
        if functional.reason:
            raise NonlinearOperatorError(
                f"The boundary conditions appear to be nonlinear: {functional.reason}."
            )
        if not functional.is_homogeneous:
            raise BoundaryConditionError(
                "expm supports only homogeneous boundary conditions B u = 0."
            )
    if not periodic and len(constraints) != order:
        raise BoundaryConditionError(
            f"An operator of order {order} needs {order} boundary conditions, "
            f"got {len(constraints)}."
        )


def expm(
    N: Chebop,
    t: Union[float, Sequence[float]] = None,
    u0: Union[Fun, Sequence[Fun]] = None,
    prefs: Preferences = None,
):
    """
    Exponential semigroup of a linear operator.

    Propagates ``u0`` through ``u' = L u`` with the boundary conditions of
    ``N``, i.e. evaluates ``u(t) = exp(t L) u0``. The discretization size is
    increased until every requested time is resolved.

    Parameters
    ----------
    N : Chebop
        Linear operator with homogeneous boundary conditions.
    t : float or sequence of float
        Time or times.
    u0 : Fun or list of Fun
        Initial condition; a list of one function is unwrapped.
    prefs : Preferences, optional
        ``prefs.discretization`` and ``prefs.basis`` choose the
        discretization; without preferences, periodic conditions select
        Fourier collocation.

    Returns
    -------
    Fun or list of Fun
        A ``Fun`` for a scalar t, a list with one ``Fun`` per time otherwise.
        Called as ``expm(N)`` (deprecated), returns the ``Chebop`` ``u -> exp(L) u``.

    Raises
    ------
    NonlinearOperatorError
        If the operator is not linear.
    BoundaryConditionError
        If the boundary conditions are inhomogeneous or do not make the
        problem well posed.
    ConvergenceError
        If the solution is not resolved within ``prefs.max_dimension``.
    """
    linear = N.linop()
    if isinstance(linear, Nonlinear):
        raise NonlinearOperatorError(
            f"The operator appears to be nonlinear ({linear.reason}). "
            "expm supports only linear operators."
        )
    if u0 is None:
        warnings.warn(
            "The expm(N) syntax is deprecated, use expm(N, t, u0) instead.",
            DeprecationWarning,
            stacklevel=2,
        )
        s = 1.0 if t is None else t
        return Chebop(lambda u: expm(N, s, u, prefs), N.domain)
    if t is None:
        raise ValueError("The time t is required.")
    ###
    start = time.time()
    prefs_given = prefs is not None
    prefs = get_preferences(prefs)
    if isinstance(u0, (list, tuple)):
        if len(u0) != 1:
            raise ValueError("Only scalar initial conditions are supported.")
        u0 = u0[0]
    if not isinstance(u0, Fun):
        raise ValueError("The initial condition should be a Fun.")
    if not np.allclose(u0.domain, N.domain):
        raise DomainMismatchError(
            f"Domain mismatch: {u0.domain} and {N.domain}."
        )
    scalar = np.ndim(t) == 0
    times = np.atleast_1d(np.asarray(t, dtype=float))
    ###
    block = linear.block
    order = block.order
    discretization = select_discretization(prefs, N.is_periodic, prefs_given)
    constraints = [] if discretization.periodic else N.constraints(order)
    _check_constraints(constraints, order, discretization.periodic)
    nbc = len(constraints)
    vscale = u0.vscale
    ### NOTE -- exp(0 L) is the identity, u0 is returned as given at t = 0
    positive = [s for s in times if s != 0.0]
    snapshots, disc = {}, None
    for n in Discretization.sizes(prefs) if positive else ():
        disc = discretization(N.domain, n)
        PA, PM, B = disc.matrices(block, constraints)
        if nbc:
            if np.linalg.matrix_rank(B) < nbc:
                raise BoundaryConditionError("The boundary conditions are linearly dependent.")
            Q = null_space(B)
        else:
            Q = np.eye(disc.n)
        try:
            PMQ = PM @ Q
            G = solve(PMQ, PA @ Q)
            v0 = solve(PMQ, PM @ disc.from_fun(u0))
        except LinAlgError as e:
            raise BoundaryConditionError(
                "The boundary conditions do not give a well posed problem."
            ) from e
        snapshots = {s: Q @ (matrix_exponential(s * G) @ v0) for s in positive}
        if all(
            disc.is_resolved(v, prefs.operator_tolerance, vscale)
            for v in snapshots.values()
        ):
            break
    else:
        if positive:
            raise ConvergenceError(
                f"expm not resolved with discretizations of size {prefs.max_dimension}."
            )
    ###
    funs = [
        u0 if s == 0.0 else disc.to_fun(snapshots[s]).simplify(prefs.operator_tolerance)
        for s in times
    ]
    if prefs.report:
        size = "-" if disc is None else disc.n
        print(
            f"expm: {discretization.__name__}, n = {size}, "
            f"{len(times)} time(s), {(time.time() - start) * 1000:.2f} ms"
        )
    return funs[0] if scalar else funs
