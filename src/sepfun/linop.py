import inspect
import numpy as np
from abc import ABC, abstractmethod
from numbers import Number
from typing import Callable, NamedTuple, Tuple, Union
from sepfun.fun import Fun

"""
- Linear operators are expression trees of blocks; discretizations walk
  the tree, so adding a block means adding a case to every discretization.
- Linearity is decided by running the user operator on a probe object
  that records the operations applied to the unknown.
"""


# blocks


class Block(ABC):
    @property
    @abstractmethod
    def order(self) -> int:
        """Differential order"""
        pass

    @abstractmethod
    def apply(self, u: Fun) -> Fun:
        """Apply the operator to a function"""
        pass

    def __add__(self, other: "Block") -> "Block":
        if not isinstance(other, Block):
            return NotImplemented
        if isinstance(other, Zero):
            return self
        if isinstance(self, Zero):
            return other
        return Sum((self, other))

    def __neg__(self) -> "Block":
        return Scale(-1.0, self)

    def __sub__(self, other: "Block") -> "Block":
        if not isinstance(other, Block):
            return NotImplemented
        return self + (-other)

    def __mul__(self, other: Number) -> "Block":
        if not isinstance(other, Number):
            return NotImplemented
        return Zero() if other == 0 else Scale(other, self)

    def __rmul__(self, other: Number) -> "Block":
        return self.__mul__(other)

    def __matmul__(self, other: "Block") -> "Block":
        if not isinstance(other, Block):
            return NotImplemented
        if isinstance(self, Zero) or isinstance(other, Zero):
            return Zero()
        if isinstance(self, Identity):
            return other
        if isinstance(other, Identity):
            return self
        return Compose(self, other)


class Identity(Block):
    @property
    def order(self) -> int:
        return 0

    def apply(self, u: Fun) -> Fun:
        return u

    def __repr__(self) -> str:
        return "I"


class Zero(Block):
    @property
    def order(self) -> int:
        return 0

    def apply(self, u: Fun) -> Fun:
        return 0.0 * u

    def __repr__(self) -> str:
        return "0"


class Diff(Block):
    def __init__(self, k: int = 1):
        if int(k) < 1:
            raise ValueError("The order of the derivative should be positive.")
        self.k = int(k)

    @property
    def order(self) -> int:
        return self.k

    def apply(self, u: Fun) -> Fun:
        return u.diff(self.k)

    def __repr__(self) -> str:
        return f"D^{self.k}"


class Mult(Block):
    """Multiplication by a function"""

    def __init__(self, fun: Fun):
        self.fun = fun

    @property
    def order(self) -> int:
        return 0

    def apply(self, u: Fun) -> Fun:
        return self.fun * u

    def __repr__(self) -> str:
        return f"M[{self.fun!r}]"


class Scale(Block):
    def __init__(self, c: Number, block: Block):
        self.c = c
        self.block = block

    @property
    def order(self) -> int:
        return self.block.order

    def apply(self, u: Fun) -> Fun:
        return self.c * self.block.apply(u)

    def __repr__(self) -> str:
        return f"{self.c}*({self.block!r})"


class Sum(Block):
    def __init__(self, terms: Tuple[Block, ...]):
        flat = []
        for term in terms:
            flat.extend(term.terms if isinstance(term, Sum) else (term,))
        self.terms = tuple(flat)

    @property
    def order(self) -> int:
        return max(term.order for term in self.terms)

    def apply(self, u: Fun) -> Fun:
        result = self.terms[0].apply(u)
        for term in self.terms[1:]:
            result = result + term.apply(u)
        return result

    def __repr__(self) -> str:
        return " + ".join(repr(term) for term in self.terms)


class Compose(Block):
    """``outer(inner(u))``"""

    def __init__(self, outer: Block, inner: Block):
        self.outer = outer
        self.inner = inner

    @property
    def order(self) -> int:
        return self.outer.order + self.inner.order

    def apply(self, u: Fun) -> Fun:
        return self.outer.apply(self.inner.apply(u))

    def __repr__(self) -> str:
        return f"({self.outer!r})({self.inner!r})"


# functionals


class Evaluation(NamedTuple):
    point: float
    block: Block


class Integral(NamedTuple):
    block: Block


def _apply_atom(atom: Union[Evaluation, Integral], u: Fun) -> Number:
    if isinstance(atom, Evaluation):
        return atom.block.apply(u)(atom.point)
    return atom.block.apply(u).sum()


class Functional:
    """
    Affine functional: a linear combination of point evaluations and
    integrals of blocks applied to the unknown, plus a constant.

    A functional built from a nonlinear expression carries the reason in
    ``reason`` and has no meaningful linear part.
    """

    __array_ufunc__ = None

    def __init__(
        self,
        terms: Tuple[Tuple[Number, Union[Evaluation, Integral]], ...] = (),
        constant: Number = 0.0,
        reason: str = None,
    ):
        self.terms = tuple(terms)
        self.constant = constant
        self.reason = reason

    @property
    def order(self) -> int:
        return max((atom.block.order for _, atom in self.terms), default=0)

    @property
    def is_homogeneous(self) -> bool:
        return self.constant == 0

    def apply(self, u: Fun) -> Number:
        """Value of the linear part at u"""
        return sum(w * _apply_atom(atom, u) for w, atom in self.terms)

    def __add__(self, other) -> "Functional":
        if isinstance(other, Number):
            return Functional(self.terms, self.constant + other, self.reason)
        if not isinstance(other, Functional):
            return NotImplemented
        return Functional(
            self.terms + other.terms,
            self.constant + other.constant,
            self.reason or other.reason,
        )

    def __radd__(self, other) -> "Functional":
        return self.__add__(other)

    def __neg__(self) -> "Functional":
        return self * -1.0

    def __sub__(self, other) -> "Functional":
        if isinstance(other, (Number, Functional)):
            return self + (-other)
        return NotImplemented

    def __rsub__(self, other) -> "Functional":
        return (-self).__add__(other)

    def __mul__(self, other) -> "Functional":
        if isinstance(other, Functional):
            return Functional(reason="product of functionals of the unknown")
        if not isinstance(other, Number):
            return NotImplemented
        terms = tuple((w * other, atom) for w, atom in self.terms)
        return Functional(terms, self.constant * other, self.reason)

    def __rmul__(self, other) -> "Functional":
        return self.__mul__(other)

    def __truediv__(self, other) -> "Functional":
        if isinstance(other, Number):
            return self.__mul__(1.0 / other)
        if isinstance(other, Functional):
            return Functional(reason="division by a functional of the unknown")
        return NotImplemented

    def __pow__(self, k) -> "Functional":
        if k == 1:
            return self
        return Functional(reason=f"power {k} of a functional of the unknown")

    def __repr__(self) -> str:
        if self.reason:
            return f"Functional(nonlinear: {self.reason})"
        return f"Functional(terms={self.terms}, constant={self.constant})"


# probes


class Probe:
    """
    Stand-in for the unknown function u.

    Arithmetic on a probe records the linear part as a block, the part
    independent of u as a function, and the first nonlinear operation
    met as ``reason``.
    """

    _LINEAR_UFUNCS = ("add", "subtract", "multiply", "true_divide", "negative", "positive")

    def __init__(
        self,
        domain: Tuple[float, float],
        block: Block = None,
        affine: Fun = None,
        reason: str = None,
    ):
        self.domain = tuple(domain)
        self.block = Identity() if block is None else block
        self.affine = affine
        self.reason = reason

    def _nonlinear(self, reason: str) -> "Probe":
        return Probe(self.domain, Zero(), None, self.reason or reason)

    def _lift(self, other) -> Union["Probe", None]:
        """Wrap numbers and functions as probes independent of u."""
        if isinstance(other, Probe):
            return other
        if isinstance(other, Number):
            return Probe(self.domain, Zero(), Fun.constant(other, self.domain))
        if isinstance(other, Fun):
            return Probe(self.domain, Zero(), other)
        return None

    @property
    def depends_on_u(self) -> bool:
        return self.reason is not None or not isinstance(self.block, Zero)

    # algebra

    def __add__(self, other) -> "Probe":
        other = self._lift(other)
        if other is None:
            return NotImplemented
        if self.reason or other.reason:
            return self._nonlinear(other.reason)
        if self.affine is None:
            affine = other.affine
        elif other.affine is None:
            affine = self.affine
        else:
            affine = self.affine + other.affine
        return Probe(self.domain, self.block + other.block, affine)

    def __radd__(self, other) -> "Probe":
        return self.__add__(other)

    def __neg__(self) -> "Probe":
        return self.__mul__(-1.0)

    def __pos__(self) -> "Probe":
        return self

    def __sub__(self, other) -> "Probe":
        other = self._lift(other)
        if other is None:
            return NotImplemented
        return self.__add__(-other)

    def __rsub__(self, other) -> "Probe":
        return (-self).__add__(other)

    def __mul__(self, other) -> "Probe":
        if isinstance(other, Number):
            affine = None if self.affine is None else self.affine * other
            return Probe(self.domain, self.block * other, affine, self.reason)
        if isinstance(other, Fun):
            affine = None if self.affine is None else self.affine * other
            return Probe(self.domain, Mult(other) @ self.block, affine, self.reason)
        if not isinstance(other, Probe):
            return NotImplemented
        if not other.depends_on_u:
            return self.__mul__(other.affine if other.affine is not None else 0.0)
        if not self.depends_on_u:
            return other.__mul__(self.affine if self.affine is not None else 0.0)
        return self._nonlinear("product of the unknown with itself")

    def __rmul__(self, other) -> "Probe":
        return self.__mul__(other)

    def __truediv__(self, other) -> "Probe":
        if isinstance(other, Number):
            return self.__mul__(1.0 / other)
        if isinstance(other, Probe) and other.depends_on_u:
            return self._nonlinear("division by the unknown")
        return NotImplemented

    def __rtruediv__(self, other) -> "Probe":
        return self._nonlinear("division by the unknown")

    def __pow__(self, k) -> "Probe":
        if isinstance(k, Number) and k == 0:
            return Probe(self.domain, Zero(), Fun.constant(1.0, self.domain))
        if isinstance(k, Number) and k == 1:
            return self
        return self._nonlinear(f"power {k} of the unknown")

    def __rpow__(self, base) -> "Probe":
        return self._nonlinear("the unknown as an exponent")

    def __abs__(self) -> "Probe":
        return self._nonlinear("absolute value of the unknown")

    def __array_ufunc__(self, ufunc, method, *inputs, **kwargs):
        name = getattr(ufunc, "__name__", str(ufunc))
        if method != "__call__" or kwargs or name not in self._LINEAR_UFUNCS:
            return self._nonlinear(f"nonlinear function {name} of the unknown")
        inputs = [i.item() if isinstance(i, np.ndarray) and i.ndim == 0 else i for i in inputs]
        inputs = [i.item() if isinstance(i, np.generic) else i for i in inputs]
        if name == "negative":
            return -inputs[0]
        if name == "positive":
            return inputs[0]
        a, b = inputs
        if name == "add":
            return a + b if isinstance(a, Probe) else b.__radd__(a)
        if name == "subtract":
            return a - b if isinstance(a, Probe) else b.__rsub__(a)
        if name == "multiply":
            return a * b if isinstance(a, Probe) else b.__rmul__(a)
        return a / b if isinstance(a, Probe) else b.__rtruediv__(a)

    # calculus

    def diff(self, k: int = 1) -> "Probe":
        if int(k) == 0:
            return self
        if self.reason:
            return self
        affine = None if self.affine is None else self.affine.diff(k)
        return Probe(self.domain, Diff(k) @ self.block, affine)

    def __call__(self, point: float) -> Functional:
        constant = 0.0 if self.affine is None else self.affine(point)
        if self.reason:
            return Functional(reason=self.reason)
        if isinstance(self.block, Zero):
            return Functional((), constant)
        return Functional(((1.0, Evaluation(float(point), self.block)),), constant)

    def sum(self) -> Functional:
        """Definite integral over the domain"""
        constant = 0.0 if self.affine is None else self.affine.sum()
        if self.reason:
            return Functional(reason=self.reason)
        if isinstance(self.block, Zero):
            return Functional((), constant)
        return Functional(((1.0, Integral(self.block)),), constant)

    def __repr__(self) -> str:
        if self.reason:
            return f"Probe(nonlinear: {self.reason})"
        return f"Probe({self.block!r})"


# linearization


class Linear(NamedTuple):
    block: Block


class Nonlinear(NamedTuple):
    reason: str


def arity(op: Callable) -> int:
    """Number of required positional arguments, 1 for ``u`` or 2 for ``x, u``"""
    try:
        parameters = inspect.signature(op).parameters.values()
    except (TypeError, ValueError):
        return 1
    positional = [
        p
        for p in parameters
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        and p.default is p.empty
    ]
    return 2 if len(positional) >= 2 else 1


def call_with_probe(op: Callable, domain: Tuple[float, float]):
    """Run a user operator on the probe, passing x when requested."""
    u = Probe(domain)
    if arity(op) == 2:
        return op(Fun.identity(domain), u)
    return op(u)


def linearize(op: Callable, domain: Tuple[float, float]) -> Union[Linear, Nonlinear]:
    """
    Decide whether ``op`` is linear in u and, if so, extract its block.

    Parameters
    ----------
    op : callable
        The operator, ``op(u)`` or ``op(x, u)``.
    domain : tuple
        The interval the unknown lives on.

    Returns
    -------
    Linear or Nonlinear
        ``Linear(block)`` for a linear homogeneous operator, otherwise
        ``Nonlinear(reason)``. A forcing term independent of u makes the
        operator affine, which is reported as nonlinear.
    """
    result = call_with_probe(op, domain)
    if isinstance(result, Number) and result == 0:
        return Linear(Zero())
    if isinstance(result, (Number, Fun)):
        return Nonlinear("the operator does not depend on the unknown")
    if not isinstance(result, Probe):
        raise ValueError(
            f"The operator should return an expression of u, got {type(result).__name__}."
        )
    if result.reason:
        return Nonlinear(result.reason)
    if result.affine is not None and np.any(result.affine.coeffs != 0):
        return Nonlinear("forcing term independent of the unknown")
    return Linear(result.block)
