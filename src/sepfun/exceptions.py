"""
- Failures are split into contract violations (ValueError) and
  mathematical non-convergence (RuntimeError).
"""


class DomainMismatchError(ValueError):
    """Raised when functions living on different domains are combined."""


class BoundaryConditionError(ValueError):
    """Raised when side conditions do not fit the discretized operator."""


class NonlinearOperatorError(ValueError):
    """Raised when an operation requiring a linear operator gets a nonlinear one."""


class ConvergenceError(RuntimeError):
    """Raised when an adaptive procedure hits its cap before resolving."""


class RankCapError(ConvergenceError):
    """Raised when cross approximation exceeds the configured rank cap."""
