from typing import Literal
from sepfun import EPS

DISCRETIZATIONS = ("collocation", "ultraspherical")
BASES = ("chebyshev", "trig")


class Preferences:
    """
    Immutable numerical preferences.

    Every top level construction accepts ``prefs``; omitting it means
    ``DEFAULT_PREFERENCES``. A modified copy is obtained with ``replace``.

    Attributes
    ----------
    tolerance : float
        Relative accuracy target of function approximations.
    operator_tolerance : float
        Relative accuracy target used when checking that a discretized
        operator problem is resolved.
    discretization : {"collocation", "ultraspherical"}
        Discretization of linear operators on non-periodic bases.
    basis : {"chebyshev", "trig"}
        Default basis of univariate approximations and of operator
        discretizations. ``"trig"`` selects periodic Fourier collocation.
    max_length : int
        Largest number of coefficients of a univariate approximation.
    min_samples : int
        Number of samples of the first adaptive construction step.
    max_rank : int
        Rank cap of cross approximation.
    sampling_density : int
        Grid size per dimension of the first pivot search.
    max_sampling : int
        Largest grid size per dimension of the pivot search.
    max_dimension : int
        Largest discretization size of operator problems.
    report : bool
        If True, constructions print a short report.
    """

    def __init__(
        self,
        tolerance: float = EPS,
        operator_tolerance: float = 1e-10,
        discretization: Literal["collocation", "ultraspherical"] = "ultraspherical",
        basis: Literal["chebyshev", "trig"] = "chebyshev",
        max_length: int = 65537,
        min_samples: int = 17,
        max_rank: int = 513,
        sampling_density: int = 17,
        max_sampling: int = 513,
        max_dimension: int = 1025,
        report: bool = False,
    ):
        tolerance, operator_tolerance = float(tolerance), float(operator_tolerance)
        if not 0.0 < tolerance < 1.0:
            raise ValueError("The tolerance should be in the range (0, 1).")
        if not 0.0 < operator_tolerance < 1.0:
            raise ValueError("The operator tolerance should be in the range (0, 1).")
        if discretization not in DISCRETIZATIONS:
            raise ValueError(f"Invalid choice for discretization: {discretization}.")
        if basis not in BASES:
            raise ValueError(f"Invalid choice for basis: {basis}.")
        if int(min_samples) < 3:
            raise ValueError("The parameter min_samples should be at least 3.")
        if int(max_length) < int(min_samples):
            raise ValueError("The parameter max_length should be at least min_samples.")
        if int(max_rank) < 1:
            raise ValueError("The parameter max_rank should be positive.")
        if int(sampling_density) < 3:
            raise ValueError("The parameter sampling_density should be at least 3.")
        if int(max_sampling) < int(sampling_density):
            raise ValueError(
                "The parameter max_sampling should be at least sampling_density."
            )
        if int(max_dimension) < 9:
            raise ValueError("The parameter max_dimension should be at least 9.")
        self._tolerance = tolerance
        self._operator_tolerance = operator_tolerance
        self._discretization = str(discretization)
        self._basis = str(basis)
        self._max_length = int(max_length)
        self._min_samples = int(min_samples)
        self._max_rank = int(max_rank)
        self._sampling_density = int(sampling_density)
        self._max_sampling = int(max_sampling)
        self._max_dimension = int(max_dimension)
        self._report = bool(report)

    @property
    def tolerance(self) -> float:
        return self._tolerance

    @property
    def operator_tolerance(self) -> float:
        return self._operator_tolerance

    @property
    def discretization(self) -> str:
        return self._discretization

    @property
    def basis(self) -> str:
        return self._basis

    @property
    def max_length(self) -> int:
        return self._max_length

    @property
    def min_samples(self) -> int:
        return self._min_samples

    @property
    def max_rank(self) -> int:
        return self._max_rank

    @property
    def sampling_density(self) -> int:
        return self._sampling_density

    @property
    def max_sampling(self) -> int:
        return self._max_sampling

    @property
    def max_dimension(self) -> int:
        return self._max_dimension

    @property
    def report(self) -> bool:
        return self._report

    def as_dict(self) -> dict:
        return {
            "tolerance": self._tolerance,
            "operator_tolerance": self._operator_tolerance,
            "discretization": self._discretization,
            "basis": self._basis,
            "max_length": self._max_length,
            "min_samples": self._min_samples,
            "max_rank": self._max_rank,
            "sampling_density": self._sampling_density,
            "max_sampling": self._max_sampling,
            "max_dimension": self._max_dimension,
            "report": self._report,
        }

    def replace(self, **options) -> "Preferences":
        """Return a copy with the given options overridden."""
        options_ = self.as_dict()
        for key, value in options.items():
            if key not in options_:
                raise ValueError(f"Unknown preference: {key}.")
            options_[key] = value
        return Preferences(**options_)

    def __eq__(self, value: object) -> bool:
        if not isinstance(value, Preferences):
            return NotImplemented
        return self.as_dict() == value.as_dict()

    def __hash__(self) -> int:
        return hash(tuple(self.as_dict().items()))

    def __repr__(self) -> str:
        options = ", ".join(f"{k}={v!r}" for k, v in self.as_dict().items())
        return f"Preferences({options})"


DEFAULT_PREFERENCES = Preferences()


def get_preferences(prefs: Preferences = None) -> Preferences:
    if prefs is None:
        return DEFAULT_PREFERENCES
    if not isinstance(prefs, Preferences):
        raise ValueError("The parameter prefs should be a Preferences object.")
    return prefs
