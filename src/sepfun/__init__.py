__version__ = "0.0.1"
import numpy as np

### CONFIGURATION OPTIONS

NP_FLOAT = np.float64
NP_COMPLEX = np.complex128
EPS = float(np.finfo(np.float64).eps)
NOISE_FACTOR = 1e2

###

import sepfun.utils as utils
from .prefs import Preferences, DEFAULT_PREFERENCES
from .exceptions import (
    ConvergenceError,
    RankCapError,
    DomainMismatchError,
    BoundaryConditionError,
    NonlinearOperatorError,
)
from .fun import Fun
from .separable import Chebfun2, Chebfun3, Diskfun
from .linop import Linear, Nonlinear, linearize
from .chebop import Chebop, expm
