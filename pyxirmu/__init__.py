from ._version import __version__
from .distorted_power import DistortedPowerCorrelation
from .transform import MultipoleTransform, AdaptiveMultipoleTransform, multipole_transform_normalization
from .interpolator import Interpolator, TabulatedPower
from .utils import setup_logging, InvalidArgumentError, DomainError, NotInitializedError
