from trifactor.api import factor_from_dict, factor_to_dict, load_factor, save_factor
from trifactor.core.geometry import Cal3DS2, Cal3S2, DegenerateProjection, PinholeCamera, Pose3, Projection
from trifactor.errors import CheiralityError, FactorFormatError, InvalidNoiseModelDimension, ValuesKeyDoesNotExist
from trifactor.factors import TriangulationFactor
from trifactor.keys import default_key_formatter, symbol
from trifactor.linear import JacobianFactor, LinearizationWorkspace
from trifactor.nonlinear import Diagonal, Gaussian, Isotropic, Unit, Values

__all__ = [
    "TriangulationFactor",
    "PinholeCamera",
    "Pose3",
    "Cal3S2",
    "Cal3DS2",
    "Projection",
    "DegenerateProjection",
    "Gaussian",
    "Diagonal",
    "Isotropic",
    "Unit",
    "Values",
    "JacobianFactor",
    "LinearizationWorkspace",
    "symbol",
    "default_key_formatter",
    "CheiralityError",
    "FactorFormatError",
    "InvalidNoiseModelDimension",
    "ValuesKeyDoesNotExist",
    "factor_from_dict",
    "factor_to_dict",
    "load_factor",
    "save_factor",
]
