from trifactor.nonlinear.factor import NoiseModelFactor1
from trifactor.nonlinear.noise_model import Diagonal, Gaussian, Isotropic, NoiseModel, Unit
from trifactor.nonlinear.values import Values

__all__ = [
    "NoiseModelFactor1",
    "NoiseModel",
    "Gaussian",
    "Diagonal",
    "Isotropic",
    "Unit",
    "Values",
]
