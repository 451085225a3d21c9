from trifactor.linear.jacobian_factor import JacobianFactor, LinearizationWorkspace

__all__ = ["JacobianFactor", "LinearizationWorkspace"]
