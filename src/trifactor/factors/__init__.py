from trifactor.factors.triangulation import TriangulationFactor

__all__ = ["TriangulationFactor"]
