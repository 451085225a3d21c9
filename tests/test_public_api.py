from __future__ import annotations


def test_public_api_exports() -> None:
    import trifactor as tf

    assert hasattr(tf, "TriangulationFactor")
    assert hasattr(tf, "PinholeCamera")
    assert hasattr(tf, "Values")
    assert hasattr(tf, "load_factor")
    assert hasattr(tf, "save_factor")
    assert issubclass(tf.InvalidNoiseModelDimension, ValueError)
    assert issubclass(tf.ValuesKeyDoesNotExist, KeyError)
