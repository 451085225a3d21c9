from trifactor.api.factor_io import factor_from_dict, factor_to_dict, load_factor, save_factor

__all__ = [
    "factor_from_dict",
    "factor_to_dict",
    "load_factor",
    "save_factor",
]
