"""Result normalization package."""

from .normalizer import is_data_uri, normalize, parse_data_uri
from .result_models import NormalizedResult, ResultAsset

__all__ = ["NormalizedResult", "ResultAsset", "is_data_uri", "normalize", "parse_data_uri"]
