"""
Raw record parsers.
"""

from parsers.record_normalizer import (
    normalize_record,
    normalize_records,
)

__all__ = [
    "normalize_record",
    "normalize_records",
]
