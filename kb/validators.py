"""
Shared validation helpers for kb services.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from kb.errors import InvalidInput


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise InvalidInput(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_identifier(value: str, field: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} must be a non-empty string", field=field, error_type="required")


def validate_non_negative(value: int, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value < 0:
        raise InvalidInput(f"{field} must be >= 0", field=field, error_type="out_of_range")


def clamp_limit(value: Optional[int], field: str, default: int, max_value: int) -> int:
    """Validate a result limit; None falls back to the default, large values are clamped."""
    if value is None:
        return default
    validate_non_negative(value, field)
    return min(value, max_value)


def validate_confidence(value: float, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{field} must be a number", field=field, error_type="invalid_type")
    value = float(value)
    if math.isnan(value) or value < 0.0 or value > 1.0:
        raise InvalidInput(f"{field} must be between 0.0 and 1.0", field=field, error_type="out_of_range")
    return value


def validate_vector(values: Sequence[float], field: str) -> None:
    if values is None or len(values) == 0:
        raise InvalidInput(f"{field} must be a non-empty sequence", field=field, error_type="required")
    for item in values:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise InvalidInput(f"{field} must contain only numbers", field=field, error_type="invalid_type")
        if not math.isfinite(item):
            raise InvalidInput(f"{field} must contain only finite numbers", field=field, error_type="invalid_value")
