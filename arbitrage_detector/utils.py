"""
Common utilities and helper functions for the arbitrage detector.

This module provides centralized helper functions for duration formatting,
JSON decoding, decimal coercion and nested configuration updates.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Union

from .exceptions import InvalidInput


# Timestamp utilities
def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


# JSON utilities
def safe_json_load(json_str: Union[str, bytes]) -> Any:
    """
    Safely load JSON string with error handling.

    Args:
        json_str: JSON string to parse

    Returns:
        Parsed data or None if parsing fails
    """
    try:
        return json.loads(json_str)
    except (ValueError, TypeError) as e:
        logging.getLogger(__name__).warning(f"Failed to parse JSON: {e}")
        return None


# Math utilities
def to_decimal(value: Any, field: str = "value") -> Decimal:
    """
    Coerce a number or numeric string to Decimal without float artifacts.

    Raises:
        InvalidInput: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidInput(f"{field} must be numeric, got bool", field=field, value=value)
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as e:
            raise InvalidInput(
                f"{field} is not a number: {value!r}", field=field, value=value
            ) from e
    if not result.is_finite():
        raise InvalidInput(f"{field} must be finite: {value!r}", field=field, value=value)
    return result


# Dictionary utilities
def set_nested_value(data: Dict[str, Any], key_path: str, value: Any) -> None:
    """
    Set nested dictionary value using dot notation, creating sections as needed.

    Args:
        data: Dictionary to update in place
        key_path: Dot-separated key path (e.g., 'thresholds.min_pnl')
        value: Value to store
    """
    keys = key_path.split(".")
    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value
