"""Lenient coercion of model-supplied tool arguments.

The model may send numbers as strings, booleans as "true", or omit fields
entirely. Each helper falls back to a default rather than raising.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any, Mapping, Optional

from store_assistant.log import get_logger

logger = get_logger(__name__)

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def parse_arguments(raw: str | Mapping[str, Any] | None) -> dict[str, Any]:
    """Decode a JSON argument object; malformed or non-object input yields ``{}``."""
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("tool_arguments_malformed", preview=raw[:100])
        return {}
    return value if isinstance(value, dict) else {}


def get_str(args: Mapping[str, Any], key: str) -> Optional[str]:
    value = args.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def get_nullable_int(args: Mapping[str, Any], key: str) -> Optional[int]:
    value = args.get(key)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    try:
        return int(str(value).strip())
    except ValueError:
        pass
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return int(number) if math.isfinite(number) else None


def get_int(args: Mapping[str, Any], key: str, default: int) -> int:
    value = get_nullable_int(args, key)
    return default if value is None else value


def get_nullable_float(args: Mapping[str, Any], key: str) -> Optional[float]:
    value = args.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value) if isinstance(value, (int, float)) else float(str(value).strip())
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def get_nullable_bool(args: Mapping[str, Any], key: str) -> Optional[bool]:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return None


def get_date(args: Mapping[str, Any], key: str) -> Optional[datetime]:
    """Parse an ISO date or datetime string; anything else yields None."""
    text = get_str(args, key)
    if text is None:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def clamp_page(args: Mapping[str, Any]) -> int:
    return max(get_int(args, "page", 1), 1)


def clamp_limit(args: Mapping[str, Any], default: int, maximum: int, key: str = "limit") -> int:
    return min(max(get_int(args, key, default), 1), maximum)
