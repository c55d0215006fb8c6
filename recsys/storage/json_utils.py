"""JSON helpers for stored records that never throw exceptions."""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from recsys.logging import get_logger

logger = get_logger(__name__)


def _encode_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def safe_json_dumps(data: Any, default: str = "{}") -> str:
    """Serialize a record to a compact JSON string.

    Datetimes, enums and sets are encoded; anything else unserializable
    yields ``default``.
    """
    if data is None:
        return default

    try:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=_encode_default)
    except (TypeError, ValueError, OverflowError) as e:
        logger.warning(f"Failed to serialize record: {e}")
        return default


def safe_json_loads(text: str | None, default: dict | list | None = None) -> Any:
    """Parse a stored JSON string, returning ``default`` (empty dict) on failure."""
    if default is None:
        default = {}

    if not text:
        return default

    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(f"Failed to parse stored record: {e}")
        return default
