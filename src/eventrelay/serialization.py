"""
JSON serialization utilities for envelope payloads.

Event payloads are opaque to this package, but producers commonly put
UUIDs, datetimes and decimals in them. This module makes those encodable
without forcing every producer to pre-convert its data.

Example:
    >>> from eventrelay.serialization import json_dumps, json_loads
    >>> from uuid import uuid4
    >>>
    >>> data = {"id": uuid4()}
    >>> json_str = json_dumps(data)
    >>> parsed = json_loads(json_str)
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


class EnvelopeJSONEncoder(json.JSONEncoder):
    """
    JSON encoder that handles UUID, datetime, date and Decimal objects.

    - UUID objects: string representation
    - datetime/date objects: ISO 8601 string
    - Decimal objects: string representation (no float rounding)
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime | date):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """
    Serialize object to a compact JSON string using EnvelopeJSONEncoder.

    Args:
        obj: Object to serialize

    Returns:
        JSON string representation

    Raises:
        TypeError: If the object contains a value that cannot be encoded
    """
    return json.dumps(obj, cls=EnvelopeJSONEncoder, separators=(",", ":"))


def json_loads(s: str | bytes) -> Any:
    """
    Deserialize a JSON document.

    UUID and datetime strings are NOT converted back to their original
    types; payload interpretation belongs to the event's consumer.
    """
    return json.loads(s)


__all__ = [
    "EnvelopeJSONEncoder",
    "json_dumps",
    "json_loads",
]
