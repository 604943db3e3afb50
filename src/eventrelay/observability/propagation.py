"""Trace carrier helpers."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

TRACEPARENT = "traceparent"
TRACESTATE = "tracestate"

# Pre-W3C producers wrote these instead of (or alongside) traceparent.
LEGACY_TRACE_ID = "traceId"
LEGACY_SPAN_ID = "spanId"
LEGACY_PARENT_SPAN_ID = "parentSpanId"

_TRACE_ID = re.compile(r"^[0-9a-f]{32}$")
_SPAN_ID = re.compile(r"^[0-9a-f]{16}$")


def legacy_traceparent(carrier: Mapping[str, str]) -> str | None:
    """
    Build a traceparent header from legacy ``traceId``/``spanId`` fields.

    Returns None when either id is missing, malformed, or all zeros.
    """
    trace_id = carrier.get(LEGACY_TRACE_ID, "").lower()
    span_id = carrier.get(LEGACY_SPAN_ID, "").lower()
    if not _TRACE_ID.match(trace_id) or not _SPAN_ID.match(span_id):
        return None
    if int(trace_id, 16) == 0 or int(span_id, 16) == 0:
        return None
    return f"00-{trace_id}-{span_id}-01"


def normalize_carrier(carrier: Mapping[str, Any] | None) -> dict[str, str]:
    """
    Return a clean string-to-string copy of a trace carrier.

    Non-string keys and values are dropped. When no traceparent is present,
    one is derived from legacy fields if possible; an existing traceparent
    always wins over legacy fields.
    """
    if not carrier or not isinstance(carrier, Mapping):
        return {}

    clean = {
        key: value
        for key, value in carrier.items()
        if isinstance(key, str) and isinstance(value, str)
    }
    if TRACEPARENT not in clean:
        derived = legacy_traceparent(clean)
        if derived:
            clean[TRACEPARENT] = derived
    return clean


__all__ = [
    "TRACEPARENT",
    "TRACESTATE",
    "LEGACY_TRACE_ID",
    "LEGACY_SPAN_ID",
    "LEGACY_PARENT_SPAN_ID",
    "legacy_traceparent",
    "normalize_carrier",
]
