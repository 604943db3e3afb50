"""
Envelope codec: wire format <-> EventEnvelope.

The wire format is a JSON object stored as the value of a single field in
the broker message (``data``, or ``payload`` for older producers). Keys may
be camelCase or snake_case; decode canonicalises them once, here, so nothing
downstream has to care which language produced the event.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import ValidationError

from eventrelay.envelope import EventEnvelope
from eventrelay.exceptions import MalformedEnvelopeError
from eventrelay.serialization import json_dumps, json_loads

logger = logging.getLogger(__name__)

Dialect = Literal["camel", "snake"]

# Broker field names that may hold the encoded envelope, in priority order.
ENVELOPE_FIELDS: tuple[str, ...] = ("data", "payload")

_REQUIRED = ("event_id", "event_type")


def _has_value(name: str, value: Any) -> bool:
    if value is None:
        return False
    return not (name in _REQUIRED and value == "")


def _field_keys() -> dict[str, str]:
    """Map snake_case field name -> camelCase alias."""
    return {
        name: field.alias or name for name, field in EventEnvelope.model_fields.items()
    }


class EnvelopeCodec:
    """
    Serialize and deserialize event envelopes.

    Example:
        >>> codec = EnvelopeCodec()
        >>> raw = codec.encode(envelope)
        >>> codec.decode(raw) == envelope
        True
    """

    def __init__(self, default_dialect: Dialect = "camel") -> None:
        self._default_dialect = default_dialect
        self._keys = _field_keys()
        self._known = set(self._keys) | set(self._keys.values())

    def encode(self, envelope: EventEnvelope, *, dialect: Dialect | None = None) -> str:
        """
        Encode an envelope to JSON text.

        Optional fields that are unset (None) are omitted.

        Args:
            envelope: Envelope to encode
            dialect: "camel" (default) or "snake" key naming

        Returns:
            JSON document as a string

        Raises:
            TypeError: If the payload holds a value JSON cannot represent
        """
        by_alias = (dialect or self._default_dialect) == "camel"
        dumped = envelope.model_dump(by_alias=by_alias)
        return json_dumps({key: value for key, value in dumped.items() if value is not None})

    def decode(self, raw: str | bytes) -> EventEnvelope:
        """
        Decode JSON text in either dialect into an envelope.

        Raises:
            MalformedEnvelopeError: If the text is not a JSON object, lacks an
                event id or event type, or has fields of the wrong type
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedEnvelopeError(f"payload is not UTF-8: {e}") from e

        try:
            document = json_loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedEnvelopeError(f"payload is not JSON: {e.msg}") from e

        if not isinstance(document, dict):
            raise MalformedEnvelopeError(
                f"expected a JSON object, got {type(document).__name__}"
            )

        return self.from_dict(document)

    def from_dict(self, document: Mapping[str, Any]) -> EventEnvelope:
        """
        Build an envelope from an already-parsed mapping in either dialect.

        When both spellings of a field carry a value the camelCase one wins;
        a null (or, for the event id and type, empty) camelCase value falls
        back to the snake_case one. Unknown keys are folded into ``metadata`` when the envelope carries
        a metadata object (existing metadata keys are never overwritten) and
        ignored otherwise.
        """
        normalized: dict[str, Any] = {}
        for name, alias in self._keys.items():
            candidates = [document[key] for key in (alias, name) if key in document]
            if not candidates:
                continue
            present = [value for value in candidates if _has_value(name, value)]
            normalized[name] = present[0] if present else candidates[0]

        for name in _REQUIRED:
            value = normalized.get(name)
            if value is None or value == "":
                raise MalformedEnvelopeError(
                    f"missing {self._keys[name]}/{name}"
                )

        extras = {key: value for key, value in document.items() if key not in self._known}
        metadata = normalized.get("metadata")
        if extras and isinstance(metadata, dict):
            normalized["metadata"] = {**extras, **metadata}
        elif extras:
            logger.debug(
                "Ignoring unknown envelope fields",
                extra={"fields": sorted(extras), "event_type": normalized.get("event_type")},
            )

        try:
            return EventEnvelope.model_validate(normalized)
        except ValidationError as e:
            raise MalformedEnvelopeError(str(e)) from e

    def decode_fields(self, fields: Mapping[str, Any]) -> EventEnvelope:
        """
        Decode the envelope embedded in a broker message field-set.

        Looks at ``data`` first, then ``payload``.

        Raises:
            MalformedEnvelopeError: If neither field holds a value, or the
                value cannot be decoded
        """
        for field_name in ENVELOPE_FIELDS:
            raw = fields.get(field_name)
            if raw:
                return self.decode(raw)
        raise MalformedEnvelopeError(
            f"message has no {' or '.join(ENVELOPE_FIELDS)} field"
        )


__all__ = [
    "Dialect",
    "ENVELOPE_FIELDS",
    "EnvelopeCodec",
]
