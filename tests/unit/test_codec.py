"""Unit tests for EnvelopeCodec."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import pytest

from eventrelay.codec import ENVELOPE_FIELDS, EnvelopeCodec
from eventrelay.envelope import EventEnvelope, create_envelope
from eventrelay.exceptions import MalformedEnvelopeError


@pytest.fixture
def codec() -> EnvelopeCodec:
    return EnvelopeCodec()


class TestEncode:
    def test_camel_case_by_default(self, codec: EnvelopeCodec, sample_envelope: EventEnvelope):
        document = json.loads(codec.encode(sample_envelope))

        assert document["eventId"] == sample_envelope.event_id
        assert document["eventType"] == "order.created"
        assert document["correlationId"] == "corr-1"
        assert document["causationId"] == "cause-1"
        assert document["traceContext"]["traceparent"].startswith("00-")
        assert "event_id" not in document

    def test_snake_case_dialect(self, codec: EnvelopeCodec, sample_envelope: EventEnvelope):
        document = json.loads(codec.encode(sample_envelope, dialect="snake"))

        assert document["event_id"] == sample_envelope.event_id
        assert document["trace_context"] == sample_envelope.trace_context
        assert "eventId" not in document

    def test_snake_case_codec_default(self, sample_envelope: EventEnvelope):
        document = json.loads(EnvelopeCodec(default_dialect="snake").encode(sample_envelope))

        assert "event_type" in document

    def test_omits_unset_optional_fields(self, codec: EnvelopeCodec):
        envelope = EventEnvelope(event_id="e1", event_type="order.created")

        assert json.loads(codec.encode(envelope)) == {"eventId": "e1", "eventType": "order.created"}

    def test_serialises_rich_payload_values(self, codec: EnvelopeCodec):
        order_id = UUID("12345678-1234-5678-1234-567812345678")
        envelope = create_envelope(
            "order.created",
            "orders",
            {
                "orderId": order_id,
                "placedAt": datetime(2024, 5, 1, 9, 30, tzinfo=UTC),
                "total": Decimal("19.99"),
            },
        )

        data = json.loads(codec.encode(envelope))["data"]

        assert data == {
            "orderId": "12345678-1234-5678-1234-567812345678",
            "placedAt": "2024-05-01T09:30:00+00:00",
            "total": "19.99",
        }

    def test_unserialisable_payload_raises_type_error(self, codec: EnvelopeCodec):
        envelope = create_envelope("order.created", "orders", {"handle": object()})

        with pytest.raises(TypeError):
            codec.encode(envelope)


class TestRoundTrip:
    @pytest.mark.parametrize("dialect", ["camel", "snake"])
    def test_decode_inverts_encode(
        self, codec: EnvelopeCodec, sample_envelope: EventEnvelope, dialect: str
    ):
        assert codec.decode(codec.encode(sample_envelope, dialect=dialect)) == sample_envelope

    def test_decode_accepts_bytes(self, codec: EnvelopeCodec, sample_envelope: EventEnvelope):
        raw = codec.encode(sample_envelope).encode("utf-8")

        assert codec.decode(raw) == sample_envelope


class TestDecode:
    def test_snake_case_producer(self, codec: EnvelopeCodec):
        envelope = codec.decode(
            '{"event_id":"e1","event_type":"user.registered","correlation_id":"c1",'
            '"trace_context":{"traceparent":"00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"}}'
        )

        assert envelope.event_id == "e1"
        assert envelope.correlation_id == "c1"
        assert envelope.trace_context is not None

    def test_mixed_dialects(self, codec: EnvelopeCodec):
        envelope = codec.decode('{"eventId":"e1","event_type":"order.created","causationId":"x"}')

        assert envelope.event_type == "order.created"
        assert envelope.causation_id == "x"

    def test_camel_case_wins_when_both_present(self, codec: EnvelopeCodec):
        envelope = codec.decode(
            '{"eventId":"camel","event_id":"snake","eventType":"order.created"}'
        )

        assert envelope.event_id == "camel"

    @pytest.mark.parametrize("camel_value", ["null", '""'])
    def test_empty_camel_id_falls_back_to_snake(self, codec: EnvelopeCodec, camel_value: str):
        envelope = codec.decode(
            f'{{"eventId":{camel_value},"event_id":"abc","eventType":"user.registered"}}'
        )

        assert envelope.event_id == "abc"

    def test_null_camel_type_falls_back_to_snake(self, codec: EnvelopeCodec):
        envelope = codec.decode('{"eventId":"e1","eventType":null,"event_type":"user.registered"}')

        assert envelope.event_type == "user.registered"

    def test_null_camel_optional_field_falls_back_to_snake(self, codec: EnvelopeCodec):
        envelope = codec.decode(
            '{"eventId":"e1","eventType":"order.created",'
            '"correlationId":null,"correlation_id":"c"}'
        )

        assert envelope.correlation_id == "c"

    def test_both_spellings_null_is_malformed(self, codec: EnvelopeCodec):
        with pytest.raises(MalformedEnvelopeError):
            codec.decode('{"eventId":null,"event_id":null,"eventType":"order.created"}')

    def test_only_id_and_type(self, codec: EnvelopeCodec):
        envelope = codec.decode('{"eventId":"e1","eventType":"order.created"}')

        assert envelope.timestamp is None
        assert envelope.source is None
        assert envelope.data is None

    def test_unknown_fields_merged_into_metadata(self, codec: EnvelopeCodec):
        envelope = codec.decode(
            '{"eventId":"e1","eventType":"order.created","metadata":{"tenant":"acme"},'
            '"region":"eu","tenant":"other"}'
        )

        assert envelope.metadata == {"tenant": "acme", "region": "eu"}

    def test_unknown_fields_ignored_without_metadata(self, codec: EnvelopeCodec):
        envelope = codec.decode('{"eventId":"e1","eventType":"order.created","region":"eu"}')

        assert envelope.metadata is None

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '"just a string"',
            "{}",
            '{"eventType":"order.created"}',
            '{"eventId":"e1"}',
            '{"eventId":"","eventType":"order.created"}',
            '{"eventId":"e1","eventType":"order.created","timestamp":"yesterday"}',
            '{"eventId":"e1","eventType":"order.created","metadata":"flat"}',
        ],
    )
    def test_malformed_input(self, codec: EnvelopeCodec, raw: str):
        with pytest.raises(MalformedEnvelopeError):
            codec.decode(raw)

    def test_invalid_utf8(self, codec: EnvelopeCodec):
        with pytest.raises(MalformedEnvelopeError, match="UTF-8"):
            codec.decode(b"\xff\xfe{}")


class TestDecodeFields:
    def test_data_field(self, codec: EnvelopeCodec, sample_envelope: EventEnvelope):
        assert codec.decode_fields({"data": codec.encode(sample_envelope)}) == sample_envelope

    def test_payload_field_fallback(self, codec: EnvelopeCodec, sample_envelope: EventEnvelope):
        assert codec.decode_fields({"payload": codec.encode(sample_envelope)}) == sample_envelope

    def test_data_takes_priority(self, codec: EnvelopeCodec):
        envelope = codec.decode_fields(
            {
                "data": '{"eventId":"from-data","eventType":"order.created"}',
                "payload": '{"eventId":"from-payload","eventType":"order.created"}',
            }
        )

        assert envelope.event_id == "from-data"

    def test_missing_fields(self, codec: EnvelopeCodec):
        assert ENVELOPE_FIELDS == ("data", "payload")
        with pytest.raises(MalformedEnvelopeError, match="data or payload"):
            codec.decode_fields({"other": "x"})
