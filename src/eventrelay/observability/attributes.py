"""
Standard span attributes for eventrelay.

Messaging attributes follow OpenTelemetry semantic conventions; event
attributes use the names the rest of the ecosystem already queries on.

Example:
    >>> from eventrelay.observability.attributes import ATTR_EVENT_TYPE
    >>> attributes = {ATTR_EVENT_TYPE: "order.created"}
"""

# =============================================================================
# Messaging Attributes (OTEL semantic)
# =============================================================================

MESSAGING_SYSTEM = "redis_streams"
"""Value used for ATTR_MESSAGING_SYSTEM by every component."""

ATTR_MESSAGING_SYSTEM = "messaging.system"
"""Messaging system identifier (string)."""

ATTR_MESSAGING_DESTINATION = "messaging.destination"
"""Stream the message is written to or read from (string)."""

ATTR_MESSAGING_OPERATION = "messaging.operation"
"""Messaging operation: 'publish' or 'receive'."""

ATTR_MESSAGING_MESSAGE_ID = "messaging.message.id"
"""Broker-assigned stream entry id (string)."""

ATTR_MESSAGING_CONSUMER_GROUP = "messaging.consumer.group"
"""Consumer group reading the message (string)."""

# =============================================================================
# Event Attributes
# =============================================================================

ATTR_EVENT_TYPE = "event.type"
"""Dot-namespaced event type (string)."""

ATTR_EVENT_ID = "event.id"
"""Envelope event id (string)."""

ATTR_EVENT_SOURCE = "event.source"
"""Producing service of the event (string)."""

# =============================================================================
# Handler Attributes
# =============================================================================

ATTR_HANDLER_NAME = "handler.name"
"""Name of the handler class or function."""

ATTR_HANDLER_SUCCESS = "handler.success"
"""Whether the handler completed without raising (boolean)."""

__all__ = [
    "MESSAGING_SYSTEM",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_MESSAGING_MESSAGE_ID",
    "ATTR_MESSAGING_CONSUMER_GROUP",
    "ATTR_EVENT_TYPE",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_SOURCE",
    "ATTR_HANDLER_NAME",
    "ATTR_HANDLER_SUCCESS",
]
