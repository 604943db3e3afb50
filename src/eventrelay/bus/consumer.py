"""
Event stream consumer built on Redis consumer groups.

The consumer subscribes handlers to event types, creates the consumer group
on each stream it needs, and runs a background poll loop that reads new
entries with XREADGROUP and dispatches them sequentially. An entry is
acknowledged only after its handler succeeded, or when it can never succeed
(malformed, or no handler for its type). Failed entries stay pending and are
picked up again by the reclaim pass, which dead-letters entries that keep
failing.

Example:
    >>> from eventrelay import RedisStreamsConsumer, RedisStreamsConfig
    >>>
    >>> consumer = RedisStreamsConsumer(RedisStreamsConfig(service_name="billing"))
    >>> await consumer.subscribe("order.created", handle_order_created)
    >>> ...
    >>> await consumer.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from opentelemetry.trace import Span
from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from eventrelay.bus.connection import create_redis_client
from eventrelay.codec import EnvelopeCodec
from eventrelay.config import RedisStreamsConfig
from eventrelay.exceptions import (
    ConsumerStoppedError,
    GroupCreationFailedError,
    HandlerFailedError,
    MalformedEnvelopeError,
)
from eventrelay.handlers import EventHandler, EventHandlerFunc, HandlerAdapter
from eventrelay.observability import Tracer, create_tracer
from eventrelay.observability.attributes import (
    ATTR_EVENT_ID,
    ATTR_EVENT_SOURCE,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_NAME,
    ATTR_HANDLER_SUCCESS,
    ATTR_MESSAGING_CONSUMER_GROUP,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_MESSAGE_ID,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    MESSAGING_SYSTEM,
)
from eventrelay.observability.tracer import SpanKindEnum

logger = logging.getLogger(__name__)


class ConsumerState(Enum):
    """
    Lifecycle of a consumer.

    IDLE -> SUBSCRIBED -> RUNNING -> STOPPED. STOPPED is terminal.
    """

    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ConsumerStats:
    """
    Statistics for consume operations.

    Attributes:
        events_consumed: Entries handed to process_message
        events_processed_success: Entries whose handler succeeded
        events_processed_failed: Entries whose handler raised (left pending)
        malformed_dropped: Undecodable entries acknowledged and dropped
        unhandled_acknowledged: Entries with no handler for their event type
        messages_reclaimed: Pending entries claimed by the reclaim pass
        messages_dead_lettered: Entries moved to a dead-letter stream
        reconnections: Transport errors survived by the poll loop
    """

    events_consumed: int = 0
    events_processed_success: int = 0
    events_processed_failed: int = 0
    malformed_dropped: int = 0
    unhandled_acknowledged: int = 0
    messages_reclaimed: int = 0
    messages_dead_lettered: int = 0
    reconnections: int = 0


def _iter_entries(response: Any) -> Iterator[tuple[str, str, dict[str, str] | None]]:
    """
    Flatten an XREADGROUP reply into entries.

    RESP2 replies are ``[[stream, entries], ...]``; RESP3 replies are
    ``{stream: [entries]}``, with one extra level of nesting.
    """
    if not response:
        return
    if isinstance(response, dict):
        items = [(stream, value[0] if value else []) for stream, value in response.items()]
    else:
        items = response
    for stream, entries in items:
        for message_id, fields in entries:
            yield stream, message_id, fields


class RedisStreamsConsumer:
    """
    Consumes events from the streams of the event types it subscribes to.

    All instances configured with the same consumer group share the work:
    each entry is delivered to exactly one member of the group. Entries are
    processed one at a time, in stream order, on a single asyncio task.

    Attributes:
        config: Configuration in use
        state: Current lifecycle state
        stats: Consumption counters
    """

    def __init__(
        self,
        config: RedisStreamsConfig | None = None,
        *,
        tracer: Tracer | None = None,
        redis: Redis | None = None,
        codec: EnvelopeCodec | None = None,
    ) -> None:
        """
        Initialize the consumer.

        Args:
            config: Connection, naming and tuning configuration
            tracer: Tracer capability. If not provided, one is created based
                on config.enable_tracing.
            redis: Pre-built Redis client; created from config.redis_url on
                first use when None. The consumer closes it on stop().
            codec: Envelope codec (default: camelCase JSON)
        """
        self._config = config or RedisStreamsConfig()
        self._topology = self._config.topology
        self._codec = codec or EnvelopeCodec()
        self._redis = redis
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)

        self._handlers: dict[str, HandlerAdapter] = {}
        self._streams: set[str] = set()
        self._state = ConsumerState.IDLE
        self._stats = ConsumerStats()
        self._task: asyncio.Task[None] | None = None
        self._shutdown_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._next_reclaim_at = 0.0

    @property
    def config(self) -> RedisStreamsConfig:
        return self._config

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def stats(self) -> ConsumerStats:
        return self._stats

    @property
    def group(self) -> str:
        return self._config.group

    @property
    def consumer_name(self) -> str:
        return self._config.consumer_name or self._config.service_name

    @property
    def streams(self) -> frozenset[str]:
        """Streams this consumer reads from."""
        return frozenset(self._streams)

    @property
    def is_running(self) -> bool:
        return self._state is ConsumerState.RUNNING

    def get_handler(self, event_type: str) -> HandlerAdapter | None:
        return self._handlers.get(event_type)

    def _client(self) -> Redis:
        if self._state is ConsumerState.STOPPED:
            raise ConsumerStoppedError("Consumer has been stopped")
        if self._redis is None:
            self._redis = create_redis_client(self._config)
        return self._redis

    async def _ensure_group(self, stream: str) -> None:
        """
        Ensure the consumer group exists on a stream, creating both if necessary.

        Raises:
            GroupCreationFailedError: For any error other than the group already existing
        """
        redis = self._client()
        try:
            await redis.xgroup_create(
                name=stream,
                groupname=self.group,
                id="0",
                mkstream=True,
            )
            logger.info(
                f"Created consumer group '{self.group}' on stream '{stream}'",
                extra={"stream": stream, "group": self.group},
            )
        except ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug(f"Consumer group '{self.group}' already exists on '{stream}'")
                return
            logger.error(
                f"Failed to create consumer group: {e}",
                extra={"stream": stream, "group": self.group},
            )
            raise GroupCreationFailedError(stream, self.group, str(e)) from e
        except RedisError as e:
            logger.error(
                f"Failed to create consumer group: {e}",
                extra={"stream": stream, "group": self.group},
            )
            raise GroupCreationFailedError(stream, self.group, str(e)) from e

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler | EventHandlerFunc,
        *,
        start: bool = True,
    ) -> None:
        """
        Subscribe a handler to an event type.

        Subscribing again to the same event type replaces its handler. The
        group is created on the event type's stream before the handler is
        registered, so a failed subscription leaves nothing behind.

        Args:
            event_type: Dot-namespaced event type, e.g. "order.created"
            handler: Async or sync callable, or object with handle()
            start: Launch the poll loop if it is not running yet

        Raises:
            InvalidEventTypeError: If event_type has no domain segment
            GroupCreationFailedError: If the consumer group cannot be created
            ConsumerStoppedError: If the consumer has been stopped
        """
        if self._state is ConsumerState.STOPPED or self._stop_event.is_set():
            raise ConsumerStoppedError(f"Cannot subscribe to {event_type}: consumer stopped")

        route = self._topology.resolve(event_type)
        adapter = HandlerAdapter(handler)
        await self._ensure_group(route.stream)

        if event_type in self._handlers:
            logger.info(
                f"Replacing handler for {event_type} with {adapter.name}",
                extra={"event_type": event_type, "stream": route.stream},
            )
        self._handlers[event_type] = adapter
        self._streams.add(route.stream)

        logger.info(
            f"Subscribed {adapter.name} to {event_type}",
            extra={
                "event_type": event_type,
                "stream": route.stream,
                "group": route.group,
                "consumer_name": self.consumer_name,
            },
        )

        if self._state is ConsumerState.IDLE:
            self._state = ConsumerState.SUBSCRIBED
        if start:
            await self.start()

    async def start(self) -> None:
        """
        Launch the background poll loop. No-op when already running.

        Raises:
            ConsumerStoppedError: If the consumer has been stopped
            RuntimeError: If nothing has been subscribed yet
        """
        if self._state is ConsumerState.STOPPED or self._stop_event.is_set():
            raise ConsumerStoppedError("Cannot start a stopped consumer")
        if self._state is ConsumerState.RUNNING:
            return
        if not self._streams:
            raise RuntimeError("Subscribe to at least one event type before starting")

        self._state = ConsumerState.RUNNING
        self._next_reclaim_at = time.monotonic()
        self._task = asyncio.create_task(self._run(), name=f"eventrelay-{self.consumer_name}")

    async def __aenter__(self) -> RedisStreamsConsumer:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _read(self) -> Any:
        """
        Read new entries for this consumer, or nothing if stop is requested first.

        The blocking XREADGROUP is raced against the stop signal. When stop
        wins the read is cancelled; anything the broker already delivered to
        it stays pending and is recovered by the reclaim pass.
        """
        read = asyncio.ensure_future(
            self._client().xreadgroup(
                groupname=self.group,
                consumername=self.consumer_name,
                streams={stream: ">" for stream in sorted(self._streams)},
                count=self._config.batch_size,
                block=self._config.block_ms,
            )
        )
        stopped = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait({read, stopped}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            read.cancel()
            raise
        finally:
            stopped.cancel()

        if read not in done:
            read.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await read
            return None
        return read.result()

    async def poll_once(self) -> int:
        """
        Run one iteration of the poll loop.

        Runs a reclaim pass when one is due, then reads and processes up to
        ``batch_size`` new entries.

        Returns:
            Number of entries processed

        Raises:
            RedisError: On transport errors
            ConsumerStoppedError: If the consumer has been stopped
        """
        if not self._streams:
            return 0

        if self._config.reclaim_enabled and time.monotonic() >= self._next_reclaim_at:
            self._next_reclaim_at = time.monotonic() + float(
                self._config.reclaim_interval_seconds or 0
            )
            await self.recover_pending()

        handled = 0
        for stream, message_id, fields in _iter_entries(await self._read()):
            await self.process_message(stream, message_id, fields or {})
            handled += 1
        return handled

    async def _backoff(self) -> None:
        """Sleep for the retry backoff, returning early on stop."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(
                self._stop_event.wait(),
                timeout=self._config.retry_backoff_seconds,
            )

    async def _recreate_groups(self) -> None:
        for stream in sorted(self._streams):
            try:
                await self._ensure_group(stream)
            except GroupCreationFailedError:
                # Logged by _ensure_group; the next failed read retries.
                continue

    async def _run(self) -> None:
        logger.info(
            f"Starting Redis Streams consumer: {self.consumer_name}",
            extra={
                "consumer_name": self.consumer_name,
                "group": self.group,
                "streams": sorted(self._streams),
            },
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.poll_once()
                except ConsumerStoppedError:
                    break
                except RedisError as e:
                    self._stats.reconnections += 1
                    logger.error(
                        f"Redis error in consumer loop: {e}",
                        exc_info=True,
                        extra={"consumer_name": self.consumer_name, "group": self.group},
                    )
                    await self._backoff()
                    if (
                        isinstance(e, ResponseError)
                        and "NOGROUP" in str(e)
                        and not self._stop_event.is_set()
                    ):
                        await self._recreate_groups()
                except Exception as e:
                    logger.error(f"Error in consumer loop: {e}", exc_info=True)
                    await self._backoff()

            logger.info("Consumer loop stopped", extra={"consumer_name": self.consumer_name})
        finally:
            # Also reached when a handler on this task called stop().
            if self._stop_event.is_set():
                await self._close()

    async def _ack(self, stream: str, message_id: str) -> None:
        await self._client().xack(stream, self.group, message_id)

    async def process_message(
        self,
        stream: str,
        message_id: str,
        fields: dict[str, str],
    ) -> bool:
        """
        Decode, dispatch and acknowledge one stream entry.

        Args:
            stream: Stream the entry was read from
            message_id: Stream entry id
            fields: Entry field-set holding the encoded envelope

        Returns:
            True if the entry was acknowledged, False if the handler failed
            and the entry was left pending for redelivery
        """
        self._stats.events_consumed += 1

        try:
            envelope = self._codec.decode_fields(fields)
        except MalformedEnvelopeError as e:
            logger.warning(
                f"Dropping malformed message {message_id}: {e.reason}",
                extra={"stream": stream, "message_id": message_id},
            )
            self._stats.malformed_dropped += 1
            await self._ack(stream, message_id)
            return True

        handler = self._handlers.get(envelope.event_type)
        if handler is None:
            logger.debug(
                f"No handler for {envelope.event_type}, acknowledging",
                extra={
                    "event_type": envelope.event_type,
                    "event_id": envelope.event_id,
                    "stream": stream,
                    "message_id": message_id,
                },
            )
            self._stats.unhandled_acknowledged += 1
            await self._ack(stream, message_id)
            return True

        parent = self._tracer.extract(envelope.trace_context or {})

        async def dispatch(span: Span | None) -> None:
            await handler.handle(envelope)
            if span:
                span.set_attribute(ATTR_HANDLER_SUCCESS, True)

        attributes: dict[str, Any] = {
            ATTR_MESSAGING_SYSTEM: MESSAGING_SYSTEM,
            ATTR_MESSAGING_OPERATION: "receive",
            ATTR_MESSAGING_DESTINATION: stream,
            ATTR_MESSAGING_MESSAGE_ID: message_id,
            ATTR_MESSAGING_CONSUMER_GROUP: self.group,
            ATTR_EVENT_TYPE: envelope.event_type,
            ATTR_EVENT_ID: envelope.event_id,
            ATTR_HANDLER_NAME: handler.name,
        }
        if envelope.source:
            attributes[ATTR_EVENT_SOURCE] = envelope.source

        try:
            await self._tracer.with_span(
                f"consume {envelope.event_type}",
                dispatch,
                kind=SpanKindEnum.CONSUMER,
                parent_context=parent,
                attributes=attributes,
            )
        except Exception as e:
            error = HandlerFailedError(envelope.event_type, envelope.event_id, handler.name, str(e))
            self._stats.events_processed_failed += 1
            logger.error(
                str(error),
                exc_info=e,
                extra={
                    "event_type": envelope.event_type,
                    "event_id": envelope.event_id,
                    "stream": stream,
                    "message_id": message_id,
                    "group": self.group,
                },
            )
            return False

        await self._ack(stream, message_id)
        self._stats.events_processed_success += 1
        logger.debug(
            f"Processed {envelope.event_type} event {envelope.event_id}",
            extra={
                "event_type": envelope.event_type,
                "event_id": envelope.event_id,
                "stream": stream,
                "message_id": message_id,
            },
        )
        return True

    async def _dead_letter(
        self,
        stream: str,
        message_id: str,
        fields: dict[str, str],
        delivery_count: int,
    ) -> None:
        if self._config.enable_dead_letter:
            dead_letter_stream = self._config.dead_letter_stream(stream)
            await self._client().xadd(
                name=dead_letter_stream,
                fields={
                    **fields,
                    "original_message_id": message_id,
                    "delivery_count": str(delivery_count),
                    "dead_lettered_at": datetime.now(UTC).isoformat(),
                },
            )
            logger.warning(
                f"Message {message_id} dead-lettered after {delivery_count} deliveries",
                extra={
                    "stream": stream,
                    "message_id": message_id,
                    "dead_letter_stream": dead_letter_stream,
                },
            )
        else:
            logger.warning(
                f"Message {message_id} dropped after {delivery_count} deliveries",
                extra={"stream": stream, "message_id": message_id},
            )
        await self._ack(stream, message_id)
        self._stats.messages_dead_lettered += 1

    async def recover_pending(
        self,
        min_idle_ms: int | None = None,
        count: int | None = None,
    ) -> dict[str, int]:
        """
        Reclaim entries that were delivered but never acknowledged.

        Uses XPENDING to find entries idle for at least ``min_idle_ms`` on
        every subscribed stream. Entries delivered ``max_deliveries`` times
        or more go to the dead-letter stream; the rest are claimed with
        XCLAIM (honouring the idle time, so two instances never claim the
        same entry) and processed again.

        Args:
            min_idle_ms: Minimum idle time before claiming (default: from config)
            count: Maximum entries inspected per stream (default: batch_size)

        Returns:
            Dictionary with recovery statistics:
            - checked: Idle pending entries inspected
            - claimed: Entries claimed by this consumer
            - reprocessed: Claimed entries processed and acknowledged
            - dead_lettered: Entries moved to the dead-letter stream
            - failed: Entries that failed again, plus per-stream errors
        """
        min_idle = self._config.pending_idle_ms if min_idle_ms is None else min_idle_ms
        count = count or self._config.batch_size
        redis = self._client()

        stats = {
            "checked": 0,
            "claimed": 0,
            "reprocessed": 0,
            "dead_lettered": 0,
            "failed": 0,
        }

        for stream in sorted(self._streams):
            try:
                pending = await redis.xpending_range(
                    name=stream,
                    groupname=self.group,
                    min="-",
                    max="+",
                    count=count,
                )
                for entry in pending:
                    message_id = entry["message_id"]
                    times_delivered = int(entry["times_delivered"])
                    if int(entry["time_since_delivered"]) < min_idle:
                        continue
                    stats["checked"] += 1

                    claimed = await redis.xclaim(
                        name=stream,
                        groupname=self.group,
                        consumername=self.consumer_name,
                        min_idle_time=min_idle,
                        message_ids=[message_id],
                    )
                    if not claimed:
                        # Claimed by another instance, or acknowledged meanwhile.
                        continue

                    _, fields = claimed[0]
                    if fields is None:
                        # Trimmed from the stream while pending.
                        await self._ack(stream, message_id)
                        continue

                    stats["claimed"] += 1
                    self._stats.messages_reclaimed += 1

                    if times_delivered >= self._config.max_deliveries:
                        await self._dead_letter(stream, message_id, fields, times_delivered)
                        stats["dead_lettered"] += 1
                    elif await self.process_message(stream, message_id, fields):
                        stats["reprocessed"] += 1
                    else:
                        stats["failed"] += 1

            except RedisError as e:
                stats["failed"] += 1
                logger.error(
                    f"Pending message recovery failed on {stream}: {e}",
                    exc_info=True,
                    extra={"stream": stream, "group": self.group},
                )

        if stats["checked"]:
            logger.info(
                f"Pending message recovery completed: {stats['reprocessed']} reprocessed, "
                f"{stats['dead_lettered']} dead-lettered, {stats['failed']} failed",
                extra=stats,
            )
        return stats

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop consuming and close the Redis connection.

        Signals the poll loop and waits for the message being processed to
        finish. When ``timeout`` elapses first the loop task is cancelled.
        Concurrent callers all wait for the same shutdown. Idempotent; a
        stopped consumer cannot be restarted.

        Called from a handler, stop() only signals the loop: the current
        message is still acknowledged, then the loop closes the connection
        on its way out.

        Args:
            timeout: Seconds to wait for the loop (None: wait indefinitely)
        """
        if self._state is ConsumerState.STOPPED:
            return

        if not self._stop_event.is_set():
            logger.info(
                "Stopping Redis Streams consumer", extra={"consumer_name": self.consumer_name}
            )
            self._stop_event.set()

        if self._task is not None and self._task is asyncio.current_task():
            return

        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._shutdown(timeout))
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self, timeout: float | None) -> None:
        task = self._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Consumer loop did not stop within {timeout}s, cancelling",
                    extra={"consumer_name": self.consumer_name},
                )
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        await self._close()

    async def _close(self) -> None:
        if self._state is ConsumerState.STOPPED:
            return
        self._state = ConsumerState.STOPPED
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        logger.info("Redis Streams consumer stopped", extra={"consumer_name": self.consumer_name})


__all__ = [
    "ConsumerState",
    "ConsumerStats",
    "RedisStreamsConsumer",
]
