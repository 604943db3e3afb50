"""
Handler adapter for normalizing event handlers.

Handlers may be async or sync callables taking an EventEnvelope, or objects
with an async or sync ``handle(envelope)`` method. The consumer only ever
sees the uniform async interface provided here.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from eventrelay.envelope import EventEnvelope

# Type for a plain function handler, sync or async
EventHandlerFunc = Callable[[EventEnvelope], Awaitable[None] | None]

AsyncHandlerFunc = Callable[[EventEnvelope], Awaitable[None]]


@runtime_checkable
class EventHandler(Protocol):
    """Object-style handler."""

    def handle(self, envelope: EventEnvelope) -> Awaitable[None] | None: ...


def get_handler_name(handler: Any) -> str:
    """
    Get a descriptive name for a handler for logging and span attributes.

    Args:
        handler: Any handler object (class instance, function, lambda)

    Returns:
        String name for the handler
    """
    if inspect.ismethod(handler) or inspect.isfunction(handler):
        return str(handler.__qualname__)
    if hasattr(handler, "handle"):
        return type(handler).__name__
    if hasattr(handler, "__name__"):
        return str(handler.__name__)
    return type(handler).__name__


class HandlerAdapter:
    """
    Adapter that normalizes event handlers to a consistent async interface.

    Example:
        >>> def on_created(envelope: EventEnvelope) -> None:
        ...     print(envelope.data)
        >>> adapter = HandlerAdapter(on_created)
        >>> await adapter.handle(envelope)

    Attributes:
        original: The original unwrapped handler
        name: Descriptive name for logging
    """

    def __init__(self, handler: EventHandler | EventHandlerFunc) -> None:
        """
        Raises:
            TypeError: If handler has no handle() method and isn't callable
        """
        self._original = handler
        self._name = get_handler_name(handler)
        self._async_handler = self._normalize(handler)

    def _normalize(self, handler: Any) -> AsyncHandlerFunc:
        if hasattr(handler, "handle"):
            target = handler.handle
        elif callable(handler):
            target = handler
        else:
            raise TypeError(
                f"Handler must have a handle() method or be callable, got {type(handler)}"
            )

        if inspect.iscoroutinefunction(target):
            return target  # type: ignore[no-any-return]

        async def async_wrapper(envelope: EventEnvelope) -> None:
            result = target(envelope)
            # Sync-looking callables (partials, lambdas) may still return awaitables
            if inspect.isawaitable(result):
                await result

        return async_wrapper

    @property
    def original(self) -> Any:
        """Get the original unwrapped handler."""
        return self._original

    @property
    def name(self) -> str:
        """Get the handler's descriptive name."""
        return self._name

    async def handle(self, envelope: EventEnvelope) -> None:
        await self._async_handler(envelope)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HandlerAdapter):
            return self._original is other._original
        return self._original is other

    def __hash__(self) -> int:
        return id(self._original)

    def __repr__(self) -> str:
        return f"HandlerAdapter({self._name})"


__all__ = [
    "AsyncHandlerFunc",
    "EventHandler",
    "EventHandlerFunc",
    "HandlerAdapter",
    "get_handler_name",
]
