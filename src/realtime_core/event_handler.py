"""
Event handling system for realtime communication.
Implements a pub/sub registry with persistent and one-shot handlers,
plus an awaitable "wait for next event" primitive.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Handler = Union[Callable[[Any], Any], Callable[[Any], Awaitable[Any]]]
EventName = Union[str, Enum]


class ListenerNotFoundError(LookupError):
    """Raised when removing a handler that was never registered for an event."""


def _event_key(event_name: EventName) -> str:
    if isinstance(event_name, Enum):
        return event_name.value
    return event_name


class RealtimeEventHandler:
    """
    Base class to manage event listeners and dispatch events
    in a realtime asynchronous environment.

    Persistent handlers (``on``) fire on every dispatch of their event until
    removed. One-shot handlers (``on_next``) fire on the next dispatch only;
    the whole one-shot list for an event is dropped at the end of every
    dispatch of that event.
    """

    def __init__(self) -> None:
        self.event_handlers: Dict[str, List[Handler]] = defaultdict(list)
        self.next_event_handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event_name: EventName, handler: Handler) -> Handler:
        """
        Register a handler function for a specific event.

        Args:
            event_name (str): Name of the event to listen for.
            handler (Callable): Function or coroutine to be called when the event fires.

        Returns:
            Callable: The handler, for later removal with ``off``.
        """
        if not callable(handler):
            logger.error(f"Tried to register non-callable handler for event '{event_name}'.")
            raise TypeError("Handler must be callable.")
        self.event_handlers[_event_key(event_name)].append(handler)
        logger.debug(f"Handler registered for event '{_event_key(event_name)}'.")
        return handler

    def on_next(self, event_name: EventName, handler: Handler) -> Handler:
        """
        Register a handler that fires only on the next occurrence of an event.

        Args:
            event_name (str): Name of the event to listen for.
            handler (Callable): Function or coroutine to be called once.

        Returns:
            Callable: The handler, for later removal with ``off_next``.
        """
        if not callable(handler):
            logger.error(f"Tried to register non-callable next handler for event '{event_name}'.")
            raise TypeError("Handler must be callable.")
        self.next_event_handlers[_event_key(event_name)].append(handler)
        logger.debug(f"Next handler registered for event '{_event_key(event_name)}'.")
        return handler

    def off(self, event_name: EventName, handler: Optional[Handler] = None) -> bool:
        """
        Remove a persistent handler, or every persistent handler for the event.

        Raises:
            ListenerNotFoundError: If ``handler`` is not registered for ``event_name``.
        """
        key = _event_key(event_name)
        if handler is None:
            self.event_handlers.pop(key, None)
            return True
        self._remove(self.event_handlers, key, handler, "event listener")
        return True

    def off_next(self, event_name: EventName, handler: Optional[Handler] = None) -> bool:
        """
        Remove a one-shot handler, or every one-shot handler for the event.

        Raises:
            ListenerNotFoundError: If ``handler`` is not registered for ``event_name``.
        """
        key = _event_key(event_name)
        if handler is None:
            self.next_event_handlers.pop(key, None)
            return True
        self._remove(self.next_event_handlers, key, handler, "next event listener")
        return True

    @staticmethod
    def _remove(table: Dict[str, List[Handler]], key: str, handler: Handler, kind: str) -> None:
        handlers = table.get(key, [])
        # Identity, not equality: two equal callables are distinct listeners.
        for index, registered in enumerate(handlers):
            if registered is handler:
                del handlers[index]
                return
        raise ListenerNotFoundError(
            f'Could not turn off specified {kind} for "{key}": not found as a listener'
        )

    def dispatch(self, event_name: EventName, event: Any) -> bool:
        """
        Trigger all handlers associated with a specific event.

        Persistent handlers run first, then one-shot handlers, each in
        registration order. Both lists are snapshotted on entry, so handlers
        registered while dispatching are not called by this dispatch. One-shot
        handlers are detached before they run, so a nested dispatch of the
        same event never fires them twice.

        Args:
            event_name (str): Name of the event to dispatch.
            event (Any): Data associated with the event.
        """
        key = _event_key(event_name)
        handlers = list(self.event_handlers.get(key, []))
        next_snapshot = list(self.next_event_handlers.get(key, []))
        for handler in handlers:
            self._invoke(key, handler, event)

        # A nested dispatch of the same name may already have consumed some of them.
        pending = self.next_event_handlers.pop(key, [])
        next_handlers = [h for h in next_snapshot if any(h is p for p in pending)]
        for handler in next_handlers:
            self._invoke(key, handler, event)
        # Also drops one-shot handlers registered by the handlers above.
        self.next_event_handlers.pop(key, None)
        return True

    def _invoke(self, event_name: str, handler: Handler, event: Any) -> None:
        try:
            if inspect.iscoroutinefunction(handler):
                asyncio.get_running_loop().create_task(handler(event))
            else:
                handler(event)
            logger.debug(f"Dispatched event '{event_name}' to handler '{getattr(handler, '__name__', handler)}'.")
        except Exception as e:
            logger.error(f"Error dispatching event '{event_name}' to handler: {e}", exc_info=True)

    def clear_event_handlers(self) -> bool:
        """
        Remove all registered event handlers, persistent and one-shot.
        """
        self.event_handlers.clear()
        self.next_event_handlers.clear()
        logger.info("All event handlers cleared.")
        return True

    async def wait_for_next(self, event_name: EventName, timeout_ms: Optional[float] = None) -> Any:
        """
        Wait for the next occurrence of a specific event asynchronously.

        Args:
            event_name (str): Event to wait for.
            timeout_ms (float, optional): Give up after this many milliseconds.
                None or 0 waits indefinitely.

        Returns:
            Any: Data of the received event, or None if the timeout elapsed first.
        """
        key = _event_key(event_name)
        future = asyncio.get_running_loop().create_future()

        def _handler(event: Any):
            if not future.done():
                future.set_result(event)

        self.on_next(key, _handler)
        logger.debug(f"Waiting for next event '{key}'.")

        if not timeout_ms:
            return await future

        try:
            return await asyncio.wait_for(future, timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.debug(f"Timed out after {timeout_ms}ms waiting for event '{key}'.")
            if any(h is _handler for h in self.next_event_handlers.get(key, [])):
                self.off_next(key, _handler)
            return None
