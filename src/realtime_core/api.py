"""
Realtime API event layer.
Serializes outgoing client events onto an injected transport and dispatches
incoming server events, each under its bare name, a namespaced name and a
namespace wildcard.
"""

import json
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from src.realtime_core import settings
from src.realtime_core.event_handler import RealtimeEventHandler
from src.realtime_core.events import (
    CLIENT_WILDCARD,
    SERVER_WILDCARD,
    ClientEventType,
    ServerEventType,
    client_event_name,
    server_event_name,
    validate_client_event,
    validate_server_event,
)
from src.realtime_core.transport import RawMessage, Transport
from src.realtime_core.utils import generate_id
from utils.ml_logging import get_logger

logger = get_logger(__name__)


class RealtimeAPI(RealtimeEventHandler):
    """
    Thin protocol layer between a transport and the event registry.
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        id_generator: Optional[Callable[[], str]] = None,
    ) -> None:
        super().__init__()
        self.transport: Optional[Transport] = None
        self.id_generator: Callable[[], str] = id_generator or (
            lambda: generate_id(settings.REALTIME_EVENT_ID_PREFIX)
        )
        if transport is not None:
            self.connect(transport)

    def is_connected(self) -> bool:
        """
        Check if a transport is bound and open.

        Returns:
            bool: True if connected, False otherwise.
        """
        return self.transport is not None and self.transport.is_open()

    def connect(self, transport: Transport) -> bool:
        """
        Bind a transport; its frames are routed to ``receive``.

        Raises:
            RuntimeError: If a transport is already bound.
        """
        if self.transport is not None:
            raise RuntimeError("Already connected.")
        self.transport = transport
        transport.listen(self.receive, self.handle_close)
        logger.info("Realtime API transport attached.")
        return True

    def disconnect(self) -> bool:
        """
        Close and release the transport.
        """
        transport = self.transport
        if transport is None:
            return False
        self.transport = None
        transport.close()
        logger.info("Disconnected from Realtime API.")
        self.dispatch("close", {"error": False})
        return True

    def handle_close(self, error: bool = False) -> None:
        """
        Called by the transport when the connection is lost.
        """
        if self.transport is None:
            return
        self.transport = None
        if error:
            logger.warning("Realtime API connection lost.")
        self.dispatch("close", {"error": error})

    def send(self, event_name: Union[str, ClientEventType], data: Optional[Dict[str, Any]] = None) -> bool:
        """
        Send a client event and echo it locally.

        Args:
            event_name (str): Type/name of the event.
            data (Optional[Dict[str, Any]]): Payload dictionary.

        Returns:
            bool: False if the transport is missing, closed or refused the frame.

        Raises:
            UnknownClientEventError: If ``event_name`` is not a client event.
            TypeError: If data is not a dictionary.
            pydantic.ValidationError: If the payload does not match the event schema.
        """
        kind = event_name if isinstance(event_name, ClientEventType) else ClientEventType.from_string(event_name)

        data = data or {}
        if not isinstance(data, dict):
            logger.error("Provided data is not a dictionary.")
            raise TypeError("Data must be a dictionary.")

        event = {
            "event_id": data.get("event_id") or self.id_generator(),
            "type": kind.value,
            **{k: v for k, v in data.items() if k != "event_id"},
        }
        validate_client_event(kind, event)

        if not self.is_connected():
            logger.warning(f"Cannot send '{kind.value}': not connected to Realtime API.")
            return False

        if not self.transport.send(json.dumps(event)):
            logger.warning(f"Transport refused event '{kind.value}'.")
            return False

        logger.debug(f"Sent event: {kind.value} ({event['event_id']})")
        self.dispatch(kind.value, event)
        self.dispatch(client_event_name(kind.value), event)
        self.dispatch(CLIENT_WILDCARD, event)
        return True

    def receive(self, message: Union[RawMessage, Dict[str, Any]]) -> bool:
        """
        Dispatch one inbound frame.

        Returns:
            bool: False if the frame was dropped (undecodable or invalid).
        """
        if isinstance(message, dict):
            event = message
        else:
            try:
                event = json.loads(message)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.error(f"Failed to decode incoming message: {e}", exc_info=True)
                return False

        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            logger.error(f"Dropping inbound message without an event type: {event!r}")
            return False

        try:
            validate_server_event(event)
        except ValidationError as e:
            logger.error(f"Dropping malformed '{event['type']}' event: {e}")
            return False

        if event["type"] == ServerEventType.ERROR.value:
            logger.error(f"Realtime API Error: {event.get('error')}", extra={"event_type": event["type"]})
        else:
            logger.debug(f"Received event: {event['type']}")

        self.dispatch(event["type"], event)
        self.dispatch(server_event_name(event["type"]), event)
        self.dispatch(SERVER_WILDCARD, event)
        return True
