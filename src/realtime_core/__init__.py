"""
Realtime Conversation Core

Provides classes and utilities for:
- Event registration, dispatch and wait-for-next
- Realtime protocol event schemas
- Transport-facing event routing
- Conversation state reconstruction
- Audio buffer encoding/decoding
"""

from .api import RealtimeAPI
from .client import RealtimeClient
from .conversation import ProcessedEvent, RealtimeConversation
from .event_handler import ListenerNotFoundError, RealtimeEventHandler
from .events import (
    ClientEventType,
    ServerEventType,
    UnknownClientEventError,
    validate_client_event,
    validate_server_event,
)
from .items import ContentPart, ConversationItem, FormattedItem
from .transport import Transport, WebSocketTransport
from .utils import (
    array_buffer_to_base64,
    base64_to_array_buffer,
    float_to_16bit_pcm,
    generate_id,
    merge_int16_arrays,
)

__all__ = [
    "RealtimeClient",
    "RealtimeAPI",
    "RealtimeConversation",
    "ProcessedEvent",
    "RealtimeEventHandler",
    "ListenerNotFoundError",
    "ClientEventType",
    "ServerEventType",
    "UnknownClientEventError",
    "validate_client_event",
    "validate_server_event",
    "ConversationItem",
    "ContentPart",
    "FormattedItem",
    "Transport",
    "WebSocketTransport",
    "float_to_16bit_pcm",
    "base64_to_array_buffer",
    "array_buffer_to_base64",
    "generate_id",
    "merge_int16_arrays",
]

__version__ = "0.1.0"
