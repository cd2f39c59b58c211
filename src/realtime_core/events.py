"""
Realtime Protocol Schemas
=========================

Pydantic schemas for every client-originated and server-originated event of
the realtime conversation protocol.

This module provides:
- ``ClientEventType`` / ``ServerEventType``: the closed sets of event kinds
- one model per event kind, plus the nested session, item, content,
  response, error and rate-limit shapes they carry
- ``validate_client_event`` / ``validate_server_event`` lookups used by the
  transport-facing event layer

Every model tolerates unknown fields so newer servers keep working; a missing
required field raises ``pydantic.ValidationError``. Validation only checks a
payload, it never replaces it: listeners always receive the original dict.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class ClientEventType(str, Enum):
    """Events the client sends toward the server."""

    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_BUFFER_APPEND = "input_audio_buffer.append"
    INPUT_AUDIO_BUFFER_COMMIT = "input_audio_buffer.commit"
    INPUT_AUDIO_BUFFER_CLEAR = "input_audio_buffer.clear"
    CONVERSATION_ITEM_CREATE = "conversation.item.create"
    CONVERSATION_ITEM_TRUNCATE = "conversation.item.truncate"
    CONVERSATION_ITEM_DELETE = "conversation.item.delete"
    RESPONSE_CREATE = "response.create"
    RESPONSE_CANCEL = "response.cancel"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_string(cls, value: str) -> "ClientEventType":
        """Create ClientEventType from string with validation"""
        for kind in cls:
            if kind.value == value:
                return kind
        raise UnknownClientEventError(
            f"Unknown client event: {value}. Valid options: {[k.value for k in cls]}"
        )


class ServerEventType(str, Enum):
    """Events the server sends toward the client."""

    ERROR = "error"
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    CONVERSATION_CREATED = "conversation.created"
    CONVERSATION_ITEM_CREATED = "conversation.item.created"
    CONVERSATION_ITEM_COMPLETED = "conversation.item.completed"
    CONVERSATION_ITEM_APPENDED = "conversation.item.appended"
    CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_COMPLETED = (
        "conversation.item.input_audio_transcription.completed"
    )
    CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_FAILED = (
        "conversation.item.input_audio_transcription.failed"
    )
    CONVERSATION_ITEM_TRUNCATED = "conversation.item.truncated"
    CONVERSATION_ITEM_DELETED = "conversation.item.deleted"
    INPUT_AUDIO_BUFFER_COMMITTED = "input_audio_buffer.committed"
    INPUT_AUDIO_BUFFER_CLEARED = "input_audio_buffer.cleared"
    INPUT_AUDIO_BUFFER_SPEECH_STARTED = "input_audio_buffer.speech_started"
    INPUT_AUDIO_BUFFER_SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    RESPONSE_CREATED = "response.created"
    RESPONSE_DONE = "response.done"
    RESPONSE_OUTPUT_ITEM_ADDED = "response.output_item.added"
    RESPONSE_OUTPUT_ITEM_DONE = "response.output_item.done"
    RESPONSE_CONTENT_PART_ADDED = "response.content_part.added"
    RESPONSE_TEXT_DELTA = "response.text.delta"
    RESPONSE_AUDIO_DELTA = "response.audio.delta"
    RESPONSE_AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    RESPONSE_AUDIO_TRANSCRIPT_DONE = "response.audio_transcript.done"
    RESPONSE_FUNCTION_CALL_ARGUMENTS_DELTA = "response.function_call_arguments.delta"
    RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE = "response.function_call_arguments.done"
    RATE_LIMITS_UPDATED = "rate_limits.updated"

    def __str__(self) -> str:
        return self.value


CLIENT_WILDCARD = "client.*"
SERVER_WILDCARD = "server.*"


def client_event_name(event_type: Union[str, ClientEventType]) -> str:
    """Namespaced name under which an outgoing event is echoed locally."""
    return f"client.{event_type}"


def server_event_name(event_type: Union[str, ServerEventType]) -> str:
    """Namespaced name under which an incoming event is dispatched."""
    return f"server.{event_type}"


class UnknownClientEventError(ValueError):
    """Raised when sending an event kind that is not a known client event."""


class ProtocolModel(BaseModel):
    model_config = ConfigDict(extra="allow")


# ------------------------------------------------------------------------------
# Shared shapes
# ------------------------------------------------------------------------------

AudioFormat = Literal["pcm16", "g711_ulaw", "g711_alaw"]
ItemStatus = Literal["in_progress", "incomplete", "completed"]
Role = Literal["user", "assistant", "system"]


class TurnDetection(ProtocolModel):
    type: str = "server_vad"
    threshold: Optional[float] = None
    prefix_padding_ms: Optional[int] = None
    silence_duration_ms: Optional[int] = None


class InputAudioTranscription(ProtocolModel):
    model: str


class ToolDefinition(ProtocolModel):
    type: Literal["function"] = "function"
    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class SessionConfig(ProtocolModel):
    """Session settings; every field is optional on update."""

    modalities: Optional[List[Literal["text", "audio"]]] = None
    instructions: Optional[str] = None
    voice: Optional[str] = None
    input_audio_format: Optional[AudioFormat] = None
    output_audio_format: Optional[AudioFormat] = None
    input_audio_transcription: Optional[InputAudioTranscription] = None
    turn_detection: Optional[TurnDetection] = None
    tools: Optional[List[ToolDefinition]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    temperature: Optional[float] = None
    max_response_output_tokens: Optional[Union[int, Literal["inf"]]] = None


class TextContent(ProtocolModel):
    type: Literal["text", "input_text"]
    text: str = ""


class AudioContent(ProtocolModel):
    type: Literal["audio", "input_audio"]
    audio: Optional[str] = Field(default=None, repr=False)
    transcript: Optional[str] = None


ContentPart = Annotated[Union[TextContent, AudioContent], Field(discriminator="type")]


class MessageItem(ProtocolModel):
    id: Optional[str] = None
    object: Optional[Literal["realtime.item"]] = None
    type: Literal["message"]
    status: Optional[ItemStatus] = None
    role: Optional[Role] = None
    content: List[ContentPart] = Field(default_factory=list)


class FunctionCallItem(ProtocolModel):
    id: Optional[str] = None
    object: Optional[Literal["realtime.item"]] = None
    type: Literal["function_call"]
    status: Optional[ItemStatus] = None
    name: str
    call_id: str
    arguments: str = ""


class FunctionCallOutputItem(ProtocolModel):
    id: Optional[str] = None
    object: Optional[Literal["realtime.item"]] = None
    type: Literal["function_call_output"]
    status: Optional[ItemStatus] = None
    call_id: str
    output: str


ClientItem = Annotated[Union[MessageItem, FunctionCallOutputItem], Field(discriminator="type")]


class ServerMessageItem(MessageItem):
    id: str


class ServerFunctionCallItem(FunctionCallItem):
    id: str


class ServerFunctionCallOutputItem(FunctionCallOutputItem):
    id: str


ServerItem = Annotated[
    Union[ServerMessageItem, ServerFunctionCallItem, ServerFunctionCallOutputItem],
    Field(discriminator="type"),
]


class ErrorDetail(ProtocolModel):
    type: str
    code: Optional[str] = None
    message: str
    param: Optional[str] = None
    event_id: Optional[str] = None


class RateLimit(ProtocolModel):
    name: str
    limit: int
    remaining: int
    reset_seconds: float


class ResponseResource(ProtocolModel):
    id: str
    object: Optional[Literal["realtime.response"]] = None
    status: str
    status_details: Optional[Any] = None
    output: List[Dict[str, Any]] = Field(default_factory=list)
    usage: Optional[Dict[str, Any]] = None


class ConversationResource(ProtocolModel):
    id: str
    object: Optional[Literal["realtime.conversation"]] = None


# ------------------------------------------------------------------------------
# Client events
# ------------------------------------------------------------------------------


class ClientEvent(ProtocolModel):
    event_id: Optional[str] = None


class SessionUpdate(ClientEvent):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class InputAudioBufferAppend(ClientEvent):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str = Field(repr=False)


class InputAudioBufferCommit(ClientEvent):
    type: Literal["input_audio_buffer.commit"] = "input_audio_buffer.commit"


class InputAudioBufferClear(ClientEvent):
    type: Literal["input_audio_buffer.clear"] = "input_audio_buffer.clear"


class ConversationItemCreate(ClientEvent):
    type: Literal["conversation.item.create"] = "conversation.item.create"
    previous_item_id: Optional[str] = None
    item: ClientItem


class ConversationItemTruncate(ClientEvent):
    type: Literal["conversation.item.truncate"] = "conversation.item.truncate"
    item_id: str
    content_index: int
    audio_end_ms: int


class ConversationItemDelete(ClientEvent):
    type: Literal["conversation.item.delete"] = "conversation.item.delete"
    item_id: str


class ResponseCreate(ClientEvent):
    type: Literal["response.create"] = "response.create"
    response: Optional[SessionConfig] = None


class ResponseCancel(ClientEvent):
    type: Literal["response.cancel"] = "response.cancel"


# ------------------------------------------------------------------------------
# Server events
# ------------------------------------------------------------------------------


class ServerEvent(ProtocolModel):
    event_id: str


class ErrorEvent(ServerEvent):
    type: Literal["error"] = "error"
    error: ErrorDetail


class SessionCreated(ServerEvent):
    type: Literal["session.created"] = "session.created"
    session: SessionConfig


class SessionUpdated(ServerEvent):
    type: Literal["session.updated"] = "session.updated"
    session: SessionConfig


class ConversationCreated(ServerEvent):
    type: Literal["conversation.created"] = "conversation.created"
    conversation: ConversationResource


class ConversationItemCreated(ServerEvent):
    type: Literal["conversation.item.created"] = "conversation.item.created"
    previous_item_id: Optional[str] = None
    item: ServerItem


class ConversationItemCompleted(ServerEvent):
    type: Literal["conversation.item.completed"] = "conversation.item.completed"
    item: ServerItem


class ConversationItemAppended(ServerEvent):
    type: Literal["conversation.item.appended"] = "conversation.item.appended"
    item: ServerItem


class InputAudioTranscriptionCompleted(ServerEvent):
    type: Literal["conversation.item.input_audio_transcription.completed"] = (
        "conversation.item.input_audio_transcription.completed"
    )
    item_id: str
    content_index: int
    transcript: str


class InputAudioTranscriptionFailed(ServerEvent):
    type: Literal["conversation.item.input_audio_transcription.failed"] = (
        "conversation.item.input_audio_transcription.failed"
    )
    item_id: str
    content_index: int
    error: ErrorDetail


class ConversationItemTruncated(ServerEvent):
    type: Literal["conversation.item.truncated"] = "conversation.item.truncated"
    item_id: str
    content_index: int
    audio_end_ms: int


class ConversationItemDeleted(ServerEvent):
    type: Literal["conversation.item.deleted"] = "conversation.item.deleted"
    item_id: str


class InputAudioBufferCommitted(ServerEvent):
    type: Literal["input_audio_buffer.committed"] = "input_audio_buffer.committed"
    previous_item_id: Optional[str] = None
    item_id: str


class InputAudioBufferCleared(ServerEvent):
    type: Literal["input_audio_buffer.cleared"] = "input_audio_buffer.cleared"


class InputAudioBufferSpeechStarted(ServerEvent):
    type: Literal["input_audio_buffer.speech_started"] = "input_audio_buffer.speech_started"
    item_id: str
    audio_start_ms: int


class InputAudioBufferSpeechStopped(ServerEvent):
    type: Literal["input_audio_buffer.speech_stopped"] = "input_audio_buffer.speech_stopped"
    item_id: str
    audio_end_ms: int


class ResponseCreated(ServerEvent):
    type: Literal["response.created"] = "response.created"
    response: ResponseResource


class ResponseDone(ServerEvent):
    type: Literal["response.done"] = "response.done"
    response: ResponseResource


class ResponseOutputItemAdded(ServerEvent):
    type: Literal["response.output_item.added"] = "response.output_item.added"
    response_id: str
    output_index: int
    item: ServerItem


class ResponseOutputItemDone(ServerEvent):
    type: Literal["response.output_item.done"] = "response.output_item.done"
    response_id: str
    output_index: int
    item: ServerItem


class ResponseContentPartAdded(ServerEvent):
    event_id: Optional[str] = None
    type: Literal["response.content_part.added"] = "response.content_part.added"
    response_id: str
    item_id: str
    output_index: int
    content_index: int
    part: ContentPart


class ResponseContentEvent(ServerEvent):
    response_id: str
    item_id: str
    output_index: int
    content_index: int


class ResponseTextDelta(ResponseContentEvent):
    type: Literal["response.text.delta"] = "response.text.delta"
    delta: str


class ResponseAudioDelta(ResponseContentEvent):
    type: Literal["response.audio.delta"] = "response.audio.delta"
    delta: str = Field(repr=False)


class ResponseAudioTranscriptDelta(ResponseContentEvent):
    type: Literal["response.audio_transcript.delta"] = "response.audio_transcript.delta"
    delta: str


class ResponseAudioTranscriptDone(ResponseContentEvent):
    type: Literal["response.audio_transcript.done"] = "response.audio_transcript.done"
    transcript: str


class ResponseFunctionCallArgumentsDelta(ServerEvent):
    type: Literal["response.function_call_arguments.delta"] = "response.function_call_arguments.delta"
    response_id: str
    item_id: str
    output_index: int
    call_id: str
    delta: str


class ResponseFunctionCallArgumentsDone(ServerEvent):
    type: Literal["response.function_call_arguments.done"] = "response.function_call_arguments.done"
    response_id: str
    item_id: str
    output_index: int
    call_id: str
    arguments: str


class RateLimitsUpdated(ServerEvent):
    type: Literal["rate_limits.updated"] = "rate_limits.updated"
    rate_limits: Union[List[RateLimit], RateLimit]


# ------------------------------------------------------------------------------
# Lookup tables
# ------------------------------------------------------------------------------

CLIENT_EVENT_MODELS: Dict[ClientEventType, Type[ClientEvent]] = {
    ClientEventType.SESSION_UPDATE: SessionUpdate,
    ClientEventType.INPUT_AUDIO_BUFFER_APPEND: InputAudioBufferAppend,
    ClientEventType.INPUT_AUDIO_BUFFER_COMMIT: InputAudioBufferCommit,
    ClientEventType.INPUT_AUDIO_BUFFER_CLEAR: InputAudioBufferClear,
    ClientEventType.CONVERSATION_ITEM_CREATE: ConversationItemCreate,
    ClientEventType.CONVERSATION_ITEM_TRUNCATE: ConversationItemTruncate,
    ClientEventType.CONVERSATION_ITEM_DELETE: ConversationItemDelete,
    ClientEventType.RESPONSE_CREATE: ResponseCreate,
    ClientEventType.RESPONSE_CANCEL: ResponseCancel,
}

SERVER_EVENT_MODELS: Dict[ServerEventType, Type[ServerEvent]] = {
    ServerEventType.ERROR: ErrorEvent,
    ServerEventType.SESSION_CREATED: SessionCreated,
    ServerEventType.SESSION_UPDATED: SessionUpdated,
    ServerEventType.CONVERSATION_CREATED: ConversationCreated,
    ServerEventType.CONVERSATION_ITEM_CREATED: ConversationItemCreated,
    ServerEventType.CONVERSATION_ITEM_COMPLETED: ConversationItemCompleted,
    ServerEventType.CONVERSATION_ITEM_APPENDED: ConversationItemAppended,
    ServerEventType.CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_COMPLETED: InputAudioTranscriptionCompleted,
    ServerEventType.CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_FAILED: InputAudioTranscriptionFailed,
    ServerEventType.CONVERSATION_ITEM_TRUNCATED: ConversationItemTruncated,
    ServerEventType.CONVERSATION_ITEM_DELETED: ConversationItemDeleted,
    ServerEventType.INPUT_AUDIO_BUFFER_COMMITTED: InputAudioBufferCommitted,
    ServerEventType.INPUT_AUDIO_BUFFER_CLEARED: InputAudioBufferCleared,
    ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STARTED: InputAudioBufferSpeechStarted,
    ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STOPPED: InputAudioBufferSpeechStopped,
    ServerEventType.RESPONSE_CREATED: ResponseCreated,
    ServerEventType.RESPONSE_DONE: ResponseDone,
    ServerEventType.RESPONSE_OUTPUT_ITEM_ADDED: ResponseOutputItemAdded,
    ServerEventType.RESPONSE_OUTPUT_ITEM_DONE: ResponseOutputItemDone,
    ServerEventType.RESPONSE_CONTENT_PART_ADDED: ResponseContentPartAdded,
    ServerEventType.RESPONSE_TEXT_DELTA: ResponseTextDelta,
    ServerEventType.RESPONSE_AUDIO_DELTA: ResponseAudioDelta,
    ServerEventType.RESPONSE_AUDIO_TRANSCRIPT_DELTA: ResponseAudioTranscriptDelta,
    ServerEventType.RESPONSE_AUDIO_TRANSCRIPT_DONE: ResponseAudioTranscriptDone,
    ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DELTA: ResponseFunctionCallArgumentsDelta,
    ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE: ResponseFunctionCallArgumentsDone,
    ServerEventType.RATE_LIMITS_UPDATED: RateLimitsUpdated,
}

_SERVER_EVENT_TYPES = {kind.value: kind for kind in ServerEventType}


def validate_client_event(event_name: Union[str, ClientEventType], event: Dict[str, Any]) -> ClientEvent:
    """
    Check an outgoing event against its schema.

    Raises:
        UnknownClientEventError: If ``event_name`` is not a client event kind.
        pydantic.ValidationError: If the payload does not match the schema.
    """
    kind = event_name if isinstance(event_name, ClientEventType) else ClientEventType.from_string(event_name)
    return CLIENT_EVENT_MODELS[kind].model_validate(event)


def validate_server_event(event: Dict[str, Any]) -> Optional[ServerEvent]:
    """
    Check an incoming event against its schema.

    Returns:
        The validated model, or None for an event kind this schema does not know.

    Raises:
        pydantic.ValidationError: If a known event is missing required fields.
    """
    kind = _SERVER_EVENT_TYPES.get(event.get("type"))
    if kind is None:
        return None
    return SERVER_EVENT_MODELS[kind].model_validate(event)
