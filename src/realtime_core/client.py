"""
RealtimeClient is the high-level controller for a realtime conversation:
it wires the protocol layer to the conversation state, exposes derived
conversation events, and runs registered tools.
"""

import asyncio
import copy
import inspect
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import numpy as np

from src.realtime_core import settings
from src.realtime_core.api import RealtimeAPI
from src.realtime_core.conversation import ProcessedEvent, RealtimeConversation
from src.realtime_core.event_handler import RealtimeEventHandler
from src.realtime_core.events import (
    CLIENT_WILDCARD,
    SERVER_WILDCARD,
    ClientEventType,
    ServerEventType,
    server_event_name,
)
from src.realtime_core.items import ConversationItem
from src.realtime_core.transport import Transport
from src.realtime_core.utils import array_buffer_to_base64, float_to_16bit_pcm
from utils.ml_logging import get_logger
from utils.trace_context import TraceContext

logger = get_logger(__name__)

ToolHandler = Callable[..., Union[Any, Awaitable[Any]]]

# Server events whose only effect is on conversation state
_CONVERSATION_EVENTS = (
    ServerEventType.CONVERSATION_CREATED,
    ServerEventType.RESPONSE_CREATED,
    ServerEventType.RESPONSE_DONE,
    ServerEventType.RESPONSE_CONTENT_PART_ADDED,
    ServerEventType.INPUT_AUDIO_BUFFER_COMMITTED,
    ServerEventType.INPUT_AUDIO_BUFFER_CLEARED,
    ServerEventType.CONVERSATION_ITEM_TRUNCATED,
    ServerEventType.CONVERSATION_ITEM_DELETED,
    ServerEventType.CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_FAILED,
    ServerEventType.RESPONSE_AUDIO_TRANSCRIPT_DELTA,
    ServerEventType.RESPONSE_AUDIO_DELTA,
    ServerEventType.RESPONSE_TEXT_DELTA,
    ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DELTA,
    ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE,
)


class RealtimeClient(RealtimeEventHandler):
    """
    Client class to manage realtime conversation flow, messaging, and tool execution.

    Raw protocol events live on ``self.realtime``; this object dispatches the
    derived events (``conversation.updated``, ``conversation.item.appended``,
    ``conversation.item.completed``, ``conversation.interrupted``,
    ``realtime.event``, ``close``).
    """

    def __init__(
        self,
        system_prompt: str = "",
        id_generator: Optional[Callable[[], str]] = None,
        sample_rate: int = settings.REALTIME_SAMPLE_RATE,
    ) -> None:
        super().__init__()
        self.system_prompt = system_prompt
        self.default_session_config: Dict[str, Any] = {
            "modalities": ["text", "audio"],
            "instructions": self.system_prompt,
            "voice": settings.REALTIME_DEFAULT_VOICE,
            "input_audio_format": "pcm16",
            "output_audio_format": "pcm16",
            "input_audio_transcription": {"model": settings.REALTIME_TRANSCRIPTION_MODEL},
            "turn_detection": None,
            "tools": [],
            "tool_choice": "auto",
            "temperature": settings.REALTIME_TEMPERATURE,
            "max_response_output_tokens": 4096,
        }
        self.session_config: Dict[str, Any] = {}
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.input_audio_buffer: np.ndarray = np.zeros(0, dtype=np.int16)
        self.session_created: bool = False
        self.session_id: Optional[str] = None
        self.realtime = RealtimeAPI(id_generator=id_generator)
        self.tool_tasks: Set[asyncio.Task] = set()
        self.conversation = RealtimeConversation(default_frequency=sample_rate)

        self._reset_config()
        self._add_api_event_handlers()

    def _reset_config(self) -> None:
        """
        Reset session configuration and tool registry.
        """
        self.session_config = copy.deepcopy(self.default_session_config)
        self.tools = {}
        self.input_audio_buffer = np.zeros(0, dtype=np.int16)
        self.session_created = False
        self.session_id = None

    def _add_api_event_handlers(self) -> None:
        """
        Attach event handlers to RealtimeAPI for conversation updates.
        """
        self.realtime.on(CLIENT_WILDCARD, self._log_client_event)
        self.realtime.on(SERVER_WILDCARD, self._log_server_event)
        self.realtime.on("close", self._on_close)
        self.realtime.on(server_event_name(ServerEventType.SESSION_CREATED.value), self._on_session_created)
        for event_type in _CONVERSATION_EVENTS:
            self.realtime.on(server_event_name(event_type.value), self._process_event)
        self.realtime.on(
            server_event_name(ServerEventType.CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_COMPLETED.value),
            self._on_transcription_completed,
        )
        self.realtime.on(server_event_name(ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STARTED.value), self._on_speech_started)
        self.realtime.on(server_event_name(ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STOPPED.value), self._on_speech_stopped)
        self.realtime.on(server_event_name(ServerEventType.CONVERSATION_ITEM_CREATED.value), self._on_item_created)
        self.realtime.on(server_event_name(ServerEventType.RESPONSE_OUTPUT_ITEM_ADDED.value), self._on_item_created)
        self.realtime.on(server_event_name(ServerEventType.RESPONSE_OUTPUT_ITEM_DONE.value), self._on_output_item_done)
        self.realtime.on(server_event_name(ServerEventType.CONVERSATION_ITEM_COMPLETED.value), self._on_output_item_done)

    def _log_client_event(self, event: Dict[str, Any]) -> None:
        self._emit_realtime_event("client", event)

    def _log_server_event(self, event: Dict[str, Any]) -> None:
        self._emit_realtime_event("server", event)

    def _emit_realtime_event(self, source: str, event: Dict[str, Any]) -> None:
        realtime_event = {
            "time": datetime.now(timezone.utc).isoformat(),
            "source": source,
            "event": event,
        }
        self.dispatch("realtime.event", realtime_event)

    def _on_session_created(self, event: Dict[str, Any]) -> None:
        """
        Handler when a new session is successfully created.
        """
        self.session_created = True
        self.session_id = (event.get("session") or {}).get("id")
        logger.keyinfo(f"Realtime session created: {self.session_id}")

    def _on_close(self, event: Dict[str, Any]) -> None:
        # Conversation state never survives a lost connection.
        self.session_created = False
        self.session_id = None
        self.conversation.clear()
        self.input_audio_buffer = np.zeros(0, dtype=np.int16)
        self.dispatch("close", event)

    def _process_event(self, event: Dict[str, Any], *args: Any) -> ProcessedEvent:
        """
        Apply a server event to the conversation and announce the change.
        """
        result = self.conversation.process_event(event, *args)
        if result.item:
            self.dispatch("conversation.updated", {"item": result.item, "delta": result.delta})
        return result

    def _on_transcription_completed(self, event: Dict[str, Any]) -> None:
        result = self._process_event(event)
        self.dispatch(
            "conversation.item.input_audio_transcription.completed",
            {"item": result.item, "delta": result.delta},
        )

    def _on_speech_started(self, event: Dict[str, Any]) -> None:
        self._process_event(event)
        self.dispatch("conversation.interrupted", event)

    def _on_speech_stopped(self, event: Dict[str, Any]) -> None:
        self._process_event(event, self.input_audio_buffer)

    def _on_item_created(self, event: Dict[str, Any]) -> None:
        result = self._process_event(event)
        self._announce(result)

    def _on_output_item_done(self, event: Dict[str, Any]) -> None:
        result = self._process_event(event)
        self._announce(result)

    def _announce(self, result: ProcessedEvent) -> None:
        if result.appended:
            self.dispatch("conversation.item.appended", {"item": result.item})
        if result.completed:
            self.dispatch("conversation.item.completed", {"item": result.item})
            if result.item.formatted.tool and result.item.status == "completed":
                self._schedule_tool_call(result.item)

    def _schedule_tool_call(self, item: ConversationItem) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, cannot call tool '{item.name}'.")
            return
        task = loop.create_task(self._call_tool(item))
        self.tool_tasks.add(task)
        task.add_done_callback(self.tool_tasks.discard)

    async def _call_tool(self, item: ConversationItem) -> None:
        """
        Execute a registered tool function with the parsed arguments and send
        its result back as a function call output.
        """
        tool = item.formatted.tool
        tool_config = self.tools.get(tool["name"])
        if not tool_config:
            logger.warning(f"Tool '{tool['name']}' not registered, ignoring call.")
            return

        with TraceContext(
            f"realtime.tool.{tool['name']}",
            session_id=self.session_id,
            item_id=item.id,
            metadata={"call_id": tool["call_id"]},
        ):
            try:
                logger.debug(f"Calling tool: {tool}")
                json_arguments = json.loads(tool["arguments"] or "{}")
                result = tool_config["handler"](**json_arguments)
                if inspect.isawaitable(result):
                    result = await result
                output = json.dumps(result)
            except Exception as e:
                logger.error(f"Tool '{tool['name']}' failed: {e}", exc_info=True)
                output = json.dumps({"error": str(e)})

        self.realtime.send(ClientEventType.CONVERSATION_ITEM_CREATE, {
            "item": {
                "type": "function_call_output",
                "call_id": tool["call_id"],
                "output": output,
            }
        })
        self.create_response()

    def is_connected(self) -> bool:
        return self.realtime.is_connected()

    def connect(self, transport: Transport) -> bool:
        """
        Attach a transport and push the current session configuration.

        Raises:
            RuntimeError: If already connected.
        """
        if self.is_connected():
            raise RuntimeError("Already connected, use .disconnect() first.")
        self.realtime.connect(transport)
        self.update_session()
        return True

    def disconnect(self) -> None:
        """
        Disconnect the client and discard all conversation state.
        """
        self.session_created = False
        self.session_id = None
        self.conversation.clear()
        if self.realtime.transport is not None:
            self.realtime.disconnect()

    def reset(self) -> bool:
        """
        Disconnect and restore the client to its initial state.
        """
        self.disconnect()
        self.clear_event_handlers()
        self.realtime.clear_event_handlers()
        self._reset_config()
        self._add_api_event_handlers()
        return True

    async def wait_for_session_created(self, timeout_ms: Optional[float] = None) -> bool:
        """
        Wait until the server confirms the session.

        Returns:
            bool: True once the session exists, False if the timeout elapsed.
        """
        if self.session_created:
            return True
        if not self.is_connected():
            raise RuntimeError("Not connected, use .connect() first.")
        event = await self.realtime.wait_for_next(
            server_event_name(ServerEventType.SESSION_CREATED.value), timeout_ms
        )
        return event is not None

    async def wait_for_next_item(self, timeout_ms: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Wait for the next item appended to the conversation.

        Returns:
            ``{"item": ConversationItem}``, or None on timeout.
        """
        return await self.wait_for_next("conversation.item.appended", timeout_ms)

    async def wait_for_next_completed_item(self, timeout_ms: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Wait for the next item to finish (completed or incomplete).

        Returns:
            ``{"item": ConversationItem}``, or None on timeout.
        """
        return await self.wait_for_next("conversation.item.completed", timeout_ms)

    def get_turn_detection_type(self) -> Optional[str]:
        turn_detection = self.session_config.get("turn_detection")
        return turn_detection.get("type") if turn_detection else None

    def update_session(self, **kwargs: Any) -> bool:
        """
        Update session configuration and push it to the server when connected.
        """
        self.session_config.update(kwargs)

        tools = [{**tool["definition"], "type": "function"} for tool in self.tools.values()]
        tools += [t for t in self.session_config.get("tools") or [] if t.get("name") not in self.tools]
        session = {**self.session_config, "tools": tools}
        if self.is_connected():
            return self.realtime.send(ClientEventType.SESSION_UPDATE, {"session": session})
        return True

    def add_tool(self, definition: Dict[str, Any], handler: ToolHandler) -> Dict[str, Any]:
        """
        Register a function tool and its handler (sync or async).

        Raises:
            ValueError: If the definition has no name, the name is taken, or the handler is not callable.
        """
        name = definition.get("name")
        if not name:
            raise ValueError("Missing tool name in definition")
        if name in self.tools:
            raise ValueError(f'Tool "{name}" already added. Please use .remove_tool("{name}") first.')
        if not callable(handler):
            raise ValueError(f'Tool "{name}" handler must be callable')
        self.tools[name] = {"definition": definition, "handler": handler}
        self.update_session()
        return self.tools[name]

    def remove_tool(self, name: str) -> bool:
        if name not in self.tools:
            raise ValueError(f'Tool "{name}" does not exist, can not be removed.')
        del self.tools[name]
        self.update_session()
        return True

    def send_user_message_content(self, content: List[Dict[str, Any]]) -> bool:
        """
        Send a user message and request a response.

        Args:
            content (List[Dict[str, Any]]): Content parts (input_text / input_audio).
                Raw ``input_audio`` samples are base64-encoded before sending.
        """
        if content:
            parts = []
            for c in content:
                part = dict(c)
                if part.get("type") == "input_audio" and isinstance(part.get("audio"), (bytes, bytearray, np.ndarray)):
                    part["audio"] = array_buffer_to_base64(part["audio"])
                parts.append(part)

            sent = self.realtime.send(ClientEventType.CONVERSATION_ITEM_CREATE, {
                "item": {
                    "type": "message",
                    "role": "user",
                    "content": parts,
                }
            })
            if not sent:
                return False
        return self.create_response()

    def append_input_audio(self, array_buffer: Union[np.ndarray, bytes, bytearray]) -> bool:
        """
        Stream PCM16 microphone samples to the server input buffer.
        """
        if isinstance(array_buffer, (bytes, bytearray)):
            samples = np.frombuffer(bytes(array_buffer), dtype="<i2").astype(np.int16)
        elif array_buffer.dtype == np.float32:
            samples = float_to_16bit_pcm(array_buffer)
        else:
            samples = array_buffer.astype(np.int16)

        if not samples.size:
            return True
        if not self.realtime.send(ClientEventType.INPUT_AUDIO_BUFFER_APPEND, {"audio": array_buffer_to_base64(samples)}):
            return False
        self.input_audio_buffer = np.concatenate((self.input_audio_buffer, samples))
        logger.debug(f"Sent {samples.size} samples of input audio.")
        return True

    def create_response(self) -> bool:
        """
        Commit pending input audio (when not using server VAD) and request a response.
        """
        if self.get_turn_detection_type() is None and self.input_audio_buffer.size > 0:
            if not self.realtime.send(ClientEventType.INPUT_AUDIO_BUFFER_COMMIT):
                return False
            self.conversation.queue_input_audio(self.input_audio_buffer)
            self.input_audio_buffer = np.zeros(0, dtype=np.int16)
        return self.realtime.send(ClientEventType.RESPONSE_CREATE)

    def cancel_response(self, item_id: Optional[str] = None, sample_count: int = 0) -> Dict[str, Any]:
        """
        Cancel the in-flight response, optionally truncating an assistant audio item.

        Args:
            item_id (Optional[str]): Assistant item being played back.
            sample_count (int): Number of samples already played.

        Returns:
            Dict[str, Any]: ``{"item": item or None}``.

        Raises:
            ValueError: If the item is unknown, not an assistant message, or has no audio.
        """
        if not item_id:
            self.realtime.send(ClientEventType.RESPONSE_CANCEL)
            return {"item": None}

        item = self.conversation.get_item(item_id)
        if not item:
            raise ValueError(f"Could not find item '{item_id}'.")
        if item.type != "message" or item.role != "assistant":
            raise ValueError("Can only cancel_response messages with type 'message' and role 'assistant'.")

        audio_index = next((part.index for part in item.content if part.type == "audio"), -1)
        if audio_index == -1:
            raise ValueError("Could not find audio on item to cancel.")

        self.realtime.send(ClientEventType.RESPONSE_CANCEL)
        self.realtime.send(ClientEventType.CONVERSATION_ITEM_TRUNCATE, {
            "item_id": item_id,
            "content_index": audio_index,
            "audio_end_ms": int((sample_count / self.conversation.default_frequency) * 1000),
        })
        return {"item": item}
