"""
RealtimeConversation manages the conversation state: items, responses,
content deltas, input audio bookkeeping and transcripts.
"""

import logging
from typing import Any, Dict, List, NamedTuple, Optional

import numpy as np

from src.realtime_core import settings
from src.realtime_core.events import ServerEventType
from src.realtime_core.items import AUDIO_PART_TYPES, ConversationItem
from src.realtime_core.utils import base64_to_array_buffer, merge_int16_arrays

logger = logging.getLogger(__name__)


class ProcessedEvent(NamedTuple):
    """Outcome of applying one server event to the conversation."""

    item: Optional[ConversationItem] = None
    delta: Optional[Dict[str, Any]] = None
    appended: bool = False
    completed: bool = False


class RealtimeConversation:
    """
    Ordered, addressable collection of conversation items rebuilt from
    server events.
    """

    def __init__(self, default_frequency: int = settings.REALTIME_SAMPLE_RATE) -> None:
        self.default_frequency = default_frequency
        self.clear()

    def clear(self) -> None:
        """
        Reset the conversation state, clearing all items, responses, and queued data.
        """
        self.conversation_id: Optional[str] = None
        self.item_lookup: Dict[str, ConversationItem] = {}
        self.items: List[ConversationItem] = []
        self.response_lookup: Dict[str, Dict[str, Any]] = {}
        self.responses: List[Dict[str, Any]] = []
        self.queued_speech_items: Dict[str, Dict[str, Any]] = {}
        self.queued_transcript_items: Dict[str, Dict[str, str]] = {}
        self.queued_input_audio: Optional[np.ndarray] = None

    def queue_input_audio(self, input_audio: np.ndarray) -> np.ndarray:
        """
        Store committed input audio until the matching user item is created.
        """
        self.queued_input_audio = input_audio
        return input_audio

    def process_event(self, event: Dict[str, Any], *args: Any) -> ProcessedEvent:
        """
        Apply a server event to the conversation.

        Raises:
            ValueError: If no processor exists for the event type.
        """
        event_processor = self.EventProcessors.get(event["type"])
        if not event_processor:
            raise ValueError(f"Missing conversation event processor for {event['type']}")
        return event_processor(self, event, *args)

    def get_item(self, item_id: str) -> Optional[ConversationItem]:
        return self.item_lookup.get(item_id)

    def get_items(self) -> List[ConversationItem]:
        """
        Get all conversation items in conversation order.

        Returns:
            List[ConversationItem]: A copy of the list of items.
        """
        return self.items[:]

    def _insert(self, item: ConversationItem, previous_item_id: Optional[str]) -> None:
        if previous_item_id and previous_item_id in self.item_lookup:
            position = self.items.index(self.item_lookup[previous_item_id]) + 1
            self.items.insert(position, item)
        else:
            if previous_item_id:
                logger.debug(f"Previous item '{previous_item_id}' unknown, appending '{item.id}' at tail.")
            self.items.append(item)
        self.item_lookup[item.id] = item

    def _open_item(self, item_id: str, kind: str) -> Optional[ConversationItem]:
        """Look up an item that may still receive deltas."""
        item = self.item_lookup.get(item_id)
        if not item:
            logger.warning(f"Item '{item_id}' not found for {kind}, dropping.")
            return None
        if item.is_final:
            logger.warning(f"Item '{item_id}' is already {item.status}, dropping late {kind}.")
            return None
        return item

    def _process_item_created(self, event: Dict[str, Any]) -> ProcessedEvent:
        """
        Insert a newly announced item at its declared position.

        Handles both ``conversation.item.created`` and
        ``response.output_item.added``; the second announcement of an id
        returns the existing item untouched.
        """
        raw_item = event["item"]
        existing = self.item_lookup.get(raw_item["id"])
        if existing:
            return ProcessedEvent(existing)

        new_item = ConversationItem.from_dict(raw_item)
        formatted = new_item.formatted

        # Speech captured between speech_started/stopped for this item
        queued_speech = self.queued_speech_items.pop(new_item.id, None)
        if queued_speech and queued_speech.get("audio") is not None:
            formatted.audio = queued_speech["audio"]

        queued_transcript = self.queued_transcript_items.pop(new_item.id, None)
        if queued_transcript:
            formatted.transcript = queued_transcript["transcript"]

        if new_item.type == "message" and new_item.role == "user":
            new_item.status = "completed"
            if self.queued_input_audio is not None:
                formatted.audio = self.queued_input_audio
                self.queued_input_audio = None
        elif new_item.type == "function_call_output":
            new_item.status = "completed"
        else:
            new_item.status = raw_item.get("status") or "in_progress"

        self._insert(new_item, event.get("previous_item_id"))

        response = self.response_lookup.get(event.get("response_id"))
        if response is not None and new_item.id not in response["output"]:
            response["output"].append(new_item.id)

        return ProcessedEvent(new_item, appended=True, completed=new_item.is_final)

    def _process_item_done(self, event: Dict[str, Any]) -> ProcessedEvent:
        """
        Mark an item completed (or incomplete) and freeze it.
        """
        raw_item = event["item"]
        item = self.item_lookup.get(raw_item["id"])
        if not item:
            logger.warning(f"Item '{raw_item['id']}' not found in {event['type']}, dropping.")
            return ProcessedEvent()
        if item.is_final:
            return ProcessedEvent(item)

        item.status = raw_item.get("status") or "completed"
        if item.type == "function_call" and raw_item.get("arguments"):
            item.arguments = raw_item["arguments"]
            item.formatted.tool["arguments"] = raw_item["arguments"]
        return ProcessedEvent(item, completed=item.is_final)

    def _process_item_truncated(self, event: Dict[str, Any]) -> ProcessedEvent:
        """
        Clip an item's audio to ``audio_end_ms``; its transcript no longer
        matches what was heard, so it is dropped.
        """
        item_id = event["item_id"]
        item = self.item_lookup.get(item_id)
        if not item:
            logger.warning(f"Item '{item_id}' not found for truncation, dropping.")
            return ProcessedEvent()

        end_index = (event["audio_end_ms"] * self.default_frequency) // 1000
        content_index = event.get("content_index")
        if content_index is not None and content_index < len(item.content):
            part = item.content[content_index]
            part.audio = part.audio[:end_index]
            part.transcript = ""
        item.formatted.transcript = ""
        item.formatted.audio = item.formatted.audio[:end_index]
        return ProcessedEvent(item)

    def _process_item_deleted(self, event: Dict[str, Any]) -> ProcessedEvent:
        """
        Remove an item by id. Deleting an absent item is a no-op.
        """
        item_id = event["item_id"]
        self.queued_speech_items.pop(item_id, None)
        self.queued_transcript_items.pop(item_id, None)
        item = self.item_lookup.pop(item_id, None)
        if not item:
            logger.debug(f"Item '{item_id}' already absent, nothing to delete.")
            return ProcessedEvent()
        self.items.remove(item)
        return ProcessedEvent(item)

    def _process_input_audio_transcription_completed(self, event: Dict[str, Any]) -> ProcessedEvent:
        """
        Attach the finished transcript of a user audio item. Transcripts that
        arrive before their item are queued until it is created.
        """
        item_id = event["item_id"]
        transcript = event.get("transcript") or ""

        item = self.item_lookup.get(item_id)
        if not item:
            self.queued_transcript_items[item_id] = {"transcript": transcript}
            return ProcessedEvent()

        item.content_part(event["content_index"], "input_audio").transcript = transcript
        item.formatted.transcript = transcript
        return ProcessedEvent(item, {"transcript": transcript})

    def _process_input_audio_transcription_failed(self, event: Dict[str, Any]) -> ProcessedEvent:
        error = event.get("error") or {}
        logger.warning(f"Input audio transcription failed for item '{event['item_id']}': {error.get('message')}")
        return ProcessedEvent(self.item_lookup.get(event["item_id"]))

    def _process_speech_started(self, event: Dict[str, Any]) -> ProcessedEvent:
        self.queued_speech_items[event["item_id"]] = {"audio_start_ms": event["audio_start_ms"]}
        return ProcessedEvent()

    def _process_speech_stopped(self, event: Dict[str, Any], input_audio_buffer: Optional[np.ndarray] = None) -> ProcessedEvent:
        """
        Slice the speech segment for an upcoming user item out of the local
        input audio buffer.
        """
        speech = self.queued_speech_items.setdefault(event["item_id"], {"audio_start_ms": 0})
        speech["audio_end_ms"] = event["audio_end_ms"]

        if input_audio_buffer is not None and len(input_audio_buffer):
            start_index = (speech["audio_start_ms"] * self.default_frequency) // 1000
            end_index = (speech["audio_end_ms"] * self.default_frequency) // 1000
            speech["audio"] = np.asarray(input_audio_buffer, dtype=np.int16)[start_index:end_index]
        return ProcessedEvent()

    def _process_input_audio_committed(self, event: Dict[str, Any]) -> ProcessedEvent:
        """
        Bind locally committed input audio to the user item the server will create for it.
        """
        if self.queued_input_audio is not None:
            speech = self.queued_speech_items.setdefault(event["item_id"], {})
            speech.setdefault("audio", self.queued_input_audio)
            self.queued_input_audio = None
        return ProcessedEvent()

    def _process_input_audio_cleared(self, event: Dict[str, Any]) -> ProcessedEvent:
        # Speech that never became an item is gone with the buffer.
        self.queued_input_audio = None
        self.queued_speech_items.clear()
        return ProcessedEvent()

    def _process_conversation_created(self, event: Dict[str, Any]) -> ProcessedEvent:
        self.conversation_id = event["conversation"]["id"]
        return ProcessedEvent()

    def _process_response_created(self, event: Dict[str, Any]) -> ProcessedEvent:
        response = event["response"]
        if response["id"] not in self.response_lookup:
            tracked = {"id": response["id"], "status": response.get("status"), "output": []}
            self.response_lookup[response["id"]] = tracked
            self.responses.append(tracked)
        return ProcessedEvent()

    def _process_response_done(self, event: Dict[str, Any]) -> ProcessedEvent:
        response = event["response"]
        tracked = self.response_lookup.get(response["id"])
        if not tracked:
            logger.debug(f"Response '{response['id']}' was not tracked, ignoring done.")
            return ProcessedEvent()
        tracked["status"] = response.get("status")
        tracked["usage"] = response.get("usage")
        return ProcessedEvent()

    def _process_content_part_added(self, event: Dict[str, Any]) -> ProcessedEvent:
        item = self._open_item(event["item_id"], "content part")
        if not item:
            return ProcessedEvent()

        part = event["part"]
        slot = item.content_part(event["content_index"], part.get("type", "text"))
        slot.type = part.get("type", slot.type)
        return ProcessedEvent(item)

    def _process_text_delta(self, event: Dict[str, Any]) -> ProcessedEvent:
        item = self._open_item(event["item_id"], "text delta")
        if not item:
            return ProcessedEvent()

        delta = event["delta"]
        item.content_part(event["content_index"], "text").text += delta
        item.formatted.text += delta
        return ProcessedEvent(item, {"text": delta})

    def _process_audio_transcript_delta(self, event: Dict[str, Any]) -> ProcessedEvent:
        item = self._open_item(event["item_id"], "audio transcript delta")
        if not item:
            return ProcessedEvent()

        delta = event["delta"]
        item.content_part(event["content_index"], "audio").transcript += delta
        item.formatted.transcript += delta
        return ProcessedEvent(item, {"transcript": delta})

    def _process_audio_delta(self, event: Dict[str, Any]) -> ProcessedEvent:
        item = self._open_item(event["item_id"], "audio delta")
        if not item:
            return ProcessedEvent()

        samples = base64_to_array_buffer(event["delta"])
        part = item.content_part(event.get("content_index", 0), "audio")
        if part.type not in AUDIO_PART_TYPES:
            part.type = "audio"
        part.audio = merge_int16_arrays(part.audio, samples)
        item.formatted.append_audio(samples)
        return ProcessedEvent(item, {"audio": samples})

    def _process_function_call_arguments_delta(self, event: Dict[str, Any]) -> ProcessedEvent:
        item = self._open_item(event["item_id"], "function call arguments delta")
        if not item:
            return ProcessedEvent()

        delta = event["delta"]
        item.arguments += delta
        if item.formatted.tool is not None:
            item.formatted.tool["arguments"] += delta
        return ProcessedEvent(item, {"arguments": delta})

    def _process_function_call_arguments_done(self, event: Dict[str, Any]) -> ProcessedEvent:
        item = self._open_item(event["item_id"], "function call arguments")
        if not item:
            return ProcessedEvent()

        item.arguments = event["arguments"]
        if item.formatted.tool is not None:
            item.formatted.tool["arguments"] = event["arguments"]
        return ProcessedEvent(item)

    # Event dispatch table
    EventProcessors = {
        ServerEventType.CONVERSATION_CREATED.value: _process_conversation_created,
        ServerEventType.CONVERSATION_ITEM_CREATED.value: _process_item_created,
        ServerEventType.CONVERSATION_ITEM_COMPLETED.value: _process_item_done,
        ServerEventType.CONVERSATION_ITEM_TRUNCATED.value: _process_item_truncated,
        ServerEventType.CONVERSATION_ITEM_DELETED.value: _process_item_deleted,
        ServerEventType.CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_COMPLETED.value: _process_input_audio_transcription_completed,
        ServerEventType.CONVERSATION_ITEM_INPUT_AUDIO_TRANSCRIPTION_FAILED.value: _process_input_audio_transcription_failed,
        ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STARTED.value: _process_speech_started,
        ServerEventType.INPUT_AUDIO_BUFFER_SPEECH_STOPPED.value: _process_speech_stopped,
        ServerEventType.INPUT_AUDIO_BUFFER_COMMITTED.value: _process_input_audio_committed,
        ServerEventType.INPUT_AUDIO_BUFFER_CLEARED.value: _process_input_audio_cleared,
        ServerEventType.RESPONSE_CREATED.value: _process_response_created,
        ServerEventType.RESPONSE_DONE.value: _process_response_done,
        ServerEventType.RESPONSE_OUTPUT_ITEM_ADDED.value: _process_item_created,
        ServerEventType.RESPONSE_OUTPUT_ITEM_DONE.value: _process_item_done,
        ServerEventType.RESPONSE_CONTENT_PART_ADDED.value: _process_content_part_added,
        ServerEventType.RESPONSE_AUDIO_TRANSCRIPT_DELTA.value: _process_audio_transcript_delta,
        ServerEventType.RESPONSE_AUDIO_DELTA.value: _process_audio_delta,
        ServerEventType.RESPONSE_TEXT_DELTA.value: _process_text_delta,
        ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DELTA.value: _process_function_call_arguments_delta,
        ServerEventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE.value: _process_function_call_arguments_done,
    }
