"""
Conversation item model assembled from realtime server events.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from src.realtime_core.utils import base64_to_array_buffer, empty_audio, merge_int16_arrays

TEXT_PART_TYPES = ("text", "input_text")
AUDIO_PART_TYPES = ("audio", "input_audio")
FINAL_STATUSES = ("completed", "incomplete")


@dataclass
class ContentPart:
    """One content slot of an item, with its accumulating buffers."""

    index: int
    type: str
    text: str = ""
    transcript: str = ""
    audio: np.ndarray = field(default_factory=empty_audio, repr=False)

    @classmethod
    def from_dict(cls, index: int, part: Dict[str, Any]) -> "ContentPart":
        audio = part.get("audio")
        return cls(
            index=index,
            type=part.get("type", "text"),
            text=part.get("text") or "",
            transcript=part.get("transcript") or "",
            audio=base64_to_array_buffer(audio) if isinstance(audio, str) and audio else empty_audio(),
        )


@dataclass
class FormattedItem:
    """Convenience view: everything accumulated so far for an item."""

    text: str = ""
    transcript: str = ""
    audio: np.ndarray = field(default_factory=empty_audio, repr=False)
    tool: Optional[Dict[str, str]] = None
    output: Optional[str] = None

    def append_audio(self, samples: np.ndarray) -> None:
        self.audio = merge_int16_arrays(self.audio, samples)


@dataclass
class ConversationItem:
    """
    An addressable unit of conversation: a message, a function call or a
    function call output. Mutated in place as deltas arrive.
    """

    id: str
    type: str
    status: str = "in_progress"
    role: Optional[str] = None
    content: List[ContentPart] = field(default_factory=list)
    name: Optional[str] = None
    call_id: Optional[str] = None
    arguments: str = ""
    output: Optional[str] = None
    formatted: FormattedItem = field(default_factory=FormattedItem)

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    def content_part(self, index: int, part_type: str) -> ContentPart:
        """Return the slot at ``index``, creating it and any missing slots before it."""
        while len(self.content) <= index:
            self.content.append(ContentPart(index=len(self.content), type=part_type))
        return self.content[index]

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> "ConversationItem":
        new_item = cls(
            id=item["id"],
            type=item["type"],
            role=item.get("role"),
            name=item.get("name"),
            call_id=item.get("call_id"),
            arguments=item.get("arguments") or "",
            output=item.get("output"),
        )
        new_item.content = [ContentPart.from_dict(i, part) for i, part in enumerate(item.get("content") or [])]

        formatted = new_item.formatted
        for part in new_item.content:
            if part.type in TEXT_PART_TYPES:
                formatted.text += part.text
            formatted.transcript += part.transcript
            if part.audio.size:
                formatted.append_audio(part.audio)

        if new_item.type == "function_call":
            formatted.tool = {
                "type": "function",
                "name": new_item.name or "",
                "call_id": new_item.call_id or "",
                "arguments": new_item.arguments,
            }
        elif new_item.type == "function_call_output":
            formatted.output = new_item.output or ""
        return new_item
