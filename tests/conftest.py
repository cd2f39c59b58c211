"""
Shared fixtures for the realtime conversation core tests.
"""

import base64
import itertools
import json

import numpy as np
import pytest

from src.realtime_core.api import RealtimeAPI
from src.realtime_core.client import RealtimeClient


class MockTransport:
    """In-memory transport recording every frame sent through it."""

    def __init__(self, open_: bool = True, accept: bool = True):
        self.open = open_
        self.accept = accept
        self.sent_messages = []
        self.closed = False
        self.on_message = None
        self.on_close = None

    def listen(self, on_message, on_close):
        self.on_message = on_message
        self.on_close = on_close

    def is_open(self) -> bool:
        return self.open

    def send(self, raw_message: str) -> bool:
        if not self.open or not self.accept:
            return False
        self.sent_messages.append(raw_message)
        return True

    def close(self) -> None:
        self.open = False
        self.closed = True

    def sent_events(self):
        return [json.loads(m) for m in self.sent_messages]

    def deliver(self, event):
        """Simulate one inbound frame from the server."""
        return self.on_message(json.dumps(event))

    def drop(self, error: bool = True):
        """Simulate the connection being lost."""
        self.open = False
        self.on_close(error)


class ServerEvents:
    """Builds well-formed server events with fresh event ids."""

    def __init__(self):
        self._ids = itertools.count(1)

    def _event(self, type_, **fields):
        return {"event_id": f"event_{next(self._ids)}", "type": type_, **fields}

    def session_created(self, session_id="sess_1"):
        return self._event("session.created", session={"id": session_id, "modalities": ["text", "audio"]})

    def item_created(self, item_id, role="user", status="completed", content=None, previous_item_id=None):
        item = {
            "id": item_id,
            "object": "realtime.item",
            "type": "message",
            "status": status,
            "role": role,
            "content": content or [],
        }
        return self._event("conversation.item.created", previous_item_id=previous_item_id, item=item)

    def function_call_created(self, item_id, name, call_id, status="in_progress"):
        item = {
            "id": item_id,
            "object": "realtime.item",
            "type": "function_call",
            "status": status,
            "name": name,
            "call_id": call_id,
            "arguments": "",
        }
        return self._event("response.output_item.added", response_id="resp_1", output_index=0, item=item)

    def output_item_added(self, item_id, role="assistant", status="in_progress", response_id="resp_1"):
        item = {
            "id": item_id,
            "object": "realtime.item",
            "type": "message",
            "status": status,
            "role": role,
            "content": [],
        }
        return self._event("response.output_item.added", response_id=response_id, output_index=0, item=item)

    def output_item_done(self, item_id, status="completed", item_type="message", **item_fields):
        item = {"id": item_id, "object": "realtime.item", "type": item_type, "status": status, **item_fields}
        if item_type == "message":
            item.setdefault("role", "assistant")
            item.setdefault("content", [])
        return self._event("response.output_item.done", response_id="resp_1", output_index=0, item=item)

    def content_delta(self, type_, item_id, delta, content_index=0):
        return self._event(
            type_,
            response_id="resp_1",
            item_id=item_id,
            output_index=0,
            content_index=content_index,
            delta=delta,
        )

    def transcript_delta(self, item_id, delta, content_index=0):
        return self.content_delta("response.audio_transcript.delta", item_id, delta, content_index)

    def text_delta(self, item_id, delta, content_index=0):
        return self.content_delta("response.text.delta", item_id, delta, content_index)

    def audio_delta(self, item_id, samples, content_index=0):
        payload = base64.b64encode(np.asarray(samples, dtype=np.int16).tobytes()).decode("utf-8")
        return self.content_delta("response.audio.delta", item_id, payload, content_index)

    def arguments_delta(self, item_id, call_id, delta):
        return self._event(
            "response.function_call_arguments.delta",
            response_id="resp_1",
            item_id=item_id,
            output_index=0,
            call_id=call_id,
            delta=delta,
        )

    def item_deleted(self, item_id):
        return self._event("conversation.item.deleted", item_id=item_id)

    def item_truncated(self, item_id, audio_end_ms, content_index=0):
        return self._event(
            "conversation.item.truncated", item_id=item_id, content_index=content_index, audio_end_ms=audio_end_ms
        )

    def error(self, message="Something went wrong", code="invalid_value"):
        return self._event(
            "error", error={"type": "invalid_request_error", "code": code, "message": message, "param": None}
        )


@pytest.fixture
def server_events():
    """Fixture providing a server event factory."""
    return ServerEvents()


@pytest.fixture
def mock_transport():
    """Fixture providing an open mock transport."""
    return MockTransport()


@pytest.fixture
def sequential_ids():
    """Fixture providing a deterministic event id generator."""
    counter = itertools.count(1)
    return lambda: f"evt_{next(counter)}"


@pytest.fixture
def realtime_api(mock_transport, sequential_ids):
    """Fixture providing a RealtimeAPI bound to a mock transport."""
    return RealtimeAPI(transport=mock_transport, id_generator=sequential_ids)


@pytest.fixture
def client(mock_transport, sequential_ids):
    """Fixture providing a connected RealtimeClient."""
    realtime_client = RealtimeClient(system_prompt="Be brief.", id_generator=sequential_ids, sample_rate=1000)
    realtime_client.connect(mock_transport)
    return realtime_client


@pytest.fixture
def transport_factory():
    """Fixture providing the MockTransport class for extra transports."""
    return MockTransport
