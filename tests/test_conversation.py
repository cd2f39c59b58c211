"""
Tests for RealtimeConversation: assembling items from server events.
"""

import numpy as np
import pytest

from src.realtime_core.conversation import ProcessedEvent, RealtimeConversation


@pytest.fixture
def conversation():
    return RealtimeConversation(default_frequency=1000)


def ids(conversation):
    return [item.id for item in conversation.get_items()]


class TestItemLifecycle:
    """Items announced, streamed into and completed."""

    def test_transcript_scenario(self, conversation, server_events):
        """User item, then an assistant item whose transcript streams in three deltas."""
        conversation.process_event(server_events.item_created("it1", role="user", status="completed"))
        conversation.process_event(server_events.output_item_added("it2", role="assistant"))
        for delta in ("Hel", "lo ", "world"):
            conversation.process_event(server_events.transcript_delta("it2", delta))
        result = conversation.process_event(server_events.output_item_done("it2", status="completed"))

        assert ids(conversation) == ["it1", "it2"]
        item = conversation.get_item("it2")
        assert item.formatted.transcript == "Hello world"
        assert item.content[0].transcript == "Hello world"
        assert item.status == "completed"
        assert result.completed is True

    def test_announced_item_is_appended_in_progress(self, conversation, server_events):
        result = conversation.process_event(server_events.output_item_added("it1"))

        assert isinstance(result, ProcessedEvent)
        assert result.appended is True
        assert result.completed is False
        assert result.item.status == "in_progress"
        assert result.item.content == []

    def test_user_message_is_completed_on_creation(self, conversation, server_events):
        result = conversation.process_event(server_events.item_created("it1", role="user", status="in_progress"))

        assert result.item.status == "completed"
        assert result.completed is True

    def test_duplicate_announcement_keeps_existing_item(self, conversation, server_events):
        first = conversation.process_event(server_events.output_item_added("it1"))
        conversation.process_event(server_events.text_delta("it1", "Hi"))
        second = conversation.process_event(server_events.item_created("it1", role="assistant", status="in_progress"))

        assert second.item is first.item
        assert second.appended is False
        assert ids(conversation) == ["it1"]
        assert first.item.formatted.text == "Hi"

    def test_insert_after_previous_item(self, conversation, server_events):
        conversation.process_event(server_events.item_created("a"))
        conversation.process_event(server_events.item_created("c", previous_item_id="a"))
        conversation.process_event(server_events.item_created("b", previous_item_id="a"))

        assert ids(conversation) == ["a", "b", "c"]

    def test_unknown_previous_item_appends_at_tail(self, conversation, server_events):
        conversation.process_event(server_events.item_created("a"))
        conversation.process_event(server_events.item_created("b", previous_item_id="missing"))

        assert ids(conversation) == ["a", "b"]

    def test_incomplete_status_from_server(self, conversation, server_events):
        conversation.process_event(server_events.output_item_added("it1"))
        result = conversation.process_event(server_events.output_item_done("it1", status="incomplete"))

        assert result.item.status == "incomplete"
        assert result.completed is True

    def test_get_items_returns_copy(self, conversation, server_events):
        conversation.process_event(server_events.item_created("it1"))
        items = conversation.get_items()
        items.clear()

        assert ids(conversation) == ["it1"]

    def test_missing_processor_raises(self, conversation):
        with pytest.raises(ValueError, match="session.updated"):
            conversation.process_event({"type": "session.updated", "event_id": "e1", "session": {}})


class TestDeltas:
    """Text, transcript, audio and function argument fragments."""

    def test_text_deltas_accumulate(self, conversation, server_events):
        conversation.process_event(server_events.output_item_added("it1"))
        conversation.process_event(server_events.text_delta("it1", "Hello"))
        result = conversation.process_event(server_events.text_delta("it1", ", there"))

        assert result.delta == {"text": ", there"}
        assert result.item.formatted.text == "Hello, there"
        assert result.item.content[0].type == "text"

    def test_delta_creates_missing_content_slots(self, conversation, server_events):
        conversation.process_event(server_events.output_item_added("it1"))
        conversation.process_event(server_events.transcript_delta("it1", "late slot", content_index=2))

        item = conversation.get_item("it1")
        assert len(item.content) == 3
        assert [part.index for part in item.content] == [0, 1, 2]
        assert item.content[2].transcript == "late slot"

    def test_audio_deltas_concatenate_samples(self, conversation, server_events):
        conversation.process_event(server_events.output_item_added("it1"))
        conversation.process_event(server_events.audio_delta("it1", [1, 2, 3]))
        result = conversation.process_event(server_events.audio_delta("it1", [4, 5]))

        assert result.item.formatted.audio.dtype == np.int16
        assert result.item.formatted.audio.tolist() == [1, 2, 3, 4, 5]
        assert result.item.content[0].audio.tolist() == [1, 2, 3, 4, 5]
        assert result.delta["audio"].tolist() == [4, 5]

    def test_delta_for_unknown_item_is_dropped(self, conversation, server_events):
        conversation.process_event(server_events.item_created("it1"))

        result = conversation.process_event(server_events.transcript_delta("ghost", "boo"))

        assert result == ProcessedEvent()
        assert ids(conversation) == ["it1"]
        assert conversation.get_item("it1").formatted.transcript == ""

    def test_delta_after_completion_is_dropped(self, conversation, server_events):
        conversation.process_event(server_events.output_item_added("it1"))
        conversation.process_event(server_events.text_delta("it1", "done"))
        conversation.process_event(server_events.output_item_done("it1"))

        result = conversation.process_event(server_events.text_delta("it1", " and more"))

        assert result.item is None
        assert conversation.get_item("it1").formatted.text == "done"

    def test_function_call_arguments(self, conversation, server_events):
        conversation.process_event(server_events.function_call_created("fc1", "get_weather", "call_1"))
        conversation.process_event(server_events.arguments_delta("fc1", "call_1", '{"city": '))
        conversation.process_event(server_events.arguments_delta("fc1", "call_1", '"Oslo"}'))

        item = conversation.get_item("fc1")
        assert item.arguments == '{"city": "Oslo"}'
        assert item.formatted.tool == {
            "type": "function",
            "name": "get_weather",
            "call_id": "call_1",
            "arguments": '{"city": "Oslo"}',
        }

    def test_function_call_done_finalizes_arguments(self, conversation, server_events):
        conversation.process_event(server_events.function_call_created("fc1", "lookup", "call_1"))
        conversation.process_event(server_events.arguments_delta("fc1", "call_1", '{"q"'))
        result = conversation.process_event(
            server_events.output_item_done(
                "fc1", item_type="function_call", name="lookup", call_id="call_1", arguments='{"q": 1}'
            )
        )

        assert result.item.status == "completed"
        assert result.item.arguments == '{"q": 1}'
        assert result.item.formatted.tool["arguments"] == '{"q": 1}'


class TestTruncateAndDelete:
    """Removal and clipping of items."""

    def test_delete_removes_item_and_repeat_is_noop(self, conversation, server_events):
        conversation.process_event(server_events.item_created("it1"))
        conversation.process_event(server_events.item_created("it2"))

        removed = conversation.process_event(server_events.item_deleted("it1"))
        again = conversation.process_event(server_events.item_deleted("it1"))

        assert removed.item.id == "it1"
        assert again == ProcessedEvent()
        assert ids(conversation) == ["it2"]
        assert conversation.get_item("it1") is None

    def test_truncate_clips_audio_and_drops_transcript(self, conversation, server_events):
        conversation.process_event(server_events.output_item_added("it1"))
        conversation.process_event(server_events.audio_delta("it1", list(range(10))))
        conversation.process_event(server_events.transcript_delta("it1", "ten samples"))

        # 4ms at 1000Hz is four samples
        result = conversation.process_event(server_events.item_truncated("it1", audio_end_ms=4))

        assert result.item.formatted.audio.tolist() == [0, 1, 2, 3]
        assert result.item.content[0].audio.tolist() == [0, 1, 2, 3]
        assert result.item.formatted.transcript == ""

    def test_truncate_unknown_item_is_dropped(self, conversation, server_events):
        assert conversation.process_event(server_events.item_truncated("ghost", 10)) == ProcessedEvent()


class TestInputAudio:
    """Buffer bookkeeping and user transcripts."""

    def test_queued_input_audio_attaches_to_next_user_item(self, conversation, server_events):
        conversation.queue_input_audio(np.array([7, 8, 9], dtype=np.int16))
        result = conversation.process_event(server_events.item_created("u1", role="user"))

        assert result.item.formatted.audio.tolist() == [7, 8, 9]
        assert conversation.queued_input_audio is None

    def test_speech_segment_sliced_from_buffer(self, conversation, server_events):
        buffer = np.arange(20, dtype=np.int16)
        conversation.process_event(
            {"event_id": "e1", "type": "input_audio_buffer.speech_started", "item_id": "u1", "audio_start_ms": 5}
        )
        conversation.process_event(
            {"event_id": "e2", "type": "input_audio_buffer.speech_stopped", "item_id": "u1", "audio_end_ms": 8},
            buffer,
        )
        result = conversation.process_event(server_events.item_created("u1", role="user"))

        assert result.item.formatted.audio.tolist() == [5, 6, 7]

    def test_buffer_events_do_not_create_items(self, conversation):
        conversation.process_event(
            {"event_id": "e1", "type": "input_audio_buffer.committed", "item_id": "u1", "previous_item_id": None}
        )
        conversation.process_event({"event_id": "e2", "type": "input_audio_buffer.cleared"})

        assert conversation.get_items() == []

    def test_commit_binds_queued_audio_to_committed_item(self, conversation, server_events):
        conversation.queue_input_audio(np.array([4, 5], dtype=np.int16))
        conversation.process_event(
            {"event_id": "e1", "type": "input_audio_buffer.committed", "item_id": "u2", "previous_item_id": None}
        )
        assert conversation.queued_input_audio is None

        other = conversation.process_event(server_events.item_created("u1", role="user"))
        committed = conversation.process_event(server_events.item_created("u2", role="user"))

        assert other.item.formatted.audio.size == 0
        assert committed.item.formatted.audio.tolist() == [4, 5]
        assert conversation.queued_speech_items == {}

    def test_cleared_buffer_drops_pending_speech(self, conversation):
        conversation.process_event(
            {"event_id": "e1", "type": "input_audio_buffer.speech_started", "item_id": "u1", "audio_start_ms": 0}
        )
        conversation.process_event({"event_id": "e2", "type": "input_audio_buffer.cleared"})

        assert conversation.queued_speech_items == {}

    def test_delete_drops_queued_state_for_uncreated_item(self, conversation, server_events):
        conversation.process_event(
            {"event_id": "e1", "type": "input_audio_buffer.speech_started", "item_id": "u1", "audio_start_ms": 0}
        )
        conversation.process_event(
            {
                "event_id": "e2",
                "type": "conversation.item.input_audio_transcription.completed",
                "item_id": "u1",
                "content_index": 0,
                "transcript": "never mind",
            }
        )

        conversation.process_event(server_events.item_deleted("u1"))

        assert conversation.queued_speech_items == {}
        assert conversation.queued_transcript_items == {}

    def test_transcript_before_item_is_queued(self, conversation, server_events):
        conversation.process_event(
            {
                "event_id": "e1",
                "type": "conversation.item.input_audio_transcription.completed",
                "item_id": "u1",
                "content_index": 0,
                "transcript": "hello",
            }
        )
        result = conversation.process_event(server_events.item_created("u1", role="user"))

        assert result.item.formatted.transcript == "hello"

    def test_transcript_after_item(self, conversation, server_events):
        conversation.process_event(
            server_events.item_created("u1", role="user", content=[{"type": "input_audio", "transcript": None}])
        )
        result = conversation.process_event(
            {
                "event_id": "e1",
                "type": "conversation.item.input_audio_transcription.completed",
                "item_id": "u1",
                "content_index": 0,
                "transcript": "hi there",
            }
        )

        assert result.delta == {"transcript": "hi there"}
        assert result.item.content[0].transcript == "hi there"
        assert result.item.formatted.transcript == "hi there"


class TestResponses:
    """Response bookkeeping."""

    def test_response_tracks_output_items(self, conversation, server_events):
        conversation.process_event(
            {"event_id": "e1", "type": "response.created", "response": {"id": "resp_1", "status": "in_progress"}}
        )
        conversation.process_event(server_events.output_item_added("it1", response_id="resp_1"))
        conversation.process_event(
            {
                "event_id": "e2",
                "type": "response.done",
                "response": {"id": "resp_1", "status": "completed", "usage": {"total_tokens": 5}},
            }
        )

        response = conversation.response_lookup["resp_1"]
        assert response["output"] == ["it1"]
        assert response["status"] == "completed"
        assert response["usage"] == {"total_tokens": 5}

    def test_clear_discards_everything(self, conversation, server_events):
        conversation.process_event({"event_id": "e0", "type": "conversation.created", "conversation": {"id": "conv_1"}})
        conversation.process_event(server_events.item_created("it1"))
        conversation.queue_input_audio(np.array([1], dtype=np.int16))

        conversation.clear()

        assert conversation.conversation_id is None
        assert conversation.get_items() == []
        assert conversation.queued_input_audio is None
