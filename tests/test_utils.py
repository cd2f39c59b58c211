"""
Tests for audio buffer, id and tracing helpers.
"""

import base64

import numpy as np
import pytest

from src.realtime_core.utils import (
    array_buffer_to_base64,
    base64_to_array_buffer,
    float_to_16bit_pcm,
    generate_id,
    merge_int16_arrays,
)
from utils.trace_context import TraceContext, latency_bucket


class TestGenerateId:
    def test_prefix_and_length(self):
        event_id = generate_id("evt_")
        assert event_id.startswith("evt_")
        assert len(event_id) == 21

    def test_ids_are_unique(self):
        assert len({generate_id("evt_") for _ in range(200)}) == 200


class TestAudioHelpers:
    """PCM16 conversion and base64 encoding."""

    def test_float_to_pcm_clips(self):
        samples = float_to_16bit_pcm(np.array([-2.0, 0.0, 0.5, 2.0], dtype=np.float32))
        assert samples.dtype == np.int16
        assert samples.tolist() == [-32767, 0, 16383, 32767]

    def test_base64_decodes_little_endian_pcm16(self):
        encoded = base64.b64encode(b"\x01\x00\xff\xff").decode("utf-8")
        assert base64_to_array_buffer(encoded).tolist() == [1, -1]

    def test_base64_drops_trailing_odd_byte(self):
        encoded = base64.b64encode(b"\x02\x00\x07").decode("utf-8")
        assert base64_to_array_buffer(encoded).tolist() == [2]

    def test_float_buffer_is_encoded_as_pcm16(self):
        encoded = array_buffer_to_base64(np.array([1.0], dtype=np.float32))
        assert base64.b64decode(encoded) == np.array([32767], dtype=np.int16).tobytes()

    def test_bytes_are_encoded_as_is(self):
        assert array_buffer_to_base64(b"\x00\x01") == "AAE="

    def test_merge_requires_int16(self):
        left = np.array([1], dtype=np.int16)
        assert merge_int16_arrays(left, np.array([2], dtype=np.int16)).tolist() == [1, 2]
        with pytest.raises(ValueError):
            merge_int16_arrays(left, np.array([2], dtype=np.int32))


class TestTraceContext:
    """Spans around tool calls (no-op tracer when no SDK is configured)."""

    def test_latency_buckets(self):
        assert latency_bucket(5) == "<100ms"
        assert latency_bucket(150) == "100-300ms"
        assert latency_bucket(999) == "300ms-1s"
        assert latency_bucket(2500) == "1-3s"
        assert latency_bucket(3000) == ">3s"

    def test_attributes_skip_missing_values(self):
        context = TraceContext("realtime.tool.lookup", session_id="sess_1", metadata={"call_id": "call_1"})
        assert context.attributes == {"realtime.session_id": "sess_1", "realtime.call_id": "call_1"}

    def test_exceptions_propagate(self):
        with pytest.raises(KeyError):
            with TraceContext("realtime.tool.lookup", item_id="it1"):
                raise KeyError("missing")
