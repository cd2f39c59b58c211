"""
src/realtime_core/settings.py
=============================
Central place for every environment variable and default used by the
realtime conversation core.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ------------------------------------------------------------------------------
# Transport
# ------------------------------------------------------------------------------
REALTIME_URL: str = os.getenv("REALTIME_URL", "wss://api.openai.com/v1/realtime")
REALTIME_MODEL: str = os.getenv("REALTIME_MODEL", "gpt-4o-realtime-preview-2024-10-01")

# ------------------------------------------------------------------------------
# Protocol
# ------------------------------------------------------------------------------
REALTIME_EVENT_ID_PREFIX: str = os.getenv("REALTIME_EVENT_ID_PREFIX", "evt_")

# PCM16 mono sample rate used for truncation offsets and speech slicing.
REALTIME_SAMPLE_RATE: int = int(os.getenv("REALTIME_SAMPLE_RATE", "24000"))

# ------------------------------------------------------------------------------
# Session defaults
# ------------------------------------------------------------------------------
REALTIME_DEFAULT_VOICE: str = os.getenv("REALTIME_DEFAULT_VOICE", "alloy")
REALTIME_TRANSCRIPTION_MODEL: str = os.getenv("REALTIME_TRANSCRIPTION_MODEL", "whisper-1")
REALTIME_TEMPERATURE: float = float(os.getenv("REALTIME_TEMPERATURE", "0.8"))
