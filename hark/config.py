"""Configuration constants and helpers for Hark."""

import os
from pathlib import Path

DEFAULT_PORT: int = 7866

HARK_DIR: Path = Path.home() / ".hark"
PID_FILE: Path = HARK_DIR / "server.pid"


def get_port() -> int:
    """Return the server port from HARK_PORT env var, or DEFAULT_PORT."""
    raw = os.environ.get("HARK_PORT")
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            return DEFAULT_PORT
    return DEFAULT_PORT


# --- Speech recognition configuration ---

STT_API_KEY: str = os.environ.get("HARK_STT_API_KEY", "")
STT_BASE_URL: str = os.environ.get("HARK_STT_BASE_URL", "https://api.openai.com")
STT_MODEL: str = os.environ.get("HARK_STT_MODEL", "whisper-1")
STT_TIMEOUT: float = float(os.environ.get("HARK_STT_TIMEOUT", "10.0"))
STT_HEALTH_CHECK_INTERVAL: float = float(
    os.environ.get("HARK_STT_HEALTH_CHECK_INTERVAL", "60.0")
)
STT_LANGUAGE: str = os.environ.get("HARK_STT_LANGUAGE", "en-US")

# Seconds without speech onset before the recognizer ends on its own.
STT_LISTEN_TIMEOUT: float = float(os.environ.get("HARK_LISTEN_TIMEOUT", "8.0"))
STT_MAX_RECORD_DURATION: float = float(
    os.environ.get("HARK_MAX_RECORD_DURATION", "15.0")
)
STT_SILENCE_THRESHOLD: float = float(
    os.environ.get("HARK_SILENCE_THRESHOLD", "0.01")
)
STT_SILENCE_DURATION: float = float(os.environ.get("HARK_SILENCE_DURATION", "1.2"))


# --- ElevenLabs TTS configuration ---

ELEVENLABS_API_KEY: str = os.environ.get("HARK_ELEVENLABS_API_KEY", "")
ELEVENLABS_BASE_URL: str = os.environ.get(
    "HARK_ELEVENLABS_BASE_URL", "https://api.elevenlabs.io"
)
TTS_VOICE_ID: str = os.environ.get("HARK_TTS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
TTS_MODEL: str = os.environ.get("HARK_TTS_MODEL", "eleven_turbo_v2_5")
TTS_TIMEOUT: float = float(os.environ.get("HARK_TTS_TIMEOUT", "10.0"))
TTS_HEALTH_CHECK_INTERVAL: float = float(
    os.environ.get("HARK_TTS_HEALTH_CHECK_INTERVAL", "60.0")
)


# --- Audio pipeline configuration ---

AUDIO_SAMPLE_RATE: int = int(os.environ.get("HARK_AUDIO_SAMPLE_RATE", "16000"))


# --- Search configuration ---

SEARCH_URL_TEMPLATE: str = os.environ.get(
    "HARK_SEARCH_URL_TEMPLATE", "https://www.google.com/search?q={query}"
)
SEARCH_PROVIDER: str = os.environ.get("HARK_SEARCH_PROVIDER", "canned")
SEARX_URL: str = os.environ.get("HARK_SEARX_URL", "http://localhost:8888")
SEARCH_TIMEOUT: float = float(os.environ.get("HARK_SEARCH_TIMEOUT", "5.0"))
SEARCH_MAX_RESULTS: int = int(os.environ.get("HARK_SEARCH_MAX_RESULTS", "5"))
OPEN_BROWSER: bool = os.environ.get("HARK_OPEN_BROWSER", "1") not in ("0", "false", "")


# --- Agent configuration ---

# Minimum seconds between two recognizer restarts. 0 = restart immediately.
RESTART_MIN_INTERVAL: float = float(
    os.environ.get("HARK_RESTART_MIN_INTERVAL", "1.0")
)
