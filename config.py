import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Server configuration
SERVER_PORT = int(os.getenv("HYPERWAVE_PORT", "5001"))
DEBUG_MODE = os.getenv("HYPERWAVE_DEBUG", "").lower() in ("1", "true", "yes")

# Gemini
GEMINI_LIVE_MODEL = os.getenv("GEMINI_LIVE_MODEL", "gemini-1.5-pro-exp-0827")
API_KEY_FILE = os.path.join(os.path.dirname(__file__), "private_data", "Gemini_API_Key.txt")
MISSING_API_KEY_MESSAGE = "GEMINI_API_KEY is not configured. Provide an API key to enable live interactions."

LIVE_GENERATION_CONFIG = {
    "temperature": 0.85,
    "top_p": 0.95,
    "top_k": 32,
    "response_mime_type": "text/plain",
}

DESIGN_GENERATION_CONFIG = {
    "temperature": 0.65,
    "top_p": 0.9,
    "top_k": 32,
    "response_mime_type": "application/json",
}

# Conversation
HISTORY_WINDOW = 12
FALLBACK_OPENER = "How can I assist?"
EMPTY_RESPONSE_PLACEHOLDER = "I generated a response but could not parse the content."

# Audio capture
MIN_RECORDING_MS = 600
AUDIO_MIME_TYPE = "audio/webm;codecs=opus"

# Speech playback parameters forwarded to the client's synthesis engine
SPEECH_RATE = 1.05
SPEECH_PITCH = 1.08
SPEECH_LANG = "en-US"

# Persisted studio state
STORAGE_KEY = "agentic-voice-studio-state@1"
STATE_FILE_PATH = os.getenv(
    "HYPERWAVE_STATE_FILE",
    os.path.join(os.path.dirname(__file__), ".studio", "studio_state.json"),
)
AUDIT_LOG_PATH = os.path.join(os.path.dirname(__file__), ".studio", "audit_trail.csv")

# When empty, consoles talk to the gateway hosted in the same process.
GATEWAY_URL = os.getenv("HYPERWAVE_GATEWAY_URL", "")
GATEWAY_TIMEOUT_SEC = None


def get_gemini_api_key() -> Optional[str]:
    """
    Resolves the Gemini API key.

    The environment wins; the private key file is the fallback the server has
    always supported. Returns None when neither is present.
    """
    api_key = os.getenv("GEMINI_API_KEY")
    if api_key:
        return api_key.strip()
    try:
        with open(API_KEY_FILE, "r") as f:
            return f.read().strip() or None
    except FileNotFoundError:
        return None
