"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all J.A.R.V.I.S settings: the Groq credential, model name,
  relay address, and the system instructions used by the relay and the console.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Exposes GROQ_API_KEY, GROQ_MODEL and GROQ_TEMPERATURE for the upstream LLM.
  - Exposes JARVIS_RELAY_URL (where the console sends messages) and the host/port run.py binds.
  - Holds the fixed system instruction the relay prepends to every request, and the
    console's own system prompt + greeting that open every transcript.

USAGE:
  Import what you need: `from config import GROQ_API_KEY, GROQ_MODEL, RELAY_SYSTEM_PROMPT`
  The relay reads the credential once at startup; a missing key is reported per request.
"""

import os
import logging
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


def _float_env(name: str, default: float) -> float:
    """Read a float from the environment; fall back to default (with a warning) on junk values."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number); using %s", name, raw, default)
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer); using %s", name, raw, default)
        return default


# ============================================================================
# GROQ API CONFIGURATION
# ============================================================================
# Groq is the upstream chat-completion provider the relay streams from.
# GROQ_API_KEY is required for /api/agent to serve anything; without it every
# request gets a 500 (the server still starts so /health can report the problem).

GROQ_API_KEY = os.getenv("GROQ_API_KEY", "").strip()
GROQ_MODEL = os.getenv("GROQ_MODEL", "").strip() or "llama-3.3-70b-versatile"
GROQ_TEMPERATURE = _float_env("GROQ_TEMPERATURE", 0.6)

# ============================================================================
# SERVER / CLIENT ADDRESSES
# ============================================================================
JARVIS_HOST = os.getenv("JARVIS_HOST", "0.0.0.0")
JARVIS_PORT = _int_env("JARVIS_PORT", 8000)

# Path of the relay endpoint on the server, and the full URL the console posts to.
RELAY_PATH = "/api/agent"
JARVIS_RELAY_URL = (
    os.getenv("JARVIS_RELAY_URL", "").strip() or f"http://localhost:{JARVIS_PORT}{RELAY_PATH}"
)

# Seconds the console waits for the relay to connect / send the next chunk.
RELAY_TIMEOUT = _float_env("JARVIS_RELAY_TIMEOUT", 60.0)

# Maximum length (characters) for a single user message typed into the console.
MAX_MESSAGE_LENGTH = 32_000

# ============================================================================
# JARVIS PERSONALITY CONFIGURATION
# ============================================================================
# The relay prepends RELAY_SYSTEM_PROMPT to every request it forwards upstream.
# Callers cannot replace it: any system message they send is dropped.

ASSISTANT_NAME = (os.getenv("ASSISTANT_NAME", "").strip() or "Jarvis")

RELAY_SYSTEM_PROMPT = (
    f"You are {ASSISTANT_NAME}, a proactive AI operator assisting a human controller. "
    "Respond with concise, actionable intelligence. Prefer structured sections "
    'titled "Situation", "Analysis", "Next Actions" when relevant. Maintain a confident tone.'
)

# The console keeps its own system prompt as the first transcript entry. It is
# never sent to the relay; it only documents the persona the transcript runs under.
CONSOLE_SYSTEM_PROMPT = f"""You are {ASSISTANT_NAME}, an adaptive, hyper-capable AI operator trained to act as a tactical
mission assistant. Your tone is confident, precise, and mission-oriented.
Always provide structured, actionable insights. When appropriate, break down
responses into "Situation", "Analysis", and "Next Actions"."""

INITIAL_ASSISTANT_GREETING = (
    f"Systems online. {ASSISTANT_NAME} standing by. What are we orchestrating today?"
)
