"""
J.A.R.V.I.S MAIN API
====================

This module defines the FastAPI application and its HTTP endpoints. The server is
a thin relay: the console posts the conversation, the server adds Jarvis's system
instruction, asks Groq for a streamed completion and forwards the text as it arrives.

ENDPOINTS:
  GET  /           - Returns API name and list of endpoints.
  GET  /health     - Returns whether the relay is initialized and has a Groq key.
  POST /api/agent  - Relay: body {"messages": [{role, content}, ...]}; response is the
                     assistant reply as a plain UTF-8 text stream.

ERRORS (all as {"error": "..."}):
  500 - GROQ_API_KEY missing (checked first, whatever the body), or Groq failed before streaming.
  400 - Body is not JSON, has no messages array, or a message has the wrong shape.
  If Groq fails mid-stream, the response body is cut off instead of ending cleanly.

STARTUP:
  The lifespan function builds a single RelayService (and its Groq client) and stores it
  on app.state. Endpoints receive it through the get_relay_service dependency, which
  tests replace via app.dependency_overrides.
"""


from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from contextlib import asynccontextmanager
from typing import AsyncIterator
import uvicorn
import logging

from app.models import ErrorResponse
from app.services.relay_service import PayloadError, RelayService, UpstreamError, parse_payload
from config import JARVIS_HOST, JARVIS_PORT, RELAY_PATH

# Returned when Groq fails before sending anything.
UPSTREAM_FAILURE_MESSAGE = "Jarvis failed to complete the directive."
MISSING_KEY_MESSAGE = "GROQ_API_KEY is not configured on the server."
INVALID_JSON_MESSAGE = "Invalid JSON payload."

STREAM_HEADERS = {"Cache-Control": "no-store"}
STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("J.A.R.V.I.S")


def print_title():
    """Print the J.A.R.V.I.S ASCII art banner to the console when the server starts."""
    CYAN    = "\033[96m"
    BLUE    = "\033[94m"
    MAGENTA = "\033[95m"
    WHITE   = "\033[97m"
    DIM     = "\033[2m"
    BOLD    = "\033[1m"
    RESET   = "\033[0m"

    banner = f"""
{BOLD}{CYAN}      ██╗ █████╗ ██████╗ ██╗   ██╗██╗███████╗
{BLUE}      ██║██╔══██╗██╔══██╗██║   ██║██║██╔════╝
{BLUE}      ██║███████║██████╔╝██║   ██║██║███████╗
{MAGENTA} ██   ██║██╔══██║██╔══██╗╚██╗ ██╔╝██║╚════██║
{MAGENTA} ╚█████╔╝██║  ██║██║  ██║ ╚████╔╝ ██║███████║
{DIM}{CYAN}  ╚════╝ ╚═╝  ╚═╝╚═╝  ╚═╝  ╚═══╝  ╚═╝╚══════╝{RESET}
      {WHITE}{BOLD}Relay online: streaming directives to the cognition stack{RESET}
"""
    print(banner)

# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the RelayService once per process and keep it on app.state for the
    lifetime of the server. A missing GROQ_API_KEY is logged, not fatal: the
    relay answers 500 per request so the problem is visible to the console.
    """
    print_title()
    logger.info("=" * 60)
    logger.info("J.A.R.V.I.S relay - Starting Up...")
    logger.info("=" * 60)

    try:
        logger.info("Initializing relay service...")
        relay_service = RelayService.from_config()
        app.state.relay_service = relay_service

        logger.info("=" * 60)
        logger.info("Service Status:")
        logger.info("    - Relay: Ready")
        logger.info("    - Groq (%s): %s", relay_service.model_name,
                    "Ready" if relay_service.configured else "Missing GROQ_API_KEY")
        logger.info("=" * 60)
        logger.info("Relay endpoint: http://localhost:%s%s", JARVIS_PORT, RELAY_PATH)
        logger.info("=" * 60)
    except Exception as e:
        logger.error(f"Fatal error during startup: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down J.A.R.V.I.S relay. Goodbye!")
    app.state.relay_service = None


# -------------------------------------------------------------------------
# FASTAPI APP AND CORS
# -------------------------------------------------------------------------
app = FastAPI(
    title="J.A.R.V.I.S Relay",
    description="Streams Jarvis replies from Groq to the console",
    lifespan=lifespan
)

# Allow any origin so a console served from another port or device can call the relay.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_relay_service(request: Request) -> RelayService:
    """Dependency: the RelayService built during startup (None before lifespan runs)."""
    return getattr(request.app.state, "relay_service", None)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


async def _encode(chunks: AsyncIterator[str]) -> AsyncIterator[bytes]:
    async for text in chunks:
        yield text.encode("utf-8")


# =========================================================================
# API ENDPOINTS
# =========================================================================

@app.get("/")
async def root():
    """Return the API name and a short description of each endpoint (for discovery)."""
    return {
        "message": "J.A.R.V.I.S Relay",
        "endpoints": {
            RELAY_PATH: "Stream an assistant reply for a message list",
            "/health": "System health check"
        }
    }


@app.get("/health")
async def health(relay_service: RelayService = Depends(get_relay_service)):
    """Return 'healthy' plus whether the relay exists and has a Groq credential."""
    return {
        "status": "healthy",
        "relay_service": relay_service is not None,
        "upstream_configured": bool(relay_service and relay_service.configured),
        "model": relay_service.model_name if relay_service else None,
    }


@app.post(RELAY_PATH)
async def agent(request: Request, relay_service: RelayService = Depends(get_relay_service)):
    """
    Relay endpoint - stream a Jarvis reply for the posted conversation.

    REQUEST BODY:
    {
        "messages": [
            {"role": "assistant", "content": "Systems online."},
            {"role": "user", "content": "Status report."}
        ]
    }

    RESPONSE:
    200 text/plain; charset=utf-8, Cache-Control: no-store. The body is the reply text,
    written chunk by chunk as Groq produces it.

    Caller system messages are dropped; the relay always sends exactly one system
    instruction (its own) first.
    """
    if relay_service is None or not relay_service.configured:
        return _error(500, MISSING_KEY_MESSAGE)

    try:
        body = await request.json()
    except ValueError:
        return _error(400, INVALID_JSON_MESSAGE)

    try:
        messages = relay_service.build_messages(parse_payload(body))
    except PayloadError as e:
        logger.warning(f"Rejected relay payload: {e}")
        return _error(400, str(e))

    try:
        chunks = await relay_service.open_stream(messages)
    except UpstreamError:
        return _error(500, UPSTREAM_FAILURE_MESSAGE)

    return StreamingResponse(
        _encode(chunks),
        media_type=STREAM_MEDIA_TYPE,
        headers=STREAM_HEADERS,
    )


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m app.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py); used if someone does python -m app.main"""
    uvicorn.run(
        "app.main:app",
        host=JARVIS_HOST,
        port=JARVIS_PORT,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
