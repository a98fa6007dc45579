"""
CONSOLE CLIENT MODULE
=====================

The console's state machine. It owns the transcript, sends the conversation to the
relay, and streams the reply into the transcript as it arrives.

STATES:
  IDLE -> TRANSMITTING -> IDLE     (reply finished, or failed with an inline error)
                       -> ABORTED  (user called cancel())

Only one exchange runs at a time: submit() while TRANSMITTING does nothing.

STREAMING:
  Each exchange gets an Exchange object holding the assistant placeholder, an
  incremental UTF-8 decoder and the text decoded so far. Every chunk is decoded
  (multi-byte characters split across chunks are held back until complete) and the
  placeholder content is replaced with the accumulated text. The Exchange is dropped
  when the reply completes, fails or is aborted.

ERRORS:
  Relay errors (4xx/5xx), network/stream errors and anything else raised while
  streaming never escape submit(). The placeholder is replaced with FAILURE_MESSAGE,
  the detail is kept in `error` and the console goes back to IDLE. A listener or
  voice engine that raises is logged and skipped.
  Nothing is retried; the user has to send again.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional
import asyncio
import codecs
import json
import logging

import httpx

from app.console.transcript import ChatMessage, Conversation
from app.console.voice import VoiceCapabilities, VoiceInputError, select_voice_capabilities
from config import ASSISTANT_NAME, JARVIS_RELAY_URL, MAX_MESSAGE_LENGTH, RELAY_TIMEOUT

logger = logging.getLogger("J.A.R.V.I.S")

FAILURE_MESSAGE = "⚠️ Transmission failed. Verify the control room has GROQ_API_KEY configured."
ABORTED_MESSAGE = "Transmission aborted."
VOICE_UNAVAILABLE_MESSAGE = "Speech recognition is not supported on this console."

STATUS_NOMINAL = "All systems nominal."
STATUS_DEPLOYING = f"Deploying {ASSISTANT_NAME} cognition stack…"
STATUS_PROCESSING = f"{ASSISTANT_NAME} processing multi-threaded inference…"
STATUS_COMPLETE = "Transmission complete."
STATUS_OBSTRUCTION = f"{ASSISTANT_NAME} encountered an obstruction."
STATUS_ABORTED = "Transmission aborted."
STATUS_LISTENING = "Capturing voice command…"

# Ready-made prompts the console can send with one command.
SUGGESTIONS = [
    ("Strategize", "Summarize the current mission status and recommend next moves."),
    ("Intel Sweep", "Scan news & brief me on critical developments in AI governance."),
    ("Code Ops", "Review this repository and outline the highest risk change."),
]


class ConsoleState(str, Enum):
    IDLE = "idle"
    TRANSMITTING = "transmitting"
    ABORTED = "aborted"


class RelayResponseError(Exception):
    """The relay answered with a non-2xx status."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


def _error_detail(body: bytes, fallback: str) -> str:
    """Pull the "error" field out of a relay error body; otherwise use the raw text."""
    text = body.decode("utf-8", errors="replace").strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text or fallback
    if isinstance(data, dict) and isinstance(data.get("error"), str) and data["error"]:
        return data["error"]
    return text or fallback


@dataclass
class Exchange:
    """Everything that belongs to one in-flight request."""
    placeholder: ChatMessage
    text: str = ""
    aborted: bool = False
    task: Optional["asyncio.Task[None]"] = None
    decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace")
    )

    def feed(self, chunk: bytes) -> str:
        self.text += self.decoder.decode(chunk)
        return self.text

    def flush(self) -> str:
        self.text += self.decoder.decode(b"", final=True)
        return self.text


Listener = Callable[[ChatMessage], None]


class ConsoleClient:
    """
    Talks to the relay on behalf of one console session.

    Pass `http_client` to reuse a client (tests pass one with httpx.MockTransport);
    otherwise the console creates its own and closes it in aclose().
    """

    def __init__(self, relay_url: str = JARVIS_RELAY_URL,
                 http_client: Optional[httpx.AsyncClient] = None,
                 voice: Optional[VoiceCapabilities] = None,
                 conversation: Optional[Conversation] = None):
        self.relay_url = relay_url
        self._http = http_client or httpx.AsyncClient(timeout=RELAY_TIMEOUT)
        self._owns_http = http_client is None
        self.voice = voice or select_voice_capabilities()
        self.conversation = conversation or Conversation()

        self.state = ConsoleState.IDLE
        self.input_text = ""
        self.status_text = STATUS_NOMINAL
        self.error: Optional[str] = None
        self.muted = False
        self.listening = False

        self._exchange: Optional[Exchange] = None
        self._listeners: List[Listener] = []

    async def __aenter__(self) -> "ConsoleClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.cancel()
        self.voice.output.cancel()
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------------------
    # STATE
    # ------------------------------------------------------------------------------

    @property
    def is_transmitting(self) -> bool:
        return self.state is ConsoleState.TRANSMITTING

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener(message) after every transcript change. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, message: ChatMessage) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.error("Transcript listener %r failed", listener, exc_info=True)

    def reset(self) -> None:
        """Start a fresh transcript (aborting any exchange in flight)."""
        self.cancel()
        self.conversation = Conversation()
        self.state = ConsoleState.IDLE
        self.error = None
        self.status_text = STATUS_NOMINAL

    def toggle_mute(self) -> bool:
        self.muted = not self.muted
        if self.muted:
            self.voice.output.cancel()
        return self.muted

    # ------------------------------------------------------------------------------
    # SUBMIT / STREAM
    # ------------------------------------------------------------------------------

    async def submit(self, prompt: str) -> Optional[ChatMessage]:
        """
        Send prompt to the relay and stream the reply into the transcript.
        Returns the assistant message (finished, failed or aborted), or None if
        nothing was sent (empty prompt, too long, or an exchange already in flight).
        """
        trimmed = prompt.strip()
        if not trimmed or self.is_transmitting:
            return None
        if len(trimmed) > MAX_MESSAGE_LENGTH:
            self.error = f"Message too long ({len(trimmed)} characters, limit {MAX_MESSAGE_LENGTH})."
            return None

        user_message = ChatMessage.create("user", trimmed)
        placeholder = ChatMessage.create("assistant", "", pending=True, muted=self.muted)
        payload = self.conversation.payload() + [user_message.to_payload()]

        self.input_text = ""
        self.error = None
        self.status_text = STATUS_DEPLOYING
        self.state = ConsoleState.TRANSMITTING
        self._notify(self.conversation.append(user_message))
        self._notify(self.conversation.append(placeholder))

        exchange = Exchange(placeholder)
        self._exchange = exchange
        exchange.task = asyncio.create_task(
            self._transmit(exchange, [m.model_dump() for m in payload])
        )
        try:
            await exchange.task
        except asyncio.CancelledError:
            if not exchange.aborted:
                # Our caller was cancelled, not the exchange: abort it and let the cancellation through.
                self._abort(exchange)
                raise
        finally:
            if self._exchange is exchange:
                self._exchange = None
            if placeholder.pending and not exchange.aborted:
                self._fail(exchange, "Exchange ended without a reply.")
        return placeholder

    async def submit_suggestion(self, index: int) -> Optional[ChatMessage]:
        _, body = SUGGESTIONS[index]
        return await self.submit(body)

    async def _transmit(self, exchange: Exchange, payload: List[dict]) -> None:
        try:
            async with self._http.stream("POST", self.relay_url, json={"messages": payload}) as response:
                if not response.is_success:
                    body = await response.aread()
                    raise RelayResponseError(
                        response.status_code, _error_detail(body, response.reason_phrase)
                    )
                self.status_text = STATUS_PROCESSING
                async for chunk in response.aiter_bytes():
                    if chunk:
                        self._update(exchange, exchange.feed(chunk))
            self._complete(exchange)
        except (httpx.HTTPError, RelayResponseError) as e:
            self._fail(exchange, str(e) or type(e).__name__)
        except Exception as e:
            logger.error("Unexpected error while streaming from the relay", exc_info=True)
            self._fail(exchange, str(e) or type(e).__name__)

    def _update(self, exchange: Exchange, text: str) -> None:
        if exchange.aborted:
            return
        exchange.placeholder.content = text
        self._notify(exchange.placeholder)

    def _complete(self, exchange: Exchange) -> None:
        if exchange.aborted:
            return
        message = exchange.placeholder
        message.content = exchange.flush().strip()
        message.pending = False
        self.state = ConsoleState.IDLE
        self.status_text = STATUS_COMPLETE
        self._notify(message)
        self._speak(message)

    def _fail(self, exchange: Exchange, detail: str) -> None:
        if exchange.aborted:
            return
        logger.warning("Relay exchange failed: %s", detail)
        message = exchange.placeholder
        message.content = FAILURE_MESSAGE
        message.pending = False
        self.error = detail
        self.state = ConsoleState.IDLE
        self.status_text = STATUS_OBSTRUCTION
        self._notify(message)

    # ------------------------------------------------------------------------------
    # CANCELLATION
    # ------------------------------------------------------------------------------

    def cancel(self) -> bool:
        """
        Abort the exchange in flight. The placeholder is finalized right away (partial
        reply kept) and the read task is cancelled. Returns False if nothing was running.
        """
        exchange = self._exchange
        if exchange is None or exchange.aborted or not self.is_transmitting:
            return False
        self._abort(exchange)
        if exchange.task is not None:
            exchange.task.cancel()
        return True

    def _abort(self, exchange: Exchange) -> None:
        if exchange.aborted:
            return
        exchange.aborted = True
        message = exchange.placeholder
        message.content = exchange.text.strip() or ABORTED_MESSAGE
        message.pending = False
        self.state = ConsoleState.ABORTED
        self.status_text = STATUS_ABORTED
        logger.info("Exchange aborted after %s character(s)", len(exchange.text))
        self._notify(message)

    # ------------------------------------------------------------------------------
    # VOICE
    # ------------------------------------------------------------------------------

    def _speak(self, message: ChatMessage) -> None:
        if message.role != "assistant" or message.pending or not message.content.strip():
            return
        if self.muted or message.muted:
            return
        try:
            self.voice.output.speak(message.content)
        except Exception:
            logger.error("Voice output failed", exc_info=True)

    def _on_partial_transcript(self, text: str) -> None:
        self.input_text = text

    async def dictate(self) -> Optional[ChatMessage]:
        """
        Listen for one voice command; interim text goes to input_text. A non-empty
        final transcript is submitted right away. Returns the reply, if one was sent.
        """
        if not self.voice.input.available:
            self.error = VOICE_UNAVAILABLE_MESSAGE
            return None
        if self.listening:
            return None

        self.listening = True
        self.status_text = STATUS_LISTENING
        try:
            transcript = await self.voice.input.listen(self._on_partial_transcript)
        except VoiceInputError as e:
            self.error = f"Mic input error: {e}"
            return None
        finally:
            self.listening = False

        self.input_text = transcript
        if not transcript.strip():
            return None
        return await self.submit(transcript)

    def stop_dictation(self) -> None:
        if self.listening:
            self.voice.input.stop()
            self.listening = False
