"""
RELAY SERVICE MODULE
====================

Forwards a chat request to Groq in streaming mode and hands back the text deltas.
Used by POST /api/agent in app.main. One RelayService is built at startup (lifespan)
and shared by every request; it holds the upstream chat model and nothing else.

FLOW:
  1. parse_payload(body): check the request body shape, return the caller's messages.
  2. build_messages(messages): drop caller system messages, prepend the fixed
     RELAY_SYSTEM_PROMPT, convert to LangChain messages.
  3. open_stream(messages): start the upstream stream and pull its first chunk. If that
     fails we raise UpstreamError so the endpoint can still answer with a 500.
  4. The returned async iterator yields the remaining text deltas as they arrive.
     A failure after this point is logged and re-raised, which aborts the HTTP stream.

If GROQ_API_KEY is not set, chat_model is None and `configured` is False; the endpoint
reports that on every request instead of failing at startup.
"""

from typing import Any, AsyncIterator, List, Optional
import logging

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_groq import ChatGroq
from pydantic import ValidationError

from app.models import PayloadMessage
from config import GROQ_API_KEY, GROQ_MODEL, GROQ_TEMPERATURE, RELAY_SYSTEM_PROMPT

logger = logging.getLogger("J.A.R.V.I.S")


class PayloadError(ValueError):
    """The request body is valid JSON but not a usable message list."""


class UpstreamError(RuntimeError):
    """Groq failed before producing any part of the stream."""


# ==============================================================================
# PAYLOAD HANDLING
# ==============================================================================

def parse_payload(body: Any) -> List[PayloadMessage]:
    """
    Validate a decoded JSON body of the form {"messages": [{role, content}, ...]}.
    Raises PayloadError with a user-facing message when the shape is wrong.
    """
    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        raise PayloadError("Body must include a messages array.")

    messages = []
    for index, raw in enumerate(body["messages"]):
        try:
            messages.append(PayloadMessage.model_validate(raw))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'message'}: {err['msg']}"
                for err in e.errors()
            )
            raise PayloadError(f"Invalid message at index {index}: {problems}") from e
    return messages


def _to_langchain(message: PayloadMessage) -> BaseMessage:
    if message.role == "assistant":
        return AIMessage(content=message.content)
    return HumanMessage(content=message.content)


def _chunk_text(chunk: Any) -> str:
    """Text delta carried by one streamed chunk ("" for tool calls, usage-only chunks, etc.)."""
    content = getattr(chunk, "content", "")
    return content if isinstance(content, str) else ""


# ==============================================================================
# RELAY SERVICE CLASS
# ==============================================================================

class RelayService:
    """
    Wraps the upstream chat model. `chat_model` is anything with LangChain's
    `astream(messages)` interface; in production it is a ChatGroq instance.
    """

    def __init__(self, chat_model: Optional[Any], model_name: str = GROQ_MODEL):
        self.chat_model = chat_model
        self.model_name = model_name

    @classmethod
    def from_config(cls) -> "RelayService":
        """Build the Groq client from config. Without GROQ_API_KEY the service is created unconfigured."""
        if not GROQ_API_KEY:
            logger.warning("GROQ_API_KEY not set. /api/agent will answer 500 until it is configured.")
            return cls(None, GROQ_MODEL)

        chat_model = ChatGroq(
            api_key=GROQ_API_KEY,
            model=GROQ_MODEL,
            temperature=GROQ_TEMPERATURE,
        )
        logger.info("Groq client initialized (model: %s)", GROQ_MODEL)
        return cls(chat_model, GROQ_MODEL)

    @property
    def configured(self) -> bool:
        return self.chat_model is not None

    def build_messages(self, messages: List[PayloadMessage]) -> List[BaseMessage]:
        """Return exactly one system instruction followed by the caller's user/assistant messages, in order."""
        forwarded = [m for m in messages if m.role != "system"]
        dropped = len(messages) - len(forwarded)
        if dropped:
            logger.info("Dropped %s caller-supplied system message(s)", dropped)
        return [SystemMessage(content=RELAY_SYSTEM_PROMPT)] + [_to_langchain(m) for m in forwarded]

    async def open_stream(self, messages: List[BaseMessage]) -> AsyncIterator[str]:
        """
        Start streaming from Groq and wait for the first chunk.
        Returns an async iterator over the text deltas (empty deltas skipped).
        Raises UpstreamError if the call fails before anything was streamed.
        """
        if not self.configured:
            raise UpstreamError("Upstream chat model is not configured.")

        stream = self.chat_model.astream(messages)
        try:
            first = await anext(stream)
        except StopAsyncIteration:
            first = None
        except Exception as e:
            logger.error("Groq stream failed to start: %s", e, exc_info=True)
            await _close(stream)
            raise UpstreamError(str(e)) from e

        return self._relay(first, stream)

    async def _relay(self, first: Any, stream: Any) -> AsyncIterator[str]:
        chunks = 0
        try:
            if first is not None:
                text = _chunk_text(first)
                if text:
                    chunks += 1
                    yield text
                async for chunk in stream:
                    text = _chunk_text(chunk)
                    if text:
                        chunks += 1
                        yield text
        except Exception as e:
            logger.error("Groq stream failed after %s chunk(s): %s", chunks, e, exc_info=True)
            raise
        finally:
            await _close(stream)
        logger.info("Relayed %s chunk(s) from %s", chunks, self.model_name)


async def _close(stream: Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()
