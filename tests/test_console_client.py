from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from app.console.client import (
    ABORTED_MESSAGE,
    FAILURE_MESSAGE,
    SUGGESTIONS,
    VOICE_UNAVAILABLE_MESSAGE,
    ConsoleClient,
    ConsoleState,
)
from app.console.transcript import ChatMessage
from app.console.voice import VoiceInput, VoiceInputError, VoiceOutput, select_voice_capabilities

RELAY_URL = "http://relay.test/api/agent"


class RecordingVoiceOutput(VoiceOutput):
    def __init__(self) -> None:
        self.spoken: list[str] = []

    def speak(self, text: str) -> None:
        self.spoken.append(text)

    def cancel(self) -> None:
        pass


class ScriptedVoiceInput(VoiceInput):
    def __init__(self, partials: list[str], final: str, error: str | None = None) -> None:
        self.partials = partials
        self.final = final
        self.error = error

    async def listen(self, on_partial: Callable[[str], None]) -> str:
        for text in self.partials:
            on_partial(text)
        if self.error:
            raise VoiceInputError(self.error)
        return self.final

    def stop(self) -> None:
        pass


class FakeRelay:
    """httpx.MockTransport handler that records request bodies and replays a response."""

    def __init__(self, respond: Callable[[], httpx.Response]) -> None:
        self.respond = respond
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        return self.respond()


def _streaming(chunks: list[bytes]) -> Callable[[], httpx.Response]:
    async def body() -> AsyncIterator[bytes]:
        for chunk in chunks:
            yield chunk

    return lambda: httpx.Response(
        200,
        headers={"Content-Type": "text/plain; charset=utf-8"},
        content=body(),
    )


def _console(relay: FakeRelay, voice_output: VoiceOutput | None = None,
             voice_input: VoiceInput | None = None) -> ConsoleClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(relay))
    voice = select_voice_capabilities(voice_input=voice_input, voice_output=voice_output)
    return ConsoleClient(relay_url=RELAY_URL, http_client=http, voice=voice)


def _hanging_relay(first_chunk: bytes) -> FakeRelay:
    async def body() -> AsyncIterator[bytes]:
        yield first_chunk
        await asyncio.Event().wait()

    return FakeRelay(lambda: httpx.Response(200, content=body()))


@pytest.mark.asyncio
async def test_streamed_chunks_build_final_reply() -> None:
    relay = FakeRelay(_streaming([b"Hello", b" ", b"world"]))
    console = _console(relay)
    seen: list[str] = []
    console.subscribe(lambda m: seen.append(m.content) if m.role == "assistant" else None)

    reply = await console.submit("Say hello")

    last = console.conversation.last_assistant()
    assert reply is last
    assert last.content == "Hello world"
    assert last.pending is False
    assert console.state is ConsoleState.IDLE
    assert console.error is None
    assert seen[1:4] == ["Hello", "Hello ", "Hello world"]


@pytest.mark.asyncio
async def test_payload_excludes_system_and_ends_with_new_message() -> None:
    relay = FakeRelay(_streaming([b"Copy that."]))
    console = _console(relay)
    greeting = console.conversation.last_assistant().content

    await console.submit("  First directive  ")
    await console.submit("Second directive")

    first, second = relay.bodies
    assert first == {
        "messages": [
            {"role": "assistant", "content": greeting},
            {"role": "user", "content": "First directive"},
        ]
    }
    assert [m["role"] for m in second["messages"]] == ["assistant", "user", "assistant", "user"]
    assert second["messages"][-1] == {"role": "user", "content": "Second directive"}
    assert all(m["role"] != "system" for m in second["messages"])


@pytest.mark.asyncio
async def test_multibyte_characters_split_across_chunks() -> None:
    encoded = "Café — ✓".encode("utf-8")
    relay = FakeRelay(_streaming([encoded[:4], encoded[4:8], encoded[8:]]))
    console = _console(relay)
    seen: list[str] = []
    console.subscribe(lambda m: seen.append(m.content) if m.role == "assistant" else None)

    await console.submit("Order")

    assert console.conversation.last_assistant().content == "Café — ✓"
    assert all("�" not in text for text in seen)


@pytest.mark.asyncio
async def test_trailing_whitespace_trimmed_on_completion() -> None:
    console = _console(FakeRelay(_streaming([b"Done.", b"\n\n  "])))

    reply = await console.submit("Finish")

    assert reply.content == "Done."


@pytest.mark.asyncio
async def test_relay_error_shows_failure_message() -> None:
    relay = FakeRelay(
        lambda: httpx.Response(500, json={"error": "GROQ_API_KEY is not configured on the server."})
    )
    console = _console(relay)

    reply = await console.submit("Hello?")

    assert reply.content == FAILURE_MESSAGE
    assert reply.pending is False
    assert console.error == "GROQ_API_KEY is not configured on the server."
    assert console.state is ConsoleState.IDLE


@pytest.mark.asyncio
async def test_network_error_is_caught_and_session_continues() -> None:
    calls = {"count": 0}

    def respond() -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("connection refused")
        return _streaming([b"Back online."])()

    console = _console(FakeRelay(respond))

    failed = await console.submit("Anyone there?")
    recovered = await console.submit("Try again")

    assert failed.content == FAILURE_MESSAGE
    assert failed.pending is False
    assert recovered.content == "Back online."
    assert console.error is None


@pytest.mark.asyncio
async def test_mid_stream_error_discards_partial_reply() -> None:
    async def body() -> AsyncIterator[bytes]:
        yield b"Situation: "
        raise httpx.RemoteProtocolError("peer closed connection without sending complete message body")

    console = _console(FakeRelay(lambda: httpx.Response(200, content=body())))

    reply = await console.submit("Report")

    assert reply.content == FAILURE_MESSAGE
    assert reply.pending is False
    assert "peer closed" in console.error


@pytest.mark.asyncio
async def test_abort_finalizes_placeholder_immediately() -> None:
    console = _console(_hanging_relay(b"Partial intel "))
    arrived = asyncio.Event()
    console.subscribe(lambda m: arrived.set() if m.content == "Partial intel " else None)

    task = asyncio.create_task(console.submit("Long report"))
    await asyncio.wait_for(arrived.wait(), timeout=1)

    assert console.cancel() is True
    last = console.conversation.last_assistant()
    assert last.pending is False
    assert last.content == "Partial intel"
    assert console.state is ConsoleState.ABORTED

    reply = await asyncio.wait_for(task, timeout=1)
    assert reply is last
    assert last.content == "Partial intel"
    assert console.cancel() is False


@pytest.mark.asyncio
async def test_abort_before_any_text_uses_aborted_notice() -> None:
    console = _console(_hanging_relay(b""))

    task = asyncio.create_task(console.submit("Anything"))
    await asyncio.sleep(0)
    console.cancel()
    reply = await asyncio.wait_for(task, timeout=1)

    assert reply.content == ABORTED_MESSAGE
    assert reply.pending is False


@pytest.mark.asyncio
async def test_submit_while_transmitting_is_a_no_op() -> None:
    relay = _hanging_relay(b"Working")
    console = _console(relay)
    arrived = asyncio.Event()
    console.subscribe(lambda m: arrived.set() if m.content == "Working" else None)

    task = asyncio.create_task(console.submit("First"))
    await asyncio.wait_for(arrived.wait(), timeout=1)
    length = len(console.conversation)

    assert await console.submit("Second") is None
    assert len(console.conversation) == length
    assert len(relay.bodies) == 1

    console.cancel()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_cancelling_the_caller_does_not_leave_pending_message() -> None:
    console = _console(_hanging_relay(b"Half"))
    arrived = asyncio.Event()
    console.subscribe(lambda m: arrived.set() if m.content == "Half" else None)

    task = asyncio.create_task(console.submit("Go"))
    await asyncio.wait_for(arrived.wait(), timeout=1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    last = console.conversation.last_assistant()
    assert last.pending is False
    assert console.state is ConsoleState.ABORTED


@pytest.mark.asyncio
async def test_empty_prompt_is_ignored() -> None:
    relay = FakeRelay(_streaming([b"x"]))
    console = _console(relay)
    length = len(console.conversation)

    assert await console.submit("   ") is None
    assert len(console.conversation) == length
    assert relay.bodies == []


@pytest.mark.asyncio
async def test_completed_reply_is_spoken_unless_muted() -> None:
    speaker = RecordingVoiceOutput()
    console = _console(FakeRelay(_streaming([b"Affirmative."])), voice_output=speaker)

    await console.submit("Confirm")
    console.toggle_mute()
    await console.submit("Confirm quietly")

    assert speaker.spoken == ["Affirmative."]
    assert console.conversation.last_assistant().muted is True


@pytest.mark.asyncio
async def test_failure_message_is_not_spoken() -> None:
    speaker = RecordingVoiceOutput()
    console = _console(FakeRelay(lambda: httpx.Response(500, json={"error": "x"})), voice_output=speaker)

    await console.submit("Hello")

    assert speaker.spoken == []


@pytest.mark.asyncio
async def test_dictation_fills_input_then_submits() -> None:
    relay = FakeRelay(_streaming([b"On it."]))
    partials: list[str] = []
    voice_input = ScriptedVoiceInput(["Status", "Status rep"], "Status report")
    console = _console(relay, voice_input=voice_input)
    original = console._on_partial_transcript

    def capture(text: str) -> None:
        partials.append(text)
        original(text)

    console._on_partial_transcript = capture

    reply = await console.dictate()

    assert partials == ["Status", "Status rep"]
    assert relay.bodies[0]["messages"][-1] == {"role": "user", "content": "Status report"}
    assert reply.content == "On it."
    assert console.input_text == ""
    assert console.listening is False


@pytest.mark.asyncio
async def test_dictation_without_voice_input_reports_error() -> None:
    relay = FakeRelay(_streaming([b"x"]))
    console = _console(relay)

    assert await console.dictate() is None
    assert console.error == VOICE_UNAVAILABLE_MESSAGE
    assert relay.bodies == []


@pytest.mark.asyncio
async def test_dictation_error_is_reported() -> None:
    relay = FakeRelay(_streaming([b"x"]))
    console = _console(relay, voice_input=ScriptedVoiceInput([], "", error="not-allowed"))

    assert await console.dictate() is None
    assert console.error == "Mic input error: not-allowed"
    assert relay.bodies == []


@pytest.mark.asyncio
async def test_suggestion_sends_its_prompt() -> None:
    relay = FakeRelay(_streaming([b"Plan ready."]))
    console = _console(relay)

    await console.submit_suggestion(0)

    assert relay.bodies[0]["messages"][-1]["content"] == SUGGESTIONS[0][1]


@pytest.mark.asyncio
async def test_reset_starts_new_transcript() -> None:
    console = _console(FakeRelay(_streaming([b"ok"])))
    await console.submit("hi")

    console.reset()

    assert [m.role for m in console.conversation] == ["system", "assistant"]
    assert isinstance(console.conversation.last_assistant(), ChatMessage)
    assert console.state is ConsoleState.IDLE


@pytest.mark.asyncio
async def test_unexpected_transport_error_returns_console_to_idle() -> None:
    calls = {"count": 0}

    def respond() -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.StreamClosed()
        return _streaming([b"Second attempt."])()

    console = _console(FakeRelay(respond))

    failed = await console.submit("hi")

    assert failed.content == FAILURE_MESSAGE
    assert failed.pending is False
    assert console.state is ConsoleState.IDLE
    assert console.error

    length = len(console.conversation)
    recovered = await console.submit("again")

    assert recovered.content == "Second attempt."
    assert len(console.conversation) == length + 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_stall_the_exchange() -> None:
    console = _console(FakeRelay(_streaming([b"Hello", b" ", b"world"])))

    def broken_terminal(message: ChatMessage) -> None:
        if message.content:
            raise UnicodeEncodeError("ascii", message.content, 0, 1, "ordinal not in range(128)")

    console.subscribe(broken_terminal)

    reply = await console.submit("Say hello")
    follow_up = await console.submit("Again")

    assert reply.content == "Hello world"
    assert reply.pending is False
    assert follow_up is not None
    assert follow_up.pending is False
    assert console.state is ConsoleState.IDLE


@pytest.mark.asyncio
async def test_failing_voice_output_keeps_reply() -> None:
    class BrokenSpeaker(RecordingVoiceOutput):
        def speak(self, text: str) -> None:
            raise OSError("audio device busy")

    console = _console(FakeRelay(_streaming([b"Affirmative."])), voice_output=BrokenSpeaker())

    reply = await console.submit("Confirm")

    assert reply.content == "Affirmative."
    assert console.error is None
    assert console.state is ConsoleState.IDLE
