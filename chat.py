"""
JARVIS CONSOLE - Terminal front-end for the relay
=================================================

PURPOSE:
This is a command-line console for talking to J.A.R.V.I.S through the relay.
Replies are printed as they stream in. Press Ctrl-C while a reply is streaming
to abort it; the partial reply stays in the transcript.

USAGE:
    python chat.py [--url http://localhost:8000/api/agent]

    Make sure the relay is running first: python run.py

COMMANDS:
    /history    - View the transcript for this session
    /clear      - Start a new transcript
    /mute       - Toggle spoken replies
    /suggest N  - Send suggestion N (no number lists them)
    /voice      - Dictate a message (if voice input is available)
    /quit       - Exit (also /exit)
"""

import argparse
import asyncio
import signal

from app.console.client import SUGGESTIONS, ConsoleClient
from app.console.transcript import ChatMessage
from config import ASSISTANT_NAME, JARVIS_RELAY_URL


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header(client: ConsoleClient):
    print("\n" + "="*60)
    print(f"🤖 J.A.R.V.I.S - {ASSISTANT_NAME} Console")
    print("="*60)
    print(f"\nRelay: {client.relay_url}")
    print(f"Voice {'online' if client.voice.input.available else 'offline'}")
    print("\nCommands:")
    print("  /history - See the transcript")
    print("  /clear - Start a new transcript")
    print("  /mute - Toggle spoken replies")
    print("  /suggest N - Send a suggested directive")
    print("  /voice - Dictate a message")
    print("  /quit - Exit")
    print("="*60 + "\n")


def format_history(client: ConsoleClient) -> str:
    messages = client.conversation.operational()
    if not messages:
        return "No messages in this session"

    output = f"\n📜 Transcript ({len(messages)} messages):\n"
    output += "-" * 60 + "\n"
    for i, msg in enumerate(messages, 1):
        role = "You" if msg.role == "user" else ASSISTANT_NAME
        suffix = " (pending)" if msg.pending else ""
        output += f"{i}. {role}{suffix}: {msg.content}\n"
    output += "-" * 60 + "\n"
    return output


def format_suggestions() -> str:
    return "\n".join(f"  {i}. {title}: {body}" for i, (title, body) in enumerate(SUGGESTIONS, 1))


class StreamPrinter:
    """Prints only the new part of the streaming reply each time it changes."""

    def __init__(self):
        self.armed = False
        self.message_id = None
        self.printed = ""

    def start(self):
        # The label is printed when the assistant placeholder arrives.
        self.armed = True
        self.message_id = None
        self.printed = ""

    def __call__(self, message: ChatMessage):
        if not self.armed or message.role != "assistant":
            return
        if self.message_id is None:
            self.message_id = message.id
            print(f"🤖 {ASSISTANT_NAME}: ", end="", flush=True)
        if message.id != self.message_id:
            return
        if message.content.startswith(self.printed):
            print(message.content[len(self.printed):], end="", flush=True)
        else:
            # Replaced rather than extended (failure or abort notice).
            print(f"\n{message.content}", end="", flush=True)
        self.printed = message.content

    def finish(self):
        if self.message_id is not None:
            print()
        self.armed = False


# -----------------------------------------------------------------------------
# SENDING
# -----------------------------------------------------------------------------

async def transmit(client: ConsoleClient, printer: StreamPrinter, send):
    """Run one exchange; Ctrl-C aborts it instead of exiting the console."""
    loop = asyncio.get_running_loop()
    printer.start()
    try:
        loop.add_signal_handler(signal.SIGINT, client.cancel)
        handler_installed = True
    except NotImplementedError:
        # Windows event loops have no signal handlers; Ctrl-C exits instead.
        handler_installed = False
    try:
        await send()
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)
        printer.finish()
    if client.error:
        print(f"❌ {client.error}")


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

async def main(relay_url: str):
    """
    Accept messages until /quit or /exit; each message is streamed through the relay.
    """
    async with ConsoleClient(relay_url=relay_url) as client:
        print_header(client)
        printer = StreamPrinter()
        client.subscribe(printer)

        greeting = client.conversation.last_assistant()
        if greeting:
            print(f"🤖 {ASSISTANT_NAME}: {greeting.content}")

        while True:
            try:
                user_input = (await asyncio.to_thread(input, "\nYou: ")).strip()
            except (KeyboardInterrupt, EOFError):
                print("\n👋 Goodbye!")
                break

            if not user_input:
                continue

            if user_input == "/history":
                print(format_history(client))
                continue

            elif user_input == "/clear":
                client.reset()
                print("\n🔄 Transcript cleared. Starting fresh!")
                continue

            elif user_input == "/mute":
                muted = client.toggle_mute()
                print("🔇 Speech muted" if muted else "🔊 Speech enabled")
                continue

            elif user_input.startswith("/suggest"):
                arg = user_input[len("/suggest"):].strip()
                if not arg.isdigit() or not 1 <= int(arg) <= len(SUGGESTIONS):
                    print(format_suggestions())
                    continue
                index = int(arg) - 1
                await transmit(client, printer, lambda: client.submit_suggestion(index))
                continue

            elif user_input == "/voice":
                if not client.voice.input.available:
                    print("❌ Speech recognition is not supported on this console.")
                    continue
                print("🎙️  Listening...")
                await transmit(client, printer, client.dictate)
                continue

            elif user_input in ["/quit", "/exit"]:
                print("\n👋 Goodbye!")
                break

            elif user_input.startswith("/"):
                print(f"❌ Unknown command: {user_input}")
                continue

            await transmit(client, printer, lambda: client.submit(user_input))


# Run the interactive loop when this file is executed (python chat.py).
if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Terminal console for the J.A.R.V.I.S relay")
    parser.add_argument("--url", default=JARVIS_RELAY_URL, help="Relay endpoint URL")
    args = parser.parse_args()
    try:
        asyncio.run(main(args.url))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
