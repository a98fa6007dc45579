"""
VOICE CAPABILITIES MODULE
=========================

Optional voice input (dictation) and voice output (speech) for the console.
Capabilities are chosen once, when the console starts, by select_voice_capabilities().
When no engine is supplied the console gets the disabled implementations below, so
the rest of the code never has to check whether voice exists before using it.

INTERFACES:
  VoiceInput   - listen(on_partial) -> final transcript; stop() ends listening early.
  VoiceOutput  - speak(text); cancel() stops whatever is being spoken.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional
import logging


logger = logging.getLogger("J.A.R.V.I.S")


class VoiceInputError(RuntimeError):
    """Raised by a VoiceInput when the recognizer reports an error (no mic, denied, etc.)."""


class VoiceInput(ABC):
    """Speech-to-text engine. `available` is False for the disabled implementation."""

    available: bool = True

    @abstractmethod
    async def listen(self, on_partial: Callable[[str], None]) -> str:
        """Capture one utterance. Calls on_partial with interim text; returns the final transcript."""

    @abstractmethod
    def stop(self) -> None:
        """Stop listening; listen() returns whatever was finalized so far."""


class VoiceOutput(ABC):
    """Text-to-speech engine."""

    available: bool = True

    @abstractmethod
    def speak(self, text: str) -> None:
        """Start speaking text, interrupting anything already being spoken."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop speaking."""


class DisabledVoiceInput(VoiceInput):
    available = False

    async def listen(self, on_partial: Callable[[str], None]) -> str:
        raise VoiceInputError("Speech recognition is not available.")

    def stop(self) -> None:
        pass


class SilentVoiceOutput(VoiceOutput):
    available = False

    def speak(self, text: str) -> None:
        pass

    def cancel(self) -> None:
        pass


@dataclass
class VoiceCapabilities:
    input: VoiceInput
    output: VoiceOutput


def select_voice_capabilities(voice_input: Optional[VoiceInput] = None,
                              voice_output: Optional[VoiceOutput] = None) -> VoiceCapabilities:
    """Pick the voice engines for this console session, falling back to the disabled ones."""
    capabilities = VoiceCapabilities(
        input=voice_input or DisabledVoiceInput(),
        output=voice_output or SilentVoiceOutput(),
    )
    logger.info(
        "Voice input %s, voice output %s",
        "online" if capabilities.input.available else "offline",
        "online" if capabilities.output.available else "offline",
    )
    return capabilities
