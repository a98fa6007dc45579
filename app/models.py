"""
DATA MODELS MODULE
==================

This file defines the Pydantic models used on the wire between the console and
the relay. The relay validates each incoming message with them; the console uses
them to build the payload it posts.

MODELS:
  PayloadMessage  - One message on the wire (role + content).
  RelayRequest    - Body of POST /api/agent: {"messages": [PayloadMessage, ...]}.
  ErrorResponse   - Body of every 400/500 the relay returns: {"error": "..."}.
"""

from pydantic import BaseModel
from typing import List, Literal

# ==============================================================================
# WIRE MODELS
# ==============================================================================

ChatRole = Literal["user", "assistant", "system"]


class PayloadMessage(BaseModel):
    """
    A single message as sent to the relay. Order in the list defines chronology.
    Extra keys sent by a caller (ids, timestamps, flags) are ignored.
    """
    role: ChatRole
    content: str


class RelayRequest(BaseModel):
    """Request body for POST /api/agent."""
    messages: List[PayloadMessage]


class ErrorResponse(BaseModel):
    """Response body for every rejected relay request."""
    error: str
