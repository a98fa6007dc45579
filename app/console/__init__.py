"""
CONSOLE PACKAGE
===============

Client side of J.A.R.V.I.S. Nothing here imports FastAPI; the console only talks
to the relay over HTTP.

MODULES:
    transcript - ChatMessage and Conversation (ordered transcript, one system message first).
    client     - ConsoleClient: submit / stream / cancel state machine over httpx.
    voice      - Optional voice input/output capabilities, disabled when no engine is given.
"""
