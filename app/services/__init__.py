"""
SERVICES PACKAGE
=================

Business logic lives here. The API layer (app.main) calls these services;
they don't handle HTTP, only payload checks and the upstream LLM stream.

MODULES:
    relay_service - Sanitize the message list, prepend the system instruction, stream from Groq.
"""
