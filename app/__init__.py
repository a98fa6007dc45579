"""
J.A.R.V.I.S APPLICATION PACKAGE
===============================

This directory is the main Python package for the J.A.R.V.I.S relay and console.

  from app.main import app
  from app.models import PayloadMessage
  from app.console.client import ConsoleClient

FILE STRUCTURE:
  app/
    __init__.py   - This file; marks 'app' as a package.
    main.py       - FastAPI app and HTTP endpoints (/api/agent, /health, /).
    models.py     - Pydantic models for the relay's request/response bodies.
    services/     - Relay logic: payload checks, system instruction, Groq streaming.
    console/      - Client side: transcript, streaming state machine, voice capabilities.
"""
