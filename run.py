"""
RUN SCRIPT - Start the J.A.R.V.I.S relay
========================================

PURPOSE:
  Single entry point to start the relay server that the console talks to.

WHAT IT DOES:
  - Imports the FastAPI app from app.main.
  - Runs it with uvicorn on JARVIS_HOST:JARVIS_PORT (default 0.0.0.0:8000).
  - reload=True means any change to Python files will restart the server (handy for development).

USAGE:
  python run.py

  Then start the console in another terminal: python chat.py
  API docs: http://localhost:8000/docs

NOTE:
  Before running, set GROQ_API_KEY (and optionally GROQ_MODEL) in .env.
"""

import uvicorn

from config import JARVIS_HOST, JARVIS_PORT

# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",   # String path to the FastAPI app instance (module:variable).
        host=JARVIS_HOST,  # Listen on all network interfaces so other devices can connect.
        port=JARVIS_PORT,  # HTTP port; set JARVIS_PORT if 8000 is already in use.
        reload=True       # Auto-restart when .py files change (useful during development).
    )
