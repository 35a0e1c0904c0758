"""
RUN SCRIPT - Start the Agridetect server
========================================

PURPOSE:
  Single entry point to start the backend.

WHAT IT DOES:
  - Imports the FastAPI app from app.main.
  - Runs it with uvicorn on host 0.0.0.0 (accept connections from any interface) and port 8000.
  - reload=True means any change to Python files will restart the server (handy for development).

USAGE:
  python run.py

  Then use the API from the web/mobile client or from client.py.
  API docs: http://localhost:8000/docs

NOTE:
  Before running, set GROQ_API_KEY (and optionally FIREBASE_CREDENTIALS_FILE to
  enable saving plants) in .env.
"""

import uvicorn

# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",   # String path to the FastAPI app instance (module:variable).
        host="0.0.0.0",   # Listen on all network interfaces so other devices can connect.
        port=8000,        # HTTP port; change if 8000 is already in use.
        reload=True       # Auto-restart when .py files change (useful during development).
    )
