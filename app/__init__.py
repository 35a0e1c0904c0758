"""
AGRIDETECT APPLICATION PACKAGE
==============================

This directory is the main Python package for the Agridetect backend.

  from app.main import app
  from app.models import DiagnosisResult
  from app.services.session_service import DiagnosisSessionService

FILE STRUCTURE:
  app/
    __init__.py   - This file; marks 'app' as a package.
    main.py       - FastAPI app and all HTTP endpoints (/sessions/..., /remedies, /garden, /health).
    models.py     - Pydantic models for step outputs, sessions, API bodies and saved plants.
    errors.py     - Exceptions raised by the services (mapped to HTTP codes in main.py).
    services/     - Business logic: Groq client, pipeline steps, session state machine, Firestore.
    utils/        - Helpers: image data URIs.
"""
