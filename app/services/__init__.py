"""
SERVICES PACKAGE
=================

Business logic lives here. The API layer (app.main) calls these services;
they don't handle HTTP, only the diagnosis flow, LLM calls, and data.

MODULES:
    groq_service      - Structured completions on Groq (LangChain), multi-key rotation.
    plant_steps       - The four pipeline steps: identify, diagnose, remedies, assistant.
    session_service   - Diagnosis session state machine (identify -> diagnose -> chat -> save).
    firestore_service - Saved plants in Firestore + Firebase ID-token verification.
"""
