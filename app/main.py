"""
AGRIDETECT MAIN API
===================

This module defines the FastAPI application and all HTTP endpoints. A client
(web page, mobile app, or client.py) creates a session, uploads a plant photo,
and then walks the session through identification, diagnosis and follow-up chat.

ENDPOINTS:
  GET    /                         - Returns API name and list of endpoints.
  GET    /health                   - Returns status of all services (for monitoring).
  POST   /sessions                 - Create a new diagnosis session (phase "idle").
  GET    /sessions/{id}            - Current state of a session.
  DELETE /sessions/{id}            - Forget a session.
  POST   /sessions/{id}/image      - Upload a photo (multipart, max 4MB). Resets the session.
  POST   /sessions/{id}/start      - Identify the plant in the photo.
  POST   /sessions/{id}/diagnose   - Diagnose diseases of the identified plant.
  POST   /sessions/{id}/chat       - Ask the assistant a follow-up question.
  POST   /sessions/{id}/remedies   - Regional remedies for the session's diagnosis.
  POST   /sessions/{id}/reset      - Back to "idle"; clears everything.
  POST   /sessions/{id}/save       - Save the diagnosis to your garden (Firebase login).
  GET    /garden                   - Your saved plants, newest first (Firebase login).
  POST   /remedies                 - Remedies for any disease/plant/region, no session needed.

ERRORS:
  Every error is {"detail": "<message for the user>"}. Pipeline failures are not
  HTTP errors: the session moves to phase "error" and carries the message.

STARTUP:
  The lifespan function creates the Groq service, Firebase (optional) and the
  session service. Sessions are in memory only; they end with the process.
"""

from contextlib import asynccontextmanager
from typing import List, Optional
import logging

import uvicorn
from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.errors import (
    ChatBusyError,
    ImageTooLargeError,
    InvalidImageError,
    PersistenceError,
    PhaseConflictError,
    SessionNotFoundError,
    StepFailure,
)
from app.models import (
    ChatReply,
    ChatRequest,
    RemedyRequest,
    RemedyResponse,
    SavedPlantRecord,
    SaveResponse,
    SessionRemedyRequest,
    SessionState,
)
from app.services.firestore_service import build_plant_repository, verify_user_token
from app.services.groq_service import GroqService, is_rate_limit_error
from app.services.session_service import DiagnosisSessionService

# User-friendly message when Groq rate limit (daily token quota) is exceeded on every key.
RATE_LIMIT_MESSAGE = (
    "Agridetect has reached its AI usage limit for now. "
    "Please try again in a little while."
)
LOGIN_REQUIRED_MESSAGE = "You must be logged in to save a plant."
SAVE_FAILED_MESSAGE = "There was a problem saving your plant. Please try again."
LIST_FAILED_MESSAGE = "There was a problem loading your garden. Please try again."
NOT_AN_IMAGE_MESSAGE = "The file must be an image (PNG, JPG or WEBP)."


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("Agridetect")


# -----------------------------------------------------------------------------
# GLOBAL SERVICE REFERENCES
# -----------------------------------------------------------------------------
# Set during startup (lifespan) and used by all route handlers.
groq_service: GroqService = None
session_service: DiagnosisSessionService = None
plant_repository = None


def print_title():
    """Print the Agridetect banner to the console when the server starts."""
    GREEN = "\033[92m"
    DIM = "\033[2m"
    BOLD = "\033[1m"
    RESET = "\033[0m"
    banner = f"""
{BOLD}{GREEN}   _             _     _      _            _
{GREEN}  /_\\  __ _ _ _(_)__| |___| |_ ___ __| |_
{GREEN} / _ \\/ _` | '_| / _` / -_)  _/ -_) _|  _|
{GREEN}/_/ \\_\\__, |_| |_\\__,_\\___|\\__\\___\\__|\\__|
{DIM}{GREEN}      |___/{RESET}
      {BOLD}Your AI-Powered Plant Doctor{RESET}
"""
    print(banner)


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    STARTUP:
      1. GroqService: one ChatGroq client per API key (vision + text models).
      2. PlantRepository: Firestore, only if FIREBASE_CREDENTIALS_FILE is set.
      3. DiagnosisSessionService: the four pipeline steps on top of GroqService.
    SHUTDOWN:
      Sessions are transient; they are simply dropped.
    """
    global groq_service, session_service, plant_repository

    print_title()
    logger.info("=" * 60)
    logger.info("Agridetect - Starting Up...")
    logger.info("=" * 60)

    try:
        logger.info("Initializing Groq service...")
        groq_service = GroqService()

        logger.info("Initializing Firestore...")
        plant_repository = build_plant_repository()

        logger.info("Initializing diagnosis session service...")
        session_service = DiagnosisSessionService.from_client(groq_service, plant_repository=plant_repository)

        logger.info("=" * 60)
        logger.info("Service Status:")
        logger.info("    - Groq AI: Ready")
        logger.info("    - Saved plants: %s", "Ready" if plant_repository else "Disabled")
        logger.info("    - Diagnosis sessions: Ready")
        logger.info("=" * 60)
        logger.info("Agridetect is online. Docs: http://localhost:8000/docs")

        yield

        logger.info("Shutting down Agridetect (%s session(s) dropped).", len(session_service.sessions))

    except Exception as e:
        logger.error(f"Fatal error during startup: {e}", exc_info=True)
        raise


# -------------------------------------------------------------------------
# FASTAPI APP AND CORS
# -------------------------------------------------------------------------
app = FastAPI(
    title="Agridetect API",
    description="Identify plants, diagnose diseases and get remedies from a photo",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------------------------------------------------
# HELPERS
# -------------------------------------------------------------------------

def _require_sessions() -> DiagnosisSessionService:
    if not session_service:
        raise HTTPException(status_code=503, detail="Diagnosis service not initialized")
    return session_service


def _http_error(exc: Exception) -> HTTPException:
    """Map a service exception to the HTTP error the client sees."""
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ImageTooLargeError):
        return HTTPException(status_code=413, detail=str(exc))
    if isinstance(exc, (PhaseConflictError, ChatBusyError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (InvalidImageError, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, StepFailure):
        if exc.__cause__ is not None and is_rate_limit_error(exc.__cause__):
            return HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE)
        return HTTPException(status_code=502, detail="The AI service could not answer. Please try again.")
    logger.error(f"Unexpected error: {exc}", exc_info=exc)
    return HTTPException(status_code=500, detail=f"Unexpected error: {str(exc)}")


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """uid of the Firebase user who sent the request; 401 if there is none."""
    if plant_repository is None:
        raise HTTPException(status_code=503, detail="Saving plants is not available.")
    if credentials is None:
        raise HTTPException(status_code=401, detail=LOGIN_REQUIRED_MESSAGE)
    try:
        return verify_user_token(credentials.credentials)
    except Exception as e:
        logger.warning(f"Rejected Firebase token: {e}")
        raise HTTPException(status_code=401, detail=LOGIN_REQUIRED_MESSAGE)


# =========================================================================
# API ENDPOINTS
# =========================================================================

@app.get("/")
async def root():
    """Return the API name and a short description of each endpoint."""
    return {
        "message": "Agridetect API",
        "endpoints": {
            "/sessions": "Create a diagnosis session",
            "/sessions/{session_id}/image": "Upload a plant photo (max 4MB)",
            "/sessions/{session_id}/start": "Identify the plant",
            "/sessions/{session_id}/diagnose": "Diagnose diseases",
            "/sessions/{session_id}/chat": "Ask follow-up questions",
            "/sessions/{session_id}/remedies": "Regional remedies for the diagnosis",
            "/sessions/{session_id}/reset": "Start over",
            "/sessions/{session_id}/save": "Save to your garden",
            "/garden": "Your saved plants",
            "/remedies": "Remedies for any disease",
            "/health": "System health check"
        }
    }


@app.get("/health")
async def health():
    """Return 'healthy' and whether each service is initialized."""
    return {
        "status": "healthy",
        "groq_service": groq_service is not None,
        "session_service": session_service is not None,
        "plant_repository": plant_repository is not None,
    }


@app.post("/sessions", response_model=SessionState, status_code=201)
async def create_session():
    """Create a new, empty diagnosis session."""
    service = _require_sessions()
    return SessionState.from_session(service.create_session())


@app.get("/sessions/{session_id}", response_model=SessionState)
async def get_session(session_id: str):
    service = _require_sessions()
    try:
        return SessionState.from_session(service.get_session(session_id))
    except SessionNotFoundError as e:
        raise _http_error(e)


@app.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str):
    service = _require_sessions()
    try:
        service.discard_session(session_id)
    except SessionNotFoundError as e:
        raise _http_error(e)


@app.post("/sessions/{session_id}/image", response_model=SessionState)
async def upload_image(session_id: str, image: UploadFile = File(...)):
    """
    Upload the plant photo for this session.

    Choosing a photo always starts over: whatever the session held is cleared
    first. A photo over the size limit is refused with 413 and the session is
    left exactly as it was.
    """
    service = _require_sessions()
    # "image/jpeg; name=x" -> "image/jpeg"
    content_type = (image.content_type or "").split(";")[0].strip().lower()
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail=NOT_AN_IMAGE_MESSAGE)

    try:
        # One byte past the limit is enough to know the photo is too large.
        data = await image.read(service.max_image_bytes + 1)
        session = service.load_image(session_id, data, content_type)
        return SessionState.from_session(session)
    except Exception as e:
        raise _http_error(e)


@app.post("/sessions/{session_id}/start", response_model=SessionState)
async def start(session_id: str):
    """
    Identify the plant in the uploaded photo.

    Returns the session in phase "identified" on success, or in phase "error"
    with a message (no photo, no plant found, or the AI call failed).
    """
    service = _require_sessions()
    try:
        return SessionState.from_session(await service.start(session_id))
    except Exception as e:
        raise _http_error(e)


@app.post("/sessions/{session_id}/diagnose", response_model=SessionState)
async def diagnose(session_id: str):
    """
    Diagnose the identified plant.

    Phase "diagnosed" on success (healthy or with ranked diseases), "error"
    if the image was unclear or the AI call failed.
    """
    service = _require_sessions()
    try:
        return SessionState.from_session(await service.diagnose(session_id))
    except Exception as e:
        raise _http_error(e)


@app.post("/sessions/{session_id}/chat", response_model=ChatReply)
async def chat(session_id: str, request: ChatRequest):
    """
    Ask a follow-up question about the diagnosis.

    REQUEST BODY:
    {
        "question": "Can I still eat the fruit?"
    }

    The answer is also appended to chatHistory. If the assistant is unavailable,
    the answer is an apology and the session stays usable.
    """
    service = _require_sessions()
    try:
        answer = await service.ask(session_id, request.question)
        return ChatReply(answer=answer, session=SessionState.from_session(service.get_session(session_id)))
    except Exception as e:
        raise _http_error(e)


@app.post("/sessions/{session_id}/remedies", response_model=RemedyResponse)
async def session_remedies(session_id: str, request: SessionRemedyRequest):
    """Remedies for the session's most likely disease, localized if a region is given."""
    service = _require_sessions()
    try:
        return RemedyResponse(remedies=await service.suggest_remedies(session_id, request.region))
    except Exception as e:
        raise _http_error(e)


@app.post("/sessions/{session_id}/reset", response_model=SessionState)
async def reset(session_id: str):
    service = _require_sessions()
    try:
        return SessionState.from_session(service.reset(session_id))
    except Exception as e:
        raise _http_error(e)


@app.post("/sessions/{session_id}/save", response_model=SaveResponse)
async def save(session_id: str, user_id: str = Depends(get_current_user_id)):
    """Save the diagnosed plant to the caller's garden. The session itself is unchanged."""
    service = _require_sessions()
    try:
        return await service.save(session_id, user_id)
    except PersistenceError as e:
        logger.warning(f"Save failed for session {session_id}: {e}")
        raise HTTPException(status_code=503, detail=SAVE_FAILED_MESSAGE)
    except Exception as e:
        raise _http_error(e)


@app.get("/garden", response_model=List[SavedPlantRecord])
async def garden(user_id: str = Depends(get_current_user_id)):
    """All plants the caller has saved, newest first."""
    service = _require_sessions()
    try:
        return await service.list_saved(user_id)
    except PersistenceError as e:
        logger.warning(f"Garden listing failed for user {user_id}: {e}")
        raise HTTPException(status_code=503, detail=LIST_FAILED_MESSAGE)
    except Exception as e:
        raise _http_error(e)


@app.post("/remedies", response_model=RemedyResponse)
async def remedies(request: RemedyRequest):
    """
    Remedies for a disease on a plant type, without a session.

    REQUEST BODY:
    {
        "disease": "Black Spot",
        "plantType": "Rose",
        "region": "Pune, India"      (optional)
    }
    """
    service = _require_sessions()
    try:
        text = await service.suggest_remedies_for(request.disease, request.plant_type, request.region)
        return RemedyResponse(remedies=text)
    except Exception as e:
        raise _http_error(e)


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m app.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py); used if someone does python -m app.main"""
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
