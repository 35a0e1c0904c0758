"""
DIAGNOSIS SESSION SERVICE MODULE
================================

Drives one user through identify -> diagnose -> chat -> save. Holds every
session in memory (sessions dict, keyed by session_id) and is the only code
that changes a DiagnosisSession.

PHASES:
  idle --start--> identifying --ok, plant--> identified --diagnose--> diagnosing --ok, usable--> diagnosed
  identifying --not a plant / failure--> error
  diagnosing --unusable / failure--> error
  idle --start without image--> error
  any --reset--> idle        (the only way out of error)

  Loading a new image is a reset followed by storing the image. An image above
  max_image_bytes is refused before anything changes.

  Any other event in the wrong phase raises PhaseConflictError and leaves the
  session untouched. Because the phase is set to identifying/diagnosing before
  the model is awaited, a second start/diagnose cannot overlap the first.

STALE RESULTS:
  Every awaited step remembers session.generation at launch. reset (and image
  replacement) bumps the generation, so a step that resolves afterwards is
  logged and dropped instead of overwriting the fresh session.

CHAT:
  Only in diagnosed. chat_busy (separate from the phase) stops overlapping
  questions. The assistant is grounded on the first diagnosis record only.
  If the assistant fails, a fixed apology is appended as the assistant turn
  and the phase stays diagnosed.
"""

import logging
import uuid
from typing import Dict, List, Optional

from app.errors import (
    ChatBusyError,
    ImageTooLargeError,
    PersistenceError,
    PhaseConflictError,
    SessionNotFoundError,
    StepFailure,
)
from app.models import (
    ChatTurn,
    DiagnosisRecord,
    DiagnosisSession,
    ImageInput,
    Phase,
    PlantData,
    SavedPlantRecord,
    SaveResponse,
)
from app.services.plant_steps import (
    DiseaseDiagnosisStep,
    PlantIdentificationStep,
    RemedyAssistantStep,
    RemedySuggestionStep,
)
from config import (
    ASSISTANT_APOLOGY,
    DIAGNOSE_FAILED_MESSAGE,
    IDENTIFY_FAILED_MESSAGE,
    IMAGE_TOO_LARGE_MESSAGE,
    MAX_CHAT_TURNS,
    MAX_IMAGE_BYTES,
    NO_IMAGE_MESSAGE,
    NO_PLANT_MESSAGE,
    START_OVER_MESSAGE,
    UNCLEAR_IMAGE_MESSAGE,
)

logger = logging.getLogger("Agridetect")

# Used as plant type in prompts when identification gave no common name.
FALLBACK_PLANT_TYPE = "the plant"


class DiagnosisSessionService:
    """
    Owns all diagnosis sessions and the transitions between phases.
    Steps are injected so tests can swap in fakes; from_client() wires the real ones.
    """

    def __init__(
        self,
        identify_step: PlantIdentificationStep,
        diagnose_step: DiseaseDiagnosisStep,
        remedy_step: RemedySuggestionStep,
        assistant_step: RemedyAssistantStep,
        plant_repository=None,
        max_image_bytes: int = MAX_IMAGE_BYTES,
        max_chat_turns: int = MAX_CHAT_TURNS,
    ):
        self.identify_step = identify_step
        self.diagnose_step = diagnose_step
        self.remedy_step = remedy_step
        self.assistant_step = assistant_step
        self.plant_repository = plant_repository
        self.max_image_bytes = max_image_bytes
        self.max_chat_turns = max_chat_turns
        self.sessions: Dict[str, DiagnosisSession] = {}

    @classmethod
    def from_client(cls, client, plant_repository=None, **kwargs) -> "DiagnosisSessionService":
        """Build the four steps on one completion client (normally GroqService)."""
        return cls(
            PlantIdentificationStep(client),
            DiseaseDiagnosisStep(client),
            RemedySuggestionStep(client),
            RemedyAssistantStep(client),
            plant_repository=plant_repository,
            **kwargs,
        )

    # ------------------------------------------------------------------------------
    # SESSION LOOKUP
    # ------------------------------------------------------------------------------

    def create_session(self) -> DiagnosisSession:
        session = DiagnosisSession(session_id=str(uuid.uuid4()))
        self.sessions[session.session_id] = session
        logger.info("Created session %s", session.session_id)
        return session

    def get_session(self, session_id: str) -> DiagnosisSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found.")
        return session

    def discard_session(self, session_id: str) -> None:
        """Forget a session entirely (page reload). In-flight steps for it are dropped when they resolve."""
        session = self.get_session(session_id)
        session.generation += 1
        del self.sessions[session_id]
        logger.info("Discarded session %s", session_id)

    # ------------------------------------------------------------------------------
    # TRANSITION HELPERS
    # ------------------------------------------------------------------------------

    def _transition(self, session: DiagnosisSession, phase: Phase, error: Optional[str] = None) -> None:
        logger.info("Session %s: %s -> %s", session.session_id, session.phase.value, phase.value)
        session.phase = phase
        session.error = error

    def _fail(self, session: DiagnosisSession, message: str) -> None:
        self._transition(session, Phase.ERROR, error=message)

    def _require_phase(self, session: DiagnosisSession, event: str, *allowed: Phase) -> None:
        if session.phase not in allowed:
            raise PhaseConflictError(
                f"Cannot {event} while the session is {session.phase.value}."
            )

    def _is_stale(self, session: DiagnosisSession, generation: int) -> bool:
        """True if the session was reset, replaced or discarded since generation was captured."""
        stale = self.sessions.get(session.session_id) is not session or session.generation != generation
        if stale:
            logger.info(
                "Session %s: discarding result from generation %s (now %s)",
                session.session_id, generation, session.generation,
            )
        return stale

    def _clear(self, session: DiagnosisSession) -> None:
        session.generation += 1
        session.image = None
        session.identity = None
        session.diagnosis = None
        session.chat_history = []
        session.chat_busy = False
        self._transition(session, Phase.IDLE)

    # ------------------------------------------------------------------------------
    # USER EVENTS
    # ------------------------------------------------------------------------------

    def reset(self, session_id: str) -> DiagnosisSession:
        """Back to idle from any phase: clears image, identity, diagnosis, chat and error."""
        session = self.get_session(session_id)
        self._clear(session)
        return session

    def load_image(self, session_id: str, data: bytes, media_type: str) -> DiagnosisSession:
        """
        Choose a new photo. Oversized or invalid photos are refused before the
        session changes; otherwise the session is reset and the photo stored.
        """
        session = self.get_session(session_id)
        if len(data) > self.max_image_bytes:
            logger.warning(
                "Session %s: image of %s bytes refused (limit %s)",
                session_id, len(data), self.max_image_bytes,
            )
            raise ImageTooLargeError(IMAGE_TOO_LARGE_MESSAGE)
        image = ImageInput.from_bytes(data, media_type)
        self._clear(session)
        session.image = image
        logger.info("Session %s: loaded %s image (%s bytes)", session_id, image.media_type, len(data))
        return session

    async def start(self, session_id: str) -> DiagnosisSession:
        """idle -> identifying -> identified | error."""
        session = self.get_session(session_id)
        self._require_phase(session, "start", Phase.IDLE)

        if session.image is None:
            self._fail(session, NO_IMAGE_MESSAGE)
            return session
        if session.image.size_bytes > self.max_image_bytes:
            raise ImageTooLargeError(IMAGE_TOO_LARGE_MESSAGE)

        generation = session.generation
        session.identity = None
        session.diagnosis = None
        self._transition(session, Phase.IDENTIFYING)

        try:
            identity = await self.identify_step.run(session.image)
        except StepFailure:
            if not self._is_stale(session, generation):
                self._fail(session, IDENTIFY_FAILED_MESSAGE)
            return session

        if self._is_stale(session, generation):
            return session
        if identity.is_plant:
            session.identity = identity
            self._transition(session, Phase.IDENTIFIED)
        else:
            self._fail(session, NO_PLANT_MESSAGE)
        return session

    async def diagnose(self, session_id: str) -> DiagnosisSession:
        """identified -> diagnosing -> diagnosed | error."""
        session = self.get_session(session_id)
        self._require_phase(session, "diagnose", Phase.IDENTIFIED)

        if session.image is None or session.identity is None or not session.identity.common_name:
            self._fail(session, START_OVER_MESSAGE)
            return session

        generation = session.generation
        self._transition(session, Phase.DIAGNOSING)

        try:
            result = await self.diagnose_step.run(session.image, session.identity.common_name)
        except StepFailure:
            if not self._is_stale(session, generation):
                self._fail(session, DIAGNOSE_FAILED_MESSAGE)
            return session

        if self._is_stale(session, generation):
            return session
        if result.is_usable:
            session.diagnosis = result
            self._transition(session, Phase.DIAGNOSED)
        else:
            self._fail(session, UNCLEAR_IMAGE_MESSAGE)
        return session

    def _grounding(self, session: DiagnosisSession) -> DiagnosisRecord:
        """The diagnosis record the chat and remedies are about: the first (most likely) one."""
        return session.diagnosis.disease_diagnoses[0]

    def _plant_type(self, session: DiagnosisSession) -> str:
        if session.identity and session.identity.common_name:
            return session.identity.common_name
        return FALLBACK_PLANT_TYPE

    async def ask(self, session_id: str, question: str) -> str:
        """
        Ask the assistant a follow-up question and return its answer.

        The question is appended as a user turn first; the history sent to the
        model is everything before it, in order. On failure the apology becomes
        the answer.
        """
        session = self.get_session(session_id)
        self._require_phase(session, "ask a question", Phase.DIAGNOSED)
        if session.chat_busy:
            raise ChatBusyError("Please wait for the answer to your previous question.")
        question = (question or "").strip()
        if not question:
            raise ValueError("Question must not be empty.")
        if len(session.chat_history) + 2 > self.max_chat_turns:
            raise ValueError("This conversation is full. Reset to start a new diagnosis.")

        history: List[ChatTurn] = list(session.chat_history)
        session.chat_history.append(ChatTurn(role="user", content=question))
        session.chat_busy = True
        generation = session.generation

        try:
            grounding = self._grounding(session)
            try:
                answer = await self.assistant_step.run(
                    disease=grounding.disease_name,
                    plant_type=self._plant_type(session),
                    initial_remedy=grounding.remedy,
                    question=question,
                    conversation_history=history,
                )
            except StepFailure as e:
                logger.warning("Session %s: assistant failed, replying with apology: %s", session_id, e)
                answer = ASSISTANT_APOLOGY
            if not self._is_stale(session, generation):
                session.chat_history.append(ChatTurn(role="assistant", content=answer))
        finally:
            if not self._is_stale(session, generation):
                session.chat_busy = False
        return answer

    async def suggest_remedies(self, session_id: str, region: Optional[str] = None) -> str:
        """Remedy guidance for the session's first diagnosis; does not change the phase."""
        session = self.get_session(session_id)
        self._require_phase(session, "suggest remedies", Phase.DIAGNOSED)
        grounding = self._grounding(session)
        if session.diagnosis.is_healthy:
            raise ValueError("The plant looks healthy; there is nothing to treat.")
        return await self.remedy_step.run(grounding.disease_name, self._plant_type(session), region)

    async def suggest_remedies_for(self, disease: str, plant_type: str, region: Optional[str] = None) -> str:
        """Remedy guidance outside any session."""
        return await self.remedy_step.run(disease, plant_type, region)

    # ------------------------------------------------------------------------------
    # PERSISTENCE
    # ------------------------------------------------------------------------------

    def _require_repository(self):
        if self.plant_repository is None:
            raise PersistenceError("Saving plants is not available.")
        return self.plant_repository

    async def save(self, session_id: str, user_id: str) -> SaveResponse:
        """
        Save the diagnosed session to the user's garden.
        Fire-and-forget for the pipeline: the phase is not changed either way.
        The reply is built from the session as it was when the save started,
        so a reset during the write does not affect it.
        """
        session = self.get_session(session_id)
        self._require_phase(session, "save", Phase.DIAGNOSED)
        if not user_id:
            raise PermissionError("You must be logged in to save a plant.")
        repository = self._require_repository()

        plant = PlantData(
            plant_name=session.identity.common_name,
            latin_name=session.identity.latin_name,
            image_data_uri=session.image.data_uri,
            diagnosis=session.diagnosis,
        )
        plant_id = await repository.save(user_id, plant)
        return SaveResponse(id=plant_id, message=f"{plant.plant_name} has been added to your garden.")

    async def list_saved(self, user_id: str) -> List[SavedPlantRecord]:
        return await self._require_repository().list(user_id)
