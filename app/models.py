"""
DATA MODELS MODULE
==================

This file defines the Pydantic models used by the pipeline, the HTTP API and
Firestore. The same models double as the structured-output schemas handed to
the LLM, so their field descriptions are part of the prompt.

JSON keys are camelCase (isPlant, diseaseDiagnoses, savedAt, ...) to match
the stored records; Python attributes stay snake_case.

MODELS:
  ImageInput         - One photo as a data URI (data:<mime>;base64,<payload>).
  PlantIdentity      - Output of the identification step.
  DiagnosisRecord    - One candidate disease (or the "Healthy" sentinel).
  DiagnosisResult    - Output of the diagnosis step: ranked records + isHealthy.
  RemedySuggestion   - Output of the remedies step.
  AssistantAnswer    - Output of the follow-up assistant step.
  ChatTurn           - One message of the follow-up chat (user or assistant).
  Phase              - Current state of a diagnosis session.
  DiagnosisSession   - Everything one session holds (owned by the session service).
  SessionState       - What the API returns for a session.
  PlantData / SavedPlantRecord - Firestore documents in users/{uid}/plants.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.errors import InvalidImageError
from app.utils.image_data import decoded_size, encode_data_uri, parse_data_uri
from config import MAX_MESSAGE_LENGTH

# diseaseName used for the single record of a healthy plant.
HEALTHY_DISEASE_NAME = "Healthy"
DEFAULT_CARE_TIPS = "Your plant looks healthy. Keep up its regular watering, light and feeding routine."


class CamelModel(BaseModel):
    """Base model: camelCase aliases on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def format_confidence(score: float) -> str:
    """0.82 -> '82%'."""
    return f"{round(score * 100)}%"


# ==============================================================================
# IMAGE INPUT
# ==============================================================================

class ImageInput(BaseModel):
    """
    A photo carried as a self-describing data URI. Transient: it only lives
    inside one session and is never logged.
    """
    data_uri: str

    @field_validator("data_uri")
    @classmethod
    def _must_be_image_data_uri(cls, value: str) -> str:
        media_type, _ = parse_data_uri(value)
        if not media_type.startswith("image/"):
            raise InvalidImageError(f"Expected an image, got {media_type}.")
        return value

    @classmethod
    def from_bytes(cls, data: bytes, media_type: str) -> "ImageInput":
        return cls(data_uri=encode_data_uri(data, media_type))

    @property
    def media_type(self) -> str:
        return parse_data_uri(self.data_uri)[0]

    @property
    def size_bytes(self) -> int:
        """Size of the decoded image, not of the base64 text."""
        return decoded_size(self.data_uri)


# ==============================================================================
# STEP OUTPUTS (also the structured-output schemas)
# ==============================================================================

class PlantIdentity(CamelModel):
    """Whether the photo shows a plant and, if so, what it is."""
    is_plant: bool = Field(..., description="Whether the image contains a plant.")
    common_name: Optional[str] = Field(
        None, description="The common name of the plant, if the image contains one."
    )
    latin_name: Optional[str] = Field(
        None, description="The Latin (botanical) name of the plant, if the image contains one."
    )

    @model_validator(mode="after")
    def _names_only_for_plants(self):
        # Models like to answer "" or "N/A"-style blanks; treat blanks as missing.
        self.common_name = (self.common_name or "").strip() or None
        self.latin_name = (self.latin_name or "").strip() or None
        if not self.is_plant:
            self.common_name = None
            self.latin_name = None
        return self


class DiagnosisRecord(CamelModel):
    disease_name: str = Field(..., description="The name of the diagnosed disease.")
    confidence_score: float = Field(
        ..., ge=0.0, le=1.0, description="The confidence score for the diagnosis (0-1)."
    )
    reason: str = Field(..., description="Reasoning behind the diagnosis.")
    precaution: str = Field("", description="Precaution measures for the diagnosed disease.")
    remedy: str = Field("", description="Remedies for the diagnosed disease.")

    @property
    def is_healthy_sentinel(self) -> bool:
        return self.disease_name.strip().lower() == HEALTHY_DISEASE_NAME.lower()


class DiagnosisResult(CamelModel):
    """
    Ranked disease hypotheses, most likely first.

    A healthy plant is one record named "Healthy" whose reason holds care tips,
    with is_healthy=True. normalized() enforces that shape.
    """
    disease_diagnoses: List[DiagnosisRecord] = Field(
        default_factory=list, description="List of potential diseases and confidence scores."
    )
    is_healthy: Optional[bool] = Field(None, description="Whether the plant appears to be healthy.")

    @property
    def is_usable(self) -> bool:
        """Usable iff the plant is healthy or at least one disease was found."""
        return bool(self.is_healthy) or len(self.disease_diagnoses) > 0

    def normalized(self) -> "DiagnosisResult":
        """Collapse a healthy answer into the single "Healthy" record; leave anything else as is."""
        sentinels = [d for d in self.disease_diagnoses if d.is_healthy_sentinel]
        only_sentinel = len(self.disease_diagnoses) == 1 and len(sentinels) == 1
        if not (self.is_healthy or only_sentinel):
            return self

        source = sentinels[0] if sentinels else None
        record = DiagnosisRecord(
            disease_name=HEALTHY_DISEASE_NAME,
            confidence_score=source.confidence_score if source else 1.0,
            reason=(source.reason if source else "") or DEFAULT_CARE_TIPS,
            precaution=source.precaution if source else "",
            remedy=source.remedy if source else "",
        )
        return DiagnosisResult(disease_diagnoses=[record], is_healthy=True)


class RemedySuggestion(CamelModel):
    remedies: str = Field(
        ..., description="Specific precautions and remedies for the identified disease, considering the region."
    )


class AssistantAnswer(CamelModel):
    answer: str = Field(..., description="The assistant's conversational answer to the user's question.")


# ==============================================================================
# CHAT
# ==============================================================================

class ChatTurn(CamelModel):
    """
    One message of the follow-up chat. Order in the list is the chronology;
    the list is replayed to the model verbatim on every new question.
    """
    role: Literal["user", "assistant"]
    content: str


# ==============================================================================
# SESSION
# ==============================================================================

class Phase(str, Enum):
    IDLE = "idle"
    IDENTIFYING = "identifying"
    IDENTIFIED = "identified"
    DIAGNOSING = "diagnosing"
    DIAGNOSED = "diagnosed"
    ERROR = "error"


class DiagnosisSession(BaseModel):
    """
    All state of one diagnosis session. Only DiagnosisSessionService mutates it.

    generation increases on every reset; a step result launched under an older
    generation is discarded when it resolves.
    """
    session_id: str
    generation: int = 0
    phase: Phase = Phase.IDLE
    image: Optional[ImageInput] = None
    identity: Optional[PlantIdentity] = None
    diagnosis: Optional[DiagnosisResult] = None
    chat_history: List[ChatTurn] = Field(default_factory=list)
    chat_busy: bool = False
    error: Optional[str] = None


# ==============================================================================
# API REQUEST / RESPONSE MODELS
# ==============================================================================

class DiagnosisRecordView(DiagnosisRecord):
    """A DiagnosisRecord plus the percentage label shown to the user."""

    @computed_field(alias="confidenceLabel")
    @property
    def confidence_label(self) -> str:
        return format_confidence(self.confidence_score)


class DiagnosisResultView(CamelModel):
    disease_diagnoses: List[DiagnosisRecordView] = Field(default_factory=list)
    is_healthy: Optional[bool] = None


class SessionState(CamelModel):
    """Response body for every /sessions endpoint that returns the session."""
    session_id: str
    phase: Phase
    generation: int
    has_image: bool
    image_media_type: Optional[str] = None
    identity: Optional[PlantIdentity] = None
    diagnosis: Optional[DiagnosisResultView] = None
    chat_history: List[ChatTurn] = Field(default_factory=list)
    chat_busy: bool = False
    error: Optional[str] = None

    @classmethod
    def from_session(cls, session: DiagnosisSession) -> "SessionState":
        diagnosis = None
        if session.diagnosis is not None:
            diagnosis = DiagnosisResultView.model_validate(session.diagnosis.model_dump())
        return cls(
            session_id=session.session_id,
            phase=session.phase,
            generation=session.generation,
            has_image=session.image is not None,
            image_media_type=session.image.media_type if session.image else None,
            identity=session.identity,
            diagnosis=diagnosis,
            chat_history=list(session.chat_history),
            chat_busy=session.chat_busy,
            error=session.error,
        )


class ChatRequest(CamelModel):
    """Body of POST /sessions/{id}/chat. Empty or too long returns 422."""
    question: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)


class ChatReply(CamelModel):
    answer: str
    session: SessionState


class RemedyRequest(CamelModel):
    """Body of POST /remedies."""
    disease: str = Field(..., min_length=1)
    plant_type: str = Field(..., min_length=1)
    region: Optional[str] = None


class SessionRemedyRequest(CamelModel):
    """Body of POST /sessions/{id}/remedies; disease and plant come from the session."""
    region: Optional[str] = None


class RemedyResponse(CamelModel):
    remedies: str


# ==============================================================================
# FIRESTORE RECORDS
# ==============================================================================

class PlantData(CamelModel):
    """What gets written to users/{uid}/plants (savedAt is added by the server)."""
    plant_name: Optional[str] = None
    latin_name: Optional[str] = None
    image_data_uri: str
    diagnosis: Optional[DiagnosisResult] = None


class SavedPlantRecord(PlantData):
    id: str
    user_id: str
    saved_at: datetime


class SaveResponse(CamelModel):
    id: str
    message: str
