"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all Agridetect settings: API keys, model names, upload
  limits, Firebase credentials, and the prompt templates used by every step
  of the plant-diagnosis pipeline.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Exposes GROQ_API_KEYS, GROQ_VISION_MODEL and GROQ_TEXT_MODEL for the LLM.
  - Defines the maximum image size, maximum chat length and question length.
  - Exposes FIREBASE_CREDENTIALS_FILE / FIREBASE_PROJECT_ID for saved plants.
  - Holds the prompt templates for identify, diagnose, remedies and the assistant.

USAGE:
  Import what you need: `from config import GROQ_API_KEYS, MAX_IMAGE_BYTES, DIAGNOSE_PROMPT`
  All services import from here so behaviour is consistent.
"""

import os
import logging
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer setting; fall back to default (and warn) if it is not a number."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer); using %s", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number); using %s", name, raw, default)
        return default


# ============================================================================
# GROQ API CONFIGURATION
# ============================================================================
# Groq hosts the multimodal model that looks at the photos.
# You can set one key (GROQ_API_KEY) or several: GROQ_API_KEY, GROQ_API_KEY_2, ...
# Requests rotate through the keys one-by-one. If a key is rate limited (429),
# the same request moves on to the next key.

def _load_groq_api_keys() -> list:
    """
    Load all GROQ API keys from the environment.
    Reads GROQ_API_KEY first, then GROQ_API_KEY_2, GROQ_API_KEY_3, ... until
    a number has no value. Returns a list of non-empty key strings.
    """
    keys = []
    first = os.getenv("GROQ_API_KEY", "").strip()
    if first:
        keys.append(first)
    i = 2
    while True:
        k = os.getenv(f"GROQ_API_KEY_{i}", "").strip()
        if not k:
            break
        keys.append(k)
        i += 1
    return keys


GROQ_API_KEYS = _load_groq_api_keys()
# Vision model: identification and diagnosis (needs image input + tool calling).
GROQ_VISION_MODEL = os.getenv("GROQ_VISION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")
# Text model: remedies and the follow-up assistant.
GROQ_TEXT_MODEL = os.getenv("GROQ_TEXT_MODEL", "llama-3.3-70b-versatile")
GROQ_TEMPERATURE = _env_float("GROQ_TEMPERATURE", 0.2)

# ============================================================================
# FIREBASE CONFIGURATION
# ============================================================================
# Saved plants live in Firestore under users/{uid}/plants, and the caller's
# identity comes from a Firebase ID token. Point FIREBASE_CREDENTIALS_FILE at a
# service-account JSON; if it is empty, saving and the garden are disabled.

FIREBASE_CREDENTIALS_FILE = os.getenv("FIREBASE_CREDENTIALS_FILE", "").strip()
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "").strip()

# ============================================================================
# LIMITS
# ============================================================================
# Images above this size are rejected before the pipeline starts (4 MiB).
MAX_IMAGE_BYTES = _env_int("MAX_IMAGE_BYTES", 4 * 1024 * 1024)

# Maximum number of chat turns (user + assistant) kept in one session.
# The whole history is replayed to the model on every question, so once the
# limit is reached further questions are refused instead of dropping old turns.
MAX_CHAT_TURNS = _env_int("MAX_CHAT_TURNS", 40)

# Maximum length (characters) for a single follow-up question.
MAX_MESSAGE_LENGTH = 2_000

# ============================================================================
# USER-FACING MESSAGES
# ============================================================================

IMAGE_TOO_LARGE_MESSAGE = "Please upload an image smaller than 4MB."
NO_IMAGE_MESSAGE = "Please select an image first."
NO_PLANT_MESSAGE = "We couldn't detect a plant in the image. Please try a different photo."
IDENTIFY_FAILED_MESSAGE = "An error occurred during plant identification. Please try again."
START_OVER_MESSAGE = "An error occurred. Please start over."
UNCLEAR_IMAGE_MESSAGE = "Could not complete the diagnosis. The image may be unclear."
DIAGNOSE_FAILED_MESSAGE = "An error occurred during diagnosis. Please try again."
ASSISTANT_APOLOGY = "Sorry, I'm having trouble thinking right now. Please try again in a moment."

# ============================================================================
# PROMPT TEMPLATES
# ============================================================================
# Each template is rendered by a LangChain ChatPromptTemplate, so {name}
# placeholders are filled from the step's inputs. The output format is not
# described here: it is enforced by the structured-output schema.

IDENTIFY_SYSTEM_PROMPT = """You are an expert botanist. The user has uploaded a photo.

Decide whether the photo shows a plant (any part of a plant counts: leaves, stem, flowers, fruit).
- If it does, set isPlant to true and give the plant's common name and its Latin (botanical) name.
- If it does not, set isPlant to false and leave both names empty.
Be as specific as the photo allows."""

IDENTIFY_USER_PROMPT = "Identify the plant in this photo."

DIAGNOSE_SYSTEM_PROMPT = """You are an expert in plant pathology. The user has uploaded an image of a plant they say is a "{plant_name}".

First, briefly confirm if the image does seem to contain a {plant_name}.

Then, identify potential diseases affecting the plant in the image and provide a confidence score for each diagnosis. If the plant appears healthy, set the isHealthy flag to true and provide some general care tips in the 'reason' field of a single diagnosis object with a diseaseName of "Healthy".

Provide a diagnosis for potential plant diseases, a confidence score (0-1) for each diagnosis, the reasoning behind your diagnosis, precaution measures and remedies.
Order the diagnoses from most likely to least likely."""

DIAGNOSE_USER_PROMPT = "Analyze this photo of my {plant_name}."

REMEDIES_SYSTEM_PROMPT = """You are an expert in plant diseases and their remedies. Given the identified disease, plant type, and region, suggest specific precautions and remedies.

Disease: {disease}
Plant Type: {plant_type}
Region: {region}

Provide detailed and practical advice, taking into account the local climate and resources available in the specified region, if provided. If no region is provided, provide general advice applicable to most regions."""

REMEDIES_USER_PROMPT = "What should I do about {disease} on my {plant_type}?"

ASSISTANT_SYSTEM_PROMPT = """You are a friendly and helpful gardening assistant. The user has been given a diagnosis for their plant and has a follow-up question.

Your role is to answer their question based on the context provided. Be conversational and clear in your response.

Context:
- Plant Type: {plant_type}
- Diagnosed Disease: {disease}
- Initial Recommended Remedy: {initial_remedy}

The earlier conversation follows. Then answer the user's new question."""
