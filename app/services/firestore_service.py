"""
FIRESTORE SERVICE MODULE
========================

Saved plants ("My Garden") and the identity of the caller.

STORAGE LAYOUT:
  users/{userId}/plants/{autoId}
    plantName, latinName, imageDataUri, diagnosis, savedAt (server timestamp)

Records are written once and never updated. list() returns them newest first.
Any Firestore fault becomes PersistenceError with a short message; the details
go to the log only.

AUTH:
  Callers send a Firebase ID token (Authorization: Bearer <token>);
  verify_user_token() checks it with firebase_admin and returns the uid.
"""

import logging
from typing import List, Optional

import firebase_admin
from firebase_admin import auth, credentials, firestore, firestore_async

from app.errors import PersistenceError
from app.models import PlantData, SavedPlantRecord
from config import FIREBASE_CREDENTIALS_FILE, FIREBASE_PROJECT_ID

logger = logging.getLogger("Agridetect")


def init_firebase(
    credentials_file: str = FIREBASE_CREDENTIALS_FILE,
    project_id: str = FIREBASE_PROJECT_ID,
) -> bool:
    """
    Initialize the default Firebase app from a service-account file.
    Returns False (and logs a warning) when no credentials file is configured.
    """
    if not credentials_file:
        logger.warning("FIREBASE_CREDENTIALS_FILE not set. Saving plants and the garden will be unavailable.")
        return False
    try:
        firebase_admin.get_app()
        return True
    except ValueError:
        pass  # No default app yet.
    options = {"projectId": project_id} if project_id else None
    firebase_admin.initialize_app(credentials.Certificate(credentials_file), options)
    logger.info("Firebase Admin SDK initialized")
    return True


def verify_user_token(id_token: str) -> str:
    """Return the uid of a valid Firebase ID token; raises if the token is invalid or expired."""
    decoded = auth.verify_id_token(id_token)
    return decoded["uid"]


class PlantRepository:
    """Saves and lists a user's plants in Firestore (async client)."""

    def __init__(self, db=None):
        self.db = db if db is not None else firestore_async.client()

    def _plants(self, user_id: str):
        return self.db.collection("users").document(user_id).collection("plants")

    async def save(self, user_id: str, plant: PlantData) -> str:
        """Write one record with savedAt set by the server; return its document id."""
        document = plant.model_dump(by_alias=True)
        document["savedAt"] = firestore.SERVER_TIMESTAMP
        try:
            _, doc_ref = await self._plants(user_id).add(document)
        except Exception as e:
            logger.error("Error saving plant to Firestore for user %s: %s", user_id, e)
            raise PersistenceError("Could not save plant.") from e
        logger.info("Saved plant %s (%s) for user %s", doc_ref.id, plant.plant_name, user_id)
        return doc_ref.id

    async def list(self, user_id: str) -> List[SavedPlantRecord]:
        """All of the user's saved plants, newest savedAt first."""
        query = self._plants(user_id).order_by("savedAt", direction=firestore.Query.DESCENDING)
        plants: List[SavedPlantRecord] = []
        try:
            async for snapshot in query.stream():
                data = snapshot.to_dict() or {}
                plants.append(SavedPlantRecord.model_validate({**data, "id": snapshot.id, "userId": user_id}))
        except Exception as e:
            logger.error("Error getting saved plants from Firestore for user %s: %s", user_id, e)
            raise PersistenceError("Could not retrieve plants.") from e
        return plants


def build_plant_repository() -> Optional[PlantRepository]:
    """PlantRepository if Firebase is configured, else None."""
    if not init_firebase():
        return None
    return PlantRepository()
