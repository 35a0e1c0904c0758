from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from firebase_admin import firestore

from app.errors import PersistenceError
from app.models import PlantData
from app.services.firestore_service import PlantRepository, init_firebase
from tests.conftest import black_spot_result, run


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    def to_dict(self):
        return self._data


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def plants(db):
    return db.collection.return_value.document.return_value.collection.return_value


def _plant():
    return PlantData(
        plant_name="Rose",
        latin_name="Rosa",
        image_data_uri="data:image/png;base64,AAAA",
        diagnosis=black_spot_result(),
    )


def test_save_writes_camel_case_record_with_server_timestamp(db, plants):
    plants.add = AsyncMock(return_value=(None, MagicMock(id="doc-1")))

    plant_id = run(PlantRepository(db=db).save("user-1", _plant()))

    assert plant_id == "doc-1"
    db.collection.assert_called_with("users")
    db.collection.return_value.document.assert_called_with("user-1")
    db.collection.return_value.document.return_value.collection.assert_called_with("plants")
    document = plants.add.call_args.args[0]
    assert document["plantName"] == "Rose"
    assert document["latinName"] == "Rosa"
    assert document["imageDataUri"] == "data:image/png;base64,AAAA"
    assert document["diagnosis"]["diseaseDiagnoses"][0]["confidenceScore"] == 0.82
    assert document["savedAt"] is firestore.SERVER_TIMESTAMP


def test_save_failure_becomes_persistence_error(db, plants):
    plants.add = AsyncMock(side_effect=RuntimeError("deadline exceeded"))
    with pytest.raises(PersistenceError, match="Could not save plant."):
        run(PlantRepository(db=db).save("user-1", _plant()))


def test_list_orders_by_saved_at_descending_and_fills_ids(db, plants):
    newer = datetime(2024, 6, 2, tzinfo=timezone.utc)
    older = datetime(2024, 6, 1, tzinfo=timezone.utc)
    snapshots = [
        FakeSnapshot("b", {"plantName": "Fern", "imageDataUri": "data:image/png;base64,AAAA",
                           "diagnosis": None, "savedAt": newer}),
        FakeSnapshot("a", {"plantName": "Rose", "latinName": "Rosa", "imageDataUri": "data:image/png;base64,AAAA",
                           "diagnosis": black_spot_result().model_dump(by_alias=True), "savedAt": older}),
    ]

    async def stream():
        for snapshot in snapshots:
            yield snapshot

    plants.order_by.return_value.stream = stream

    records = run(PlantRepository(db=db).list("user-1"))

    plants.order_by.assert_called_once_with("savedAt", direction=firestore.Query.DESCENDING)
    assert [r.id for r in records] == ["b", "a"]
    assert all(r.user_id == "user-1" for r in records)
    assert records[0].diagnosis is None
    assert records[1].diagnosis.disease_diagnoses[0].disease_name == "Black Spot"


def test_list_failure_becomes_persistence_error(db, plants):
    async def stream():
        raise RuntimeError("permission denied")
        yield  # pragma: no cover

    plants.order_by.return_value.stream = stream
    with pytest.raises(PersistenceError, match="Could not retrieve plants."):
        run(PlantRepository(db=db).list("user-1"))


def test_firebase_is_disabled_without_credentials():
    assert init_firebase(credentials_file="") is False
