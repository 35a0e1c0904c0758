import pytest
from pydantic import ValidationError

from app.errors import InvalidImageError
from app.models import (
    DiagnosisRecord,
    DiagnosisResult,
    DiagnosisSession,
    ImageInput,
    Phase,
    PlantIdentity,
    SessionState,
    format_confidence,
)
from tests.conftest import PNG_BYTES, black_spot_result, rose_identity


def test_identity_reads_camel_case_and_drops_names_for_non_plants():
    identity = PlantIdentity.model_validate({"isPlant": False, "commonName": "Chair", "latinName": ""})
    assert identity.is_plant is False
    assert identity.common_name is None
    assert identity.latin_name is None


def test_identity_blank_names_become_missing():
    identity = PlantIdentity.model_validate({"isPlant": True, "commonName": " Rose ", "latinName": "  "})
    assert identity.common_name == "Rose"
    assert identity.latin_name is None


def test_confidence_outside_unit_interval_is_rejected():
    with pytest.raises(ValidationError):
        DiagnosisRecord(disease_name="Rust", confidence_score=82, reason="orange pustules")


@pytest.mark.parametrize("result, usable", [
    (DiagnosisResult(disease_diagnoses=[], is_healthy=None), False),
    (DiagnosisResult(disease_diagnoses=[], is_healthy=False), False),
    (DiagnosisResult(disease_diagnoses=[], is_healthy=True), True),
    (black_spot_result(), True),
])
def test_usable_iff_healthy_or_non_empty(result, usable):
    assert result.is_usable is usable


def test_healthy_result_collapses_to_single_sentinel():
    result = DiagnosisResult(
        disease_diagnoses=[
            DiagnosisRecord(disease_name="Leaf Spot", confidence_score=0.05, reason="unlikely"),
            DiagnosisRecord(disease_name="healthy", confidence_score=0.95, reason="Water weekly."),
        ],
        is_healthy=True,
    ).normalized()

    assert result.is_healthy is True
    assert len(result.disease_diagnoses) == 1
    assert result.disease_diagnoses[0].disease_name == "Healthy"
    assert result.disease_diagnoses[0].reason == "Water weekly."


def test_healthy_flag_without_records_gets_default_tips():
    result = DiagnosisResult(disease_diagnoses=[], is_healthy=True).normalized()
    assert [d.disease_name for d in result.disease_diagnoses] == ["Healthy"]
    assert result.disease_diagnoses[0].reason
    assert result.disease_diagnoses[0].confidence_score == 1.0


def test_lone_sentinel_without_flag_is_healthy():
    result = DiagnosisResult(
        disease_diagnoses=[DiagnosisRecord(disease_name="Healthy", confidence_score=1, reason="Bright light.")],
    ).normalized()
    assert result.is_healthy is True


def test_disease_results_are_left_in_relevance_order():
    result = black_spot_result()
    assert result.normalized() == result
    assert [d.disease_name for d in result.normalized().disease_diagnoses] == ["Black Spot", "Powdery Mildew"]


def test_confidence_label():
    assert format_confidence(0.82) == "82%"
    assert format_confidence(1) == "100%"
    assert format_confidence(0.0) == "0%"


def test_session_state_serializes_camel_case_with_confidence_labels():
    session = DiagnosisSession(
        session_id="s-1",
        phase=Phase.DIAGNOSED,
        image=ImageInput.from_bytes(PNG_BYTES, "image/png"),
        identity=rose_identity(),
        diagnosis=black_spot_result(),
    )

    body = SessionState.from_session(session).model_dump(by_alias=True, mode="json")

    assert body["sessionId"] == "s-1"
    assert body["phase"] == "diagnosed"
    assert body["hasImage"] is True
    assert body["imageMediaType"] == "image/png"
    assert body["identity"] == {"isPlant": True, "commonName": "Rose", "latinName": "Rosa"}
    top = body["diagnosis"]["diseaseDiagnoses"][0]
    assert top["diseaseName"] == "Black Spot"
    assert top["confidenceScore"] == 0.82
    assert top["confidenceLabel"] == "82%"


def test_image_input_rejects_non_images():
    with pytest.raises(InvalidImageError):
        ImageInput.from_bytes(b"%PDF-1.7", "application/pdf")
