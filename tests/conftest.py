"""
Shared fixtures: scripted fake steps, a fake completion client and an
in-memory plant repository, so no test talks to Groq or Firestore.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.errors import PersistenceError, StepFailure
from app.models import DiagnosisRecord, DiagnosisResult, PlantIdentity, SavedPlantRecord
from app.services.session_service import DiagnosisSessionService

# Small but real PNG header; the pipeline never decodes the pixels.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeStep:
    """
    Stand-in for a pipeline step. Each call pops the next scripted outcome:
    a value is returned, an exception is raised, an async callable is awaited.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def run(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome()
        return outcome


class FakeCompletionClient:
    """Records every complete() call and answers from a script."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def complete(self, prompt, inputs, output_schema, vision=False):
        self.calls.append({"prompt": prompt, "inputs": inputs, "schema": output_schema, "vision": vision})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class InMemoryPlantRepository:
    """Same interface as PlantRepository; records kept per user in save order."""

    def __init__(self):
        self.records = {}
        self.fail = False
        self._clock = datetime(2024, 5, 1, tzinfo=timezone.utc)

    async def save(self, user_id, plant):
        if self.fail:
            raise PersistenceError("Could not save plant.")
        self._clock += timedelta(minutes=1)
        record = SavedPlantRecord(
            id=f"plant-{sum(len(v) for v in self.records.values()) + 1}",
            user_id=user_id,
            saved_at=self._clock,
            **plant.model_dump(),
        )
        self.records.setdefault(user_id, []).append(record)
        return record.id

    async def list(self, user_id):
        if self.fail:
            raise PersistenceError("Could not retrieve plants.")
        return sorted(self.records.get(user_id, []), key=lambda r: r.saved_at, reverse=True)


def step_failure(step="identify"):
    return StepFailure(step, f"The {step} step failed: upstream error")


def rose_identity():
    return PlantIdentity(is_plant=True, common_name="Rose", latin_name="Rosa")


def black_spot_result():
    return DiagnosisResult(
        disease_diagnoses=[
            DiagnosisRecord(
                disease_name="Black Spot",
                confidence_score=0.82,
                reason="Dark circular spots with fringed margins on the leaves.",
                precaution="Water at the base and keep leaves dry.",
                remedy="Remove infected leaves and apply a copper fungicide.",
            ),
            DiagnosisRecord(
                disease_name="Powdery Mildew",
                confidence_score=0.1,
                reason="Faint white patches.",
                precaution="Improve airflow.",
                remedy="Spray diluted neem oil.",
            ),
        ],
    )


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def identify_step():
    return FakeStep()


@pytest.fixture
def diagnose_step():
    return FakeStep()


@pytest.fixture
def remedy_step():
    return FakeStep()


@pytest.fixture
def assistant_step():
    return FakeStep()


@pytest.fixture
def repository():
    return InMemoryPlantRepository()


@pytest.fixture
def service(identify_step, diagnose_step, remedy_step, assistant_step, repository):
    return DiagnosisSessionService(
        identify_step,
        diagnose_step,
        remedy_step,
        assistant_step,
        plant_repository=repository,
    )
