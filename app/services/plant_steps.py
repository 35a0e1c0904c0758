"""
PLANT PIPELINE STEPS
====================

The four model calls of the diagnosis pipeline. Each step owns its prompt
and its output contract; the model call itself goes through the completion
client (GroqService, or any object with the same `complete` coroutine).

  PlantIdentificationStep - photo -> PlantIdentity (is it a plant, what is it).
  DiseaseDiagnosisStep    - photo + plant name -> DiagnosisResult (normalized).
  RemedySuggestionStep    - disease + plant + optional region -> remedy text.
  RemedyAssistantStep     - fixed diagnosis context + history + question -> answer.

Any failure of the client (network, quota, schema violation) comes out as
StepFailure. Steps never retry and never touch session state.
"""

import logging
from typing import List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from app.errors import StepFailure
from app.models import (
    AssistantAnswer,
    ChatTurn,
    DiagnosisResult,
    ImageInput,
    PlantIdentity,
    RemedySuggestion,
)
from config import (
    ASSISTANT_SYSTEM_PROMPT,
    DIAGNOSE_SYSTEM_PROMPT,
    DIAGNOSE_USER_PROMPT,
    IDENTIFY_SYSTEM_PROMPT,
    IDENTIFY_USER_PROMPT,
    REMEDIES_SYSTEM_PROMPT,
    REMEDIES_USER_PROMPT,
)

logger = logging.getLogger("Agridetect")


def _photo_prompt(system_prompt: str, user_text: str) -> ChatPromptTemplate:
    """System prompt plus a human message carrying text and the photo (as {photo_data_uri})."""
    return ChatPromptTemplate.from_messages([
        ("system", system_prompt),
        ("human", [
            {"type": "text", "text": user_text},
            {"type": "image_url", "image_url": {"url": "{photo_data_uri}"}},
        ]),
    ])


class _Step:
    name = "step"

    def __init__(self, client):
        self.client = client

    async def _complete(self, prompt, inputs, schema, vision=False):
        try:
            return await self.client.complete(prompt, inputs, schema, vision=vision)
        except Exception as e:
            logger.error("The %s step failed: %s", self.name, e)
            raise StepFailure(self.name, f"The {self.name} step failed: {e}") from e


class PlantIdentificationStep(_Step):
    """Is there a plant in the photo, and what is it called."""
    name = "identify"

    def __init__(self, client):
        super().__init__(client)
        self.prompt = _photo_prompt(IDENTIFY_SYSTEM_PROMPT, IDENTIFY_USER_PROMPT)

    async def run(self, image: ImageInput) -> PlantIdentity:
        identity = await self._complete(
            self.prompt, {"photo_data_uri": image.data_uri}, PlantIdentity, vision=True
        )
        if identity.is_plant and not identity.common_name:
            # Diagnosis needs a name to condition on.
            raise StepFailure(self.name, "The model found a plant but did not name it.")
        logger.info(
            "Identified: is_plant=%s common=%s latin=%s",
            identity.is_plant, identity.common_name, identity.latin_name,
        )
        return identity


class DiseaseDiagnosisStep(_Step):
    """
    Ranked disease hypotheses for a named plant, or a healthy verdict.

    The plant name from identification is put in the prompt so the model is
    grounded on a known taxon. The result is normalized (a healthy answer
    becomes the single "Healthy" record) but usability is the caller's call.
    """
    name = "diagnose"

    def __init__(self, client):
        super().__init__(client)
        self.prompt = _photo_prompt(DIAGNOSE_SYSTEM_PROMPT, DIAGNOSE_USER_PROMPT)

    async def run(self, image: ImageInput, plant_name: str) -> DiagnosisResult:
        if not plant_name or not plant_name.strip():
            raise ValueError("plant_name is required for diagnosis")
        result = await self._complete(
            self.prompt,
            {"photo_data_uri": image.data_uri, "plant_name": plant_name.strip()},
            DiagnosisResult,
            vision=True,
        )
        result = result.normalized()
        logger.info(
            "Diagnosed %s: healthy=%s, %s candidate(s)",
            plant_name, result.is_healthy, len(result.disease_diagnoses),
        )
        return result


class RemedySuggestionStep(_Step):
    """Prose remedy guidance; localized when a region is given, general otherwise."""
    name = "remedies"

    def __init__(self, client):
        super().__init__(client)
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", REMEDIES_SYSTEM_PROMPT),
            ("human", REMEDIES_USER_PROMPT),
        ])

    async def run(self, disease: str, plant_type: str, region: Optional[str] = None) -> str:
        region = (region or "").strip()
        suggestion = await self._complete(
            self.prompt,
            {
                "disease": disease,
                "plant_type": plant_type,
                "region": region or "Not provided",
            },
            RemedySuggestion,
        )
        remedies = suggestion.remedies.strip()
        if not remedies:
            raise StepFailure(self.name, "The model returned no remedies.")
        return remedies


class RemedyAssistantStep(_Step):
    """
    Answers follow-up questions about one diagnosis.

    The context (disease, plant type, initial remedy) is the same on every turn
    of a session; only the question and the history change. The history is
    replayed in the order given, one HumanMessage/AIMessage per turn.
    """
    name = "assistant"

    def __init__(self, client):
        super().__init__(client)
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", ASSISTANT_SYSTEM_PROMPT),
            MessagesPlaceholder(variable_name="history"),
            ("human", "{question}"),
        ])

    @staticmethod
    def history_messages(conversation_history: Sequence[ChatTurn]) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        for turn in conversation_history:
            if turn.role == "user":
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))
        return messages

    async def run(
        self,
        disease: str,
        plant_type: str,
        initial_remedy: str,
        question: str,
        conversation_history: Sequence[ChatTurn] = (),
    ) -> str:
        reply = await self._complete(
            self.prompt,
            {
                "disease": disease,
                "plant_type": plant_type,
                "initial_remedy": initial_remedy or "None given",
                "history": self.history_messages(conversation_history),
                "question": question,
            },
            AssistantAnswer,
        )
        answer = reply.answer.strip()
        if not answer:
            raise StepFailure(self.name, "The model returned an empty answer.")
        return answer
