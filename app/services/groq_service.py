"""
GROQ SERVICE MODULE
===================

The structured-completion client every pipeline step goes through. A step
hands over a LangChain ChatPromptTemplate, the template inputs and a Pydantic
output schema; GroqService runs

    prompt | ChatGroq(...).with_structured_output(schema)

and returns an instance of the schema, or raises.

ROUND-ROBIN API KEYS:
  - One ChatGroq client per key (GROQ_API_KEY, GROQ_API_KEY_2, ...), for both
    the vision model and the text model.
  - Request 1 starts on key 1, request 2 on key 2, and so on.
  - If a key is rate limited (429), the same request moves on to the next key.
    Any other failure is raised straight away: the pipeline does not retry.
  - Keys are logged masked.
"""

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from langchain_core.prompts import ChatPromptTemplate
from langchain_groq import ChatGroq
from pydantic import BaseModel

from config import GROQ_API_KEYS, GROQ_TEMPERATURE, GROQ_TEXT_MODEL, GROQ_VISION_MODEL

logger = logging.getLogger("Agridetect")

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def is_rate_limit_error(exc: BaseException) -> bool:
    """True if the exception is a Groq rate limit (429 / tokens per day)."""
    msg = str(exc).lower()
    return "429" in msg or "rate limit" in msg or "tokens per day" in msg


def _mask_key(key: str) -> str:
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


class GroqService:
    """
    Structured completions against Groq-hosted models with multi-key rotation.
    vision=True selects the multimodal model (photos); otherwise the text model.
    """

    def __init__(
        self,
        api_keys: Optional[List[str]] = None,
        vision_model: str = GROQ_VISION_MODEL,
        text_model: str = GROQ_TEXT_MODEL,
        temperature: float = GROQ_TEMPERATURE,
    ):
        self.api_keys = list(api_keys if api_keys is not None else GROQ_API_KEYS)
        if not self.api_keys:
            raise ValueError(
                "GROQ_API_KEY is not set. Add it to your .env file (see GROQ_API_KEY, GROQ_API_KEY_2, ...)."
            )
        self.vision_model = vision_model
        self.text_model = text_model
        self.vision_llms = [ChatGroq(model=vision_model, api_key=k, temperature=temperature) for k in self.api_keys]
        self.text_llms = [ChatGroq(model=text_model, api_key=k, temperature=temperature) for k in self.api_keys]
        self._next_key_index = 0
        logger.info(
            "Groq service ready: %s key(s), vision=%s, text=%s",
            len(self.api_keys), vision_model, text_model,
        )

    def _key_order(self) -> List[int]:
        """Indices of the keys to try for one request, starting at the next key in the rotation."""
        count = len(self.api_keys)
        start = self._next_key_index % count
        self._next_key_index = (start + 1) % count
        return [(start + i) % count for i in range(count)]

    async def complete(
        self,
        prompt: ChatPromptTemplate,
        inputs: Dict[str, Any],
        output_schema: Type[SchemaT],
        vision: bool = False,
    ) -> SchemaT:
        """
        Render prompt with inputs, call the model constrained to output_schema,
        and return the parsed result. Raises on transport errors, on a
        rate limit hit by every key, and on output that does not fit the schema.
        """
        llms = self.vision_llms if vision else self.text_llms
        order = self._key_order()
        last_error: Optional[Exception] = None

        for attempt, index in enumerate(order, 1):
            chain = prompt | llms[index].with_structured_output(output_schema)
            try:
                result = await chain.ainvoke(inputs)
            except Exception as e:
                if is_rate_limit_error(e) and attempt < len(order):
                    logger.warning(
                        "Groq key %s rate limited (%s); trying key %s/%s",
                        _mask_key(self.api_keys[index]), output_schema.__name__, attempt + 1, len(order),
                    )
                    last_error = e
                    continue
                raise

            logger.info("Groq %s completion via key %s", output_schema.__name__, _mask_key(self.api_keys[index]))
            if result is None:
                raise ValueError(f"Model returned no {output_schema.__name__}")
            if not isinstance(result, output_schema):
                result = output_schema.model_validate(result)
            return result

        raise last_error
