import pytest
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import RunnableLambda

from app.models import AssistantAnswer
from app.services.groq_service import GroqService, is_rate_limit_error
from tests.conftest import run


class FakeLLM:
    """Looks like a chat model to GroqService: with_structured_output -> runnable."""

    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = 0
        self.schemas = []

    def with_structured_output(self, schema):
        self.schemas.append(schema)

        async def _answer(prompt_value):
            self.calls += 1
            if isinstance(self.outcome, BaseException):
                raise self.outcome
            return self.outcome

        return RunnableLambda(_answer)


PROMPT = ChatPromptTemplate.from_messages([("human", "{question}")])


@pytest.fixture
def groq():
    return GroqService(api_keys=["gsk_first_key_0001", "gsk_second_key_0002"])


def test_missing_keys_fail_fast():
    with pytest.raises(ValueError, match="GROQ_API_KEY"):
        GroqService(api_keys=[])


def test_complete_returns_the_structured_output(groq):
    llm = FakeLLM(AssistantAnswer(answer="hi"))
    groq.text_llms = [llm, FakeLLM(None)]

    result = run(groq.complete(PROMPT, {"question": "hello"}, AssistantAnswer))

    assert result == AssistantAnswer(answer="hi")
    assert llm.schemas == [AssistantAnswer]


def test_dict_output_is_validated_against_the_schema(groq):
    groq.text_llms = [FakeLLM({"answer": "from dict"}), FakeLLM(None)]
    result = run(groq.complete(PROMPT, {"question": "q"}, AssistantAnswer))
    assert isinstance(result, AssistantAnswer)
    assert result.answer == "from dict"


def test_keys_rotate_between_requests(groq):
    first, second = FakeLLM(AssistantAnswer(answer="1")), FakeLLM(AssistantAnswer(answer="2"))
    groq.text_llms = [first, second]

    answers = [run(groq.complete(PROMPT, {"question": "q"}, AssistantAnswer)).answer for _ in range(3)]

    assert answers == ["1", "2", "1"]


def test_vision_requests_use_the_vision_clients(groq):
    vision = FakeLLM(AssistantAnswer(answer="seen"))
    groq.vision_llms = [vision, vision]
    groq.text_llms = [FakeLLM(RuntimeError("wrong model")), FakeLLM(RuntimeError("wrong model"))]
    assert run(groq.complete(PROMPT, {"question": "q"}, AssistantAnswer, vision=True)).answer == "seen"


def test_rate_limited_key_falls_over_to_the_next(groq):
    limited = FakeLLM(RuntimeError("Error code: 429 - Rate limit reached for tokens per day"))
    healthy = FakeLLM(AssistantAnswer(answer="ok"))
    groq.text_llms = [limited, healthy]

    assert run(groq.complete(PROMPT, {"question": "q"}, AssistantAnswer)).answer == "ok"
    assert (limited.calls, healthy.calls) == (1, 1)


def test_other_errors_are_not_retried(groq):
    broken = FakeLLM(ConnectionError("connection reset"))
    spare = FakeLLM(AssistantAnswer(answer="never"))
    groq.text_llms = [broken, spare]

    with pytest.raises(ConnectionError):
        run(groq.complete(PROMPT, {"question": "q"}, AssistantAnswer))
    assert spare.calls == 0


def test_rate_limit_on_every_key_is_raised(groq):
    groq.text_llms = [FakeLLM(RuntimeError("429 rate limit")), FakeLLM(RuntimeError("429 rate limit"))]
    with pytest.raises(RuntimeError) as info:
        run(groq.complete(PROMPT, {"question": "q"}, AssistantAnswer))
    assert is_rate_limit_error(info.value)


def test_no_structured_output_is_an_error(groq):
    groq.text_llms = [FakeLLM(None), FakeLLM(None)]
    with pytest.raises(ValueError, match="AssistantAnswer"):
        run(groq.complete(PROMPT, {"question": "q"}, AssistantAnswer))
