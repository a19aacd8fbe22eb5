import pytest

from conftest import NOW, build_store
from crm_assistant.query.formatter import EXAMPLE_QUESTIONS, FOLLOW_UPS
from crm_assistant.query.parser import QueryParser
from crm_assistant.query.processor import QueryProcessor
from crm_assistant.types import Intent

ALL_SUGGESTIONS = sorted({question for questions in FOLLOW_UPS.values() for question in questions})


@pytest.mark.parametrize("suggestion", ALL_SUGGESTIONS)
def test_every_suggestion_parses_to_a_known_intent(suggestion: str) -> None:
    assert QueryParser().parse(suggestion, NOW).intent is not Intent.UNKNOWN


def test_example_questions_cover_the_core_intents() -> None:
    intents = {QueryParser().parse(question, NOW).intent for question in EXAMPLE_QUESTIONS}

    assert intents == {
        Intent.BEST_CUSTOMER,
        Intent.REVENUE,
        Intent.APPOINTMENTS_IN_RANGE,
        Intent.AT_RISK_CUSTOMERS,
    }


def test_every_answerable_intent_is_dispatchable() -> None:
    registry = QueryProcessor(build_store()).registry

    assert registry.missing_intents() == []
    assert {spec.intent for spec in registry.specs()} == set(Intent) - {Intent.UNKNOWN}
