import json

import pytest

from hxnotes.assist.clinical import (
    AssistError,
    draft_referral_letter,
    generate_insights,
    suggest_differentials,
)
from hxnotes.internal_core.contracts import StructuredSummary
from hxnotes.summarizer import MockSummarizationService
from hxnotes.summarizer.base import AssistantService, SummarizationError

SUMMARY = StructuredSummary(
    acute_issues=["Productive cough", "Fever 38.5C"],
    pending_tasks=["Chest x-ray"],
    past_medical_history=["Asthma"],
)


class RecordingAssistant(AssistantService):
    def __init__(self, reply) -> None:
        self.reply = reply
        self.calls = []

    def complete(self, prompt, *, response_schema=None, reasoning=False):
        self.calls.append({"prompt": prompt, "response_schema": response_schema, "reasoning": reasoning})
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def test_insights_prompt_includes_summary_and_uses_fast_model() -> None:
    assistant = RecordingAssistant("- Check sats")
    assert generate_insights(assistant, SUMMARY) == "- Check sats"
    call = assistant.calls[0]
    assert "Productive cough" in call["prompt"]
    assert call["reasoning"] is False


def test_referral_requires_specialty_and_uses_reasoning_model() -> None:
    assistant = RecordingAssistant("Dear Respiratory team")
    with pytest.raises(ValueError):
        draft_referral_letter(assistant, SUMMARY, "  ")
    assert assistant.calls == []

    assert draft_referral_letter(assistant, SUMMARY, "Respiratory") == "Dear Respiratory team"
    assert "Respiratory" in assistant.calls[0]["prompt"]
    assert assistant.calls[0]["reasoning"] is True


def test_differentials_are_parsed_into_models() -> None:
    reply = json.dumps(
        {
            "diagnoses": [
                {"diagnosis": "Community-acquired pneumonia", "rationale": "Cough and fever", "likelihood": "High"},
                {"diagnosis": "Asthma exacerbation", "rationale": "Known asthma", "likelihood": "Medium"},
            ]
        }
    )
    assistant = RecordingAssistant(reply)
    items = suggest_differentials(assistant, SUMMARY)
    assert [d.diagnosis for d in items] == ["Community-acquired pneumonia", "Asthma exacerbation"]
    assert assistant.calls[0]["response_schema"]["required"] == ["diagnoses"]


@pytest.mark.parametrize("reply", ['{"other": []}', "not json", '{"diagnoses": [{"diagnosis": ""}]}'])
def test_bad_differential_replies_raise_assist_error(reply: str) -> None:
    with pytest.raises(AssistError) as excinfo:
        suggest_differentials(RecordingAssistant(reply), SUMMARY)
    assert excinfo.value.user_message == "Could not generate differential diagnosis at this time."


def test_service_failures_and_empty_replies_raise_assist_error() -> None:
    with pytest.raises(AssistError) as failed:
        generate_insights(RecordingAssistant(SummarizationError("transport_error", "offline", "fake")), SUMMARY)
    assert failed.value.detail == "offline"

    with pytest.raises(AssistError):
        generate_insights(RecordingAssistant("   "), SUMMARY)


def test_mock_backend_supports_all_assist_features() -> None:
    service = MockSummarizationService()
    assert generate_insights(service, SUMMARY)
    assert draft_referral_letter(service, SUMMARY, "Cardiology")
    assert suggest_differentials(service, SUMMARY)[0].likelihood == "Low"
