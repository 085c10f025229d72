from __future__ import annotations

"""
Clinician-facing assistant outputs derived from one stored summary.

Design intent:
- Work only from the summary currently in view; never mutate stored records.
- Keep outputs advisory: insights, referral drafts and differentials are not persisted.
"""

import json
import logging
from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hxnotes.internal_core.contracts import StructuredSummary
from hxnotes.summarizer.base import AssistantService, SummarizationError, parse_json_object

logger = logging.getLogger(__name__)

AssistFeature = Literal["insights", "referral", "differentials"]

_USER_MESSAGES: dict[str, str] = {
    "insights": "Could not generate AI insights at this time.",
    "referral": "Could not draft the referral letter at this time.",
    "differentials": "Could not generate differential diagnosis at this time.",
}

DIFFERENTIAL_DIAGNOSIS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "diagnoses": {
            "type": "ARRAY",
            "description": "A list of potential differential diagnoses.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "diagnosis": {"type": "STRING", "description": "The name of the potential condition."},
                    "rationale": {
                        "type": "STRING",
                        "description": "Concise rationale citing evidence from the patient summary.",
                    },
                    "likelihood": {"type": "STRING", "description": "Estimated likelihood: High, Medium or Low."},
                },
                "required": ["diagnosis", "rationale", "likelihood"],
            },
        }
    },
    "required": ["diagnoses"],
}


class AssistError(RuntimeError):
    def __init__(self, feature: AssistFeature, detail: str):
        super().__init__(_USER_MESSAGES[feature])
        self.feature = feature
        self.user_message = _USER_MESSAGES[feature]
        self.detail = detail


class DifferentialDiagnosis(BaseModel):
    model_config = ConfigDict(extra="ignore")

    diagnosis: str = Field(min_length=1)
    rationale: str
    likelihood: str


def _summary_block(summary: StructuredSummary) -> str:
    return json.dumps(summary.to_payload(), indent=2, ensure_ascii=False)


def build_insights_prompt(summary: StructuredSummary) -> str:
    return (
        "You are a clinical decision support assistant for UK clinicians. From the clinical "
        "summary below, give a very brief, rapid-fire action plan in British English, aligned "
        "with NICE and CKS guidance.\n"
        "Give 5 critical bullet points for immediate management. Be extremely concise.\n\n"
        "---\nPATIENT SUMMARY:\n"
        f"{_summary_block(summary)}"
    )


def build_referral_prompt(summary: StructuredSummary, specialty: str) -> str:
    return (
        f"You are an assistant for a UK clinician. Draft a concise, UK-style referral letter to a "
        f"{specialty} specialist for this patient.\n"
        "The whole letter must be at most 3-4 lines and hold only the information the specialist "
        "needs. Use placeholders such as [Patient Name] and [NHS Number] for demographics.\n\n"
        "---\nPATIENT SUMMARY:\n"
        f"{_summary_block(summary)}"
    )


def build_differentials_prompt(summary: StructuredSummary) -> str:
    return (
        "Act as an expert clinical reasoning assistant for a UK clinician. From the clinical "
        "summary below, list potential differential diagnoses.\n"
        "For each, give a concise rationale citing evidence from the summary and a likelihood "
        "(High, Medium or Low). Order from most to least likely.\n\n"
        "---\nPATIENT SUMMARY:\n"
        f"{_summary_block(summary)}"
    )


def _complete(service: AssistantService, feature: AssistFeature, prompt: str, **kwargs: Any) -> str:
    try:
        text = service.complete(prompt, **kwargs)
    except SummarizationError as exc:
        logger.warning("assist_failed feature=%s provider=%s code=%s", feature, exc.provider_name, exc.code)
        raise AssistError(feature, exc.message) from exc
    text = (text or "").strip()
    if not text:
        raise AssistError(feature, "Empty assistant response.")
    return text


def generate_insights(service: AssistantService, summary: StructuredSummary) -> str:
    return _complete(service, "insights", build_insights_prompt(summary))


def draft_referral_letter(service: AssistantService, summary: StructuredSummary, specialty: str) -> str:
    cleaned = (specialty or "").strip()
    if not cleaned:
        raise ValueError("specialty is required.")
    return _complete(service, "referral", build_referral_prompt(summary, cleaned), reasoning=True)


def suggest_differentials(service: AssistantService, summary: StructuredSummary) -> List[DifferentialDiagnosis]:
    raw = _complete(
        service,
        "differentials",
        build_differentials_prompt(summary),
        response_schema=DIFFERENTIAL_DIAGNOSIS_SCHEMA,
        reasoning=True,
    )
    try:
        payload = parse_json_object(raw, "assistant")
    except SummarizationError as exc:
        raise AssistError("differentials", exc.message) from exc
    items = payload.get("diagnoses")
    if not isinstance(items, list):
        raise AssistError("differentials", "Response missing 'diagnoses' list.")
    try:
        return [DifferentialDiagnosis.model_validate(item) for item in items]
    except ValidationError as exc:
        raise AssistError("differentials", f"Invalid diagnosis entry: {exc}") from exc
