from __future__ import annotations

"""
Two-variant summary request builder.

Design intent:
- Make CREATE and UPDATE contracts explicit, separately testable request types.
- Derive the mode only from whether the target patient already has a summary.
- Embed the previous summary verbatim as JSON so the service can diff against it.
"""

import copy
import json
from typing import Annotated, Any, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from hxnotes.internal_core.contracts import (
    ACUTE_ISSUES,
    BASE_SUMMARY_FIELDS,
    KEY_CHANGES,
    PAST_MEDICAL_HISTORY,
    PENDING_TASKS,
    Attachment,
    Patient,
    SummaryRecord,
)

SummaryMode = Literal["create", "update"]


def _string_list(description: str) -> dict[str, Any]:
    return {"type": "ARRAY", "items": {"type": "STRING"}, "description": description}


_BASE_PROPERTIES: dict[str, Any] = {
    ACUTE_ISSUES: _string_list("List of acute medical issues."),
    PENDING_TASKS: _string_list(
        "List of pending tasks and the plan of action, including immediate and long-term plans."
    ),
    PAST_MEDICAL_HISTORY: _string_list("List of relevant past medical history."),
}

CREATE_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": dict(_BASE_PROPERTIES),
    "required": list(BASE_SUMMARY_FIELDS),
}

UPDATE_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        **_BASE_PROPERTIES,
        KEY_CHANGES: _string_list(
            "List the key changes from the previous summary based on the new information."
        ),
    },
    "required": [*BASE_SUMMARY_FIELDS, KEY_CHANGES],
}

_PLAN_GUIDANCE = (
    "For every acute issue, document a detailed, actionable treatment plan in the "
    f'"{PENDING_TASKS}" section, written for direct entry into an electronic health record '
    "and consistent with UK practice (NICE/CKS guidance). Name specific management steps "
    '(for example "Started on Amoxicillin 500mg three times daily") and add a long-term '
    "management plan."
)


class _SummaryRequestBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    prompt: str = Field(min_length=1)


class CreateRequest(_SummaryRequestBase):
    mode: Literal["create"] = "create"

    @property
    def response_schema(self) -> dict[str, Any]:
        return copy.deepcopy(CREATE_RESPONSE_SCHEMA)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return BASE_SUMMARY_FIELDS


class UpdateRequest(_SummaryRequestBase):
    mode: Literal["update"] = "update"
    prior_summary_context: str = Field(min_length=2)

    @property
    def response_schema(self) -> dict[str, Any]:
        return copy.deepcopy(UPDATE_RESPONSE_SCHEMA)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return (*BASE_SUMMARY_FIELDS, KEY_CHANGES)


SummaryRequest = Annotated[Union[CreateRequest, UpdateRequest], Field(discriminator="mode")]


def select_mode(patient: Optional[Patient]) -> SummaryMode:
    if patient is None or not patient.summaries:
        return "create"
    return "update"


def build_create_prompt(text: str) -> str:
    return (
        "Act as a clinical assistant responsible for patient records. Create a concise, "
        "structured clinical summary from the information provided.\n\n"
        f"{_PLAN_GUIDANCE}\n\n"
        "PATIENT INFORMATION:\n"
        f"{text}"
    )


def build_update_prompt(text: str, prior_summary_context: str) -> str:
    return (
        "Act as a clinical assistant responsible for patient records. The patient has new "
        "acute concerns. Using them together with the previous clinical summary below, "
        "produce an updated summary.\n\n"
        f"{_PLAN_GUIDANCE}\n\n"
        f'Compare against the previous summary and list what changed in "{KEY_CHANGES}".\n\n'
        "PREVIOUS SUMMARY:\n"
        f"{prior_summary_context}\n\n"
        "NEW ACUTE CONCERNS:\n"
        f"{text}"
    )


def serialize_prior_summary(record: SummaryRecord) -> str:
    return json.dumps(record.summary.to_payload(), ensure_ascii=False)


def build_summary_request(
    text: str,
    attachments: Sequence[Attachment],
    latest: Optional[SummaryRecord],
) -> Union[CreateRequest, UpdateRequest]:
    attachments = list(attachments)
    if latest is None:
        return CreateRequest(text=text, attachments=attachments, prompt=build_create_prompt(text))
    context = serialize_prior_summary(latest)
    return UpdateRequest(
        text=text,
        attachments=attachments,
        prior_summary_context=context,
        prompt=build_update_prompt(text, context),
    )
