from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

ACUTE_ISSUES = "Acute Issues"
PENDING_TASKS = "Pending Tasks and action Plan"
PAST_MEDICAL_HISTORY = "Past medical history"
KEY_CHANGES = "Key Changes"

BASE_SUMMARY_FIELDS: tuple[str, ...] = (ACUTE_ISSUES, PENDING_TASKS, PAST_MEDICAL_HISTORY)

STORE_SCHEMA_VERSION = 1


class StructuredSummary(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    acute_issues: List[str] = Field(default_factory=list, alias=ACUTE_ISSUES)
    pending_tasks: List[str] = Field(default_factory=list, alias=PENDING_TASKS)
    past_medical_history: List[str] = Field(default_factory=list, alias=PAST_MEDICAL_HISTORY)
    key_changes: Optional[List[str]] = Field(default=None, alias=KEY_CHANGES)

    @property
    def is_update(self) -> bool:
        return self.key_changes is not None

    def to_payload(self) -> Dict[str, List[str]]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SummaryRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    summary: StructuredSummary
    timestamp: str


class Patient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    dob: str = ""
    nhs_number: str = Field(default="", alias="nhsNumber")
    summaries: List[SummaryRecord] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StoreSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = STORE_SCHEMA_VERSION
    patients: List[Patient] = Field(default_factory=list)


class Attachment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mime_type: str = Field(min_length=1)
    data_b64: str = Field(min_length=1)
    filename: Optional[str] = None

    @model_validator(mode="after")
    def _validate_encoding(self) -> "Attachment":
        try:
            base64.b64decode(self.data_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Attachment.data_b64 must be valid base64") from exc
        return self

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str, filename: Optional[str] = None) -> "Attachment":
        return cls(
            mime_type=mime_type,
            data_b64=base64.b64encode(data).decode("ascii"),
            filename=filename,
        )

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data_b64)


AuditEventType = Literal[
    "SESSION_CREATED",
    "PATIENT_SELECTED",
    "PATIENT_CREATED",
    "PATIENT_DELETED",
    "SUMMARY_STARTED",
    "SUMMARY_DONE",
    "SUMMARY_DISCARDED",
    "SUMMARY_FAILED",
    "ASSIST_DONE",
    "ASSIST_FAILED",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    session_id: str
    type: AuditEventType
    code: str
    detail: str
    duration_ms: Optional[int] = None
