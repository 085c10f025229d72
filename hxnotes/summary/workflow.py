from __future__ import annotations

"""
Submission workflow: input -> request context -> service -> merge -> store.

Design intent:
- All-or-nothing: no patient or summary mutation unless the whole submission succeeds.
- One submission in flight per form context; a second one is rejected, not queued.
- Late results are dropped when the form has moved to another patient since submission.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional, Union

from hxnotes.internal_core.contracts import Attachment, SummaryRecord
from hxnotes.records.store import RecordStore
from hxnotes.summarizer.base import SummarizationError, SummarizationService
from hxnotes.view.selection import FormContext

from .merge import SummaryValidationError, parse_summary_payload
from .postprocess import postprocess_summary
from .requests import CreateRequest, SummaryMode, UpdateRequest, build_summary_request

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Sorry, something went wrong. The response might not be in the correct format."


class SubmissionInputError(ValueError):
    """Raised before any request is made when the submission is incomplete."""


class SummaryServiceError(RuntimeError):
    """Single user-facing failure for service and response-shape errors."""

    def __init__(self, detail: str, code: str = "service_error"):
        super().__init__(GENERIC_FAILURE_MESSAGE)
        self.user_message = GENERIC_FAILURE_MESSAGE
        self.detail = detail
        self.code = code


@dataclass(frozen=True)
class Submission:
    text: str = ""
    attachments: List[Attachment] = field(default_factory=list)
    new_patient_name: str = ""


@dataclass(frozen=True)
class SubmissionOutcome:
    status: Literal["committed", "discarded"]
    mode: SummaryMode
    patient_id: Optional[str]
    record: SummaryRecord
    duration_ms: int


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SummaryWorkflow:
    def __init__(
        self,
        store: RecordStore,
        service: SummarizationService,
        *,
        clock: Optional[Callable[[], str]] = None,
    ) -> None:
        self._store = store
        self._service = service
        self._clock = clock or _utc_now_iso

    def validate(self, context: FormContext, submission: Submission) -> None:
        if not submission.text.strip() and not submission.attachments:
            raise SubmissionInputError("Enter patient information or attach a file.")
        if context.selection.patient_id is None and not submission.new_patient_name.strip():
            raise SubmissionInputError("Please enter a patient name.")

    def submit(self, context: FormContext, submission: Submission) -> SubmissionOutcome:
        self.validate(context, submission)
        ticket = context.begin_submission()
        started = time.perf_counter()
        try:
            target = None
            if ticket.target_patient_id is not None:
                target = self._store.get_patient(ticket.target_patient_id)
                if target is None:
                    raise SubmissionInputError("Selected patient no longer exists.")
            latest = target.summaries[0] if target is not None and target.summaries else None
            request = build_summary_request(submission.text, submission.attachments, latest)

            record = self._request_record(request)
            duration_ms = int((time.perf_counter() - started) * 1000)

            if not context.is_current(ticket):
                logger.info(
                    "summary_discarded reason=selection_changed target=%s mode=%s",
                    ticket.target_patient_id,
                    request.mode,
                )
                return SubmissionOutcome("discarded", request.mode, ticket.target_patient_id, record, duration_ms)

            if ticket.target_patient_id is not None:
                try:
                    patient = self._store.append_summary(ticket.target_patient_id, record)
                except KeyError:
                    logger.info("summary_discarded reason=patient_deleted target=%s", ticket.target_patient_id)
                    return SubmissionOutcome("discarded", request.mode, ticket.target_patient_id, record, duration_ms)
                context.selection.show_newest()
            else:
                patient = self._store.add_patient(submission.new_patient_name, first_summary=record)
                context.selection.select_patient(patient.id)

            logger.info(
                "summary_committed patient_id=%s mode=%s history=%d duration_ms=%d",
                patient.id,
                request.mode,
                len(patient.summaries),
                duration_ms,
            )
            return SubmissionOutcome("committed", request.mode, patient.id, record, duration_ms)
        finally:
            context.end_submission(ticket)

    def _request_record(self, request: Union[CreateRequest, UpdateRequest]) -> SummaryRecord:
        try:
            payload = self._service.summarize(request)
        except SummarizationError as exc:
            logger.warning(
                "summarization_failed provider=%s code=%s detail=%s", exc.provider_name, exc.code, exc.message
            )
            raise SummaryServiceError(exc.message, code=exc.code) from exc
        except Exception as exc:
            logger.warning(
                "summarization_failed provider=%s code=service_error detail=%s", self._service.name(), exc
            )
            raise SummaryServiceError(str(exc), code="service_error") from exc
        received_at = self._clock()
        try:
            summary = parse_summary_payload(payload, request)
        except SummaryValidationError as exc:
            logger.warning("summary_validation_failed mode=%s detail=%s", request.mode, exc)
            raise SummaryServiceError(str(exc), code="invalid_response") from exc
        return SummaryRecord(summary=postprocess_summary(summary), timestamp=received_at)
