from __future__ import annotations

"""
HTTP surface for the hxnotes clinical-notes assistant.

Design intent:
- Keep API orchestration thin and typed; the form posts here instead of a browser page.
- Delegate domain logic to records/summary/view/assist modules.
- Resolve collaborators lazily from app.state so tests can inject doubles.
"""

import hmac
import logging
import threading
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from hxnotes.assist.clinical import (
    AssistError,
    draft_referral_letter,
    generate_insights,
    suggest_differentials,
)
from hxnotes.internal_core.audit import log_event
from hxnotes.internal_core.config import AppConfig, load_config
from hxnotes.internal_core.contracts import Attachment, Patient, SummaryRecord
from hxnotes.internal_core.session_store import WorkspaceSessionStore
from hxnotes.records.persistence import (
    InMemoryKeyValueBackend,
    JsonFileKeyValueBackend,
    KeyValueBackend,
    KeyValuePatientPersistence,
    PersistenceError,
    PrivacyNoticeFlag,
)
from hxnotes.records.store import RecordStore
from hxnotes.summarizer import AssistantService, SummarizationService, build_summarization_service
from hxnotes.summary.formatting import format_summary_text
from hxnotes.summary.workflow import (
    Submission,
    SubmissionInputError,
    SummaryServiceError,
    SummaryWorkflow,
)
from hxnotes.view.selection import FormContext, SubmissionInProgressError, filter_patients


class SessionResponse(BaseModel):
    session_id: str
    selected_patient_id: Optional[str] = None
    summary_index: int = 0
    history_length: int = 0
    submission_in_flight: bool = False
    current_summary: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class PatientListItem(BaseModel):
    id: str
    name: str
    dob: str = ""
    nhsNumber: str = ""
    summary_count: int = 0
    latest_timestamp: Optional[str] = None


class PatientListResponse(BaseModel):
    patients: list[PatientListItem] = Field(default_factory=list)
    total: int = 0


class PatientIdentityUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=256)
    dob: Optional[str] = Field(default=None, max_length=64)
    nhsNumber: Optional[str] = Field(default=None, max_length=64)


class SelectPatientRequest(BaseModel):
    patient_id: str = Field(min_length=1)


class ViewSummaryRequest(BaseModel):
    index: int = Field(ge=0)


class SubmitSummaryRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    text: str = Field(default="", max_length=200000)
    new_patient_name: str = Field(default="", max_length=256)
    attachments: list[Attachment] = Field(default_factory=list)


class SubmitSummaryResponse(BaseModel):
    status: Literal["committed", "discarded"]
    mode: Literal["create", "update"]
    patient_id: Optional[str] = None
    record: dict[str, Any]
    session: SessionResponse
    debug: dict[str, Any] = Field(default_factory=dict)


class ReferralRequest(BaseModel):
    specialty: str = Field(min_length=1, max_length=128)


class AssistTextResponse(BaseModel):
    feature: str
    text: str
    specialty: Optional[str] = None


class DifferentialItem(BaseModel):
    diagnosis: str
    rationale: str
    likelihood: str


class DifferentialsResponse(BaseModel):
    diagnoses: list[DifferentialItem] = Field(default_factory=list)


class PrivacyResponse(BaseModel):
    acknowledged: bool


logger = logging.getLogger(__name__)
_STATE_LOCK = threading.RLock()


def _get_config() -> AppConfig:
    with _STATE_LOCK:
        existing = getattr(app.state, "config", None)
        if isinstance(existing, AppConfig):
            return existing
        created = load_config()
        logging.getLogger("hxnotes").setLevel(created.HX_LOG_LEVEL.upper())
        app.state.config = created
        return created


def _get_kv_backend() -> KeyValueBackend:
    with _STATE_LOCK:
        existing = getattr(app.state, "kv_backend", None)
        if isinstance(existing, KeyValueBackend):
            return existing
        config = _get_config()
        created: KeyValueBackend
        if config.HX_IN_MEMORY_STORE:
            created = InMemoryKeyValueBackend()
        else:
            created = JsonFileKeyValueBackend(config.data_dir_path())
        app.state.kv_backend = created
        return created


def _get_record_store() -> RecordStore:
    with _STATE_LOCK:
        existing = getattr(app.state, "record_store", None)
        if isinstance(existing, RecordStore):
            return existing
        config = _get_config()
        created = RecordStore(KeyValuePatientPersistence(_get_kv_backend(), key=config.HX_STORE_KEY))
        app.state.record_store = created
        return created


def _get_session_store() -> WorkspaceSessionStore:
    with _STATE_LOCK:
        existing = getattr(app.state, "session_store", None)
        if isinstance(existing, WorkspaceSessionStore):
            return existing
        created = WorkspaceSessionStore(ttl_seconds=_get_config().HX_SESSION_TTL_SECONDS)
        app.state.session_store = created
        return created


def _get_summarization_service() -> SummarizationService:
    with _STATE_LOCK:
        existing = getattr(app.state, "summarization_service", None)
        if isinstance(existing, SummarizationService):
            return existing
        created = build_summarization_service(_get_config())
        app.state.summarization_service = created
        return created


def _get_assistant_service() -> AssistantService:
    existing = getattr(app.state, "assistant_service", None)
    if isinstance(existing, AssistantService):
        return existing
    service = _get_summarization_service()
    if not isinstance(service, AssistantService):
        raise HTTPException(status_code=501, detail="Configured backend does not support assistant features.")
    return service


def _get_privacy_flag() -> PrivacyNoticeFlag:
    return PrivacyNoticeFlag(_get_kv_backend(), key=_get_config().HX_PRIVACY_KEY)


def _require_password(x_hx_password: Optional[str] = Header(default=None)) -> None:
    expected = _get_config().HX_DEMO_PASSWORD
    if not expected:
        return
    if not x_hx_password or not hmac.compare_digest(x_hx_password, expected):
        raise HTTPException(status_code=401, detail="Incorrect password.")


def _get_form_or_404(session_id: str) -> FormContext:
    normalized = str(session_id or "").strip()
    if not normalized:
        raise HTTPException(status_code=400, detail="session_id is required.")
    try:
        return _get_session_store().get_form(normalized)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Session not found: {normalized}") from exc


def _record_payload(record: SummaryRecord) -> dict[str, Any]:
    return record.model_dump(by_alias=True, exclude_none=True)


def _session_response(session_id: str, form: FormContext) -> SessionResponse:
    selection = form.selection
    patient = _get_record_store().get_patient(selection.patient_id) if selection.patient_id else None
    current = selection.resolve(patient)
    return SessionResponse(
        session_id=session_id,
        selected_patient_id=selection.patient_id,
        summary_index=selection.summary_index,
        history_length=len(patient.summaries) if patient is not None else 0,
        submission_in_flight=form.in_flight,
        current_summary=_record_payload(current) if current is not None else None,
        error=_get_session_store().get_session(session_id)["error"],
    )


def _patient_item(patient: Patient) -> PatientListItem:
    return PatientListItem(
        id=patient.id,
        name=patient.name,
        dob=patient.dob,
        nhsNumber=patient.nhs_number,
        summary_count=len(patient.summaries),
        latest_timestamp=patient.summaries[0].timestamp if patient.summaries else None,
    )


def _current_record_or_404(form: FormContext) -> SummaryRecord:
    selection = form.selection
    patient = _get_record_store().get_patient(selection.patient_id) if selection.patient_id else None
    current = selection.resolve(patient)
    if current is None:
        raise HTTPException(status_code=404, detail="No summary in view.")
    return current


def _persistence_failure(exc: Exception) -> HTTPException:
    logger.error("persistence_failure detail=%s", exc)
    return HTTPException(status_code=500, detail="Could not save patient data.")


app = FastAPI(title="hxnotes clinical notes service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
router = APIRouter(dependencies=[Depends(_require_password)])


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/sessions", response_model=SessionResponse)
async def create_session() -> SessionResponse:
    sessions = _get_session_store()
    sessions.cleanup_expired_sessions()
    session_id = sessions.create_session()
    log_event(sessions, session_id, "SESSION_CREATED", "ok")
    return _session_response(session_id, sessions.get_form(session_id))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str) -> SessionResponse:
    form = _get_form_or_404(session_id)
    return _session_response(session_id, form)


@router.get("/sessions/{session_id}/audit")
async def get_session_audit(session_id: str) -> dict[str, Any]:
    _get_form_or_404(session_id)
    events = _get_session_store().get_session(session_id)["audit_events"]
    return {"session_id": session_id, "events": [event.model_dump() for event in events]}


@router.delete("/sessions/{session_id}")
async def destroy_session(session_id: str) -> dict[str, Any]:
    removed = _get_session_store().destroy_session(session_id)
    if not removed:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"session_id": session_id, "destroyed": True}


@router.post("/sessions/{session_id}/select", response_model=SessionResponse)
async def select_patient(session_id: str, payload: SelectPatientRequest) -> SessionResponse:
    form = _get_form_or_404(session_id)
    if _get_record_store().get_patient(payload.patient_id) is None:
        raise HTTPException(status_code=404, detail=f"Patient not found: {payload.patient_id}")
    form.selection.select_patient(payload.patient_id)
    _get_session_store().set_error(session_id, None)
    log_event(_get_session_store(), session_id, "PATIENT_SELECTED", "ok", {"patient_id": payload.patient_id})
    return _session_response(session_id, form)


@router.post("/sessions/{session_id}/new-patient", response_model=SessionResponse)
async def start_new_patient(session_id: str) -> SessionResponse:
    form = _get_form_or_404(session_id)
    form.selection.start_new_patient()
    _get_session_store().set_error(session_id, None)
    return _session_response(session_id, form)


@router.put("/sessions/{session_id}/view", response_model=SessionResponse)
async def view_summary(session_id: str, payload: ViewSummaryRequest) -> SessionResponse:
    form = _get_form_or_404(session_id)
    patient_id = form.selection.patient_id
    patient = _get_record_store().get_patient(patient_id) if patient_id else None
    if patient is None:
        raise HTTPException(status_code=400, detail="No patient selected.")
    try:
        form.selection.view_summary(payload.index, len(patient.summaries))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _session_response(session_id, form)


@router.get("/sessions/{session_id}/summary/text", response_class=PlainTextResponse)
async def summary_text(session_id: str) -> str:
    form = _get_form_or_404(session_id)
    record = _current_record_or_404(form)
    return format_summary_text(record.summary)


@router.get("/patients", response_model=PatientListResponse)
async def list_patients(search: str = Query(default="", max_length=256)) -> PatientListResponse:
    patients = filter_patients(_get_record_store().list_patients(), search)
    return PatientListResponse(patients=[_patient_item(p) for p in patients], total=len(patients))


@router.get("/patients/{patient_id}")
async def get_patient(patient_id: str) -> dict[str, Any]:
    patient = _get_record_store().get_patient(patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail=f"Patient not found: {patient_id}")
    return patient.to_payload()


@router.patch("/patients/{patient_id}", response_model=PatientListItem)
async def update_patient(patient_id: str, payload: PatientIdentityUpdate) -> PatientListItem:
    store = _get_record_store()
    try:
        patient = store.update_patient_identity(
            patient_id,
            name=payload.name,
            dob=payload.dob,
            nhs_number=payload.nhsNumber,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Patient not found: {patient_id}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _persistence_failure(exc) from exc
    return _patient_item(patient)


@router.delete("/patients/{patient_id}")
async def delete_patient(
    patient_id: str,
    confirm: bool = Query(default=False),
    session_id: Optional[str] = Query(default=None),
) -> dict[str, Any]:
    if not confirm:
        raise HTTPException(status_code=400, detail="Deleting a patient is irreversible; pass confirm=true.")
    if session_id:
        _get_form_or_404(session_id)
    try:
        _get_record_store().delete_patient(patient_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Patient not found: {patient_id}") from exc
    except PersistenceError as exc:
        raise _persistence_failure(exc) from exc
    sessions = _get_session_store()
    affected = sessions.clear_patient_everywhere(patient_id)
    if session_id:
        log_event(sessions, session_id, "PATIENT_DELETED", "ok", {"patient_id": patient_id})
    return {"patient_id": patient_id, "deleted": True, "sessions_cleared": len(affected)}


@router.delete("/patients")
async def clear_all_patients(confirm: bool = Query(default=False)) -> dict[str, Any]:
    if not confirm:
        raise HTTPException(status_code=400, detail="Clearing all data is irreversible; pass confirm=true.")
    try:
        _get_record_store().clear_all()
    except PersistenceError as exc:
        raise _persistence_failure(exc) from exc
    _get_session_store().clear_all_selections()
    return {"cleared": True}


@router.post("/summaries", response_model=SubmitSummaryResponse)
def submit_summary(payload: SubmitSummaryRequest) -> SubmitSummaryResponse:
    form = _get_form_or_404(payload.session_id)
    sessions = _get_session_store()
    workflow = SummaryWorkflow(_get_record_store(), _get_summarization_service())
    submission = Submission(
        text=payload.text,
        attachments=list(payload.attachments),
        new_patient_name=payload.new_patient_name,
    )
    try:
        workflow.validate(form, submission)
    except SubmissionInputError as exc:
        sessions.set_error(payload.session_id, str(exc))
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_event(
        sessions,
        payload.session_id,
        "SUMMARY_STARTED",
        "ok",
        {"attachments": len(payload.attachments), "target": form.selection.patient_id or "new"},
    )
    try:
        outcome = workflow.submit(form, submission)
    except SubmissionInputError as exc:
        sessions.set_error(payload.session_id, str(exc))
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubmissionInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SummaryServiceError as exc:
        sessions.set_error(payload.session_id, exc.user_message)
        log_event(sessions, payload.session_id, "SUMMARY_FAILED", exc.code)
        raise HTTPException(status_code=502, detail=exc.user_message) from exc
    except PersistenceError as exc:
        log_event(sessions, payload.session_id, "SUMMARY_FAILED", "persistence_error", {"error": type(exc).__name__})
        raise _persistence_failure(exc) from exc

    sessions.set_error(payload.session_id, None)
    if outcome.status == "committed" and outcome.mode == "create":
        log_event(sessions, payload.session_id, "PATIENT_CREATED", "ok", {"patient_id": outcome.patient_id})
    event_type = "SUMMARY_DONE" if outcome.status == "committed" else "SUMMARY_DISCARDED"
    log_event(
        sessions,
        payload.session_id,
        event_type,
        outcome.mode,
        {"patient_id": outcome.patient_id},
        duration_ms=outcome.duration_ms,
    )
    return SubmitSummaryResponse(
        status=outcome.status,
        mode=outcome.mode,
        patient_id=outcome.patient_id,
        record=_record_payload(outcome.record),
        session=_session_response(payload.session_id, form),
        debug={"duration_ms": outcome.duration_ms, "attachments": len(payload.attachments)},
    )


def _assist_failure(session_id: str, exc: AssistError) -> HTTPException:
    sessions = _get_session_store()
    sessions.set_error(session_id, exc.user_message)
    log_event(sessions, session_id, "ASSIST_FAILED", exc.feature)
    return HTTPException(status_code=502, detail=exc.user_message)


@router.post("/sessions/{session_id}/assist/insights", response_model=AssistTextResponse)
def assist_insights(session_id: str) -> AssistTextResponse:
    form = _get_form_or_404(session_id)
    record = _current_record_or_404(form)
    try:
        text = generate_insights(_get_assistant_service(), record.summary)
    except AssistError as exc:
        raise _assist_failure(session_id, exc) from exc
    log_event(_get_session_store(), session_id, "ASSIST_DONE", "insights")
    return AssistTextResponse(feature="insights", text=text)


@router.post("/sessions/{session_id}/assist/referral", response_model=AssistTextResponse)
def assist_referral(session_id: str, payload: ReferralRequest) -> AssistTextResponse:
    form = _get_form_or_404(session_id)
    record = _current_record_or_404(form)
    specialty = payload.specialty.strip()
    try:
        text = draft_referral_letter(_get_assistant_service(), record.summary, specialty)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AssistError as exc:
        raise _assist_failure(session_id, exc) from exc
    log_event(_get_session_store(), session_id, "ASSIST_DONE", "referral", {"specialty": specialty})
    return AssistTextResponse(feature="referral", text=text, specialty=specialty)


@router.post("/sessions/{session_id}/assist/differentials", response_model=DifferentialsResponse)
def assist_differentials(session_id: str) -> DifferentialsResponse:
    form = _get_form_or_404(session_id)
    record = _current_record_or_404(form)
    try:
        items = suggest_differentials(_get_assistant_service(), record.summary)
    except AssistError as exc:
        raise _assist_failure(session_id, exc) from exc
    log_event(_get_session_store(), session_id, "ASSIST_DONE", "differentials", {"count": len(items)})
    return DifferentialsResponse(
        diagnoses=[DifferentialItem(**item.model_dump()) for item in items],
    )


@router.get("/privacy", response_model=PrivacyResponse)
async def privacy_status() -> PrivacyResponse:
    return PrivacyResponse(acknowledged=_get_privacy_flag().is_acknowledged())


@router.post("/privacy/acknowledge", response_model=PrivacyResponse)
async def privacy_acknowledge() -> PrivacyResponse:
    try:
        _get_privacy_flag().acknowledge()
    except PersistenceError as exc:
        raise _persistence_failure(exc) from exc
    return PrivacyResponse(acknowledged=True)


app.include_router(router)
