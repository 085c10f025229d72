import pytest

from hxnotes.internal_core.audit import audit_value, format_audit_detail, log_event
from hxnotes.internal_core.session_store import WorkspaceSessionStore


def test_session_lifecycle_records_structured_audit_detail() -> None:
    store = WorkspaceSessionStore(ttl_seconds=60)
    session_id = store.create_session()
    log_event(store, session_id, "SUMMARY_STARTED", "ok", {"target": "new", "attachments": 2})

    session = store.get_session(session_id)
    event = session["audit_events"][0]
    assert event.type == "SUMMARY_STARTED"
    assert event.detail == "attachments=2 target=new"
    assert session["selected_patient_id"] is None
    assert session["submission_in_flight"] is False

    assert store.destroy_session(session_id) is True
    assert store.destroy_session(session_id) is False
    with pytest.raises(KeyError):
        store.get_form(session_id)


def test_free_text_values_are_redacted() -> None:
    note = "65M productive cough, fever 38.5C"
    assert audit_value(note) == f"<redacted len={len(note)}>"
    assert audit_value("1700000000000") == "1700000000000"
    assert audit_value(None) == "none"
    assert audit_value(True) == "true"

    detail = format_audit_detail({"specialty": "Ear Nose Throat", "count": 3})
    assert detail == "count=3 specialty=<redacted len=15>"
    assert "Nose" not in detail


def test_free_text_code_is_redacted_and_bad_field_names_rejected() -> None:
    store = WorkspaceSessionStore(ttl_seconds=60)
    session_id = store.create_session()
    log_event(store, session_id, "SUMMARY_FAILED", "Response missing field: Acute Issues")
    assert store.get_session(session_id)["audit_events"][0].code.startswith("<redacted")

    with pytest.raises(ValueError):
        format_audit_detail({"Free Text": "x"})


def test_clear_patient_everywhere_only_touches_matching_sessions() -> None:
    store = WorkspaceSessionStore(ttl_seconds=60)
    a = store.create_session()
    b = store.create_session()
    store.get_form(a).selection.select_patient("p1")
    store.get_form(b).selection.select_patient("p2")

    assert store.clear_patient_everywhere("p1") == [a]
    assert store.get_form(a).selection.patient_id is None
    assert store.get_form(b).selection.patient_id == "p2"

    store.clear_all_selections()
    assert store.get_form(b).selection.patient_id is None


def test_expired_sessions_are_cleaned_up() -> None:
    store = WorkspaceSessionStore(ttl_seconds=0)
    store.create_session()
    store.create_session()
    assert store.cleanup_expired_sessions() == 2
