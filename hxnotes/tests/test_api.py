import dataclasses

import pytest
from fastapi.testclient import TestClient

from hxnotes.api.main import app
from hxnotes.internal_core.config import load_config
from hxnotes.records.persistence import InMemoryKeyValueBackend
from hxnotes.summarizer import MockSummarizationService
from hxnotes.summary.postprocess import SAFETY_NETTING_ADVICE

_STATE_ATTRS = (
    "config",
    "kv_backend",
    "record_store",
    "session_store",
    "summarization_service",
    "assistant_service",
)


def _reset_state() -> None:
    for attr in _STATE_ATTRS:
        if hasattr(app.state, attr):
            delattr(app.state, attr)


@pytest.fixture
def client():
    _reset_state()
    app.state.config = dataclasses.replace(load_config(), HX_DEMO_PASSWORD="", HX_LLM_BACKEND="mock")
    app.state.kv_backend = InMemoryKeyValueBackend()
    app.state.summarization_service = MockSummarizationService()
    try:
        yield TestClient(app)
    finally:
        _reset_state()


def _new_session(client: TestClient) -> str:
    response = client.post("/sessions")
    assert response.status_code == 200
    return response.json()["session_id"]


def test_healthz(client) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_then_update_patient_flow(client) -> None:
    session_id = _new_session(client)

    created = client.post(
        "/summaries",
        json={"session_id": session_id, "text": "productive cough, fever", "new_patient_name": "Jane Doe"},
    )
    assert created.status_code == 200
    body = created.json()
    assert body["status"] == "committed"
    assert body["mode"] == "create"
    assert "Key Changes" not in body["record"]["summary"]
    assert body["record"]["summary"]["Pending Tasks and action Plan"][-1] == SAFETY_NETTING_ADVICE
    patient_id = body["patient_id"]
    assert body["session"]["selected_patient_id"] == patient_id

    updated = client.post("/summaries", json={"session_id": session_id, "text": "new rash"})
    assert updated.status_code == 200
    assert updated.json()["mode"] == "update"
    assert updated.json()["record"]["summary"]["Key Changes"] == ["New: new rash"]

    session = client.get(f"/sessions/{session_id}").json()
    assert session["history_length"] == 2
    assert session["summary_index"] == 0
    assert session["error"] is None

    events = client.get(f"/sessions/{session_id}/audit").json()["events"]
    types = [event["type"] for event in events]
    assert types.count("PATIENT_CREATED") == 1
    assert types.count("SUMMARY_DONE") == 2
    assert all("productive cough" not in event["detail"] for event in events)

    listing = client.get("/patients", params={"search": "jane"}).json()
    assert listing["total"] == 1
    assert listing["patients"][0]["summary_count"] == 2
    assert client.get("/patients", params={"search": "smith"}).json()["total"] == 0


def test_view_history_and_copy_text(client) -> None:
    session_id = _new_session(client)
    client.post("/summaries", json={"session_id": session_id, "text": "cough", "new_patient_name": "Jane Doe"})
    client.post("/summaries", json={"session_id": session_id, "text": "fever"})

    older = client.put(f"/sessions/{session_id}/view", json={"index": 1})
    assert older.status_code == 200
    assert "Key Changes" not in older.json()["current_summary"]["summary"]

    assert client.put(f"/sessions/{session_id}/view", json={"index": 2}).status_code == 400

    client.put(f"/sessions/{session_id}/view", json={"index": 0})
    text = client.get(f"/sessions/{session_id}/summary/text")
    assert text.status_code == 200
    assert text.text.startswith("Key Changes:")


def test_select_patient_and_delete_clears_selection(client) -> None:
    session_id = _new_session(client)
    patient_id = client.post(
        "/summaries",
        json={"session_id": session_id, "text": "cough", "new_patient_name": "Jane Doe"},
    ).json()["patient_id"]

    other = _new_session(client)
    selected = client.post(f"/sessions/{other}/select", json={"patient_id": patient_id})
    assert selected.status_code == 200
    assert selected.json()["current_summary"] is not None

    assert client.delete(f"/patients/{patient_id}").status_code == 400
    deleted = client.delete(f"/patients/{patient_id}", params={"confirm": "true", "session_id": session_id})
    assert deleted.status_code == 200
    assert deleted.json()["sessions_cleared"] == 2

    for sid in (session_id, other):
        session = client.get(f"/sessions/{sid}").json()
        assert session["selected_patient_id"] is None
        assert session["current_summary"] is None
    assert client.get(f"/patients/{patient_id}").status_code == 404


def test_update_identity_and_clear_all(client) -> None:
    session_id = _new_session(client)
    patient_id = client.post(
        "/summaries",
        json={"session_id": session_id, "text": "cough", "new_patient_name": "Jane Doe"},
    ).json()["patient_id"]

    patched = client.patch(f"/patients/{patient_id}", json={"dob": "1980-01-01", "nhsNumber": "943 476 5919"})
    assert patched.status_code == 200
    assert patched.json()["nhsNumber"] == "943 476 5919"
    assert client.patch(f"/patients/{patient_id}", json={"name": " "}).status_code == 400

    assert client.delete("/patients").status_code == 400
    assert client.delete("/patients", params={"confirm": "true"}).status_code == 200
    assert client.get("/patients").json()["total"] == 0
    assert client.get(f"/sessions/{session_id}").json()["selected_patient_id"] is None


def test_assist_endpoints_use_viewed_summary(client) -> None:
    session_id = _new_session(client)
    assert client.post(f"/sessions/{session_id}/assist/insights").status_code == 404

    client.post("/summaries", json={"session_id": session_id, "text": "cough", "new_patient_name": "Jane Doe"})

    insights = client.post(f"/sessions/{session_id}/assist/insights")
    assert insights.status_code == 200
    assert insights.json()["feature"] == "insights"

    referral = client.post(f"/sessions/{session_id}/assist/referral", json={"specialty": "Respiratory"})
    assert referral.status_code == 200
    assert referral.json()["specialty"] == "Respiratory"

    differentials = client.post(f"/sessions/{session_id}/assist/differentials")
    assert differentials.status_code == 200
    assert differentials.json()["diagnoses"][0]["likelihood"] == "Low"


def test_privacy_notice_acknowledgement_persists(client) -> None:
    assert client.get("/privacy").json() == {"acknowledged": False}
    assert client.post("/privacy/acknowledge").json() == {"acknowledged": True}
    assert client.get("/privacy").json() == {"acknowledged": True}
    assert app.state.kv_backend.get("gdpr_acknowledged") == "true"


def test_password_gate(client) -> None:
    app.state.config = dataclasses.replace(app.state.config, HX_DEMO_PASSWORD="letmein")

    assert client.get("/healthz").status_code == 200
    assert client.get("/patients").status_code == 401
    assert client.get("/patients", headers={"X-HX-Password": "wrong"}).status_code == 401
    assert client.get("/patients", headers={"X-HX-Password": "letmein"}).status_code == 200
