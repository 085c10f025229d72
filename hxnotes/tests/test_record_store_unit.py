import json

import pytest

from hxnotes.internal_core.contracts import StructuredSummary, SummaryRecord
from hxnotes.records.persistence import (
    InMemoryKeyValueBackend,
    KeyValuePatientPersistence,
    PersistenceError,
    PatientPersistence,
)
from hxnotes.records.store import RecordStore


def _record(acute: str, ts: str, key_changes=None) -> SummaryRecord:
    return SummaryRecord(
        summary=StructuredSummary(
            acute_issues=[acute],
            pending_tasks=["Review in 2 weeks"],
            past_medical_history=["Asthma"],
            key_changes=key_changes,
        ),
        timestamp=ts,
    )


def _fixed_clock(start: int = 1700000000000):
    state = {"now": start}

    def clock() -> int:
        return state["now"]

    return clock


def _store(backend=None, clock=None) -> RecordStore:
    backend = backend or InMemoryKeyValueBackend()
    return RecordStore(KeyValuePatientPersistence(backend), clock_ms=clock or _fixed_clock())


class FailingPersistence(PatientPersistence):
    def __init__(self) -> None:
        self.fail = False
        self.saved = []

    def load(self):
        return []

    def save(self, patients) -> None:
        if self.fail:
            raise PersistenceError("disk full for test")
        self.saved.append(list(patients))


def test_add_patient_prepends_and_persists() -> None:
    backend = InMemoryKeyValueBackend()
    store = _store(backend, clock=iter([1000, 2000]).__next__)
    first = store.add_patient("Jane Doe", first_summary=_record("Cough", "t1"))
    second = store.add_patient("John Smith", first_summary=_record("Rash", "t2"))

    assert [p.id for p in store.list_patients()] == [second.id, first.id]
    assert first.id == "1000"
    stored = json.loads(backend.get("patientData"))
    assert [p["name"] for p in stored["patients"]] == ["John Smith", "Jane Doe"]


def test_patient_ids_stay_unique_when_clock_does_not_advance() -> None:
    store = _store()
    ids = {store.add_patient(f"P{i}").id for i in range(5)}
    assert len(ids) == 5


def test_add_patient_rejects_blank_name() -> None:
    store = _store()
    with pytest.raises(ValueError):
        store.add_patient("   ")
    assert store.list_patients() == []


def test_append_summary_is_newest_first() -> None:
    store = _store()
    patient = store.add_patient("Jane Doe", first_summary=_record("Cough", "t1"))
    store.append_summary(patient.id, _record("Fever", "t2", key_changes=["New fever"]))

    loaded = store.get_patient(patient.id)
    assert loaded is not None
    assert [r.timestamp for r in loaded.summaries] == ["t2", "t1"]
    assert store.latest_summary(patient.id).timestamp == "t2"


def test_append_summary_unknown_patient_raises_key_error() -> None:
    store = _store()
    with pytest.raises(KeyError):
        store.append_summary("missing", _record("Cough", "t1"))


def test_round_trip_restores_identical_store() -> None:
    backend = InMemoryKeyValueBackend()
    store = _store(backend)
    patient = store.add_patient("Jane Doe", dob="1980-01-01", nhs_number="943 476 5919", first_summary=_record("Cough", "t1"))
    store.append_summary(patient.id, _record("Fever", "t2", key_changes=["New fever"]))

    reloaded = _store(backend)
    assert reloaded.list_patients() == store.list_patients()


def test_failed_write_leaves_state_unchanged() -> None:
    persistence = FailingPersistence()
    store = RecordStore(persistence, clock_ms=_fixed_clock())
    patient = store.add_patient("Jane Doe", first_summary=_record("Cough", "t1"))

    persistence.fail = True
    with pytest.raises(PersistenceError):
        store.append_summary(patient.id, _record("Fever", "t2"))
    with pytest.raises(PersistenceError):
        store.add_patient("John Smith")

    assert [p.name for p in store.list_patients()] == ["Jane Doe"]
    assert len(store.get_patient(patient.id).summaries) == 1


def test_corrupt_blob_loads_as_empty_store() -> None:
    backend = InMemoryKeyValueBackend({"patientData": "{not json"})
    store = _store(backend)
    assert store.list_patients() == []


def test_returned_patients_are_copies() -> None:
    store = _store()
    patient = store.add_patient("Jane Doe", first_summary=_record("Cough", "t1"))
    snapshot = store.get_patient(patient.id)
    snapshot.summaries.clear()
    assert len(store.get_patient(patient.id).summaries) == 1


def test_update_identity_and_delete_and_clear() -> None:
    store = _store()
    patient = store.add_patient("Jane Doe")
    updated = store.update_patient_identity(patient.id, name=" Jane Q Doe ", nhs_number="123")
    assert updated.name == "Jane Q Doe"
    assert updated.nhs_number == "123"
    with pytest.raises(ValueError):
        store.update_patient_identity(patient.id, name="")

    store.delete_patient(patient.id)
    assert store.get_patient(patient.id) is None
    with pytest.raises(KeyError):
        store.delete_patient(patient.id)

    store.add_patient("A")
    store.add_patient("B")
    store.clear_all()
    assert store.list_patients() == []
