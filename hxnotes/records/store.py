from __future__ import annotations

import logging
import time
from threading import RLock
from typing import Callable, Optional

from hxnotes.internal_core.contracts import Patient, SummaryRecord

from .persistence import PatientPersistence

logger = logging.getLogger(__name__)


def _millis_now() -> int:
    return int(time.time() * 1000)


class RecordStore:
    """Patients and their summary history, mirrored to a persistence port on every change."""

    def __init__(
        self,
        persistence: PatientPersistence,
        *,
        clock_ms: Optional[Callable[[], int]] = None,
        autoload: bool = True,
    ) -> None:
        self._persistence = persistence
        self._clock_ms = clock_ms or _millis_now
        self._lock = RLock()
        self._patients: list[Patient] = []
        self._last_id = 0
        if autoload:
            self.load()

    def load(self) -> list[Patient]:
        try:
            patients = self._persistence.load()
        except Exception:
            logger.exception("Failed to restore patient data; starting with an empty store.")
            patients = []
        with self._lock:
            self._patients = list(patients)
            self._last_id = max((_numeric_id(p.id) for p in self._patients), default=0)
            return self.list_patients()

    def save(self) -> None:
        with self._lock:
            self._write(self._patients)

    def _write(self, patients: list[Patient]) -> None:
        try:
            self._persistence.save(patients)
        except Exception:
            logger.exception("Failed to persist patient data (%d patients).", len(patients))
            raise

    def _commit(self, patients: list[Patient]) -> None:
        # Callers hold the lock. State only changes after the write succeeds.
        self._write(patients)
        self._patients = patients

    def _next_id(self) -> str:
        candidate = self._clock_ms()
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def _index_of(self, patient_id: str) -> int:
        for i, patient in enumerate(self._patients):
            if patient.id == patient_id:
                return i
        raise KeyError(f"Unknown patient_id: {patient_id}")

    def list_patients(self) -> list[Patient]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._patients]

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        with self._lock:
            for patient in self._patients:
                if patient.id == patient_id:
                    return patient.model_copy(deep=True)
        return None

    def latest_summary(self, patient_id: str) -> Optional[SummaryRecord]:
        patient = self.get_patient(patient_id)
        if patient is None or not patient.summaries:
            return None
        return patient.summaries[0]

    def add_patient(
        self,
        name: str,
        *,
        dob: str = "",
        nhs_number: str = "",
        first_summary: Optional[SummaryRecord] = None,
    ) -> Patient:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("Patient name is required.")
        with self._lock:
            patient = Patient(
                id=self._next_id(),
                name=cleaned,
                dob=dob,
                nhs_number=nhs_number,
                summaries=[first_summary] if first_summary is not None else [],
            )
            self._commit([patient, *self._patients])
            logger.info("patient_created id=%s summaries=%d", patient.id, len(patient.summaries))
            return patient.model_copy(deep=True)

    def append_summary(self, patient_id: str, record: SummaryRecord) -> Patient:
        with self._lock:
            idx = self._index_of(patient_id)
            current = self._patients[idx]
            updated = current.model_copy(update={"summaries": [record, *current.summaries]})
            patients = list(self._patients)
            patients[idx] = updated
            self._commit(patients)
            logger.info("summary_appended patient_id=%s history=%d", patient_id, len(updated.summaries))
            return updated.model_copy(deep=True)

    def update_patient_identity(
        self,
        patient_id: str,
        *,
        name: Optional[str] = None,
        dob: Optional[str] = None,
        nhs_number: Optional[str] = None,
    ) -> Patient:
        changes: dict[str, str] = {}
        if name is not None:
            cleaned = name.strip()
            if not cleaned:
                raise ValueError("Patient name cannot be empty.")
            changes["name"] = cleaned
        if dob is not None:
            changes["dob"] = dob
        if nhs_number is not None:
            changes["nhs_number"] = nhs_number
        with self._lock:
            idx = self._index_of(patient_id)
            updated = self._patients[idx].model_copy(update=changes)
            patients = list(self._patients)
            patients[idx] = updated
            self._commit(patients)
            return updated.model_copy(deep=True)

    def delete_patient(self, patient_id: str) -> None:
        with self._lock:
            idx = self._index_of(patient_id)
            patients = list(self._patients)
            del patients[idx]
            self._commit(patients)
            logger.info("patient_deleted id=%s", patient_id)

    def clear_all(self) -> None:
        with self._lock:
            count = len(self._patients)
            self._commit([])
            logger.info("store_cleared patients=%d", count)


def _numeric_id(patient_id: str) -> int:
    try:
        return int(patient_id)
    except (TypeError, ValueError):
        return 0
