from __future__ import annotations

"""
View/selection state over the record store.

Design intent:
- Track which patient and which summary version is on screen without touching stored data.
- Expose a generation token so late submission results can be detected and dropped.
"""

from dataclasses import dataclass
from threading import Lock
from typing import Optional, Sequence

from hxnotes.internal_core.contracts import Patient, SummaryRecord


class SubmissionInProgressError(RuntimeError):
    """Raised when a form context already has a submission in flight."""


class ViewSelection:
    def __init__(self) -> None:
        self.patient_id: Optional[str] = None
        self.summary_index: int = 0
        self.generation: int = 0

    def select_patient(self, patient_id: str) -> None:
        self.patient_id = patient_id
        self.summary_index = 0
        self.generation += 1

    def start_new_patient(self) -> None:
        self.patient_id = None
        self.summary_index = 0
        self.generation += 1

    def view_summary(self, index: int, history_length: int) -> None:
        if self.patient_id is None:
            raise ValueError("No patient selected.")
        if index < 0 or index >= history_length:
            raise ValueError(f"Summary index out of range: {index} (history has {history_length})")
        self.summary_index = index

    def show_newest(self) -> None:
        self.summary_index = 0

    def resolve(self, patient: Optional[Patient]) -> Optional[SummaryRecord]:
        if patient is None or self.patient_id is None or patient.id != self.patient_id:
            return None
        if 0 <= self.summary_index < len(patient.summaries):
            return patient.summaries[self.summary_index]
        return None

    def on_patient_deleted(self, patient_id: str) -> bool:
        if self.patient_id != patient_id:
            return False
        self.start_new_patient()
        return True

    def on_store_cleared(self) -> None:
        self.start_new_patient()


@dataclass(frozen=True)
class SubmissionTicket:
    generation: int
    target_patient_id: Optional[str]


class FormContext:
    """One submission form: its view selection plus the single in-flight slot."""

    def __init__(self) -> None:
        self.selection = ViewSelection()
        self._lock = Lock()
        self._in_flight: Optional[SubmissionTicket] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    def begin_submission(self) -> SubmissionTicket:
        with self._lock:
            if self._in_flight is not None:
                raise SubmissionInProgressError("A submission is already in progress for this form.")
            ticket = SubmissionTicket(
                generation=self.selection.generation,
                target_patient_id=self.selection.patient_id,
            )
            self._in_flight = ticket
            return ticket

    def is_current(self, ticket: SubmissionTicket) -> bool:
        return (
            ticket.generation == self.selection.generation
            and ticket.target_patient_id == self.selection.patient_id
        )

    def end_submission(self, ticket: SubmissionTicket) -> None:
        with self._lock:
            if self._in_flight is ticket:
                self._in_flight = None


def filter_patients(patients: Sequence[Patient], term: str) -> list[Patient]:
    needle = (term or "").lower()
    if not needle:
        return list(patients)
    return [p for p in patients if needle in p.name.lower()]
