from __future__ import annotations

import time
import uuid
from threading import RLock
from typing import Any, Dict, Optional

from hxnotes.view.selection import FormContext

from .contracts import AuditEvent


class WorkspaceSessionStore:
    def __init__(self, ttl_seconds: int):
        self._ttl_seconds = ttl_seconds
        self._lock = RLock()
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def create_session(self) -> str:
        session_id = uuid.uuid4().hex
        now = time.time()
        with self._lock:
            self._sessions[session_id] = {
                "session_id": session_id,
                "created_at": now,
                "updated_at": now,
                "expires_at": now + self._ttl_seconds,
                "form": FormContext(),
                "audit_events": [],
                "error": None,
            }
        return session_id

    def _touch(self, session_id: str) -> None:
        now = time.time()
        session = self._sessions[session_id]
        session["updated_at"] = now
        session["expires_at"] = now + self._ttl_seconds

    def _require(self, session_id: str) -> Dict[str, Any]:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session_id: {session_id}")
        return session

    def get_form(self, session_id: str) -> FormContext:
        with self._lock:
            session = self._require(session_id)
            self._touch(session_id)
            return session["form"]

    def set_error(self, session_id: str, message: Optional[str]) -> None:
        with self._lock:
            self._require(session_id)["error"] = message
            self._touch(session_id)

    def append_audit_event(self, session_id: str, event: AuditEvent) -> None:
        with self._lock:
            self._require(session_id)["audit_events"].append(event)
            self._touch(session_id)

    def get_session(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            session = self._require(session_id)
            form: FormContext = session["form"]
            return {
                "session_id": session["session_id"],
                "created_at": session["created_at"],
                "updated_at": session["updated_at"],
                "expires_at": session["expires_at"],
                "selected_patient_id": form.selection.patient_id,
                "summary_index": form.selection.summary_index,
                "submission_in_flight": form.in_flight,
                "audit_events": list(session["audit_events"]),
                "error": session["error"],
            }

    def clear_patient_everywhere(self, patient_id: str) -> list[str]:
        """Drop a deleted patient from every session's selection; returns affected session ids."""
        affected: list[str] = []
        with self._lock:
            for session_id, session in self._sessions.items():
                if session["form"].selection.on_patient_deleted(patient_id):
                    affected.append(session_id)
        return affected

    def clear_all_selections(self) -> None:
        with self._lock:
            for session in self._sessions.values():
                session["form"].selection.on_store_cleared()

    def destroy_session(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        return session is not None

    def cleanup_expired_sessions(self) -> int:
        now = time.time()
        expired = []
        with self._lock:
            for session_id, session in self._sessions.items():
                if session["expires_at"] <= now:
                    expired.append(session_id)
        for session_id in expired:
            self.destroy_session(session_id)
        return len(expired)
