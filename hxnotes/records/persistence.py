from __future__ import annotations

"""
Flat key-value persistence for the patient record blob.

Design intent:
- Mirror a browser-style key/value store: one serialized value per fixed key.
- Keep the record store independent of the backend so tests can inject doubles.
"""

import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from threading import RLock
from typing import Dict, Optional, Sequence

from pydantic import ValidationError

from hxnotes.internal_core.contracts import STORE_SCHEMA_VERSION, Patient, StoreSnapshot

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class PersistenceError(RuntimeError):
    """Raised when the persisted blob cannot be read, decoded or written."""


class KeyValueBackend(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...


class InMemoryKeyValueBackend(KeyValueBackend):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileKeyValueBackend(KeyValueBackend):
    """One file per key under ``root_dir``; each write replaces the file atomically."""

    def __init__(self, root_dir: Path | str) -> None:
        self._root = Path(root_dir).expanduser()

    def _path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key or ""):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        self._root.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=str(self._root))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


class PatientPersistence(ABC):
    @abstractmethod
    def load(self) -> list[Patient]: ...

    @abstractmethod
    def save(self, patients: Sequence[Patient]) -> None: ...


class KeyValuePatientPersistence(PatientPersistence):
    def __init__(self, backend: KeyValueBackend, key: str = "patientData") -> None:
        self._backend = backend
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> list[Patient]:
        try:
            raw = self._backend.get(self._key)
        except OSError as exc:
            raise PersistenceError(f"Could not read key {self._key!r}: {exc}") from exc
        if raw is None or not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Stored value under {self._key!r} is not valid JSON: {exc}") from exc

        # Unversioned layout: a bare list of patients.
        if isinstance(data, list):
            data = {"schema_version": STORE_SCHEMA_VERSION, "patients": data}
        if not isinstance(data, dict):
            raise PersistenceError(f"Stored value under {self._key!r} has unexpected shape.")

        version = data.get("schema_version")
        if version != STORE_SCHEMA_VERSION:
            raise PersistenceError(f"Unsupported store schema_version: {version!r}")
        try:
            snapshot = StoreSnapshot.model_validate(data)
        except ValidationError as exc:
            raise PersistenceError(f"Stored patients failed validation: {exc}") from exc
        return list(snapshot.patients)

    def save(self, patients: Sequence[Patient]) -> None:
        snapshot = StoreSnapshot(patients=list(patients))
        payload = json.dumps(snapshot.model_dump(by_alias=True, exclude_none=True), ensure_ascii=False)
        try:
            self._backend.set(self._key, payload)
        except OSError as exc:
            raise PersistenceError(f"Could not write key {self._key!r}: {exc}") from exc


class PrivacyNoticeFlag:
    def __init__(self, backend: KeyValueBackend, key: str = "gdpr_acknowledged") -> None:
        self._backend = backend
        self._key = key

    def is_acknowledged(self) -> bool:
        try:
            return self._backend.get(self._key) == "true"
        except OSError:
            return False

    def acknowledge(self) -> None:
        try:
            self._backend.set(self._key, "true")
        except OSError as exc:
            raise PersistenceError(f"Could not write key {self._key!r}: {exc}") from exc

    def reset(self) -> None:
        self._backend.delete(self._key)
