from __future__ import annotations

"""
Per-session audit trail.

Design intent:
- Audit detail is structured `key=value` metadata only (ids, counts, codes).
- Patient text, summaries, model output and error messages never reach the trail:
  any value that is not a short identifier-like token is redacted to its length.
"""

import datetime as _dt
import re
from typing import Mapping, Optional, Union

from .contracts import AuditEvent, AuditEventType
from .session_store import WorkspaceSessionStore

AuditValue = Union[str, int, bool, None]

_SAFE_TOKEN_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,64}$")
_FIELD_NAME_RE = re.compile(r"^[a-z][a-z0-9_]{0,31}$")


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def audit_value(value: AuditValue) -> str:
    if value is None:
        return "none"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    text = str(value)
    if _SAFE_TOKEN_RE.match(text):
        return text
    return f"<redacted len={len(text)}>"


def format_audit_detail(fields: Optional[Mapping[str, AuditValue]]) -> str:
    parts = []
    for name in sorted(fields or {}):
        if not _FIELD_NAME_RE.match(name):
            raise ValueError(f"Invalid audit field name: {name!r}")
        parts.append(f"{name}={audit_value(fields[name])}")
    return " ".join(parts)


def log_event(
    store: WorkspaceSessionStore,
    session_id: str,
    event_type: AuditEventType,
    code: str,
    fields: Optional[Mapping[str, AuditValue]] = None,
    duration_ms: Optional[int] = None,
) -> None:
    event = AuditEvent(
        ts_iso=_ts_iso(),
        session_id=session_id,
        type=event_type,
        code=audit_value(code),
        detail=format_audit_detail(fields),
        duration_ms=duration_ms,
    )
    store.append_audit_event(session_id, event)
