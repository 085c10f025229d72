from __future__ import annotations

import re
from typing import Iterable, Sequence

from hxnotes.internal_core.contracts import StructuredSummary

SAFETY_NETTING_ADVICE = (
    "If symptoms worsen, or if new symptoms develop, please seek urgent medical advice "
    "by calling 111, your GP surgery, or 999 in an emergency."
)
SAFETY_NET_TRIGGERS: tuple[str, ...] = ("symptoms worsen", "999")

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def normalize_item(text: str) -> str:
    lowered = _PUNCT_RE.sub(" ", str(text or "").lower())
    return _WS_RE.sub(" ", lowered).strip()


def dedupe_items(items: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for item in items:
        cleaned = str(item or "").strip()
        key = normalize_item(cleaned)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(cleaned)
    return out


def is_safety_net_item(item: str) -> bool:
    lowered = str(item or "").lower()
    return any(trigger in lowered for trigger in SAFETY_NET_TRIGGERS)


def apply_safety_net(items: Sequence[str]) -> list[str]:
    kept = [item for item in items if not is_safety_net_item(item)]
    kept.append(SAFETY_NETTING_ADVICE)
    return kept


def postprocess_summary(summary: StructuredSummary) -> StructuredSummary:
    """Deduplicate every section, then pin the safety-netting advice to the end of the plan."""
    return StructuredSummary(
        acute_issues=dedupe_items(summary.acute_issues),
        pending_tasks=apply_safety_net(dedupe_items(summary.pending_tasks)),
        past_medical_history=dedupe_items(summary.past_medical_history),
        key_changes=dedupe_items(summary.key_changes) if summary.key_changes is not None else None,
    )
