from __future__ import annotations

"""
Plain-text rendering of a stored summary for copy/paste into a clinical record.

Design intent:
- Put Key Changes first so the reader sees what is new before the full picture.
- Omit empty sections; one "- item" line per entry.
"""

from typing import Iterator

from hxnotes.internal_core.contracts import (
    ACUTE_ISSUES,
    KEY_CHANGES,
    PAST_MEDICAL_HISTORY,
    PENDING_TASKS,
    StructuredSummary,
)

SECTION_ORDER: tuple[str, ...] = (KEY_CHANGES, ACUTE_ISSUES, PENDING_TASKS, PAST_MEDICAL_HISTORY)


def ordered_sections(summary: StructuredSummary) -> Iterator[tuple[str, list[str]]]:
    payload = summary.to_payload()
    for title in SECTION_ORDER:
        items = payload.get(title) or []
        if items:
            yield title, list(items)


def format_summary_text(summary: StructuredSummary) -> str:
    blocks = []
    for title, items in ordered_sections(summary):
        lines = "\n".join(f"- {item}" for item in items)
        blocks.append(f"{title}:\n{lines}")
    return "\n\n".join(blocks)
