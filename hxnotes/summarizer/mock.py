from __future__ import annotations

import json
import re
from typing import Any, Optional

from hxnotes.internal_core.contracts import (
    ACUTE_ISSUES,
    KEY_CHANGES,
    PAST_MEDICAL_HISTORY,
    PENDING_TASKS,
)

from .base import AssistantService, SummarizationService

_SPLIT_RE = re.compile(r"[,;\n]+")


class MockSummarizationService(SummarizationService, AssistantService):
    """Deterministic offline backend; echoes the input into the summary sections."""

    def __init__(self) -> None:
        self._counter = 0

    def summarize(self, request: Any) -> dict[str, Any]:
        self._counter += 1
        issues = [part.strip() for part in _SPLIT_RE.split(request.text or "") if part.strip()]
        issues.extend(f"(mock) attachment reviewed: {a.filename or a.mime_type}" for a in request.attachments)
        payload: dict[str, Any] = {
            ACUTE_ISSUES: issues,
            PENDING_TASKS: [f"(mock) review {item}" for item in issues],
            PAST_MEDICAL_HISTORY: [],
        }
        if request.mode == "update":
            previous = json.loads(request.prior_summary_context)
            payload[PAST_MEDICAL_HISTORY] = list(previous.get(PAST_MEDICAL_HISTORY, []))
            payload[KEY_CHANGES] = [f"New: {item}" for item in issues]
        return payload

    def complete(
        self,
        prompt: str,
        *,
        response_schema: Optional[dict[str, Any]] = None,
        reasoning: bool = False,
    ) -> str:
        self._counter += 1
        if response_schema is not None:
            return json.dumps(
                {
                    "diagnoses": [
                        {
                            "diagnosis": "(mock) undifferentiated presentation",
                            "rationale": "Simulated output for offline runs.",
                            "likelihood": "Low",
                        }
                    ]
                }
            )
        return f"(mock) simulated assistant output {self._counter}."

    def name(self) -> str:
        return "mock"
