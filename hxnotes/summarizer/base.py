from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from hxnotes.summary.requests import SummaryRequest


class SummarizationError(RuntimeError):
    def __init__(self, code: str, message: str, provider_name: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_name = provider_name


class SummarizationService(ABC):
    @abstractmethod
    def summarize(self, request: "SummaryRequest") -> dict[str, Any]: ...

    @abstractmethod
    def name(self) -> str: ...


class AssistantService(ABC):
    @abstractmethod
    def complete(
        self,
        prompt: str,
        *,
        response_schema: Optional[dict[str, Any]] = None,
        reasoning: bool = False,
    ) -> str: ...


def parse_json_object(raw: str, provider_name: str) -> dict[str, Any]:
    text = (raw or "").strip()
    if not text:
        raise SummarizationError("empty_response", "Model returned an empty response.", provider_name)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        extracted = extract_first_json_object(text)
        if not extracted:
            raise SummarizationError("invalid_json", "Model output is not valid JSON.", provider_name)
        try:
            data = json.loads(extracted)
        except json.JSONDecodeError as exc:
            raise SummarizationError("invalid_json", f"Model output is not valid JSON: {exc}", provider_name) from exc
    if not isinstance(data, dict):
        raise SummarizationError("invalid_json", "Model output is not a JSON object.", provider_name)
    return data


def extract_first_json_object(text: str) -> str:
    start = text.find("{")
    if start < 0:
        return ""
    depth = 0
    in_str = False
    escape = False
    for i, ch in enumerate(text[start:], start=start):
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""
