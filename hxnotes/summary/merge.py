from __future__ import annotations

import json
from typing import Any, Union

from pydantic import ValidationError

from hxnotes.internal_core.contracts import KEY_CHANGES, StructuredSummary

from .requests import CreateRequest, UpdateRequest


class SummaryValidationError(ValueError):
    """Raised when a service response does not match the requested schema."""


def parse_summary_payload(
    payload: Any,
    request: Union[CreateRequest, UpdateRequest],
) -> StructuredSummary:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise SummaryValidationError(f"Response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise SummaryValidationError(f"Response must be a JSON object, got {type(payload).__name__}.")

    missing = [field for field in request.required_fields if field not in payload]
    if missing:
        raise SummaryValidationError(f"Response missing required field(s): {missing}")

    fields: dict[str, list[str]] = {}
    for field in request.required_fields:
        value = payload[field]
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise SummaryValidationError(f"Field {field!r} must be a list of strings.")
        fields[field] = list(value)

    # Key changes only belong on update-type records.
    if request.mode == "create":
        fields.pop(KEY_CHANGES, None)

    try:
        return StructuredSummary.model_validate(fields)
    except ValidationError as exc:
        raise SummaryValidationError(f"Response failed summary validation: {exc}") from exc
