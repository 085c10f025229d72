from __future__ import annotations

import logging
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .base import AssistantService, SummarizationError, SummarizationService, parse_json_object

logger = logging.getLogger(__name__)


class GeminiSummarizationService(SummarizationService, AssistantService):
    def __init__(
        self,
        *,
        api_key: str = "",
        summary_model: str = "gemini-2.5-flash",
        reasoning_model: str = "gemini-2.5-pro",
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._summary_model = summary_model
        self._reasoning_model = reasoning_model
        self._client = client

    def name(self) -> str:
        return "gemini"

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise SummarizationError(
                    "missing_api_key",
                    "Gemini API key is missing. Set HX_GEMINI_API_KEY (or GEMINI_API_KEY).",
                    self.name(),
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _generate(self, *, model: str, contents: Any, config: Optional[types.GenerateContentConfig]) -> str:
        client = self._get_client()
        try:
            response = client.models.generate_content(model=model, contents=contents, config=config)
        except genai_errors.APIError as exc:
            raise SummarizationError(f"api_error_{exc.code}", str(exc), self.name()) from exc
        except Exception as exc:
            raise SummarizationError("transport_error", f"Gemini request failed: {exc}", self.name()) from exc
        text = getattr(response, "text", None)
        if not text:
            raise SummarizationError("empty_response", "Gemini returned no text.", self.name())
        return str(text)

    def summarize(self, request: Any) -> dict[str, Any]:
        parts: list[types.Part] = [
            types.Part.from_bytes(data=attachment.raw_bytes(), mime_type=attachment.mime_type)
            for attachment in request.attachments
        ]
        parts.append(types.Part.from_text(text=request.prompt))
        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=request.response_schema,
        )
        logger.debug(
            "gemini_summarize model=%s mode=%s attachments=%d",
            self._summary_model,
            request.mode,
            len(request.attachments),
        )
        raw = self._generate(model=self._summary_model, contents=parts, config=config)
        return parse_json_object(raw, self.name())

    def complete(
        self,
        prompt: str,
        *,
        response_schema: Optional[dict[str, Any]] = None,
        reasoning: bool = False,
    ) -> str:
        model = self._reasoning_model if reasoning else self._summary_model
        config = None
        if response_schema is not None:
            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_schema,
            )
        return self._generate(model=model, contents=prompt, config=config)
