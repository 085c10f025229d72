from __future__ import annotations

"""
Local GGUF summarization backend via llama-cpp-python.

Design intent:
- Offer an offline alternative to the hosted backend with the same request contract.
- Constrain output to a JSON object and leave shape validation to the merge engine.
- Fail closed: missing model, missing runtime or binary attachments raise SummarizationError.
"""

import logging
import os
from threading import Lock
from typing import Any, Optional, Sequence

from hxnotes.utils.model_paths import resolve_gguf_model_path

from .base import AssistantService, SummarizationError, SummarizationService, parse_json_object

logger = logging.getLogger(__name__)

_TEXT_MIME_PREFIXES = ("text/",)
_TEXT_MIME_TYPES = {"application/json", "application/xml"}


def to_json_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert the uppercase OpenAPI-subset schema dialect into plain JSON Schema."""
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            out[key] = value.lower()
        elif key == "properties" and isinstance(value, dict):
            out[key] = {name: to_json_schema(sub) for name, sub in value.items()}
        elif key == "items" and isinstance(value, dict):
            out[key] = to_json_schema(value)
        else:
            out[key] = value
    return out


def _attachment_text(attachments: Sequence[Any], provider_name: str) -> str:
    blocks = []
    for attachment in attachments:
        mime = (attachment.mime_type or "").lower()
        if not (mime.startswith(_TEXT_MIME_PREFIXES) or mime in _TEXT_MIME_TYPES):
            raise SummarizationError(
                "attachments_unsupported",
                f"Local backend cannot read attachments of type {attachment.mime_type!r}.",
                provider_name,
            )
        label = attachment.filename or attachment.mime_type
        blocks.append(f"ATTACHMENT ({label}):\n{attachment.raw_bytes().decode('utf-8', errors='replace')}")
    return "\n\n".join(blocks)


class LlamaCppSummarizationService(SummarizationService, AssistantService):
    def __init__(
        self,
        *,
        model_path: Optional[str] = None,
        max_tokens: int = 1024,
        n_ctx: int = 4096,
        n_gpu_layers: int = -1,
        n_threads: Optional[int] = None,
        chat_format: Optional[str] = None,
    ) -> None:
        self._model_path = model_path
        self._max_tokens = int(max_tokens)
        self._n_ctx = int(n_ctx)
        self._n_gpu_layers = int(n_gpu_layers)
        self._n_threads = n_threads
        self._chat_format = chat_format or "gemma"
        self._llm: Any = None
        self._llm_lock = Lock()
        self.chat_format_applied = False

    def name(self) -> str:
        return "llama_cpp"

    def _get_llm(self) -> Any:
        with self._llm_lock:
            if self._llm is not None:
                return self._llm

            resolved = resolve_gguf_model_path(self._model_path).strip()
            if not resolved:
                raise SummarizationError(
                    "missing_model",
                    "Local model path is missing. Set HX_LLAMA_CPP_MODEL or place a GGUF under models/.",
                    self.name(),
                )
            if not os.path.exists(resolved):
                raise SummarizationError("missing_model", f"Local model file not found: {resolved}", self.name())

            try:
                from llama_cpp import Llama  # type: ignore
            except Exception as exc:
                raise SummarizationError("runtime_unavailable", f"llama_cpp import failed: {exc}", self.name()) from exc

            llm_kwargs: dict[str, Any] = {
                "model_path": resolved,
                "n_ctx": self._n_ctx,
                "n_gpu_layers": self._n_gpu_layers,
                "verbose": False,
                "chat_format": self._chat_format,
            }
            if self._n_threads is not None:
                llm_kwargs["n_threads"] = int(self._n_threads)
            try:
                self._llm = Llama(**llm_kwargs)
                self.chat_format_applied = True
            except TypeError as exc:
                if "chat_format" not in str(exc):
                    raise
                llm_kwargs.pop("chat_format", None)
                self._llm = Llama(**llm_kwargs)
                self.chat_format_applied = False
            return self._llm

    def _run_chat_completion(self, prompt: str, *, json_schema: Optional[dict[str, Any]]) -> str:
        completion_kwargs: dict[str, Any] = {
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.0,
            "top_p": 1.0,
            "max_tokens": self._max_tokens,
        }
        if json_schema is not None:
            completion_kwargs["response_format"] = {"type": "json_object", "schema": json_schema}
        try:
            llm = self._get_llm()
            try:
                resp = llm.create_chat_completion(**completion_kwargs)
            except TypeError as exc:
                if "response_format" not in str(exc) or "response_format" not in completion_kwargs:
                    raise
                completion_kwargs.pop("response_format", None)
                resp = llm.create_chat_completion(**completion_kwargs)
            content = resp["choices"][0]["message"]["content"]
        except SummarizationError:
            raise
        except Exception as exc:
            raise SummarizationError("inference_failed", f"Local inference failed: {exc}", self.name()) from exc
        return str(content or "").strip()

    def summarize(self, request: Any) -> dict[str, Any]:
        prompt = request.prompt
        extra = _attachment_text(request.attachments, self.name())
        if extra:
            prompt = f"{prompt}\n\n{extra}"
        prompt = f"{prompt}\n\nReturn strictly one JSON object with keys: {list(request.required_fields)}."
        raw = self._run_chat_completion(prompt, json_schema=to_json_schema(request.response_schema))
        return parse_json_object(raw, self.name())

    def complete(
        self,
        prompt: str,
        *,
        response_schema: Optional[dict[str, Any]] = None,
        reasoning: bool = False,
    ) -> str:
        schema = to_json_schema(response_schema) if response_schema is not None else None
        return self._run_chat_completion(prompt, json_schema=schema)
