from __future__ import annotations

from hxnotes.internal_core.config import AppConfig

from .base import AssistantService, SummarizationError, SummarizationService
from .mock import MockSummarizationService


def build_summarization_service(config: AppConfig) -> SummarizationService:
    backend = (config.HX_LLM_BACKEND or "").strip().lower()
    if backend == "mock":
        return MockSummarizationService()
    if backend == "llama_cpp":
        from .local_llama import LlamaCppSummarizationService

        return LlamaCppSummarizationService(
            model_path=config.HX_LLAMA_CPP_MODEL or None,
            max_tokens=config.HX_LLM_MAX_TOKENS,
            n_ctx=config.HX_LLAMA_CPP_N_CTX,
            n_gpu_layers=config.HX_LLAMA_CPP_N_GPU_LAYERS,
            n_threads=config.HX_LLAMA_CPP_N_THREADS,
            chat_format=config.HX_LLAMA_CPP_CHAT_FORMAT,
        )
    if backend == "gemini":
        from .gemini import GeminiSummarizationService

        return GeminiSummarizationService(
            api_key=config.HX_GEMINI_API_KEY,
            summary_model=config.HX_GEMINI_SUMMARY_MODEL,
            reasoning_model=config.HX_GEMINI_REASONING_MODEL,
        )
    raise ValueError(f"Unsupported HX_LLM_BACKEND: {config.HX_LLM_BACKEND!r}")


__all__ = [
    "AssistantService",
    "MockSummarizationService",
    "SummarizationError",
    "SummarizationService",
    "build_summarization_service",
]
