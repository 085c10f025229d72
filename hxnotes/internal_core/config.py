from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _project_root() -> Path:
    # hxnotes/internal_core/config.py -> hxnotes -> repo root
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_first(names: list[str], default: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value is not None and value != "":
            return value
    return default


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_opt_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return int(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class AppConfig:
    HX_DEMO_PASSWORD: str
    HX_DATA_DIR: str
    HX_STORE_KEY: str
    HX_PRIVACY_KEY: str
    HX_SESSION_TTL_SECONDS: int
    HX_LLM_BACKEND: str
    HX_GEMINI_API_KEY: str
    HX_GEMINI_SUMMARY_MODEL: str
    HX_GEMINI_REASONING_MODEL: str
    HX_LLAMA_CPP_MODEL: str
    HX_LLAMA_CPP_N_CTX: int
    HX_LLAMA_CPP_N_GPU_LAYERS: int
    HX_LLAMA_CPP_N_THREADS: Optional[int]
    HX_LLAMA_CPP_CHAT_FORMAT: str
    HX_LLM_MAX_TOKENS: int
    HX_IN_MEMORY_STORE: bool
    HX_LOG_LEVEL: str

    def data_dir_path(self, repo_root: Path | None = None) -> Path:
        base = repo_root or _project_root()
        return (base / self.HX_DATA_DIR).resolve()


def load_config() -> AppConfig:
    return AppConfig(
        HX_DEMO_PASSWORD=_getenv_str("HX_DEMO_PASSWORD", ""),
        HX_DATA_DIR=_getenv_str("HX_DATA_DIR", "./data"),
        HX_STORE_KEY=_getenv_str("HX_STORE_KEY", "patientData"),
        HX_PRIVACY_KEY=_getenv_str("HX_PRIVACY_KEY", "gdpr_acknowledged"),
        HX_SESSION_TTL_SECONDS=_getenv_int("HX_SESSION_TTL_SECONDS", 14400),
        HX_LLM_BACKEND=_getenv_str("HX_LLM_BACKEND", "gemini"),
        HX_GEMINI_API_KEY=_getenv_first(["HX_GEMINI_API_KEY", "GEMINI_API_KEY", "API_KEY"], ""),
        HX_GEMINI_SUMMARY_MODEL=_getenv_str("HX_GEMINI_SUMMARY_MODEL", "gemini-2.5-flash"),
        HX_GEMINI_REASONING_MODEL=_getenv_str("HX_GEMINI_REASONING_MODEL", "gemini-2.5-pro"),
        HX_LLAMA_CPP_MODEL=_getenv_str("HX_LLAMA_CPP_MODEL", ""),
        HX_LLAMA_CPP_N_CTX=_getenv_int("HX_LLAMA_CPP_N_CTX", 4096),
        HX_LLAMA_CPP_N_GPU_LAYERS=_getenv_int("HX_LLAMA_CPP_N_GPU_LAYERS", -1),
        HX_LLAMA_CPP_N_THREADS=_getenv_opt_int("HX_LLAMA_CPP_N_THREADS"),
        HX_LLAMA_CPP_CHAT_FORMAT=_getenv_str("HX_LLAMA_CPP_CHAT_FORMAT", "gemma"),
        HX_LLM_MAX_TOKENS=_getenv_int("HX_LLM_MAX_TOKENS", 1024),
        HX_IN_MEMORY_STORE=_getenv_bool("HX_IN_MEMORY_STORE", False),
        HX_LOG_LEVEL=_getenv_str("HX_LOG_LEVEL", "INFO"),
    )
