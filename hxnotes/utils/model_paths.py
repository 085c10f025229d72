from __future__ import annotations

import os
from pathlib import Path


def project_root() -> Path:
    # hxnotes/utils/model_paths.py -> hxnotes -> repo root
    return Path(__file__).resolve().parents[2]


def model_search_roots() -> list[Path]:
    roots: list[Path] = []
    model_root = os.getenv("HX_MODEL_ROOT", "").strip()
    if model_root:
        roots.append(Path(model_root).expanduser())
    base = project_root()
    roots.extend([base, base / "models", base.parent / "models"])
    out: list[Path] = []
    seen: set[str] = set()
    for item in roots:
        key = str(item)
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def discover_gguf_model() -> str:
    """First ``*.gguf`` file found directly under any search root, sorted by name."""
    for root in model_search_roots():
        try:
            if not root.is_dir():
                continue
            matches = sorted(root.glob("*.gguf"))
        except OSError:
            continue
        if matches:
            return str(matches[0].resolve())
    return ""


def resolve_gguf_model_path(explicit_path: str | None = None) -> str:
    """
    Resolve the local GGUF model path with precedence:
    1) explicit arg
    2) HX_LLAMA_CPP_MODEL
    3) auto-discovery in common local paths
    """

    explicit = str(explicit_path or "").strip()
    if explicit:
        return explicit

    env_path = os.getenv("HX_LLAMA_CPP_MODEL", "").strip()
    if env_path:
        return env_path

    return discover_gguf_model()
