from pathlib import Path

from hxnotes.internal_core.config import load_config


def test_defaults(monkeypatch) -> None:
    for name in ("HX_DATA_DIR", "HX_STORE_KEY", "HX_LLM_BACKEND", "HX_IN_MEMORY_STORE", "HX_LLAMA_CPP_N_THREADS"):
        monkeypatch.delenv(name, raising=False)
    config = load_config()
    assert config.HX_STORE_KEY == "patientData"
    assert config.HX_LLM_BACKEND == "gemini"
    assert config.HX_GEMINI_SUMMARY_MODEL == "gemini-2.5-flash"
    assert config.HX_IN_MEMORY_STORE is False
    assert config.HX_LLAMA_CPP_N_THREADS is None


def test_env_overrides_and_api_key_fallback(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("HX_GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "from-gemini-var")
    monkeypatch.setenv("HX_IN_MEMORY_STORE", "yes")
    monkeypatch.setenv("HX_SESSION_TTL_SECONDS", "60")
    monkeypatch.setenv("HX_DATA_DIR", "store")

    config = load_config()

    assert config.HX_GEMINI_API_KEY == "from-gemini-var"
    assert config.HX_IN_MEMORY_STORE is True
    assert config.HX_SESSION_TTL_SECONDS == 60
    assert config.data_dir_path(Path(tmp_path)) == (tmp_path / "store").resolve()
