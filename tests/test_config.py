"""Tests for environment-driven configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from health_context.core.config import Config
from health_context.core.exceptions import ConfigError

_KEYS = (
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_EMBEDDING_MODEL",
    "EMBEDDING_BACKEND",
    "EMBEDDING_DIMENSION",
    "EMBEDDING_MAX_CHARS",
    "SUMMARY_MAX_OUTPUT_TOKENS",
    "SUMMARY_MAX_CHARS",
    "BACKEND_TIMEOUT_SECONDS",
    "SYMPTOM_WINDOW",
    "CONTEXT_DB_PATH",
    "VECTOR_INDEX_BACKEND",
    "VECTOR_INDEX_PATH",
    "MEMORY_SCAN_LIMIT",
    "SNAPSHOT_TTL_HOURS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # setenv first so values written by load_dotenv are undone at teardown.
    for key in _KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_env_file():
    config = Config.load()

    assert config.gemini_api_key is None
    assert config.embedding_backend == "gemini"
    assert config.embedding_dimension == 256
    assert config.embedding_max_chars == 4000
    assert config.summary_max_output_tokens == 180
    assert config.summary_max_chars == 2500
    assert config.symptom_window == 30
    assert config.memory_scan_limit == 200
    assert config.vector_index_backend == "faiss"
    assert config.database_path == Path("data/context/context.db")
    assert config.env_path is None


def test_values_come_from_env_file(tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text(
        "\n".join(
            [
                "GEMINI_API_KEY=secret-key-123456",
                "GEMINI_MODEL=models/gemini-2.0-flash",
                "GEMINI_EMBEDDING_MODEL=text-embedding-004",
                "EMBEDDING_BACKEND=HASH",
                "EMBEDDING_DIMENSION=64",
                "CONTEXT_DB_PATH=/tmp/ctx.db",
                "SNAPSHOT_TTL_HOURS=0.5",
                "LOG_LEVEL=debug",
            ]
        ),
        encoding="utf-8",
    )

    config = Config.load(env_file)

    assert config.gemini_api_key == "secret-key-123456"
    assert config.gemini_model == "gemini-2.0-flash"
    assert config.gemini_embedding_model == "models/text-embedding-004"
    assert config.embedding_backend == "hash"
    assert config.embedding_dimension == 64
    assert config.database_path == Path("/tmp/ctx.db")
    assert config.snapshot_ttl_hours == 0.5
    assert config.log_level == "DEBUG"
    assert config.env_path == str(env_file)


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("EMBEDDING_DIMENSION", "many")
    monkeypatch.setenv("SYMPTOM_WINDOW", "0")
    monkeypatch.setenv("BACKEND_TIMEOUT_SECONDS", "-1")

    config = Config.load()

    assert config.embedding_dimension == 256
    assert config.symptom_window == 30
    assert config.backend_timeout == 10.0


@pytest.mark.parametrize("key", ["EMBEDDING_BACKEND", "VECTOR_INDEX_BACKEND"])
def test_unsupported_backend_is_rejected(monkeypatch, key):
    monkeypatch.setenv(key, "chroma")

    with pytest.raises(ConfigError):
        Config.load()


def test_override_env_wins():
    config = Config.load(override_env={"MEMORY_SCAN_LIMIT": "20"})

    assert config.memory_scan_limit == 20


def test_as_dict_masks_api_key():
    config = Config(gemini_api_key="abcdefghijklmnop")

    assert config.as_dict()["gemini_api_key"] == "abcd***mnop"
    assert Config(gemini_api_key=None).as_dict()["gemini_api_key"] == "<empty>"
