"""Configuration loader for the health context pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

EMBEDDING_BACKENDS = ("gemini", "qwen", "hash")
VECTOR_INDEX_BACKENDS = ("faiss", "none")


def _coerce_optional(value: Optional[str]) -> Optional[str]:
    """Return stripped value or ``None`` when the input is empty."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _normalise_gemini_model(value: Optional[str], default: str) -> str:
    model = _coerce_optional(value) or default
    if model.startswith("models/"):
        # google-generativeai expects generation model names without the prefix.
        model = model.split("/", 1)[1]
    return model


def _mask(value: Optional[str]) -> str:
    if not value:
        return "<empty>"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}***{value[-4:]}"


def _read_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Invalid %s=%r, defaulting to %s", name, raw, default)
        return default
    if value < minimum:
        logging.getLogger(__name__).warning("%s=%s is below %s, defaulting to %s", name, value, minimum, default)
        return default
    return value


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Invalid %s=%r, defaulting to %s", name, raw, default)
        return default
    if value <= 0:
        logging.getLogger(__name__).warning("%s must be positive, defaulting to %s", name, default)
        return default
    return value


def _read_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (_coerce_optional(os.getenv(name)) or default).lower()
    if value not in choices:
        raise ConfigError(f"Unsupported {name} '{value}'. Supported values: {', '.join(choices)}.")
    return value


@dataclass(frozen=True)
class Config:
    """Immutable runtime configuration derived from environment variables."""

    gemini_api_key: Optional[str]
    gemini_model: str = "gemini-1.5-flash"
    gemini_embedding_model: str = "models/text-embedding-004"
    embedding_backend: str = "gemini"
    embedding_dimension: int = 256
    embedding_max_chars: int = 4000
    summary_max_output_tokens: int = 180
    summary_max_chars: int = 2500
    backend_timeout: float = 10.0
    symptom_window: int = 30
    database_path: Path = Path("data/context/context.db")
    vector_index_backend: str = "faiss"
    vector_index_path: Optional[Path] = Path("data/context/memory.index")
    memory_scan_limit: int = 200
    snapshot_ttl_hours: float = 24.0
    log_level: str = "INFO"
    env_path: Optional[str] = field(default=None, repr=False)

    @classmethod
    def load(
        cls,
        env_file: Optional[Path | str] = None,
        *,
        override_env: Optional[MutableMapping[str, str]] = None,
    ) -> "Config":
        """Load configuration from ``.env`` and the current environment."""
        env_path = Path(env_file) if env_file is not None else Path.cwd() / ".env"

        logger = logging.getLogger(__name__)
        env_path_str: Optional[str] = None
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=True)
            logger.debug("Loaded .env file", extra={"env_path": str(env_path)})
            env_path_str = str(env_path)
        elif env_file is not None:
            logger.warning("Specified .env file not found", extra={"env_path": str(env_path)})

        if override_env:
            for key, value in override_env.items():
                os.environ[key] = value

        raw_key = _coerce_optional(os.getenv("GEMINI_API_KEY"))
        embedding_model = _coerce_optional(os.getenv("GEMINI_EMBEDDING_MODEL")) or "models/text-embedding-004"
        if not embedding_model.startswith("models/"):
            embedding_model = f"models/{embedding_model}"

        index_path_raw = _coerce_optional(os.getenv("VECTOR_INDEX_PATH"))

        config = cls(
            gemini_api_key=raw_key,
            gemini_model=_normalise_gemini_model(os.getenv("GEMINI_MODEL"), "gemini-1.5-flash"),
            gemini_embedding_model=embedding_model,
            embedding_backend=_read_choice("EMBEDDING_BACKEND", "gemini", EMBEDDING_BACKENDS),
            embedding_dimension=_read_int("EMBEDDING_DIMENSION", 256),
            embedding_max_chars=_read_int("EMBEDDING_MAX_CHARS", 4000),
            summary_max_output_tokens=_read_int("SUMMARY_MAX_OUTPUT_TOKENS", 180),
            summary_max_chars=_read_int("SUMMARY_MAX_CHARS", 2500),
            backend_timeout=_read_float("BACKEND_TIMEOUT_SECONDS", 10.0),
            symptom_window=_read_int("SYMPTOM_WINDOW", 30),
            database_path=Path(_coerce_optional(os.getenv("CONTEXT_DB_PATH")) or "data/context/context.db"),
            vector_index_backend=_read_choice("VECTOR_INDEX_BACKEND", "faiss", VECTOR_INDEX_BACKENDS),
            vector_index_path=Path(index_path_raw) if index_path_raw else Path("data/context/memory.index"),
            memory_scan_limit=_read_int("MEMORY_SCAN_LIMIT", 200),
            snapshot_ttl_hours=_read_float("SNAPSHOT_TTL_HOURS", 24.0),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            env_path=env_path_str,
        )
        logger.debug("Environment variables resolved", extra={"config": config.as_dict()})
        return config

    def as_dict(self) -> Mapping[str, Any]:
        """Expose configuration values for debugging with the API key masked."""
        return {
            "gemini_api_key": _mask(self.gemini_api_key),
            "gemini_model": self.gemini_model,
            "gemini_embedding_model": self.gemini_embedding_model,
            "embedding_backend": self.embedding_backend,
            "embedding_dimension": self.embedding_dimension,
            "embedding_max_chars": self.embedding_max_chars,
            "summary_max_output_tokens": self.summary_max_output_tokens,
            "summary_max_chars": self.summary_max_chars,
            "backend_timeout": self.backend_timeout,
            "symptom_window": self.symptom_window,
            "database_path": str(self.database_path),
            "vector_index_backend": self.vector_index_backend,
            "vector_index_path": str(self.vector_index_path) if self.vector_index_path else None,
            "memory_scan_limit": self.memory_scan_limit,
            "snapshot_ttl_hours": self.snapshot_ttl_hours,
            "log_level": self.log_level,
        }
