from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_BASE_URL = "https://ai-scribe-copilot-rev9.onrender.com"


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class ServiceConfig:
    SCRIBE_BASE_URL: str
    SCRIBE_HOST: str
    SCRIBE_PORT: int
    SCRIBE_LOG_LEVEL: str
    SCRIBE_MAX_CHUNK_BYTES: int
    SCRIBE_DEFAULT_MIME_TYPE: str
    SCRIBE_REQUEST_LOGGING: bool

    def base_url(self) -> str:
        return self.SCRIBE_BASE_URL.rstrip("/")


def load_config() -> ServiceConfig:
    return ServiceConfig(
        SCRIBE_BASE_URL=_getenv_str(
            "SCRIBE_BASE_URL",
            _getenv_str("BASE_URL", _DEFAULT_BASE_URL),
        ),
        SCRIBE_HOST=_getenv_str("SCRIBE_HOST", "0.0.0.0"),
        SCRIBE_PORT=_getenv_int("SCRIBE_PORT", _getenv_int("PORT", 3000)),
        SCRIBE_LOG_LEVEL=_getenv_str("SCRIBE_LOG_LEVEL", "INFO"),
        SCRIBE_MAX_CHUNK_BYTES=_getenv_int("SCRIBE_MAX_CHUNK_BYTES", 50 * 1024 * 1024),
        SCRIBE_DEFAULT_MIME_TYPE=_getenv_str("SCRIBE_DEFAULT_MIME_TYPE", "audio/wav"),
        SCRIBE_REQUEST_LOGGING=_getenv_bool("SCRIBE_REQUEST_LOGGING", True),
    )
