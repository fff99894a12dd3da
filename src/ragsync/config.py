"""Application configuration."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Mapping

from ragsync.errors import ConfigError

DEFAULT_TENANTS = ("work", "personal", "research", "projects")
DEFAULT_LM_STUDIO_URL = "http://127.0.0.1:1235"
DEFAULT_EMBEDDING_MODEL = "text-embedding-finetuned-bge-m3"
DEFAULT_LLM_MODEL = "google/gemma-3n-e4b"
MEMORY_LOCATION = ":memory:"

_TENANT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(name: str, value: str | None, *, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _to_float(name: str, value: str | None, *, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def parse_tenants(value: str) -> tuple[str, ...]:
    return tuple(name.strip() for name in value.split(",") if name.strip())


@dataclass(frozen=True, slots=True)
class AppConfig:
    qdrant_url: str
    qdrant_api_key: str | None = None
    tenants: tuple[str, ...] = DEFAULT_TENANTS
    lm_studio_url: str = DEFAULT_LM_STUDIO_URL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dim: int = 1024
    embedding_backend: str = "http"
    llm_model: str = DEFAULT_LLM_MODEL
    concurrency: int = 5
    batch_size: int = 10
    chunk_size: int = 1000
    chunk_overlap: int = 80
    summary_min_chars: int = 100
    request_timeout: float = 60.0
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.qdrant_url:
            raise ConfigError("QDRANT_URL is required")
        if self.qdrant_url != MEMORY_LOCATION and not self.qdrant_url.startswith(
            ("http://", "https://")
        ):
            raise ConfigError("QDRANT_URL must start with http:// or https://")

        if not self.tenants:
            raise ConfigError("At least one client collection must be configured")
        for name in self.tenants:
            if not _TENANT_RE.match(name):
                raise ConfigError(
                    f"Invalid client name {name!r}: use letters, digits, '_' or '-'"
                )
        if len(set(self.tenants)) != len(self.tenants):
            raise ConfigError("Client names must be unique")

        if self.embedding_backend not in {"http", "local"}:
            raise ConfigError("EMBEDDING_BACKEND must be 'http' or 'local'")

        for name in ("embedding_dim", "concurrency", "batch_size", "chunk_size"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")
        if self.chunk_overlap < 0:
            raise ConfigError("chunk_overlap must be >= 0")
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigError("chunk_overlap must be smaller than chunk_size")
        if self.summary_min_chars < 0:
            raise ConfigError("summary_min_chars must be >= 0")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be > 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        """Build the configuration from environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            qdrant_url=env.get("QDRANT_URL", "").strip(),
            qdrant_api_key=env.get("QDRANT_API_KEY") or None,
            tenants=parse_tenants(env.get("CLIENT_COLLECTIONS", ",".join(DEFAULT_TENANTS))),
            lm_studio_url=env.get("LM_STUDIO_URL", DEFAULT_LM_STUDIO_URL),
            embedding_model=env.get("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            embedding_dim=_to_int("EMBEDDING_DIM", env.get("EMBEDDING_DIM"), default=1024),
            embedding_backend=env.get("EMBEDDING_BACKEND", "http").strip().lower(),
            llm_model=env.get("LLM_MODEL", DEFAULT_LLM_MODEL),
            concurrency=_to_int("CONCURRENCY", env.get("CONCURRENCY"), default=5),
            batch_size=_to_int("BATCH_SIZE", env.get("BATCH_SIZE"), default=10),
            chunk_size=_to_int("CHUNK_SIZE", env.get("CHUNK_SIZE"), default=1000),
            chunk_overlap=_to_int("CHUNK_OVERLAP", env.get("CHUNK_OVERLAP"), default=80),
            summary_min_chars=_to_int(
                "SUMMARY_MIN_CHARS", env.get("SUMMARY_MIN_CHARS"), default=100
            ),
            request_timeout=_to_float(
                "REQUEST_TIMEOUT", env.get("REQUEST_TIMEOUT"), default=60.0
            ),
            debug=_to_bool(env.get("DEBUG"), default=False),
        )

    def catalog_collection(self, tenant: str) -> str:
        return f"{tenant}_catalog"

    def chunks_collection(self, tenant: str) -> str:
        return f"{tenant}_chunks"

    def collection_names(self) -> list[str]:
        names: list[str] = []
        for tenant in self.tenants:
            names.append(self.catalog_collection(tenant))
            names.append(self.chunks_collection(tenant))
        return names
