"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
DEFAULT_CACHE_TTL = 3600
DEFAULT_DATABASE_URL = "sqlite:///schemacrud.db"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Engine configuration.

    Attributes:
        schema_paths: Ordered schema directories; the first match wins.
        cache_enabled: Whether loaded schemas are cached at all.
        cache_ttl: TTL in seconds for entries in an external cache store.
        default_page_size: Page size used when a list request gives none.
        max_page_size: Upper bound applied to every requested page size.
        password_schemes: passlib scheme names; the first one hashes new values.
        database_url: sqlite:/// or postgresql:// URL used by ``CrudService.from_settings``.
    """

    schema_paths: list[Path] = field(default_factory=lambda: [Path("schema")])
    cache_enabled: bool = True
    cache_ttl: int = DEFAULT_CACHE_TTL
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE
    password_schemes: list[str] = field(default_factory=lambda: ["pbkdf2_sha256"])
    database_url: str = DEFAULT_DATABASE_URL

    def __post_init__(self) -> None:
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be at least 1")
        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size must not be smaller than default_page_size")

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> Settings:
        """Create settings from environment variables.

        Reads:
            SCHEMACRUD_SCHEMA_PATH: os.pathsep-separated directory list
                (default ``{base_path}/schema`` or ``./schema``)
            SCHEMACRUD_CACHE_ENABLED, SCHEMACRUD_CACHE_TTL
            SCHEMACRUD_DEFAULT_PAGE_SIZE, SCHEMACRUD_MAX_PAGE_SIZE
            SCHEMACRUD_PASSWORD_SCHEMES: comma-separated passlib schemes
            DATABASE_URL: database URL; otherwise SCHEMACRUD_DB_PATH names a
                SQLite file (default ``{base_path}/schemacrud.db`` or
                ``./schemacrud.db``)
        """
        raw_paths = os.environ.get("SCHEMACRUD_SCHEMA_PATH")
        if raw_paths:
            schema_paths = [Path(p) for p in raw_paths.split(os.pathsep) if p.strip()]
        elif base_path:
            schema_paths = [base_path / "schema"]
        else:
            schema_paths = [Path("schema")]

        schemes = os.environ.get("SCHEMACRUD_PASSWORD_SCHEMES", "")
        password_schemes = [s.strip() for s in schemes.split(",") if s.strip()]

        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            db_path = os.environ.get("SCHEMACRUD_DB_PATH")
            if db_path:
                database_url = f"sqlite:///{db_path}"
            elif base_path:
                database_url = f"sqlite:///{base_path / 'schemacrud.db'}"
            else:
                database_url = DEFAULT_DATABASE_URL

        return cls(
            schema_paths=schema_paths,
            cache_enabled=_bool_env("SCHEMACRUD_CACHE_ENABLED", True),
            cache_ttl=_int_env("SCHEMACRUD_CACHE_TTL", DEFAULT_CACHE_TTL),
            default_page_size=_int_env("SCHEMACRUD_DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            max_page_size=_int_env("SCHEMACRUD_MAX_PAGE_SIZE", MAX_PAGE_SIZE),
            password_schemes=password_schemes or ["pbkdf2_sha256"],
            database_url=database_url,
        )
