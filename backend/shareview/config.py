"""ShareView configuration: Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = "ShareView"
    debug: bool = True
    environment: str = "development"
    log_level: str = "INFO"

    # Network
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Document backend that owns tokens, OTPs and authorization
    backend_url: str = "http://127.0.0.1:5000"
    backend_api_prefix: str = "/api"
    request_timeout_seconds: float = 30.0

    # Access policy (client-side only, backend is authoritative)
    allowed_email_domain: str = ""  # e.g. "org.com", empty = any domain

    # Session restoration
    session_ttl_hours: int = 24
    session_key_prefix: str = "share_session_"

    # Browser client cookie that scopes stored sessions and page ownership
    client_cookie_name: str = "shareview_client"
    client_cookie_secure: bool = False  # set True behind HTTPS
    client_cookie_max_age_days: int = 365

    # Storage paths (relative resolved from backend dir at runtime)
    data_dir: str = "./data"
    session_dir: str = "./data/sessions"
    preview_dir: str = "./data/previews"

    # Preview limits
    preview_max_rows: int = 1000
    preview_max_columns: int = 100

    # Open page sessions kept in memory
    max_open_pages: int = 200

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="SHAREVIEW_",
        extra="ignore",
    )

    @property
    def backend_base_url(self) -> str:
        return self.backend_url.rstrip("/") + self.backend_api_prefix.rstrip("/")

    @property
    def session_ttl_ms(self) -> int:
        return self.session_ttl_hours * 60 * 60 * 1000

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: list[str] | str) -> list[str]:
        if isinstance(value, str) and not value.startswith("["):
            return [o.strip() for o in value.split(",") if o.strip()]
        if isinstance(value, list):
            return value
        return ["http://localhost:3000"]

    @field_validator("allowed_email_domain", mode="after")
    @classmethod
    def normalize_domain(cls, value: str) -> str:
        return value.strip().lstrip("@").lower()

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Ensure data directories are absolute."""
        base = Path(__file__).resolve().parent.parent  # backend/
        for field in ("data_dir", "session_dir", "preview_dir"):
            val = getattr(self, field)
            if not Path(val).is_absolute():
                setattr(self, field, str(base / val))
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
