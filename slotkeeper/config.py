from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_origins(raw: Any) -> List[str]:
    """
    Normalize CORS allow origins from env.

    Supports:
      - list[str] (already parsed)
      - "*"
      - comma-separated string: "https://a.com, https://b.com"
    """
    if raw is None:
        return ["*"]

    if isinstance(raw, list):
        items = [str(x).strip() for x in raw]
        items = [x for x in items if x]
        return items or ["*"]

    s = str(raw).strip()
    if not s or s == "*":
        return ["*"]

    if "," in s:
        parts = [p.strip() for p in s.split(",")]
        parts = [p for p in parts if p]
        return parts or ["*"]

    return [s]


class Settings(BaseSettings):
    """
    Central app settings.

    - Env var names are the public contract (see .env.example)
    - Values are normalized on load (log level, URLs, origins)
    - resolved_database_url is the single DB URL source of truth
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # App identity
    env: str = Field(default="local", alias="APP_ENV")
    app_name: str = Field(default="slotkeeper", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server runtime (uvicorn)
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # NoDecode: the validator below parses "*" or comma-separated values
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # Preferred: a real SQLAlchemy URL (SQLite now, Postgres later)
    database_url: str = Field(default="", alias="DATABASE_URL")

    # Fallback when DATABASE_URL is not set
    db_path: str = Field(default="./data/slotkeeper.sqlite", alias="DB_PATH")

    # Public base URL used to build manage links (no trailing slash)
    app_base_url: str = Field(default="http://localhost:8000", alias="APP_BASE_URL")

    # Manage-link tokens
    manage_token_ttl_days: int = Field(default=30, alias="MANAGE_TOKEN_TTL_DAYS")
    manage_token_pepper: str = Field(default="", alias="MANAGE_TOKEN_PEPPER")

    # Notifications: empty webhook URL means log-only
    notify_webhook_url: str = Field(default="", alias="NOTIFY_WEBHOOK_URL")
    notify_timeout_s: float = Field(default=10.0, alias="NOTIFY_TIMEOUT_S")

    # Admin routes gate. Empty means open (local dev only).
    admin_api_key: str = Field(default="", alias="ADMIN_API_KEY")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _norm_cors_allow_origins(cls, v: Any) -> list[str]:
        return _split_origins(v)

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    @field_validator("app_base_url", "notify_webhook_url", mode="before")
    @classmethod
    def _norm_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip().rstrip("/")

    @field_validator("database_url", "manage_token_pepper", "admin_api_key", mode="before")
    @classmethod
    def _norm_str(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("db_path", mode="before")
    @classmethod
    def _norm_db_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "./data/slotkeeper.sqlite"

    @field_validator("manage_token_ttl_days", mode="before")
    @classmethod
    def _norm_ttl(cls, v: Any) -> int:
        # blank env var means "use the default", anything <= 0 means "never expires"
        if v is None or (isinstance(v, str) and not v.strip()):
            return 30
        return int(v)

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def is_prod(self) -> bool:
        return str(self.env).strip().lower() in ("prod", "production")

    @property
    def resolved_database_url(self) -> str:
        """
        Priority:
        1) DATABASE_URL if provided
        2) Build sqlite:/// URL from DB_PATH

        DB_PATH may be a full sqlite URL or a relative/absolute file path.
        """
        if self.database_url:
            return self.database_url

        path = (self.db_path or "").strip() or "./data/slotkeeper.sqlite"

        if path.startswith("sqlite:"):
            return path

        p = Path(path)
        if not p.is_absolute():
            if str(p).startswith("./"):
                return f"sqlite:///{p.as_posix()}"
            return f"sqlite:///./{p.as_posix()}"

        # Absolute path needs 4 slashes after scheme (sqlite:////abs/path)
        return f"sqlite:////{p.as_posix().lstrip('/')}"

    def manage_url(self, token: str) -> str:
        return f"{self.app_base_url}/manage/{token}"


settings = Settings()
