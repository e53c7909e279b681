from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def _env_bool(key: str, default: bool) -> bool:
    v = _env_str(key)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    # Store
    database_url: str
    db_echo: bool
    db_pool_pre_ping: bool
    source_view_schema: Optional[str]
    create_tables: bool

    # HTTP
    origins: tuple[str, ...]

    # Logging
    log_level: str
    log_json: bool

    # Defaults for new headers
    default_subscript: str
    default_entity_type: str
    default_page_split: str

    @staticmethod
    def from_env() -> "Settings":
        origins = _env_str("ORIGINS", "http://localhost:5173") or ""
        return Settings(
            database_url=_env_str("DATABASE_URL", "sqlite:///./surveys.db") or "sqlite:///./surveys.db",
            db_echo=_env_bool("DB_ECHO", False),
            db_pool_pre_ping=_env_bool("DB_POOL_PRE_PING", True),
            source_view_schema=_env_str("SOURCE_VIEW_SCHEMA"),
            create_tables=_env_bool("APP_CREATE_TABLES", False),

            origins=tuple(o.strip() for o in origins.split(",") if o.strip()),

            log_level=_env_str("APP_LOG_LEVEL", "INFO") or "INFO",
            log_json=_env_bool("APP_LOG_JSON", True),

            default_subscript=_env_str("DEFAULT_SUBSCRIPT", "Standard") or "Standard",
            default_entity_type=_env_str("DEFAULT_ENTITY_TYPE", "Asset") or "Asset",
            default_page_split=_env_str("DEFAULT_PAGE_SPLIT", "NONE") or "NONE",
        )
