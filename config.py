"""
Runtime configuration

Everything the service reads from the environment lives here so that the
route handlers never touch os.environ directly. A .env file next to the
process is honoured through python-dotenv.
"""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()

LOGGER_NAME = "gadgetverse"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _list(value: Optional[str], default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Typed view of the environment."""

    database_url: str
    database_name: str = "gadgetverse_db"
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:3001"]
    )
    bcrypt_rounds: int = 12
    log_level: str = "INFO"


def build_database_url(username: str, password: str, cluster_host: str, app_name: str) -> str:
    """Atlas SRV connection string for the given credentials."""
    return (
        f"mongodb+srv://{quote_plus(username)}:{quote_plus(password)}"
        f"@{cluster_host}/?appName={app_name}"
    )


@lru_cache
def get_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL") or build_database_url(
        os.getenv("DB_USERNAME", ""),
        os.getenv("DB_PASSWORD", ""),
        os.getenv("DB_CLUSTER_HOST", "cluster0.dwmxail.mongodb.net"),
        os.getenv("DB_APP_NAME", "Cluster0"),
    )
    return Settings(
        database_url=database_url,
        database_name=os.getenv("DATABASE_NAME", "gadgetverse_db"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_int(os.getenv("PORT"), 5000),
        cors_origins=_list(
            os.getenv("CORS_ORIGINS"),
            ["http://localhost:3000", "http://localhost:3001"],
        ),
        bcrypt_rounds=_int(os.getenv("BCRYPT_ROUNDS"), 12),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Install a single stream handler on the root logger and return the service logger."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logging.getLogger(LOGGER_NAME)
