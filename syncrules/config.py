"""Runtime configuration read from ``SYNCRULES_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOME = Path.home() / ".syncrules"
DEFAULT_API_URL = "http://localhost:8000"


@dataclass
class Settings:
    data_dir: Path
    audit_dir: Path
    api_url: str = DEFAULT_API_URL
    account_id: str = ""
    actor_id: str = ""
    log_level: str = "INFO"
    http_timeout: float = 15.0


def load_settings() -> Settings:
    """Build settings from the environment, falling back to ``~/.syncrules``."""
    return Settings(
        data_dir=Path(os.environ.get("SYNCRULES_DATA_DIR", DEFAULT_HOME / "data")),
        audit_dir=Path(os.environ.get("SYNCRULES_AUDIT_DIR", DEFAULT_HOME / "audit_logs")),
        api_url=os.environ.get("SYNCRULES_API_URL", DEFAULT_API_URL),
        account_id=os.environ.get("SYNCRULES_ACCOUNT_ID", ""),
        actor_id=os.environ.get("SYNCRULES_ACTOR_ID", os.environ.get("USER", "")),
        log_level=os.environ.get("SYNCRULES_LOG_LEVEL", "INFO").upper(),
        http_timeout=float(os.environ.get("SYNCRULES_HTTP_TIMEOUT", "15.0")),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
