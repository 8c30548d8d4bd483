import os
import logging
import sys
from typing import Optional

import structlog

from exceptions import ConfigurationError

logger = logging.getLogger("civicledger")


def get_logger(name: str = "civicledger"):
    """Get a structured logger instance

    Usage:
        logger = get_logger(__name__).bind(component="vote_reconciler")
        logger.info("reconciled meeting", meeting_id="civicclerk-412", resolutions_updated=2)
    """
    return structlog.get_logger(name)


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}", config_key=key)


class Config:
    """Configuration management for civicledger

    Everything comes from CIVICLEDGER_* environment variables; one SQLite
    file holds the record of one municipality.
    """

    def __init__(self):
        local_path = os.path.join(os.getcwd(), "data")
        self.DB_DIR = os.getenv("CIVICLEDGER_DB_DIR", local_path)
        self.DB_PATH = os.getenv(
            "CIVICLEDGER_DB_PATH", os.path.join(self.DB_DIR, "civicledger.db")
        )

        self.LOG_LEVEL = os.getenv("CIVICLEDGER_LOG_LEVEL", "INFO").upper()
        self.DEBUG = os.getenv("CIVICLEDGER_DEBUG", "false").lower() == "true"

        # Meeting portal serving per-event vote JSON
        self.VOTE_PORTAL_URL = os.getenv("CIVICLEDGER_VOTE_PORTAL_URL", "")
        self.VOTE_PORTAL_TIMEOUT = _int_env("CIVICLEDGER_VOTE_PORTAL_TIMEOUT", 30)

        # Max gap between a confirmed adoption date and the second linked meeting
        self.ADOPTION_TOLERANCE_DAYS = _int_env("CIVICLEDGER_ADOPTION_TOLERANCE_DAYS", 7)
        # Bare ordinance numbers are retried as {year}-{number} for this many years
        self.YEAR_FALLBACK_WINDOW = _int_env("CIVICLEDGER_YEAR_FALLBACK_WINDOW", 6)
        self.VOTE_BATCH_LIMIT = _int_env("CIVICLEDGER_VOTE_BATCH_LIMIT", 50)
        self.RUN_TIMEOUT_SECONDS = _int_env("CIVICLEDGER_RUN_TIMEOUT_SECONDS", 0)  # 0 = no deadline

        self._validate()

    def _validate(self):
        checks = [
            ("CIVICLEDGER_ADOPTION_TOLERANCE_DAYS", self.ADOPTION_TOLERANCE_DAYS >= 0, "must not be negative"),
            ("CIVICLEDGER_YEAR_FALLBACK_WINDOW", self.YEAR_FALLBACK_WINDOW > 0, "must be positive"),
            ("CIVICLEDGER_VOTE_BATCH_LIMIT", self.VOTE_BATCH_LIMIT > 0, "must be positive"),
            ("CIVICLEDGER_VOTE_PORTAL_TIMEOUT", self.VOTE_PORTAL_TIMEOUT > 0, "must be positive"),
            ("CIVICLEDGER_RUN_TIMEOUT_SECONDS", self.RUN_TIMEOUT_SECONDS >= 0, "must not be negative"),
        ]
        for key, ok, problem in checks:
            if not ok:
                raise ConfigurationError(f"{key} {problem}", config_key=key)

        if self.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(
                f"Unknown log level {self.LOG_LEVEL}", config_key="CIVICLEDGER_LOG_LEVEL"
            )

        if not self.VOTE_PORTAL_URL:
            logger.warning("No vote portal configured - vote reconciliation will use the document fallback only")

    def get_run_timeout(self) -> Optional[int]:
        """Run timeout in seconds, or None when runs are unbounded"""
        return self.RUN_TIMEOUT_SECONDS or None

    def ensure_data_dir(self) -> str:
        """Create the database directory on first use, never at import time"""
        db_dir = os.path.dirname(self.DB_PATH) or self.DB_DIR
        if not os.path.exists(db_dir):
            logger.info("creating data directory %s", db_dir)
            os.makedirs(db_dir, exist_ok=True)
        return db_dir

    def is_development(self) -> bool:
        return self.DEBUG

    def summary(self) -> dict:
        """Configuration safe to print (portal URL reduced to a flag)"""
        return {
            "db_dir": self.DB_DIR,
            "database": os.path.basename(self.DB_PATH),
            "debug": self.DEBUG,
            "log_level": self.LOG_LEVEL,
            "vote_portal_configured": bool(self.VOTE_PORTAL_URL),
            "vote_portal_timeout": self.VOTE_PORTAL_TIMEOUT,
            "adoption_tolerance_days": self.ADOPTION_TOLERANCE_DAYS,
            "year_fallback_window": self.YEAR_FALLBACK_WINDOW,
            "vote_batch_limit": self.VOTE_BATCH_LIMIT,
            "run_timeout_seconds": self.get_run_timeout(),
        }


def configure_structlog(is_development: bool = False, log_level: str = "INFO"):
    """Key-value lines in development, JSON lines otherwise, both on stdout"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # No timestamp processor - cron/journald already stamps each line
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        renderer = structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


# Global configuration instance
config = Config()

configure_structlog(
    is_development=config.is_development(),
    log_level=config.LOG_LEVEL
)
