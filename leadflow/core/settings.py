from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _base_root() -> Path:
    env_root = os.getenv("LEADFLOW_DATA_DIR")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path(__file__).resolve().parents[2] / "var"


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _optional(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


@dataclass(frozen=True, slots=True)
class Settings:
    data_dir: Path
    lock_dir: Path
    server_name: str = "leadflow-server"
    max_leads_per_request: int = 2000
    default_max_records: int = 500
    chunk_size: int = 100
    chunk_delay_seconds: float = 0.5
    poll_interval_seconds: float = 5.0
    poll_error_delay_seconds: float = 10.0
    poll_max_errors: int = 5
    inline_result_limit: int = 250
    job_retention_seconds: float = 2 * 60 * 60
    job_sweep_interval_seconds: float = 300.0
    campaign_lock_stale_minutes: float = 30.0
    apify_api_token: str | None = None
    apify_actor_id: str = "code_crafter~apollo-io-scraper"
    apify_api_base: str = "https://api.apify.com/v2"
    enrichment_webhook_url: str | None = None
    dispatch_webhook_url: str | None = None
    cors_origins: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = _base_root()
        lock_env = os.getenv("LEADFLOW_LOCK_DIR")
        lock_dir = Path(lock_env).expanduser().resolve() if lock_env else data_dir / "locks"

        origins_env = os.getenv("API_CORS_ORIGINS", "")
        origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
        if not origins:
            origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

        return cls(
            data_dir=data_dir,
            lock_dir=lock_dir,
            server_name=os.getenv("LEADFLOW_SERVER_NAME") or "leadflow-server",
            max_leads_per_request=_int("MAX_LEADS_PER_REQUEST", 2000),
            default_max_records=_int("DEFAULT_MAX_RECORDS", 500),
            chunk_size=_int("WORKFLOW_CHUNK_SIZE", 100),
            chunk_delay_seconds=_float("WORKFLOW_CHUNK_DELAY_SECONDS", 0.5),
            poll_interval_seconds=_float("SCRAPE_POLL_INTERVAL_SECONDS", 5.0),
            poll_error_delay_seconds=_float("SCRAPE_POLL_ERROR_DELAY_SECONDS", 10.0),
            poll_max_errors=_int("SCRAPE_POLL_MAX_ERRORS", 5),
            inline_result_limit=_int("INLINE_RESULT_LIMIT", 250),
            job_retention_seconds=_float("JOB_RETENTION_SECONDS", 2 * 60 * 60),
            job_sweep_interval_seconds=_float("JOB_SWEEP_INTERVAL_SECONDS", 300.0),
            campaign_lock_stale_minutes=_float("CAMPAIGN_LOCK_STALE_MINUTES", 30.0),
            apify_api_token=_optional("APIFY_API_TOKEN"),
            apify_actor_id=os.getenv("APIFY_ACTOR_ID") or "code_crafter~apollo-io-scraper",
            apify_api_base=os.getenv("APIFY_API_BASE") or "https://api.apify.com/v2",
            enrichment_webhook_url=_optional("ENRICHMENT_WEBHOOK_URL"),
            dispatch_webhook_url=_optional("DISPATCH_WEBHOOK_URL"),
            cors_origins=origins,
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )

    def resolve_record_limit(self, max_records: int | None) -> int:
        """Translate a requested record cap into the number actually scraped.

        ``None`` takes the configured default; ``0`` means unlimited and is
        capped at the system maximum.
        """

        if max_records is None:
            max_records = self.default_max_records
        if max_records == 0:
            return self.max_leads_per_request
        return min(max_records, self.max_leads_per_request)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process settings, reading the environment on first use."""

    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""

    global _settings
    _settings = None
