"""Application configuration via environment variables.

Settings are built once by ``initialize()`` at process start and passed
explicitly to the components that need them. Nothing here runs at import.
"""

import logging
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Job lifecycle
    job_ttl_minutes: float = Field(90, gt=0)
    poll_interval_seconds: float = Field(1.0, gt=0)
    poll_concurrency: int = Field(150, gt=0)
    poll_timeout_seconds: float = Field(60.0, gt=0)
    sweep_interval_seconds: float = Field(5.0, gt=0)
    run_sweep_loop: bool = True

    # Storage
    output_bucket: str = ""
    signed_url_ttl_hours: float = Field(24, gt=0)

    # Vertex AI
    gcp_project_id: str = ""
    gcp_region: str = "us-central1"
    vertex_access_token: Optional[str] = None
    http_timeout_seconds: float = Field(120.0, gt=0)

    # Request analyzer
    analyzer_model: str = "gemini-2.5-flash-lite"
    analyzer_seed: int = 0
    analyzer_max_output_tokens: int = Field(8192, gt=0)
    analyzer_normalize_storage_urls: bool = True
    analyzer_tag_mime_types: bool = True

    # Job records
    job_store: Literal["memory", "supabase"] = "memory"
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    jobs_table: str = "generation_jobs"

    # Service
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8001

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "frozen": True,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_job_store(self) -> "Settings":
        if self.job_store == "supabase" and (
            not self.supabase_url or not self.supabase_service_role_key
        ):
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set when JOB_STORE=supabase"
            )
        return self

    @property
    def job_ttl_seconds(self) -> float:
        return self.job_ttl_minutes * 60

    @property
    def signed_url_ttl_seconds(self) -> float:
        return self.signed_url_ttl_hours * 3600


def initialize(**overrides) -> Settings:
    """Build the immutable settings for this process.

    Keyword overrides take precedence over the environment and ``.env``.
    Raises ``pydantic.ValidationError`` for invalid values.
    """
    settings = Settings(**overrides)
    logger.info(
        "Configuration loaded: ttl=%smin poll_interval=%ss concurrency=%s "
        "poll_timeout=%ss signed_url_ttl=%sh store=%s",
        settings.job_ttl_minutes,
        settings.poll_interval_seconds,
        settings.poll_concurrency,
        settings.poll_timeout_seconds,
        settings.signed_url_ttl_hours,
        settings.job_store,
    )
    return settings
