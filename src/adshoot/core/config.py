"""Application configuration using Pydantic BaseSettings."""

import logging

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./adshoot.db", alias="DATABASE_URL")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS Configuration
    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # Credits
    starting_credits: int = Field(default=10, ge=0, alias="STARTING_CREDITS")

    # Batch submission limits
    max_variants: int = Field(default=5, ge=1, alias="MAX_VARIANTS")
    max_prompt_length: int = Field(default=4000, ge=1, alias="MAX_PROMPT_LENGTH")

    # Image generation provider ("openai" or "replicate")
    image_provider: str = Field(default="openai", alias="IMAGE_PROVIDER")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_image_model: str = Field(default="gpt-image-1", alias="OPENAI_IMAGE_MODEL")
    replicate_api_token: str = Field(default="", alias="REPLICATE_API_TOKEN")
    replicate_model_version: str = Field(
        default="black-forest-labs/flux-kontext-pro", alias="REPLICATE_MODEL_VERSION"
    )
    generation_timeout_seconds: float = Field(default=240.0, gt=0, alias="GENERATION_TIMEOUT_SECONDS")
    generation_retry_attempts: int = Field(default=2, ge=1, alias="GENERATION_RETRY_ATTEMPTS")
    generation_retry_base_delay: float = Field(default=2.0, ge=0, alias="GENERATION_RETRY_BASE_DELAY")

    # Placeholder shown instead of an error when a task fails (empty disables it)
    fallback_image_url: str = Field(default="", alias="FALLBACK_IMAGE_URL")

    # Asset storage ("supabase" or "local")
    storage_backend: str = Field(default="local", alias="STORAGE_BACKEND")
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_service_role_key: str = Field(default="", alias="SUPABASE_SERVICE_ROLE_KEY")
    storage_bucket: str = Field(default="images", alias="STORAGE_BUCKET")
    storage_timeout_seconds: float = Field(default=30.0, gt=0, alias="STORAGE_TIMEOUT_SECONDS")
    storage_retry_attempts: int = Field(default=3, ge=1, alias="STORAGE_RETRY_ATTEMPTS")
    storage_retry_base_delay: float = Field(default=1.0, ge=0, alias="STORAGE_RETRY_BASE_DELAY")
    local_storage_dir: str = Field(default="./data/assets", alias="LOCAL_STORAGE_DIR")
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")

    # Generation workers
    worker_concurrency: int = Field(default=4, ge=1, alias="WORKER_CONCURRENCY")

    # Stalled task monitor
    monitor_interval_seconds: int = Field(default=60, ge=1, alias="MONITOR_INTERVAL_SECONDS")
    stalled_task_timeout_minutes: int = Field(default=15, ge=1, alias="STALLED_TASK_TIMEOUT_MINUTES")

    # Client poller
    poll_interval_seconds: float = Field(default=3.0, gt=0, alias="POLL_INTERVAL_SECONDS")
    poll_timeout_seconds: float = Field(default=600.0, gt=0, alias="POLL_TIMEOUT_SECONDS")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def local_assets_base_url(self) -> str:
        """Public URL prefix under which the local asset store is served."""
        return f"{self.public_base_url.rstrip('/')}/assets"

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate provider configuration on startup.

        Fails fast with clear error messages if the selected image provider or
        storage backend is missing credentials. Skipped in test and development
        environments so the service can run against fakes and local storage.
        """
        if self.image_provider not in ("openai", "replicate"):
            raise ValueError(f"IMAGE_PROVIDER must be 'openai' or 'replicate', got {self.image_provider!r}")
        if self.storage_backend not in ("supabase", "local"):
            raise ValueError(f"STORAGE_BACKEND must be 'supabase' or 'local', got {self.storage_backend!r}")

        if self.app_env in ("test", "testing", "development"):
            return self

        missing = []

        if self.image_provider == "openai" and not self.openai_api_key:
            missing.append("OPENAI_API_KEY: Create an API key at https://platform.openai.com/api-keys")

        if self.image_provider == "replicate" and not self.replicate_api_token:
            missing.append(
                "REPLICATE_API_TOKEN: Get your API token from https://replicate.com/account/api-tokens"
            )

        if self.storage_backend == "supabase":
            if not self.supabase_url:
                missing.append("SUPABASE_URL: Project URL from the Supabase dashboard")
            if not self.supabase_service_role_key:
                missing.append("SUPABASE_SERVICE_ROLE_KEY: Service role key from the Supabase dashboard")

        if missing:
            error_msg = "CRITICAL: Missing required environment variables:\n\n" + "\n".join(
                f"  - {m}" for m in missing
            )
            error_msg += "\n\nThe application cannot start without these variables."
            error_msg += "\nPlease update your .env file and restart."
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.app_env == "production":
        renderer = [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            *renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
