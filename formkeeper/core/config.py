"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database (live submission store)
    DATABASE_URL: str = "sqlite+pysqlite:///./formkeeper.db"

    # Point-in-time copy used as the source store for recovery runs
    SNAPSHOT_DATABASE_URL: str = ""

    # Admin and maintenance endpoints (X-Operator-Secret header)
    OPERATOR_SECRET: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Public submissions per client per minute (0 disables the limit)
    RATE_LIMIT_SUBMIT: int = 20

    # Cell value for questions a submission has no answer for
    EXPORT_PLACEHOLDER: str = "-"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
