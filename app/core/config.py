from typing import List, Union
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ISSUE_TYPES = [
    "Leadership Question",
    "General Question",
    "Feature Request",
    "Practice Question",
    "Process Question",
    "Technical Question",
    "Event Question",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    # Application
    APP_NAME: str = "Practice Operations"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    API_PREFIX: str = "/api"

    # Database
    DATABASE_URL: str
    AUTO_CREATE_TABLES: bool = False  # Create tables on startup instead of running Alembic

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    SESSION_COOKIE_NAME: str = "user-session"
    SESSION_COOKIE_SECURE: bool = True

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # File Storage
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    S3_BUCKET_NAME: str = "practice-ops-attachments"
    MAX_UPLOAD_SIZE_MB: int = 25

    # Server-Sent Events
    SSE_HEARTBEAT_SECONDS: float = 30.0

    # Issues
    ISSUE_TYPES: List[str] = DEFAULT_ISSUE_TYPES
    ISSUE_DUPLICATE_THRESHOLD: float = 0.5  # TF-IDF cosine similarity for "looks like an existing issue"
    ISSUE_DUPLICATE_LIMIT: int = 5

    # Notification Settings
    NOTIFICATION_ENABLED: bool = True

    # Email/SMTP Settings
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = ""
    SMTP_FROM_NAME: str = "Practice Operations"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 30

    # Notification URLs (for links in emails)
    FRONTEND_BASE_URL: str = "http://localhost:3000"

    # Monitoring & Performance Settings
    SLOW_QUERY_THRESHOLD_MS: float = 100.0  # Log queries slower than this (milliseconds)
    SLOW_REQUEST_THRESHOLD_MS: float = 1000.0  # Log requests slower than this (milliseconds)
    ENABLE_STRUCTURED_LOGGING: bool = True  # Use JSON structured logging

    @property
    def email_enabled(self) -> bool:
        """Check if email notifications are configured."""
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD)

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
