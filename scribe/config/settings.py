from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "scribe"
    dsn: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the host/port/user fields when set.",
    )
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        if self.dsn:
            return self.dsn
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class S3Config(BaseSettings):
    """S3 configuration"""

    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    # Required: there is no sensible default bucket for user uploads.
    bucket_name: str = Field(min_length=1)
    upload_prefix: str = "uploads"
    signed_url_ttl_seconds: int = Field(default=900, ge=1, le=604800)
    multipart_threshold_bytes: int = Field(default=8 * 1024 * 1024, ge=5 * 1024 * 1024)

    model_config = SettingsConfigDict(
        env_prefix="S3_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class GeminiConfig(BaseSettings):
    """Gemini text-generation configuration."""

    api_key: SecretStr = Field(validation_alias="GEMINI_API_KEY")
    default_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias="GEMINI_DEFAULT_MODEL",
    )
    allowed_models: list[str] = Field(
        default=["gemini-2.0-flash-lite", "gemini-2.5-flash", "gemini-2.5-pro"],
        validation_alias="GEMINI_ALLOWED_MODELS",
    )
    temperature: float = Field(
        default=0.0,
        validation_alias="GEMINI_TEMPERATURE",
        ge=0.0,
        le=2.0,
    )
    inline_audio_max_bytes: int = Field(
        default=20 * 1024 * 1024,
        validation_alias="GEMINI_INLINE_AUDIO_MAX_BYTES",
        ge=0,
    )
    max_json_retries: int = Field(
        default=2,
        validation_alias="GEMINI_MAX_JSON_RETRIES",
        ge=0,
        le=5,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class UploadConfig(BaseSettings):
    """Limits applied to incoming audio uploads."""

    max_file_bytes: int = Field(default=31 * 1024 * 1024, ge=1)
    accepted_content_types: list[str] = [
        "audio/mpeg",
        "audio/wav",
        "audio/mp4",
        "audio/x-m4a",
        "audio/webm",
        "audio/flac",
    ]
    reference_text_max_chars: int = Field(default=20_000, ge=0)
    spool_max_bytes: int = Field(default=2 * 1024 * 1024, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="UPLOAD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class SecurityConfig(BaseSettings):
    """JWT configuration for the anonymous identity tokens."""

    jwt_secret_key: SecretStr = Field(
        validation_alias="JWT_SECRET",
        min_length=16,
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expires_minutes: int = Field(
        default=60 * 24 * 30,
        validation_alias="JWT_EXPIRATION_MINUTES",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Scribe Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/pipeline.log"
    transcript_log_file: str = "logs/transcripts.log"
    max_retained_jobs: int = Field(default=100, ge=1)

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # S3
    s3: S3Config = Field(default_factory=S3Config)

    # Gemini
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)

    # Uploads
    upload: UploadConfig = Field(default_factory=UploadConfig)

    # Security
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance; missing required values fail here, at startup.
settings = Settings()
