"""Configuration management for the Casitas upload service."""

from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    ENV: str = "local"
    SERVICE_NAME: str = "casitas-upload-service"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    PORT: int = 10000
    CORS_ALLOW_ORIGINS: str = "*"  # Comma-separated

    # Chunked upload
    CHUNK_SIZE_BYTES: int = 1024 * 1024  # Must match the client
    MAX_UPLOAD_MB: int = 100
    SCRATCH_DIR: str = "uploads"
    SESSION_RETENTION_HOURS: int = 24
    SWEEP_INTERVAL_SECONDS: int = 3600

    # Media store
    MEDIA_BACKEND: str = "cloudinary"  # "cloudinary", "gcs" or "local"
    MEDIA_FOLDER_NAMESPACE: str = "prueba-imagenes"
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    CLOUDINARY_AUTO_OPTIMIZE: bool = True  # Adds f_auto,q_auto to delivered URLs
    GCP_PROJECT_ID: str = ""
    GCS_BUCKET_NAME: str = ""
    LOCAL_MEDIA_PATH: str = "data/media"
    LOCAL_MEDIA_BASE_URL: str = "http://localhost:10000/media"

    # Record store
    RECORD_BACKEND: str = "supabase"  # "supabase" or "memory"
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    RECORDS_TABLE: str = "revisiones_casitas"
    EVIDENCE_COLUMN: str = "evidencias"
    EVIDENCE_FIELDS: str = "evidencia_01,evidencia_02,evidencia_03"
    RECORD_STORE_TIMEOUT: int = 10  # seconds

    # Client side (transfer client, offline queue, progress tracker)
    UPLOAD_SERVICE_URL: str = "http://localhost:10000"
    CLIENT_REQUEST_TIMEOUT: int = 60  # seconds per request
    QUEUE_DIR: str = "data/upload_queue"
    PROGRESS_STATE_PATH: str = "data/upload_progress.json"
    QUEUE_POLL_INTERVAL_SECONDS: int = 30
    QUEUE_MAX_ATTEMPTS: int = 3
    CONNECTIVITY_CHECK_INTERVAL_SECONDS: int = 15

    @property
    def session_retention(self) -> timedelta:
        """Age after which an unfinished upload session is swept."""
        return timedelta(hours=self.SESSION_RETENTION_HOURS)

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def evidence_fields(self) -> list[str]:
        """Parse EVIDENCE_FIELDS into a list of record columns."""
        return [field.strip() for field in self.EVIDENCE_FIELDS.split(",") if field.strip()]

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS_ALLOW_ORIGINS into a list."""
        return [origin.strip() for origin in self.CORS_ALLOW_ORIGINS.split(",") if origin.strip()]


# Singleton settings instance
settings = Settings()
