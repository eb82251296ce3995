"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database (TiDB / MySQL-protocol in production) ─────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "cliper"
    # Full SQLAlchemy async URL; overrides the TiDB fields when set
    # (tests use sqlite+aiosqlite).
    database_url: str = ""

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Auth ───────────────────────────────────────────────────────────────
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    bcrypt_rounds: int = 12

    # ── MinIO (S3-compatible image host) ───────────────────────────────────
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "cliper-media"
    minio_use_ssl: bool = False
    media_url_expiry: int = 3600
    # Keep media in process memory instead of MinIO (local dev / tests)
    use_in_memory_storage: bool = False

    # ── Uploads ────────────────────────────────────────────────────────────
    max_upload_bytes: int = 10 * 1024 * 1024
    image_max_dimension: int = 1080
    image_jpeg_quality: int = 85

    # ── HTTP ───────────────────────────────────────────────────────────────
    frontend_url: str = "http://localhost:3000"
    port: int = 5000

    # ── Observability ──────────────────────────────────────────────────────
    enable_tracing: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "cliper-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
