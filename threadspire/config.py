"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database (MySQL-protocol compatible) ───────────────────────────────
    db_host: str = "mysql"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "threadspire"
    # Full SQLAlchemy URL; takes precedence over the parts above when set
    database_url: Optional[str] = None
    db_echo: bool = False

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    rate_limit_window: int = 60          # seconds
    rate_limit_max: int = 5              # requests per window per identifier

    # ── Realtime ───────────────────────────────────────────────────────────
    # When enabled, committed changes go through Redis pub/sub so every API
    # process sees them; otherwise they are dispatched in-process only.
    realtime_redis_relay: bool = False
    realtime_channel: str = "threadspire:changes"

    # ── Auth ───────────────────────────────────────────────────────────────
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    access_token_ttl: int = 86400        # 24h
    reset_token_ttl: int = 3600          # 1h
    password_min_length: int = 8

    # ── Email (SMTP relay) ─────────────────────────────────────────────────
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    mail_from: str = "no-reply@threadspire.local"
    app_url: str = "http://localhost:3000"

    # ── Content rules ──────────────────────────────────────────────────────
    snippet_length: int = 150
    title_max_length: int = 200
    max_tags: int = 5
    tag_max_length: int = 20
    trending_window_days: int = 7

    # ── Observability ──────────────────────────────────────────────────────
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "threadspire-api"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
