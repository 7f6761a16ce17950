from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Hospital Intranet"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/intranet.db"
    REDIS_URL: str = "memory://"  # "memory://" keeps realtime events in-process
    WORKER_REDIS_URL: str = "redis://localhost:6379"

    # Auth tokens issued by the identity provider
    AUTH_JWT_SECRET: str = "change-me"
    AUTH_JWT_AUDIENCE: str = "authenticated"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Degraded-mode chat store
    CHAT_FALLBACK_ENABLED: bool = True
    CHAT_FALLBACK_MAX_ROOMS: int = 500
    CHAT_FALLBACK_MAX_MESSAGES_PER_ROOM: int = 1000

    # File storage
    STORAGE_ROOT: str = "/tmp/intranet-storage"
    STORAGE_BUCKET: str = "files"
    STORAGE_PUBLIC_URL: str = "http://localhost:8000/storage"

    # Notifications
    NOTIFICATION_RETENTION_DAYS: int = 90


settings = Settings()
