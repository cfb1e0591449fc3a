from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


# Определяем путь к .env файлу относительно расположения config.py
# config.py находится в backend/qms/core/, поэтому .env должен быть в backend/
_CONFIG_DIR = Path(__file__).parent.parent.parent
_ENV_FILE = _CONFIG_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Игнорировать дополнительные поля из переменных окружения
    )

    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    # Уровень логирования приложения.
    # В prod можно переопределить через LOG_LEVEL=info|warning|error.
    log_level: str = "DEBUG"
    log_to_file: bool = True
    log_dir: str = ".data/logs"

    db_host: str = "db"
    db_port: int = 5432
    db_name: str = "qms"
    db_user: str = "qms"
    db_password: str = "qms"
    # Полный URL БД (например, sqlite+aiosqlite:///./qms.db для локального запуска).
    # Если задан, имеет приоритет над db_* параметрами.
    database_url: str | None = None

    # Storage (загруженные учебные материалы)
    storage_base_path: str = ".data/uploads"

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7

    # Email (SMTP). Если smtp_host не задан, письма не отправляются.
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_from_address: str = "noreply@qms.local"
    smtp_use_tls: bool = True
    frontend_url: str = "http://localhost:3000"

    # Training: серверная проверка времени просмотра материалов
    enforce_content_dwell: bool = True
    min_document_seconds: int = 60
    video_completion_ratio: float = 0.9

    certificate_expiring_soon_days: int = 30
    default_page_limit: int = 20

    @property
    def sync_database_url(self) -> str:
        if self.database_url:
            return self.database_url.replace("+aiosqlite", "")
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def async_database_url(self) -> str:
        """Формирует async URL для SQLAlchemy с psycopg 3.x (async по умолчанию)."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()


class APIErrorResponse(BaseModel):
    detail: str
    code: str
