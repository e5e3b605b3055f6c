# marketplace/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (CONFIG_PATH переопределяет)."""
    env_path = os.getenv("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "servigroww"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    RUN_DEV_MODE: bool = True


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class ApiSettings(BaseModel):
    """Настройки HTTP API."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3000
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL (с расширением PostGIS)."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "servigroww"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "servigroww"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class OtpSettings(BaseModel):
    """Настройки одноразовых кодов."""
    OTP_TTL_SECONDS: int = 300
    # Redis держит ключ дольше TTL кода, чтобы истечение было обнаружено как Expired
    OTP_STORE_GRACE_SECONDS: int = 600
    OTP_STORE_BACKEND: str = "memory"
    PHONE_PATTERN: str = r"^\+91[6-9]\d{9}$"
    SMS_TEMPLATE: str = "Your ServiGroww OTP is: {code}"

    @field_validator("OTP_STORE_BACKEND")
    @classmethod
    def check_backend(cls, v: str) -> str:
        """Допустимы только memory и redis."""
        if v not in ("memory", "redis"):
            raise ValueError(f"Неизвестный OTP_STORE_BACKEND: {v}")
        return v


class JwtSettings(BaseModel):
    """Настройки подписи токенов."""
    JWT_SECRET: str = ""
    JWT_REFRESH_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_EXPIRES_SECONDS: int = 15 * 60
    JWT_REFRESH_EXPIRES_SECONDS: int = 7 * 24 * 3600

    @field_validator("JWT_SECRET", "JWT_REFRESH_SECRET", mode="before")
    @classmethod
    def get_from_env(cls, v: str, info) -> str:
        """Получает секрет из переменных окружения, если не задан."""
        if not v:
            return os.getenv(info.field_name, "")
        return v

    @model_validator(mode="after")
    def check_secrets_distinct(self) -> "JwtSettings":
        """Access и refresh токены должны подписываться разными секретами."""
        if self.JWT_SECRET and self.JWT_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_SECRET и JWT_REFRESH_SECRET должны различаться")
        if self.JWT_ACCESS_EXPIRES_SECONDS >= self.JWT_REFRESH_EXPIRES_SECONDS:
            raise ValueError("Access токен должен жить меньше refresh токена")
        return self


class SearchSettings(BaseModel):
    """Настройки поиска исполнителей."""
    DEFAULT_RADIUS_METERS: int = 5000
    MIN_RADIUS_METERS: int = 100
    MAX_RADIUS_METERS: int = 50000
    DEFAULT_LIMIT: int = 10
    MAX_LIMIT: int = 50


class TimeoutSettings(BaseModel):
    """Таймауты внешних вызовов."""
    EXTERNAL_CALL_TIMEOUT: float = 5.0
    HEALTH_CHECK_TIMEOUT: float = 2.0


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    otp: OtpSettings = Field(default_factory=OtpSettings)
    jwt: JwtSettings = Field(default_factory=JwtSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты и адреса инфраструктуры переопределяются из переменных окружения.
        """
        data = load_config_json(path)

        def pick(section: type[BaseModel], env_keys: tuple[str, ...] = ()) -> dict[str, Any]:
            """Берёт поля секции из config.json, env перекрывает указанные ключи."""
            values = {name: data[name] for name in section.model_fields if name in data}
            for key in env_keys:
                env_value = os.getenv(key)
                if env_value is not None:
                    values[key] = env_value
            return values

        return cls(
            system=SystemSettings(**pick(SystemSettings, ("ENVIRONMENT",))),
            logging=LoggingSettings(**pick(LoggingSettings, ("LOG_LEVEL",))),
            api=ApiSettings(**pick(ApiSettings, ("API_HOST", "API_PORT"))),
            database=DatabaseSettings(
                **pick(DatabaseSettings, ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD"))
            ),
            redis=RedisSettings(**pick(RedisSettings, ("REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD"))),
            otp=OtpSettings(**pick(OtpSettings, ("OTP_STORE_BACKEND",))),
            jwt=JwtSettings(**pick(JwtSettings, ("JWT_SECRET", "JWT_REFRESH_SECRET"))),
            search=SearchSettings(**pick(SearchSettings)),
            timeouts=TimeoutSettings(**pick(TimeoutSettings, ("EXTERNAL_CALL_TIMEOUT",))),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
