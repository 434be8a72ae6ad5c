# src/config/loader.py
"""
Project configuration loader.
config/config.json is the single source of truth.
Secrets are overridden from environment variables.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# PATHS
# =============================================================================

def get_project_root() -> Path:
    """Returns the project root directory."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Returns the path to config.json (CONFIG_PATH overrides it)."""
    override = os.getenv("CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Loads config.json into a dict."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# SETTINGS SECTIONS
# =============================================================================

class SystemSettings(BaseModel):
    """System settings."""
    PROJECT_NAME: str = "roadside_engine"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Component deployment."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080
    API_INSTANCES_COUNT: int = 1
    WORKER_INSTANCES_COUNT: int = 1


class LoggingSettings(BaseModel):
    """Logging settings."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class DatabaseSettings(BaseModel):
    """PostgreSQL settings."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "roadside"
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
        """Takes the password from the environment when unset."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """PostgreSQL DSN."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RabbitMQSettings(BaseModel):
    """RabbitMQ settings."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "roadside.events"
    RABBITMQ_PREFETCH_COUNT: int = 10

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Environment wins over config.json."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """AMQP URL."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class FareSettings(BaseModel):
    """Pricing constants, whole currency units."""
    BASE_FEE: int = 2000
    FREE_DISTANCE_KM: float = 5.0
    PER_KM_RATE: int = 500
    SERVICE_FEES: dict[str, int] = Field(default_factory=lambda: {
        "towing": 5000,
        "battery": 3500,
        "tire": 2000,
        "fuel": 1500,
        "lockout": 2500,
    })
    STRICT_SERVICE_TYPES: bool = False
    CURRENCY: str = "NGN"
    # Distances are priced from the service hub (Abuja)
    SERVICE_HUB_LAT: float = 9.0579
    SERVICE_HUB_LNG: float = 7.4951


class MatchingSettings(BaseModel):
    """Provider matching and auto-assign sweep."""
    MAX_SERVICE_RADIUS_KM: float = 50.0
    AUTO_ASSIGN_ON_PAYMENT: bool = True
    AUTO_ASSIGN_TIMEOUT: int = 120
    AUTO_ASSIGN_SWEEP_INTERVAL: int = 30
    MAX_AUTO_ASSIGN_ATTEMPTS: int = 5


class ConcurrencySettings(BaseModel):
    """Optimistic update retries."""
    CONFLICT_RETRY_ATTEMPTS: int = Field(default=3, ge=1)
    CONFLICT_RETRY_DELAY: float = Field(default=0.1, ge=0)


class PaystackSettings(BaseModel):
    """Payment gateway (Paystack API)."""
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CALLBACK_URL: str | None = None
    PAYSTACK_TIMEOUT: float = 15.0

    @field_validator("PAYSTACK_SECRET_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Takes the secret key from the environment when unset."""
        if not v:
            return os.getenv("PAYSTACK_SECRET_KEY", "")
        return v


class GeocodingSettings(BaseModel):
    """Geocoding collaborator (Nominatim)."""
    GEOCODING_URL: str = "https://nominatim.openstreetmap.org/search"
    GEOCODING_USER_AGENT: str = "roadside-engine/1.0"
    GEOCODING_TIMEOUT: float = 10.0


# =============================================================================
# SETTINGS
# =============================================================================

class Settings(BaseSettings):
    """
    Application settings.
    Aggregates every config section.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    fares: FareSettings = Field(default_factory=FareSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    paystack: PaystackSettings = Field(default_factory=PaystackSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Builds Settings from config.json.
        Secrets and hosts are overridden from the environment.
        """
        config_data = load_config_json()

        # keys starting with _comment_ are documentation only
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        fare_defaults = FareSettings()

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "roadside_engine"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", True),
                LOG_LEVEL=data.get("LOG_LEVEL", "DEBUG"),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                API_HOST=os.getenv("API_HOST", data.get("API_HOST", "0.0.0.0")),
                API_PORT=int(os.getenv("API_PORT", data.get("API_PORT", 8080))),
                API_INSTANCES_COUNT=data.get("API_INSTANCES_COUNT", 1),
                WORKER_INSTANCES_COUNT=data.get("WORKER_INSTANCES_COUNT", 1),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=data.get("LOG_LEVEL", "DEBUG"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "roadside")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 5),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 20),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 60),
                DB_RETRY_ATTEMPTS=data.get("DB_RETRY_ATTEMPTS", 3),
                DB_RETRY_DELAY=data.get("DB_RETRY_DELAY", 1.0),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=data.get("RABBITMQ_PASSWORD", "guest"),
                RABBITMQ_VHOST=data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=data.get("RABBITMQ_EXCHANGE", "roadside.events"),
                RABBITMQ_PREFETCH_COUNT=data.get("RABBITMQ_PREFETCH_COUNT", 10),
            ),
            fares=FareSettings(
                BASE_FEE=data.get("BASE_FEE", fare_defaults.BASE_FEE),
                FREE_DISTANCE_KM=data.get("FREE_DISTANCE_KM", fare_defaults.FREE_DISTANCE_KM),
                PER_KM_RATE=data.get("PER_KM_RATE", fare_defaults.PER_KM_RATE),
                SERVICE_FEES=data.get("SERVICE_FEES", fare_defaults.SERVICE_FEES),
                STRICT_SERVICE_TYPES=data.get("STRICT_SERVICE_TYPES", False),
                CURRENCY=data.get("CURRENCY", fare_defaults.CURRENCY),
                SERVICE_HUB_LAT=data.get("SERVICE_HUB_LAT", fare_defaults.SERVICE_HUB_LAT),
                SERVICE_HUB_LNG=data.get("SERVICE_HUB_LNG", fare_defaults.SERVICE_HUB_LNG),
            ),
            matching=MatchingSettings(
                MAX_SERVICE_RADIUS_KM=data.get("MAX_SERVICE_RADIUS_KM", 50.0),
                AUTO_ASSIGN_ON_PAYMENT=data.get("AUTO_ASSIGN_ON_PAYMENT", True),
                AUTO_ASSIGN_TIMEOUT=data.get("AUTO_ASSIGN_TIMEOUT", 120),
                AUTO_ASSIGN_SWEEP_INTERVAL=data.get("AUTO_ASSIGN_SWEEP_INTERVAL", 30),
                MAX_AUTO_ASSIGN_ATTEMPTS=data.get("MAX_AUTO_ASSIGN_ATTEMPTS", 5),
            ),
            concurrency=ConcurrencySettings(
                CONFLICT_RETRY_ATTEMPTS=data.get("CONFLICT_RETRY_ATTEMPTS", 3),
                CONFLICT_RETRY_DELAY=data.get("CONFLICT_RETRY_DELAY", 0.1),
            ),
            paystack=PaystackSettings(
                PAYSTACK_SECRET_KEY=os.getenv("PAYSTACK_SECRET_KEY", data.get("PAYSTACK_SECRET_KEY", "")),
                PAYSTACK_BASE_URL=data.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
                PAYSTACK_CALLBACK_URL=os.getenv("PAYSTACK_CALLBACK_URL", data.get("PAYSTACK_CALLBACK_URL")),
                PAYSTACK_TIMEOUT=data.get("PAYSTACK_TIMEOUT", 15.0),
            ),
            geocoding=GeocodingSettings(
                GEOCODING_URL=data.get("GEOCODING_URL", "https://nominatim.openstreetmap.org/search"),
                GEOCODING_USER_AGENT=data.get("GEOCODING_USER_AGENT", "roadside-engine/1.0"),
                GEOCODING_TIMEOUT=data.get("GEOCODING_TIMEOUT", 10.0),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Returns the settings singleton.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


settings = get_settings()
