"""Configuration module using pydantic-settings."""

import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class LineConfig(BaseSettings):
    """LINE Messaging API configuration."""

    channel_access_token: str = Field(..., description="Channel access token")
    channel_secret: str = Field(..., description="Channel secret used to verify webhook signatures")
    api_base: str = Field("https://api.line.me", description="Messaging API base URL")
    timeout: int = Field(15, ge=1, description="Request timeout in seconds")

    model_config = SettingsConfigDict(env_prefix="LINE_", case_sensitive=False)


class GeminiConfig(BaseSettings):
    """Google Gemini API configuration."""

    api_key: str = Field(..., description="Gemini API key")
    model: str = Field(
        "gemini-2.5-flash-image",
        description="Gemini model name",
    )
    timeout: int = Field(120, ge=1, description="Request timeout in seconds")
    aspect_ratio: str = Field("3:4", description="Aspect ratio of the generated image")

    model_config = SettingsConfigDict(env_prefix="GEMINI_", case_sensitive=False)


class ServerConfig(BaseSettings):
    """HTTP server configuration."""

    host: str = Field("0.0.0.0", description="Listen address")
    port: int = Field(
        10000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("SERVER_PORT", "PORT"),
        description="Listen port",
    )
    base_url: str | None = Field(
        None,
        validation_alias=AliasChoices("SERVER_BASE_URL", "BASE_URL"),
        description="Public base URL used to build links to generated images",
    )

    model_config = SettingsConfigDict(
        env_prefix="SERVER_", case_sensitive=False, populate_by_name=True
    )

    @property
    def public_base_url(self) -> str:
        """Get public base URL without trailing slash."""
        if self.base_url:
            return self.base_url.rstrip("/")
        # Render sets this on deployed services
        hostname = os.getenv("RENDER_EXTERNAL_HOSTNAME")
        if hostname:
            return f"https://{hostname}"
        return f"http://localhost:{self.port}"


class AssetConfig(BaseSettings):
    """Temporary storage for generated images."""

    directory: Path = Field(Path("tmp"), description="Directory served under /tmp")
    ttl_seconds: int = Field(3600, ge=1, description="Lifetime of stored images and their cache")

    model_config = SettingsConfigDict(env_prefix="ASSETS_", case_sensitive=False)


class ImageConfig(BaseSettings):
    """Preprocessing applied to every image received from a user."""

    max_width: int = Field(720, ge=64, description="Images wider than this are scaled down")
    jpeg_quality: int = Field(80, ge=1, le=95, description="JPEG quality of the normalized image")

    model_config = SettingsConfigDict(env_prefix="IMAGE_", case_sensitive=False)


class RetryConfig(BaseSettings):
    """Retry policy for outbound LINE calls."""

    attempts: int = Field(3, ge=1, description="Total number of attempts")
    backoff: float = Field(0.25, ge=0, description="Delay step in seconds, multiplied by attempt number")

    model_config = SettingsConfigDict(env_prefix="RETRY_", case_sensitive=False)


class StorageConfig(BaseSettings):
    """Conversation state storage configuration."""

    backend: Literal["memory", "redis"] = Field("memory", description="FSM storage backend")
    redis_host: str = Field("localhost", description="Redis host")
    redis_port: int = Field(6379, ge=1, le=65535, description="Redis port")
    redis_db: int = Field(0, ge=0, description="Redis database number")

    model_config = SettingsConfigDict(env_prefix="STORAGE_", case_sensitive=False)


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Logging level")

    model_config = SettingsConfigDict(env_prefix="LOG_", case_sensitive=False)


_SECTIONS: dict[str, type[BaseSettings]] = {
    "line": LineConfig,
    "gemini": GeminiConfig,
    "server": ServerConfig,
    "assets": AssetConfig,
    "image": ImageConfig,
    "retry": RetryConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
}


class AppConfig(BaseSettings):
    """Main application configuration."""

    line: LineConfig = Field(default_factory=LineConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    assets: AssetConfig = Field(default_factory=AssetConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, yaml_path: Path | str) -> "AppConfig":
        """Load configuration from YAML file.

        Environment variables still apply to every key the file leaves out.
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        import yaml

        with yaml_path.open("r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        config_data: dict[str, Any] = {}
        for key, value in yaml_data.items():
            section = _SECTIONS.get(key)
            if section is not None and isinstance(value, dict):
                config_data[key] = section(**value)
            else:
                logger.warning(f"Ignoring unknown config section: {key}")

        return cls(**config_data)


# Global config instance
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get application configuration (singleton)."""
    global _config
    if _config is None:
        config_path = Path(os.getenv("HAIRBOT_CONFIG", "config.yaml"))
        try:
            if config_path.exists():
                _config = AppConfig.from_yaml(config_path)
            else:
                _config = AppConfig()
        except Exception as e:
            logger.warning(f"Failed to load from YAML, using env only: {e}")
            _config = AppConfig()
        logger.info("Configuration loaded successfully")
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None
