"""Configuration management with YAML and environment variable support."""

import os
from pathlib import Path
from typing import ClassVar

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

CONFIG_FILE_ENV = "GIFPIPE_CONFIG_FILE"


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        yaml_path = Path(os.getenv(CONFIG_FILE_ENV, "config.yaml"))
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class RedisConfig(BaseModel):
    """Redis connection shared by the record store and the work bus."""

    host: str = "127.0.0.1"
    port: int = 6379
    db: int = 0


class WorkerConfig(BaseModel):
    """Worker scratch space and status lifetime."""

    dir: Path = Path("tmp/work")
    status_ttl: int = 3600

    @field_validator("status_ttl")
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class SiteConfig(BaseModel):
    """HTTP server and published GIF location."""

    host: str = "127.0.0.1"
    port: int = 8000
    gif_dir: Path = Path("tmp/gifs")


class ToolsConfig(BaseModel):
    """External media tools invoked by the stage processors."""

    youtube_dl: str = "youtube-dl"
    avconv: str = "avconv"
    gm: str = "gm"
    gifsicle: str = "gifsicle"
    max_filesize: str = "100M"


class SubmissionConfig(BaseModel):
    """Submission boundary rules."""

    allowed_hosts: list[str] = Field(default_factory=lambda: ["www.youtube.com"])


class LoggingConfig(BaseModel):
    level: str = "INFO"


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Explicit keyword arguments
    2. Environment variables (prefix: GIFPIPE_, delimiter: __)
    3. .env file
    4. YAML file (config.yaml, or the path in GIFPIPE_CONFIG_FILE)
    5. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="GIFPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    redis: RedisConfig = Field(default_factory=RedisConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    site: SiteConfig = Field(default_factory=SiteConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    submission: SubmissionConfig = Field(default_factory=SubmissionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


def load_settings(**overrides) -> Settings:
    """Load settings once at process start; callers pass the result down."""
    return Settings(**overrides)
