"""Process configuration for the commit catalog backend.

Settings come from environment variables and are read once per process.
Malformed numeric values fall back to their defaults with a warning so a
typo in the environment never prevents the API from starting.
"""

import logging
import sys
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import (
    Field,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./catalog.db"
DEFAULT_REMOTE_BASE_URL = "https://github.com"
DEFAULT_CLONE_TIMEOUT = 300.0
DEFAULT_INGEST_TIMEOUT = 600.0
DEFAULT_POOL_SIZE = 5

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Runtime configuration of the API process."""

    model_config = SettingsConfigDict(
        frozen=True,
        populate_by_name=True,
        env_ignore_empty=True,
        extra="ignore",
    )

    database_url: str = DEFAULT_DATABASE_URL
    database_pool_size: PositiveInt = DEFAULT_POOL_SIZE
    secret_key: str = ""
    remote_base_url: str = Field(default=DEFAULT_REMOTE_BASE_URL, validation_alias="GIT_REMOTE_BASE_URL")
    workspace_root: Path = Field(
        default=Path(tempfile.gettempdir()) / "commit-catalog",
        validation_alias="CATALOG_WORKSPACE_ROOT",
    )
    clone_timeout: PositiveFloat = Field(default=DEFAULT_CLONE_TIMEOUT, validation_alias="GIT_CLONE_TIMEOUT")
    ingest_timeout: PositiveFloat = DEFAULT_INGEST_TIMEOUT
    log_level: str = "INFO"
    cors_origins: Annotated[tuple[str, ...], NoDecode] = ("*",)

    @field_validator("database_pool_size", "clone_timeout", "ingest_timeout", mode="wrap")
    @classmethod
    def _fall_back_to_default(cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo):
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            env_name = field.validation_alias or info.field_name.upper()
            logger.warning("Invalid %s=%r, using default %s", env_name, value, field.default)
            return field.default

    @field_validator("remote_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/") or DEFAULT_REMOTE_BASE_URL

    @field_validator("log_level", mode="before")
    @classmethod
    def _known_log_level(cls, value: Any) -> str:
        level = str(value).strip().upper()
        if level not in _LOG_LEVELS:
            logger.warning("Invalid LOG_LEVEL=%r, using INFO", value)
            return "INFO"
        return level

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            origins = tuple(item.strip() for item in value.split(",") if item.strip())
            return origins or ("*",)
        return value


def load_settings() -> Settings:
    """Build a Settings object from the current environment.

    Returns:
        Settings: Frozen settings snapshot.
    """
    return Settings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return load_settings()


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the API process.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("git").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
