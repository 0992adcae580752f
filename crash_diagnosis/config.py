"""Runtime settings read from the environment (and an optional .env file).

Only operational knobs live here. Diagnostic thresholds and rule tables are
module constants and cannot be changed at runtime.
"""
from __future__ import annotations

import logging
from typing import Any, Literal, Optional

from pydantic import Field, ValidationError, ValidationInfo, ValidatorFunctionWrapHandler, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = 'CRASH_DIAGNOSIS_'


class EngineSettings(BaseSettings):
    """Settings loaded from ``CRASH_DIAGNOSIS_*`` variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        frozen=True,
    )

    parallel: bool = Field(default=False, description="Run the analyzers on a thread pool")
    max_workers: int = Field(default=4, gt=0, description="Thread pool size")
    log_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='INFO', description="Logging level for the CLI")
    max_dump_size_mb: int = Field(default=500, gt=0, description="Largest dump load_snapshot accepts")

    @field_validator('log_level', mode='before')
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator('parallel', 'max_workers', 'log_level', 'max_dump_size_mb', mode='wrap')
    @classmethod
    def _fall_back_to_default(cls, value: Any, handler: ValidatorFunctionWrapHandler,
                              info: ValidationInfo) -> Any:
        """A malformed value is logged and replaced by the field default."""
        try:
            return handler(value)
        except ValidationError:
            default = cls.model_fields[info.field_name].default
            logger.warning("Ignoring invalid setting %s=%r, using %r", info.field_name, value, default)
            return default

    @property
    def max_dump_size_bytes(self) -> int:
        return self.max_dump_size_mb * 1024 * 1024


def load_settings(env_file: Optional[str] = '.env') -> EngineSettings:
    """Build settings from the environment, reading ``env_file`` first when it exists."""
    return EngineSettings(_env_file=env_file)
