"""
Engine configuration.

Uses pydantic-settings so hosts can tune the runtime through environment
variables (prefix ``FORMTREE_``) or by passing an ``EngineSettings``
instance to a ``FormSession``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from formtree.core.types import ValidationMode
from formtree.exceptions import ErrorLevel


class EngineSettings(BaseSettings):
    """Runtime settings shared by every form session."""

    model_config = SettingsConfigDict(
        env_prefix="FORMTREE_",
        case_sensitive=False,
        extra="ignore",
    )

    max_propagation_passes: int = Field(
        default=32,
        ge=1,
        description="Breadth-first dependency passes allowed per change burst",
    )

    max_revalidation_rounds: int = Field(
        default=3,
        ge=1,
        description="Times a whole-form validation re-checks fields edited while it ran",
    )

    default_validation_mode: ValidationMode = Field(
        default=ValidationMode.ON_SUBMIT,
        description="When field validation runs for forms that do not set a mode",
    )

    error_level: ErrorLevel = Field(
        default=ErrorLevel.USER,
        description="Detail level of construction error messages",
    )

    validator_failure_message: str = Field(
        default="Validation failed",
        description="Message used by custom validators declared without one",
    )


@lru_cache
def get_settings() -> EngineSettings:
    """Get cached settings instance."""
    return EngineSettings()
