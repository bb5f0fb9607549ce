"""carouselpub settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  Field names are the
lowercase env-var names (``GRAPH_API_VERSION`` → ``graph_api_version``).
Backoff profiles are nested models addressed with a double underscore::

    PUBLISH_BACKOFF__MAX_RETRIES=8
    PUBLISH_BACKOFF__JITTER_FACTOR=0.2

Typical usage::

    from carouselpub.core.settings import Settings

    settings = Settings()
    saga_config = settings.to_saga_config()
    account = settings.credentials()          # raises ConfigError when unset
"""

from __future__ import annotations

import logging
from typing import Final

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from carouselpub.core.exceptions import ConfigError
from carouselpub.core.models import AccountCredentials
from carouselpub.core.profiles import (
    ASSEMBLY_BACKOFF,
    CONTAINER_BACKOFF,
    PUBLISH_BACKOFF,
    BackoffConfig,
    PacingConfig,
    ProcessingWaitConfig,
    SagaConfig,
)

__all__ = ["Settings"]

logger = logging.getLogger(__name__)

_STEP_PROFILES: Final[dict[str, BackoffConfig]] = {
    "container_backoff": CONTAINER_BACKOFF,
    "assembly_backoff": ASSEMBLY_BACKOFF,
    "publish_backoff": PUBLISH_BACKOFF,
}


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------
    instagram_account_id: str = Field(
        default="",
        description="Business account id that owns the published media.",
    )
    instagram_access_token: str = Field(
        default="",
        repr=False,
        description="Bearer token issued by the auth provider.",
    )

    # ------------------------------------------------------------------
    # Graph API transport
    # ------------------------------------------------------------------
    graph_api_base_url: str = Field(
        default="https://graph.facebook.com",
        description="Graph API host.",
    )
    graph_api_version: str = Field(
        default="v18.0",
        description="Graph API version path segment.",
    )
    http_connect_timeout: float = Field(default=10.0, gt=0.0)
    http_read_timeout: float = Field(default=30.0, gt=0.0)
    http_write_timeout: float = Field(default=30.0, gt=0.0)

    # ------------------------------------------------------------------
    # Retry profiles
    # ------------------------------------------------------------------
    container_backoff: BackoffConfig = Field(default=CONTAINER_BACKOFF)
    assembly_backoff: BackoffConfig = Field(default=ASSEMBLY_BACKOFF)
    publish_backoff: BackoffConfig = Field(default=PUBLISH_BACKOFF)

    # ------------------------------------------------------------------
    # Pacing and processing wait
    # ------------------------------------------------------------------
    pacing_base_ms: int = Field(
        default=500,
        ge=0,
        description="Delay after the first item container.",
    )
    pacing_increment_ms: int = Field(
        default=100,
        ge=0,
        description="Extra delay added per item index.",
    )
    processing_wait_base_ms: int = Field(default=3000, ge=0)
    processing_wait_per_item_ms: int = Field(default=500, ge=0)
    processing_wait_cap_ms: int = Field(default=10000, ge=0)

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("container_backoff", "assembly_backoff", "publish_backoff", mode="before")
    @classmethod
    def _merge_backoff_overrides(cls, v: object, info: ValidationInfo) -> object:
        # Partial env overrides keep the step's own profile for unset keys.
        if isinstance(v, dict):
            return {**_STEP_PROFILES[info.field_name].model_dump(), **v}
        return v

    @field_validator("graph_api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("graph_api_version")
    @classmethod
    def _validate_version(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v.startswith("v"):
            raise ValueError(f"graph_api_version must look like 'v18.0', got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def graph_api_url(self) -> str:
        """Versioned Graph API root, e.g. ``https://graph.facebook.com/v18.0``."""
        return f"{self.graph_api_base_url}/{self.graph_api_version}"

    @property
    def account_configured(self) -> bool:
        """``True`` if both the account id and the access token are set."""
        return bool(self.instagram_account_id.strip() and self.instagram_access_token.strip())

    def credentials(self) -> AccountCredentials:
        """Build :class:`AccountCredentials` from the configured account.

        Raises:
            ConfigError: If the account id or access token is missing.
        """
        if not self.account_configured:
            raise ConfigError(
                "INSTAGRAM_ACCOUNT_ID and INSTAGRAM_ACCESS_TOKEN must both be set."
            )
        return AccountCredentials(
            account_id=self.instagram_account_id.strip(),
            access_token=self.instagram_access_token.strip(),
        )

    def to_saga_config(self) -> SagaConfig:
        """Bundle the timing fields into a :class:`SagaConfig`."""
        return SagaConfig(
            container_backoff=self.container_backoff,
            assembly_backoff=self.assembly_backoff,
            publish_backoff=self.publish_backoff,
            pacing=PacingConfig(
                base_ms=self.pacing_base_ms,
                increment_ms=self.pacing_increment_ms,
            ),
            processing_wait=ProcessingWaitConfig(
                base_ms=self.processing_wait_base_ms,
                per_item_ms=self.processing_wait_per_item_ms,
                cap_ms=self.processing_wait_cap_ms,
            ),
        )
