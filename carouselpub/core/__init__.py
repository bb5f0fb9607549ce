"""Core domain models, settings, timing profiles, logging, and exceptions."""

from carouselpub.core.exceptions import (
    CarouselPubError,
    CarouselValidationError,
    ConfigError,
    ErrorKind,
    ExpiredAuthError,
    GraphApiError,
    PermissionDeniedError,
    PublishError,
    RateLimitedError,
    SagaStateError,
    TransientError,
    UnknownPublishError,
)
from carouselpub.core.logging_config import JsonFormatter, configure_logging
from carouselpub.core.models import (
    AccountCredentials,
    CarouselItem,
    ContainerStatus,
    PublishAttemptState,
    PublishResult,
    PublishedMedia,
    RemoteContainerRef,
    SagaStage,
)
from carouselpub.core.profiles import (
    BackoffConfig,
    PacingConfig,
    ProcessingWaitConfig,
    SagaConfig,
)
from carouselpub.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "AccountCredentials",
    "CarouselItem",
    "ContainerStatus",
    "PublishAttemptState",
    "PublishResult",
    "PublishedMedia",
    "RemoteContainerRef",
    "SagaStage",
    # Timing profiles
    "BackoffConfig",
    "PacingConfig",
    "ProcessingWaitConfig",
    "SagaConfig",
    # Settings
    "Settings",
    # Exceptions
    "CarouselPubError",
    "ConfigError",
    "GraphApiError",
    "SagaStateError",
    "ErrorKind",
    "PublishError",
    "CarouselValidationError",
    "TransientError",
    "RateLimitedError",
    "ExpiredAuthError",
    "PermissionDeniedError",
    "UnknownPublishError",
]
