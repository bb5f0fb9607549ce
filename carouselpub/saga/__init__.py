"""The carousel publishing saga and its steps."""

from carouselpub.saga.assembler import CarouselAssembler
from carouselpub.saga.containers import ContainerFactory
from carouselpub.saga.limiter import AccountLimiter
from carouselpub.saga.orchestrator import PublishSaga, validate_items
from carouselpub.saga.publisher import PublishExecutor

__all__ = [
    "AccountLimiter",
    "CarouselAssembler",
    "ContainerFactory",
    "PublishExecutor",
    "PublishSaga",
    "validate_items",
]
