"""Structured log event names for the publishing saga.

Key transitions emit a log record with an ``event`` field
(``extra={"event": events.X}``).  In ``LOG_FORMAT=json`` mode it surfaces as
``extra.event``; in text mode the message is self-describing.

Usage example::

    from carouselpub.core import events

    logger.info("Saga started", extra={"event": events.SAGA_START})
"""

from __future__ import annotations

__all__ = [
    # Saga lifecycle
    "SAGA_START",
    "SAGA_DONE",
    "SAGA_FAILED",
    "SAGA_CANCELLED",
    "SAGA_ORPHANS",
    # Steps
    "CONTAINER_CREATED",
    "CAROUSEL_ASSEMBLED",
    "PROCESSING_WAIT",
    "MEDIA_PUBLISHED",
    "PERMALINK_UNRESOLVED",
    # Retry executor
    "STEP_RETRY",
    "STEP_GAVE_UP",
]

# ---------------------------------------------------------------------------
# Saga lifecycle
# ---------------------------------------------------------------------------

#: Validation passed; the first remote call is about to be issued.
SAGA_START: str = "SAGA_START"

#: Media published; emitted once per successful run.
SAGA_DONE: str = "SAGA_DONE"

#: A step failed terminally; the classified error is re-raised to the caller.
SAGA_FAILED: str = "SAGA_FAILED"

#: The enclosing task was cancelled mid-run.
SAGA_CANCELLED: str = "SAGA_CANCELLED"

#: Containers were left unpublished; the platform expires them after 24 h.
SAGA_ORPHANS: str = "SAGA_ORPHANS"

# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

CONTAINER_CREATED: str = "CONTAINER_CREATED"

CAROUSEL_ASSEMBLED: str = "CAROUSEL_ASSEMBLED"

#: Mandatory pre-publish wait started.
PROCESSING_WAIT: str = "PROCESSING_WAIT"

MEDIA_PUBLISHED: str = "MEDIA_PUBLISHED"

#: Best-effort permalink lookup failed; the run still succeeds.
PERMALINK_UNRESOLVED: str = "PERMALINK_UNRESOLVED"

# ---------------------------------------------------------------------------
# Retry executor
# ---------------------------------------------------------------------------

#: An attempt failed with a retryable error; a sleep precedes the next one.
STEP_RETRY: str = "STEP_RETRY"

#: Retry budget exhausted or a terminal error was classified.
STEP_GAVE_UP: str = "STEP_GAVE_UP"
