"""
Progress events emitted by the sync job state machine.

Observers receive events in emission order; the state machine guarantees
`progress_pct` and `processed_items` never go backwards, so observers can
render them directly.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from webinarwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Milestone percentages
PROGRESS_AUTHENTICATING = 5
PROGRESS_DATE_RANGE = 10
PROGRESS_ENUMERATED = 20
PROGRESS_WEBINARS_SPAN = 75
PROGRESS_FINALIZING = 95
PROGRESS_COMPLETE = 100


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    job_id: str
    status: str
    progress_pct: int
    current_operation: str | None
    processed_items: int
    total_items: int
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ProgressObserver(Protocol):
    async def on_progress(self, event: ProgressEvent) -> None: ...


class LoggingProgressObserver:
    """Writes every progress event to the structured log."""

    async def on_progress(self, event: ProgressEvent) -> None:
        logger.info(
            "Sync progress",
            job_id=event.job_id,
            status=event.status,
            progress_pct=event.progress_pct,
            operation=event.current_operation,
            processed=event.processed_items,
            total=event.total_items,
        )


def webinar_progress(processed: int, total: int) -> int:
    """Percentage after `processed` of `total` webinars have been attempted."""
    if total <= 0:
        return PROGRESS_ENUMERATED + PROGRESS_WEBINARS_SPAN
    return PROGRESS_ENUMERATED + int(PROGRESS_WEBINARS_SPAN * min(processed, total) / total)
