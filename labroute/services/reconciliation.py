"""
Retry queue for failed cascade updates.

Completing a stop fans out into case and pickup updates that are applied
best-effort. Failures land here and can be re-issued later with
``retry_failed()``; an entry is abandoned once it has been attempted
``max_retries`` times.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from labroute.services.events import EventBus, EventType

logger = logging.getLogger(__name__)


class CascadeKind(str, Enum):
    """Target collection of a cascade update."""
    CASE = "case"
    PICKUP = "pickup"


@dataclass
class CascadeFailure:
    """One update that could not be applied."""
    kind: CascadeKind
    target_id: str
    partial: dict[str, Any]
    last_error: str
    attempts: int = 1
    context: dict[str, Any] = field(default_factory=dict)
    first_failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class RetrySummary:
    succeeded: int = 0
    failed: int = 0
    abandoned: int = 0


CascadeApplier = Callable[[str, dict[str, Any]], Awaitable[Any]]


class CascadeRetryQueue:
    """Holds failed cascade updates until they succeed or are abandoned."""

    def __init__(
        self,
        appliers: dict[CascadeKind, CascadeApplier],
        bus: Optional[EventBus] = None,
        max_retries: int = 3,
        max_abandoned: int = 100,
    ):
        self._appliers = appliers
        self._bus = bus
        self.max_retries = max_retries
        self._pending: list[CascadeFailure] = []
        self._abandoned: deque[CascadeFailure] = deque(maxlen=max_abandoned)

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> list[CascadeFailure]:
        return list(self._pending)

    @property
    def abandoned(self) -> list[CascadeFailure]:
        """Most recently abandoned updates, oldest first."""
        return list(self._abandoned)

    def drain_abandoned(self) -> list[CascadeFailure]:
        """Hand over the abandoned updates and forget them."""
        drained = list(self._abandoned)
        self._abandoned.clear()
        return drained

    def record(
        self,
        kind: CascadeKind,
        target_id: str,
        partial: dict[str, Any],
        error: Any,
        context: Optional[dict[str, Any]] = None,
    ) -> CascadeFailure:
        """Queue a failed update for a later retry."""
        failure = CascadeFailure(
            kind=kind,
            target_id=target_id,
            partial=dict(partial),
            last_error=str(error),
            context=dict(context or {}),
        )
        self._pending.append(failure)
        logger.warning(
            f"Queued failed {kind.value} update for {target_id} "
            f"({len(self._pending)} pending): {error}"
        )
        return failure

    async def retry_failed(self) -> RetrySummary:
        """
        Re-issue every pending update, one at a time.

        Entries that fail again stay queued with an incremented attempt
        count until they reach ``max_retries``.
        """
        summary = RetrySummary()
        batch, self._pending = self._pending, []

        for failure in batch:
            applier = self._appliers[failure.kind]
            try:
                await applier(failure.target_id, failure.partial)
            except Exception as e:
                failure.attempts += 1
                failure.last_error = str(e)
                if failure.attempts >= self.max_retries:
                    summary.abandoned += 1
                    self._abandoned.append(failure)
                    logger.error(
                        f"Abandoning {failure.kind.value} update for {failure.target_id} "
                        f"after {failure.attempts} attempts: {e}"
                    )
                else:
                    summary.failed += 1
                    self._pending.append(failure)
                continue

            summary.succeeded += 1
            logger.info(f"Reconciled {failure.kind.value} update for {failure.target_id}")
            if failure.kind == CascadeKind.CASE and self._bus is not None:
                self._bus.publish(
                    EventType.CASE_STATUS_CHANGED,
                    {
                        "caseId": failure.target_id,
                        "status": failure.partial.get("status"),
                        "reconciled": True,
                        **failure.context,
                    },
                )

        return summary
