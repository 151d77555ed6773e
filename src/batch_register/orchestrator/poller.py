"""Status sweeps that advance Running tasks to a terminal state."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from batch_register.orchestrator.admission import AdmissionController
from batch_register.orchestrator.classifier import (
    DEFAULT_STATUS_FIELD,
    DEFAULT_SUCCESS_SENTINEL,
    classify_outcome,
)
from batch_register.orchestrator.invoker import ActionInvoker, ActionStatusError
from batch_register.orchestrator.ledger import RunLedger
from batch_register.orchestrator.models import (
    FailureClass,
    JobState,
    LedgerEntry,
    ProgressObservation,
)

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[ProgressObservation], None]


class Poller:
    """Queries the invoker for every Running entry and records terminal outcomes."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        ledger: RunLedger,
        invoker: ActionInvoker,
        admission: AdmissionController,
        observer: ProgressObserver | None = None,
        status_field: str = DEFAULT_STATUS_FIELD,
        success_sentinel: str = DEFAULT_SUCCESS_SENTINEL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ledger = ledger
        self.invoker = invoker
        self.admission = admission
        self.observer = observer
        self.status_field = status_field
        self.success_sentinel = success_sentinel
        self._clock = clock
        self._sweeps = 0

    @property
    def sweeps(self) -> int:
        return self._sweeps

    def poll_once(self) -> ProgressObservation:
        """Run one sweep over Running entries and emit one progress observation."""

        self._sweeps += 1
        for entry in self.ledger.entries_in_state(JobState.RUNNING):
            self._advance(entry)
        observation = self.observe()
        logger.info(
            "Sweep %d: %d/%d complete (running=%d succeeded=%d failed=%d)",
            observation.sweep,
            observation.completed,
            observation.total,
            observation.running,
            observation.succeeded,
            observation.failed,
        )
        if self.observer is not None:
            self.observer(observation)
        return observation

    def observe(self) -> ProgressObservation:
        counts = self.ledger.counts()
        succeeded = counts[JobState.SUCCEEDED]
        failed = counts[JobState.FAILED]
        return ProgressObservation(
            sweep=self._sweeps,
            completed=succeeded + failed,
            total=sum(counts.values()),
            running=counts[JobState.RUNNING],
            succeeded=succeeded,
            failed=failed,
        )

    def _advance(self, entry: LedgerEntry) -> None:
        try:
            status = self.invoker.status(entry.handle)
        except ActionStatusError as error:
            logger.warning(
                "Status unavailable for %s, retrying next sweep: %s",
                entry.task_id,
                error,
            )
            self._expire_if_overdue(entry)
            return
        except Exception as error:  # noqa: BLE001
            logger.warning(
                "Status query for %s raised %s, retrying next sweep: %s",
                entry.task_id,
                type(error).__name__,
                error,
            )
            self._expire_if_overdue(entry)
            return
        if status.running:
            self._expire_if_overdue(entry)
            return

        now = self._clock()
        classified = classify_outcome(
            status.payload,
            status_field=self.status_field,
            success_sentinel=self.success_sentinel,
        )
        # Tracked state mirrors the classified outcome, not the raw done flag.
        if classified.state is JobState.SUCCEEDED:
            self.ledger.mark_succeeded(entry.task_id, payload=status.payload, finished_at=now)
        else:
            self.ledger.mark_failed(
                entry.task_id,
                failure_class=classified.failure_class or FailureClass.UNCLASSIFIED_TERMINAL_STATUS,
                reason=classified.reason or "terminal status is not a success",
                payload=status.payload,
                finished_at=now,
            )
        self.admission.release()
        logger.info("Task %s finished: %s", entry.task_id, classified.state.value)

    def _expire_if_overdue(self, entry: LedgerEntry) -> None:
        # A terminal status always wins; the deadline only applies to tasks still unresolved.
        now = self._clock()
        deadline = entry.handle.deadline
        if deadline is None or now < deadline:
            return
        logger.warning("Task %s exceeded its deadline; marking failed", entry.task_id)
        self.ledger.mark_failed(
            entry.task_id,
            failure_class=FailureClass.TIMEOUT,
            reason="no terminal status before task deadline",
            payload={"code": FailureClass.TIMEOUT.value, "action": entry.handle.action_ref},
            finished_at=now,
        )
        self.admission.release()
