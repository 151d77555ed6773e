"""Run loop: admission-gated submission followed by poll sweeps until done."""

from __future__ import annotations

import logging
import math
import signal
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from batch_register.orchestrator.admission import AdmissionController
from batch_register.orchestrator.aggregator import Aggregator
from batch_register.orchestrator.classifier import DEFAULT_STATUS_FIELD, DEFAULT_SUCCESS_SENTINEL
from batch_register.orchestrator.invoker import ActionInvoker
from batch_register.orchestrator.ledger import RunLedger
from batch_register.orchestrator.models import (
    FailureClass,
    JobState,
    RunReport,
    TaskDescriptor,
)
from batch_register.orchestrator.poller import Poller, ProgressObserver
from batch_register.orchestrator.submission import Submitter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunStats:
    """Loop counters for CLI reporting."""

    submitted: int = 0
    rejected: int = 0
    admission_waits: int = 0
    sweeps: int = 0
    max_in_flight: int = 0
    interrupted: bool = False
    stop_signal: str | None = None


class BatchRunner:
    """Drives one batch run to completion.

    Control logic is single threaded: it submits tasks in input order while
    admission allows, sleeps and sweeps while the pool is saturated, then keeps
    sweeping until every ledger entry is terminal.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        invoker: ActionInvoker,
        max_parallel_jobs: int,
        monitoring_interval_seconds: float = 30.0,
        task_timeout_seconds: float = 0.0,
        observer: ProgressObserver | None = None,
        status_field: str = DEFAULT_STATUS_FIELD,
        success_sentinel: str = DEFAULT_SUCCESS_SENTINEL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if not math.isfinite(monitoring_interval_seconds) or monitoring_interval_seconds < 0:
            raise ValueError("monitoring_interval_seconds must be a finite number >= 0")
        self.invoker = invoker
        self.admission = AdmissionController(max_parallel_jobs)
        self.ledger = RunLedger()
        self.monitoring_interval_seconds = monitoring_interval_seconds
        self.submitter = Submitter(
            ledger=self.ledger,
            invoker=invoker,
            admission=self.admission,
            task_timeout_seconds=task_timeout_seconds,
            clock=clock,
        )
        self.poller = Poller(
            ledger=self.ledger,
            invoker=invoker,
            admission=self.admission,
            observer=observer,
            status_field=status_field,
            success_sentinel=success_sentinel,
            clock=clock,
        )
        self.stats = RunStats()
        self._clock = clock
        self._sleep = sleep or self._sleep_with_stop
        self._stop_requested = False

    def run(self, descriptors: list[TaskDescriptor]) -> RunReport:
        """Submit, poll, and aggregate; always returns a full report."""

        self.ledger.register(descriptors)
        logger.info(
            "Starting run: tasks=%d max_parallel=%d interval=%ss",
            len(descriptors),
            self.admission.max_parallel,
            self.monitoring_interval_seconds,
        )
        with self._signal_handlers():
            self._submit_all(descriptors)
            self._wait_for_completion()
        if self._stop_requested:
            self._abandon_unfinished()

        self.stats.sweeps = self.poller.sweeps
        self.stats.max_in_flight = self.admission.high_water_mark
        return Aggregator(ledger=self.ledger, descriptors=descriptors).finalize()

    def request_stop(self, *, signal_name: str = "manual") -> None:
        if not self._stop_requested:
            logger.warning(
                "Stop requested (%s); unfinished tasks will be marked failed",
                signal_name,
            )
        self._stop_requested = True
        self.stats.interrupted = True
        self.stats.stop_signal = signal_name

    def _submit_all(self, descriptors: list[TaskDescriptor]) -> None:
        for descriptor in descriptors:
            if self._stop_requested:
                return
            if descriptor.rejection is not None:
                self.submitter.reject(descriptor)
                self.stats.rejected += 1
                continue
            if not self._wait_for_admission():
                return
            self.submitter.submit(descriptor)
            self.stats.submitted += 1

    def _wait_for_admission(self) -> bool:
        while not self.admission.try_admit():
            if self._stop_requested:
                return False
            self.stats.admission_waits += 1
            logger.debug(
                "Pool saturated (%d in flight); waiting %ss",
                self.admission.in_flight,
                self.monitoring_interval_seconds,
            )
            self._sleep(self.monitoring_interval_seconds)
            if self._stop_requested:
                return False
            self.poller.poll_once()
        return True

    def _wait_for_completion(self) -> None:
        while not self.ledger.is_complete():
            if self._stop_requested:
                return
            self._sleep(self.monitoring_interval_seconds)
            if self._stop_requested:
                return
            self.poller.poll_once()

    def _abandon_unfinished(self) -> None:
        now = self._clock()
        for entry in self.ledger.entries():
            if entry.state is JobState.RUNNING:
                reason = "run interrupted before terminal status; remote action not cancelled"
                self.admission.release()
            elif entry.state is JobState.PENDING:
                reason = "run interrupted before submission"
            else:
                continue
            self.ledger.mark_failed(
                entry.task_id,
                failure_class=FailureClass.INTERRUPTED,
                reason=reason,
                payload={"code": FailureClass.INTERRUPTED.value, "signal": self.stats.stop_signal},
                finished_at=now,
            )

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
