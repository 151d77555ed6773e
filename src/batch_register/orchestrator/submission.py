"""Submission path: start one action and record it in the ledger."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from batch_register.orchestrator.admission import AdmissionController
from batch_register.orchestrator.invoker import (
    ActionInvoker,
    InvalidParametersError,
    StartRequest,
    SubmissionError,
)
from batch_register.orchestrator.ledger import RunLedger
from batch_register.orchestrator.models import FailureClass, JobHandle, TaskDescriptor

logger = logging.getLogger(__name__)


class Submitter:
    """Starts actions for admitted tasks without waiting on their completion."""

    def __init__(
        self,
        *,
        ledger: RunLedger,
        invoker: ActionInvoker,
        admission: AdmissionController,
        task_timeout_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ledger = ledger
        self.invoker = invoker
        self.admission = admission
        self.task_timeout_seconds = task_timeout_seconds
        self._clock = clock

    def submit(self, descriptor: TaskDescriptor) -> JobHandle:
        """Start the action for a task that already holds an admission slot.

        A start failure is recorded as Failed right away and the slot is
        returned, so no task is left Pending.
        """

        run_token = self.ledger.new_run_token()
        request = StartRequest(
            task_id=descriptor.task_id,
            run_token=run_token,
            parameters=descriptor.parameters,
        )
        try:
            action_ref = self.invoker.start(request)
        except (InvalidParametersError, SubmissionError) as error:
            return self._start_failed(descriptor, run_token, code=error.code, error=error)
        except Exception as error:  # noqa: BLE001
            return self._start_failed(
                descriptor,
                run_token,
                code=SubmissionError.code,
                error=f"{type(error).__name__}: {error}",
            )

        now = self._clock()
        deadline = now + self.task_timeout_seconds if self.task_timeout_seconds > 0 else None
        entry = self.ledger.mark_running(
            descriptor.task_id,
            run_token=run_token,
            action_ref=action_ref,
            submitted_at=now,
            deadline=deadline,
        )
        logger.info(
            "Started task %s (row %d) run_token=%s action=%s",
            descriptor.task_id,
            descriptor.row_number,
            run_token,
            action_ref,
        )
        return entry.handle

    def reject(self, descriptor: TaskDescriptor) -> JobHandle:
        """Record an invalid-input task as Failed without starting anything."""

        reason = descriptor.rejection or "invalid input"
        logger.warning(
            "Rejected task %s (row %d): %s",
            descriptor.task_id,
            descriptor.row_number,
            reason,
        )
        entry = self.ledger.mark_failed(
            descriptor.task_id,
            failure_class=FailureClass.INVALID_INPUT,
            reason=reason,
            payload={"code": FailureClass.INVALID_INPUT.value, "error": reason},
            finished_at=self._clock(),
        )
        return entry.handle

    def _start_failed(
        self,
        descriptor: TaskDescriptor,
        run_token: str,
        *,
        code: str,
        error: object,
    ) -> JobHandle:
        self.admission.release()
        logger.warning("Could not start task %s: %s", descriptor.task_id, error)
        entry = self.ledger.mark_failed(
            descriptor.task_id,
            failure_class=FailureClass.SUBMISSION_FAILURE,
            reason=f"{code}: {error}",
            payload={"code": code, "error": str(error)},
            finished_at=self._clock(),
            run_token=run_token,
        )
        return entry.handle
