"""Invoker that runs a Python callable per task on a thread pool."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from batch_register.orchestrator.invoker.base import (
    ActionStatus,
    ActionStatusError,
    StartRequest,
    SubmissionError,
)
from batch_register.orchestrator.models import JobHandle

logger = logging.getLogger(__name__)

LocalAction = Callable[[Mapping[str, Any]], Any]


class LocalActionInvoker:
    """Execute ``action(parameters)`` in background threads.

    An exception raised by the action becomes a terminal ``Failed`` payload;
    it never propagates into the orchestrator loop.
    """

    def __init__(
        self,
        action: LocalAction,
        *,
        max_workers: int,
        status_field: str = "provisioningState",
    ) -> None:
        self._action = action
        self._status_field = status_field
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="batch-register",
        )
        self._lock = threading.Lock()
        self._futures: dict[str, Future[Any]] = {}

    def start(self, request: StartRequest) -> str:
        try:
            future = self._executor.submit(self._action, dict(request.parameters))
        except RuntimeError as exc:
            raise SubmissionError(f"local executor unavailable: {exc}") from exc
        with self._lock:
            self._futures[request.run_token] = future
        return request.run_token

    def status(self, handle: JobHandle) -> ActionStatus:
        with self._lock:
            future = self._futures.get(handle.action_ref or "")
        if future is None:
            raise ActionStatusError(f"unknown action reference {handle.action_ref!r}")
        if not future.done():
            return ActionStatus.in_progress()
        error = future.exception()
        if error is not None:
            logger.debug("Local action for %s raised", handle.task_id, exc_info=error)
            return ActionStatus.terminal(
                {self._status_field: "Failed", "error": f"{type(error).__name__}: {error}"},
            )
        return ActionStatus.terminal(future.result())

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> LocalActionInvoker:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
