"""Action invoker interface consumed by the orchestrator."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from batch_register.orchestrator.models import JobHandle


class InvokerError(RuntimeError):
    """Base error raised by action invokers."""

    code = "invoker_error"


class InvalidParametersError(InvokerError):
    """Action rejected its parameters; it was never started."""

    code = "invalid_parameters"


class SubmissionError(InvokerError):
    """Action could not be started for any other reason."""

    code = "submission_failed"


class ActionStatusError(InvokerError):
    """Status query failed; the action state is unknown for this sweep."""

    code = "status_unavailable"


@dataclass(slots=True)
class StartRequest:
    """Inputs required to start one asynchronous action."""

    task_id: str
    run_token: str
    parameters: Mapping[str, Any]


@dataclass(slots=True)
class ActionStatus:
    """Snapshot of an action; ``payload`` is only meaningful once not running."""

    running: bool
    payload: Any = None

    @classmethod
    def in_progress(cls) -> ActionStatus:
        return cls(running=True)

    @classmethod
    def terminal(cls, payload: Any) -> ActionStatus:
        return cls(running=False, payload=payload)


class ActionInvoker(Protocol):
    """Protocol implemented by action invokers."""

    def start(self, request: StartRequest) -> str:
        """Start the action without waiting for it and return its reference."""

    def status(self, handle: JobHandle) -> ActionStatus:
        """Return the current action state. Must be safe to call repeatedly."""
