"""Domain models for batch registration runs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

REPORT_STATE_COLUMN = "State"
REPORT_REASON_COLUMN = "FailureReason"


class JobState(str, Enum):
    """Per-task lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def report_label(self) -> str:
        return self.value.capitalize()


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED})

ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.PENDING: frozenset({JobState.RUNNING, JobState.FAILED}),
    JobState.RUNNING: frozenset({JobState.SUCCEEDED, JobState.FAILED}),
    JobState.SUCCEEDED: frozenset(),
    JobState.FAILED: frozenset(),
}


class FailureClass(str, Enum):
    """Normalized reasons a task ended up failed."""

    INVALID_INPUT = "invalid_input"
    SUBMISSION_FAILURE = "submission_failure"
    REMOTE_OUTCOME_FAILURE = "remote_outcome_failure"
    UNCLASSIFIED_TERMINAL_STATUS = "unclassified_terminal_status"
    TIMEOUT = "timeout"
    INTERRUPTED = "interrupted"


class IllegalTransitionError(RuntimeError):
    """Attempted state change outside the monotonic lifecycle."""

    def __init__(self, task_id: str, current: JobState, target: JobState) -> None:
        super().__init__(f"Task {task_id!r} cannot move from {current.value} to {target.value}")
        self.task_id = task_id
        self.current = current
        self.target = target


@dataclass(frozen=True, slots=True)
class TaskDescriptor:
    """Immutable description of one unit of work."""

    task_id: str
    row_number: int
    parameters: Mapping[str, Any]
    source_fields: Mapping[str, str] = field(default_factory=dict)
    rejection: str | None = None


@dataclass(slots=True)
class JobHandle:
    """Correlation between a task and its asynchronous action."""

    task_id: str
    run_token: str | None = None
    action_ref: str | None = None
    state: JobState = JobState.PENDING
    submitted_at: float | None = None
    finished_at: float | None = None
    deadline: float | None = None


@dataclass(slots=True)
class LedgerEntry:
    """Ledger row: descriptor, handle, and final outcome once terminal."""

    descriptor: TaskDescriptor
    handle: JobHandle
    payload: Any = None
    failure_class: FailureClass | None = None
    reason: str | None = None

    @property
    def task_id(self) -> str:
        return self.descriptor.task_id

    @property
    def state(self) -> JobState:
        return self.handle.state


@dataclass(slots=True)
class ProgressObservation:
    """Counters emitted once per poll sweep."""

    sweep: int
    completed: int
    total: int
    running: int
    succeeded: int
    failed: int


@dataclass(slots=True)
class ReportRow:
    """One output record: original fields annotated with the final state."""

    task_id: str
    row_number: int
    fields: Mapping[str, str]
    state: JobState
    failure_class: FailureClass | None = None
    reason: str | None = None

    def as_record(self) -> dict[str, str]:
        record = dict(self.fields)
        record[REPORT_STATE_COLUMN] = self.state.report_label
        record[REPORT_REASON_COLUMN] = self.reason or ""
        return record


@dataclass(slots=True)
class RunReport:
    """Aggregated run outcome in input order."""

    rows: list[ReportRow]
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures_by_class: dict[FailureClass, int] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0
