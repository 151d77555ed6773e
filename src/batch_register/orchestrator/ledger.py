"""Authoritative in-memory ledger of every task in a run."""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterable
from typing import Any
from uuid import uuid4

from batch_register.orchestrator.models import (
    ALLOWED_TRANSITIONS,
    FailureClass,
    IllegalTransitionError,
    JobHandle,
    JobState,
    LedgerEntry,
    TaskDescriptor,
)


class RunLedger:
    """Ordered ``task_id -> LedgerEntry`` map with monotonic state transitions.

    Entries are created once, all Pending, before the first submission and are
    never re-keyed or removed. Terminal entries are immutable. A lock guards
    the key set and each mutation so observers on other threads read a
    consistent snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, LedgerEntry] = {}
        self._issued_tokens: set[str] = set()

    def register(self, descriptors: Iterable[TaskDescriptor]) -> None:
        """Create one Pending entry per descriptor, preserving order."""

        with self._lock:
            if self._entries:
                raise RuntimeError("Ledger is already populated for this run.")
            entries: dict[str, LedgerEntry] = {}
            for descriptor in descriptors:
                if descriptor.task_id in entries:
                    raise ValueError(f"Duplicate task id in run: {descriptor.task_id!r}")
                entries[descriptor.task_id] = LedgerEntry(
                    descriptor=descriptor,
                    handle=JobHandle(task_id=descriptor.task_id),
                )
            self._entries = entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, task_id: str) -> LedgerEntry:
        with self._lock:
            return self._entries[task_id]

    def entries(self) -> list[LedgerEntry]:
        """Snapshot of all entries in registration order."""

        with self._lock:
            return list(self._entries.values())

    def entries_in_state(self, state: JobState) -> list[LedgerEntry]:
        with self._lock:
            return [entry for entry in self._entries.values() if entry.state is state]

    def counts(self) -> Counter[JobState]:
        with self._lock:
            return Counter(entry.state for entry in self._entries.values())

    def terminal_count(self) -> int:
        with self._lock:
            return sum(1 for entry in self._entries.values() if entry.state.is_terminal)

    def is_complete(self) -> bool:
        with self._lock:
            return all(entry.state.is_terminal for entry in self._entries.values())

    def new_run_token(self) -> str:
        """Issue a token not used by any other job in this run."""

        with self._lock:
            token = uuid4().hex
            while token in self._issued_tokens:
                token = uuid4().hex
            self._issued_tokens.add(token)
            return token

    def mark_running(
        self,
        task_id: str,
        *,
        run_token: str,
        action_ref: str,
        submitted_at: float,
        deadline: float | None,
    ) -> LedgerEntry:
        with self._lock:
            entry = self._entries[task_id]
            _check_transition(entry, JobState.RUNNING)
            entry.handle.run_token = run_token
            entry.handle.action_ref = action_ref
            entry.handle.submitted_at = submitted_at
            entry.handle.deadline = deadline
            entry.handle.state = JobState.RUNNING
            return entry

    def mark_succeeded(self, task_id: str, *, payload: Any, finished_at: float) -> LedgerEntry:
        with self._lock:
            entry = self._entries[task_id]
            _check_transition(entry, JobState.SUCCEEDED)
            entry.payload = payload
            entry.handle.finished_at = finished_at
            entry.handle.state = JobState.SUCCEEDED
            return entry

    def mark_failed(
        self,
        task_id: str,
        *,
        failure_class: FailureClass,
        reason: str,
        payload: Any,
        finished_at: float,
        run_token: str | None = None,
    ) -> LedgerEntry:
        with self._lock:
            entry = self._entries[task_id]
            _check_transition(entry, JobState.FAILED)
            if run_token is not None and entry.handle.run_token is None:
                entry.handle.run_token = run_token
            entry.payload = payload
            entry.failure_class = failure_class
            entry.reason = reason
            entry.handle.finished_at = finished_at
            entry.handle.state = JobState.FAILED
            return entry


def _check_transition(entry: LedgerEntry, target: JobState) -> None:
    if target not in ALLOWED_TRANSITIONS[entry.state]:
        raise IllegalTransitionError(entry.task_id, entry.state, target)
