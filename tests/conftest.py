"""Shared test fixtures."""

from __future__ import annotations

import csv
import os
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from batch_register.orchestrator.invoker import ActionStatus, ActionStatusError, StartRequest
from batch_register.orchestrator.models import JobHandle

SUCCESS_PAYLOAD = {"provisioningState": "Succeeded"}


@dataclass
class Script:
    """How a scripted action behaves: ``polls=None`` never finishes."""

    polls: int | None = 1
    payload: Any = field(default_factory=lambda: dict(SUCCESS_PAYLOAD))
    start_error: Exception | None = None
    status_errors: int = 0
    status_error: Exception | None = None


class ScriptedInvoker:
    """Deterministic invoker that records starts, terminal observations, and concurrency."""

    def __init__(self, scripts: dict[str, Script] | None = None, default: Script | None = None):
        self.scripts = scripts or {}
        self.default = default or Script()
        self.events: list[tuple[str, str]] = []
        self.status_calls: Counter[str] = Counter()
        self.run_tokens: list[str] = []
        self.active: set[str] = set()
        self.max_concurrent = 0

    def _script(self, task_id: str) -> Script:
        return self.scripts.get(task_id, self.default)

    def start(self, request: StartRequest) -> str:
        script = self._script(request.task_id)
        self.events.append(("start", request.task_id))
        self.run_tokens.append(request.run_token)
        if script.start_error is not None:
            raise script.start_error
        self.active.add(request.task_id)
        self.max_concurrent = max(self.max_concurrent, len(self.active))
        return f"op-{request.task_id}"

    def status(self, handle: JobHandle) -> ActionStatus:
        script = self._script(handle.task_id)
        self.status_calls[handle.task_id] += 1
        calls = self.status_calls[handle.task_id]
        if calls <= script.status_errors:
            raise script.status_error or ActionStatusError("control plane unavailable")
        if script.polls is None or calls - script.status_errors < script.polls:
            return ActionStatus.in_progress()
        if handle.task_id in self.active:
            self.active.discard(handle.task_id)
            self.events.append(("terminal", handle.task_id))
        return ActionStatus.terminal(script.payload)


class FakeClock:
    """Monotonic clock advanced by the runner's sleep calls."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def scripted_invoker():
    """Factory for ScriptedInvoker instances."""

    return ScriptedInvoker


@pytest.fixture()
def write_csv(tmp_path: Path):
    """Write rows to a CSV under tmp_path and return its path."""

    def _write(rows: list[dict[str, str]], name: str = "input.csv") -> Path:
        path = tmp_path / name
        fieldnames = list(rows[0]) if rows else ["SystemId", "Tags"]
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
        return path

    return _write


@pytest.fixture()
def script():
    """The Script class, for building per-task behaviors."""

    return Script


@pytest.fixture()
def read_csv():
    """Read a CSV report back as a list of dicts."""

    def _read(path: Path) -> list[dict[str, str]]:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return list(csv.DictReader(handle))

    return _read


@pytest.fixture()
def clean_env(monkeypatch):
    """Drop BATCH_REGISTER_* variables inherited from the developer shell."""

    for name in list(os.environ):
        if name.startswith("BATCH_REGISTER_"):
            monkeypatch.delenv(name, raising=False)
