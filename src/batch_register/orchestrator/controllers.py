"""Controllers for batch registration CLI commands."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from batch_register.config import Settings
from batch_register.orchestrator.aggregator import render_summary_lines
from batch_register.orchestrator.descriptors import build_descriptors
from batch_register.orchestrator.invoker import (
    ActionInvoker,
    HttpActionInvoker,
    LocalActionInvoker,
    make_simulated_registration,
)
from batch_register.orchestrator.models import ProgressObservation, TaskDescriptor
from batch_register.orchestrator.runner import BatchRunner
from batch_register.records import InputRecord, load_records, write_report


@dataclass(slots=True)
class RunCommand:
    """CLI input for one batch registration run."""

    input_file: Path | None
    output_file: Path | None
    monitoring_interval_seconds: float | None = None
    max_parallel_jobs: int | None = None
    task_timeout_seconds: float | None = None
    tag_policy: str | None = None
    api_base_url: str | None = None
    dry_run: bool = False
    dry_run_delay_seconds: float = 0.0


@dataclass(slots=True)
class CheckInputCommand:
    """CLI input for offline input validation."""

    input_file: Path | None
    tag_policy: str | None = None


@dataclass(slots=True)
class RunResult:
    """Run report lines to render in CLI."""

    lines: list[str]
    success: bool
    output_file: Path


class BatchRegisterCliController:
    """Wires settings, record source, invoker, runner, and report sink."""

    def run(
        self,
        command: RunCommand,
        *,
        on_progress: Callable[[str], None] | None = None,
    ) -> RunResult:
        settings = _apply_overrides(
            Settings.from_env(input_file=command.input_file, output_file=command.output_file),
            command,
        )
        settings.validate_for_run(dry_run=command.dry_run)
        input_file = _required_path(settings.input_file)
        output_file = _required_path(settings.output_file)

        record_set = load_records(input_file, identity_column=settings.records.identity_column)
        descriptors = _descriptors(settings, record_set.records)

        observer = None
        if on_progress is not None:
            observer = _progress_printer(on_progress)

        with _invoker(settings, command) as invoker:
            runner = BatchRunner(
                invoker=invoker,
                max_parallel_jobs=settings.max_parallel_jobs,
                monitoring_interval_seconds=settings.monitoring_interval_seconds,
                task_timeout_seconds=settings.task_timeout_seconds,
                observer=observer,
                status_field=settings.control_plane.status_field,
                success_sentinel=settings.control_plane.success_sentinel,
            )
            report = runner.run(descriptors)

        write_report(output_file, report, input_fieldnames=record_set.fieldnames)
        lines = render_summary_lines(report)
        if runner.stats.interrupted:
            lines.append(f"Run interrupted by {runner.stats.stop_signal}.")
        lines.append(
            f"Max in flight: {runner.stats.max_in_flight}/{settings.max_parallel_jobs} "
            f"sweeps={runner.stats.sweeps}",
        )
        lines.append(f"Report written: {output_file}")
        return RunResult(lines=lines, success=report.all_succeeded, output_file=output_file)

    def check_input(self, command: CheckInputCommand) -> RunResult:
        """Parse the input and list records that would be rejected."""

        settings = Settings.from_env(input_file=command.input_file)
        if command.tag_policy is not None:
            settings.records.tag_policy = command.tag_policy
        settings.validate_records()
        input_file = settings.input_file
        if input_file is None:
            raise ValueError(
                "InputFile is required. Set BATCH_REGISTER_INPUT_FILE or pass --input-file.",
            )
        record_set = load_records(input_file, identity_column=settings.records.identity_column)
        descriptors = _descriptors(settings, record_set.records)
        rejected = [descriptor for descriptor in descriptors if descriptor.rejection is not None]
        lines = [
            f"Input check: records={len(descriptors)} accepted={len(descriptors) - len(rejected)} "
            f"rejected={len(rejected)} tag_policy={settings.records.tag_policy}",
        ]
        lines.extend(
            f"  row {descriptor.row_number} {descriptor.task_id}: {descriptor.rejection}"
            for descriptor in rejected
        )
        return RunResult(lines=lines, success=not rejected, output_file=input_file)


def _apply_overrides(settings: Settings, command: RunCommand) -> Settings:
    if command.monitoring_interval_seconds is not None:
        settings.monitoring_interval_seconds = command.monitoring_interval_seconds
    if command.max_parallel_jobs is not None:
        settings.max_parallel_jobs = command.max_parallel_jobs
    if command.task_timeout_seconds is not None:
        settings.task_timeout_seconds = command.task_timeout_seconds
    if command.tag_policy is not None:
        settings.records.tag_policy = command.tag_policy
    if command.api_base_url is not None:
        settings.control_plane.base_url = command.api_base_url.strip()
    return settings


def _required_path(value: Path | None) -> Path:
    if value is None:
        raise ValueError("Input and output files must be configured.")
    return value


def _descriptors(settings: Settings, records: list[InputRecord]) -> list[TaskDescriptor]:
    return build_descriptors(
        records,
        identity_column=settings.records.identity_column,
        tags_column=settings.records.tags_column,
        tag_policy=settings.records.tag_policy,
        entry_delimiter=settings.records.tag_entry_delimiter,
        pair_delimiter=settings.records.tag_pair_delimiter,
    )


def _progress_printer(emit: Callable[[str], None]) -> Callable[[ProgressObservation], None]:
    def _observe(observation: ProgressObservation) -> None:
        emit(
            f"[sweep {observation.sweep}] {observation.completed}/{observation.total} complete "
            f"running={observation.running} succeeded={observation.succeeded} "
            f"failed={observation.failed}",
        )

    return _observe


@contextmanager
def _invoker(settings: Settings, command: RunCommand) -> Iterator[ActionInvoker]:
    if command.dry_run:
        with LocalActionInvoker(
            make_simulated_registration(
                delay_seconds=command.dry_run_delay_seconds,
                status_field=settings.control_plane.status_field,
            ),
            max_workers=settings.max_parallel_jobs,
            status_field=settings.control_plane.status_field,
        ) as local:
            yield local
        return
    with HttpActionInvoker(
        base_url=settings.control_plane.base_url,
        timeout_seconds=settings.control_plane.request_timeout_seconds,
        max_retries=settings.control_plane.max_retries,
    ) as remote:
        yield remote
