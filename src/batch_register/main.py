"""CLI entrypoint for batch-register."""

import logging
from pathlib import Path

import rich_click as click

from batch_register import __version__
from batch_register.config import SUPPORTED_TAG_POLICIES
from batch_register.orchestrator.controllers import (
    BatchRegisterCliController,
    CheckInputCommand,
    RunCommand,
)
from batch_register.records import RecordSourceError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = BatchRegisterCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="batch-register")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity for orchestrator internals.",
)
def batch_register(log_level: str) -> None:
    """Register many resources against the control plane with bounded parallelism."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@batch_register.command("run")
@click.option(
    "--input-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Input CSV (InputFile). Defaults to BATCH_REGISTER_INPUT_FILE.",
)
@click.option(
    "--output-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Report CSV (OutputFile). Defaults to BATCH_REGISTER_OUTPUT_FILE.",
)
@click.option(
    "--monitoring-interval-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Poll and admission retry interval (MonitoringIntervalInSeconds, default 30).",
)
@click.option(
    "--max-parallel-jobs",
    type=int,
    default=None,
    help="Admission ceiling (MaxParallelJobs, default 10).",
)
@click.option(
    "--task-timeout-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Fail tasks that stay running longer than this. 0 disables the deadline.",
)
@click.option(
    "--tag-policy",
    type=click.Choice(SUPPORTED_TAG_POLICIES, case_sensitive=False),
    default=None,
    help="strict rejects records with malformed tags; lenient keeps the valid entries.",
)
@click.option("--api-base-url", default=None, help="Control-plane API base URL.")
@click.option(
    "--dry-run/--no-dry-run",
    default=False,
    show_default=True,
    help="Run against a local simulated registration instead of the API.",
)
@click.option(
    "--dry-run-delay-seconds",
    type=click.FloatRange(min=0),
    default=0.0,
    show_default=True,
    help="Simulated action duration for --dry-run.",
)
@click.option(
    "--fail-on-error/--no-fail-on-error",
    default=False,
    show_default=True,
    help="Exit non-zero after writing the report if any task failed.",
)
def run(  # noqa: PLR0913
    input_file: Path | None,
    output_file: Path | None,
    monitoring_interval_seconds: float | None,
    max_parallel_jobs: int | None,
    task_timeout_seconds: float | None,
    tag_policy: str | None,
    api_base_url: str | None,
    dry_run: bool,
    dry_run_delay_seconds: float,
    fail_on_error: bool,
) -> None:
    """Submit every input record, poll until all are terminal, and write the report."""

    try:
        result = CONTROLLER.run(
            RunCommand(
                input_file=input_file,
                output_file=output_file,
                monitoring_interval_seconds=monitoring_interval_seconds,
                max_parallel_jobs=max_parallel_jobs,
                task_timeout_seconds=task_timeout_seconds,
                tag_policy=tag_policy.lower() if tag_policy else None,
                api_base_url=api_base_url,
                dry_run=dry_run,
                dry_run_delay_seconds=dry_run_delay_seconds,
            ),
            on_progress=click.echo,
        )
    except (ValueError, RecordSourceError) as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(result.lines)
    if fail_on_error and not result.success:
        raise click.ClickException("One or more tasks failed; see the report.")


@batch_register.command("check-input")
@click.option(
    "--input-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Input CSV. Defaults to BATCH_REGISTER_INPUT_FILE.",
)
@click.option(
    "--tag-policy",
    type=click.Choice(SUPPORTED_TAG_POLICIES, case_sensitive=False),
    default=None,
    help="Tag parsing policy to validate against.",
)
def check_input(input_file: Path | None, tag_policy: str | None) -> None:
    """Parse the input without submitting anything and list rejected records."""

    try:
        result = CONTROLLER.check_input(
            CheckInputCommand(
                input_file=input_file,
                tag_policy=tag_policy.lower() if tag_policy else None,
            ),
        )
    except (ValueError, RecordSourceError) as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Input contains records that would be rejected.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    batch_register()
