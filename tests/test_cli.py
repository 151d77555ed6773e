from __future__ import annotations

from pathlib import Path

import allure
from click.testing import CliRunner

from batch_register.main import batch_register

pytestmark = [
    allure.epic("Batch Run"),
    allure.feature("CLI"),
]

ROWS = [
    {
        "SystemId": "sql-vm-01",
        "Location": "westeurope",
        "Environment": "prod",
        "ResourceId": "/vms/sql-vm-01",
        "Identity": "mi-registrar",
        "ResourceGroup": "rg-data",
        "Tags": "env=prod;owner=dba",
        "Storage": "stdata01",
        "simulate": "",
    },
    {
        "SystemId": "sql-vm-02",
        "Location": "westeurope",
        "Environment": "dev",
        "ResourceId": "/vms/sql-vm-02",
        "Identity": "mi-registrar",
        "ResourceGroup": "rg-data",
        "Tags": "env=dev;owner",
        "Storage": "stdata01",
        "simulate": "",
    },
    {
        "SystemId": "sql-vm-03",
        "Location": "eastus",
        "Environment": "prod",
        "ResourceId": "/vms/sql-vm-03",
        "Identity": "mi-registrar",
        "ResourceGroup": "rg-ops",
        "Tags": "",
        "Storage": "stops01",
        "simulate": "fail",
    },
]


def _run_args(input_file: Path, output_file: Path, *extra: str) -> list[str]:
    return [
        "run",
        "--input-file",
        str(input_file),
        "--output-file",
        str(output_file),
        "--dry-run",
        "--monitoring-interval-seconds",
        "0",
        "--max-parallel-jobs",
        "2",
        *extra,
    ]


def test_cli_dry_run_writes_report_in_input_order(
    tmp_path: Path,
    write_csv,
    read_csv,
    clean_env,
) -> None:
    input_file = write_csv(ROWS)
    output_file = tmp_path / "out" / "report.csv"

    result = CliRunner().invoke(batch_register, _run_args(input_file, output_file))

    assert result.exit_code == 0, result.output
    rows = read_csv(output_file)
    assert [row["SystemId"] for row in rows] == ["sql-vm-01", "sql-vm-02", "sql-vm-03"]
    assert [row["State"] for row in rows] == ["Succeeded", "Failed", "Failed"]
    assert "has no '='" in rows[1]["FailureReason"]
    assert rows[2]["FailureReason"] == "provisioningState=Failed: simulated failure"
    assert rows[0]["Tags"] == "env=prod;owner=dba"
    assert "Run finished: total=3 succeeded=1 failed=2" in result.output
    assert "invalid_input: 1" in result.output
    assert "[sweep" in result.output
    assert f"Report written: {output_file}" in result.output


def test_cli_lenient_policy_submits_partial_tags(
    tmp_path: Path,
    write_csv,
    read_csv,
    clean_env,
) -> None:
    input_file = write_csv(ROWS)
    output_file = tmp_path / "report.csv"

    result = CliRunner().invoke(
        batch_register,
        _run_args(input_file, output_file, "--tag-policy", "lenient"),
    )

    assert result.exit_code == 0, result.output
    assert [row["State"] for row in read_csv(output_file)] == ["Succeeded", "Succeeded", "Failed"]


def test_cli_fail_on_error_exits_non_zero_after_writing_report(
    tmp_path: Path,
    write_csv,
    clean_env,
) -> None:
    input_file = write_csv(ROWS)
    output_file = tmp_path / "report.csv"

    result = CliRunner().invoke(
        batch_register,
        _run_args(input_file, output_file, "--fail-on-error"),
    )

    assert result.exit_code == 1
    assert output_file.exists()
    assert "One or more tasks failed" in result.output


def test_cli_rejects_non_positive_parallelism_before_submission(
    tmp_path: Path,
    write_csv,
    clean_env,
) -> None:
    input_file = write_csv(ROWS)
    output_file = tmp_path / "report.csv"
    args = _run_args(input_file, output_file)
    args[args.index("--max-parallel-jobs") + 1] = "0"

    result = CliRunner().invoke(batch_register, args)

    assert result.exit_code == 1
    assert "MaxParallelJobs must be a positive integer" in result.output
    assert not output_file.exists()


def test_cli_missing_input_is_fatal(tmp_path: Path, clean_env) -> None:
    result = CliRunner().invoke(
        batch_register,
        _run_args(tmp_path / "missing.csv", tmp_path / "report.csv"),
    )

    assert result.exit_code == 1
    assert "Cannot open input file" in result.output


def test_cli_unparseable_input_is_reported_without_traceback(tmp_path: Path, clean_env) -> None:
    input_file = tmp_path / "input.csv"
    input_file.write_bytes(b"SystemId,Tags\nvm-\xff,env=prod\n")

    result = CliRunner().invoke(batch_register, _run_args(input_file, tmp_path / "report.csv"))

    assert result.exit_code == 1
    assert "Cannot parse input file" in result.output
    assert not (tmp_path / "report.csv").exists()


def test_cli_requires_api_url_without_dry_run(tmp_path: Path, write_csv, clean_env) -> None:
    input_file = write_csv(ROWS)

    result = CliRunner().invoke(
        batch_register,
        [
            "run",
            "--input-file",
            str(input_file),
            "--output-file",
            str(tmp_path / "report.csv"),
        ],
    )

    assert result.exit_code == 1
    assert "base URL is required" in result.output


def test_cli_reads_paths_from_environment(
    tmp_path: Path,
    write_csv,
    read_csv,
    monkeypatch,
    clean_env,
) -> None:
    input_file = write_csv(ROWS[:1])
    output_file = tmp_path / "env-report.csv"
    monkeypatch.setenv("BATCH_REGISTER_INPUT_FILE", str(input_file))
    monkeypatch.setenv("BATCH_REGISTER_OUTPUT_FILE", str(output_file))
    monkeypatch.setenv("BATCH_REGISTER_MONITORING_INTERVAL_SECONDS", "0")

    result = CliRunner().invoke(batch_register, ["run", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert [row["State"] for row in read_csv(output_file)] == ["Succeeded"]


def test_cli_check_input_lists_rejected_records(write_csv, clean_env) -> None:
    input_file = write_csv(ROWS)

    result = CliRunner().invoke(batch_register, ["check-input", "--input-file", str(input_file)])

    assert result.exit_code == 1
    assert "records=3 accepted=2 rejected=1 tag_policy=strict" in result.output
    assert "row 2 sql-vm-02" in result.output


def test_cli_check_input_passes_under_lenient_policy(write_csv, clean_env) -> None:
    input_file = write_csv(ROWS)

    result = CliRunner().invoke(
        batch_register,
        ["check-input", "--input-file", str(input_file), "--tag-policy", "lenient"],
    )

    assert result.exit_code == 0, result.output
    assert "rejected=0" in result.output
