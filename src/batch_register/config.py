"""Runtime configuration for batch registration runs."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

SUPPORTED_TAG_POLICIES = ("strict", "lenient")


@dataclass(slots=True)
class ControlPlaneSettings:
    """Remote control-plane API settings."""

    base_url: str = ""
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    status_field: str = "provisioningState"
    success_sentinel: str = "Succeeded"


@dataclass(slots=True)
class RecordSettings:
    """Input record interpretation settings."""

    identity_column: str = "SystemId"
    tags_column: str = "Tags"
    tag_policy: str = "strict"
    tag_entry_delimiter: str = ";"
    tag_pair_delimiter: str = "="


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    input_file: Path | None = None
    output_file: Path | None = None
    monitoring_interval_seconds: float = 30.0
    max_parallel_jobs: int = 10
    task_timeout_seconds: float = 0.0
    records: RecordSettings = field(default_factory=RecordSettings)
    control_plane: ControlPlaneSettings = field(default_factory=ControlPlaneSettings)

    @classmethod
    def from_env(
        cls,
        *,
        input_file: Path | None = None,
        output_file: Path | None = None,
    ) -> Settings:
        """Load settings from environment; explicit paths take precedence."""

        return cls(
            input_file=input_file or _env_path("BATCH_REGISTER_INPUT_FILE"),
            output_file=output_file or _env_path("BATCH_REGISTER_OUTPUT_FILE"),
            monitoring_interval_seconds=_env_float(
                "BATCH_REGISTER_MONITORING_INTERVAL_SECONDS",
                default=30.0,
            ),
            max_parallel_jobs=_env_int("BATCH_REGISTER_MAX_PARALLEL_JOBS", default=10),
            task_timeout_seconds=_env_float("BATCH_REGISTER_TASK_TIMEOUT_SECONDS", default=0.0),
            records=RecordSettings(
                identity_column=os.getenv("BATCH_REGISTER_IDENTITY_COLUMN", "SystemId"),
                tags_column=os.getenv("BATCH_REGISTER_TAGS_COLUMN", "Tags"),
                tag_policy=os.getenv("BATCH_REGISTER_TAG_POLICY", "strict").strip().lower(),
                tag_entry_delimiter=os.getenv("BATCH_REGISTER_TAG_ENTRY_DELIMITER", ";"),
                tag_pair_delimiter=os.getenv("BATCH_REGISTER_TAG_PAIR_DELIMITER", "="),
            ),
            control_plane=ControlPlaneSettings(
                base_url=os.getenv("BATCH_REGISTER_API_BASE_URL", "").strip(),
                request_timeout_seconds=_env_float(
                    "BATCH_REGISTER_API_TIMEOUT_SECONDS",
                    default=30.0,
                ),
                max_retries=_env_int("BATCH_REGISTER_API_MAX_RETRIES", default=3),
                status_field=os.getenv("BATCH_REGISTER_STATUS_FIELD", "provisioningState"),
                success_sentinel=os.getenv("BATCH_REGISTER_SUCCESS_SENTINEL", "Succeeded"),
            ),
        )

    def validate_for_run(self, *, dry_run: bool = False) -> None:
        """Raise configuration error before any task is submitted."""

        if self.input_file is None:
            raise ValueError(
                "InputFile is required. Set BATCH_REGISTER_INPUT_FILE or pass --input-file.",
            )
        if self.output_file is None:
            raise ValueError(
                "OutputFile is required. Set BATCH_REGISTER_OUTPUT_FILE or pass --output-file.",
            )
        if self.max_parallel_jobs <= 0:
            raise ValueError(
                f"MaxParallelJobs must be a positive integer, got {self.max_parallel_jobs!r}.",
            )
        if not _non_negative(self.monitoring_interval_seconds):
            raise ValueError("MonitoringIntervalInSeconds must be a finite number >= 0.")
        if not _non_negative(self.task_timeout_seconds):
            raise ValueError("BATCH_REGISTER_TASK_TIMEOUT_SECONDS must be a finite number >= 0.")
        self.validate_records()
        if dry_run:
            return
        if self.control_plane.max_retries < 0:
            raise ValueError("BATCH_REGISTER_API_MAX_RETRIES must be >= 0.")
        if self.control_plane.request_timeout_seconds <= 0:
            raise ValueError("BATCH_REGISTER_API_TIMEOUT_SECONDS must be > 0.")
        _validate_base_url(self.control_plane.base_url)

    def validate_records(self) -> None:
        """Raise configuration error for unusable record interpretation settings."""

        if self.records.tag_policy not in SUPPORTED_TAG_POLICIES:
            raise ValueError(
                f"Unsupported tag policy: {self.records.tag_policy!r}. "
                f"Expected one of: {', '.join(SUPPORTED_TAG_POLICIES)}.",
            )
        if not self.records.identity_column.strip():
            raise ValueError("BATCH_REGISTER_IDENTITY_COLUMN must not be empty.")
        entry_delimiter = self.records.tag_entry_delimiter
        pair_delimiter = self.records.tag_pair_delimiter
        if not entry_delimiter or not pair_delimiter or entry_delimiter == pair_delimiter:
            raise ValueError("Tag delimiters must be non-empty and distinct.")


def _validate_base_url(value: str) -> None:
    if not value:
        raise ValueError(
            "Control-plane API base URL is required. "
            "Set BATCH_REGISTER_API_BASE_URL, pass --api-base-url, or use --dry-run.",
        )
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid control-plane API base URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_path(name: str) -> Path | None:
    value = os.getenv(name, "").strip()
    return Path(value) if value else None


def _env_int(name: str, *, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, *, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {value!r}") from error
    if not math.isfinite(parsed):
        raise ValueError(f"Invalid numeric value for {name}: {value!r}")
    return parsed


def _non_negative(value: float) -> bool:
    return math.isfinite(value) and value >= 0
