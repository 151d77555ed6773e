"""CSV record source and report sink."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from batch_register.orchestrator.models import REPORT_REASON_COLUMN, REPORT_STATE_COLUMN, RunReport

logger = logging.getLogger(__name__)


class RecordSourceError(RuntimeError):
    """Input cannot be read at all; the run aborts before any submission."""


@dataclass(slots=True)
class InputRecord:
    """One data row of the input file, 1-based and in file order."""

    row_number: int
    fields: dict[str, str]


@dataclass(slots=True)
class RecordSet:
    """Ordered input records with the header they were read with."""

    fieldnames: tuple[str, ...]
    records: list[InputRecord]

    def __len__(self) -> int:
        return len(self.records)


def load_records(path: Path, *, identity_column: str) -> RecordSet:
    """Load CSV records; the header must contain ``identity_column``."""

    try:
        handle = path.open("r", encoding="utf-8-sig", newline="")
    except OSError as error:
        raise RecordSourceError(f"Cannot open input file {str(path)!r}: {error}") from error

    with handle:
        try:
            return _read_records(handle, path, identity_column=identity_column)
        except (csv.Error, UnicodeDecodeError) as error:
            raise RecordSourceError(f"Cannot parse input file {str(path)!r}: {error}") from error


def _read_records(handle: TextIO, path: Path, *, identity_column: str) -> RecordSet:
    reader = csv.DictReader(handle)
    if not reader.fieldnames:
        raise RecordSourceError(f"Input file {str(path)!r} has no header row.")
    fieldnames = tuple(name.strip() for name in reader.fieldnames)
    if identity_column not in fieldnames:
        raise RecordSourceError(
            f"Input file {str(path)!r} has no {identity_column!r} column. "
            f"Found: {', '.join(fieldnames)}",
        )
    records: list[InputRecord] = []
    for row_number, row in enumerate(reader, start=1):
        fields = {
            name: (value or "").strip()
            for name, value in zip(fieldnames, (row.get(key) for key in reader.fieldnames))
        }
        if row.get(None):
            logger.warning(
                "Row %d has %d values beyond the header; ignoring them",
                row_number,
                len(row[None]),
            )
        records.append(InputRecord(row_number=row_number, fields=fields))

    logger.info("Loaded %d records from %s", len(records), path)
    return RecordSet(fieldnames=fieldnames, records=records)


def report_fieldnames(input_fieldnames: tuple[str, ...]) -> list[str]:
    """Input columns in their original order followed by the outcome columns."""

    names = [
        name
        for name in input_fieldnames
        if name not in {REPORT_STATE_COLUMN, REPORT_REASON_COLUMN}
    ]
    return [*names, REPORT_STATE_COLUMN, REPORT_REASON_COLUMN]


def write_report(path: Path, report: RunReport, *, input_fieldnames: tuple[str, ...]) -> None:
    """Write one CSV row per report row, including runs where every task failed."""

    fieldnames = report_fieldnames(input_fieldnames)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        for row in report.rows:
            writer.writerow(row.as_record())
    logger.info("Wrote %d report rows to %s", len(report.rows), path)
