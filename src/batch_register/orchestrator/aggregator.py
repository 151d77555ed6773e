"""Final report aggregation in input order."""

from __future__ import annotations

from collections import Counter

from batch_register.orchestrator.ledger import RunLedger
from batch_register.orchestrator.models import (
    FailureClass,
    JobState,
    ReportRow,
    RunReport,
    TaskDescriptor,
)


class Aggregator:
    """Merges terminal ledger entries into one report row per input record."""

    def __init__(self, *, ledger: RunLedger, descriptors: list[TaskDescriptor]) -> None:
        self.ledger = ledger
        self.descriptors = descriptors

    def finalize(self) -> RunReport:
        entries = self.ledger.entries()
        pending = [entry.task_id for entry in entries if not entry.state.is_terminal]
        if pending:
            raise RuntimeError(
                f"Cannot finalize run with {len(pending)} non-terminal task(s): "
                f"{', '.join(pending[:5])}",
            )

        by_id = {entry.task_id: entry for entry in entries}
        rows: list[ReportRow] = []
        for descriptor in sorted(self.descriptors, key=lambda item: item.row_number):
            entry = by_id.get(descriptor.task_id)
            if entry is None:
                continue
            rows.append(
                ReportRow(
                    task_id=descriptor.task_id,
                    row_number=descriptor.row_number,
                    fields=dict(descriptor.source_fields),
                    state=entry.state,
                    failure_class=entry.failure_class,
                    reason=entry.reason,
                ),
            )
        _check_bijection(rows=rows, descriptors=self.descriptors, ledger_ids=list(by_id))

        failures: Counter[FailureClass] = Counter(
            row.failure_class for row in rows if row.failure_class is not None
        )
        succeeded = sum(1 for row in rows if row.state is JobState.SUCCEEDED)
        return RunReport(
            rows=rows,
            total=len(rows),
            succeeded=succeeded,
            failed=len(rows) - succeeded,
            failures_by_class=dict(failures),
        )


def _check_bijection(
    *,
    rows: list[ReportRow],
    descriptors: list[TaskDescriptor],
    ledger_ids: list[str],
) -> None:
    row_ids = [row.task_id for row in rows]
    input_ids = [descriptor.task_id for descriptor in descriptors]
    if len(set(row_ids)) != len(row_ids):
        raise RuntimeError("Report contains duplicate task ids.")
    if set(row_ids) != set(input_ids) or set(ledger_ids) != set(input_ids):
        missing = sorted(set(input_ids) - set(row_ids))
        extra = sorted(set(ledger_ids) - set(input_ids))
        raise RuntimeError(f"Report does not match input: missing={missing} extra={extra}")


def render_summary_lines(report: RunReport) -> list[str]:
    """Build CLI summary lines for a finished run."""

    lines = [
        f"Run finished: total={report.total} succeeded={report.succeeded} failed={report.failed}",
    ]
    for failure_class, count in sorted(report.failures_by_class.items(), key=lambda x: x[0].value):
        lines.append(f"  {failure_class.value}: {count}")
    for row in report.rows:
        if row.state is JobState.FAILED:
            lines.append(f"  row {row.row_number} {row.task_id}: {row.reason}")
    return lines
