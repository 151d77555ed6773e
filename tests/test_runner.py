from __future__ import annotations

import allure
import pytest

from batch_register.orchestrator.descriptors import build_descriptors
from batch_register.orchestrator.invoker import InvalidParametersError, SubmissionError
from batch_register.orchestrator.models import FailureClass, JobState, TaskDescriptor
from batch_register.orchestrator.runner import BatchRunner
from batch_register.records import InputRecord

pytestmark = [
    allure.epic("Batch Run"),
    allure.feature("Run Loop"),
]

FAILED = {"provisioningState": "Failed", "error": "license type not allowed"}


def _descriptors(*task_ids: str) -> list[TaskDescriptor]:
    return [
        TaskDescriptor(
            task_id=task_id,
            row_number=index,
            parameters={"SystemId": task_id},
            source_fields={"SystemId": task_id},
        )
        for index, task_id in enumerate(task_ids, start=1)
    ]


def _runner(invoker, fake_clock, *, max_parallel_jobs: int = 2, **kwargs) -> BatchRunner:
    return BatchRunner(
        invoker=invoker,
        max_parallel_jobs=max_parallel_jobs,
        monitoring_interval_seconds=30,
        clock=fake_clock,
        sleep=fake_clock.sleep,
        **kwargs,
    )


def test_third_task_waits_for_a_free_slot(scripted_invoker, script, fake_clock) -> None:
    invoker = scripted_invoker(
        {
            "vm-a": script(polls=1),
            "vm-b": script(polls=3, payload=FAILED),
            "vm-c": script(polls=1),
        },
    )
    runner = _runner(invoker, fake_clock, max_parallel_jobs=2)

    report = runner.run(_descriptors("vm-a", "vm-b", "vm-c"))

    assert invoker.events[:4] == [
        ("start", "vm-a"),
        ("start", "vm-b"),
        ("terminal", "vm-a"),
        ("start", "vm-c"),
    ]
    assert invoker.max_concurrent == 2
    assert runner.stats.admission_waits == 1
    assert [row.task_id for row in report.rows] == ["vm-a", "vm-b", "vm-c"]
    assert [row.state for row in report.rows] == [
        JobState.SUCCEEDED,
        JobState.FAILED,
        JobState.SUCCEEDED,
    ]
    assert report.rows[1].failure_class is FailureClass.REMOTE_OUTCOME_FAILURE
    assert report.total == 3
    assert report.succeeded == 2
    assert report.failed == 1
    assert set(fake_clock.sleeps) == {30}


@pytest.mark.parametrize("max_parallel_jobs", [1, 2, 3, 5])
def test_running_count_never_exceeds_ceiling(
    scripted_invoker,
    script,
    fake_clock,
    max_parallel_jobs: int,
) -> None:
    task_ids = [f"vm-{index}" for index in range(12)]
    invoker = scripted_invoker(
        {task_id: script(polls=1 + index % 4) for index, task_id in enumerate(task_ids)},
    )
    runner = _runner(invoker, fake_clock, max_parallel_jobs=max_parallel_jobs)

    report = runner.run(_descriptors(*task_ids))

    assert invoker.max_concurrent <= max_parallel_jobs
    assert runner.stats.max_in_flight <= max_parallel_jobs
    assert [row.task_id for row in report.rows] == task_ids
    assert report.succeeded == len(task_ids)
    assert len(set(invoker.run_tokens)) == len(task_ids)


def test_all_tasks_failing_still_produces_full_report(scripted_invoker, script, fake_clock) -> None:
    invoker = scripted_invoker(default=script(polls=2, payload=FAILED))
    runner = _runner(invoker, fake_clock, max_parallel_jobs=2)

    report = runner.run(_descriptors("a", "b", "c", "d"))

    assert report.total == 4
    assert report.failed == 4
    assert all(row.state is JobState.FAILED for row in report.rows)
    assert report.failures_by_class == {FailureClass.REMOTE_OUTCOME_FAILURE: 4}
    assert [event for event in invoker.events if event[0] == "start"] == [
        ("start", "a"),
        ("start", "b"),
        ("start", "c"),
        ("start", "d"),
    ]


def test_start_failures_are_recorded_without_leaking_slots(
    scripted_invoker,
    script,
    fake_clock,
) -> None:
    invoker = scripted_invoker(
        {
            "a": script(start_error=InvalidParametersError("HTTP 400: unknown sku")),
            "b": script(start_error=SubmissionError("HTTP 503: busy")),
            "c": script(polls=1),
        },
    )
    runner = _runner(invoker, fake_clock, max_parallel_jobs=1)

    report = runner.run(_descriptors("a", "b", "c"))

    assert [row.state for row in report.rows] == [
        JobState.FAILED,
        JobState.FAILED,
        JobState.SUCCEEDED,
    ]
    assert report.rows[0].failure_class is FailureClass.SUBMISSION_FAILURE
    assert report.rows[0].reason == "invalid_parameters: HTTP 400: unknown sku"
    assert report.rows[1].reason == "submission_failed: HTTP 503: busy"
    assert runner.stats.admission_waits == 0
    assert runner.admission.in_flight == 0


def test_invalid_records_are_reported_without_submission(
    scripted_invoker,
    fake_clock,
) -> None:
    descriptors = build_descriptors(
        [
            InputRecord(row_number=1, fields={"SystemId": "vm-a", "Tags": "env=prod"}),
            InputRecord(row_number=2, fields={"SystemId": "vm-b", "Tags": "env=prod;owner"}),
            InputRecord(row_number=3, fields={"SystemId": "vm-c", "Tags": ""}),
        ],
        tag_policy="strict",
    )
    invoker = scripted_invoker()
    runner = _runner(invoker, fake_clock)

    report = runner.run(descriptors)

    assert ("start", "vm-b") not in invoker.events
    assert [row.task_id for row in report.rows] == ["vm-a", "vm-b", "vm-c"]
    assert report.rows[1].state is JobState.FAILED
    assert report.rows[1].failure_class is FailureClass.INVALID_INPUT
    assert runner.stats.rejected == 1


def test_lenient_tags_submit_partial_tag_set(scripted_invoker, fake_clock) -> None:
    descriptors = build_descriptors(
        [InputRecord(row_number=1, fields={"SystemId": "vm-b", "Tags": "env=prod;owner"})],
        tag_policy="lenient",
    )
    invoker = scripted_invoker()
    runner = _runner(invoker, fake_clock)

    report = runner.run(descriptors)

    assert invoker.events[0] == ("start", "vm-b")
    assert report.rows[0].state is JobState.SUCCEEDED


def test_task_deadline_unblocks_a_hanging_run(scripted_invoker, script, fake_clock) -> None:
    invoker = scripted_invoker({"hung": script(polls=None), "ok": script(polls=1)})
    runner = _runner(invoker, fake_clock, max_parallel_jobs=1, task_timeout_seconds=90)

    report = runner.run(_descriptors("hung", "ok"))

    assert report.rows[0].failure_class is FailureClass.TIMEOUT
    assert report.rows[1].state is JobState.SUCCEEDED
    assert fake_clock.now >= 90


def test_stop_request_marks_unfinished_tasks_interrupted(scripted_invoker, script) -> None:
    invoker = scripted_invoker(default=script(polls=None))

    def _sleep(_: float) -> None:
        runner.request_stop(signal_name="SIGTERM")

    runner = BatchRunner(invoker=invoker, max_parallel_jobs=1, sleep=_sleep)

    report = runner.run(_descriptors("a", "b", "c"))

    assert invoker.events == [("start", "a")]
    assert report.total == 3
    assert report.failures_by_class == {FailureClass.INTERRUPTED: 3}
    assert "not cancelled" in (report.rows[0].reason or "")
    assert report.rows[1].reason == "run interrupted before submission"
    assert runner.stats.interrupted
    assert runner.admission.in_flight == 0


def test_empty_input_finishes_immediately(scripted_invoker, fake_clock) -> None:
    runner = _runner(scripted_invoker(), fake_clock)

    report = runner.run([])

    assert report.total == 0
    assert report.rows == []
    assert fake_clock.sleeps == []


def test_negative_interval_is_rejected(scripted_invoker) -> None:
    with pytest.raises(ValueError, match="monitoring_interval_seconds"):
        BatchRunner(invoker=scripted_invoker(), max_parallel_jobs=1, monitoring_interval_seconds=-1)


def test_non_positive_parallelism_is_rejected(scripted_invoker) -> None:
    with pytest.raises(ValueError, match="max_parallel"):
        BatchRunner(invoker=scripted_invoker(), max_parallel_jobs=0)


def test_unexpected_start_exception_becomes_submission_failure(
    scripted_invoker,
    script,
    fake_clock,
) -> None:
    invoker = scripted_invoker(
        {"a": script(start_error=KeyError("operationId")), "b": script(polls=1)},
    )
    runner = _runner(invoker, fake_clock, max_parallel_jobs=1)

    report = runner.run(_descriptors("a", "b"))

    assert report.rows[0].failure_class is FailureClass.SUBMISSION_FAILURE
    assert report.rows[0].reason == "submission_failed: KeyError: 'operationId'"
    assert report.rows[1].state is JobState.SUCCEEDED
    assert runner.admission.in_flight == 0


def test_unexpected_status_exception_does_not_abort_run(
    scripted_invoker,
    script,
    fake_clock,
) -> None:
    invoker = scripted_invoker(
        {
            "a": script(polls=1, status_errors=2, status_error=KeyError("operationId")),
            "b": script(polls=1),
        },
    )
    runner = _runner(invoker, fake_clock)

    report = runner.run(_descriptors("a", "b"))

    assert [row.state for row in report.rows] == [JobState.SUCCEEDED, JobState.SUCCEEDED]
    assert invoker.status_calls["a"] == 3


def test_short_deadline_does_not_fail_finished_tasks(scripted_invoker, script, fake_clock) -> None:
    invoker = scripted_invoker({"a": script(polls=1)})
    runner = _runner(invoker, fake_clock, max_parallel_jobs=1, task_timeout_seconds=10)

    report = runner.run(_descriptors("a"))

    assert report.rows[0].state is JobState.SUCCEEDED
    assert report.failures_by_class == {}
