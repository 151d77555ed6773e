"""Strict allow-list classification of terminal action payloads."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from batch_register.orchestrator.models import FailureClass, JobState

DEFAULT_STATUS_FIELD = "provisioningState"
DEFAULT_SUCCESS_SENTINEL = "Succeeded"


@dataclass(slots=True)
class OutcomeClassification:
    """Normalized classification result."""

    state: JobState
    failure_class: FailureClass | None
    reason: str | None
    reported_status: str | None


def classify_outcome(
    payload: Any,
    *,
    status_field: str = DEFAULT_STATUS_FIELD,
    success_sentinel: str = DEFAULT_SUCCESS_SENTINEL,
) -> OutcomeClassification:
    """Succeed only on an exact sentinel match; everything else fails."""

    if not isinstance(payload, Mapping):
        return OutcomeClassification(
            state=JobState.FAILED,
            failure_class=FailureClass.UNCLASSIFIED_TERMINAL_STATUS,
            reason=f"terminal payload is not an object ({type(payload).__name__})",
            reported_status=None,
        )

    status = payload.get(status_field)
    if not isinstance(status, str) or not status:
        return OutcomeClassification(
            state=JobState.FAILED,
            failure_class=FailureClass.UNCLASSIFIED_TERMINAL_STATUS,
            reason=f"terminal payload has no {status_field!r} value",
            reported_status=None,
        )

    if status == success_sentinel:
        return OutcomeClassification(
            state=JobState.SUCCEEDED,
            failure_class=None,
            reason=None,
            reported_status=status,
        )

    reason = f"{status_field}={status}"
    error = _error_summary(payload.get("error"))
    if error:
        reason = f"{reason}: {error}"
    return OutcomeClassification(
        state=JobState.FAILED,
        failure_class=FailureClass.REMOTE_OUTCOME_FAILURE,
        reason=reason,
        reported_status=status,
    )


def _error_summary(error: Any) -> str | None:
    if isinstance(error, Mapping):
        message = error.get("message")
        return str(message) if message else None
    if isinstance(error, str) and error:
        return error
    return None
