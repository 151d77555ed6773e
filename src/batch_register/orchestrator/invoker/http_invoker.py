"""Control-plane HTTP invoker with retries and timeout."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from batch_register import __version__
from batch_register.orchestrator.invoker.base import (
    ActionStatus,
    ActionStatusError,
    InvalidParametersError,
    StartRequest,
    SubmissionError,
)
from batch_register.orchestrator.models import JobHandle

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = f"batch-register/{__version__}"
REQUEST_ID_HEADER = "X-Request-Id"
_INVALID_PARAMETER_STATUSES = frozenset({400, 422})


class HttpActionInvoker:
    """Start registrations and poll their operations over the control-plane API.

    ``POST /registrations`` returns ``{"operationId": ...}``;
    ``GET /operations/{id}`` returns ``{"done": bool, "result": {...}}``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        base_headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers=base_headers,
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def start(self, request: StartRequest) -> str:
        try:
            response = self._client.post(
                "/registrations",
                json={"taskId": request.task_id, "parameters": dict(request.parameters)},
                headers={REQUEST_ID_HEADER: request.run_token},
            )
        except httpx.HTTPError as exc:
            logger.warning("Start request failed for %s: %s", request.task_id, exc)
            raise SubmissionError(f"start request failed: {exc}") from exc

        if response.status_code in _INVALID_PARAMETER_STATUSES:
            raise InvalidParametersError(
                f"HTTP {response.status_code}: {_error_message(response)}",
            )
        if not response.is_success:
            raise SubmissionError(f"HTTP {response.status_code}: {_error_message(response)}")

        body = _json_body(response)
        operation_id = body.get("operationId") if isinstance(body, dict) else None
        if not isinstance(operation_id, str) or not operation_id:
            raise SubmissionError("start response did not include an operationId")
        return operation_id

    def status(self, handle: JobHandle) -> ActionStatus:
        if handle.action_ref is None:
            raise ActionStatusError(f"task {handle.task_id!r} has no operation to query")
        try:
            response = self._client.get(f"/operations/{quote(handle.action_ref, safe='')}")
        except httpx.HTTPError as exc:
            raise ActionStatusError(f"status request failed: {exc}") from exc
        if not response.is_success:
            raise ActionStatusError(f"HTTP {response.status_code}: {_error_message(response)}")

        body = _json_body(response)
        if not isinstance(body, dict):
            raise ActionStatusError("status response is not a JSON object")
        if not body.get("done"):
            return ActionStatus.in_progress()
        return ActionStatus.terminal(body.get("result"))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpActionInvoker:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    body = _json_body(response)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    text = response.text.strip()
    return text[:200] if text else response.reason_phrase
