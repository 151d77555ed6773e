"""Deterministic simulated registration for dry runs and tests."""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

from batch_register.orchestrator.invoker.local_invoker import LocalAction

SIMULATE_PARAMETER = "simulate"


def make_simulated_registration(
    *,
    delay_seconds: float = 0.0,
    status_field: str = "provisioningState",
) -> LocalAction:
    """Build a local action that pretends to register one resource.

    A record whose ``simulate`` column is ``fail`` reports ``Failed``, ``garble``
    returns a payload without a status field; anything else succeeds.
    """

    def _simulate(parameters: Mapping[str, Any]) -> dict[str, Any]:
        if delay_seconds > 0:
            time.sleep(delay_seconds)
        mode = str(parameters.get(SIMULATE_PARAMETER, "")).strip().lower()
        if mode == "fail":
            return {status_field: "Failed", "error": "simulated failure"}
        if mode == "garble":
            return {"unexpected": True}
        return {
            status_field: "Succeeded",
            "backend": "simulated",
            "tags": dict(parameters.get("tags") or {}),
        }

    return _simulate
