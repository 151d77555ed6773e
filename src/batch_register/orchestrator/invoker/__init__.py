"""Action invoker implementations."""

from batch_register.orchestrator.invoker.base import (
    ActionInvoker,
    ActionStatus,
    ActionStatusError,
    InvalidParametersError,
    InvokerError,
    StartRequest,
    SubmissionError,
)
from batch_register.orchestrator.invoker.http_invoker import HttpActionInvoker
from batch_register.orchestrator.invoker.local_invoker import LocalActionInvoker
from batch_register.orchestrator.invoker.simulated import make_simulated_registration

__all__ = [
    "ActionInvoker",
    "ActionStatus",
    "ActionStatusError",
    "HttpActionInvoker",
    "InvalidParametersError",
    "InvokerError",
    "LocalActionInvoker",
    "StartRequest",
    "SubmissionError",
    "make_simulated_registration",
]
