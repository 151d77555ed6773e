"""Bounded-concurrency orchestration of remote registration actions.

Each input record becomes one task. Tasks are started in input order while
fewer than ``MaxParallelJobs`` are in flight; when the pool is saturated the
runner sleeps ``MonitoringIntervalInSeconds`` and runs a status sweep, which
is what frees slots. Once everything is submitted the runner keeps sweeping
until every ledger entry is terminal, then aggregates one report row per
input record in input order.

Remote actions complete independently of each other; the orchestrator itself
stays single threaded and learns about completions only by polling.
"""
