# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/calculator.py
"""
Pure aggregation of execution-log rows into trace statistics.

The result depends only on the rows (not on their order), so re-aggregating an
unchanged trace always yields the same numbers and the same serialized rollup.

Usage rollup shape:

{
  "providers": [
    {
      "provider": "openai",
      "models": [
        {"model": "o1-mini", "count": 3, "tokens": {"input_tokens": 450, ...}}
      ]
    }
  ]
}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from promptstack_ai_app.infra.tracing.models import ExecutionLogRecord, TraceStats
from promptstack_ai_app.infra.tracing.usage import get_usage_accumulator, parse_usage_payload

logger = logging.getLogger("Tracing.Calculator")

_GroupKey = Tuple[str, Optional[str]]


def _rollup_to_dict(groups: Dict[_GroupKey, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not groups:
        return None
    by_provider: Dict[str, List[Dict[str, Any]]] = {}
    for (provider, model), acc in sorted(groups.items(), key=lambda kv: (kv[0][0], kv[0][1] or "")):
        by_provider.setdefault(provider, []).append({
            "model": model,
            "count": acc["count"],
            "tokens": dict(sorted(acc["tokens"].items())),
        })
    return {
        "providers": [
            {"provider": provider, "models": models}
            for provider, models in by_provider.items()
        ]
    }


def calculate_trace_stats(logs: Sequence[ExecutionLogRecord]) -> TraceStats:
    """
    Single pass over the trace's rows.

    - null durations contribute nothing
    - rows whose usage payload cannot be parsed still count everywhere
      except in the usage rollup
    """
    if not logs:
        raise ValueError("Cannot calculate stats for an empty trace")

    success_count = 0
    error_count = 0
    total_duration_ms = 0
    first_log_at = None
    last_log_at = None
    groups: Dict[_GroupKey, Dict[str, Any]] = {}

    for log in logs:
        if log.is_success:
            success_count += 1
        else:
            error_count += 1

        if log.duration_ms is not None:
            total_duration_ms += int(log.duration_ms)

        if first_log_at is None or log.created_at < first_log_at:
            first_log_at = log.created_at
        if last_log_at is None or log.created_at > last_log_at:
            last_log_at = log.created_at

        if not log.provider:
            continue
        payload = parse_usage_payload(log.usage, log_id=log.id)
        if payload is None:
            continue

        provider = log.provider.lower()
        accumulator = get_usage_accumulator(provider)
        key = (provider, log.model)
        acc = groups.get(key)
        if acc is None:
            acc = {"count": 0, "tokens": accumulator.seed() if accumulator else {}}
            groups[key] = acc
        acc["count"] += 1
        if accumulator is not None:
            accumulator.accumulate(acc["tokens"], payload)

    return TraceStats(
        total_logs=len(logs),
        success_count=success_count,
        error_count=error_count,
        total_duration_ms=total_duration_ms,
        first_log_at=first_log_at,
        last_log_at=last_log_at,
        usage_rollup=_rollup_to_dict(groups),
    )
