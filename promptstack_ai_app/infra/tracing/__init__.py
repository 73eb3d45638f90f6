# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/__init__.py
from promptstack_ai_app.infra.tracing.aggregator import (
    AggregationState,
    AggregationStatus,
    TraceAggregationResult,
    TraceAggregator,
)
from promptstack_ai_app.infra.tracing.calculator import calculate_trace_stats
from promptstack_ai_app.infra.tracing.errors import (
    TraceAggregationError,
    TraceConflictError,
    TraceRetriesExhaustedError,
    TraceSnapshotWriteError,
)
from promptstack_ai_app.infra.tracing.log_reader import ExecutionLogReader
from promptstack_ai_app.infra.tracing.models import ExecutionLogRecord, TraceStats, TraceSummary
from promptstack_ai_app.infra.tracing.snapshot import TraceSnapshotWriter, trace_snapshot_path
from promptstack_ai_app.infra.tracing.summary_store import TraceSummaryRepository
from promptstack_ai_app.infra.tracing.usage import UsageAccumulator, register_usage_accumulator

__all__ = [
    "AggregationState",
    "AggregationStatus",
    "TraceAggregationResult",
    "TraceAggregator",
    "calculate_trace_stats",
    "TraceAggregationError",
    "TraceConflictError",
    "TraceRetriesExhaustedError",
    "TraceSnapshotWriteError",
    "ExecutionLogReader",
    "ExecutionLogRecord",
    "TraceStats",
    "TraceSummary",
    "TraceSnapshotWriter",
    "trace_snapshot_path",
    "TraceSummaryRepository",
    "UsageAccumulator",
    "register_usage_accumulator",
]
