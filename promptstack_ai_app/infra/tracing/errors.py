# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/errors.py
from typing import Optional


class TraceAggregationError(Exception):
    """Base class for trace aggregation failures."""


class TraceConflictError(TraceAggregationError):
    """Another worker wrote the same trace summary between our read and our write."""


class TraceRetriesExhaustedError(TraceAggregationError):
    """Every aggregation attempt ended in a conflict."""

    def __init__(self, trace_id: str, attempts: int):
        super().__init__(f"Trace {trace_id} not aggregated after {attempts} conflicting attempts")
        self.trace_id = trace_id
        self.attempts = attempts


class TraceSnapshotWriteError(TraceAggregationError):
    """The trace snapshot could not be written to blob storage."""

    def __init__(self, path: str, reason: Optional[str] = None):
        msg = f"Cannot write trace snapshot {path}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.path = path
