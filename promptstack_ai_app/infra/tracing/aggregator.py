# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/aggregator.py

"""
Trace aggregation job.

Given (tenant, project, trace) it re-reads every execution log of the trace,
recomputes the summary, snapshots the detail to blob storage and upserts the
trace_summaries row:

    IDLE -> READ_LOG -> COMPUTE_STATS -> WRITE_SNAPSHOT -> UPSERT_SUMMARY -> DONE
                ^                                               |
                +----------------- conflict --------------------+

Many workers may run this for the same trace at once (one trigger per log
event). They coordinate only through the summary row's version token; on a
conflict the attempt restarts from READ_LOG, up to `max_attempts` times.

The summary token is captured *before* the logs are read, so a writer that
aggregated a newer log set in the meantime always makes our write conflict.

The snapshot blob is not guarded: two successful concurrent attempts may leave
the row pointing at a snapshot written by the other one. Known gap, kept as is.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from promptstack_ai_app.config import Settings, get_settings
from promptstack_ai_app.infra.tracing.calculator import calculate_trace_stats
from promptstack_ai_app.infra.tracing.errors import TraceConflictError, TraceRetriesExhaustedError
from promptstack_ai_app.infra.tracing.log_reader import ExecutionLogReader
from promptstack_ai_app.infra.tracing.models import TraceSummary
from promptstack_ai_app.infra.tracing.snapshot import TraceSnapshotWriter
from promptstack_ai_app.infra.tracing.summary_store import TraceSummaryRepository
from promptstack_ai_app.storage.storage import IStorageBackend

logger = logging.getLogger("TraceAggregator")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 0.1


class AggregationState(str, Enum):
    IDLE = "idle"
    READ_LOG = "read_log"
    COMPUTE_STATS = "compute_stats"
    WRITE_SNAPSHOT = "write_snapshot"
    UPSERT_SUMMARY = "upsert_summary"
    DONE = "done"


class AggregationStatus(str, Enum):
    AGGREGATED = "aggregated"
    # no logs carry this trace id; nothing was written
    EMPTY = "empty"
    # no trace id given
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TraceAggregationResult:
    tenant_id: int
    project_id: int
    trace_id: str
    status: AggregationStatus
    attempts: int
    summary: Optional[TraceSummary] = None


class TraceAggregator:

    def __init__(self,
                 *,
                 log_reader: ExecutionLogReader,
                 summaries: TraceSummaryRepository,
                 snapshots: TraceSnapshotWriter,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.log_reader = log_reader
        self.summaries = summaries
        self.snapshots = snapshots
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls,
                      pool,
                      storage_backend: IStorageBackend,
                      settings: Optional[Settings] = None) -> "TraceAggregator":
        settings = settings or get_settings()
        schema = settings.TRACES_SCHEMA
        return cls(
            log_reader=ExecutionLogReader(pool, schema=schema),
            summaries=TraceSummaryRepository(pool, schema=schema),
            snapshots=TraceSnapshotWriter(storage_backend),
            max_attempts=settings.TRACE_AGGREGATION_MAX_ATTEMPTS,
            backoff_seconds=settings.TRACE_AGGREGATION_BACKOFF_MS / 1000.0,
        )

    async def aggregate(self, tenant_id: int, project_id: int, trace_id: str) -> TraceAggregationResult:
        """
        Aggregate one trace. Safe to call repeatedly and concurrently.

        Returns normally on success, including when the trace has no logs.
        Raises TraceRetriesExhaustedError when every attempt conflicted;
        any other error (snapshot write, database) propagates unchanged.
        """
        if tenant_id is None or int(tenant_id) <= 0:
            raise ValueError(f"tenant_id must be a positive integer, got {tenant_id!r}")
        if project_id is None or int(project_id) <= 0:
            raise ValueError(f"project_id must be a positive integer, got {project_id!r}")
        if not trace_id:
            logger.warning("No trace id provided, skipping trace aggregation")
            return TraceAggregationResult(tenant_id, project_id, trace_id, AggregationStatus.SKIPPED, attempts=0)

        attempt = 0
        last_conflict: Optional[TraceConflictError] = None
        while attempt < self.max_attempts:
            attempt += 1
            try:
                return await self._attempt(tenant_id, project_id, trace_id, attempt)
            except TraceConflictError as e:
                last_conflict = e
                logger.info("Conflict aggregating trace %s, attempt %d/%d: %s",
                            trace_id, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_seconds * attempt)

        logger.error("Failed to aggregate trace %s after %d attempts", trace_id, self.max_attempts)
        raise TraceRetriesExhaustedError(trace_id, self.max_attempts) from last_conflict

    async def _attempt(self, tenant_id: int, project_id: int, trace_id: str, attempt: int) -> TraceAggregationResult:
        state = AggregationState.IDLE

        def _advance(nxt: AggregationState) -> AggregationState:
            logger.debug("trace %s attempt %d: %s -> %s", trace_id, attempt, state.value, nxt.value)
            return nxt

        state = _advance(AggregationState.READ_LOG)
        current = await self.summaries.get(tenant_id, project_id, trace_id)
        observed_token = current.version_token if current else None
        logs = await self.log_reader.list_trace_logs(tenant_id, project_id, trace_id)
        if not logs:
            logger.warning("No logs found for trace %s", trace_id)
            _advance(AggregationState.DONE)
            return TraceAggregationResult(tenant_id, project_id, trace_id, AggregationStatus.EMPTY, attempts=attempt)

        state = _advance(AggregationState.COMPUTE_STATS)
        stats = calculate_trace_stats(logs)

        state = _advance(AggregationState.WRITE_SNAPSHOT)
        trace_path = await self.snapshots.write(tenant_id=tenant_id, project_id=project_id,
                                                trace_id=trace_id, logs=logs, stats=stats)

        state = _advance(AggregationState.UPSERT_SUMMARY)
        summary = await self.summaries.save(tenant_id=tenant_id, project_id=project_id, trace_id=trace_id,
                                            stats=stats, trace_path=trace_path,
                                            observed_token=observed_token)

        _advance(AggregationState.DONE)
        logger.info("Aggregated trace %s with %d logs (attempt %d)", trace_id, stats.total_logs, attempt)
        return TraceAggregationResult(tenant_id, project_id, trace_id, AggregationStatus.AGGREGATED,
                                      attempts=attempt, summary=summary)
