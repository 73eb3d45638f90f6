# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/summary_store.py
"""
trace_summaries repository with compare-and-swap writes.

Every row carries `version_token`, a random token replaced on each write.
Writers remember the token they observed and only write if it is still the
current one:

  - no row observed  -> INSERT; a unique violation on
                        (tenant_id, project_id, trace_id) means another worker
                        created it first -> TraceConflictError
  - row observed     -> UPDATE ... WHERE key AND version_token = observed;
                        0 rows affected, or a re-read showing a token other
                        than ours -> TraceConflictError

The caller restarts the whole attempt on conflict; this module never falls back
from insert to update on its own.

Tokens are uuid4 hex, so two successive writes can never share a token (a
second-resolution timestamp could, which would let a stale write through).
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

import asyncpg

from promptstack_ai_app.infra.tracing.errors import TraceConflictError
from promptstack_ai_app.infra.tracing.models import TraceStats, TraceSummary

logger = logging.getLogger("Tracing.SummaryStore")

SUMMARY_COLUMNS = """
    id, tenant_id, project_id, trace_id, total_logs, success_count,
    error_count, total_duration_ms, stats, first_log_at, last_log_at,
    trace_path, version_token, revision, created_at, updated_at
"""


def new_version_token() -> str:
    return uuid.uuid4().hex


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 1"
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except (TypeError, ValueError):
        return 0


class TraceSummaryRepository:

    def __init__(self,
                 pool: asyncpg.Pool,
                 *,
                 schema: str,
                 token_factory: Callable[[], str] = new_version_token):
        self._pool = pool
        self.schema = schema
        self._new_token = token_factory

    async def get(self, tenant_id: int, project_id: int, trace_id: str) -> Optional[TraceSummary]:
        async with self._pool.acquire() as con:
            row = await con.fetchrow(f"""
                SELECT {SUMMARY_COLUMNS}
                FROM {self.schema}.trace_summaries
                WHERE tenant_id = $1 AND project_id = $2 AND trace_id = $3
            """, tenant_id, project_id, trace_id)
        return TraceSummary.from_row(row) if row else None

    async def save(self,
                   *,
                   tenant_id: int,
                   project_id: int,
                   trace_id: str,
                   stats: TraceStats,
                   trace_path: str,
                   observed_token: Optional[str]) -> TraceSummary:
        """
        Insert (observed_token is None) or conditionally update the summary.
        Raises TraceConflictError when another writer got there first.
        """
        if observed_token is None:
            return await self.insert(tenant_id=tenant_id, project_id=project_id, trace_id=trace_id,
                                     stats=stats, trace_path=trace_path)
        return await self.update_if_unchanged(tenant_id=tenant_id, project_id=project_id, trace_id=trace_id,
                                              stats=stats, trace_path=trace_path,
                                              observed_token=observed_token)

    async def insert(self,
                     *,
                     tenant_id: int,
                     project_id: int,
                     trace_id: str,
                     stats: TraceStats,
                     trace_path: str) -> TraceSummary:
        token = self._new_token()
        try:
            async with self._pool.acquire() as con:
                row = await con.fetchrow(f"""
                    INSERT INTO {self.schema}.trace_summaries (
                        tenant_id, project_id, trace_id,
                        total_logs, success_count, error_count, total_duration_ms,
                        stats, first_log_at, last_log_at, trace_path,
                        version_token, revision
                    ) VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11,$12,1)
                    RETURNING {SUMMARY_COLUMNS}
                """,
                tenant_id, project_id, trace_id,
                stats.total_logs, stats.success_count, stats.error_count, stats.total_duration_ms,
                stats.usage_json(), stats.first_log_at, stats.last_log_at, trace_path,
                token)
        except asyncpg.UniqueViolationError as e:
            logger.info("Trace %s was created by another worker", trace_id)
            raise TraceConflictError(f"Trace {trace_id} was created by another worker") from e
        return TraceSummary.from_row(row)

    async def update_if_unchanged(self,
                                  *,
                                  tenant_id: int,
                                  project_id: int,
                                  trace_id: str,
                                  stats: TraceStats,
                                  trace_path: str,
                                  observed_token: str) -> TraceSummary:
        token = self._new_token()
        async with self._pool.acquire() as con:
            status = await con.execute(f"""
                UPDATE {self.schema}.trace_summaries
                SET total_logs = $4,
                    success_count = $5,
                    error_count = $6,
                    total_duration_ms = $7,
                    stats = $8,
                    first_log_at = $9,
                    last_log_at = $10,
                    trace_path = $11,
                    version_token = $12,
                    revision = revision + 1,
                    updated_at = now()
                WHERE tenant_id = $1 AND project_id = $2 AND trace_id = $3
                  AND version_token = $13
            """,
            tenant_id, project_id, trace_id,
            stats.total_logs, stats.success_count, stats.error_count, stats.total_duration_ms,
            stats.usage_json(), stats.first_log_at, stats.last_log_at, trace_path,
            token, observed_token)

        if _affected_rows(status) == 0:
            logger.info("Trace %s was updated by another worker", trace_id)
            raise TraceConflictError(f"Trace {trace_id} was modified during processing")

        current = await self.get(tenant_id, project_id, trace_id)
        if current is None:
            raise TraceConflictError(f"Trace {trace_id} disappeared during processing")
        if current.version_token != token:
            logger.info("Trace %s was overwritten right after our update", trace_id)
            raise TraceConflictError(f"Trace {trace_id} update failed due to concurrent modification")
        return current
