# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/query.py
"""
Read side of trace summaries: paginated listing per project, trace details
with their logs, and snapshot retrieval.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import asyncpg

from promptstack_ai_app.infra.tracing.log_reader import ExecutionLogReader
from promptstack_ai_app.infra.tracing.models import TraceSummary, parse_stats_text
from promptstack_ai_app.infra.tracing.snapshot import read_trace_snapshot
from promptstack_ai_app.infra.tracing.summary_store import TraceSummaryRepository, SUMMARY_COLUMNS
from promptstack_ai_app.infra.tracing.traceparent import parse_traceparent
from promptstack_ai_app.storage.storage import IStorageBackend

logger = logging.getLogger("Tracing.Query")

SORTABLE_FIELDS = ("created_at", "updated_at", "total_logs", "total_duration_ms", "first_log_at", "last_log_at")
MAX_PAGE_SIZE = 100


def _trace_entry(s: TraceSummary, *, with_path: bool = True) -> Dict[str, Any]:
    out = {
        "id": s.id,
        "trace_id": s.trace_id,
        "project_id": s.project_id,
        "total_logs": s.total_logs,
        "success_count": s.success_count,
        "error_count": s.error_count,
        "total_duration_ms": s.total_duration_ms,
        "first_log_at": s.first_log_at,
        "last_log_at": s.last_log_at,
        "created_at": s.created_at,
        "updated_at": s.updated_at,
    }
    if with_path:
        out["trace_path"] = s.trace_path
    return out


class TraceQueryService:

    def __init__(self,
                 pool: asyncpg.Pool,
                 *,
                 schema: str,
                 storage_backend: Optional[IStorageBackend] = None):
        self._pool = pool
        self.schema = schema
        self.fs = storage_backend
        self.summaries = TraceSummaryRepository(pool, schema=schema)
        self.logs = ExecutionLogReader(pool, schema=schema)

    async def list_project_traces(self,
                                  tenant_id: int,
                                  project_id: int,
                                  page: int = 1,
                                  page_size: int = 10,
                                  sort: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        sort: {"field": one of SORTABLE_FIELDS, "direction": "asc" | "desc"};
        defaults to newest first by created_at.
        """
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        field, direction = "created_at", "DESC"
        if sort:
            field = sort.get("field") or field
            if field not in SORTABLE_FIELDS:
                raise ValueError(f"Unsupported sort field: {field}")
            direction = "ASC" if (sort.get("direction") or "desc").lower() == "asc" else "DESC"

        offset = (page - 1) * page_size
        async with self._pool.acquire() as con:
            total = await con.fetchval(f"""
                SELECT COUNT(*) FROM {self.schema}.trace_summaries
                WHERE tenant_id = $1 AND project_id = $2
            """, tenant_id, project_id)
            rows = await con.fetch(f"""
                SELECT {SUMMARY_COLUMNS}
                FROM {self.schema}.trace_summaries
                WHERE tenant_id = $1 AND project_id = $2
                ORDER BY {field} {direction} NULLS LAST, id {direction}
                LIMIT $3 OFFSET $4
            """, tenant_id, project_id, page_size, offset)

        total = int(total or 0)
        return {
            "traces": [_trace_entry(TraceSummary.from_row(r)) for r in rows],
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size),
        }

    async def get_trace_details(self, tenant_id: int, project_id: int, trace_id: str) -> Dict[str, Any]:
        summary = await self.summaries.get(tenant_id, project_id, trace_id)
        if summary is None:
            return {"trace": None, "logs": []}

        trace = _trace_entry(summary, with_path=False)
        trace["stats"] = parse_stats_text(summary.stats, trace_id=trace_id)

        logs: List[Dict[str, Any]] = []
        for log in await self.logs.list_trace_logs(tenant_id, project_id, trace_id):
            span = parse_traceparent(log.raw_trace_id)
            logs.append({
                "id": log.id,
                "tenant_id": log.tenant_id,
                "project_id": log.project_id,
                "prompt_id": log.prompt_id,
                "version": log.version,
                "is_success": log.is_success,
                "error_message": log.error_message,
                "duration_ms": log.duration_ms,
                "created_at": log.created_at,
                "trace_id": log.trace_id,
                "raw_trace_id": log.raw_trace_id,
                "trace": asdict(span) if span else None,
            })
        return {"trace": trace, "logs": logs}

    async def read_snapshot(self, trace_path: str) -> Optional[Dict[str, Any]]:
        if self.fs is None:
            raise RuntimeError("No storage backend configured for snapshot reads")
        return await read_trace_snapshot(self.fs, trace_path)
