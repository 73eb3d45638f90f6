# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/log_reader.py
from __future__ import annotations

import logging
from typing import List, Optional

import asyncpg

from promptstack_ai_app.infra.tracing.models import ExecutionLogRecord

logger = logging.getLogger("Tracing.LogReader")

LOG_COLUMNS = """
    id, tenant_id, project_id, prompt_id, version, log_path, is_success,
    error_message, duration_ms, provider, model, usage, raw_trace_id,
    trace_id, created_at
"""


class ExecutionLogReader:
    """Read-only access to execution_logs."""

    def __init__(self, pool: asyncpg.Pool, *, schema: str):
        self._pool = pool
        self.schema = schema

    async def list_trace_logs(self, tenant_id: int, project_id: int, trace_id: str) -> List[ExecutionLogRecord]:
        async with self._pool.acquire() as con:
            rows = await con.fetch(f"""
                SELECT {LOG_COLUMNS}
                FROM {self.schema}.execution_logs
                WHERE tenant_id = $1 AND project_id = $2 AND trace_id = $3
                ORDER BY created_at ASC, id ASC
            """, tenant_id, project_id, trace_id)
        return [ExecutionLogRecord.from_row(r) for r in rows]

    async def get_log(self, tenant_id: int, project_id: int, log_id: int) -> Optional[ExecutionLogRecord]:
        async with self._pool.acquire() as con:
            row = await con.fetchrow(f"""
                SELECT {LOG_COLUMNS}
                FROM {self.schema}.execution_logs
                WHERE id = $1 AND tenant_id = $2 AND project_id = $3
            """, log_id, tenant_id, project_id)
        return ExecutionLogRecord.from_row(row) if row else None
