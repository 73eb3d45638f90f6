# SPDX-License-Identifier: MIT

import asyncio
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import asyncpg

from promptstack_ai_app.infra.tracing.aggregator import TraceAggregator
from promptstack_ai_app.infra.tracing.log_reader import ExecutionLogReader
from promptstack_ai_app.infra.tracing.snapshot import TraceSnapshotWriter
from promptstack_ai_app.infra.tracing.summary_store import TraceSummaryRepository

SCHEMA = "promptstack"
BASE_TIME = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
SNAPSHOT_TIME = datetime(2025, 1, 15, 12, 30, 0, tzinfo=timezone.utc)


def log_row(log_id, *, trace_id="trace-1", tenant_id=1, project_id=1, is_success=True,
            duration_ms=100, provider=None, model=None, usage=None, error_message=None,
            raw_trace_id=None, created_at=None, prompt_id=7, version=1):
    return {
        "id": log_id,
        "tenant_id": tenant_id,
        "project_id": project_id,
        "prompt_id": prompt_id,
        "version": version,
        "log_path": f"logs/{tenant_id}/{project_id}/{log_id}.json",
        "is_success": is_success,
        "error_message": error_message,
        "duration_ms": duration_ms,
        "provider": provider,
        "model": model,
        "usage": usage,
        "raw_trace_id": raw_trace_id,
        "trace_id": trace_id,
        "created_at": created_at or BASE_TIME + timedelta(seconds=log_id),
    }


class FakeTraceDb:
    """
    In-memory stand-in for the execution_logs and trace_summaries tables.
    Dispatches on the SQL text the repositories send.

    on_insert / on_update are optional async hooks called right before a
    summary INSERT / UPDATE is applied, to play a concurrent writer.
    """

    def __init__(self):
        self.logs = []
        self.summaries = {}
        self._next_summary_id = 1
        self.on_insert = None
        self.on_update = None
        self.insert_calls = 0
        self.update_calls = 0

    # ---- direct manipulation ----

    def add_log(self, log_id, **kwargs):
        row = log_row(log_id, **kwargs)
        self.logs.append(row)
        return row

    def summary(self, tenant_id=1, project_id=1, trace_id="trace-1"):
        return self.summaries.get((tenant_id, project_id, trace_id))

    def put_summary(self, tenant_id, project_id, trace_id, *, total_logs=0, success_count=0,
                    error_count=0, total_duration_ms=0, stats=None, first_log_at=None,
                    last_log_at=None, trace_path=None, version_token=None):
        """Write a summary row as some other worker would; returns the new token."""
        key = (tenant_id, project_id, trace_id)
        now = datetime.now(timezone.utc)
        token = version_token or uuid.uuid4().hex
        existing = self.summaries.get(key)
        if existing is None:
            existing = {
                "id": self._next_summary_id,
                "tenant_id": tenant_id,
                "project_id": project_id,
                "trace_id": trace_id,
                "revision": 0,
                "created_at": now,
            }
            self._next_summary_id += 1
            self.summaries[key] = existing
        existing.update({
            "total_logs": total_logs,
            "success_count": success_count,
            "error_count": error_count,
            "total_duration_ms": total_duration_ms,
            "stats": stats,
            "first_log_at": first_log_at,
            "last_log_at": last_log_at,
            "trace_path": trace_path,
            "version_token": token,
            "revision": existing["revision"] + 1,
            "updated_at": now,
        })
        return token

    # ---- SQL dispatch ----

    async def fetch(self, sql, *args):
        await asyncio.sleep(0)
        if "execution_logs" in sql:
            tenant_id, project_id, trace_id = args
            rows = [r for r in self.logs
                    if r["tenant_id"] == tenant_id and r["project_id"] == project_id and r["trace_id"] == trace_id]
            return [dict(r) for r in sorted(rows, key=lambda r: (r["created_at"], r["id"]))]
        if "trace_summaries" in sql:
            tenant_id, project_id, limit, offset = args
            m = re.search(r"ORDER BY (\w+) (ASC|DESC)", sql)
            field, direction = m.group(1), m.group(2)
            rows = [r for r in self.summaries.values()
                    if r["tenant_id"] == tenant_id and r["project_id"] == project_id]
            rows.sort(key=lambda r: (r[field], r["id"]), reverse=(direction == "DESC"))
            return [dict(r) for r in rows[offset:offset + limit]]
        raise AssertionError(f"unexpected fetch: {sql}")

    async def fetchrow(self, sql, *args):
        await asyncio.sleep(0)
        if "INSERT INTO" in sql and "trace_summaries" in sql:
            return await self._insert_summary(*args)
        if "trace_summaries" in sql:
            tenant_id, project_id, trace_id = args
            row = self.summaries.get((tenant_id, project_id, trace_id))
            return dict(row) if row else None
        if "execution_logs" in sql:
            log_id, tenant_id, project_id = args
            for r in self.logs:
                if r["id"] == log_id and r["tenant_id"] == tenant_id and r["project_id"] == project_id:
                    return dict(r)
            return None
        raise AssertionError(f"unexpected fetchrow: {sql}")

    async def fetchval(self, sql, *args):
        await asyncio.sleep(0)
        if "COUNT(*)" in sql and "trace_summaries" in sql:
            tenant_id, project_id = args
            return sum(1 for r in self.summaries.values()
                       if r["tenant_id"] == tenant_id and r["project_id"] == project_id)
        raise AssertionError(f"unexpected fetchval: {sql}")

    async def execute(self, sql, *args):
        await asyncio.sleep(0)
        if sql.lstrip().startswith("UPDATE") and "trace_summaries" in sql:
            return await self._update_summary(*args)
        raise AssertionError(f"unexpected execute: {sql}")

    async def _insert_summary(self, tenant_id, project_id, trace_id, total_logs, success_count,
                              error_count, total_duration_ms, stats, first_log_at, last_log_at,
                              trace_path, token):
        self.insert_calls += 1
        if self.on_insert is not None:
            await self.on_insert(self)
        key = (tenant_id, project_id, trace_id)
        if key in self.summaries:
            raise asyncpg.UniqueViolationError(
                'duplicate key value violates unique constraint "trace_summaries_tenant_project_trace_key"')
        self.put_summary(tenant_id, project_id, trace_id,
                         total_logs=total_logs, success_count=success_count, error_count=error_count,
                         total_duration_ms=total_duration_ms, stats=stats, first_log_at=first_log_at,
                         last_log_at=last_log_at, trace_path=trace_path, version_token=token)
        return dict(self.summaries[key])

    async def _update_summary(self, tenant_id, project_id, trace_id, total_logs, success_count,
                              error_count, total_duration_ms, stats, first_log_at, last_log_at,
                              trace_path, token, observed_token):
        self.update_calls += 1
        if self.on_update is not None:
            await self.on_update(self)
        row = self.summaries.get((tenant_id, project_id, trace_id))
        if row is None or row["version_token"] != observed_token:
            return "UPDATE 0"
        self.put_summary(tenant_id, project_id, trace_id,
                         total_logs=total_logs, success_count=success_count, error_count=error_count,
                         total_duration_ms=total_duration_ms, stats=stats, first_log_at=first_log_at,
                         last_log_at=last_log_at, trace_path=trace_path, version_token=token)
        return "UPDATE 1"


class FakePool:
    def __init__(self, db: FakeTraceDb):
        self.db = db

    @asynccontextmanager
    async def acquire(self):
        yield self.db


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FailingStorage:
    """Storage backend stub whose writes always fail."""

    def __init__(self, exc=None):
        self.exc = exc or OSError("disk full")
        self.attempted = []

    async def write_bytes_a(self, path, data, meta=None):
        self.attempted.append(path)
        raise self.exc


def make_aggregator(db, storage, *, max_attempts=3, backoff_seconds=0.1, sleep=None):
    pool = FakePool(db)
    return TraceAggregator(
        log_reader=ExecutionLogReader(pool, schema=SCHEMA),
        summaries=TraceSummaryRepository(pool, schema=SCHEMA),
        snapshots=TraceSnapshotWriter(storage, clock=lambda: SNAPSHOT_TIME),
        max_attempts=max_attempts,
        backoff_seconds=backoff_seconds,
        sleep=sleep or SleepRecorder(),
    )
