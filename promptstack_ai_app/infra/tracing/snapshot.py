# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/snapshot.py
"""
Trace snapshots in blob storage:

    traces/<tenant>/<YYYY-MM-DD>/<project>/<trace>/trace.json

The date is the UTC day of the write. Each aggregation overwrites the whole
document; nothing is versioned and concurrent writers are not coordinated
(last write wins at the blob layer).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence
from urllib.parse import quote

from promptstack_ai_app.apps.utils.sql_dt_utils import now_utc, iso_utc_text_ms, utc_day_label
from promptstack_ai_app.infra.tracing.errors import TraceSnapshotWriteError
from promptstack_ai_app.infra.tracing.models import ExecutionLogRecord, TraceStats
from promptstack_ai_app.storage.storage import IStorageBackend

logger = logging.getLogger("Tracing.Snapshot")

TRACE_SNAPSHOT_FILENAME = "trace.json"


def trace_snapshot_path(tenant_id: int, project_id: int, trace_id: str, at: datetime, *, base: str = "traces") -> str:
    return f"{base}/{tenant_id}/{utc_day_label(at)}/{project_id}/{quote(trace_id, safe='')}"


def _log_ref(log: ExecutionLogRecord) -> Dict[str, Any]:
    return {
        "id": log.id,
        "promptId": log.prompt_id,
        "version": log.version,
        "isSuccess": log.is_success,
        "errorMessage": log.error_message,
        "durationMs": log.duration_ms,
        "logPath": log.log_path,
        "createdAt": iso_utc_text_ms(log.created_at),
    }


class TraceSnapshotWriter:

    def __init__(self,
                 storage_backend: IStorageBackend,
                 *,
                 base: str = "traces",
                 clock: Callable[[], datetime] = now_utc):
        self.fs = storage_backend
        self.base = base.strip("/")
        self._clock = clock

    async def write(self,
                    *,
                    tenant_id: int,
                    project_id: int,
                    trace_id: str,
                    logs: Sequence[ExecutionLogRecord],
                    stats: TraceStats) -> str:
        """
        Write the snapshot and return its directory path (without filename).
        Raises TraceSnapshotWriteError if the blob could not be stored.
        """
        now = self._clock()
        path = trace_snapshot_path(tenant_id, project_id, trace_id, now, base=self.base)
        doc = {
            "traceId": trace_id,
            "tenantId": tenant_id,
            "projectId": project_id,
            "stats": stats.to_dict(),
            "logs": [_log_ref(log) for log in logs],
            "extractedAt": iso_utc_text_ms(now),
        }
        data = json.dumps(doc, indent=2, ensure_ascii=False).encode("utf-8")
        key = f"{path}/{TRACE_SNAPSHOT_FILENAME}"
        try:
            await self.fs.write_bytes_a(key, data, {"ContentType": "application/json"})
        except Exception as e:
            logger.error("Snapshot write failed for trace %s at %s: %s", trace_id, key, e)
            raise TraceSnapshotWriteError(key, str(e)) from e

        logger.debug("Wrote snapshot for trace %s (%d logs) to %s", trace_id, len(logs), key)
        return path


async def read_trace_snapshot(storage_backend: IStorageBackend, trace_path: str) -> Optional[Dict[str, Any]]:
    key = f"{trace_path.rstrip('/')}/{TRACE_SNAPSHOT_FILENAME}"
    try:
        raw = await storage_backend.read_bytes_a(key)
    except FileNotFoundError:
        return None
    return json.loads(raw)
