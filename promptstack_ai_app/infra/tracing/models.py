# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/models.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from promptstack_ai_app.apps.utils.sql_dt_utils import iso_utc_text_ms

logger = logging.getLogger("Tracing.Models")


def _rec_get(r, key, default=None):
    try:
        return r[key]
    except (KeyError, IndexError):
        return default


@dataclass(frozen=True)
class ExecutionLogRecord:
    """One row of execution_logs. Owned by the execution pipeline; never mutated here."""
    id: int
    tenant_id: int
    project_id: int
    prompt_id: int
    version: int
    is_success: bool
    created_at: datetime
    trace_id: Optional[str] = None
    duration_ms: Optional[int] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[str] = None
    error_message: Optional[str] = None
    log_path: Optional[str] = None
    raw_trace_id: Optional[str] = None

    @classmethod
    def from_row(cls, r) -> "ExecutionLogRecord":
        return cls(
            id=int(r["id"]),
            tenant_id=int(r["tenant_id"]),
            project_id=int(r["project_id"]),
            prompt_id=int(r["prompt_id"]),
            version=int(r["version"]),
            is_success=bool(r["is_success"]),
            created_at=r["created_at"],
            trace_id=_rec_get(r, "trace_id"),
            duration_ms=_rec_get(r, "duration_ms"),
            provider=_rec_get(r, "provider"),
            model=_rec_get(r, "model"),
            usage=_rec_get(r, "usage"),
            error_message=_rec_get(r, "error_message"),
            log_path=_rec_get(r, "log_path"),
            raw_trace_id=_rec_get(r, "raw_trace_id"),
        )


@dataclass(frozen=True)
class TraceStats:
    total_logs: int
    success_count: int
    error_count: int
    total_duration_ms: int
    first_log_at: datetime
    last_log_at: datetime
    usage_rollup: Optional[Dict[str, Any]] = None

    def usage_json(self) -> Optional[str]:
        """Canonical serialization stored in trace_summaries.stats."""
        if self.usage_rollup is None:
            return None
        return json.dumps(self.usage_rollup, sort_keys=True, separators=(",", ":"))

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "totalLogs": self.total_logs,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "totalDurationMs": self.total_duration_ms,
            "firstLogAt": iso_utc_text_ms(self.first_log_at),
            "lastLogAt": iso_utc_text_ms(self.last_log_at),
        }
        if self.usage_rollup is not None:
            out["usage"] = self.usage_rollup
        return out


@dataclass(frozen=True)
class TraceSummary:
    """One row of trace_summaries; unique per (tenant_id, project_id, trace_id)."""
    id: int
    tenant_id: int
    project_id: int
    trace_id: str
    total_logs: int
    success_count: int
    error_count: int
    total_duration_ms: int
    stats: Optional[str]
    first_log_at: Optional[datetime]
    last_log_at: Optional[datetime]
    trace_path: Optional[str]
    # concurrency token only, carries no business meaning
    version_token: str
    revision: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, r) -> "TraceSummary":
        return cls(
            id=int(r["id"]),
            tenant_id=int(r["tenant_id"]),
            project_id=int(r["project_id"]),
            trace_id=r["trace_id"],
            total_logs=int(r["total_logs"]),
            success_count=int(r["success_count"]),
            error_count=int(r["error_count"]),
            total_duration_ms=int(r["total_duration_ms"]),
            stats=_rec_get(r, "stats"),
            first_log_at=_rec_get(r, "first_log_at"),
            last_log_at=_rec_get(r, "last_log_at"),
            trace_path=_rec_get(r, "trace_path"),
            version_token=r["version_token"],
            revision=int(r["revision"]),
            created_at=r["created_at"],
            updated_at=r["updated_at"],
        )

    @property
    def usage_rollup(self) -> Optional[Dict[str, Any]]:
        return parse_stats_text(self.stats, trace_id=self.trace_id)


def parse_stats_text(raw: Optional[str], *, trace_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Unparseable stats for trace %s", trace_id)
        return None
    return parsed if isinstance(parsed, dict) else None
