# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# apps/orchestration/tasks/trace_actors.py
"""
Trace aggregation actors for Dramatiq.

Producers enqueue one message per written execution log; every message
re-aggregates the whole trace, so duplicates and reordering are harmless.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import dramatiq
from dotenv import load_dotenv, find_dotenv

from promptstack_ai_app.config import Settings, get_settings
from promptstack_ai_app.infra.orchestration.broker import setup_broker
from promptstack_ai_app.infra.relational.psql.pool import create_pg_pool
from promptstack_ai_app.infra.tracing.aggregator import TraceAggregationResult, TraceAggregator
from promptstack_ai_app.infra.tracing.log_reader import ExecutionLogReader
from promptstack_ai_app.storage.storage import IStorageBackend, create_storage_backend

# Load environment
load_dotenv(find_dotenv())

# Logging setup
import promptstack_ai_app.apps.utils.logging_config as logging_config
logging_config.configure_logging()

logger = logging.getLogger("Trace.Actors")

TRACES_QUEUE = "promptstack_traces"

# actors bind to the global broker at declaration time
setup_broker(get_settings().broker_url)


def create_trace_storage(settings: Settings) -> IStorageBackend:
    """Snapshot storage from STORAGE_PATH; AWS_REGION applies to s3:// URIs only."""
    if settings.STORAGE_PATH.startswith("s3://"):
        return create_storage_backend(settings.STORAGE_PATH, region_name=settings.AWS_REGION)
    return create_storage_backend(settings.STORAGE_PATH)


_resources: Dict[str, Any] = {}
_resources_lock: Optional[asyncio.Lock] = None


async def _get_resources() -> Dict[str, Any]:
    """Pool, storage and aggregator, created once per worker process."""
    global _resources_lock
    if _resources:
        return _resources
    if _resources_lock is None:
        _resources_lock = asyncio.Lock()
    async with _resources_lock:
        if not _resources:
            settings = get_settings()
            pool = await create_pg_pool(settings)
            storage = create_trace_storage(settings)
            _resources["log_reader"] = ExecutionLogReader(pool, schema=settings.TRACES_SCHEMA)
            _resources["aggregator"] = TraceAggregator.from_settings(pool, storage, settings)
            _resources["pool"] = pool
    return _resources


# ==============================================================================
#                                 HANDLERS
# ==============================================================================

async def run_trace_aggregation(aggregator: TraceAggregator,
                                tenant_id: int,
                                project_id: int,
                                trace_id: str) -> Dict[str, Any]:
    result: TraceAggregationResult = await aggregator.aggregate(tenant_id, project_id, trace_id)
    return {
        "tenant_id": result.tenant_id,
        "project_id": result.project_id,
        "trace_id": result.trace_id,
        "status": result.status.value,
        "attempts": result.attempts,
    }


async def handle_execution_log(aggregator: TraceAggregator,
                               log_reader: ExecutionLogReader,
                               tenant_id: int,
                               project_id: int,
                               log_id: int) -> Optional[Dict[str, Any]]:
    """Aggregate the trace an execution log belongs to, if it has one."""
    log = await log_reader.get_log(tenant_id, project_id, log_id)
    if log is None:
        logger.warning("Execution log %s not found (tenant=%s, project=%s)", log_id, tenant_id, project_id)
        return None
    if not log.trace_id:
        logger.debug("Execution log %s has no trace id, skipping", log_id)
        return None
    return await run_trace_aggregation(aggregator, tenant_id, project_id, log.trace_id)


# ==============================================================================
#                                  ACTORS
# ==============================================================================

@dramatiq.actor(
    actor_name="aggregate_trace",
    max_retries=3,
    min_backoff=1000,
    max_backoff=60000,
    time_limit=300000,
    queue_name=TRACES_QUEUE,
)
async def aggregate_trace(tenant_id: int, project_id: int, trace_id: str):
    res = await _get_resources()
    await run_trace_aggregation(res["aggregator"], tenant_id, project_id, trace_id)


@dramatiq.actor(
    actor_name="process_execution_log",
    max_retries=3,
    min_backoff=1000,
    max_backoff=60000,
    time_limit=300000,
    queue_name=TRACES_QUEUE,
)
async def process_execution_log(tenant_id: int, project_id: int, log_id: int):
    res = await _get_resources()
    await handle_execution_log(res["aggregator"], res["log_reader"], tenant_id, project_id, log_id)
