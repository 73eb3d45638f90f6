# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/relational/psql/pool.py
import json

import asyncpg

from promptstack_ai_app.config import Settings, get_settings


async def _init_conn(conn: asyncpg.Connection):
    # Encode/decode json & jsonb as Python dicts automatically
    await conn.set_type_codec('json',  encoder=json.dumps, decoder=json.loads, schema='pg_catalog')
    await conn.set_type_codec('jsonb', encoder=json.dumps, decoder=json.loads, schema='pg_catalog')


async def create_pg_pool(settings: Settings | None = None, **kwargs) -> asyncpg.Pool:
    settings = settings or get_settings()
    return await asyncpg.create_pool(
        host=settings.PGHOST,
        port=settings.PGPORT,
        user=settings.PGUSER,
        password=settings.PGPASSWORD,
        database=settings.PGDATABASE,
        ssl=settings.PGSSL,
        init=_init_conn,
        **kwargs,
    )
