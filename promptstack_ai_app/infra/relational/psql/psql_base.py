# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/relational/psql/psql_base.py
"""
Synchronous Postgres access used by deployment tooling (DDL scripts).
Runtime code goes through the asyncpg pool in `pool.py`.
"""
import logging
from typing import Optional, Dict

import psycopg2

from promptstack_ai_app.config import get_settings

logger = logging.getLogger("PostgreSqlDbMgr")


class PostgreSqlDbMgr:
    def __init__(self, connection_params: Optional[Dict[str, str]] = None):
        connection_params = connection_params or {}
        settings = get_settings()
        self.host = connection_params.get("host") or settings.PGHOST
        self.port = connection_params.get("port") or settings.PGPORT
        self.database = connection_params.get("database") or settings.PGDATABASE

        self.username = connection_params.get("username") or settings.PGUSER
        self.password = connection_params.get("password") or settings.PGPASSWORD
        self.ssl = settings.PGSSL
        self.appname = connection_params.get("application_name") or "promptstack-psql"

        # GUCs applied at session start
        opts = [
            "-c TimeZone=UTC",
            "-c datestyle=ISO, YMD",
            f"-c application_name={self.appname}",
        ]
        self._options = " ".join(opts)

    def get_connection(self):
        return psycopg2.connect(
            dbname=self.database,
            user=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            sslmode=("require" if self.ssl else "disable"),
            options=self._options,
        )

    def execute_sql_string(self, sql: str):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(sql)
                conn.commit()
        logger.debug("Executed SQL: %s", sql)

    def execute_sql_file(self, file_path, substitutions=None):
        """
        Execute a SQL file, replacing `<KEY>` placeholders from `substitutions`.
        """
        with open(file_path, 'r') as file:
            sql = render_sql(file.read(), substitutions)
        self.execute_sql_string(sql)
        logger.info("Executed SQL file: %s", file_path)


def render_sql(sql: str, substitutions: Optional[Dict[str, str]] = None) -> str:
    for key, value in (substitutions or {}).items():
        if value is not None:
            sql = sql.replace(f"<{key}>", value)
    return sql
