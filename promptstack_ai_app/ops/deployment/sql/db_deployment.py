# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# ops/deployment/sql/db_deployment.py

import argparse
import logging
import os
import re
import sys

from promptstack_ai_app.config import get_settings

logger = logging.getLogger("DbDeployment")

TRACES_COMPONENT = "traces"

SUPPORTED_COMPONENTS = [
    TRACES_COMPONENT,
]

sql_location = os.path.dirname(__file__)


def safe_schema_name(name: str) -> str:
    """
    Turn an arbitrary string into a safe PostgreSQL schema name:
      - lowercase
      - only letters, digits, and underscores
      - starts with a letter or underscore
      - maximum length of 63 characters
      - fallback to '_schema' if name is empty after sanitization
    """
    sanitized = re.sub(r'[^A-Za-z0-9_]', '_', name)
    sanitized = re.sub(r'_+', '_', sanitized)
    sanitized = sanitized.strip('_').lower()
    if not re.match(r'^[a-z_]', sanitized):
        sanitized = '_' + sanitized
    return sanitized[:63] or '_schema'


def script_path(op: str, component: str) -> str:
    prefix = "deploy" if op == "deploy" else "drop"
    return os.path.join(sql_location, component, f"{prefix}-{component}.sql")


def run(op: str, component: str, schema: str | None = None, mgr=None):
    """
    Execute SQL deployment/deletion for a given component.

    Args:
        op: "deploy" or "delete"
        component: Component name (e.g., "traces")
        schema: Target schema; defaults to TRACES_SCHEMA from settings
        mgr: Optional PostgreSqlDbMgr (built from settings when omitted)
    """
    if op not in ("deploy", "delete"):
        raise ValueError(f"Unsupported operation: {op}")
    if component not in SUPPORTED_COMPONENTS:
        raise ValueError(f"Unsupported component: {component}")

    if mgr is None:
        from promptstack_ai_app.infra.relational.psql.psql_base import PostgreSqlDbMgr
        mgr = PostgreSqlDbMgr()

    schema_name = safe_schema_name(schema or get_settings().TRACES_SCHEMA)
    substitutions = {"SCHEMA": schema_name}

    path = script_path(op, component)
    try:
        mgr.execute_sql_file(path, substitutions=substitutions)
    except Exception:
        logger.exception("Error running %s for component %s on schema %s", op, component, schema_name)
        raise
    logger.info("%s of %s completed: %s", op.capitalize(), component, schema_name)
    return schema_name


def main(argv=None):
    parser = argparse.ArgumentParser(description="Database tool for trace schema deployments.")
    parser.add_argument(
        "--component", action="store", choices=SUPPORTED_COMPONENTS, default=TRACES_COMPONENT,
        help=f"Name of the component to deploy {SUPPORTED_COMPONENTS}."
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--deploy", action="store_true", help="Deploy the database schema and indices."
    )
    group.add_argument(
        "--delete", action="store_true", help="Delete the database tables."
    )
    parser.add_argument(
        "--schema", help="Schema name (defaults to TRACES_SCHEMA)"
    )
    args = parser.parse_args(argv)

    op = "deploy" if args.deploy else "delete"
    run(op, args.component, args.schema)
    return 0


if __name__ == "__main__":
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv())

    import promptstack_ai_app.apps.utils.logging_config as logging_config
    logging_config.configure_logging()

    sys.exit(main())
