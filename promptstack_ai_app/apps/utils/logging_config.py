# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# logging_config.py
import logging
import os


def _to_level(name: str, default: int) -> int:
    level = getattr(logging, (name or "").upper(), None)
    return level if isinstance(level, int) else default

def configure_logging():
    # --- Root config ---
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT",
                           "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    level = _to_level(log_level_name, logging.INFO)

    # Make root the single source of truth
    logging.basicConfig(level=level, format=log_format, force=True)

    # route warnings.warn(...) into logging
    logging.captureWarnings(True)

    # --- Normalize noisy / framework loggers ---
    desired_levels = {
        # dramatiq worker chatter (consumer threads, middleware)
        "dramatiq": os.getenv("DRAMATIQ_LEVEL", log_level_name),
        "dramatiq.worker": os.getenv("DRAMATIQ_WORKER_LEVEL", "WARNING"),
        "dramatiq.broker": os.getenv("DRAMATIQ_BROKER_LEVEL", "WARNING"),

        "asyncpg": os.getenv("ASYNCPG_LEVEL", "WARNING"),
        "asyncio": os.getenv("ASYNCIO_LEVEL", "WARNING"),

        # quiet AWS creds noise
        "aiobotocore.credentials": os.getenv("AIOBOTOCORE_CREDENTIALS_LEVEL", "WARNING"),
        "botocore": os.getenv("BOTOCORE_LEVEL", "WARNING"),
        "botocore.credentials": os.getenv("BOTOCORE_CREDENTIALS_LEVEL", "WARNING"),
    }

    for name, lvl_name in desired_levels.items():
        lg = logging.getLogger(name)
        # Remove any handlers these libs may have attached (causes duplicates)
        for h in list(lg.handlers):
            lg.removeHandler(h)
        lg.propagate = True                 # bubble up to root only
        lg.setLevel(_to_level(lvl_name, level))
