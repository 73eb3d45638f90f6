# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# promptstack_ai_app/config.py
from __future__ import annotations
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Postgres
    PGHOST: str = Field(default="localhost", alias="POSTGRES_HOST")
    PGPORT: int = Field(default=5432, alias="POSTGRES_PORT")
    PGDATABASE: str = Field(default="postgres", alias="POSTGRES_DATABASE")
    PGUSER: str = Field(default="postgres", alias="POSTGRES_USER")
    PGPASSWORD: str = Field(default="postgres", alias="POSTGRES_PASSWORD")
    PGSSL: bool = Field(default=False, alias="POSTGRES_SSL")

    # schema holding execution_logs / trace_summaries
    TRACES_SCHEMA: str = "promptstack"

    # Blob storage (file:///..., s3://bucket/prefix)
    STORAGE_PATH: str = "file:///tmp/promptstack-storage"
    AWS_REGION: str | None = None

    # Queue
    REDIS_URL: str = "redis://localhost:6379/0"
    DRAMATIQ_BROKER_URL: str | None = None

    # Trace aggregation
    TRACE_AGGREGATION_MAX_ATTEMPTS: int = 3
    TRACE_AGGREGATION_BACKOFF_MS: int = 100

    @property
    def broker_url(self) -> str:
        return self.DRAMATIQ_BROKER_URL or self.REDIS_URL

@lru_cache()
def get_settings() -> Settings:
    return Settings()
