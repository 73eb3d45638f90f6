# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/orchestration/broker.py
"""
Dramatiq broker setup for the trace workers.

`redis://...` gives a RedisBroker, `stub://` an in-process StubBroker
(local runs and tests).
"""
import logging
from typing import Optional

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import AgeLimit, AsyncIO, Retries, TimeLimit

from promptstack_ai_app.config import get_settings

logger = logging.getLogger("Orch.Dramatiq")

STUB_BROKER_URL = "stub://"


def setup_broker(url: Optional[str] = None) -> dramatiq.Broker:
    """Create the broker, attach middleware once and make it the global broker."""
    url = url or get_settings().broker_url
    if url.startswith(STUB_BROKER_URL):
        broker = StubBroker()
    else:
        broker = RedisBroker(url=url)

    existing = {type(mw).__name__ for mw in broker.middleware}
    if "AgeLimit" not in existing:
        broker.add_middleware(AgeLimit())
    if "TimeLimit" not in existing:
        broker.add_middleware(TimeLimit())
    if "Retries" not in existing:
        broker.add_middleware(Retries(max_retries=3))
    if "AsyncIO" not in existing:
        broker.add_middleware(AsyncIO())

    dramatiq.set_broker(broker)
    logger.info("Dramatiq broker configured: %s", type(broker).__name__)
    return broker
