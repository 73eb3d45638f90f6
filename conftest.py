# SPDX-License-Identifier: MIT

import os

# workers under test never talk to Redis
os.environ.setdefault("DRAMATIQ_BROKER_URL", "stub://")
