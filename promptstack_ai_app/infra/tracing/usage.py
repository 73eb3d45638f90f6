# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/usage.py
"""
Provider-specific token accumulators.

Each provider reports usage in its own shape, so the rollup keeps a registry
`provider name -> accumulator`. Adding a provider means registering a new
accumulator; the aggregation loop does not change.

Providers without an accumulator still get counted, they just contribute no
token fields.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger("Tracing.Usage")


def _int(v: Any) -> int:
    if isinstance(v, bool) or v is None:
        return 0
    try:
        return int(v)
    except (TypeError, ValueError):
        return 0


def _nested(payload: Dict[str, Any], parent: str, key: str) -> Any:
    details = payload.get(parent)
    if isinstance(details, dict):
        return details.get(key)
    return None


class UsageAccumulator:
    """Sums one provider's token categories across log rows."""

    fields: Tuple[str, ...] = ()

    def seed(self) -> Dict[str, int]:
        return {f: 0 for f in self.fields}

    def extract(self, payload: Dict[str, Any]) -> Dict[str, int]:
        return {f: _int(payload.get(f)) for f in self.fields}

    def accumulate(self, tokens: Dict[str, int], payload: Dict[str, Any]) -> None:
        for k, v in self.extract(payload).items():
            tokens[k] = int(tokens.get(k, 0)) + v


class OpenAIUsageAccumulator(UsageAccumulator):
    fields = ("input_tokens", "cached_tokens", "output_tokens", "reasoning_tokens", "total_tokens")

    def extract(self, payload: Dict[str, Any]) -> Dict[str, int]:
        out = super().extract(payload)
        # raw Responses API shape keeps these under *_details
        if payload.get("cached_tokens") is None:
            out["cached_tokens"] = _int(_nested(payload, "input_tokens_details", "cached_tokens"))
        if payload.get("reasoning_tokens") is None:
            out["reasoning_tokens"] = _int(_nested(payload, "output_tokens_details", "reasoning_tokens"))
        return out


class GoogleUsageAccumulator(UsageAccumulator):
    fields = ("prompt_tokens", "cached_tokens", "response_tokens", "thoughts_tokens",
              "tool_use_prompt_tokens", "total_tokens")


_ACCUMULATORS: Dict[str, UsageAccumulator] = {
    "openai": OpenAIUsageAccumulator(),
    "google": GoogleUsageAccumulator(),
}


def register_usage_accumulator(provider: str, accumulator: UsageAccumulator) -> None:
    _ACCUMULATORS[provider.lower()] = accumulator


def get_usage_accumulator(provider: Optional[str]) -> Optional[UsageAccumulator]:
    if not provider:
        return None
    return _ACCUMULATORS.get(provider.lower())


def parse_usage_payload(raw: Optional[str], *, log_id: Any = None) -> Optional[Dict[str, Any]]:
    """
    Decode a log row's usage column. Malformed payloads are logged and
    yield None; they never abort aggregation.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, dict):
        return raw
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Skipping malformed usage payload on log %s", log_id)
        return None
    if not isinstance(payload, dict):
        logger.warning("Skipping non-object usage payload on log %s", log_id)
        return None
    return payload
