# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/tracing/traceparent.py
"""
W3C Trace Context `traceparent` header parsing.

    version-traceId-parentSpanId-traceFlags
    00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_HEX = re.compile(r"^[0-9a-fA-F]+$")


@dataclass(frozen=True)
class TraceParent:
    version: str
    trace_id: str
    parent_span_id: str
    trace_flags: str
    sampled: bool


def _is_hex(value: str, length: int) -> bool:
    return len(value) == length and bool(_HEX.match(value))


def _all_zeros(value: str) -> bool:
    return set(value) == {"0"}


def parse_traceparent(header: Optional[str]) -> Optional[TraceParent]:
    """Parse a traceparent header; None if it is missing or invalid."""
    if not header or not isinstance(header, str):
        return None
    parts = header.strip().split("-")
    if len(parts) != 4:
        return None
    version, trace_id, parent_span_id, trace_flags = parts

    if not _is_hex(version, 2):
        return None
    if not _is_hex(trace_id, 32) or _all_zeros(trace_id):
        return None
    if not _is_hex(parent_span_id, 16) or _all_zeros(parent_span_id):
        return None
    if not _is_hex(trace_flags, 2):
        return None

    return TraceParent(
        version=version,
        trace_id=trace_id,
        parent_span_id=parent_span_id,
        trace_flags=trace_flags,
        sampled=(int(trace_flags, 16) & 0x01) == 0x01,
    )


def format_traceparent(tp: TraceParent) -> str:
    return f"{tp.version}-{tp.trace_id}-{tp.parent_span_id}-{tp.trace_flags}"
