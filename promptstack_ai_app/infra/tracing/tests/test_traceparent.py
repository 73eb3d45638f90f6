# SPDX-License-Identifier: MIT

import pytest

from promptstack_ai_app.infra.tracing.traceparent import format_traceparent, parse_traceparent

VALID = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"


def test_parse_valid_header():
    tp = parse_traceparent(VALID)

    assert tp.version == "00"
    assert tp.trace_id == "4bf92f3577b34da6a3ce929d0e0e4736"
    assert tp.parent_span_id == "00f067aa0ba902b7"
    assert tp.trace_flags == "01"
    assert tp.sampled is True
    assert format_traceparent(tp) == VALID


def test_unsampled_flag():
    assert parse_traceparent(VALID[:-2] + "00").sampled is False


def test_surrounding_whitespace_is_ignored():
    assert parse_traceparent(f"  {VALID}\n") is not None


@pytest.mark.parametrize("header", [
    None,
    "",
    "garbage",
    "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7",
    "00-4bf92f3577b34da6a3ce929d0e0e473-00f067aa0ba902b7-01",
    "00-00000000000000000000000000000000-00f067aa0ba902b7-01",
    "00-4bf92f3577b34da6a3ce929d0e0e4736-0000000000000000-01",
    "zz-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01",
    "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-1",
])
def test_invalid_headers(header):
    assert parse_traceparent(header) is None
