"""Tests for log stream routing."""

import logging

from devrig.logging import StreamFormatter, StreamRoutingFilter


def log_record(stream=None) -> logging.LogRecord:
    record = logging.LogRecord("devrig", logging.INFO, __file__, 1, "hello", None, None)
    if stream is not None:
        record.stream = stream
    return record


def test_stdout_records_route_to_stdout() -> None:
    record = log_record("stdout")

    assert StreamRoutingFilter("stdout").filter(record)
    assert not StreamRoutingFilter("stderr").filter(record)


def test_other_records_route_to_stderr() -> None:
    for record in (log_record(), log_record("remote")):
        assert StreamRoutingFilter("stderr").filter(record)
        assert not StreamRoutingFilter("stdout").filter(record)


def test_remote_records_are_prefixed() -> None:
    formatter = StreamFormatter("%(message)s")

    assert formatter.format(log_record("remote")) == "[remote] hello"
    assert formatter.format(log_record()) == "hello"
