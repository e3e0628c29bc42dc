import logging

import pytest

from mimir_relay.core.logging import relay_trace, setup_logging


@pytest.mark.parametrize("level, expected", [("INFO", logging.WARNING), ("DEBUG", logging.DEBUG)])
def test_http_client_chatter_follows_log_level(monkeypatch, level, expected):
    monkeypatch.setenv("LOG_LEVEL", level)
    setup_logging()
    assert logging.getLogger("httpx").level == expected
    assert logging.getLogger("httpcore").level == expected


def test_relay_trace_is_off_by_default(monkeypatch, caplog):
    monkeypatch.delenv("RELAY_TRACE", raising=False)
    with caplog.at_level(logging.INFO, logger="mimir_relay.trace"):
        relay_trace("relay.upstream", model="llama3-8b-8192")
    assert caplog.records == []


def test_relay_trace_reads_env_per_call(monkeypatch, caplog):
    monkeypatch.setenv("RELAY_TRACE", "true")
    with caplog.at_level(logging.INFO, logger="mimir_relay.trace"):
        relay_trace("relay.upstream", model="llama3-8b-8192", window=4)
    (record,) = caplog.records
    assert record.getMessage().startswith("[relay] relay.upstream ts=")
    assert record.getMessage().endswith("model=llama3-8b-8192 window=4")
