"""
Unit tests for the structured logging processors.
"""

import pytest

from shared import logging as gateway_logging


@pytest.fixture(autouse=True)
def reset_context():
    gateway_logging.clear_context()
    yield
    gateway_logging.clear_context()


def test_credentials_are_masked():
    event = gateway_logging.redact_credentials(
        None, "info", {"event": "x", "nonce": "abc", "api_key": "k", "token": "", "tool": "demo/a"}
    )
    assert event["nonce"] == gateway_logging.REDACTED
    assert event["api_key"] == gateway_logging.REDACTED
    assert event["token"] == ""
    assert event["tool"] == "demo/a"


def test_correlation_context_includes_tool():
    request_id = gateway_logging.set_request_id()
    gateway_logging.set_user_context("7")
    gateway_logging.set_tool_context("demo/write")

    event = gateway_logging.add_correlation_context(None, "info", {"event": "x"})
    assert event == {"event": "x", "request_id": request_id, "user_id": "7", "tool": "demo/write"}


def test_explicit_fields_win_over_context():
    gateway_logging.set_tool_context("demo/write")
    event = gateway_logging.add_correlation_context(None, "info", {"event": "x", "tool": "demo/read"})
    assert event["tool"] == "demo/read"


def test_clear_context():
    gateway_logging.set_request_id("req-1")
    gateway_logging.clear_context()
    assert gateway_logging.add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}


def test_service_name_from_logger_prefix(monkeypatch):
    monkeypatch.setattr(gateway_logging, "_service_name", None)
    event = gateway_logging.add_service_name(None, "info", {"event": "x", "logger": "gateway.cache_manager"})
    assert event["service"] == "gateway"

    monkeypatch.setattr(gateway_logging, "_service_name", "tool-gateway")
    event = gateway_logging.add_service_name(None, "info", {"event": "x", "logger": "gateway.cache_manager"})
    assert event["service"] == "tool-gateway"


def test_no_trace_fields_without_active_span():
    assert gateway_logging.add_trace_context(None, "info", {"event": "x"}) == {"event": "x"}
