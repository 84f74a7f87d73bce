"""Unit tests for the logging utility."""

from __future__ import annotations

import json
import logging

from oauthkit.core.logger import JSONFormatter, RequestIdFilter, configure_logging


def test_configure_logging_sets_level() -> None:
    """``configure_logging`` should set the root logger level."""

    # Act
    configure_logging("DEBUG")

    # Assert
    assert logging.getLogger().level == logging.DEBUG


def test_json_formatter_includes_structured_extras() -> None:
    record = logging.LogRecord(
        "oauthkit.services.consumer.service",
        logging.INFO,
        __file__,
        1,
        "oauth.refreshed",
        None,
        None,
    )
    record.service = "photos"
    record.key = "photos-testing-token"
    record.expires = 2147483646
    record.request_id = None

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "oauth.refreshed"
    assert payload["level"] == "INFO"
    assert payload["service"] == "photos"
    assert payload["key"] == "photos-testing-token"
    assert payload["expires"] == 2147483646
    assert "attempt" not in payload


def _record() -> logging.LogRecord:
    return logging.LogRecord("oauthkit", logging.INFO, __file__, 1, "msg", None, None)


def test_request_id_filter_uses_correlation_header(app) -> None:
    with app.test_request_context("/", headers={"X-Correlation-ID": "corr-1"}):
        record = _record()

        assert RequestIdFilter().filter(record) is True
        assert record.request_id == "corr-1"


def test_request_id_filter_outside_request_leaves_it_empty() -> None:
    record = _record()

    assert RequestIdFilter().filter(record) is True
    assert record.request_id is None


def test_response_carries_request_id_header(client) -> None:
    response = client.get("/api/v1/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"
