"""
Tests for lab_gear structured logging and the request logging middleware.
"""

import json
import logging

from lab_gear.logging import (
    EventType,
    LabGearLogger,
    LogLevel,
    StructuredFormatter,
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    logger as global_logger,
    set_request_id,
)


def _format(formatter: StructuredFormatter, **extra) -> dict:
    record = logging.LogRecord(
        name="lab_gear.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


class TestStructuredLogging:
    """Test structured logging functionality."""

    def setup_method(self):
        self.logger = LabGearLogger("test_logger", LogLevel.DEBUG)

    def teardown_method(self):
        clear_request_id()

    def test_logger_initialization(self):
        logger = LabGearLogger("test", LogLevel.INFO)
        assert logger.name == "test"
        assert logger.logger.level == logging.INFO
        assert logger.logger.propagate is False
        assert len(logger.logger.handlers) == 1

    def test_basic_logging(self):
        # These verify the methods don't raise
        self.logger.debug("Debug message")
        self.logger.info("Info message")
        self.logger.warning("Warning message")
        self.logger.error("Error message")
        self.logger.critical("Critical message")

    def test_domain_event_helpers(self):
        self.logger.log_machine_event(EventType.MACHINE_CREATED, "m-1", metadata={"name": "pve2"})
        self.logger.log_auth_failure("GET", "/api/v1/machines", "token mismatch")
        self.logger.log_client_request("GET", "http://lab.local/api/v1/machines")
        self.logger.log_client_response("GET", "http://lab.local/api/v1/machines", 200, 3.2)
        self.logger.log_client_error("GET", "http://lab.local", ValueError("boom"))
        self.logger.log_reconcile(EventType.RECONCILE_CREATE, "m-1", "pve2")
        self.logger.log_drift("m-1", "removed outside of the controller")

    def test_formatter_emits_structured_fields(self):
        entry = _format(
            StructuredFormatter(),
            event_type="machine_created",
            machine_id="m-1",
            status_code=201,
            metadata={"name": "pve2"},
        )

        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "lab_gear.test"
        assert entry["event_type"] == "machine_created"
        assert entry["machine_id"] == "m-1"
        assert entry["status_code"] == 201
        assert entry["metadata"] == {"name": "pve2"}
        assert "request_id" not in entry

    def test_formatter_includes_request_id(self):
        set_request_id("req_abc")
        entry = _format(StructuredFormatter())
        assert entry["request_id"] == "req_abc"

    def test_formatter_merges_extra_fields(self):
        entry = _format(StructuredFormatter(), extra_fields={"attempt": 2})
        assert entry["attempt"] == 2


class TestRequestId:
    def teardown_method(self):
        clear_request_id()

    def test_set_and_get(self):
        assert set_request_id("req_123") == "req_123"
        assert get_request_id() == "req_123"

    def test_generated_when_missing(self):
        request_id = set_request_id()
        assert request_id.startswith("req_")
        assert get_request_id() == request_id

    def test_clear(self):
        set_request_id("req_123")
        clear_request_id()
        assert get_request_id() is None


def test_get_logger_returns_global_for_default_name():
    assert get_logger() is global_logger
    assert get_logger("lab_gear.other") is not global_logger


def test_configure_logging_accepts_strings():
    configure_logging("debug")
    assert global_logger.logger.level == logging.DEBUG
    configure_logging(LogLevel.INFO)
    assert global_logger.logger.level == logging.INFO


class TestLoggingMiddleware:
    def test_request_id_header_is_echoed(self, client, auth_headers):
        response = client.get(
            "/api/v1/machines", headers={**auth_headers, "X-Request-ID": "req_from_caller"}
        )
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req_from_caller"

    def test_request_id_generated_when_absent(self, client, auth_headers):
        response = client.get("/api/v1/machines", headers=auth_headers)
        assert response.headers["X-Request-ID"].startswith("req_")

    def test_health_is_excluded(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert "X-Request-ID" not in response.headers


def test_configure_logging_reaches_named_loggers():
    existing = get_logger("lab_gear.level_check")
    try:
        configure_logging(LogLevel.WARNING)
        assert existing.logger.level == logging.WARNING
        assert get_logger("lab_gear.created_after").logger.level == logging.WARNING
        assert get_logger("lab_gear.level_check") is existing
    finally:
        configure_logging(LogLevel.INFO)
    assert existing.logger.level == logging.INFO
