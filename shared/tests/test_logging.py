"""Tests for logging helpers."""

import structlog

from shared.utils.logging import (
    add_request_id,
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)


class TestRequestId:
    """Tests for request ID context."""

    def test_set_and_get(self):
        """Test an explicit request ID is stored."""
        set_request_id("req-1")
        assert get_request_id() == "req-1"
        clear_request_id()
        assert get_request_id() == ""

    def test_generated(self):
        """Test a request ID is generated when none is given."""
        rid = set_request_id()
        assert len(rid) == 36
        clear_request_id()

    def test_processor(self):
        """Test the processor adds the request ID when set."""
        set_request_id("req-2")
        assert add_request_id(None, "info", {"event": "x"}) == {"event": "x", "request_id": "req-2"}
        clear_request_id()
        assert add_request_id(None, "info", {"event": "x"}) == {"event": "x"}


class TestConfigureLogging:
    """Tests for logger configuration."""

    def test_configure_and_log(self):
        """Test configured loggers accept structured events."""
        configure_logging("data-access-test", log_level="DEBUG", json_format=False)
        logger = get_logger(__name__)
        logger.info("test_event", key="value")
        structlog.reset_defaults()
