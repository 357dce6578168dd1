"""Unit tests for correlation-aware logging helpers."""

import logging

from provisioner.utils.logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_webhook_event,
    set_correlation_id,
)


class TestCorrelationId:
    """Tests for correlation ID context handling."""

    def test_set_and_get(self):
        set_correlation_id("req-123")
        try:
            assert get_correlation_id() == "req-123"
        finally:
            clear_correlation_id()

    def test_generated_when_absent(self):
        cid = set_correlation_id(None)
        try:
            assert cid
            assert get_correlation_id() == cid
        finally:
            clear_correlation_id()

    def test_formatter_prefixes_correlation_id(self):
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
        set_correlation_id("req-456")
        try:
            CorrelationIdFilter().filter(record)
            output = StructuredFormatter("%(message)s").format(record)
        finally:
            clear_correlation_id()

        assert output == "[req-456] hello"

    def test_get_logger_adds_filter_once(self):
        logger = get_logger("provisioner.tests.logging")
        get_logger("provisioner.tests.logging")

        filters = [f for f in logger.filters if isinstance(f, CorrelationIdFilter)]
        assert len(filters) == 1


class TestLogWebhookEvent:
    """Tests for log_webhook_event level selection and context."""

    def test_error_result_logs_error(self, caplog):
        logger = get_logger("provisioner.tests.webhook")

        with caplog.at_level(logging.INFO, logger="provisioner.tests.webhook"):
            log_webhook_event(
                logger,
                "checkout.session.completed",
                "evt_1",
                result="error",
                email="a@example.com",
                error="outage",
                stage="subscription_persisted",
            )

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.event_id == "evt_1"
        assert record.stage == "subscription_persisted"
        assert "email=a@example.com" in record.getMessage()

    def test_duplicate_logs_warning(self, caplog):
        logger = get_logger("provisioner.tests.webhook")

        with caplog.at_level(logging.INFO, logger="provisioner.tests.webhook"):
            log_webhook_event(logger, "checkout.session.completed", "evt_1", result="duplicate")

        assert caplog.records[-1].levelno == logging.WARNING

    def test_success_logs_info_without_empty_fields(self, caplog):
        logger = get_logger("provisioner.tests.webhook")

        with caplog.at_level(logging.INFO, logger="provisioner.tests.webhook"):
            log_webhook_event(
                logger, "checkout.session.completed", "evt_1", result="success", record_id=None
            )

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert "record_id" not in record.getMessage()
