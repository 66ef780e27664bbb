"""
Tests for logging utilities module.

Uses pytest for unit tests and Hypothesis for property-based testing.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
import structlog
from hypothesis import given, settings as hypothesis_settings
from hypothesis import strategies as st

from knowledge.config.settings import LoggingSettings
from knowledge.utils.logging import (
    QUIET_LOGGERS,
    LoggerMixin,
    add_app_context,
    add_correlation_id,
    clear_correlation_id,
    configure_logging,
    document_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)


class TestCorrelationId:
    """Tests for correlation ID management."""

    def test_set_get_and_clear(self) -> None:
        assert get_correlation_id() is None

        set_correlation_id("test-123")
        assert get_correlation_id() == "test-123"

        clear_correlation_id()
        assert get_correlation_id() is None

    def test_generates_uuid(self) -> None:
        cid = set_correlation_id()
        assert len(cid) == 36
        assert get_correlation_id() == cid

    @given(st.text(min_size=1, max_size=100))
    @hypothesis_settings(max_examples=20)
    def test_roundtrip(self, cid: str) -> None:
        set_correlation_id(cid)
        assert get_correlation_id() == cid
        clear_correlation_id()


class TestDocumentContext:
    """Tests for document-scoped log context."""

    def test_binds_ids_inside_block(self) -> None:
        with document_context("intro.md", "handbook") as cid:
            assert get_correlation_id() == cid
            bound = structlog.contextvars.get_contextvars()
            assert bound["source_id"] == "intro.md"
            assert bound["dataset_id"] == "handbook"

        assert get_correlation_id() is None
        assert "source_id" not in structlog.contextvars.get_contextvars()

    def test_cleared_when_block_raises(self) -> None:
        with pytest.raises(RuntimeError):
            with document_context("intro.md", "handbook"):
                raise RuntimeError("stage failed")

        assert get_correlation_id() is None
        assert "dataset_id" not in structlog.contextvars.get_contextvars()

    def test_restores_outer_correlation_id(self) -> None:
        set_correlation_id("request-42")

        with document_context("intro.md", "handbook") as cid:
            assert get_correlation_id() == cid != "request-42"

        assert get_correlation_id() == "request-42"

    def test_restores_outer_id_when_block_raises(self) -> None:
        set_correlation_id("request-42")

        with pytest.raises(RuntimeError):
            with document_context("intro.md", "handbook"):
                raise RuntimeError("stage failed")

        assert get_correlation_id() == "request-42"

    def test_each_document_gets_a_new_id(self) -> None:
        with document_context("a.md", "handbook") as first:
            pass
        with document_context("b.md", "handbook") as second:
            pass
        assert first != second


class TestProcessors:
    """Tests for the custom structlog processors."""

    def test_adds_correlation_id_when_set(self) -> None:
        set_correlation_id("test-cid")

        result = add_correlation_id(MagicMock(spec=logging.Logger), "info", {"event": "test"})

        assert result["correlation_id"] == "test-cid"

    def test_no_correlation_id_when_not_set(self) -> None:
        result = add_correlation_id(MagicMock(spec=logging.Logger), "info", {"event": "test"})
        assert "correlation_id" not in result

    def test_adds_app_name(self) -> None:
        result = add_app_context(MagicMock(spec=logging.Logger), "info", {"event": "test"})
        assert result["app"] == "knowledge"


class TestSetupLogging:
    """Tests for setup_logging and configure_logging."""

    @given(
        st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
        st.sampled_from(["json", "console"]),
    )
    @hypothesis_settings(max_examples=10)
    def test_level_and_format_combinations(self, level: str, format_: str) -> None:
        setup_logging(log_level=level, log_format=format_)
        assert logging.getLogger().level == getattr(logging, level)

    def test_client_loggers_quieted(self) -> None:
        setup_logging(log_level="DEBUG", log_format="json")
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_client_loggers_follow_stricter_level(self) -> None:
        setup_logging(log_level="ERROR", log_format="json")
        assert logging.getLogger("chromadb").level == logging.ERROR

    def test_configure_from_settings(self) -> None:
        settings = LoggingSettings(log_level="WARNING", log_format="console")

        with patch("knowledge.utils.logging.setup_logging") as mock_setup:
            configure_logging(settings)

        mock_setup.assert_called_once_with(log_level="WARNING", log_format="console")

    def test_logger_can_log(self) -> None:
        setup_logging(log_format="console", log_level="DEBUG")
        logger = get_logger("test")

        logger.debug("debug message")
        logger.info("info message", key="value")
        logger.warning("warning message")


class TestLoggerMixin:
    """Tests for LoggerMixin class."""

    def test_logger_is_cached(self) -> None:
        class Component(LoggerMixin):
            pass

        obj = Component()
        assert obj.logger is obj.logger

    def test_logger_binds_component_name(self) -> None:
        class Component(LoggerMixin):
            pass

        with patch("knowledge.utils.logging.get_logger") as mock_get_logger:
            Component().logger

        mock_get_logger.assert_called_once_with(__name__)
        mock_get_logger.return_value.bind.assert_called_once_with(component="Component")
