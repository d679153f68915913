"""Unit tests for logging utilities."""

import io
import logging

import pytest

from oci_structure.utils.logging import (
    configure_logging,
    get_logger,
    get_logger_with_context,
    log_duration,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo configure_logging after each test."""
    root = logging.getLogger("oci_structure")
    saved = (root.level, list(root.handlers), root.propagate)
    yield
    root.setLevel(saved[0])
    root.handlers = saved[1]
    root.propagate = saved[2]


class TestGetLogger:
    """Tests for logger naming."""

    def test_prefixed(self):
        """Test that module names get the package prefix."""
        assert get_logger("layers").name == "oci_structure.layers"

    def test_already_prefixed(self):
        """Test that full names are kept."""
        assert get_logger("oci_structure.core.check").name == "oci_structure.core.check"
        assert get_logger("oci_structure").name == "oci_structure"

    def test_similar_name_prefixed(self):
        """Test that a name merely starting with the package is still prefixed."""
        assert get_logger("oci_structurex").name == "oci_structure.oci_structurex"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_plain(self):
        """Test the plain format and level filtering."""
        stream = io.StringIO()
        configure_logging(level="INFO", stream=stream)
        get_logger("test").debug("hidden")
        get_logger("test").info("shown")
        assert stream.getvalue() == "INFO: shown\n"

    def test_numeric_level(self):
        """Test that numeric levels are accepted."""
        configure_logging(level=logging.ERROR, stream=io.StringIO())
        assert logging.getLogger("oci_structure").level == logging.ERROR

    def test_unknown_level(self):
        """Test that an unknown level name is rejected."""
        with pytest.raises(ValueError, match="LOUD"):
            configure_logging(level="LOUD")

    def test_structured_context(self):
        """Test that context fields are appended sorted and quoted."""
        stream = io.StringIO()
        configure_logging(level="DEBUG", structured=True, stream=stream)
        logger = get_logger_with_context("check", image="example.com/app:1", note="two words")
        logger.debug("evaluated")
        line = stream.getvalue().strip()
        assert line.endswith('evaluated image=example.com/app:1 note="two words"')
        assert "oci_structure.check" in line

    def test_per_call_context_merged(self):
        """Test that per-call context overrides the adapter's."""
        stream = io.StringIO()
        configure_logging(level="DEBUG", structured=True, stream=stream)
        logger = get_logger_with_context("check", image="a", stage="x")
        logger.debug("done", extra={"context": {"stage": "y"}})
        assert stream.getvalue().strip().endswith("done image=a stage=y")

    def test_plain_ignores_context(self):
        """Test that the plain format leaves context out."""
        stream = io.StringIO()
        configure_logging(level="DEBUG", stream=stream)
        get_logger_with_context("check", image="a").debug("done")
        assert stream.getvalue() == "DEBUG: done\n"


class TestLogDuration:
    """Tests for log_duration."""

    def test_logs_on_error(self):
        """Test that the duration is logged when the body raises."""
        stream = io.StringIO()
        configure_logging(level="DEBUG", stream=stream)
        with pytest.raises(RuntimeError):
            with log_duration(get_logger("layers"), "materializing"):
                raise RuntimeError("boom")
        assert stream.getvalue().startswith("DEBUG: materializing took ")
