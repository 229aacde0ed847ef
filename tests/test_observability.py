"""
Tests for logging setup and secret redaction.
"""

import io
import logging

import pytest

from wetctl.core.observability.logging_config import (
    REDACTED,
    SecretRedactionFilter,
    _parse_level,
    redact,
    register_secret_values,
    setup_logging,
)


@pytest.fixture
def root_logger():
    """Restore the root logger after setup_logging rewires it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg, *args):
    return logging.LogRecord("wetctl.test", logging.INFO, __file__, 1, msg, args, None)


# ═══════════════════════════════════════════════════════════════════
#  Redaction
# ═══════════════════════════════════════════════════════════════════


class TestRedact:
    def test_nothing_registered(self):
        assert redact("password=hunter2hunter2") == "password=hunter2hunter2"

    def test_registered_value(self):
        register_secret_values(["hunter2hunter2"])
        assert redact("password=hunter2hunter2") == f"password={REDACTED}"

    def test_short_values_ignored(self):
        register_secret_values(["abc", "", "longenough"])
        assert redact("abc longenough") == f"abc {REDACTED}"

    def test_longest_first(self):
        register_secret_values(["secretvalue", "secretvalue-extended"])
        assert redact("x secretvalue-extended y") == f"x {REDACTED} y"


class TestSecretRedactionFilter:
    def test_rewrites_args(self):
        register_secret_values(["s3cr3tpass"])
        record = _record("login with %s for %s", "s3cr3tpass", "wiki")
        assert SecretRedactionFilter().filter(record) is True
        assert record.getMessage() == f"login with {REDACTED} for wiki"
        assert record.args is None

    def test_leaves_clean_records(self):
        register_secret_values(["s3cr3tpass"])
        record = _record("applied %s", "Deployment/wiki-web")
        SecretRedactionFilter().filter(record)
        assert record.args == ("Deployment/wiki-web",)


# ═══════════════════════════════════════════════════════════════════
#  setup_logging
# ═══════════════════════════════════════════════════════════════════


class TestSetupLogging:
    def test_console_handler(self, root_logger):
        setup_logging("INFO")
        assert len(root_logger.handlers) == 1
        handler = root_logger.handlers[0]
        assert handler.level == logging.INFO
        assert any(isinstance(f, SecretRedactionFilter) for f in handler.filters)

    def test_console_output_redacted(self, root_logger):
        setup_logging("INFO")
        stream = io.StringIO()
        root_logger.handlers[0].setStream(stream)
        register_secret_values(["wikipass-generated"])

        logging.getLogger("wetctl.test").warning("value is %s", "wikipass-generated")
        assert "wikipass-generated" not in stream.getvalue()
        assert REDACTED in stream.getvalue()

    def test_file_handler(self, root_logger, tmp_path):
        log_file = tmp_path / "wetctl.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        assert len(root_logger.handlers) == 2
        assert root_logger.level == logging.DEBUG

        register_secret_values(["topsecretvalue"])
        logging.getLogger("wetctl.test").debug("token %s", "topsecretvalue")
        for handler in root_logger.handlers:
            handler.flush()
        text = log_file.read_text()
        assert "token ***" in text
        assert "topsecretvalue" not in text
        root_logger.handlers[1].close()

    @pytest.mark.parametrize("name,expected", [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        ("bogus", logging.WARNING),
        (None, logging.WARNING),
    ])
    def test_parse_level(self, name, expected):
        assert _parse_level(name) == expected
