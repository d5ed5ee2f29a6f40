"""Tests for settings validation and logging setup"""

import json
import logging
import sys

import pytest
from pydantic import ValidationError

from shieldmatch.config import DEFAULT_APP_BASE_URL, Settings, mask_secret
from shieldmatch.utils.logging import REDACTED, JsonFormatter, SecretRedactingFilter, setup_logging
from tests.factories import TEST_SECRET


def _settings(**overrides) -> Settings:
    values = {"_env_file": None, "accept_token_secret": TEST_SECRET}
    values.update(overrides)
    return Settings(**values)


class TestSettings:
    """Configuration validation"""

    def test_defaults(self):
        settings = _settings()

        assert settings.app_base_url == DEFAULT_APP_BASE_URL
        assert settings.max_matches == 3
        assert settings.notification_delay_seconds == 2.0
        assert settings.accept_token_ttl_hours == 48
        assert not settings.enable_sms

    def test_trailing_slash_is_stripped(self):
        assert _settings(app_base_url="https://app.test/").app_base_url == "https://app.test"

    def test_missing_secret_is_an_error(self):
        issues = _settings(accept_token_secret=None).validate_configuration()
        assert "accept_token_secret not configured" in issues["errors"]

    def test_short_secret_is_a_warning(self):
        issues = _settings(accept_token_secret="short").validate_configuration()

        assert issues["errors"] == []
        assert any("shorter than 32" in w for w in issues["warnings"])

    def test_sms_enabled_without_credentials(self):
        issues = _settings(enable_sms=True).validate_configuration()
        assert len([e for e in issues["errors"] if e.startswith("SMS enabled")]) == 3

    def test_production_requires_smtp_and_real_database(self):
        issues = _settings(app_env="production").validate_configuration()

        assert "SMTP must be configured in production" in issues["errors"]
        assert "Default database URL used in production" in issues["errors"]

    def test_twilio_number_must_be_e164(self):
        with pytest.raises(ValidationError):
            _settings(twilio_phone_number="5555550100")

    def test_channel_configuration_checks(self):
        settings = _settings(
            smtp_server="smtp.example.com",
            smtp_username="mailer",
            smtp_password="pw",
            enable_sms=True,
            twilio_account_sid="AC1",
            twilio_auth_token="tok",
            twilio_phone_number="+15555550100",
        )

        assert settings.is_email_configured()
        assert settings.is_sms_configured()
        assert settings.validate_configuration()["errors"] == []

    def test_secret_is_not_rendered(self):
        assert TEST_SECRET not in repr(_settings())


class TestMaskSecret:
    def test_masks_all_but_prefix(self):
        assert mask_secret("abcdefghijkl") == "abcd********"

    def test_short_values_fully_masked(self):
        assert mask_secret("abc") == "***"

    def test_unset(self):
        assert mask_secret(None) == "<unset>"


def _record(msg, args=None, level=logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("shieldmatch.test", level, __file__, 10, msg, args, None)
    record.__dict__.update(extra)
    return record


class TestLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_formatter(self):
        record = _record("hello %s", ("world",))

        data = json.loads(JsonFormatter(environment="test").format(record))

        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "shieldmatch.test"
        assert data["service"] == "shieldmatch"
        assert data["environment"] == "test"
        assert "location" not in data

    def test_json_formatter_includes_context_and_location(self):
        record = _record("send failed", level=logging.WARNING, project_id="p-1")

        data = json.loads(JsonFormatter().format(record))

        assert data["project_id"] == "p-1"
        assert data["location"].startswith("test_config.")

    def test_filter_redacts_secrets_in_arguments(self):
        log_filter = SecretRedactingFilter(["tw-auth-token-value", TEST_SECRET])
        record = _record("auth %s and %s", ("tw-auth-token-value", TEST_SECRET))

        assert log_filter.filter(record)

        message = record.getMessage()
        assert "tw-auth-token-value" not in message
        assert TEST_SECRET not in message
        assert message == f"auth {REDACTED} and {REDACTED}"

    def test_filter_redacts_exception_text(self):
        try:
            raise RuntimeError(f"bad key {TEST_SECRET}")
        except RuntimeError:
            record = logging.LogRecord(
                "shieldmatch.test", logging.ERROR, __file__, 10, "failed", None, sys.exc_info()
            )

        SecretRedactingFilter([TEST_SECRET]).filter(record)

        assert TEST_SECRET not in record.exc_text
        assert REDACTED in record.exc_text

    def test_clean_records_are_untouched(self):
        record = _record("hello %s", ("world",))

        SecretRedactingFilter([TEST_SECRET]).filter(record)

        assert record.msg == "hello %s"
        assert record.args == ("world",)

    def test_setup_logging_sets_level(self):
        setup_logging(_settings(log_level="DEBUG", log_format="text"))

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_setup_logging_redacts_configured_credentials(self, capsys):
        setup_logging(_settings(smtp_password="smtp-password-value", log_format="json"))

        logging.getLogger("shieldmatch.test").warning(
            f"SMTP login rejected for smtp-password-value using {TEST_SECRET}"
        )

        output = capsys.readouterr().out
        assert "smtp-password-value" not in output
        assert TEST_SECRET not in output
        assert REDACTED in output
