"""Tests for logging configuration."""

import logging

from reftrack.logging_config import REDACTED, configure_logging, redact_secrets


def test_secret_values_are_masked():
    event = redact_secrets(None, "info", {
        "event": "app_starting",
        "whop_webhook_secret": "whsec_abc",
        "discord_token": "bot-token",
        "Authorization": "Bot bot-token",
        "user_id": "42",
    })

    assert event["whop_webhook_secret"] == REDACTED
    assert event["discord_token"] == REDACTED
    assert event["Authorization"] == REDACTED
    assert event["user_id"] == "42"
    assert event["event"] == "app_starting"


def test_secret_lengths_and_flags_stay_visible():
    event = redact_secrets(None, "info", {
        "event": "app_starting",
        "whop_webhook_secret_length": 38,
        "has_secret": True,
    })
    assert event["whop_webhook_secret_length"] == 38
    assert event["has_secret"] is True


def test_outbound_http_loggers_are_quieted(settings):
    configure_logging(settings)
    assert logging.getLogger("httpx").level >= logging.WARNING
    assert logging.getLogger("httpcore").level >= logging.WARNING
