"""
Unit tests for shared logging processors.
"""

from shared.logging import (
    REDACTED,
    add_correlation_context,
    add_service_context,
    clear_context,
    redact_credentials,
    set_request_id,
    set_user_context,
)


def test_credentials_are_redacted():
    event = redact_credentials(None, "info", {
        "event": "Login rejected",
        "password": "wonderland-42",
        "password_hash": "$2b$12$abc",
        "email": "alice@example.com",
    })

    assert event["password"] == REDACTED
    assert event["password_hash"] == REDACTED
    assert event["email"] == "alice@example.com"


def test_correlation_ids_added():
    set_request_id("req-9")
    set_user_context("7")
    try:
        event = add_correlation_context(None, "info", {"event": "HTTP request"})
    finally:
        clear_context()

    assert event["request_id"] == "req-9"
    assert event["user_id"] == "7"


def test_explicit_user_id_wins_over_context():
    set_user_context("7")
    try:
        event = add_correlation_context(None, "info", {"event": "Token issued", "user_id": 3})
    finally:
        clear_context()

    assert event["user_id"] == 3


def test_service_name_stamped():
    processor = add_service_context("auth")

    assert processor(None, "info", {"event": "started"})["service"] == "auth"
