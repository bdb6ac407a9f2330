"""Tests for the structlog processors."""

from relaychat.structured_logging.logging_processors import add_correlation_id, sanitize_sensitive_data, strip_ansi


class TestSanitizeSensitiveData:
    """Credential material never reaches a log sink."""

    def test_redacts_token_and_password(self) -> None:
        event = {"event": "login", "token": "eyJhbGciOi", "password": "hunter22", "username": "alice"}

        result = sanitize_sensitive_data(None, "info", event)

        assert result["token"] == "[REDACTED]"
        assert result["password"] == "[REDACTED]"
        assert result["username"] == "alice"

    def test_redacts_suffixed_keys(self) -> None:
        event = {"event": "x", "access_token": "abc", "jwt_secret": "s3cret", "api_key": "k"}

        result = sanitize_sensitive_data(None, "info", event)

        assert result["access_token"] == "[REDACTED]"
        assert result["jwt_secret"] == "[REDACTED]"
        assert result["api_key"] == "[REDACTED]"

    def test_nested_dicts_are_sanitized(self) -> None:
        event = {"event": "x", "details": {"authorization": "Bearer abc", "path": "/api/logout"}}

        result = sanitize_sensitive_data(None, "info", event)

        assert result["details"]["authorization"] == "[REDACTED]"
        assert result["details"]["path"] == "/api/logout"

    def test_safe_fields_kept(self) -> None:
        result = sanitize_sensitive_data(None, "info", {"event": "x", "token_length": 120})

        assert result["token_length"] == 120


class TestCorrelationId:
    def test_adds_when_missing(self) -> None:
        result = add_correlation_id(None, "info", {"event": "x"})

        assert "correlation_id" in result

    def test_keeps_existing(self) -> None:
        result = add_correlation_id(None, "info", {"event": "x", "correlation_id": "abc"})

        assert result["correlation_id"] == "abc"


def test_strip_ansi() -> None:
    assert strip_ansi("\x1b[31mred\x1b[0m") == "red"
