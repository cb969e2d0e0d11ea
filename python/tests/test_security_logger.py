"""
Security logging tests

Verifies the structured security events written for authentication
failures, access denials, validation failures and credential changes,
and that user-supplied values cannot inject log lines.
"""

import json

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from security_logger import SecurityEvent, SecurityLogger, sanitize_for_logging


@pytest.fixture
def temp_log_dir(tmp_path):
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


def _events(log_dir: Path):
    lines = (log_dir / "security.log").read_text(encoding="utf-8").strip().split("\n")
    return [json.loads(line.split(" - ", 3)[3]) for line in lines]


class TestSanitize:
    """Tests for sanitize_for_logging"""

    def test_newlines_and_control_characters(self):
        assert sanitize_for_logging("a\nb\rc\x00d") == "a b c d"

    def test_whitespace_collapsed(self):
        assert sanitize_for_logging("  lots   of \t space ") == "lots of space"

    def test_empty(self):
        assert sanitize_for_logging("") == ""
        assert sanitize_for_logging(None) == ""

    def test_truncated(self):
        assert len(sanitize_for_logging("x" * 1000)) == 500


class TestSecurityLogger:
    """Tests for security event logging"""

    def test_creates_log_file(self, temp_log_dir):
        """security.log is created in the configured directory"""
        logger = SecurityLogger(log_dir=str(temp_log_dir))
        logger.log_auth_failure("MISSING_API_KEY", "10.0.0.1", "req-1", "/api/v1/applications")
        assert (temp_log_dir / "security.log").exists()

    def test_file_disabled(self, tmp_path):
        """No file is written when enable_file is False"""
        log_dir = tmp_path / "nowhere"
        logger = SecurityLogger(log_dir=str(log_dir), enable_file=False)
        logger.log_auth_failure("INVALID_API_KEY")
        assert not log_dir.exists()

    def test_injection_stays_on_one_line(self, temp_log_dir):
        """Newlines in submitted values cannot forge log entries"""
        logger = SecurityLogger(log_dir=str(temp_log_dir))
        logger.log_validation_failure(
            field="personalDetails.fullName",
            error_code="VALIDATION_ERROR",
            input_value="Ram\nFAKE LOG ENTRY\n",
            source="/api/v1/applications/submit",
        )
        lines = (temp_log_dir / "security.log").read_text().strip().split("\n")
        assert len(lines) == 1
        assert _events(temp_log_dir)[0]["sanitized_input"] == "Ram FAKE LOG ENTRY"

    def test_auth_failure_event(self, temp_log_dir):
        logger = SecurityLogger(log_dir=str(temp_log_dir))
        logger.log_auth_failure("INVALID_API_KEY", "10.0.0.1", "req-7", "/api/v1/applications")

        event = _events(temp_log_dir)[0]
        assert event["event_type"] == "AUTH_FAILED"
        assert event["error_code"] == "INVALID_API_KEY"
        assert event["request_id"] == "req-7"
        assert event["context"]["path"] == "/api/v1/applications"

    def test_access_denied_event(self, temp_log_dir):
        logger = SecurityLogger(log_dir=str(temp_log_dir))
        logger.log_access_denied("rep-1", "SALES_REPRESENTATIVE", "view_stats", "10.0.0.2", "req-8")

        event = _events(temp_log_dir)[0]
        assert event["event_type"] == "ACCESS_DENIED"
        assert event["user_id"] == "rep-1"
        assert event["context"] == {"role": "SALES_REPRESENTATIVE", "operation": "view_stats"}

    def test_credential_change_event(self, temp_log_dir):
        """Credential changes record who and what, never the password"""
        logger = SecurityLogger(log_dir=str(temp_log_dir))
        logger.log_credential_change("0b7c", "mgr-1", "reset", "req-9")

        event = _events(temp_log_dir)[0]
        assert event["event_type"] == "CREDENTIALS_CHANGED"
        assert event["context"]["action"] == "reset"
        assert "password" not in json.dumps(event).lower()


class TestSecurityEvent:
    """Tests for SecurityEvent serialization"""

    def test_to_json(self):
        event = SecurityEvent(event_type="AUTH_FAILED", severity="WARNING", error_code="MISSING_API_KEY")
        data = json.loads(event.to_json())
        assert data["event_type"] == "AUTH_FAILED"
        assert data["severity"] == "WARNING"
        assert "timestamp" in data
        assert data["user_id"] == ""
        assert data["context"] == {}
