"""
Security Event Logging Module

Provides structured logging for security-related events including:
- Authentication failures (missing or unknown API key)
- Access control denials
- Validation failures on submitted data
- Credential changes on distributor accounts

SECURITY: Ensures sensitive data is sanitized before logging. Passwords
are never passed to this module.
"""

import re
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, field as dataclass_field


def sanitize_for_logging(text: str) -> str:
    """Sanitize user input for safe logging, preventing log injection

    Removes newlines, carriage returns, and other control characters
    that could be used to inject fake log entries.

    Args:
        text: User input text

    Returns:
        Sanitized text safe for logging
    """
    if not text:
        return ''
    sanitized = re.sub(r'[\r\n\x00-\x1f\x7f-\x9f]', ' ', str(text))
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()
    return sanitized[:500] if len(sanitized) > 500 else sanitized


@dataclass
class SecurityEvent:
    """Structured security event for logging"""
    event_type: str  # e.g., AUTH_FAILED, ACCESS_DENIED, VALIDATION_FAILED
    severity: str  # WARNING, ERROR, CRITICAL
    field_name: str = ""
    error_code: str = ""
    sanitized_input: str = ""  # First 50 chars, sanitized
    source: str = ""
    request_id: str = ""
    user_id: str = ""
    source_ip: str = ""
    additional_context: Dict[str, Any] = dataclass_field(default_factory=dict)
    timestamp: str = dataclass_field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            'timestamp': self.timestamp,
            'event_type': self.event_type,
            'severity': self.severity,
            'field': self.field_name,
            'error_code': self.error_code,
            'sanitized_input': self.sanitized_input,
            'source': self.source,
            'request_id': self.request_id,
            'user_id': self.user_id,
            'source_ip': self.source_ip,
            'context': self.additional_context
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class SecurityLogger:
    """Handles security event logging with structured output

    Features:
    - Separate security.log file
    - JSON-formatted events for easy parsing
    - Automatic sanitization of user-supplied values
    """

    def __init__(
        self,
        log_dir: str = "logs",
        log_level: int = logging.WARNING,
        enable_console: bool = False,
        enable_file: bool = True
    ):
        """Initialize security logger

        Args:
            log_dir: Directory for log files
            log_level: Minimum log level to record
            enable_console: Also output to console
            enable_file: Write to security.log file
        """
        self.log_dir = Path(log_dir)

        self.logger = logging.getLogger('security')
        self.logger.setLevel(log_level)
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s - SECURITY - %(levelname)s - %(message)s'
        )

        if enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_dir / "security.log", encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(log_level)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

    def _sanitize_input(self, text: str, max_length: int = 50) -> str:
        """Sanitize and truncate input for security logs"""
        if not text:
            return ""
        sanitized = sanitize_for_logging(text)
        if len(sanitized) > max_length:
            return sanitized[:max_length] + "...(truncated)"
        return sanitized

    def _sanitize_context(self, context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Sanitize all values in a context dictionary for safe logging"""
        if not context:
            return {}

        sanitized = {}
        for key, value in context.items():
            safe_key = self._sanitize_input(str(key), max_length=100) if key else "unknown"

            if value is None or isinstance(value, (bool, int, float)):
                sanitized[safe_key] = value
            elif isinstance(value, dict):
                sanitized[safe_key] = self._sanitize_context(value)
            elif isinstance(value, (list, tuple)):
                sanitized[safe_key] = [
                    item if isinstance(item, (bool, int, float, type(None)))
                    else self._sanitize_input(str(item), max_length=200)
                    for item in value
                ]
            else:
                sanitized[safe_key] = self._sanitize_input(str(value), max_length=200)

        return sanitized

    def _emit(self, event: SecurityEvent) -> None:
        if event.severity == "CRITICAL":
            self.logger.critical(event.to_json())
        elif event.severity == "ERROR":
            self.logger.error(event.to_json())
        else:
            self.logger.warning(event.to_json())

    def log_validation_failure(
        self,
        field: str,
        error_code: str,
        input_value: str = "",
        source: str = "",
        request_id: str = "",
        additional_context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a validation failure on client-submitted data"""
        self._emit(SecurityEvent(
            event_type="VALIDATION_FAILED",
            severity="WARNING",
            field_name=field,
            error_code=error_code,
            sanitized_input=self._sanitize_input(input_value),
            source=source,
            request_id=request_id,
            additional_context=self._sanitize_context(additional_context)
        ))

    def log_auth_failure(
        self,
        reason: str,
        source_ip: str = "",
        request_id: str = "",
        path: str = ""
    ) -> None:
        """Log a missing or unknown API key"""
        self._emit(SecurityEvent(
            event_type="AUTH_FAILED",
            severity="WARNING",
            error_code=reason,
            source="api.permissions",
            request_id=request_id,
            source_ip=source_ip,
            additional_context=self._sanitize_context({"path": path})
        ))

    def log_access_denied(
        self,
        user_id: str,
        role: str,
        operation: str,
        source_ip: str = "",
        request_id: str = ""
    ) -> None:
        """Log an authenticated principal attempting an operation outside its role"""
        self._emit(SecurityEvent(
            event_type="ACCESS_DENIED",
            severity="WARNING",
            error_code="INSUFFICIENT_PERMISSIONS",
            source="api.permissions",
            request_id=request_id,
            user_id=self._sanitize_input(user_id, max_length=64),
            source_ip=source_ip,
            additional_context=self._sanitize_context({"role": role, "operation": operation})
        ))

    def log_credential_change(
        self,
        distributor_id: str,
        changed_by: str,
        action: str,
        request_id: str = ""
    ) -> None:
        """Log that a distributor's login credentials were replaced or reset"""
        self._emit(SecurityEvent(
            event_type="CREDENTIALS_CHANGED",
            severity="WARNING",
            source="database.credential_service",
            request_id=request_id,
            user_id=self._sanitize_input(changed_by, max_length=64),
            additional_context=self._sanitize_context({
                "distributor_id": distributor_id,
                "action": action
            })
        ))
