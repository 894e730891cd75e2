"""
Diligence Audit Logging Module

Structured, JSON-per-line audit trail of every diligence run:
- Rejected cases
- Provider failures (unavailable / malformed)
- Cancelled runs
- Issued verdicts

Party names and other caller-supplied text are sanitized before they are
written. Runs execute concurrently, so the run id travels with each call
instead of being held on the logger.
"""

import json
import logging
from dataclasses import dataclass, field as dataclass_field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from text_utils import sanitize_for_logging


@dataclass
class AuditEvent:
    """Structured audit event"""
    event_type: str  # CASE_REJECTED, PROVIDER_UNAVAILABLE, VERDICT_ISSUED, ...
    severity: str  # INFO, WARNING, ERROR
    run_id: str = ""
    case_id: str = ""
    provider: str = ""
    error_code: str = ""
    message: str = ""
    context: Dict[str, Any] = dataclass_field(default_factory=dict)
    timestamp: str = dataclass_field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'event_type': self.event_type,
            'severity': self.severity,
            'run_id': self.run_id,
            'case_id': self.case_id,
            'provider': self.provider,
            'error_code': self.error_code,
            'message': self.message,
            'context': self.context,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class AuditLogger:
    """Writes audit events to logs/audit.log through a dedicated logger"""

    def __init__(
        self,
        log_dir: str = "logs",
        log_level: int = logging.INFO,
        enable_console: bool = False,
        enable_file: bool = True
    ):
        """Initialize audit logger

        Args:
            log_dir: Directory for log files
            log_level: Minimum log level to record
            enable_console: Also output to console
            enable_file: Write to audit.log file
        """
        self.log_dir = Path(log_dir)
        self.logger = logging.getLogger('diligence.audit')
        self.logger.setLevel(log_level)
        self.logger.propagate = False
        self.logger.handlers.clear()

        formatter = logging.Formatter('%(asctime)s - AUDIT - %(levelname)s - %(message)s')

        if enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_dir / "audit.log", encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(log_level)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

    @staticmethod
    def _sanitize(text: Any, max_length: int = 200) -> str:
        if text is None or text == "":
            return ""
        sanitized = sanitize_for_logging(str(text))
        if len(sanitized) > max_length:
            return sanitized[:max_length] + "...(truncated)"
        return sanitized

    def _sanitize_context(self, context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not context:
            return {}
        sanitized = {}
        for key, value in context.items():
            safe_key = self._sanitize(key, max_length=100) or "unknown"
            if value is None or isinstance(value, (bool, int, float)):
                sanitized[safe_key] = value
            elif isinstance(value, dict):
                sanitized[safe_key] = self._sanitize_context(value)
            elif isinstance(value, (list, tuple, set, frozenset)):
                sanitized[safe_key] = [
                    item if isinstance(item, (bool, int, float, type(None))) else self._sanitize(item)
                    for item in value
                ]
            else:
                sanitized[safe_key] = self._sanitize(value)
        return sanitized

    def log_event(
        self,
        event_type: str,
        severity: str = "INFO",
        run_id: str = "",
        case_id: str = "",
        provider: str = "",
        error_code: str = "",
        message: str = "",
        context: Optional[Dict[str, Any]] = None
    ) -> AuditEvent:
        event = AuditEvent(
            event_type=event_type,
            severity=severity,
            run_id=run_id,
            case_id=self._sanitize(case_id, max_length=64),
            provider=provider,
            error_code=error_code,
            message=self._sanitize(message),
            context=self._sanitize_context(context),
        )
        if severity == "ERROR":
            self.logger.error(event.to_json())
        elif severity == "WARNING":
            self.logger.warning(event.to_json())
        else:
            self.logger.info(event.to_json())
        return event

    def log_case_rejected(self, run_id: str, case_id: str, field: str, error_code: str, message: str) -> AuditEvent:
        return self.log_event(
            "CASE_REJECTED", "WARNING",
            run_id=run_id, case_id=case_id, error_code=error_code, message=message,
            context={'field': field},
        )

    def log_provider_failure(self, run_id: str, case_id: str, provider: str, error: Exception,
                             entity_id: str = "") -> AuditEvent:
        """Log a recovered provider failure

        MalformedProviderResponse is recorded as MALFORMED_PROVIDER_RESPONSE,
        everything else as PROVIDER_UNAVAILABLE.
        """
        malformed = type(error).__name__ == 'MalformedProviderResponse'
        return self.log_event(
            "MALFORMED_PROVIDER_RESPONSE" if malformed else "PROVIDER_UNAVAILABLE",
            "WARNING",
            run_id=run_id, case_id=case_id, provider=provider,
            error_code=type(error).__name__, message=str(error),
            context={'entity': entity_id},
        )

    def log_run_cancelled(self, run_id: str, case_id: str, pending: int) -> AuditEvent:
        return self.log_event(
            "RUN_CANCELLED", "WARNING",
            run_id=run_id, case_id=case_id,
            context={'pending_tasks': pending},
        )

    def log_verdict(self, run_id: str, case_id: str, level: str, score: int,
                    red_flags: int, sources: int, failed: int) -> AuditEvent:
        return self.log_event(
            "VERDICT_ISSUED", "INFO",
            run_id=run_id, case_id=case_id,
            context={
                'risk_level': level,
                'risk_score': score,
                'red_flags': red_flags,
                'sources_checked': sources,
                'provider_failures': failed,
            },
        )


# Global audit logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger(log_dir: str = "logs", enable_console: bool = False) -> AuditLogger:
    """Get or create the global audit logger instance"""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(log_dir=log_dir, enable_console=enable_console)
    return _audit_logger


def reset_audit_logger() -> None:
    """Reset the global audit logger (for testing)"""
    global _audit_logger
    _audit_logger = None
