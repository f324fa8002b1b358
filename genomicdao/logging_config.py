"""
Logging configuration for the custody pipeline.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from .util import mask_sensitive

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for custody events.

    Records each stage of an upload, the ledger commit milestones and
    security-relevant failures. Addresses are masked; payloads and keys
    are never passed in.
    """

    def __init__(self, name: str = "genomicdao.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def upload_started(self, address: str, payload_size: int) -> None:
        self._log(
            logging.INFO,
            "UPLOAD_STARTED",
            address=mask_sensitive(address, 6),
            payload_size=payload_size,
            message=f"Upload started ({payload_size} bytes)"
        )

    def stage_completed(self, stage: str, duration_ms: int, **details) -> None:
        self._log(
            logging.INFO,
            "STAGE_COMPLETED",
            stage=stage,
            duration_ms=duration_ms,
            **details,
            message=f"Stage {stage} completed"
        )

    def stage_failed(self, stage: str, error: str, reason: str, completed: list) -> None:
        """Log a failed stage together with the stages that already took effect."""
        self._log(
            logging.ERROR,
            "STAGE_FAILED",
            stage=stage,
            error=error,
            reason=reason,
            completed_stages=completed,
            message=f"Stage {stage} failed: {error}"
        )

    def session_mined(self, doc_id: str, session_id: str, tx_hash: str, block_number: int) -> None:
        self._log(
            logging.INFO,
            "SESSION_MINED",
            doc_id=doc_id,
            session_id=session_id,
            tx_hash=tx_hash,
            block_number=block_number,
            message=f"Upload session {session_id} mined"
        )

    def upload_confirmed(self, session_id: str, doc_id: str, tx_hash: str, risk_level: int) -> None:
        self._log(
            logging.INFO,
            "UPLOAD_CONFIRMED",
            session_id=session_id,
            doc_id=doc_id,
            tx_hash=tx_hash,
            risk_level=risk_level,
            message=f"Upload session {session_id} confirmed"
        )

    def side_effect_observed(self, session_id: str, effect: str, **details) -> None:
        self._log(
            logging.INFO,
            "SIDE_EFFECT_OBSERVED",
            session_id=session_id,
            effect=effect,
            **details,
            message=f"{effect} observed for session {session_id}"
        )

    def record_retrieved(self, file_id: str, verified: bool) -> None:
        self._log(
            logging.INFO,
            "RECORD_RETRIEVED",
            file_id=file_id,
            verified=verified,
            message=f"Record {file_id} retrieved"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
