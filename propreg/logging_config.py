"""
Logging for the property registry.

Two streams share the root handlers:

- ordinary module loggers (``logging.getLogger(__name__)``)
- the audit stream ``propreg.audit``, one line per committed or rejected
  registry operation, authenticator change and HTTP security event

With JSON output enabled every line is a single JSON object. Identities
are shortened before they are logged.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

from .util import mask_identity

AUDIT_LOGGER_NAME = "propreg.audit"

# Set per HTTP request by the adapter middleware
request_id_var: ContextVar[str] = ContextVar("propreg_request_id", default="")

SEVERITY_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}

# LogRecord attribute that carries the audit fields
_AUDIT_ATTR = "audit_fields"


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.name != AUDIT_LOGGER_NAME:
            entry["where"] = f"{record.module}.{record.funcName}:{record.lineno}"

        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id

        entry.update(getattr(record, _AUDIT_ATTR, {}))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class AuditLogger:
    """
    Audit stream for registry operations.

    Committed operations log at INFO and guard rejections at WARNING.
    Security events pick their level from a severity name.
    """

    def __init__(self, name: str = AUDIT_LOGGER_NAME):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, event: str, message: str, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {k: v for k, v in fields.items() if v is not None}
        fields["event"] = event
        self._logger.log(level, message, extra={_AUDIT_ATTR: fields})

    def operation_committed(
        self,
        operation: str,
        caller: str,
        record_id: Optional[int] = None,
        **details: Any
    ) -> None:
        self._emit(
            logging.INFO,
            "OPERATION_COMMITTED",
            f"{operation} committed",
            operation=operation,
            caller=mask_identity(caller),
            record_id=record_id,
            **details
        )

    def operation_rejected(
        self,
        operation: str,
        caller: str,
        failure: str,
        record_id: Optional[int] = None
    ) -> None:
        self._emit(
            logging.WARNING,
            "OPERATION_REJECTED",
            f"{operation} rejected with {failure}",
            operation=operation,
            caller=mask_identity(caller),
            failure=failure,
            record_id=record_id,
        )

    def authenticator_changed(self, identity: str, authorized: bool, admin: str) -> None:
        action = "authorized" if authorized else "revoked"
        self._emit(
            logging.INFO,
            "AUTHENTICATOR_CHANGED",
            f"authenticator {action}",
            authenticator=mask_identity(identity),
            authorized=authorized,
            admin=mask_identity(admin),
        )

    def security_event(self, event: str, severity: str = "medium", **details: Any) -> None:
        """Log a security-relevant event at the HTTP boundary."""
        if "identity" in details and isinstance(details["identity"], str):
            details["identity"] = mask_identity(details["identity"])
        self._emit(
            SEVERITY_LEVELS.get(severity, logging.WARNING),
            "SECURITY_EVENT",
            f"security event {event}",
            security_event=event,
            severity=severity,
            **details
        )

    def rate_limit_exceeded(self, client_id: str, endpoint: str) -> None:
        self._emit(
            logging.WARNING,
            "RATE_LIMIT_EXCEEDED",
            f"rate limit hit on {endpoint}",
            client=mask_identity(client_id),
            endpoint=endpoint,
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Install root handlers: stdout always, plus a file when log_file is set.
    Existing root handlers are replaced.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = (
        StructuredFormatter() if json_format
        else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id to the current context, generating one if absent."""
    request_id = request_id or uuid.uuid4().hex
    request_id_var.set(request_id)
    return request_id


audit_log = AuditLogger()
