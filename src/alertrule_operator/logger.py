"""
Structured logging for reconciliation events.

Outputs JSON-formatted logs for Loki ingestion. Only state-changing
events are logged here; routine progress goes to module loggers.

Logged events:
- artifact.created
- artifact.updated
- artifact.deleted
- alertrule.created
- alertrule.ref_updated
- alertrule.deleted
- reconcile.failed

Usage:
    from alertrule_operator.logger import ReconcileLogger

    events = ReconcileLogger(controller="alertrule")
    events.log_artifact_created(key, kind="PrometheusRule", fingerprint=digest)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Configure structured logger for Loki
_events_logger = logging.getLogger("alertrule_operator.events")
_events_logger.setLevel(logging.INFO)
_events_logger.propagate = False

# Default handler outputs JSON to stdout (for container/Loki pickup)
if not _events_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    _events_logger.addHandler(handler)

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class _JsonFormatter(logging.Formatter):
    """One JSON object per record for the root handler."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure root logging for the operator process."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)


class ReconcileLogger:
    """
    Structured logger for reconciliation events.

    Each entry carries the controller, the resource key and the event
    type, plus event-specific fields.
    """

    def __init__(
        self,
        controller: str,
        service_name: str = "alertrule-operator",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize event logger.

        Args:
            controller: Controller name (alertrule, deployment)
            service_name: Service name for log attribution
            extra_labels: Additional labels for Loki filtering
        """
        self.controller = controller
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _events_logger

    def _emit(self, event: str, key: Any, level: str = "info", **extra_fields: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "controller": self.controller,
            "resource": str(key),
        }
        entry.update({k: v for k, v in extra_fields.items() if v is not None})

        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_artifact_created(self, key: Any, kind: str, fingerprint: Optional[str] = None) -> None:
        """Log artifact creation."""
        self._emit("artifact.created", key, kind=kind, fingerprint=fingerprint)

    def log_artifact_updated(self, key: Any, kind: str, fingerprint: Optional[str] = None) -> None:
        """Log artifact replacement."""
        self._emit("artifact.updated", key, kind=kind, fingerprint=fingerprint)

    def log_artifact_deleted(self, key: Any, kind: str) -> None:
        """Log artifact removal on the not-found path."""
        self._emit("artifact.deleted", key, kind=kind)

    def log_alert_rule_created(self, key: Any, deployment: str) -> None:
        """Log creation of a default AlertRule."""
        self._emit("alertrule.created", key, deployment=deployment)

    def log_ref_updated(self, key: Any, from_ref: Optional[str], to_ref: str) -> None:
        """Log a deploymentRef correction."""
        self._emit("alertrule.ref_updated", key, from_ref=from_ref, to_ref=to_ref)

    def log_alert_rule_deleted(self, key: Any, deployment: str) -> None:
        """Log removal of an AlertRule whose Deployment is gone."""
        self._emit("alertrule.deleted", key, deployment=deployment)

    def log_failed(self, key: Any, error: BaseException, retryable: bool) -> None:
        """Log a failed reconciliation."""
        self._emit(
            "reconcile.failed",
            key,
            level="warn" if retryable else "error",
            error=str(error),
            error_type=type(error).__name__,
            retryable=retryable,
        )
