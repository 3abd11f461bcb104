"""
Structured logging for the Konflux operator.

Log lines are JSON documents carrying a correlation id shared by every line
of one reconciliation. Apply and cleanup events nest the identity of the
object they touched under "object" so a failed prune can be traced back to
kind, namespace and name without parsing the message.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from konflux_operator.models import ResourceKey

# Shared by all log lines of the reconciliation running in this context
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Record attributes promoted to top-level JSON fields
STRUCTURED_FIELDS = (
    "component",
    "owner",
    "operation",
    "phase",
    "duration",
    "error_type",
    "field_manager",
    "reason",
    "http_status",
    "kind",
    "step",
)

PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CORRELATED_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


class CorrelationIDFilter(logging.Filter):
    """Stamp records with the current correlation id, starting one if unset."""

    def filter(self, record: logging.LogRecord) -> bool:
        current = correlation_id.get()
        if not current:
            current = set_correlation_id(new_correlation_id())
        record.correlation_id = current
        return True


class StructuredFormatter(logging.Formatter):
    """Render log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if getattr(record, "correlation_id", ""):
            payload["correlation_id"] = record.correlation_id

        payload.update(
            {
                field: getattr(record, field)
                for field in STRUCTURED_FIELDS
                if hasattr(record, field)
            }
        )
        if hasattr(record, "object"):
            payload["object"] = record.object

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def new_correlation_id(prefix: str = "") -> str:
    """Return a short random id, optionally prefixed (e.g. with the component)."""
    suffix = uuid.uuid4().hex[:8]
    return f"{prefix}-{suffix}" if prefix else suffix


def set_correlation_id(corr_id: str) -> str:
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    return correlation_id.get()


def setup_structured_logging(
    log_level: str | None = None,
    enable_json_formatting: bool | None = None,
    correlation_id_enabled: bool | None = None,
) -> None:
    """
    Configure the root logger.

    Arguments left as None are taken from the operator settings
    (LOG_LEVEL, JSON_LOGS, CORRELATION_IDS).
    """
    from konflux_operator.settings import settings

    if log_level is None:
        log_level = settings.log_level
    if enable_json_formatting is None:
        enable_json_formatting = settings.json_logs
    if correlation_id_enabled is None:
        correlation_id_enabled = settings.correlation_ids

    handler = logging.StreamHandler()
    if enable_json_formatting:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                CORRELATED_FORMAT if correlation_id_enabled else PLAIN_FORMAT
            )
        )
    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Client libraries are noisy at INFO
    for noisy in ("kopf", "kubernetes", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class OperatorLogger:
    """
    Logger wrapper that attaches operator context as structured fields.

    Args:
        name: Logger name
        component: Component every line of this logger is about ('' if none)
    """

    def __init__(self, name: str, component: str = ""):
        self.logger = logging.getLogger(name)
        self.component = component

    def _extra(self, fields: dict[str, Any]) -> dict[str, Any]:
        if self.component and "component" not in fields:
            fields["component"] = self.component
        return fields

    def reconcile_event(
        self,
        operation: str,
        owner: str,
        *,
        error: Exception | None = None,
        duration: float | None = None,
        **fields,
    ) -> None:
        """
        Log a reconciliation lifecycle event.

        Args:
            operation: "reconcile_start", "reconcile_success" or "reconcile_error"
            owner: Name of the CR being reconciled
            error: The failure, for reconcile_error
            duration: Seconds spent so far
        """
        fields.update(operation=operation, owner=owner)
        if duration is not None:
            fields["duration"] = round(duration, 3)

        if error is not None:
            fields["error_type"] = type(error).__name__
            self.logger.error(
                f"Reconciliation of {owner} failed: {error}",
                exc_info=error,
                extra=self._extra(fields),
            )
        elif operation == "reconcile_start":
            self.logger.info(
                f"Reconciling {owner}", extra=self._extra(fields)
            )
        else:
            self.logger.info(
                f"Reconciled {owner}", extra=self._extra(fields)
            )

    def start_reconciliation(self, owner: str) -> str:
        """Open a new correlation id for one reconciliation and log its start."""
        corr_id = set_correlation_id(new_correlation_id(self.component))
        self.reconcile_event("reconcile_start", owner)
        return corr_id

    def object_event(
        self,
        level: int,
        message: str,
        key: "ResourceKey",
        operation: str,
        **fields,
    ) -> None:
        """
        Log an event about one cluster object.

        Args:
            level: Logging level
            message: Human-readable message
            key: Identity of the object
            operation: apply, orphan_delete, orphan_skip, ...
            **fields: Additional structured fields
        """
        fields.update(
            operation=operation,
            kind=key.gvk.kind,
            object={
                "apiVersion": key.gvk.api_version,
                "kind": key.gvk.kind,
                "namespace": key.namespace,
                "name": key.name,
            },
        )
        self.logger.log(level, message, extra=self._extra(fields))

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, extra=self._extra(kwargs))

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, extra=self._extra(kwargs))

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, extra=self._extra(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        self.logger.error(message, exc_info=exc_info, extra=self._extra(kwargs))
