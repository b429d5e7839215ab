"""
Observability service for structured logging, tracing, metrics and audit events.

Every log line is emitted as a single JSON object carrying the timestamp,
level, message, logger name and the request_id of the request being
served, so ingestion, query and retention logs can be correlated.
Elasticsearch calls are traced with OpenTelemetry spans.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, Dict

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from middleware.request_id import request_id_var

DEFAULT_SERVICE_NAME = "fleet-gps-telemetry"


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per record.

    Each log entry contains:
    - timestamp: ISO 8601 formatted UTC timestamp
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - message: The log message
    - logger: Name of the logger that produced the entry
    - request_id: Correlation ID for request tracing

    Additional fields can be included via the 'extra_data' attribute
    on the log record.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class ObservabilityService:
    """
    Centralized logging, tracing, metrics and audit logging.

    Metrics are written as structured debug log entries; audit events
    (such as retention deletions) are written at info level with an
    `audit_event` marker so they can be filtered downstream. Spans are
    exported over OTLP when `otel_endpoint` is configured; otherwise the
    OpenTelemetry API hands out non-recording spans.
    """

    def __init__(self, settings: Optional[Any] = None):
        """
        Initialize the observability service.

        Args:
            settings: Application settings providing log_level and the
                optional otel_endpoint / otel_service_name
        """
        self.settings = settings
        self._logger = logging.getLogger("observability")
        self.service_name = getattr(settings, "otel_service_name", None) or DEFAULT_SERVICE_NAME
        self.tracer = trace.get_tracer(self.service_name)
        self._setup_logging()
        self._setup_tracing()

    def _setup_logging(self) -> None:
        """Install the JSON formatter on the root logger at the configured level."""
        log_level_str = getattr(self.settings, "log_level", None) or "INFO"
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Remove existing handlers to avoid duplicate logs
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        self._logger.info("Observability service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        """
        Configure OpenTelemetry tracing.

        Installs a TracerProvider with a batching OTLP exporter when an
        OTEL endpoint is configured in settings.
        """
        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            # Imported here so the gRPC stack only loads when exporting
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

            provider = TracerProvider(resource=Resource(attributes={
                SERVICE_NAME: self.service_name
            }))
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint)))
            trace.set_tracer_provider(provider)
            self.tracer = provider.get_tracer(self.service_name)

            self._logger.info("OpenTelemetry tracing configured", extra={
                "extra_data": {
                    "otel_endpoint": otel_endpoint,
                    "service_name": self.service_name
                }
            })
        except Exception as e:
            self._logger.error(
                "Failed to configure OpenTelemetry tracing",
                extra={"extra_data": {"error": str(e)}}
            )

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Start a span and make it current for the duration of a `with` block.

        Exceptions raised inside the block are recorded on the span.
        """
        return self.tracer.start_as_current_span(name, attributes=attributes)

    def create_external_service_span(
        self,
        service_name: str,
        operation: str,
        attributes: Optional[Dict[str, Any]] = None
    ):
        """
        Create a span for a call to an external service.

        Args:
            service_name: Name of the external service (e.g., "elasticsearch")
            operation: The operation being performed (e.g., "search(gps_logs)")
            attributes: Optional additional attributes for the span
        """
        span_attributes = {
            "service.name": service_name,
            "operation.name": operation,
            "span.kind": "client",
        }
        if attributes:
            span_attributes.update(attributes)

        return self.create_span(f"{service_name}.{operation}", span_attributes)

    def log_audit_event(
        self,
        event_type: str,
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an audit event for data-lifecycle operations.

        Args:
            event_type: Type of audit event (e.g., "gps_log_retention")
            resource_type: Type of resource being acted upon
            resource_id: ID of the specific resource, if any
            action: Action being performed (e.g., "create", "delete")
            details: Additional details about the event
        """
        audit_data = {
            "audit_event": True,
            "event_type": event_type,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "action": action,
        }

        if details:
            audit_data["details"] = details

        self._logger.info(
            f"Audit: {event_type} - {action} on {resource_type}",
            extra={"extra_data": audit_data}
        )

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record a custom metric.

        Args:
            name: Name of the metric
            value: Metric value
            tags: Optional tags for metric dimensions
        """
        metric_data = {
            "metric_name": name,
            "metric_value": value,
        }

        if tags:
            metric_data["tags"] = tags

        self._logger.debug(
            f"Metric: {name}={value}",
            extra={"extra_data": metric_data}
        )


# Global observability service instance
_observability_service: Optional[ObservabilityService] = None


def get_observability_service() -> Optional[ObservabilityService]:
    """
    Get the global observability service instance.

    Returns:
        The observability service instance, or None if not initialized
    """
    return _observability_service


def initialize_observability(settings: Optional[Any] = None) -> ObservabilityService:
    """
    Initialize the global observability service.

    Args:
        settings: Application settings for configuration

    Returns:
        The initialized observability service
    """
    global _observability_service
    _observability_service = ObservabilityService(settings)
    return _observability_service


def set_request_id(request_id: str) -> None:
    """
    Set the request ID for the current context.

    Used by background work (the retention scheduler) that runs outside
    the request middleware.
    """
    request_id_var.set(request_id)
