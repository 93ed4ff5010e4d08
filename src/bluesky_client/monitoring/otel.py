"""OpenTelemetry integration for client observability events."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from ..events import ObservabilityEvent, ObservabilityEventType
from ..logging import logger

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter
    from opentelemetry.trace import Span, Tracer

_FAILURE_EVENTS = {
    ObservabilityEventType.ERROR,
    ObservabilityEventType.RETRY_GIVE_UP,
    ObservabilityEventType.CONNECT_FAILED,
    ObservabilityEventType.THREAD_LOOKUP_FAILED,
}


class OpenTelemetryConfig(BaseModel):
    """OpenTelemetry configuration.

    Usage:
        ```python
        from bluesky_client.monitoring import OpenTelemetryConfig, OpenTelemetryExporter

        otel = OpenTelemetryExporter(
            OpenTelemetryConfig(service_name="firehose-reader", endpoint="http://localhost:4317")
        )
        client = BlueskyClient(on_event=otel.handle_event)
        ```

    Attributes:
        service_name: Service name for traces and metrics
        endpoint: OTLP endpoint URL; without one, providers are set up but nothing is exported
        headers: Additional headers for OTLP requests
        insecure: Use insecure connection (no TLS)
        timeout: Request timeout in seconds
        resource_attributes: Additional resource attributes
        enabled: Enable/disable OpenTelemetry export
        trace_enabled: Enable trace export
        metrics_enabled: Enable metrics export
        export_interval: Metric export interval in seconds
    """

    service_name: str = "bluesky-client"
    endpoint: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    insecure: bool = False
    timeout: float = Field(default=30.0, ge=1.0)
    resource_attributes: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True
    trace_enabled: bool = True
    metrics_enabled: bool = True
    export_interval: float = Field(default=5.0, ge=1.0)

    @classmethod
    def from_env(cls) -> OpenTelemetryConfig:
        """Create config from environment variables.

        Reads:
            - OTEL_SERVICE_NAME
            - OTEL_EXPORTER_OTLP_ENDPOINT
            - OTEL_EXPORTER_OTLP_HEADERS
            - OTEL_EXPORTER_OTLP_INSECURE

        Returns:
            OpenTelemetryConfig from environment
        """
        headers = {}
        headers_str = os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "")
        if headers_str:
            for pair in headers_str.split(","):
                if "=" in pair:
                    key, value = pair.split("=", 1)
                    headers[key.strip()] = value.strip()

        return cls(
            service_name=os.getenv("OTEL_SERVICE_NAME", "bluesky-client"),
            endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
            headers=headers,
            insecure=os.getenv("OTEL_EXPORTER_OTLP_INSECURE", "").lower() == "true",
        )


class OpenTelemetryExporter:
    """Record client events as OpenTelemetry metrics.

    Counters:
        bluesky.stream.messages / bluesky.stream.posts / bluesky.stream.parse_errors
            Session totals, added when a streaming session ends
        bluesky.retries       Retry attempts, labelled by operation
        bluesky.errors        Failures, labelled by event type
        bluesky.pages         Listing pages fetched, labelled by operation

    Requires:
        pip install bluesky-client[observability]
    """

    def __init__(self, config: OpenTelemetryConfig, meter: Meter | None = None) -> None:
        self.config = config
        self._tracer: Tracer | None = None
        self._meter: Meter | None = meter
        self._instruments: dict[str, Any] | None = None
        self._initialized = meter is not None
        self._owns_providers = False

    def _ensure_initialized(self) -> None:
        """Lazily initialize OpenTelemetry components."""
        if self._initialized:
            return

        try:
            from opentelemetry import metrics, trace
            from opentelemetry.sdk.metrics import MeterProvider
            from opentelemetry.sdk.resources import Resource
            from opentelemetry.sdk.trace import TracerProvider
        except ImportError as e:
            raise ImportError(
                "OpenTelemetry packages not installed. "
                "Install with: pip install bluesky-client[observability]"
            ) from e

        resource = Resource.create(
            {"service.name": self.config.service_name, **self.config.resource_attributes}
        )

        if self.config.trace_enabled:
            tracer_provider = TracerProvider(resource=resource)

            if self.config.endpoint:
                from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                    OTLPSpanExporter,
                )
                from opentelemetry.sdk.trace.export import BatchSpanProcessor

                span_exporter = OTLPSpanExporter(
                    endpoint=self.config.endpoint,
                    headers=self.config.headers or None,
                    insecure=self.config.insecure,
                    timeout=int(self.config.timeout),
                )
                tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

            trace.set_tracer_provider(tracer_provider)
            self._tracer = trace.get_tracer(self.config.service_name)

        if self.config.metrics_enabled:
            readers = []
            if self.config.endpoint:
                from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
                    OTLPMetricExporter,
                )
                from opentelemetry.sdk.metrics.export import (
                    PeriodicExportingMetricReader,
                )

                metric_exporter = OTLPMetricExporter(
                    endpoint=self.config.endpoint,
                    headers=self.config.headers or None,
                    insecure=self.config.insecure,
                    timeout=int(self.config.timeout),
                )
                readers.append(
                    PeriodicExportingMetricReader(
                        metric_exporter,
                        export_interval_millis=int(self.config.export_interval * 1000),
                    )
                )

            metrics.set_meter_provider(
                MeterProvider(resource=resource, metric_readers=readers)
            )
            self._meter = metrics.get_meter(self.config.service_name)

        self._owns_providers = True
        self._initialized = True

    def _instrument(self, meter: Meter, name: str) -> Any:
        if self._instruments is None:
            self._instruments = {
                "messages": meter.create_counter(
                    "bluesky.stream.messages",
                    description="Firehose messages received",
                    unit="messages",
                ),
                "posts": meter.create_counter(
                    "bluesky.stream.posts",
                    description="Posts delivered to the sink",
                    unit="posts",
                ),
                "parse_errors": meter.create_counter(
                    "bluesky.stream.parse_errors",
                    description="Firehose messages that failed to parse",
                    unit="errors",
                ),
                "retries": meter.create_counter(
                    "bluesky.retries",
                    description="Retry attempts",
                    unit="retries",
                ),
                "errors": meter.create_counter(
                    "bluesky.errors",
                    description="Failed operations and lookups",
                    unit="errors",
                ),
                "pages": meter.create_counter(
                    "bluesky.pages",
                    description="Listing pages fetched",
                    unit="pages",
                ),
            }
        return self._instruments[name]

    def handle_event(self, event: ObservabilityEvent) -> None:
        """Event handler for `BlueskyClient(on_event=...)`."""
        if not self.config.enabled or not self.config.metrics_enabled:
            return

        self._ensure_initialized()
        meter = self._meter
        if meter is None:
            return

        meta = event.meta
        labels: dict[str, str] = {}
        if "operation" in meta:
            labels["operation"] = str(meta["operation"])

        if event.type is ObservabilityEventType.SESSION_END:
            self._instrument(meter, "messages").add(meta.get("messages", 0), labels)
            self._instrument(meter, "posts").add(meta.get("posts", 0), labels)
            self._instrument(meter, "parse_errors").add(meta.get("parse_errors", 0), labels)
        elif event.type is ObservabilityEventType.RETRY_ATTEMPT:
            self._instrument(meter, "retries").add(1, labels)
        elif event.type is ObservabilityEventType.PAGE_FETCHED:
            self._instrument(meter, "pages").add(1, labels)
        elif event.type in _FAILURE_EVENTS:
            self._instrument(meter, "errors").add(1, {**labels, "type": event.type.value})

    def create_span(self, name: str, **attributes: Any) -> Span | None:
        """Create a custom span for manual instrumentation.

        Returns:
            Span context manager, or None if tracing disabled
        """
        if not self.config.enabled or not self.config.trace_enabled:
            return None

        self._ensure_initialized()

        if not self._tracer:
            return None

        return self._tracer.start_as_current_span(name, attributes=attributes)

    def shutdown(self) -> None:
        """Shutdown OpenTelemetry providers."""
        if not self._owns_providers:
            return

        from opentelemetry import metrics, trace

        for provider in (trace.get_tracer_provider(), metrics.get_meter_provider()):
            shutdown = getattr(provider, "shutdown", None)
            if shutdown is None:
                continue
            try:
                shutdown()
            except Exception as e:
                logger.warning(f"OpenTelemetry shutdown failed: {e}")
