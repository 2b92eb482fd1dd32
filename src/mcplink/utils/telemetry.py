"""OpenTelemetry spans for mcplink.

Span names:

* ``mcp.request`` and ``mcp.call_tool``: one per outbound client call.
* ``mcp.dispatch`` and ``mcp.tool``: one per request a server handles.
* ``mcp.connect``: spawning and handshaking one managed server.

Nothing is exported until :func:`configure_telemetry` installs an SDK
provider (``pip install mcplink[otel]``); until then every span is a no-op.
"""

from __future__ import annotations

import sys
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

ATTR_METHOD = "mcp.method"
ATTR_REQUEST_ID = "mcp.request.id"
ATTR_TOOL_NAME = "mcp.tool.name"
ATTR_SERVER_NAME = "mcp.server.name"
ATTR_TRANSPORT = "mcp.transport"
ATTR_ERROR_CODE = "mcp.error.code"

_INSTRUMENTATION_NAME = "mcplink"


def get_tracer(name: str | None = None) -> trace.Tracer:
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def record_rpc_error(span: trace.Span, code: int, message: str) -> None:
    """Mark *span* failed with a JSON-RPC error ``code``."""
    span.set_attribute(ATTR_ERROR_CODE, code)
    span.set_status(Status(StatusCode.ERROR, message))


def configure_telemetry(
    *,
    service_name: str = "mcplink",
    console: bool = False,
    otlp_endpoint: str | None = None,
) -> Any:
    """Install an SDK tracer provider and return it.

    Console spans are written to stderr: a server run by ``mcplink serve``
    speaks JSON-RPC on stdout.  ``otlp_endpoint`` sends spans over OTLP/gRPC
    in batches.

    Raises:
        ImportError: If ``opentelemetry-sdk`` (or, for OTLP,
            ``opentelemetry-exporter-otlp``) is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        msg = "opentelemetry-sdk is required for tracing; install mcplink[otel]"
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
                OTLPSpanExporter,
            )
        except ImportError as exc:
            msg = "opentelemetry-exporter-otlp is required for OTLP export; install mcplink[otel]"
            raise ImportError(msg) from exc
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    trace.set_tracer_provider(provider)
    return provider
