from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

# The webhook path carries the secret. Outbound Bot API calls are not
# instrumented at all because their URLs carry the token.
EXCLUDED_URLS = "/metrics,/webhook/.+"


def setup_tracing(app: FastAPI, otlp_endpoint: str) -> TracerProvider:
    """Export server spans over OTLP/HTTP. The caller shuts the provider down."""
    resource = Resource.create({"service.name": "bot-bridge", "service.version": app.version})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls=EXCLUDED_URLS)
    return provider
