from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from pipelog.utils.logging import get_logger

logger = get_logger("tracing")

_initialized = False

def init_tracer(service_name: str) -> None:
    """Installs a console-exporting tracer provider. Safe to call more than once."""
    global _initialized
    if _initialized:
        return

    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    _initialized = True
    logger.info(f"Initialized tracer for {service_name}")

def get_tracer(name: str) -> trace.Tracer:
    # Without init_tracer this is the API's no-op tracer
    return trace.get_tracer(name)
