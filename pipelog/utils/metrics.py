from typing import Dict, Any
from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST

class MetricsManager:
    """Process-wide registry for pipelog metrics, exported in Prometheus format."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(MetricsManager, cls).__new__(cls)
            cls._instance.metrics: Dict[str, Any] = {}
            cls._instance.prom_registry = CollectorRegistry()
        return cls._instance

    def counter(self, name: str, description: str = "") -> Counter:
        if name not in self.metrics:
            self.metrics[name] = Counter(name, description or f"Counter for {name}", registry=self.prom_registry)
        return self.metrics[name]

    def gauge(self, name: str, description: str = "") -> Gauge:
        if name not in self.metrics:
            self.metrics[name] = Gauge(name, description or f"Gauge for {name}", registry=self.prom_registry)
        return self.metrics[name]

    # Poll path
    def record_poll(self, records: int, total_bytes: int) -> None:
        self.counter("pipelog_polls", "Poll requests served").inc()
        if records == 0:
            self.counter("pipelog_poll_empty", "Polls answered with no new data").inc()
            return
        self.counter("pipelog_records_served", "Records returned to pollers").inc(records)
        self.counter("pipelog_bytes_served", "Payload bytes returned to pollers").inc(total_bytes)

    def record_integrity_error(self) -> None:
        self.counter("pipelog_integrity_errors", "Records skipped for a size mismatch").inc()

    # Generator path
    def record_generated(self, records: int, max_offset: int) -> None:
        self.counter("pipelog_generator_records", "Records inserted by the generator").inc(records)
        self.gauge("pipelog_log_max_offset", "Highest offset in the log").set(float(max_offset))

    def record_generator_failure(self) -> None:
        self.counter("pipelog_generator_failures", "Generator batches rolled back").inc()

    def record_skipped_tick(self) -> None:
        self.counter("pipelog_generator_skipped_ticks", "Ticks skipped because a run was active").inc()

    def exposition(self) -> bytes:
        return generate_latest(self.prom_registry)

    content_type = CONTENT_TYPE_LATEST
