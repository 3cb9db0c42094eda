"""Prometheus metric definitions for triage batch runs.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
A batch job exits after one pass, so the CLI dumps the registry to a
textfile-collector file instead of serving it.
"""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, write_to_textfile

# ---------------------------------------------------------------------------
# Batch-level metrics
# ---------------------------------------------------------------------------

BATCH_DURATION_BUCKETS = (1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)

BATCH_RUNS_TOTAL = Counter(
    "incident_triage_batch_runs_total",
    "Total number of batch runs",
    labelnames=["outcome"],
)

BATCH_DURATION = Histogram(
    "incident_triage_batch_duration_seconds",
    "Time taken to process one batch in seconds",
    buckets=BATCH_DURATION_BUCKETS,
)

ROWS_TOTAL = Counter(
    "incident_triage_rows_total",
    "Incidents processed, by final row status",
    labelnames=["status"],
)

EXTRACTIONS_TOTAL = Counter(
    "incident_triage_extractions_total",
    "Priority payload extractions, by how the payload was found",
    labelnames=["kind"],
)

# ---------------------------------------------------------------------------
# LLM metrics
# ---------------------------------------------------------------------------

LLM_CALLS_TOTAL = Counter(
    "incident_triage_llm_calls_total",
    "Total number of LLM calls",
    labelnames=["status"],
)

LLM_TOKEN_USAGE = Counter(
    "incident_triage_llm_token_usage",
    "Total LLM token usage",
    labelnames=["type"],
)


def write_metrics(path: str, registry: CollectorRegistry = REGISTRY) -> None:
    """Write the registry to ``path`` in the node-exporter textfile format."""
    write_to_textfile(path, registry)
