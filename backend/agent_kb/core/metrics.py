"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "agkb_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "agkb_ingest_duration_seconds",
    "Duration of a single document ingestion",
    labelnames=("status",),
    registry=REGISTRY,
)

INGESTED_CHUNKS = Counter(
    "agkb_ingested_chunks_total",
    "Chunks written to the vector store",
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "agkb_search_latency_seconds",
    "Latency of knowledge base searches",
    registry=REGISTRY,
)

SEARCH_RESULTS = Histogram(
    "agkb_search_results",
    "Number of hits returned per search after tenant filtering",
    buckets=(0, 1, 2, 3, 5, 8, 13, 21),
    registry=REGISTRY,
)

RETRIEVAL_DEGRADED = Counter(
    "agkb_retrieval_degraded_total",
    "Searches that returned no results because of an internal failure",
    labelnames=("reason",),
    registry=REGISTRY,
)

EMBEDDING_FAILURES = Counter(
    "agkb_embedding_failures_total",
    "Embedding requests that failed",
    labelnames=("backend",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "agkb_index_chunks",
    "Number of chunks stored in the vector table",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "INGEST_DURATION",
    "INGESTED_CHUNKS",
    "SEARCH_LATENCY",
    "SEARCH_RESULTS",
    "RETRIEVAL_DEGRADED",
    "EMBEDDING_FAILURES",
    "INDEX_SIZE",
    "metrics_response",
]
