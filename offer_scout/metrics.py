"""Prometheus metrics for the offer pipeline."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("offer_scout", "Offer Scout application info")
app_info.info({"version": "0.1.0", "name": "offer-scout"})

# Crawl metrics
offers_discovered_total = Counter(
    "offers_discovered_total",
    "Offer URLs discovered by search crawls",
    ["strategy"],
)

offers_upserted_total = Counter(
    "offers_upserted_total",
    "Offers written to storage",
    ["result"],
)

offer_crawl_errors_total = Counter(
    "offer_crawl_errors_total",
    "Offers that failed to crawl or persist",
    ["error_type"],
)

browser_fallbacks_total = Counter(
    "browser_fallbacks_total",
    "Times a rendered browser page replaced a plain fetch",
    ["reason"],
)

# Evaluation metrics
evaluations_total = Counter(
    "evaluations_total",
    "Evaluations recorded",
    ["decision"],
)

judgment_latency_seconds = Histogram(
    "judgment_latency_seconds",
    "Judgment API call latency",
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0],
)

# Loop metrics
sweep_runs_total = Counter(
    "sweep_runs_total",
    "Poll loop sweeps",
    ["loop", "status"],
)

sweep_last_run_timestamp = Gauge(
    "sweep_last_run_timestamp",
    "Timestamp of the last completed sweep",
    ["loop"],
)


def record_discovered(strategy: str, count: int):
    """Record offers discovered by a search crawl."""
    if count:
        offers_discovered_total.labels(strategy=strategy).inc(count)


def record_upsert(is_new: bool):
    """Record an offer upsert."""
    offers_upserted_total.labels(result="inserted" if is_new else "updated").inc()


def record_crawl_error(error: BaseException):
    """Record a failed offer crawl."""
    offer_crawl_errors_total.labels(error_type=type(error).__name__).inc()


def record_browser_fallback(reason: str):
    """Record a browser render replacing a fetch."""
    browser_fallbacks_total.labels(reason=reason).inc()


def record_evaluation(decision: str):
    """Record a persisted evaluation."""
    evaluations_total.labels(decision=decision).inc()


def record_sweep(loop: str, success: bool):
    """Record a poll loop sweep."""
    status = "success" if success else "error"
    sweep_runs_total.labels(loop=loop, status=status).inc()
    sweep_last_run_timestamp.labels(loop=loop).set(time.time())
