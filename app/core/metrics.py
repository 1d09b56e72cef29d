"""
Metrics collection and reporting system.

This module collects in-process metrics for propagation outcomes,
reconciliation runs and API requests, and summarizes them for the sync
monitor endpoints.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_MAX_ENTRIES = {
    "propagations": 5000,
    "reconcile_runs": 500,
    "api_requests": 5000,
}

# Global metrics storage (in production this would be a proper metrics backend)
_metrics_data: Dict[str, List[Dict[str, Any]]] = {name: [] for name in _MAX_ENTRIES}


def _append(series: str, metric: Dict[str, Any]) -> None:
    entries = _metrics_data[series]
    entries.append(metric)
    limit = _MAX_ENTRIES[series]
    if len(entries) > limit:
        _metrics_data[series] = entries[-limit:]


def record_propagation_metric(
    operation: str,
    status: str,
    duration_seconds: float,
    attempts: int,
    source: str = "coordinator",
    metadata: Optional[Dict[str, Any]] = None,
):
    """
    Record the outcome of one propagation attempt.

    Args:
        operation: CREATE, UPDATE or DELETE
        status: Resulting sync record status
        duration_seconds: Duration of the remote call
        attempts: Attempts made so far on the record
        source: Who attempted it (coordinator, retry, reconciler)
        metadata: Additional metadata
    """
    metric = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "operation": operation,
        "status": status,
        "duration_seconds": duration_seconds,
        "attempts": attempts,
        "source": source,
        "metadata": metadata or {},
    }
    _append("propagations", metric)
    logger.debug(f"Recorded propagation metric {operation} -> {status} ({source})")


def record_reconcile_metric(report: Dict[str, Any]):
    """
    Record the report of one reconciliation run.
    """
    metric = {"timestamp": datetime.now(timezone.utc).isoformat(), **report}
    _append("reconcile_runs", metric)
    logger.debug("Recorded reconcile run metric")


def record_api_request(endpoint: str, method: str, status_code: int, duration_ms: float):
    """
    Record an API request metric.

    Args:
        endpoint: Request path
        method: HTTP method
        status_code: Response status code
        duration_ms: Request duration in milliseconds
    """
    metric = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoint": endpoint,
        "method": method,
        "status_code": status_code,
        "duration_ms": duration_ms,
        "success": 200 <= status_code < 400,
    }
    _append("api_requests", metric)


def get_metrics_summary() -> Dict[str, Any]:
    """
    Get a summary of collected metrics.

    Returns:
        Dict: Metrics summary
    """
    propagations = _metrics_data["propagations"]
    runs = _metrics_data["reconcile_runs"]
    api_requests = _metrics_data["api_requests"]

    by_status = Counter(metric["status"] for metric in propagations)
    by_operation = Counter(metric["operation"] for metric in propagations)

    return {
        "data_points": {name: len(entries) for name, entries in _metrics_data.items()},
        "propagation_metrics": {
            "total_attempts": len(propagations),
            "by_status": dict(by_status),
            "by_operation": dict(by_operation),
            "avg_duration": sum(metric["duration_seconds"] for metric in propagations) / max(len(propagations), 1),
        },
        "reconcile_metrics": {
            "total_runs": len(runs),
            "last_run": runs[-1] if runs else None,
            "total_repairs": sum(run.get("repairs", 0) for run in runs),
        },
        "api_metrics": {
            "total_requests": len(api_requests),
            "avg_duration_ms": sum(req["duration_ms"] for req in api_requests) / max(len(api_requests), 1),
            "success_rate": len([req for req in api_requests if req["success"]]) / max(len(api_requests), 1) * 100,
        },
    }


def clear_metrics():
    """
    Clear all collected metrics.
    """
    global _metrics_data

    _metrics_data = {name: [] for name in _MAX_ENTRIES}
    logger.info("Metrics data cleared")
