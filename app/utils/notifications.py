"""
Notification utilities for operator alerts.

Alerts are raised when a sync record is exhausted or when the reconciler
finds a divergence it cannot repair. They are logged at ERROR level and
kept in a bounded in-memory history exposed by the sync monitor API.
"""

import logging
import uuid
from collections import deque
from datetime import UTC, datetime
from typing import Any, Deque, Dict, List, Optional

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class AlertRecorder:
    """
    Bounded history of operator alerts.
    """

    def __init__(self, max_history: int = 200):
        self._alerts: Deque[Dict[str, Any]] = deque(maxlen=max_history)

    def record(self, alert_type: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        alert = {
            "id": uuid.uuid4().hex,
            "alert_type": alert_type,
            "message": message,
            "details": details or {},
            "timestamp": datetime.now(UTC).isoformat(),
        }
        self._alerts.append(alert)
        return alert

    def list(self, alert_type: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Alerts, most recent first."""
        alerts = [alert for alert in reversed(self._alerts) if alert_type is None or alert["alert_type"] == alert_type]
        return alerts[:limit] if limit is not None else alerts

    def clear(self) -> None:
        self._alerts.clear()

    def __len__(self) -> int:
        return len(self._alerts)


# Global alert recorder instance
_alert_recorder: Optional[AlertRecorder] = None


def get_alert_recorder() -> AlertRecorder:
    """Get or create the global alert recorder."""
    global _alert_recorder

    if _alert_recorder is None:
        _alert_recorder = AlertRecorder(max_history=get_settings().ALERT_HISTORY_SIZE)

    return _alert_recorder


async def send_sync_alert(
    alert_type: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    recorder: Optional[AlertRecorder] = None,
) -> Dict[str, Any]:
    """
    Send an operator alert.

    Args:
        alert_type: Alert category (sync_exhausted, unrepairable_divergence, ...)
        message: Human readable description
        details: Structured context (order id, epoch, last error, ...)
        recorder: Alert history, the global one when omitted

    Returns:
        Dict: The recorded alert
    """
    if recorder is None:
        recorder = get_alert_recorder()
    alert = recorder.record(alert_type, message, details)
    logger.error(
        f"🚨 ALERT [{alert_type}]: {message}",
        extra={"alert_type": alert_type, "alert_details": alert["details"]},
    )
    return alert
