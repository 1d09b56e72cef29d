"""
Sync record domain model.

A sync record tracks the propagation of one order mutation to the
customer side. It is written in the same local transaction as the
order itself, so a mutation can never exist without its record.

State machine::

    PENDING ──► DELIVERED
       │
       ├──► FAILED ──► PENDING (retry) ──► ...
       │       └────► EXHAUSTED
       └──► EXHAUSTED (permanent error)

DELIVERED is final. EXHAUSTED is final for automatic retries but an
operator (or the reconciler) may move it back to PENDING for a replay,
or to DELIVERED when a newer mutation supersedes it.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .order import parse_datetime


class SyncOperation(str, Enum):
    """Mutation being propagated."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SyncStatus(str, Enum):
    """Propagation status of a sync record."""

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    EXHAUSTED = "EXHAUSTED"


_ALLOWED_TRANSITIONS: dict[SyncStatus, set[SyncStatus]] = {
    SyncStatus.PENDING: {SyncStatus.DELIVERED, SyncStatus.FAILED, SyncStatus.EXHAUSTED},
    SyncStatus.FAILED: {SyncStatus.PENDING, SyncStatus.EXHAUSTED, SyncStatus.DELIVERED},
    SyncStatus.EXHAUSTED: {SyncStatus.PENDING, SyncStatus.DELIVERED},
    SyncStatus.DELIVERED: set(),
}


@dataclass
class SyncRecord:
    """
    Propagation tracker for one order mutation.

    Attributes:
        order_id: Order the mutation applies to
        epoch: Per-order mutation counter, starting at 1
        operation: CREATE, UPDATE or DELETE
        customer_id: Customer that must receive the replica change
        status: Current propagation status
        attempts: Propagation attempts made so far
        last_error: Message of the last failed attempt
        note: Free text set when the record is closed without a delivery
    """

    order_id: str
    epoch: int
    operation: SyncOperation
    customer_id: str
    status: SyncStatus = SyncStatus.PENDING
    attempts: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_attempt_at: datetime | None = None
    last_error: str | None = None
    delivered_at: datetime | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.operation, SyncOperation):
            self.operation = SyncOperation(self.operation)
        if not isinstance(self.status, SyncStatus):
            self.status = SyncStatus(self.status)
        if self.epoch < 1:
            raise ValueError(f"Sync record epoch must be >= 1: {self.epoch}")

    @staticmethod
    def make_key(order_id: str, epoch: int) -> str:
        """Storage key of a record."""
        return f"{order_id}:{epoch}"

    @property
    def key(self) -> str:
        return self.make_key(self.order_id, self.epoch)

    @property
    def is_terminal(self) -> bool:
        """DELIVERED or EXHAUSTED: no automatic retry is scheduled."""
        return self.status in (SyncStatus.DELIVERED, SyncStatus.EXHAUSTED)

    @property
    def is_delivered(self) -> bool:
        return self.status == SyncStatus.DELIVERED

    def _transition(self, target: SyncStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"Invalid sync record transition {self.status.value} -> {target.value} ({self.key})")
        self.status = target
        self.updated_at = datetime.now(UTC)

    def record_attempt(self) -> None:
        """Count a propagation attempt that is about to start."""
        self.attempts += 1
        self.last_attempt_at = datetime.now(UTC)
        self.updated_at = self.last_attempt_at

    def mark_pending(self) -> None:
        self._transition(SyncStatus.PENDING)

    def mark_delivered(self, note: str | None = None) -> None:
        self._transition(SyncStatus.DELIVERED)
        self.delivered_at = self.updated_at
        self.note = note
        if note is None:
            self.last_error = None

    def mark_failed(self, error: str) -> None:
        self._transition(SyncStatus.FAILED)
        self.last_error = error

    def mark_exhausted(self, error: str | None = None) -> None:
        self._transition(SyncStatus.EXHAUSTED)
        if error is not None:
            self.last_error = error

    def to_dict(self) -> dict[str, Any]:
        """Convert record to dictionary for persistence and API output."""
        return {
            "order_id": self.order_id,
            "epoch": self.epoch,
            "operation": self.operation.value,
            "customer_id": self.customer_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "last_error": self.last_error,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncRecord":
        """Create record from dictionary."""
        return cls(
            order_id=data["order_id"],
            epoch=data["epoch"],
            operation=SyncOperation(data["operation"]),
            customer_id=data["customer_id"],
            status=SyncStatus(data.get("status", SyncStatus.PENDING.value)),
            attempts=data.get("attempts", 0),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(UTC),
            updated_at=parse_datetime(data.get("updated_at")) or datetime.now(UTC),
            last_attempt_at=parse_datetime(data.get("last_attempt_at")),
            last_error=data.get("last_error"),
            delivered_at=parse_datetime(data.get("delivered_at")),
            note=data.get("note"),
        )
