"""
Interfaces/Protocols for the sync services (Dependency Inversion Principle).

These protocols define contracts that services must implement,
allowing for loose coupling and easy testing.
"""

from typing import Protocol

from app.domain.models import OrderReplica, SyncOperation


class ISyncClient(Protocol):
    """
    Outbound channel from the order side to the customer side.

    ``propagate`` returns normally on success and raises
    ``RetryableSyncException`` or ``PermanentSyncException`` on failure.
    It never retries by itself.
    """

    async def propagate(self, operation: SyncOperation, replica: OrderReplica) -> None:
        """Apply one replica change on the customer side."""
        ...
