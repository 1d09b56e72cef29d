"""
Base Repository for document store operations.

This module provides an abstract base class for the order, customer and
sync record repositories, implementing common functionality like
collection access and operation logging.
"""

import functools
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from app.db.document_store import DocumentCollection, DocumentDatabase

logger = logging.getLogger(__name__)


def log_operation(operation_name: Optional[str] = None) -> Callable:
    """
    Decorator for logging repository operations.

    Args:
        operation_name: Optional custom name for the operation

    Returns:
        Decorated function with logging
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            op_name = operation_name or f"{self.__class__.__name__}.{func.__name__}"
            logger.debug(f"Starting operation: {op_name}")

            try:
                result = await func(self, *args, **kwargs)
                logger.debug(f"Operation successful: {op_name}")
                return result
            except Exception as e:
                logger.debug(f"Operation failed: {op_name} - {e}")
                raise

        return wrapper

    return decorator


class BaseRepository(ABC):
    """
    Abstract base repository over a document database.

    Derived repositories declare the collection they own and implement
    their domain operations on top of it.
    """

    def __init__(self, database: DocumentDatabase):
        """
        Initialize the base repository.

        Args:
            database: Document database that owns the repository's collection
        """
        self.database = database
        self._repository_name: str = self.__class__.__name__
        logger.debug(f"{self._repository_name} instantiated on database '{database.name}'")

    @property
    @abstractmethod
    def collection_name(self) -> str:
        """Name of the collection owned by this repository."""

    @property
    def collection(self) -> DocumentCollection:
        return self.database.collection(self.collection_name)

    async def count(self) -> int:
        return len(self.collection)
