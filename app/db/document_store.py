"""
Almacén de documentos en memoria.

Proporciona colecciones de documentos JSON indexadas por clave con
escrituras atómicas por documento y transacciones locales multi-documento
(journal de deshacer + rollback). Cada lado del sistema (órdenes y
clientes) posee su propia base de datos: no existen transacciones que
crucen ambas.
"""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

# Journal de la transacción activa en el contexto (tarea) actual
_active_journal: ContextVar[Optional["_Journal"]] = ContextVar("document_store_journal", default=None)


class _Journal:
    """Entradas de deshacer de una transacción."""

    def __init__(self, database: "DocumentDatabase"):
        self.database = database
        self.entries: List[Tuple["DocumentCollection", str, Optional[Document]]] = []

    def remember(self, collection: "DocumentCollection", key: str, previous: Optional[Document]) -> None:
        self.entries.append((collection, key, previous))

    def rollback(self) -> None:
        for collection, key, previous in reversed(self.entries):
            if previous is None:
                collection._documents.pop(key, None)
            else:
                collection._documents[key] = previous
        self.entries.clear()


class DocumentCollection:
    """
    Colección de documentos indexados por clave.

    Los documentos se copian al entrar y al salir: quien lee nunca comparte
    referencias con el almacenamiento.
    """

    def __init__(self, name: str, database: "DocumentDatabase"):
        self.name = name
        self._database = database
        self._documents: Dict[str, Document] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, key: str) -> bool:
        return key in self._documents

    def _journal(self) -> Optional[_Journal]:
        journal = _active_journal.get()
        if journal is not None and journal.database is self._database:
            return journal
        return None

    def get(self, key: str) -> Optional[Document]:
        document = self._documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    def keys(self) -> List[str]:
        return sorted(self._documents)

    def values(self) -> List[Document]:
        return [copy.deepcopy(self._documents[key]) for key in sorted(self._documents)]

    def page(self, after: Optional[str] = None, limit: int = 100) -> List[Tuple[str, Document]]:
        """
        Página de documentos ordenados por clave, estrictamente posteriores a ``after``.
        """
        keys = [key for key in sorted(self._documents) if after is None or key > after]
        return [(key, copy.deepcopy(self._documents[key])) for key in keys[:limit]]

    def put(self, key: str, document: Document) -> None:
        """Inserta o reemplaza un documento."""
        journal = self._journal()
        if journal is not None:
            journal.remember(self, key, self._documents.get(key))
        self._documents[key] = copy.deepcopy(document)

    def delete(self, key: str) -> Optional[Document]:
        """Elimina un documento y lo devuelve (None si no existía)."""
        previous = self._documents.get(key)
        if previous is None:
            return None
        journal = self._journal()
        if journal is not None:
            journal.remember(self, key, previous)
        del self._documents[key]
        return copy.deepcopy(previous)

    def clear(self) -> None:
        self._documents.clear()


class DocumentDatabase:
    """
    Base de datos de documentos con transacciones locales.

    Example:
        ```python
        async with database.transaction():
            database.collection("orders").put(order_id, order_doc)
            database.collection("sync_records").put(record_key, record_doc)
        ```
    """

    def __init__(self, name: str):
        self.name = name
        self._collections: Dict[str, DocumentCollection] = {}
        self._transaction_lock = asyncio.Lock()

    def collection(self, name: str) -> DocumentCollection:
        if name not in self._collections:
            self._collections[name] = DocumentCollection(name, self)
        return self._collections[name]

    @property
    def collection_names(self) -> List[str]:
        return sorted(self._collections)

    def in_transaction(self) -> bool:
        journal = _active_journal.get()
        return journal is not None and journal.database is self

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["DocumentDatabase"]:
        """
        Transacción local multi-documento.

        Si el bloque lanza una excepción, todas las escrituras hechas dentro
        se deshacen y la excepción se propaga. Las transacciones anidadas se
        unen a la transacción externa.
        """
        if self.in_transaction():
            yield self
            return

        async with self._transaction_lock:
            journal = _Journal(self)
            token = _active_journal.set(journal)
            try:
                yield self
            except BaseException:
                logger.warning(f"Rolling back transaction on '{self.name}' ({len(journal.entries)} writes)")
                journal.rollback()
                raise
            finally:
                _active_journal.reset(token)

    def stats(self) -> Dict[str, int]:
        return {name: len(collection) for name, collection in self._collections.items()}
