"""
Módulo de acceso a datos.

- DocumentDatabase: almacén de documentos con transacciones locales
- OrderStore / SyncRecordStore: lado de órdenes (misma base de datos)
- CustomerStore: lado de clientes (base de datos propia)
"""

from app.db.customer_store import CustomerStore
from app.db.document_store import DocumentCollection, DocumentDatabase
from app.db.order_store import OrderStore
from app.db.sync_record_store import SyncRecordStore

__all__ = [
    "CustomerStore",
    "DocumentCollection",
    "DocumentDatabase",
    "OrderStore",
    "SyncRecordStore",
]
