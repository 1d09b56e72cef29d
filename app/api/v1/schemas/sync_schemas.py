"""
Modelos Pydantic para las operaciones de sincronización.
"""

from pydantic import BaseModel, Field


class ResolveRecordRequest(BaseModel):
    """Cierre manual de un SyncRecord por un operador."""

    note: str = Field(..., min_length=1, max_length=500, description="Motivo de la resolución")
