# ==============================================================================
# REPOSITORIO DE AUDITORÍA
# ==============================================================================
# Encapsula el acceso a la colección "audit".
# Los registros se escriben dentro de la misma transacción que el cambio
# que describen: si el cambio se deshace, el registro también.
# ==============================================================================

from datetime import datetime
from typing import Any, Dict, List, Optional

from lojasocial.models import AuditLog, datetime_to_str, utc_now
from .base import BaseRepository


class AuditRepository(BaseRepository):
    """
    Repositorio para gestión del log de auditoría.

    Formato del documento:
    {
        "type": "ENTREGA",
        "user": "colaborador-1",
        "message": "Entrega 3f2a... confirmada por colaborador-1",
        "timestamp": "2024-01-01T10:00:00+00:00",
        "related_id": "3f2a...",
        "details": {...}
    }
    """

    COLLECTION = 'audit'

    # Límite de registros para evitar archivos muy grandes
    MAX_LOGS = 10000

    def _to_entity(self, data) -> AuditLog:
        return AuditLog.from_dict(data)

    def load(self) -> List[AuditLog]:
        """
        Carga todos los logs de auditoría.

        Returns:
            Lista de logs (más recientes primero)
        """
        return list(reversed(self.get_all()))

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Dict[str, Any] = None,
        timestamp: Optional[datetime] = None
    ) -> AuditLog:
        """
        Registra un nuevo evento de auditoría.

        Args:
            log_type: Tipo de evento (ENTREGA, STOCK, PRODUCTO, KIT, ...)
            user: Usuario que realizó la acción
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (entrega, producto, etc.)
            details: Detalles adicionales
            timestamp: Fecha/hora del evento (por defecto UTC actual)
        """
        entry = AuditLog(
            type=log_type,
            user=user or 'sistema',
            message=message,
            timestamp=datetime_to_str(timestamp or utc_now()),
            related_id=related_id or '',
            details=details or {}
        )
        with self.transaction():
            saved = self.create(entry)
            self._trim()
        return saved

    def _trim(self) -> None:
        """Mantiene solo los últimos MAX_LOGS registros."""
        excess = self.store.count(self.COLLECTION) - self.MAX_LOGS
        if excess <= 0:
            return
        for log_id in self.store.ids(self.COLLECTION)[:excess]:
            self.store.delete(self.COLLECTION, log_id)
