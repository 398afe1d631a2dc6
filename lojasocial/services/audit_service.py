# ==============================================================================
# SERVICIO DE AUDITORÍA
# ==============================================================================
# Centraliza toda la lógica de registro de auditoría.
# Formatea mensajes humanizados y categoriza eventos.
# ==============================================================================

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from lojasocial.models import (
    AuditLog,
    AuditType,
    Delivery,
    DeliveryStatus,
    Kit,
    Product,
    StockMovement,
    format_quantity,
    utc_now,
)
from lojasocial.repositories import AuditRepository


# Nombres legibles de estados para los mensajes
STATUS_LABELS = {
    DeliveryStatus.PENDING_APPROVAL: 'PENDIENTE DE APROBACIÓN',
    DeliveryStatus.APPROVED: 'APROBADA',
    DeliveryStatus.REJECTED: 'RECHAZADA',
    DeliveryStatus.SCHEDULED: 'PROGRAMADA',
    DeliveryStatus.CONFIRMED: 'CONFIRMADA',
    DeliveryStatus.CANCELLED: 'CANCELADA',
}

MOVEMENT_LABELS = {
    'ENTRY': 'Entrada',
    'EXIT': 'Salida',
    'ADJUSTMENT': 'Ajuste',
    'TRANSFER': 'Transferencia',
}


class AuditService:
    """
    Servicio para registro y consulta de auditoría.

    Centraliza:
    - Registro de eventos con mensajes humanizados
    - Categorización de eventos (ENTREGA, STOCK, PRODUCTO, KIT, ...)
    - Búsqueda y filtrado de logs

    La regla de oro: todo movimiento de stock y todo cambio de estado de
    una entrega deja un registro, dentro de la misma transacción.
    """

    def __init__(
        self,
        audit_repo: AuditRepository,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Inicializa el servicio de auditoría.

        Args:
            audit_repo: Repositorio de auditoría
            clock: Fuente de fecha/hora de los registros (la misma que los demás servicios)
        """
        self.audit_repo = audit_repo
        self.clock = clock

    # =========================================================================
    # REGISTRO DE EVENTOS
    # =========================================================================

    def log(
        self,
        log_type: AuditType,
        user: str,
        message: str,
        related_id: str = '',
        details: Dict[str, Any] = None
    ) -> None:
        """
        Registra un evento de auditoría genérico.

        Args:
            log_type: Tipo de evento
            user: Usuario que realizó la acción
            message: Mensaje descriptivo humanizado
            related_id: ID relacionado (entrega, producto, etc.)
            details: Detalles adicionales
        """
        self.audit_repo.log(log_type, user, message, related_id, details, timestamp=self.clock())

    def log_stock_movement(self, user: str, movement: StockMovement) -> None:
        """Registra un movimiento de stock aplicado."""
        label = MOVEMENT_LABELS.get(movement.type.value, movement.type.value)
        sign = '+' if movement.delta >= 0 else ''
        message = (
            f"{label} de stock: {sign}{format_quantity(movement.delta)} "
            f"{movement.product_name} - Nuevo stock: {format_quantity(movement.new_stock)} "
            f"- Motivo: {movement.reason} - Por {user}"
        )
        self.log(
            AuditType.STOCK,
            user,
            message,
            movement.product_id,
            {
                'movement_id': movement.id,
                'type': movement.type.value,
                'delta': movement.delta,
                'new_stock': movement.new_stock,
                'reference_document': movement.reference_document,
            }
        )

    def log_product_created(self, user: str, product: Product) -> None:
        message = f"Producto creado: {product.name} por {user}"
        self.log(AuditType.PRODUCTO, user, message, product.id)

    def log_product_updated(self, user: str, product_id: str, changes: Dict[str, Any]) -> None:
        fields = ', '.join(sorted(changes.keys()))
        message = f"Producto {product_id} editado por {user}: {fields}"
        self.log(AuditType.PRODUCTO, user, message, product_id, {'fields': sorted(changes.keys())})

    def log_product_active_changed(self, user: str, product: Product, is_active: bool) -> None:
        action = 'reactivado' if is_active else 'desactivado'
        message = f"Producto {product.name} {action} por {user}"
        self.log(AuditType.PRODUCTO, user, message, product.id)

    def log_kit_saved(self, user: str, kit: Kit, created: bool) -> None:
        action = 'creado' if created else 'editado'
        message = f"Kit {kit.name} {action} por {user} - {len(kit.items)} productos"
        self.log(AuditType.KIT, user, message, kit.id, {'items': len(kit.items)})

    def log_kit_active_changed(self, user: str, kit: Kit, is_active: bool) -> None:
        action = 'reactivado' if is_active else 'desactivado'
        message = f"Kit {kit.name} {action} por {user}"
        self.log(AuditType.KIT, user, message, kit.id)

    def log_beneficiary_saved(self, user: str, beneficiary_id: str, name: str, action: str) -> None:
        message = f"Beneficiario {name} {action} por {user}"
        self.log(AuditType.BENEFICIARIO, user, message, beneficiary_id)

    def log_delivery_created(self, user: str, delivery: Delivery) -> None:
        """
        Registra la creación de una entrega (solicitud o programación directa).

        Args:
            user: Usuario que creó la entrega
            delivery: Entrega creada
        """
        message = (
            f"Entrega {delivery.id} creada por {user} - {delivery.kit_name} "
            f"para {delivery.beneficiary_name} - Estado: {STATUS_LABELS[delivery.status]}"
        )
        self.log(
            AuditType.ENTREGA,
            user,
            message,
            delivery.id,
            {'status': delivery.status.value, 'kit_id': delivery.kit_id}
        )

    def log_delivery_status_change(
        self,
        user: str,
        delivery_id: str,
        old_status: DeliveryStatus,
        new_status: DeliveryStatus,
        reason: Optional[str] = None
    ) -> None:
        """
        Registra un cambio de estado de entrega.

        Args:
            user: Usuario que cambió el estado
            delivery_id: ID de la entrega
            old_status: Estado anterior
            new_status: Nuevo estado
            reason: Motivo (rechazo o cancelación)
        """
        message = (
            f"Entrega {delivery_id}: {STATUS_LABELS[old_status]} → "
            f"{STATUS_LABELS[new_status]} por {user}"
        )
        if reason:
            message += f" - Motivo: {reason}"
        self.log(
            AuditType.ENTREGA,
            user,
            message,
            delivery_id,
            {'from': old_status.value, 'to': new_status.value, 'reason': reason}
        )

    # =========================================================================
    # CONSULTA
    # =========================================================================

    def get_logs(
        self,
        log_type: Optional[AuditType] = None,
        related_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[AuditLog]:
        """
        Obtiene logs filtrados, más recientes primero.

        Args:
            log_type: Filtrar por tipo
            related_id: Filtrar por ID relacionado
            limit: Máximo de registros
        """
        logs = self.audit_repo.load()
        if log_type is not None:
            logs = [log for log in logs if log.type == log_type]
        if related_id:
            logs = [log for log in logs if log.related_id == related_id]
        if limit is not None:
            logs = logs[:limit]
        return logs

    def search_logs(self, query: str) -> List[AuditLog]:
        """Busca texto en mensaje, usuario o ID relacionado."""
        q = (query or '').strip().lower()
        if not q:
            return self.audit_repo.load()
        return [
            log for log in self.audit_repo.load()
            if q in log.message.lower() or q in log.user.lower() or q in log.related_id.lower()
        ]
