# ==============================================================================
# SERVICIO DE ENTREGAS - Máquina de estados
# ==============================================================================
# Ciclo de vida de una entrega:
#
#   solicitud del beneficiario          creación directa (colaborador)
#            │                                      │
#   PENDING_APPROVAL ──► APPROVED ──► SCHEDULED ◄───┘
#            │                            │
#            ▼                            ▼
#        REJECTED                     CONFIRMED  (descuenta stock)
#
#   Cualquier estado no terminal ──► CANCELLED
#
# CONFIRMED, REJECTED y CANCELLED son terminales.
# Cada transición relee el estado dentro de una transacción del almacén
# (compare-and-set): dos confirmaciones simultáneas descuentan stock una vez.
# ==============================================================================

import math
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from lojasocial.models import (
    CUSTOM_KIT_ID,
    Beneficiary,
    Delivery,
    DeliveryStatus,
    Kit,
    KitItem,
    MovementType,
    as_aware,
    format_quantity,
    utc_now,
)
from lojasocial.performance_logger import profile_function
from lojasocial.repositories import (
    BeneficiaryRepository,
    DeliveryRepository,
    KitRepository,
    LiveQuery,
)
from lojasocial.services.audit_service import AuditService
from lojasocial.services.availability_service import AvailabilityService
from lojasocial.services.results import (
    NotFoundError,
    ValidationError,
    require,
    service_operation,
)
from lojasocial.services.stock_service import StockService


# Tabla de transiciones válidas
ALLOWED_TRANSITIONS = {
    DeliveryStatus.PENDING_APPROVAL: frozenset([
        DeliveryStatus.APPROVED,
        DeliveryStatus.REJECTED,
        DeliveryStatus.CANCELLED,
    ]),
    DeliveryStatus.APPROVED: frozenset([
        DeliveryStatus.SCHEDULED,
        DeliveryStatus.CANCELLED,
    ]),
    DeliveryStatus.SCHEDULED: frozenset([
        DeliveryStatus.CONFIRMED,
        DeliveryStatus.CANCELLED,
    ]),
    DeliveryStatus.CONFIRMED: frozenset(),
    DeliveryStatus.REJECTED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}

# Textos del movimiento de salida al confirmar
CONFIRMATION_REASON = 'Entrega confirmada'

# Días que cubre la consulta de próximas entregas
UPCOMING_DAYS = 7


def can_transition(current: DeliveryStatus, new: DeliveryStatus) -> bool:
    """Verifica si la tabla permite pasar de current a new."""
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def _parse_status(status: Any) -> DeliveryStatus:
    if isinstance(status, DeliveryStatus):
        return status
    try:
        return DeliveryStatus(str(status).strip().upper())
    except ValueError:
        raise ValidationError(f'Estado inválido: {status}')


class DeliveryService:
    """
    Servicio de entregas.

    Responsabilidades:
    - Crear entregas (solicitud del beneficiario o programación directa)
    - Aprobar, rechazar, programar, confirmar y cancelar
    - Descontar stock al confirmar, todo o nada
    - Consultas y consultas en vivo de entregas
    """

    def __init__(
        self,
        delivery_repo: DeliveryRepository,
        beneficiary_repo: BeneficiaryRepository,
        kit_repo: KitRepository,
        availability_service: AvailabilityService,
        stock_service: StockService,
        audit_service: AuditService = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Inicializa el servicio de entregas.

        Args:
            delivery_repo: Repositorio de entregas
            beneficiary_repo: Repositorio de beneficiarios
            kit_repo: Repositorio de kits
            availability_service: Verificador de disponibilidad
            stock_service: Libro de stock (salidas al confirmar)
            audit_service: Servicio de auditoría (opcional)
            clock: Fuente de fecha/hora (inyectable para tests)
        """
        self.delivery_repo = delivery_repo
        self.beneficiary_repo = beneficiary_repo
        self.kit_repo = kit_repo
        self.availability_service = availability_service
        self.stock_service = stock_service
        self.audit_service = audit_service
        self.clock = clock

    # =========================================================================
    # VALIDACIONES INTERNAS
    # =========================================================================

    def _parse_when(self, value: Any) -> Tuple[datetime, bool]:
        """
        Normaliza una fecha de programación.

        Acepta date, datetime o string ISO ('2024-05-01' o con hora).

        Returns:
            Tupla (datetime con zona horaria, es_solo_fecha)
        """
        if value is None or value == '':
            raise ValidationError('La fecha de la entrega es obligatoria')
        if isinstance(value, str):
            text = value.strip()
            try:
                if len(text) == 10:
                    value = date.fromisoformat(text)
                else:
                    value = datetime.fromisoformat(text)
            except ValueError:
                raise ValidationError(f'Fecha inválida: {value}')
        if isinstance(value, datetime):
            return as_aware(value), False
        if isinstance(value, date):
            return as_aware(datetime(value.year, value.month, value.day)), True
        raise ValidationError(f'Fecha inválida: {value}')

    def _require_future(self, value: Any) -> datetime:
        """
        Valida que la fecha no esté en el pasado.
        Una fecha sin hora se compara por día (hoy es válido); una fecha con
        hora se compara por instante.
        """
        when, date_only = self._parse_when(value)
        now = self.clock()
        if date_only:
            if when.date() < now.date():
                raise ValidationError('La fecha de la entrega no puede estar en el pasado')
        elif when < now:
            raise ValidationError('La fecha de la entrega no puede estar en el pasado')
        return when

    def _load(self, delivery_id: str) -> Delivery:
        delivery = self.delivery_repo.get_by_id(delivery_id)
        if delivery is None:
            raise NotFoundError(f'Entrega {delivery_id} no encontrada', delivery_id=delivery_id)
        return delivery

    def _active_beneficiary(self, beneficiary_id: str) -> Beneficiary:
        beneficiary = self.beneficiary_repo.get_by_id(beneficiary_id)
        if beneficiary is None:
            raise NotFoundError(
                f'Beneficiario {beneficiary_id} no encontrado', beneficiary_id=beneficiary_id
            )
        if not beneficiary.is_active:
            raise ValidationError(f'El beneficiario {beneficiary.name} no está activo')
        return beneficiary

    def _active_kit(self, kit_id: str) -> Kit:
        kit = self.kit_repo.get_by_id(kit_id)
        if kit is None:
            raise NotFoundError(f'Kit {kit_id} no encontrado', kit_id=kit_id)
        if not kit.is_active:
            raise ValidationError(f'El kit {kit.name} no está activo')
        return kit

    def _require_status(
        self,
        delivery: Delivery,
        expected: DeliveryStatus,
        action: str
    ) -> None:
        if delivery.status != expected:
            raise ValidationError(
                f'Solo se pueden {action} entregas en estado {expected.value} '
                f'(estado actual: {delivery.status.value})',
                current_status=delivery.status.value
            )

    def _delivery_items(self, delivery: Delivery) -> List[KitItem]:
        """Líneas a entregar: la selección personalizada o los items del kit."""
        if delivery.custom_items:
            return delivery.custom_items
        kit = self.kit_repo.get_by_id(delivery.kit_id)
        if kit is None:
            raise NotFoundError(
                f'El kit {delivery.kit_name} de la entrega ya no existe', kit_id=delivery.kit_id
            )
        return kit.items

    def _ensure_available(self, items: List[KitItem], kit_name: str) -> None:
        """
        Raises:
            ValidationError: Si alguna línea no puede cubrirse con el stock actual
        """
        details = self.availability_service.get_items_details(items)
        missing = [d for d in details.values() if not d.is_available]
        if not missing:
            return
        parts = []
        for d in missing:
            if not d.is_active:
                parts.append(f'{d.product_name} (no disponible)')
            else:
                parts.append(
                    f'{d.product_name} (disponible {format_quantity(d.available_stock)}, '
                    f'requerido {format_quantity(d.required_quantity)})'
                )
        raise ValidationError(
            f"El kit {kit_name} no está disponible: {'; '.join(parts)}",
            unavailable=[d.to_dict() for d in missing]
        )

    def _apply_transition(
        self,
        delivery: Delivery,
        new_status: DeliveryStatus,
        actor: str,
        fields: Dict[str, Any],
        reason: Optional[str] = None
    ) -> Delivery:
        """
        Persiste un cambio de estado. Debe llamarse dentro de una transacción,
        después de validar las precondiciones.
        """
        if not can_transition(delivery.status, new_status):
            raise ValidationError(
                f'Transición no permitida: {delivery.status.value} → {new_status.value}',
                current_status=delivery.status.value
            )
        changes = dict(fields)
        changes['status'] = new_status
        changes['updated_at'] = self.clock()
        updated = self.delivery_repo.update(delivery.id, changes)
        if self.audit_service:
            self.audit_service.log_delivery_status_change(
                actor, delivery.id, delivery.status, new_status, reason
            )
        return updated

    # =========================================================================
    # CREACIÓN
    # =========================================================================

    @profile_function(name="Programar entrega directa")
    @service_operation("Error al crear la entrega")
    def create_delivery(
        self,
        beneficiary_id: str,
        kit_id: str,
        scheduled_date: Any,
        created_by: str,
        notes: str = ''
    ) -> Dict[str, Any]:
        """
        Programa una entrega directamente (colaborador), sin pasar por aprobación.

        Args:
            beneficiary_id: ID del beneficiario (debe estar activo)
            kit_id: ID del kit (activo y disponible)
            scheduled_date: Fecha de entrega (no en el pasado)
            created_by: Colaborador que programa
            notes: Observaciones

        Returns:
            Dict con ok y delivery (estado SCHEDULED)
        """
        created_by = require(created_by, 'Usuario no autenticado')
        beneficiary_id = require(beneficiary_id, 'El beneficiario es obligatorio')
        kit_id = require(kit_id, 'El kit es obligatorio')
        when = self._require_future(scheduled_date)

        with self.delivery_repo.transaction():
            beneficiary = self._active_beneficiary(beneficiary_id)
            kit = self._active_kit(kit_id)
            self._ensure_available(kit.items, kit.name)

            now = self.clock()
            delivery = self.delivery_repo.create(Delivery(
                id='',
                beneficiary_id=beneficiary.id,
                beneficiary_name=beneficiary.name,
                kit_id=kit.id,
                kit_name=kit.name,
                status=DeliveryStatus.SCHEDULED,
                scheduled_date=when,
                notes=notes or '',
                created_at=now,
                created_by=created_by,
                updated_at=now,
            ))
            if self.audit_service:
                self.audit_service.log_delivery_created(created_by, delivery)

        return {'ok': True, 'delivery': delivery}

    @service_operation("Error al solicitar la entrega")
    def request_delivery(
        self,
        beneficiary_id: str,
        kit_id: str,
        notes: str = '',
        requested_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Solicitud de un kit por parte del beneficiario.
        No se verifica disponibilidad: eso ocurre al programar.

        Args:
            beneficiary_id: ID del beneficiario (activo)
            kit_id: ID del kit (activo)
            notes: Observaciones de la solicitud
            requested_by: Usuario que solicita (por defecto el beneficiario)

        Returns:
            Dict con ok y delivery (estado PENDING_APPROVAL)
        """
        beneficiary_id = require(beneficiary_id, 'El beneficiario es obligatorio')
        kit_id = require(kit_id, 'El kit es obligatorio')

        with self.delivery_repo.transaction():
            beneficiary = self._active_beneficiary(beneficiary_id)
            kit = self._active_kit(kit_id)
            delivery = self._create_request(
                beneficiary, kit.id, kit.name, notes or '',
                requested_by or beneficiary.id, []
            )
        return {'ok': True, 'delivery': delivery}

    @service_operation("Error al solicitar la entrega")
    def request_custom_delivery(
        self,
        beneficiary_id: str,
        kit_name: str,
        items: List[KitItem],
        request_notes: str,
        base_kit_id: Optional[str] = None,
        requested_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Solicitud de un kit personalizado. Las líneas quedan guardadas en la
        entrega y son las que se verifican y descuentan más adelante.

        Returns:
            Dict con ok y delivery (estado PENDING_APPROVAL)
        """
        beneficiary_id = require(beneficiary_id, 'El beneficiario es obligatorio')
        kit_name = require(kit_name, 'El nombre del kit es obligatorio')
        if not items:
            raise ValidationError('Añade al menos un producto')
        for item in items:
            if not math.isfinite(item.quantity) or item.quantity <= 0:
                raise ValidationError(
                    f'La cantidad de {item.product_name or item.product_id} debe ser mayor a 0',
                    product_id=item.product_id
                )

        with self.delivery_repo.transaction():
            beneficiary = self._active_beneficiary(beneficiary_id)
            delivery = self._create_request(
                beneficiary, base_kit_id or CUSTOM_KIT_ID, kit_name,
                request_notes or '', requested_by or beneficiary.id,
                AvailabilityService.merge_items(items)
            )
        return {'ok': True, 'delivery': delivery}

    def _create_request(
        self,
        beneficiary: Beneficiary,
        kit_id: str,
        kit_name: str,
        request_notes: str,
        created_by: str,
        custom_items: List[KitItem]
    ) -> Delivery:
        now = self.clock()
        delivery = self.delivery_repo.create(Delivery(
            id='',
            beneficiary_id=beneficiary.id,
            beneficiary_name=beneficiary.name,
            kit_id=kit_id,
            kit_name=kit_name,
            status=DeliveryStatus.PENDING_APPROVAL,
            custom_items=custom_items,
            requested_date=now,
            request_notes=request_notes,
            created_at=now,
            created_by=created_by,
            updated_at=now,
        ))
        if self.audit_service:
            self.audit_service.log_delivery_created(created_by, delivery)
        return delivery

    # =========================================================================
    # REVISIÓN DE SOLICITUDES
    # =========================================================================

    @service_operation("Error al aprobar la solicitud")
    def approve_delivery_request(self, delivery_id: str, approver_id: str) -> Dict[str, Any]:
        """
        Aprueba una solicitud pendiente.

        Returns:
            Dict con ok y delivery (estado APPROVED)
        """
        delivery_id = require(delivery_id, 'El ID de la entrega es obligatorio')
        approver_id = require(approver_id, 'Usuario no autenticado')

        with self.delivery_repo.transaction():
            delivery = self._load(delivery_id)
            self._require_status(delivery, DeliveryStatus.PENDING_APPROVAL, 'aprobar')
            updated = self._apply_transition(delivery, DeliveryStatus.APPROVED, approver_id, {
                'approved_date': self.clock(),
                'approved_by': approver_id,
            })
        return {'ok': True, 'delivery': updated}

    @service_operation("Error al rechazar la solicitud")
    def reject_delivery_request(
        self,
        delivery_id: str,
        approver_id: str,
        reason: str
    ) -> Dict[str, Any]:
        """
        Rechaza una solicitud pendiente. El motivo es obligatorio.

        Returns:
            Dict con ok y delivery (estado REJECTED)
        """
        delivery_id = require(delivery_id, 'El ID de la entrega es obligatorio')
        approver_id = require(approver_id, 'Usuario no autenticado')
        reason = require(reason, 'El motivo del rechazo es obligatorio')

        with self.delivery_repo.transaction():
            delivery = self._load(delivery_id)
            self._require_status(delivery, DeliveryStatus.PENDING_APPROVAL, 'rechazar')
            updated = self._apply_transition(delivery, DeliveryStatus.REJECTED, approver_id, {
                'rejected_date': self.clock(),
                'rejected_by': approver_id,
                'rejection_reason': reason,
            }, reason=reason)
        return {'ok': True, 'delivery': updated}

    @service_operation("Error al programar la entrega")
    def schedule_delivery(
        self,
        delivery_id: str,
        scheduled_date: Any,
        notes: Optional[str],
        scheduler_id: str
    ) -> Dict[str, Any]:
        """
        Programa una solicitud aprobada. Aquí sí se exige disponibilidad.

        Args:
            delivery_id: ID de la entrega
            scheduled_date: Fecha de entrega (no en el pasado)
            notes: Observaciones (None conserva las existentes)
            scheduler_id: Colaborador que programa

        Returns:
            Dict con ok y delivery (estado SCHEDULED)
        """
        delivery_id = require(delivery_id, 'El ID de la entrega es obligatorio')
        scheduler_id = require(scheduler_id, 'Usuario no autenticado')
        when = self._require_future(scheduled_date)

        with self.delivery_repo.transaction():
            delivery = self._load(delivery_id)
            self._require_status(delivery, DeliveryStatus.APPROVED, 'programar')
            self._ensure_available(self._delivery_items(delivery), delivery.kit_name)

            fields: Dict[str, Any] = {'scheduled_date': when}
            if notes is not None:
                fields['notes'] = notes
            updated = self._apply_transition(
                delivery, DeliveryStatus.SCHEDULED, scheduler_id, fields
            )
        return {'ok': True, 'delivery': updated}

    # =========================================================================
    # CONFIRMACIÓN Y CANCELACIÓN
    # =========================================================================

    @profile_function(name="Confirmar entrega")
    @service_operation("Error al confirmar la entrega")
    def confirm_delivery(self, delivery_id: str, confirmer_id: str) -> Dict[str, Any]:
        """
        Confirma una entrega programada y descuenta el stock de cada línea.

        Todo ocurre en una sola transacción: si alguna salida falla por stock
        insuficiente no se aplica ningún movimiento y la entrega sigue en
        SCHEDULED.

        Returns:
            Dict con ok, delivery (CONFIRMED) y movements
        """
        delivery_id = require(delivery_id, 'El ID de la entrega es obligatorio')
        confirmer_id = require(confirmer_id, 'Usuario no autenticado')

        with self.delivery_repo.transaction():
            delivery = self._load(delivery_id)
            self._require_status(delivery, DeliveryStatus.SCHEDULED, 'confirmar')

            movements = []
            for item in self._delivery_items(delivery):
                movement, _ = self.stock_service.record_movement(
                    item.product_id,
                    MovementType.EXIT,
                    item.quantity,
                    confirmer_id,
                    CONFIRMATION_REASON,
                    reference_document=f'Entrega #{delivery.id}',
                    notes=f'Entrega del kit {delivery.kit_name}'
                )
                movements.append(movement)

            updated = self._apply_transition(delivery, DeliveryStatus.CONFIRMED, confirmer_id, {
                'confirmed_date': self.clock(),
                'confirmed_by': confirmer_id,
            })
        return {'ok': True, 'delivery': updated, 'movements': movements}

    @service_operation("Error al cancelar la entrega")
    def cancel_delivery(
        self,
        delivery_id: str,
        canceller_id: str,
        reason: str
    ) -> Dict[str, Any]:
        """
        Cancela una entrega en cualquier estado no terminal.

        Returns:
            Dict con ok y delivery (estado CANCELLED)
        """
        delivery_id = require(delivery_id, 'El ID de la entrega es obligatorio')
        canceller_id = require(canceller_id, 'Usuario no autenticado')
        reason = require(reason, 'El motivo de la cancelación es obligatorio')

        with self.delivery_repo.transaction():
            delivery = self._load(delivery_id)
            if delivery.status == DeliveryStatus.CANCELLED:
                raise ValidationError('La entrega ya está cancelada', current_status='CANCELLED')
            if delivery.status == DeliveryStatus.CONFIRMED:
                raise ValidationError(
                    'Una entrega confirmada no puede cancelarse', current_status='CONFIRMED'
                )
            if delivery.status == DeliveryStatus.REJECTED:
                raise ValidationError(
                    'Una solicitud rechazada no puede cancelarse', current_status='REJECTED'
                )
            updated = self._apply_transition(delivery, DeliveryStatus.CANCELLED, canceller_id, {
                'cancelled_date': self.clock(),
                'cancelled_by': canceller_id,
                'cancellation_reason': reason,
            }, reason=reason)
        return {'ok': True, 'delivery': updated}

    @service_operation("Error al validar la entrega")
    def validate_can_confirm(self, delivery_id: str) -> Dict[str, Any]:
        """
        Indica si una entrega puede confirmarse ahora mismo, sin modificar nada.

        Returns:
            Dict con ok, can_confirm, reason y details (disponibilidad por línea)
        """
        delivery_id = require(delivery_id, 'El ID de la entrega es obligatorio')
        delivery = self._load(delivery_id)
        if delivery.status != DeliveryStatus.SCHEDULED:
            return {
                'ok': True,
                'can_confirm': False,
                'reason': f'La entrega está en estado {delivery.status.value}',
                'details': {},
            }
        details = self.availability_service.get_items_details(self._delivery_items(delivery))
        missing = [d.product_name for d in details.values() if not d.is_available]
        return {
            'ok': True,
            'can_confirm': not missing,
            'reason': f"Stock insuficiente: {', '.join(missing)}" if missing else None,
            'details': details,
        }

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_delivery(self, delivery_id: str) -> Optional[Delivery]:
        """Obtiene una entrega por su ID."""
        return self.delivery_repo.get_by_id(delivery_id)

    def get_all_deliveries(self) -> List[Delivery]:
        return self.delivery_repo.find(
            sort_key=lambda d: d.created_at.isoformat() if d.created_at else '',
            reverse=True
        )

    @service_operation("Error al filtrar entregas por estado")
    def get_deliveries_by_status(self, status: Any) -> Dict[str, Any]:
        """
        Returns:
            Dict con ok y deliveries (error de validación si el estado no existe)
        """
        return {'ok': True, 'deliveries': self.delivery_repo.get_by_status(_parse_status(status))}

    def get_deliveries_by_beneficiary(self, beneficiary_id: str) -> List[Delivery]:
        return self.delivery_repo.get_by_beneficiary(beneficiary_id)

    def get_pending_requests(self) -> List[Delivery]:
        """Solicitudes esperando revisión de un colaborador."""
        return self.delivery_repo.get_by_status(DeliveryStatus.PENDING_APPROVAL)

    def search_deliveries(self, query: str) -> List[Delivery]:
        """Busca por nombre de beneficiario o kit. Consulta vacía = todas."""
        if not (query or '').strip():
            return self.get_all_deliveries()
        return self.delivery_repo.search(query)

    def get_upcoming_deliveries(self, days: int = UPCOMING_DAYS) -> List[Delivery]:
        """Entregas programadas desde hoy hasta los próximos `days` días."""
        today = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.delivery_repo.get_scheduled_between(
            today, today + timedelta(days=days + 1) - timedelta(microseconds=1)
        )

    def watch_deliveries(
        self,
        status: Any = None,
        beneficiary_id: Optional[str] = None
    ) -> LiveQuery:
        """
        Consulta en vivo de entregas (snapshot completo tras cada cambio).

        Args:
            status: Filtrar por estado (opcional)
            beneficiary_id: Filtrar por beneficiario (opcional)
        """
        parsed = _parse_status(status) if status is not None else None
        return self.delivery_repo.watch_filtered(parsed, beneficiary_id)
