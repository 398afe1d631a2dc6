# ==============================================================================
# ENTIDADES DEL DOMINIO - Definiciones de dataclasses
# ==============================================================================
# Cada entidad representa un concepto de la tienda social.
# Diseñadas para ser independientes del mecanismo de persistencia.
# Las fechas se guardan como ISO 8601 en el almacén de documentos.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import date, datetime, timezone


# ==============================================================================
# ENUMERACIONES - Estados y tipos válidos
# ==============================================================================

class ProductCategory(str, Enum):
    """Categorías de producto."""
    FOOD = "FOOD"            # Alimentos
    HYGIENE = "HYGIENE"      # Higiene personal
    CLEANING = "CLEANING"    # Limpieza del hogar
    OTHER = "OTHER"


class ProductUnit(str, Enum):
    """Unidades de medida del stock."""
    UNIT = "UNIT"
    KILOGRAM = "KILOGRAM"
    LITER = "LITER"
    PACKAGE = "PACKAGE"


class MovementType(str, Enum):
    """Tipos de movimiento de stock."""
    ENTRY = "ENTRY"            # Entrada (donación, compra)
    EXIT = "EXIT"              # Salida (entrega)
    ADJUSTMENT = "ADJUSTMENT"  # Ajuste a un valor absoluto (inventario físico)
    TRANSFER = "TRANSFER"      # Transferencia a otro local (destino fuera del sistema)


class DeliveryStatus(str, Enum):
    """Estados posibles de una entrega."""
    PENDING_APPROVAL = "PENDING_APPROVAL"  # Solicitada por el beneficiario
    APPROVED = "APPROVED"                  # Aprobada, falta programar
    REJECTED = "REJECTED"                  # Rechazada (terminal)
    SCHEDULED = "SCHEDULED"                # Programada con fecha
    CONFIRMED = "CONFIRMED"                # Entregada, stock descontado (terminal)
    CANCELLED = "CANCELLED"                # Cancelada (terminal)


class AuditType(str, Enum):
    """Tipos de eventos de auditoría."""
    ENTREGA = "ENTREGA"
    STOCK = "STOCK"
    PRODUCTO = "PRODUCTO"
    KIT = "KIT"
    BENEFICIARIO = "BENEFICIARIO"
    SISTEMA = "SISTEMA"


# Estados a partir de los cuales no hay más transiciones
TERMINAL_STATUSES = frozenset([
    DeliveryStatus.CONFIRMED,
    DeliveryStatus.REJECTED,
    DeliveryStatus.CANCELLED,
])

# Valor de kit_id para kits personalizados sin kit base
CUSTOM_KIT_ID = 'custom'


# ==============================================================================
# UTILIDADES DE SERIALIZACIÓN
# ==============================================================================

def utc_now() -> datetime:
    """Fecha/hora actual en UTC (reloj por defecto de los servicios)."""
    return datetime.now(timezone.utc)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Asume UTC para fechas sin zona horaria."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def datetime_to_str(value: Optional[datetime]) -> Optional[str]:
    """Serializa una fecha/hora (o fecha) a ISO 8601."""
    if value is None:
        return None
    return value.isoformat()


def str_to_datetime(value: Any) -> Optional[datetime]:
    """Parsea una fecha/hora ISO 8601. Acepta instancias ya parseadas."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return as_aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return as_aware(datetime.fromisoformat(value))


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _parse_enum(enum_cls, value: Any, default):
    """Convierte un string a enum, con fallback al valor por defecto."""
    try:
        return enum_cls(value)
    except ValueError:
        return default


def format_quantity(quantity: float) -> str:
    """Formatea cantidades sin decimales innecesarios (3.0 -> '3')."""
    quantity = float(quantity)
    if quantity.is_integer():
        return str(int(quantity))
    return f"{quantity:g}"


# ==============================================================================
# ENTIDADES DE INVENTARIO
# ==============================================================================

@dataclass
class Product:
    """
    Producto del inventario de la tienda social.

    El stock (current_stock) solo se modifica a través del libro de stock
    (StockService); nunca directamente desde otros servicios.

    Attributes:
        id: Identificador único
        name: Nombre del producto
        category: Categoría (alimentos, higiene, ...)
        unit: Unidad de medida del stock
        current_stock: Stock actual (nunca negativo)
        minimum_stock: Umbral de stock bajo
        is_active: False si fue desactivado (soft delete)
    """
    id: str
    name: str
    category: ProductCategory = ProductCategory.OTHER
    unit: ProductUnit = ProductUnit.UNIT
    current_stock: float = 0.0
    minimum_stock: float = 0.0
    description: str = ''
    barcode: Optional[str] = None
    expiry_date: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_low_stock(self) -> bool:
        """Verifica si el stock está en o por debajo del mínimo."""
        return self.current_stock <= self.minimum_stock

    @property
    def is_available(self) -> bool:
        """Producto activo y con stock para entregar."""
        return self.is_active and self.current_stock > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'id': self.id,
            'name': self.name,
            'category': _enum_value(self.category),
            'unit': _enum_value(self.unit),
            'current_stock': self.current_stock,
            'minimum_stock': self.minimum_stock,
            'description': self.description,
            'barcode': self.barcode,
            'expiry_date': datetime_to_str(self.expiry_date),
            'is_active': self.is_active,
            'created_at': datetime_to_str(self.created_at),
            'updated_at': datetime_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        """Crea instancia desde diccionario."""
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            category=_parse_enum(ProductCategory, data.get('category'), ProductCategory.OTHER),
            unit=_parse_enum(ProductUnit, data.get('unit'), ProductUnit.UNIT),
            current_stock=float(data.get('current_stock', 0) or 0),
            minimum_stock=float(data.get('minimum_stock', 0) or 0),
            description=data.get('description', ''),
            barcode=data.get('barcode'),
            expiry_date=str_to_datetime(data.get('expiry_date')),
            is_active=data.get('is_active', True),
            created_at=str_to_datetime(data.get('created_at')),
            updated_at=str_to_datetime(data.get('updated_at')),
        )


@dataclass
class StockMovement:
    """
    Registro inmutable de un cambio en el stock de un producto.

    Para ADJUSTMENT, quantity es el nuevo valor absoluto y delta la
    diferencia aplicada. Para el resto, delta es +quantity o -quantity.
    """
    id: str
    product_id: str
    product_name: str
    type: MovementType
    quantity: float
    unit: ProductUnit
    delta: float
    previous_stock: float
    new_stock: float
    reason: str
    performed_by: str
    performed_at: Optional[datetime] = None
    reference_document: Optional[str] = None
    notes: str = ''

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'type': _enum_value(self.type),
            'quantity': self.quantity,
            'unit': _enum_value(self.unit),
            'delta': self.delta,
            'previous_stock': self.previous_stock,
            'new_stock': self.new_stock,
            'reason': self.reason,
            'performed_by': self.performed_by,
            'performed_at': datetime_to_str(self.performed_at),
            'reference_document': self.reference_document,
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StockMovement':
        """Crea instancia desde diccionario."""
        return cls(
            id=data.get('id', ''),
            product_id=data.get('product_id', ''),
            product_name=data.get('product_name', ''),
            type=_parse_enum(MovementType, data.get('type'), MovementType.ENTRY),
            quantity=float(data.get('quantity', 0) or 0),
            unit=_parse_enum(ProductUnit, data.get('unit'), ProductUnit.UNIT),
            delta=float(data.get('delta', 0) or 0),
            previous_stock=float(data.get('previous_stock', 0) or 0),
            new_stock=float(data.get('new_stock', 0) or 0),
            reason=data.get('reason', ''),
            performed_by=data.get('performed_by', ''),
            performed_at=str_to_datetime(data.get('performed_at')),
            reference_document=data.get('reference_document'),
            notes=data.get('notes', ''),
        )


# ==============================================================================
# ENTIDADES DE KITS
# ==============================================================================

@dataclass
class KitItem:
    """
    Línea de un kit: producto requerido y cantidad.
    product_name y unit son una copia tomada al crear el kit.
    """
    product_id: str
    product_name: str
    quantity: float
    unit: ProductUnit = ProductUnit.UNIT

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'quantity': self.quantity,
            'unit': _enum_value(self.unit),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KitItem':
        """Crea instancia desde diccionario."""
        return cls(
            product_id=data.get('product_id', ''),
            product_name=data.get('product_name', ''),
            quantity=float(data.get('quantity', 0) or 0),
            unit=_parse_enum(ProductUnit, data.get('unit'), ProductUnit.UNIT),
        )


@dataclass
class Kit:
    """
    Plantilla de kit: lista de productos y cantidades requeridas.
    Un kit no posee stock; solo describe lo que hay que entregar.
    """
    id: str
    name: str
    items: List[KitItem] = field(default_factory=list)
    description: str = ''
    is_active: bool = True
    is_predefined: bool = True
    created_at: Optional[datetime] = None
    created_by: str = ''
    updated_at: Optional[datetime] = None

    @property
    def total_items(self) -> float:
        """Suma de cantidades de todas las líneas."""
        return sum(item.quantity for item in self.items)

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'id': self.id,
            'name': self.name,
            'items': [item.to_dict() for item in self.items],
            'description': self.description,
            'is_active': self.is_active,
            'is_predefined': self.is_predefined,
            'created_at': datetime_to_str(self.created_at),
            'created_by': self.created_by,
            'updated_at': datetime_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Kit':
        """Crea instancia desde diccionario."""
        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            items=[KitItem.from_dict(i) for i in data.get('items', [])],
            description=data.get('description', ''),
            is_active=data.get('is_active', True),
            is_predefined=data.get('is_predefined', True),
            created_at=str_to_datetime(data.get('created_at')),
            created_by=data.get('created_by', ''),
            updated_at=str_to_datetime(data.get('updated_at')),
        )


@dataclass
class KitItemAvailability:
    """Detalle de disponibilidad de una línea de kit."""
    product_id: str
    product_name: str
    required_quantity: float
    available_stock: float
    is_available: bool
    is_active: bool = True

    @property
    def shortfall(self) -> float:
        """Cantidad que falta para cubrir la línea (0 si alcanza)."""
        return max(0.0, self.required_quantity - self.available_stock)

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario (para API)."""
        return {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'required_quantity': self.required_quantity,
            'available_stock': self.available_stock,
            'is_available': self.is_available,
            'is_active': self.is_active,
            'shortfall': self.shortfall,
        }


@dataclass
class CustomKitItem:
    """Línea de un kit personalizado (cantidades enteras)."""
    product_id: str
    product_name: str
    quantity: int
    unit: ProductUnit = ProductUnit.UNIT

    def to_kit_item(self) -> KitItem:
        """Convierte a línea de kit para guardar en la entrega."""
        return KitItem(
            product_id=self.product_id,
            product_name=self.product_name,
            quantity=float(self.quantity),
            unit=self.unit,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario (para API)."""
        return {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'quantity': self.quantity,
            'unit': _enum_value(self.unit),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomKitItem':
        """Crea instancia desde diccionario."""
        return cls(
            product_id=data.get('product_id', ''),
            product_name=data.get('product_name', ''),
            quantity=int(data.get('quantity', 0) or 0),
            unit=_parse_enum(ProductUnit, data.get('unit'), ProductUnit.UNIT),
        )


@dataclass
class CustomKit:
    """
    Selección libre de productos armada por un beneficiario.
    No se persiste como entidad propia: se valida y se convierte en
    una solicitud de entrega.
    """
    selected_items: List[CustomKitItem] = field(default_factory=list)
    base_kit_id: Optional[str] = None
    base_kit_name: Optional[str] = None
    notes: str = ''

    @property
    def is_empty(self) -> bool:
        return not self.selected_items

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.selected_items)

    @property
    def is_based_on_kit(self) -> bool:
        return bool(self.base_kit_id)

    def get_item(self, product_id: str) -> Optional[CustomKitItem]:
        """Busca la línea de un producto."""
        for item in self.selected_items:
            if item.product_id == product_id:
                return item
        return None

    def merged_items(self) -> List[CustomKitItem]:
        """Líneas con los productos repetidos sumados en una sola."""
        merged: Dict[str, CustomKitItem] = {}
        for item in self.selected_items:
            if item.product_id in merged:
                previous = merged[item.product_id]
                merged[item.product_id] = CustomKitItem(
                    previous.product_id, previous.product_name,
                    previous.quantity + item.quantity, previous.unit
                )
            else:
                merged[item.product_id] = item
        return list(merged.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario (para API)."""
        return {
            'selected_items': [i.to_dict() for i in self.selected_items],
            'base_kit_id': self.base_kit_id,
            'base_kit_name': self.base_kit_name,
            'notes': self.notes,
            'total_items': self.total_items,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomKit':
        """Crea instancia desde diccionario."""
        return cls(
            selected_items=[
                CustomKitItem.from_dict(i) for i in data.get('selected_items', [])
            ],
            base_kit_id=data.get('base_kit_id'),
            base_kit_name=data.get('base_kit_name'),
            notes=data.get('notes', '') or '',
        )


# ==============================================================================
# ENTIDADES DE BENEFICIARIOS
# ==============================================================================

@dataclass
class Beneficiary:
    """
    Beneficiario de la tienda social (estudiante).
    Solo beneficiarios activos pueden recibir entregas.
    """
    id: str
    user_id: str
    name: str
    student_number: str = ''
    email: str = ''
    phone: str = ''
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'student_number': self.student_number,
            'email': self.email,
            'phone': self.phone,
            'is_active': self.is_active,
            'created_at': datetime_to_str(self.created_at),
            'updated_at': datetime_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Beneficiary':
        """Crea instancia desde diccionario."""
        return cls(
            id=data.get('id', ''),
            user_id=data.get('user_id', ''),
            name=data.get('name', ''),
            student_number=data.get('student_number', ''),
            email=data.get('email', ''),
            phone=data.get('phone', ''),
            is_active=data.get('is_active', True),
            created_at=str_to_datetime(data.get('created_at')),
            updated_at=str_to_datetime(data.get('updated_at')),
        )


# ==============================================================================
# ENTIDADES DE ENTREGAS
# ==============================================================================

@dataclass
class Delivery:
    """
    Entrega de un kit (o kit personalizado) a un beneficiario.

    Ciclo de vida:
        PENDING_APPROVAL → APPROVED → SCHEDULED → CONFIRMED
        PENDING_APPROVAL → REJECTED
        (creación directa) → SCHEDULED
        cualquier estado no terminal → CANCELLED

    Los nombres (beneficiary_name, kit_name) son copias tomadas al crear
    la entrega y no se sincronizan con renombres posteriores.
    custom_items solo se llena para kits personalizados; en ese caso
    reemplaza a los items del kit al verificar y descontar stock.
    """
    id: str
    beneficiary_id: str
    beneficiary_name: str
    kit_id: str
    kit_name: str
    status: DeliveryStatus = DeliveryStatus.PENDING_APPROVAL
    scheduled_date: Optional[datetime] = None
    notes: str = ''
    custom_items: List[KitItem] = field(default_factory=list)

    # Solicitud
    requested_date: Optional[datetime] = None
    request_notes: str = ''

    # Revisión
    approved_date: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_date: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    # Confirmación
    confirmed_date: Optional[datetime] = None
    confirmed_by: Optional[str] = None

    # Cancelación
    cancelled_date: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    created_by: str = ''
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        """True si la entrega ya no admite transiciones."""
        return self.status in TERMINAL_STATUSES

    @property
    def is_custom(self) -> bool:
        return bool(self.custom_items)

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'id': self.id,
            'beneficiary_id': self.beneficiary_id,
            'beneficiary_name': self.beneficiary_name,
            'kit_id': self.kit_id,
            'kit_name': self.kit_name,
            'status': _enum_value(self.status),
            'scheduled_date': datetime_to_str(self.scheduled_date),
            'notes': self.notes,
            'custom_items': [i.to_dict() for i in self.custom_items],
            'requested_date': datetime_to_str(self.requested_date),
            'request_notes': self.request_notes,
            'approved_date': datetime_to_str(self.approved_date),
            'approved_by': self.approved_by,
            'rejected_date': datetime_to_str(self.rejected_date),
            'rejected_by': self.rejected_by,
            'rejection_reason': self.rejection_reason,
            'confirmed_date': datetime_to_str(self.confirmed_date),
            'confirmed_by': self.confirmed_by,
            'cancelled_date': datetime_to_str(self.cancelled_date),
            'cancelled_by': self.cancelled_by,
            'cancellation_reason': self.cancellation_reason,
            'created_at': datetime_to_str(self.created_at),
            'created_by': self.created_by,
            'updated_at': datetime_to_str(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Delivery':
        """Crea instancia desde diccionario."""
        return cls(
            id=data.get('id', ''),
            beneficiary_id=data.get('beneficiary_id', ''),
            beneficiary_name=data.get('beneficiary_name', ''),
            kit_id=data.get('kit_id', ''),
            kit_name=data.get('kit_name', ''),
            status=_parse_enum(
                DeliveryStatus, data.get('status'), DeliveryStatus.PENDING_APPROVAL
            ),
            scheduled_date=str_to_datetime(data.get('scheduled_date')),
            notes=data.get('notes', '') or '',
            custom_items=[KitItem.from_dict(i) for i in data.get('custom_items', [])],
            requested_date=str_to_datetime(data.get('requested_date')),
            request_notes=data.get('request_notes', '') or '',
            approved_date=str_to_datetime(data.get('approved_date')),
            approved_by=data.get('approved_by'),
            rejected_date=str_to_datetime(data.get('rejected_date')),
            rejected_by=data.get('rejected_by'),
            rejection_reason=data.get('rejection_reason'),
            confirmed_date=str_to_datetime(data.get('confirmed_date')),
            confirmed_by=data.get('confirmed_by'),
            cancelled_date=str_to_datetime(data.get('cancelled_date')),
            cancelled_by=data.get('cancelled_by'),
            cancellation_reason=data.get('cancellation_reason'),
            created_at=str_to_datetime(data.get('created_at')),
            created_by=data.get('created_by', ''),
            updated_at=str_to_datetime(data.get('updated_at')),
        )


# ==============================================================================
# ENTIDADES DE AUDITORÍA
# ==============================================================================

@dataclass
class AuditLog:
    """
    Registro de auditoría.

    Attributes:
        type: Tipo de evento
        user: Usuario que realizó la acción
        message: Mensaje humanizado
        timestamp: Fecha/hora del evento
        related_id: ID relacionado (entrega, producto, etc.)
        details: Detalles adicionales
    """
    type: AuditType
    user: str
    message: str
    timestamp: str
    related_id: str = ''
    details: Dict[str, Any] = field(default_factory=dict)
    id: str = ''

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario para persistencia."""
        return {
            'id': self.id,
            'type': _enum_value(self.type),
            'user': self.user,
            'message': self.message,
            'timestamp': self.timestamp,
            'related_id': self.related_id,
            'details': self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditLog':
        """Crea instancia desde diccionario."""
        return cls(
            id=data.get('id', ''),
            type=_parse_enum(AuditType, data.get('type'), AuditType.SISTEMA),
            user=data.get('user', 'sistema'),
            message=data.get('message', ''),
            timestamp=data.get('timestamp', ''),
            related_id=data.get('related_id', ''),
            details=data.get('details', {}),
        )
