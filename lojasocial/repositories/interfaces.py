# ==============================================================================
# INTERFACES DE REPOSITORIOS
# ==============================================================================
#
# Este archivo define las interfaces (protocolos) que los repositorios
# deben implementar. Esto permite:
#
# 1. INDEPENDENCIA DE ALMACENAMIENTO
#    - Los servicios dependen de interfaces, NO de implementaciones concretas
#    - Cambiar el almacén JSON por otro backend solo requiere nueva implementación
#
# 2. TESTING
#    - Fácil crear dobles que implementen estas interfaces
#
# 3. DOCUMENTACIÓN
#    - Contratos claros de qué hace cada repositorio
#
# ==============================================================================

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from lojasocial.models import (
    AuditLog,
    Beneficiary,
    Delivery,
    DeliveryStatus,
    Kit,
    Product,
    StockMovement,
)
from .live_query import LiveQuery


# ==============================================================================
# INTERFACES BASE
# ==============================================================================

@runtime_checkable
class IRepository(Protocol):
    """
    Interfaz base para todos los repositorios.
    get / consulta en vivo / create / update parcial. No hay borrado físico.
    """

    def get_by_id(self, record_id: str) -> Optional[Any]:
        """Obtiene una entidad por ID."""
        ...

    def find(
        self,
        predicate: Optional[Callable[[Any], bool]] = None,
        sort_key: Optional[Callable[[Any], Any]] = None,
        reverse: bool = False
    ) -> List[Any]:
        """Consulta puntual."""
        ...

    def watch(
        self,
        predicate: Optional[Callable[[Any], bool]] = None,
        sort_key: Optional[Callable[[Any], Any]] = None,
        reverse: bool = False
    ) -> LiveQuery:
        """Consulta en vivo (snapshots completos)."""
        ...

    def create(self, entity: Any) -> Any:
        """Guarda una entidad nueva y la retorna con ID."""
        ...

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[Any]:
        """Actualización parcial."""
        ...

    def reload(self) -> None:
        """Recarga datos desde el almacenamiento."""
        ...


# ==============================================================================
# INTERFACES ESPECÍFICAS
# ==============================================================================

@runtime_checkable
class IProductRepository(IRepository, Protocol):
    """Interfaz del repositorio de productos."""

    def get_by_id(self, record_id: str) -> Optional[Product]:
        ...

    def get_active(self) -> List[Product]:
        ...

    def get_available(self) -> List[Product]:
        ...

    def get_low_stock(self) -> List[Product]:
        ...

    def search(self, query: str) -> List[Product]:
        ...


@runtime_checkable
class IKitRepository(IRepository, Protocol):
    """Interfaz del repositorio de kits."""

    def get_by_id(self, record_id: str) -> Optional[Kit]:
        ...

    def get_active(self) -> List[Kit]:
        ...


@runtime_checkable
class IBeneficiaryRepository(IRepository, Protocol):
    """Interfaz del repositorio de beneficiarios."""

    def get_by_id(self, record_id: str) -> Optional[Beneficiary]:
        ...

    def get_by_user_id(self, user_id: str) -> Optional[Beneficiary]:
        ...


@runtime_checkable
class IStockMovementRepository(IRepository, Protocol):
    """Interfaz del historial de movimientos (append-only)."""

    def get_by_product(self, product_id: str) -> List[StockMovement]:
        ...

    def watch_by_product(self, product_id: str) -> LiveQuery:
        ...


@runtime_checkable
class IDeliveryRepository(IRepository, Protocol):
    """Interfaz del repositorio de entregas."""

    def get_by_id(self, record_id: str) -> Optional[Delivery]:
        ...

    def get_by_status(self, status: DeliveryStatus) -> List[Delivery]:
        ...

    def get_by_beneficiary(self, beneficiary_id: str) -> List[Delivery]:
        ...

    def get_scheduled_between(self, start: datetime, end: datetime) -> List[Delivery]:
        ...

    def search(self, query: str) -> List[Delivery]:
        ...

    def watch_filtered(
        self,
        status: Optional[DeliveryStatus] = None,
        beneficiary_id: Optional[str] = None
    ) -> LiveQuery:
        ...


@runtime_checkable
class IAuditRepository(IRepository, Protocol):
    """Interfaz del repositorio de auditoría."""

    def load(self) -> List[AuditLog]:
        """Carga todos los logs (más recientes primero)."""
        ...

    def log(
        self,
        log_type: str,
        user: str,
        message: str,
        related_id: str = '',
        details: Dict[str, Any] = None,
        timestamp: Optional[datetime] = None
    ) -> AuditLog:
        """Registra un evento de auditoría."""
        ...
