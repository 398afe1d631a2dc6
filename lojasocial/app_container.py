# ==============================================================================
# CONTENEDOR DE DEPENDENCIAS - Inyección de servicios
# ==============================================================================
# Este módulo proporciona una forma centralizada de obtener instancias
# de repositorios y servicios. Facilita:
#   - Inyección de dependencias
#   - Testing (base_path=':memory:' o un directorio temporal)
#   - Cambiar el almacén sin tocar servicios
#
# ═══════════════════════════════════════════════════════════════════════════════
# CAMBIO DE ALMACÉN
# ═══════════════════════════════════════════════════════════════════════════════
#
# Todos los repositorios comparten un JSONDocumentStore. Para usar otro
# backend basta con una clase que ofrezca las mismas operaciones
# (get/all/insert/update/transaction/subscribe) y crearla en `store`.
# Los servicios NO requieren cambios porque dependen de los repositorios.
# ==============================================================================

import os
from datetime import datetime
from typing import Callable, Optional

from lojasocial.models import utc_now

# ═══════════════════════════════════════════════════════════════════════════════
# REPOSITORIOS - Capa de persistencia
# ═══════════════════════════════════════════════════════════════════════════════
from lojasocial.repositories import (
    JSONDocumentStore,
    ProductRepository,
    KitRepository,
    BeneficiaryRepository,
    DeliveryRepository,
    StockMovementRepository,
    AuditRepository,
)

# ═══════════════════════════════════════════════════════════════════════════════
# SERVICIOS - Capa de lógica de negocio
# ═══════════════════════════════════════════════════════════════════════════════
from lojasocial.services import (
    AuditService,
    StockService,
    ProductService,
    KitService,
    AvailabilityService,
    BeneficiaryService,
    DeliveryService,
    CustomKitService,
)


# Nombre del archivo de datos dentro de base_path
DATA_FILE = 'lojasocial_data.json'


class AppContainer:
    """
    Contenedor de dependencias de la aplicación.

    Implementa el patrón Singleton para asegurar una única instancia
    de cada repositorio y servicio.

    Uso:
        container = AppContainer(base_path='/ruta/datos')
        delivery_service = container.delivery_service
        stock_service = container.stock_service
    """

    _instance: Optional['AppContainer'] = None

    def __new__(cls, base_path: str = None, clock: Callable[[], datetime] = None):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, base_path: str = None, clock: Callable[[], datetime] = None):
        """
        Inicializa el contenedor.

        Args:
            base_path: Directorio del archivo de datos (':memory:' = sin persistencia).
                Por defecto LOJASOCIAL_DATA_DIR o el directorio del paquete.
            clock: Fuente de fecha/hora para los servicios (por defecto UTC actual)
        """
        if self._initialized:
            return

        self._base_path = (
            base_path
            or os.environ.get('LOJASOCIAL_DATA_DIR')
            or os.path.dirname(os.path.abspath(__file__))
        )
        self._clock = clock or utc_now

        self.reset()
        self._initialized = True

    # =========================================================================
    # ALMACÉN
    # =========================================================================

    @property
    def store(self) -> JSONDocumentStore:
        """Almacén de documentos compartido (singleton)."""
        if self._store is None:
            if self._base_path == JSONDocumentStore.MEMORY:
                self._store = JSONDocumentStore(None)
            else:
                self._store = JSONDocumentStore(os.path.join(self._base_path, DATA_FILE))
        return self._store

    # =========================================================================
    # REPOSITORIOS
    # =========================================================================

    @property
    def product_repo(self) -> ProductRepository:
        """Repositorio de productos (singleton)."""
        if self._product_repo is None:
            self._product_repo = ProductRepository(self.store)
        return self._product_repo

    @property
    def kit_repo(self) -> KitRepository:
        """Repositorio de kits (singleton)."""
        if self._kit_repo is None:
            self._kit_repo = KitRepository(self.store)
        return self._kit_repo

    @property
    def beneficiary_repo(self) -> BeneficiaryRepository:
        """Repositorio de beneficiarios (singleton)."""
        if self._beneficiary_repo is None:
            self._beneficiary_repo = BeneficiaryRepository(self.store)
        return self._beneficiary_repo

    @property
    def delivery_repo(self) -> DeliveryRepository:
        """Repositorio de entregas (singleton)."""
        if self._delivery_repo is None:
            self._delivery_repo = DeliveryRepository(self.store)
        return self._delivery_repo

    @property
    def movement_repo(self) -> StockMovementRepository:
        """Repositorio de movimientos de stock (singleton)."""
        if self._movement_repo is None:
            self._movement_repo = StockMovementRepository(self.store)
        return self._movement_repo

    @property
    def audit_repo(self) -> AuditRepository:
        """Repositorio de auditoría (singleton)."""
        if self._audit_repo is None:
            self._audit_repo = AuditRepository(self.store)
        return self._audit_repo

    # =========================================================================
    # SERVICIOS
    # =========================================================================

    @property
    def audit_service(self) -> AuditService:
        """Servicio de auditoría (singleton)."""
        if self._audit_service is None:
            self._audit_service = AuditService(self.audit_repo, clock=self._clock)
        return self._audit_service

    @property
    def stock_service(self) -> StockService:
        """Libro de stock (singleton)."""
        if self._stock_service is None:
            self._stock_service = StockService(
                self.product_repo,
                self.movement_repo,
                self.audit_service,
                clock=self._clock
            )
        return self._stock_service

    @property
    def product_service(self) -> ProductService:
        """Servicio de productos (singleton)."""
        if self._product_service is None:
            self._product_service = ProductService(
                self.product_repo,
                self.stock_service,
                self.audit_service,
                clock=self._clock
            )
        return self._product_service

    @property
    def kit_service(self) -> KitService:
        """Servicio de kits (singleton)."""
        if self._kit_service is None:
            self._kit_service = KitService(
                self.kit_repo,
                self.product_repo,
                self.audit_service,
                clock=self._clock
            )
        return self._kit_service

    @property
    def availability_service(self) -> AvailabilityService:
        """Verificador de disponibilidad de kits (singleton)."""
        if self._availability_service is None:
            self._availability_service = AvailabilityService(self.product_repo, self.kit_repo)
        return self._availability_service

    @property
    def beneficiary_service(self) -> BeneficiaryService:
        """Servicio de beneficiarios (singleton)."""
        if self._beneficiary_service is None:
            self._beneficiary_service = BeneficiaryService(
                self.beneficiary_repo,
                self.audit_service,
                clock=self._clock
            )
        return self._beneficiary_service

    @property
    def delivery_service(self) -> DeliveryService:
        """Servicio de entregas (singleton)."""
        if self._delivery_service is None:
            self._delivery_service = DeliveryService(
                self.delivery_repo,
                self.beneficiary_repo,
                self.kit_repo,
                self.availability_service,
                self.stock_service,
                self.audit_service,
                clock=self._clock
            )
        return self._delivery_service

    @property
    def custom_kit_service(self) -> CustomKitService:
        """Servicio de kits personalizados (singleton)."""
        if self._custom_kit_service is None:
            self._custom_kit_service = CustomKitService(
                self.product_repo,
                self.kit_repo,
                self.beneficiary_repo,
                self.delivery_service
            )
        return self._custom_kit_service

    # =========================================================================
    # UTILIDADES
    # =========================================================================

    def reset(self) -> None:
        """
        Reinicia todas las instancias.
        Útil para testing o para recargar datos.
        """
        self._store: Optional[JSONDocumentStore] = None

        self._product_repo: Optional[ProductRepository] = None
        self._kit_repo: Optional[KitRepository] = None
        self._beneficiary_repo: Optional[BeneficiaryRepository] = None
        self._delivery_repo: Optional[DeliveryRepository] = None
        self._movement_repo: Optional[StockMovementRepository] = None
        self._audit_repo: Optional[AuditRepository] = None

        self._audit_service: Optional[AuditService] = None
        self._stock_service: Optional[StockService] = None
        self._product_service: Optional[ProductService] = None
        self._kit_service: Optional[KitService] = None
        self._availability_service: Optional[AvailabilityService] = None
        self._beneficiary_service: Optional[BeneficiaryService] = None
        self._delivery_service: Optional[DeliveryService] = None
        self._custom_kit_service: Optional[CustomKitService] = None

    @classmethod
    def get_instance(cls, base_path: str = None) -> 'AppContainer':
        """
        Obtiene la instancia singleton del contenedor.

        Args:
            base_path: Ruta base (solo se usa en primera llamada)

        Returns:
            Instancia del contenedor
        """
        if cls._instance is None:
            return cls(base_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Elimina la instancia singleton (útil para tests)."""
        if cls._instance is not None:
            cls._instance.reset()
            cls._instance = None


# Función helper para obtener el contenedor global
def get_container(base_path: str = None) -> AppContainer:
    """
    Obtiene el contenedor de dependencias global.

    Args:
        base_path: Ruta base del proyecto

    Returns:
        Instancia del contenedor
    """
    return AppContainer.get_instance(base_path)
