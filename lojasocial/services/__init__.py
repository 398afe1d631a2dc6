# ==============================================================================
# CAPA DE SERVICIOS - Lógica de negocio
# ==============================================================================
# Esta capa contiene TODA la lógica de negocio de la aplicación.
#
# PRINCIPIOS:
# 1. Los servicios orquestan operaciones entre repositorios
# 2. Aplican reglas de negocio y validaciones
# 3. Las rutas (controllers) solo llaman a servicios
# 4. Los servicios NO conocen el tipo de almacenamiento
# 5. Nunca lanzan excepciones hacia afuera: retornan {'ok': ..., ...}
#
# ESTRUCTURA:
# ├── results.py              → Errores de servicio y decorador service_operation
# ├── audit_service.py        → Logs de actividad
# ├── stock_service.py        → Libro de stock (movimientos)
# ├── product_service.py      → Catálogo de productos
# ├── kit_service.py          → Plantillas de kit
# ├── availability_service.py → Disponibilidad de kits
# ├── beneficiary_service.py  → Beneficiarios
# ├── delivery_service.py     → Máquina de estados de entregas
# └── custom_kit_service.py   → Kits personalizados (constructor y validación)
# ==============================================================================

from lojasocial.services.results import (
    ErrorType,
    ServiceError,
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    service_operation,
)
from lojasocial.services.audit_service import AuditService
from lojasocial.services.stock_service import StockService
from lojasocial.services.product_service import ProductService
from lojasocial.services.kit_service import KitService
from lojasocial.services.availability_service import AvailabilityService
from lojasocial.services.beneficiary_service import BeneficiaryService
from lojasocial.services.delivery_service import (
    DeliveryService,
    ALLOWED_TRANSITIONS,
    can_transition,
)
from lojasocial.services.custom_kit_service import CustomKitService, CustomKitBuilder

__all__ = [
    'ErrorType',
    'ServiceError',
    'ValidationError',
    'NotFoundError',
    'InsufficientStockError',
    'service_operation',
    'AuditService',
    'StockService',
    'ProductService',
    'KitService',
    'AvailabilityService',
    'BeneficiaryService',
    'DeliveryService',
    'ALLOWED_TRANSITIONS',
    'can_transition',
    'CustomKitService',
    'CustomKitBuilder',
]
