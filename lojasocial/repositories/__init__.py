# ==============================================================================
# CAPA DE REPOSITORIOS - Acceso a datos
# ==============================================================================
# Esta capa encapsula todo el acceso a la persistencia (almacén JSON).
# Las interfaces (métodos públicos) no dependen del backend.
#
# ESTRUCTURA:
# ├── interfaces.py                → Protocolos/Interfaces (contratos)
# ├── base.py                      → Almacén de documentos + BaseRepository
# ├── live_query.py                → Canal de snapshots de consultas en vivo
# ├── product_repository.py        → Colección products
# ├── kit_repository.py            → Colección kits
# ├── beneficiary_repository.py    → Colección beneficiaries
# ├── delivery_repository.py       → Colección deliveries
# ├── stock_movement_repository.py → Colección stock_movements
# └── audit_repository.py          → Colección audit
# ==============================================================================

# Interfaces
from .interfaces import (
    IRepository,
    IProductRepository,
    IKitRepository,
    IBeneficiaryRepository,
    IDeliveryRepository,
    IStockMovementRepository,
    IAuditRepository,
)

# Almacén y clases base
from .base import BaseRepository, JSONDocumentStore, StoreError
from .live_query import LiveQuery

# Implementaciones concretas
from .product_repository import ProductRepository
from .kit_repository import KitRepository
from .beneficiary_repository import BeneficiaryRepository
from .delivery_repository import DeliveryRepository
from .stock_movement_repository import StockMovementRepository
from .audit_repository import AuditRepository

__all__ = [
    # Interfaces
    'IRepository',
    'IProductRepository',
    'IKitRepository',
    'IBeneficiaryRepository',
    'IDeliveryRepository',
    'IStockMovementRepository',
    'IAuditRepository',

    # Almacén
    'BaseRepository',
    'JSONDocumentStore',
    'StoreError',
    'LiveQuery',

    # Implementaciones
    'ProductRepository',
    'KitRepository',
    'BeneficiaryRepository',
    'DeliveryRepository',
    'StockMovementRepository',
    'AuditRepository',
]
