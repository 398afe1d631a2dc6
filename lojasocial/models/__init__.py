# ==============================================================================
# CAPA DE MODELOS - Estructuras de datos del sistema
# ==============================================================================
# Este módulo define todas las entidades del dominio usando dataclasses.
# Beneficios:
#   - Type hints para mejor documentación y autocompletado
#   - Fácil serialización/deserialización para JSON
#   - Independiente del mecanismo de persistencia
# ==============================================================================

from .entities import (
    # Productos y stock
    Product,
    ProductCategory,
    ProductUnit,
    StockMovement,
    MovementType,

    # Kits
    Kit,
    KitItem,
    KitItemAvailability,
    CustomKit,
    CustomKitItem,
    CUSTOM_KIT_ID,

    # Beneficiarios
    Beneficiary,

    # Entregas
    Delivery,
    DeliveryStatus,
    TERMINAL_STATUSES,

    # Auditoría
    AuditLog,
    AuditType,

    # Utilidades
    utc_now,
    as_aware,
    datetime_to_str,
    str_to_datetime,
    format_quantity,
)

__all__ = [
    # Productos
    'Product',
    'ProductCategory',
    'ProductUnit',
    'StockMovement',
    'MovementType',

    # Kits
    'Kit',
    'KitItem',
    'KitItemAvailability',
    'CustomKit',
    'CustomKitItem',
    'CUSTOM_KIT_ID',

    # Beneficiarios
    'Beneficiary',

    # Entregas
    'Delivery',
    'DeliveryStatus',
    'TERMINAL_STATUSES',

    # Auditoría
    'AuditLog',
    'AuditType',

    # Utilidades
    'utc_now',
    'as_aware',
    'datetime_to_str',
    'str_to_datetime',
    'format_quantity',
]
