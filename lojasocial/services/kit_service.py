# ==============================================================================
# SERVICIO DE KITS
# ==============================================================================
# Alta y edición de plantillas de kit. Las líneas guardan una copia del
# nombre y unidad del producto; las líneas repetidas se unifican.
# ==============================================================================

import math
from typing import Any, Callable, Dict, List, Optional

from lojasocial.models import Kit, KitItem, utc_now
from lojasocial.repositories import KitRepository, ProductRepository
from lojasocial.services.audit_service import AuditService
from lojasocial.services.results import (
    NotFoundError,
    ValidationError,
    require,
    service_operation,
)


class KitService:
    """
    Servicio para gestión de kits.

    Responsabilidades:
    - Crear y editar kits validando sus líneas
    - Desactivar/reactivar kits (nunca se borran)
    - Consultas de kits activos
    """

    def __init__(
        self,
        kit_repo: KitRepository,
        product_repo: ProductRepository,
        audit_service: AuditService = None,
        clock: Callable[[], Any] = utc_now
    ):
        self.kit_repo = kit_repo
        self.product_repo = product_repo
        self.audit_service = audit_service
        self.clock = clock

    # =========================================================================
    # VALIDACIÓN DE LÍNEAS
    # =========================================================================

    def _build_items(self, raw_items: List[Any]) -> List[KitItem]:
        """
        Valida las líneas y las completa con los datos del producto.

        Acepta KitItem o dicts {'product_id', 'quantity'}. Las líneas del
        mismo producto se suman en una sola.

        Raises:
            ValidationError: Línea inválida o kit vacío
            NotFoundError: Producto inexistente
        """
        if not raw_items:
            raise ValidationError('El kit debe tener al menos un producto')

        merged: Dict[str, KitItem] = {}
        for raw in raw_items:
            if isinstance(raw, KitItem):
                product_id, quantity = raw.product_id, raw.quantity
            else:
                product_id, quantity = raw.get('product_id'), raw.get('quantity')

            product_id = require(product_id, 'Todas las líneas deben indicar un producto')
            try:
                quantity = float(quantity)
            except (TypeError, ValueError):
                raise ValidationError(f'Cantidad inválida para el producto {product_id}')
            if not math.isfinite(quantity):
                raise ValidationError(f'Cantidad inválida para el producto {product_id}')
            if quantity <= 0:
                raise ValidationError(f'La cantidad del producto {product_id} debe ser mayor a 0')

            product = self.product_repo.get_by_id(product_id)
            if product is None:
                raise NotFoundError(f'Producto {product_id} no encontrado', product_id=product_id)

            if product_id in merged:
                merged[product_id].quantity += quantity
            else:
                merged[product_id] = KitItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=quantity,
                    unit=product.unit,
                )
        return list(merged.values())

    # =========================================================================
    # OPERACIONES DE KITS
    # =========================================================================

    @service_operation("Error al crear el kit")
    def create_kit(
        self,
        name: str,
        items: List[Any],
        created_by: str,
        description: str = '',
        is_predefined: bool = True
    ) -> Dict[str, Any]:
        """
        Crea un kit nuevo.

        Args:
            name: Nombre del kit
            items: Líneas (KitItem o dicts con product_id y quantity)
            created_by: Usuario que crea
            description: Descripción
            is_predefined: Kit estándar de la tienda

        Returns:
            Dict con ok y kit
        """
        name = require(name, 'El nombre del kit es obligatorio')
        created_by = require(created_by, 'Usuario no autenticado')
        kit_items = self._build_items(items)

        now = self.clock()
        with self.kit_repo.transaction():
            kit = self.kit_repo.create(Kit(
                id='',
                name=name,
                items=kit_items,
                description=description or '',
                is_active=True,
                is_predefined=is_predefined,
                created_at=now,
                created_by=created_by,
                updated_at=now,
            ))
            if self.audit_service:
                self.audit_service.log_kit_saved(created_by, kit, created=True)
        return {'ok': True, 'kit': kit}

    @service_operation("Error al editar el kit")
    def update_kit(
        self,
        kit_id: str,
        user: str,
        name: Optional[str] = None,
        items: Optional[List[Any]] = None,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Edita nombre, descripción y/o líneas de un kit.
        Las líneas nuevas reemplazan por completo a las anteriores.
        """
        kit_id = require(kit_id, 'El ID del kit es obligatorio')
        user = require(user, 'Usuario no autenticado')

        changes: Dict[str, Any] = {}
        if name is not None:
            changes['name'] = require(name, 'El nombre del kit es obligatorio')
        if description is not None:
            changes['description'] = description
        if items is not None:
            changes['items'] = self._build_items(items)

        with self.kit_repo.transaction():
            if self.kit_repo.get_by_id(kit_id) is None:
                raise NotFoundError(f'Kit {kit_id} no encontrado', kit_id=kit_id)
            changes['updated_at'] = self.clock()
            kit = self.kit_repo.update(kit_id, changes)
            if self.audit_service:
                self.audit_service.log_kit_saved(user, kit, created=False)
        return {'ok': True, 'kit': kit}

    @service_operation("Error al cambiar el estado del kit")
    def set_kit_active(self, kit_id: str, is_active: bool, user: str) -> Dict[str, Any]:
        """Activa o desactiva un kit."""
        kit_id = require(kit_id, 'El ID del kit es obligatorio')
        user = require(user, 'Usuario no autenticado')
        with self.kit_repo.transaction():
            if self.kit_repo.get_by_id(kit_id) is None:
                raise NotFoundError(f'Kit {kit_id} no encontrado', kit_id=kit_id)
            kit = self.kit_repo.update(kit_id, {
                'is_active': bool(is_active),
                'updated_at': self.clock(),
            })
            if self.audit_service:
                self.audit_service.log_kit_active_changed(user, kit, bool(is_active))
        return {'ok': True, 'kit': kit}

    def deactivate_kit(self, kit_id: str, user: str) -> Dict[str, Any]:
        return self.set_kit_active(kit_id, False, user)

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_kit(self, kit_id: str) -> Optional[Kit]:
        return self.kit_repo.get_by_id(kit_id)

    def get_active_kits(self) -> List[Kit]:
        return self.kit_repo.get_active()
