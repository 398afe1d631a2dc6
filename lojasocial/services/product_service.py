# ==============================================================================
# SERVICIO DE PRODUCTOS
# ==============================================================================
# CRUD del catálogo de productos. El stock NO se edita aquí: el stock
# inicial y cualquier cambio posterior se registran en el libro de stock.
# ==============================================================================

from typing import Any, Callable, Dict, Optional

from lojasocial.models import (
    MovementType,
    Product,
    ProductCategory,
    ProductUnit,
    str_to_datetime,
    utc_now,
)
from lojasocial.repositories import ProductRepository
from lojasocial.services.audit_service import AuditService
from lojasocial.services.results import (
    NotFoundError,
    ValidationError,
    require,
    service_operation,
)
from lojasocial.services.stock_service import StockService


# Campos editables de un producto (current_stock excluido a propósito)
EDITABLE_FIELDS = frozenset([
    'name', 'description', 'category', 'unit', 'minimum_stock', 'barcode', 'expiry_date',
])


def _parse_category(value: Any) -> ProductCategory:
    try:
        return ProductCategory(value.value if isinstance(value, ProductCategory) else str(value).upper())
    except ValueError:
        raise ValidationError(f'Categoría inválida: {value}')


def _parse_unit(value: Any) -> ProductUnit:
    try:
        return ProductUnit(value.value if isinstance(value, ProductUnit) else str(value).upper())
    except ValueError:
        raise ValidationError(f'Unidad inválida: {value}')


def _parse_non_negative(value: Any, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} inválido')
    if number < 0:
        raise ValidationError(f'{label} no puede ser negativo')
    return number


class ProductService:
    """
    Servicio para gestión del catálogo.

    Responsabilidades:
    - Alta, edición y desactivación de productos
    - Consultas de catálogo (activos, disponibles, stock bajo, búsqueda)
    """

    def __init__(
        self,
        product_repo: ProductRepository,
        stock_service: StockService,
        audit_service: AuditService = None,
        clock: Callable[[], Any] = utc_now
    ):
        """
        Args:
            product_repo: Repositorio de productos
            stock_service: Libro de stock (para el stock inicial)
            audit_service: Servicio de auditoría (opcional)
            clock: Fuente de fecha/hora
        """
        self.product_repo = product_repo
        self.stock_service = stock_service
        self.audit_service = audit_service
        self.clock = clock

    # =========================================================================
    # OPERACIONES DE PRODUCTOS
    # =========================================================================

    @service_operation("Error al crear el producto")
    def create_product(
        self,
        name: str,
        created_by: str,
        category: Any = ProductCategory.OTHER,
        unit: Any = ProductUnit.UNIT,
        minimum_stock: Any = 0,
        initial_stock: Any = 0,
        description: str = '',
        barcode: Optional[str] = None,
        expiry_date: Any = None
    ) -> Dict[str, Any]:
        """
        Crea un producto nuevo.

        Si initial_stock > 0 se registra una ENTRY "Stock inicial" en la misma
        transacción, así el historial explica todo el stock.

        Returns:
            Dict con ok y product
        """
        name = require(name, 'El nombre del producto es obligatorio')
        created_by = require(created_by, 'Usuario no autenticado')
        category = _parse_category(category)
        unit = _parse_unit(unit)
        minimum_stock = _parse_non_negative(minimum_stock, 'El stock mínimo')
        initial_stock = _parse_non_negative(initial_stock, 'El stock inicial')

        now = self.clock()
        with self.product_repo.transaction():
            product = self.product_repo.create(Product(
                id='',
                name=name,
                category=category,
                unit=unit,
                current_stock=0.0,
                minimum_stock=minimum_stock,
                description=description or '',
                barcode=barcode or None,
                expiry_date=str_to_datetime(expiry_date),
                created_at=now,
                updated_at=now,
            ))
            if initial_stock > 0:
                _, product = self.stock_service.record_movement(
                    product.id, MovementType.ENTRY, initial_stock, created_by,
                    'Stock inicial'
                )
            if self.audit_service:
                self.audit_service.log_product_created(created_by, product)

        return {'ok': True, 'product': product}

    @service_operation("Error al editar el producto")
    def update_product(
        self,
        product_id: str,
        updates: Dict[str, Any],
        user: str
    ) -> Dict[str, Any]:
        """
        Actualiza datos descriptivos de un producto.

        Args:
            product_id: ID del producto
            updates: Campos a modificar (ver EDITABLE_FIELDS)
            user: Usuario que edita

        Returns:
            Dict con ok y product
        """
        product_id = require(product_id, 'El ID del producto es obligatorio')
        user = require(user, 'Usuario no autenticado')
        if 'current_stock' in updates:
            raise ValidationError('El stock solo puede modificarse mediante movimientos de stock')
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Campos no editables: {', '.join(sorted(unknown))}")

        changes: Dict[str, Any] = {}
        for key, value in updates.items():
            if key == 'name':
                changes[key] = require(value, 'El nombre del producto es obligatorio')
            elif key == 'category':
                changes[key] = _parse_category(value)
            elif key == 'unit':
                changes[key] = _parse_unit(value)
            elif key == 'minimum_stock':
                changes[key] = _parse_non_negative(value, 'El stock mínimo')
            elif key == 'expiry_date':
                changes[key] = str_to_datetime(value)
            else:
                changes[key] = value

        with self.product_repo.transaction():
            if self.product_repo.get_by_id(product_id) is None:
                raise NotFoundError(f'Producto {product_id} no encontrado', product_id=product_id)
            changes['updated_at'] = self.clock()
            product = self.product_repo.update(product_id, changes)
            if self.audit_service:
                self.audit_service.log_product_updated(user, product_id, updates)

        return {'ok': True, 'product': product}

    @service_operation("Error al cambiar el estado del producto")
    def set_product_active(self, product_id: str, is_active: bool, user: str) -> Dict[str, Any]:
        """
        Activa o desactiva (soft delete) un producto.
        Los productos referenciados por kits o entregas nunca se borran.
        """
        product_id = require(product_id, 'El ID del producto es obligatorio')
        user = require(user, 'Usuario no autenticado')
        with self.product_repo.transaction():
            if self.product_repo.get_by_id(product_id) is None:
                raise NotFoundError(f'Producto {product_id} no encontrado', product_id=product_id)
            product = self.product_repo.update(product_id, {
                'is_active': bool(is_active),
                'updated_at': self.clock(),
            })
            if self.audit_service:
                self.audit_service.log_product_active_changed(user, product, bool(is_active))
        return {'ok': True, 'product': product}

    def deactivate_product(self, product_id: str, user: str) -> Dict[str, Any]:
        return self.set_product_active(product_id, False, user)

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    def get_product(self, product_id: str) -> Optional[Product]:
        """Obtiene un producto por su ID."""
        return self.product_repo.get_by_id(product_id)

    def get_active_products(self):
        return self.product_repo.get_active()

    def get_available_products(self):
        """Productos activos con stock (catálogo del kit personalizado)."""
        return self.product_repo.get_available()

    def get_low_stock_products(self):
        return self.product_repo.get_low_stock()

    def search_products(self, query: str):
        return self.product_repo.search(query)
