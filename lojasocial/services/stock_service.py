# ==============================================================================
# SERVICIO DE STOCK - Libro de movimientos
# ==============================================================================
# Única fuente de verdad del stock de los productos. Toda modificación de
# current_stock pasa por aquí y queda registrada como StockMovement.
# ==============================================================================

import math
from typing import Any, Callable, Dict, Optional, Tuple

from lojasocial.models import (
    MovementType,
    Product,
    StockMovement,
    utc_now,
)
from lojasocial.performance_logger import profile_function
from lojasocial.repositories import (
    LiveQuery,
    ProductRepository,
    StockMovementRepository,
)
from lojasocial.services.audit_service import AuditService
from lojasocial.services.results import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    require,
    service_operation,
)


# Tipos que descuentan stock
OUTGOING_TYPES = frozenset([MovementType.EXIT, MovementType.TRANSFER])


class StockService:
    """
    Libro de stock.

    Responsabilidades:
    - Consultar el stock actual de un producto
    - Aplicar movimientos (entrada, salida, ajuste, transferencia)
    - Garantizar que el stock nunca sea negativo
    - Registrar cada movimiento como historial inmutable

    El producto y su movimiento se escriben en la misma transacción del
    almacén: nunca se observa uno sin el otro.
    """

    def __init__(
        self,
        product_repo: ProductRepository,
        movement_repo: StockMovementRepository,
        audit_service: AuditService = None,
        clock: Callable[[], Any] = utc_now
    ):
        """
        Inicializa el servicio de stock.

        Args:
            product_repo: Repositorio de productos
            movement_repo: Repositorio de movimientos
            audit_service: Servicio de auditoría (opcional)
            clock: Fuente de fecha/hora (inyectable para tests)
        """
        self.product_repo = product_repo
        self.movement_repo = movement_repo
        self.audit_service = audit_service
        self.clock = clock

    # =========================================================================
    # CONSULTAS
    # =========================================================================

    @service_operation("Error al consultar el stock")
    def get_current_stock(self, product_id: str) -> Dict[str, Any]:
        """
        Obtiene el stock actual de un producto.

        Args:
            product_id: ID del producto

        Returns:
            Dict con ok, product_id, stock, unit
        """
        product_id = require(product_id, 'El ID del producto es obligatorio')
        product = self.product_repo.get_by_id(product_id)
        if product is None:
            raise NotFoundError(f'Producto {product_id} no encontrado', product_id=product_id)
        return {
            'ok': True,
            'product_id': product.id,
            'stock': product.current_stock,
            'unit': product.unit.value,
        }

    @service_operation("Error al consultar los movimientos")
    def get_movements(self, product_id: str) -> Dict[str, Any]:
        """Historial de movimientos de un producto (más recientes primero)."""
        product_id = require(product_id, 'El ID del producto es obligatorio')
        if self.product_repo.get_by_id(product_id) is None:
            raise NotFoundError(f'Producto {product_id} no encontrado', product_id=product_id)
        return {'ok': True, 'movements': self.movement_repo.get_by_product(product_id)}

    def watch_movements(self, product_id: str) -> LiveQuery:
        """Consulta en vivo del historial de un producto."""
        return self.movement_repo.watch_by_product(product_id)

    # =========================================================================
    # MOVIMIENTOS
    # =========================================================================

    @profile_function(name="Aplicar movimiento de stock")
    @service_operation("Error al registrar el movimiento de stock")
    def apply_movement(
        self,
        product_id: str,
        movement_type: Any,
        quantity: Any,
        performed_by: str,
        reason: str,
        reference_document: Optional[str] = None,
        notes: str = ''
    ) -> Dict[str, Any]:
        """
        Aplica un movimiento de stock.

        - ENTRY suma la cantidad
        - EXIT resta la cantidad; falla si supera el stock actual
        - ADJUSTMENT fija el stock al valor indicado (>= 0)
        - TRANSFER resta la cantidad (el destino queda fuera del sistema)

        Args:
            product_id: ID del producto
            movement_type: MovementType o su valor ('ENTRY', 'EXIT', ...)
            quantity: Cantidad (> 0; para ADJUSTMENT el nuevo stock, >= 0)
            performed_by: Usuario que realiza el movimiento
            reason: Motivo del movimiento
            reference_document: Documento de referencia (opcional)
            notes: Observaciones

        Returns:
            Dict con ok, movement, product
        """
        movement, product = self.record_movement(
            product_id, movement_type, quantity, performed_by, reason,
            reference_document=reference_document, notes=notes
        )
        return {'ok': True, 'movement': movement, 'product': product}

    def record_movement(
        self,
        product_id: str,
        movement_type: Any,
        quantity: Any,
        performed_by: str,
        reason: str,
        reference_document: Optional[str] = None,
        notes: str = ''
    ) -> Tuple[StockMovement, Product]:
        """
        Igual que apply_movement pero lanza excepciones en lugar de retornar
        un resultado. Pensado para usarse dentro de la transacción de otro
        servicio (ej: confirmación de entrega), de modo que un error deshaga
        todo el conjunto.

        Returns:
            Tupla (movimiento registrado, producto actualizado)

        Raises:
            ValidationError: Datos inválidos
            NotFoundError: Producto inexistente
            InsufficientStockError: La salida supera el stock
        """
        product_id = require(product_id, 'El ID del producto es obligatorio')
        movement_type = self._parse_type(movement_type)
        quantity = self._parse_quantity(quantity, movement_type)
        reason = require(reason, 'El motivo del movimiento es obligatorio')
        performed_by = require(performed_by, 'El usuario que realiza el movimiento es obligatorio')

        with self.product_repo.transaction():
            # Lectura y escritura bajo el lock del almacén: nadie más
            # puede mover el stock de este producto entre medio.
            product = self.product_repo.get_by_id(product_id)
            if product is None:
                raise NotFoundError(f'Producto {product_id} no encontrado', product_id=product_id)

            previous = product.current_stock
            new_stock = self._compute_new_stock(product, movement_type, quantity)
            now = self.clock()

            movement = self.movement_repo.create(StockMovement(
                id='',
                product_id=product.id,
                product_name=product.name,
                type=movement_type,
                quantity=quantity,
                unit=product.unit,
                delta=round(new_stock - previous, 6),
                previous_stock=previous,
                new_stock=new_stock,
                reason=reason,
                performed_by=performed_by,
                performed_at=now,
                reference_document=reference_document,
                notes=notes or '',
            ))
            product = self.product_repo.update(product.id, {
                'current_stock': new_stock,
                'updated_at': now,
            })

            if self.audit_service:
                self.audit_service.log_stock_movement(performed_by, movement)

        return movement, product

    # =========================================================================
    # VALIDACIONES INTERNAS
    # =========================================================================

    def _parse_type(self, movement_type: Any) -> MovementType:
        if isinstance(movement_type, MovementType):
            return movement_type
        try:
            return MovementType(str(movement_type).strip().upper())
        except ValueError:
            raise ValidationError(f'Tipo de movimiento inválido: {movement_type}')

    def _parse_quantity(self, quantity: Any, movement_type: MovementType) -> float:
        if isinstance(quantity, bool):
            raise ValidationError('Cantidad inválida')
        try:
            quantity = float(quantity)
        except (TypeError, ValueError):
            raise ValidationError('Cantidad inválida')
        if not math.isfinite(quantity):
            raise ValidationError('Cantidad inválida')

        if movement_type == MovementType.ADJUSTMENT:
            if quantity < 0:
                raise ValidationError('El stock ajustado no puede ser negativo')
        elif quantity <= 0:
            raise ValidationError('La cantidad debe ser mayor a 0')
        return quantity

    def _compute_new_stock(
        self,
        product: Product,
        movement_type: MovementType,
        quantity: float
    ) -> float:
        """
        Calcula el stock resultante.

        Raises:
            InsufficientStockError: Si una salida deja el stock negativo
        """
        current = product.current_stock
        if movement_type == MovementType.ENTRY:
            return round(current + quantity, 6)
        if movement_type == MovementType.ADJUSTMENT:
            return round(quantity, 6)

        # EXIT / TRANSFER
        if quantity > current:
            raise InsufficientStockError(
                product.id, product.name, current, quantity, product.unit.value
            )
        return round(current - quantity, 6)
