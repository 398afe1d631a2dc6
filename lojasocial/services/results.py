# ==============================================================================
# RESULTADOS Y ERRORES DE SERVICIO
# ==============================================================================
# Los servicios nunca lanzan excepciones hacia afuera: retornan un dict
#   {'ok': True, ...datos}
#   {'ok': False, 'error': mensaje, 'error_type': tipo, ...detalles}
#
# Internamente se lanzan subclases de ServiceError; el decorador
# service_operation las convierte en resultado al salir del servicio.
# ==============================================================================

from enum import Enum
from functools import wraps
from typing import Any, Dict, Optional

from lojasocial.models import format_quantity
from lojasocial.repositories import StoreError


class ErrorType(str, Enum):
    """Categorías de error que ve el llamador."""
    VALIDATION = "VALIDATION"                  # Datos inválidos o estado incorrecto
    NOT_FOUND = "NOT_FOUND"                    # Entidad referenciada inexistente
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"  # Salida mayor al stock
    STORE = "STORE"                            # Falla del almacén de datos


class ServiceError(Exception):
    """Error de negocio con mensaje legible para el usuario."""

    error_type = ErrorType.VALIDATION

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_result(self) -> Dict[str, Any]:
        """Convierte el error en resultado de servicio."""
        return failure(self.message, self.error_type, **self.details)


class ValidationError(ServiceError):
    """Entrada inválida o precondición de estado no cumplida."""
    error_type = ErrorType.VALIDATION


class NotFoundError(ServiceError):
    """La entidad referenciada no existe."""
    error_type = ErrorType.NOT_FOUND


class InsufficientStockError(ServiceError):
    """
    Una salida de stock supera lo disponible.
    Lleva el producto y el faltante para mostrar exactamente qué falta.
    """
    error_type = ErrorType.INSUFFICIENT_STOCK

    def __init__(
        self,
        product_id: str,
        product_name: str,
        available: float,
        requested: float,
        unit: str = ''
    ):
        unit_str = f" {unit}" if unit else ''
        message = (
            f"Stock insuficiente para {product_name}. "
            f"Disponible: {format_quantity(available)}{unit_str}, "
            f"solicitado: {format_quantity(requested)}{unit_str}"
        )
        super().__init__(
            message,
            product_id=product_id,
            product_name=product_name,
            available=available,
            requested=requested,
            shortfall=round(requested - available, 6),
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


def failure(
    message: str,
    error_type: ErrorType = ErrorType.VALIDATION,
    **details: Any
) -> Dict[str, Any]:
    """Construye un resultado de error."""
    result = {'ok': False, 'error': message, 'error_type': error_type.value}
    result.update(details)
    return result


def require(value: Optional[str], message: str) -> str:
    """
    Valida que un texto no esté vacío.

    Raises:
        ValidationError: Si el valor es None o solo espacios
    """
    if value is None or not str(value).strip():
        raise ValidationError(message)
    return str(value).strip()


def service_operation(context: str):
    """
    Decorador para operaciones públicas de servicio.

    - ServiceError → resultado con su mensaje original
    - StoreError → resultado STORE con contexto ("Error al ...: detalle")

    Uso:
        @service_operation("Error al confirmar la entrega")
        def confirm_delivery(self, ...):
            ...
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except ServiceError as e:
                return e.to_result()
            except StoreError as e:
                print(f"[STORE] {context}: {e}")
                return failure(f"{context}: {e}", ErrorType.STORE)
        return wrapper
    return decorator
