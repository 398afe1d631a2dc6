# ==============================================================================
# SERVICIO DE DISPONIBILIDAD DE KITS
# ==============================================================================
# Responde "¿se puede entregar este kit ahora?" y "¿qué líneas faltan?".
# Es una foto del momento: no reserva ni bloquea stock. Entre la consulta y
# la confirmación de la entrega el stock puede cambiar.
# ==============================================================================

from typing import Any, Dict, Iterable, List

from lojasocial.models import Kit, KitItem, KitItemAvailability
from lojasocial.repositories import KitRepository, ProductRepository
from lojasocial.services.results import NotFoundError, require, service_operation


class AvailabilityService:
    """
    Verificador de disponibilidad de kits.

    Una línea está disponible si el producto existe, está activo y su stock
    actual cubre la cantidad requerida. Un kit sin líneas está disponible.
    """

    def __init__(self, product_repo: ProductRepository, kit_repo: KitRepository):
        """
        Args:
            product_repo: Repositorio de productos (stock actual)
            kit_repo: Repositorio de kits
        """
        self.product_repo = product_repo
        self.kit_repo = kit_repo

    def check_availability(self, kit: Kit) -> bool:
        """True si todas las líneas del kit pueden cubrirse con el stock actual."""
        return self.check_items(kit.items)

    def check_items(self, items: Iterable[KitItem]) -> bool:
        """Igual que check_availability, para una lista de líneas suelta."""
        return all(d.is_available for d in self._details(items))

    def get_availability_details(self, kit: Kit) -> Dict[str, KitItemAvailability]:
        """
        Detalle por producto de la disponibilidad del kit.

        Returns:
            Dict {product_id: KitItemAvailability}
        """
        return self.get_items_details(kit.items)

    def get_items_details(self, items: Iterable[KitItem]) -> Dict[str, KitItemAvailability]:
        return {d.product_id: d for d in self._details(items)}

    @staticmethod
    def merge_items(items: Iterable[KitItem]) -> List[KitItem]:
        """Une las líneas del mismo producto sumando cantidades (mantiene el orden)."""
        merged: Dict[str, KitItem] = {}
        for item in items:
            if item.product_id in merged:
                previous = merged[item.product_id]
                merged[item.product_id] = KitItem(
                    product_id=previous.product_id,
                    product_name=previous.product_name,
                    quantity=previous.quantity + item.quantity,
                    unit=previous.unit,
                )
            else:
                merged[item.product_id] = item
        return list(merged.values())

    def _details(self, items: Iterable[KitItem]) -> List[KitItemAvailability]:
        details = []
        # Un producto repetido debe cubrir la suma de sus líneas
        for item in self.merge_items(items):
            product = self.product_repo.get_by_id(item.product_id)
            if product is None:
                # Producto eliminado del catálogo: la línea no puede cubrirse
                details.append(KitItemAvailability(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    required_quantity=item.quantity,
                    available_stock=0.0,
                    is_available=False,
                    is_active=False,
                ))
                continue
            details.append(KitItemAvailability(
                product_id=product.id,
                product_name=product.name,
                required_quantity=item.quantity,
                available_stock=product.current_stock,
                is_available=product.is_active and product.current_stock >= item.quantity,
                is_active=product.is_active,
            ))
        return details

    # =========================================================================
    # VARIANTES CON RESULTADO (por ID de kit)
    # =========================================================================

    @service_operation("Error al verificar la disponibilidad del kit")
    def check_kit_availability(self, kit_id: str) -> Dict[str, Any]:
        """
        Returns:
            Dict con ok, kit_id, available
        """
        kit = self._load_kit(kit_id)
        return {'ok': True, 'kit_id': kit.id, 'available': self.check_availability(kit)}

    @service_operation("Error al obtener la disponibilidad del kit")
    def get_kit_availability_details(self, kit_id: str) -> Dict[str, Any]:
        """
        Returns:
            Dict con ok, kit_id, available, details {product_id: KitItemAvailability}
        """
        kit = self._load_kit(kit_id)
        details = self.get_availability_details(kit)
        return {
            'ok': True,
            'kit_id': kit.id,
            'available': all(d.is_available for d in details.values()),
            'details': details,
        }

    def _load_kit(self, kit_id: str) -> Kit:
        kit_id = require(kit_id, 'El ID del kit es obligatorio')
        kit = self.kit_repo.get_by_id(kit_id)
        if kit is None:
            raise NotFoundError(f'Kit {kit_id} no encontrado', kit_id=kit_id)
        return kit
