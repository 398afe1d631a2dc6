# ==============================================================================
# REPOSITORIO DE PRODUCTOS
# ==============================================================================
# Encapsula el acceso a la colección "products".
# El stock de un producto solo lo modifica el libro de stock (StockService).
# ==============================================================================

from typing import List

from lojasocial.models import Product
from .base import BaseRepository


class ProductRepository(BaseRepository):
    """
    Repositorio de productos.

    Formato del documento:
    {
        "id": "a1b2...",
        "name": "Arroz 1kg",
        "category": "FOOD",
        "unit": "PACKAGE",
        "current_stock": 12.0,
        "minimum_stock": 5.0,
        "is_active": true,
        ...
    }
    """

    COLLECTION = 'products'

    def _to_entity(self, data) -> Product:
        return Product.from_dict(data)

    def get_active(self) -> List[Product]:
        """Productos activos ordenados por nombre."""
        return self.find(lambda p: p.is_active, sort_key=lambda p: p.name.lower())

    def get_available(self) -> List[Product]:
        """Productos activos con stock > 0 (catálogo para kits personalizados)."""
        return self.find(lambda p: p.is_available, sort_key=lambda p: p.name.lower())

    def get_low_stock(self) -> List[Product]:
        """
        Productos activos con stock en o por debajo del mínimo.

        Returns:
            Lista ordenada por stock ascendente
        """
        return self.find(
            lambda p: p.is_active and p.is_low_stock,
            sort_key=lambda p: p.current_stock
        )

    def search(self, query: str) -> List[Product]:
        """Busca productos por nombre, descripción o código de barras."""
        q = (query or '').strip().lower()
        if not q:
            return self.get_active()
        return self.find(
            lambda p: (
                q in p.name.lower()
                or q in (p.description or '').lower()
                or q == (p.barcode or '').lower()
            ),
            sort_key=lambda p: p.name.lower()
        )
