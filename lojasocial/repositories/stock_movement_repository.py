# ==============================================================================
# REPOSITORIO DE MOVIMIENTOS DE STOCK
# ==============================================================================
# Historial auditable: los movimientos se agregan, nunca se editan ni borran.
# ==============================================================================

from typing import List

from lojasocial.models import StockMovement
from .base import BaseRepository
from .live_query import LiveQuery


def _newest_first(movement: StockMovement):
    return movement.performed_at.isoformat() if movement.performed_at else ''


class StockMovementRepository(BaseRepository):
    """Repositorio append-only de movimientos de stock."""

    COLLECTION = 'stock_movements'
    IMMUTABLE = True

    def _to_entity(self, data) -> StockMovement:
        return StockMovement.from_dict(data)

    def get_by_product(self, product_id: str) -> List[StockMovement]:
        """Movimientos de un producto, más recientes primero."""
        return self.find(
            lambda m: m.product_id == product_id,
            sort_key=_newest_first,
            reverse=True
        )

    def watch_by_product(self, product_id: str) -> LiveQuery:
        return self.watch(
            lambda m: m.product_id == product_id,
            sort_key=_newest_first,
            reverse=True
        )
