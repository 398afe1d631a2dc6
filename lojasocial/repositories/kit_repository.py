# ==============================================================================
# REPOSITORIO DE KITS
# ==============================================================================
# Encapsula el acceso a la colección "kits".
# Los kits no se eliminan: se desactivan (is_active = False).
# ==============================================================================

from typing import List

from lojasocial.models import Kit
from .base import BaseRepository


class KitRepository(BaseRepository):
    """Repositorio de plantillas de kit."""

    COLLECTION = 'kits'

    def _to_entity(self, data) -> Kit:
        return Kit.from_dict(data)

    def get_active(self) -> List[Kit]:
        """Kits activos ordenados por nombre."""
        return self.find(lambda k: k.is_active, sort_key=lambda k: k.name.lower())

    def get_containing_product(self, product_id: str) -> List[Kit]:
        """Kits activos que incluyen un producto."""
        return self.find(
            lambda k: k.is_active and any(i.product_id == product_id for i in k.items)
        )
