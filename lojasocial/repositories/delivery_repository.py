# ==============================================================================
# REPOSITORIO DE ENTREGAS
# ==============================================================================
# Encapsula el acceso a la colección "deliveries".
# Las entregas nunca se eliminan: terminan en CONFIRMED, REJECTED o CANCELLED.
# ==============================================================================

from datetime import datetime
from typing import List, Optional

from lojasocial.models import Delivery, DeliveryStatus
from .base import BaseRepository
from .live_query import LiveQuery


def _by_creation(delivery: Delivery):
    return delivery.created_at.isoformat() if delivery.created_at else ''


def _by_schedule(delivery: Delivery):
    return delivery.scheduled_date.isoformat() if delivery.scheduled_date else ''


class DeliveryRepository(BaseRepository):
    """Repositorio de entregas."""

    COLLECTION = 'deliveries'

    def _to_entity(self, data) -> Delivery:
        return Delivery.from_dict(data)

    def get_by_status(self, status: DeliveryStatus) -> List[Delivery]:
        """Entregas en un estado, más recientes primero."""
        return self.find(lambda d: d.status == status, sort_key=_by_creation, reverse=True)

    def get_by_beneficiary(self, beneficiary_id: str) -> List[Delivery]:
        """Historial de entregas de un beneficiario, más recientes primero."""
        return self.find(
            lambda d: d.beneficiary_id == beneficiary_id,
            sort_key=_by_creation,
            reverse=True
        )

    def get_scheduled_between(self, start: datetime, end: datetime) -> List[Delivery]:
        """Entregas programadas con fecha en [start, end], ordenadas por fecha."""
        return self.find(
            lambda d: (
                d.status == DeliveryStatus.SCHEDULED
                and d.scheduled_date is not None
                and start <= d.scheduled_date <= end
            ),
            sort_key=_by_schedule
        )

    def search(self, query: str) -> List[Delivery]:
        """Busca por nombre de beneficiario o de kit (sin distinguir mayúsculas)."""
        q = (query or '').strip().lower()
        return self.find(
            lambda d: q in d.beneficiary_name.lower() or q in d.kit_name.lower(),
            sort_key=_by_creation,
            reverse=True
        )

    def watch_filtered(
        self,
        status: Optional[DeliveryStatus] = None,
        beneficiary_id: Optional[str] = None
    ) -> LiveQuery:
        """Consulta en vivo de entregas, filtrando por estado y/o beneficiario."""
        def matches(d: Delivery) -> bool:
            if status is not None and d.status != status:
                return False
            if beneficiary_id is not None and d.beneficiary_id != beneficiary_id:
                return False
            return True
        return self.watch(matches, sort_key=_by_creation, reverse=True)
