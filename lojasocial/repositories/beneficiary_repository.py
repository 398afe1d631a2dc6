# ==============================================================================
# REPOSITORIO DE BENEFICIARIOS
# ==============================================================================

from typing import Optional

from lojasocial.models import Beneficiary
from .base import BaseRepository


class BeneficiaryRepository(BaseRepository):
    """Repositorio de beneficiarios."""

    COLLECTION = 'beneficiaries'

    def _to_entity(self, data) -> Beneficiary:
        return Beneficiary.from_dict(data)

    def get_by_user_id(self, user_id: str) -> Optional[Beneficiary]:
        """Obtiene el beneficiario asociado a un usuario autenticado."""
        matches = self.find(lambda b: b.user_id == user_id)
        return matches[0] if matches else None

    def get_by_student_number(self, student_number: str) -> Optional[Beneficiary]:
        matches = self.find(lambda b: b.student_number == student_number)
        return matches[0] if matches else None
