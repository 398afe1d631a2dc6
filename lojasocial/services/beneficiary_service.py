# ==============================================================================
# SERVICIO DE BENEFICIARIOS
# ==============================================================================
# Registro mínimo de beneficiarios que necesitan las entregas.
# Solo los beneficiarios activos pueden solicitar o recibir kits.
# ==============================================================================

from typing import Any, Callable, Dict, List, Optional

from lojasocial.models import Beneficiary, utc_now
from lojasocial.repositories import BeneficiaryRepository
from lojasocial.services.audit_service import AuditService
from lojasocial.services.results import (
    NotFoundError,
    ValidationError,
    require,
    service_operation,
)


class BeneficiaryService:
    """
    Servicio para gestión de beneficiarios.

    Responsabilidades:
    - Alta de beneficiarios vinculados a un usuario autenticado
    - Activación/desactivación
    - Consultas por ID o por usuario
    """

    def __init__(
        self,
        beneficiary_repo: BeneficiaryRepository,
        audit_service: AuditService = None,
        clock: Callable[[], Any] = utc_now
    ):
        self.beneficiary_repo = beneficiary_repo
        self.audit_service = audit_service
        self.clock = clock

    @service_operation("Error al registrar el beneficiario")
    def create_beneficiary(
        self,
        user_id: str,
        name: str,
        created_by: str,
        student_number: str = '',
        email: str = '',
        phone: str = ''
    ) -> Dict[str, Any]:
        """
        Registra un beneficiario.

        Args:
            user_id: ID del usuario en el proveedor de autenticación
            name: Nombre completo
            created_by: Colaborador que registra
            student_number: Número de estudiante (único si se indica)
            email: Correo
            phone: Teléfono

        Returns:
            Dict con ok y beneficiary
        """
        user_id = require(user_id, 'El usuario del beneficiario es obligatorio')
        name = require(name, 'El nombre del beneficiario es obligatorio')
        created_by = require(created_by, 'Usuario no autenticado')

        now = self.clock()
        with self.beneficiary_repo.transaction():
            if self.beneficiary_repo.get_by_user_id(user_id) is not None:
                raise ValidationError('Ya existe un beneficiario para este usuario')
            if student_number and self.beneficiary_repo.get_by_student_number(student_number):
                raise ValidationError(f'El número de estudiante {student_number} ya está registrado')

            beneficiary = self.beneficiary_repo.create(Beneficiary(
                id='',
                user_id=user_id,
                name=name,
                student_number=student_number or '',
                email=email or '',
                phone=phone or '',
                is_active=True,
                created_at=now,
                updated_at=now,
            ))
            if self.audit_service:
                self.audit_service.log_beneficiary_saved(
                    created_by, beneficiary.id, beneficiary.name, 'registrado'
                )
        return {'ok': True, 'beneficiary': beneficiary}

    @service_operation("Error al cambiar el estado del beneficiario")
    def set_beneficiary_active(
        self,
        beneficiary_id: str,
        is_active: bool,
        user: str
    ) -> Dict[str, Any]:
        """Activa o desactiva un beneficiario."""
        beneficiary_id = require(beneficiary_id, 'El ID del beneficiario es obligatorio')
        user = require(user, 'Usuario no autenticado')
        with self.beneficiary_repo.transaction():
            if self.beneficiary_repo.get_by_id(beneficiary_id) is None:
                raise NotFoundError(
                    f'Beneficiario {beneficiary_id} no encontrado', beneficiary_id=beneficiary_id
                )
            beneficiary = self.beneficiary_repo.update(beneficiary_id, {
                'is_active': bool(is_active),
                'updated_at': self.clock(),
            })
            if self.audit_service:
                action = 'reactivado' if is_active else 'desactivado'
                self.audit_service.log_beneficiary_saved(user, beneficiary.id, beneficiary.name, action)
        return {'ok': True, 'beneficiary': beneficiary}

    def get_beneficiary(self, beneficiary_id: str) -> Optional[Beneficiary]:
        return self.beneficiary_repo.get_by_id(beneficiary_id)

    def get_by_user_id(self, user_id: str) -> Optional[Beneficiary]:
        return self.beneficiary_repo.get_by_user_id(user_id)

    def get_active_beneficiaries(self) -> List[Beneficiary]:
        return self.beneficiary_repo.find(lambda b: b.is_active, sort_key=lambda b: b.name.lower())
