# ==============================================================================
# SERVICIO DE KITS PERSONALIZADOS
# ==============================================================================
# El beneficiario arma su propia selección de productos (opcionalmente a
# partir de un kit existente), se valida contra el stock actual y se
# convierte en una solicitud de entrega.
#
# La validación es una foto del momento: no se reserva stock.
# ==============================================================================

from typing import Any, Dict, List, Optional

from lojasocial.models import (
    CustomKit,
    CustomKitItem,
    Product,
    format_quantity,
)
from lojasocial.repositories import (
    BeneficiaryRepository,
    KitRepository,
    ProductRepository,
)
from lojasocial.services.delivery_service import DeliveryService
from lojasocial.services.results import (
    NotFoundError,
    ValidationError,
    failure,
    require,
    service_operation,
)


class CustomKitService:
    """
    Servicio de kits personalizados.

    Responsabilidades:
    - Sembrar una selección a partir de un kit existente
    - Validar la selección contra el stock actual
    - Convertir la selección en una solicitud de entrega
    """

    def __init__(
        self,
        product_repo: ProductRepository,
        kit_repo: KitRepository,
        beneficiary_repo: BeneficiaryRepository,
        delivery_service: DeliveryService
    ):
        """
        Args:
            product_repo: Repositorio de productos
            kit_repo: Repositorio de kits
            beneficiary_repo: Repositorio de beneficiarios
            delivery_service: Servicio de entregas (crea la solicitud)
        """
        self.product_repo = product_repo
        self.kit_repo = kit_repo
        self.beneficiary_repo = beneficiary_repo
        self.delivery_service = delivery_service

    def builder(self) -> 'CustomKitBuilder':
        """Crea un constructor de selección vacío."""
        return CustomKitBuilder(self)

    def get_available_products(self) -> List[Product]:
        """Catálogo para armar el kit: productos activos con stock."""
        return self.product_repo.get_available()

    @service_operation("Error al cargar el kit base")
    def start_from_kit(self, kit_id: str) -> Dict[str, Any]:
        """
        Copia las líneas de un kit a una selección nueva.

        Las cantidades se truncan a unidades enteras; las líneas que quedan
        en 0 se descartan. No crea ni reserva nada.

        Returns:
            Dict con ok y custom_kit
        """
        kit_id = require(kit_id, 'El ID del kit es obligatorio')
        kit = self.kit_repo.get_by_id(kit_id)
        if kit is None:
            raise NotFoundError(f'Kit {kit_id} no encontrado', kit_id=kit_id)

        items = [
            CustomKitItem(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=int(item.quantity),
                unit=item.unit,
            )
            for item in kit.items
            if int(item.quantity) > 0
        ]
        custom_kit = CustomKit(
            selected_items=items,
            base_kit_id=kit.id,
            base_kit_name=kit.name,
        )
        return {'ok': True, 'custom_kit': custom_kit}

    @service_operation("Error al leer el kit personalizado")
    def parse_custom_kit(self, data: Any) -> Dict[str, Any]:
        """
        Construye la selección a partir del JSON recibido por la API.

        Returns:
            Dict con ok y custom_kit
        """
        if not isinstance(data, dict) or not isinstance(data.get('selected_items', []), list):
            raise ValidationError('Formato de kit personalizado inválido')
        try:
            custom_kit = CustomKit.from_dict(data)
        except AttributeError:
            raise ValidationError('Formato de kit personalizado inválido')
        except (TypeError, ValueError):
            raise ValidationError('Cantidad inválida')
        return {'ok': True, 'custom_kit': custom_kit}

    # =========================================================================
    # VALIDACIÓN
    # =========================================================================

    @service_operation("Error al validar el kit")
    def validate(self, custom_kit: CustomKit) -> Dict[str, Any]:
        """
        Valida la selección contra el catálogo y el stock actual.

        Returns:
            Dict con ok, valid y reason (None si es válida)
        """
        reason = self._invalid_reason(custom_kit)
        return {'ok': True, 'valid': reason is None, 'reason': reason}

    def _invalid_reason(self, custom_kit: CustomKit) -> Optional[str]:
        """Primer motivo por el que la selección no es válida, o None."""
        if custom_kit.is_empty:
            return 'Añade al menos un producto'

        for item in custom_kit.selected_items:
            if item.quantity <= 0:
                return f'La cantidad de {item.product_name or item.product_id} debe ser mayor a 0'

        # El stock debe cubrir la suma de las líneas repetidas
        for item in custom_kit.merged_items():
            product = self.product_repo.get_by_id(item.product_id)
            if product is None:
                return f'Producto {item.product_name} no encontrado'
            if not product.is_active:
                return f'Producto {product.name} ya no está disponible'
            if product.current_stock < item.quantity:
                return (
                    f'Stock insuficiente para {product.name}. '
                    f'Disponible: {format_quantity(product.current_stock)} {product.unit.value}'
                )
        return None

    # =========================================================================
    # ENVÍO
    # =========================================================================

    @service_operation("Error al enviar el kit personalizado")
    def submit(
        self,
        beneficiary_id: str,
        custom_kit: CustomKit,
        notes: str = ''
    ) -> Dict[str, Any]:
        """
        Convierte la selección en una solicitud de entrega (PENDING_APPROVAL).

        Revalida beneficiario y stock. Los errores de los pasos internos se
        propagan con su mensaje original.

        Args:
            beneficiary_id: ID del beneficiario que solicita
            custom_kit: Selección a enviar
            notes: Observaciones de la solicitud

        Returns:
            Dict con ok y delivery
        """
        beneficiary_id = require(beneficiary_id, 'El beneficiario es obligatorio')
        beneficiary = self.beneficiary_repo.get_by_id(beneficiary_id)
        if beneficiary is None:
            raise NotFoundError(
                f'Beneficiario {beneficiary_id} no encontrado', beneficiary_id=beneficiary_id
            )
        if not beneficiary.is_active:
            raise ValidationError(f'El beneficiario {beneficiary.name} no está activo')

        reason = self._invalid_reason(custom_kit)
        if reason is not None:
            raise ValidationError(reason)

        return self.delivery_service.request_custom_delivery(
            beneficiary_id,
            self.build_kit_name(custom_kit),
            [item.to_kit_item() for item in custom_kit.merged_items()],
            self.build_request_notes(custom_kit, notes),
            base_kit_id=custom_kit.base_kit_id,
            requested_by=beneficiary_id,
        )

    @staticmethod
    def build_kit_name(custom_kit: CustomKit) -> str:
        """Nombre de la entrega: basado en el kit de origen si lo hay."""
        if custom_kit.is_based_on_kit:
            return f'{custom_kit.base_kit_name} (Personalizado - {custom_kit.total_items} artículos)'
        return f'Kit personalizado ({custom_kit.total_items} artículos)'

    @staticmethod
    def build_request_notes(custom_kit: CustomKit, notes: str = '') -> str:
        """Descripción legible de la selección para el colaborador que revisa."""
        lines = []
        if notes and notes.strip():
            lines.append(notes.strip())
            lines.append('')
        lines.append('KIT PERSONALIZADO:')
        if custom_kit.is_based_on_kit:
            lines.append(f'Basado en: {custom_kit.base_kit_name}')
        lines.append('Productos seleccionados:')
        for item in custom_kit.merged_items():
            lines.append(f'- {item.product_name} ({item.quantity} {item.unit.value})')
        if custom_kit.notes and custom_kit.notes.strip():
            lines.append('')
            lines.append(f'Observaciones: {custom_kit.notes.strip()}')
        return '\n'.join(lines)


class CustomKitBuilder:
    """
    Selección de trabajo del beneficiario (en memoria).

    Las ediciones no tocan el almacén; solo validate() y submit() leen stock.
    Cada operación retorna un dict {'ok': ..., 'custom_kit': ...} como el
    resto de servicios.
    """

    def __init__(self, service: CustomKitService):
        self.service = service
        self.custom_kit = CustomKit()

    def _result(self) -> Dict[str, Any]:
        return {'ok': True, 'custom_kit': self.custom_kit}

    def start_from_scratch(self) -> Dict[str, Any]:
        """Empieza una selección vacía."""
        self.custom_kit = CustomKit()
        return self._result()

    def start_from_kit(self, kit_id: str) -> Dict[str, Any]:
        """Empieza a partir de las líneas de un kit existente."""
        result = self.service.start_from_kit(kit_id)
        if result['ok']:
            self.custom_kit = result['custom_kit']
        return result

    def add_product(self, product: Product, quantity: int = 1) -> Dict[str, Any]:
        """
        Agrega un producto. Si ya está en la selección se suma la cantidad.

        Args:
            product: Producto del catálogo
            quantity: Unidades a agregar (> 0)
        """
        if product is None or not product.id:
            return failure('Producto inválido')
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            return failure('Cantidad inválida')
        if quantity <= 0:
            return failure('La cantidad debe ser mayor a 0')

        items = []
        found = False
        for item in self.custom_kit.selected_items:
            if item.product_id == product.id:
                item = CustomKitItem(item.product_id, item.product_name, item.quantity + quantity, item.unit)
                found = True
            items.append(item)
        if not found:
            items.append(CustomKitItem(product.id, product.name, quantity, product.unit))
        self.custom_kit.selected_items = items
        return self._result()

    def remove_product(self, product_id: str) -> Dict[str, Any]:
        """Quita un producto de la selección (no falla si no estaba)."""
        self.custom_kit.selected_items = [
            item for item in self.custom_kit.selected_items if item.product_id != product_id
        ]
        return self._result()

    def update_quantity(self, product_id: str, quantity: int) -> Dict[str, Any]:
        """
        Cambia la cantidad de una línea. Con cantidad <= 0 la línea se quita.
        """
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            return failure('Cantidad inválida')
        if quantity <= 0:
            return self.remove_product(product_id)

        self.custom_kit.selected_items = [
            CustomKitItem(item.product_id, item.product_name, quantity, item.unit)
            if item.product_id == product_id else item
            for item in self.custom_kit.selected_items
        ]
        return self._result()

    def set_notes(self, notes: str) -> Dict[str, Any]:
        self.custom_kit.notes = notes or ''
        return self._result()

    def clear(self) -> Dict[str, Any]:
        """Vacía la selección (conserva el kit de origen)."""
        self.custom_kit.selected_items = []
        return self._result()

    def validate(self) -> Dict[str, Any]:
        return self.service.validate(self.custom_kit)

    def submit(self, beneficiary_id: str, notes: str = '') -> Dict[str, Any]:
        """Envía la selección; si sale bien, el constructor queda vacío."""
        result = self.service.submit(beneficiary_id, self.custom_kit, notes)
        if result['ok']:
            self.custom_kit = CustomKit()
        return result
