# -*- coding: utf-8 -*-
"""
Test del constructor y validador de kits personalizados
"""
from lojasocial.models import (
    CUSTOM_KIT_ID,
    CustomKit,
    CustomKitItem,
    DeliveryStatus,
    KitItem,
    ProductUnit,
)
from lojasocial.services import ErrorType

from conftest import ACTOR, stock_of


def _product(container, product_id):
    return container.product_repo.get_by_id(product_id)


def test_custom_kit_from_existing_kit_end_to_end(container, seeded):
    builder = container.custom_kit_service.builder()

    started = builder.start_from_kit(seeded.kit.id)
    assert started['ok']
    kit = started['custom_kit']
    assert kit.base_kit_name == 'Kit básico'
    assert [(i.product_id, i.quantity) for i in kit.selected_items] == [
        (seeded.rice.id, 2), (seeded.oil.id, 1)
    ]

    builder.update_quantity(seeded.oil.id, 2)
    builder.add_product(_product(container, seeded.soap.id), 1)
    builder.set_notes('Prefiero jabón neutro')
    assert builder.custom_kit.total_items == 5

    validation = builder.validate()
    assert validation == {'ok': True, 'valid': True, 'reason': None}

    submitted = builder.submit(seeded.beneficiary.id, 'Para esta semana')
    assert submitted['ok'], submitted
    delivery = submitted['delivery']
    assert delivery.status == DeliveryStatus.PENDING_APPROVAL
    assert delivery.kit_id == seeded.kit.id
    assert delivery.kit_name == 'Kit básico (Personalizado - 5 artículos)'
    assert delivery.is_custom
    assert {i.product_id: i.quantity for i in delivery.custom_items} == {
        seeded.rice.id: 2, seeded.oil.id: 2, seeded.soap.id: 1
    }
    assert delivery.request_notes.splitlines() == [
        'Para esta semana',
        '',
        'KIT PERSONALIZADO:',
        'Basado en: Kit básico',
        'Productos seleccionados:',
        '- Arroz (2 KILOGRAM)',
        '- Aceite (2 LITER)',
        '- Jabón (1 UNIT)',
        '',
        'Observaciones: Prefiero jabón neutro',
    ]
    # El constructor queda vacío tras enviar
    assert builder.custom_kit.is_empty

    # La entrega descuenta las líneas elegidas, no las del kit base
    service = container.delivery_service
    assert service.approve_delivery_request(delivery.id, ACTOR)['ok']
    assert service.schedule_delivery(delivery.id, '2024-05-03', None, ACTOR)['ok']
    assert service.confirm_delivery(delivery.id, ACTOR)['ok']
    assert stock_of(container, seeded.rice.id) == 8
    assert stock_of(container, seeded.oil.id) == 3
    assert stock_of(container, seeded.soap.id) == 2


def test_custom_kit_from_scratch(container, seeded):
    builder = container.custom_kit_service.builder()
    builder.start_from_scratch()
    builder.add_product(_product(container, seeded.soap.id), 2)
    builder.add_product(_product(container, seeded.soap.id), 1)
    assert builder.custom_kit.get_item(seeded.soap.id).quantity == 3

    result = builder.submit(seeded.beneficiary.id)
    assert result['ok'], result
    delivery = result['delivery']
    assert delivery.kit_id == CUSTOM_KIT_ID
    assert delivery.kit_name == 'Kit personalizado (3 artículos)'
    assert 'Basado en' not in delivery.request_notes


def test_validation_reasons(container, seeded):
    service = container.custom_kit_service

    empty = service.validate(CustomKit())
    assert empty['valid'] is False
    assert empty['reason'] == 'Añade al menos un producto'

    too_much = CustomKit(selected_items=[
        CustomKitItem(seeded.soap.id, 'Jabón', 4, ProductUnit.UNIT)
    ])
    result = service.validate(too_much)
    assert result['valid'] is False
    assert result['reason'] == 'Stock insuficiente para Jabón. Disponible: 3 UNIT'

    unknown = CustomKit(selected_items=[CustomKitItem('nope', 'Fantasma', 1)])
    assert service.validate(unknown)['reason'] == 'Producto Fantasma no encontrado'

    container.product_service.deactivate_product(seeded.oil.id, ACTOR)
    inactive = CustomKit(selected_items=[CustomKitItem(seeded.oil.id, 'Aceite', 1)])
    assert service.validate(inactive)['reason'] == 'Producto Aceite ya no está disponible'


def test_invalid_selection_is_not_submitted(container, seeded):
    builder = container.custom_kit_service.builder()
    builder.add_product(_product(container, seeded.oil.id), 6)

    result = builder.submit(seeded.beneficiary.id)
    assert result['ok'] is False
    assert result['error_type'] == ErrorType.VALIDATION.value
    assert result['error'].startswith('Stock insuficiente para Aceite')
    # La selección se conserva para corregirla
    assert builder.custom_kit.get_item(seeded.oil.id).quantity == 6
    assert container.delivery_service.get_all_deliveries() == []

    empty = container.custom_kit_service.builder().submit(seeded.beneficiary.id)
    assert empty['error'] == 'Añade al menos un producto'


def test_submit_requires_active_beneficiary(container, seeded):
    builder = container.custom_kit_service.builder()
    builder.add_product(_product(container, seeded.soap.id), 1)

    container.beneficiary_service.set_beneficiary_active(seeded.beneficiary.id, False, ACTOR)
    result = builder.submit(seeded.beneficiary.id)
    assert result['ok'] is False
    assert 'no está activo' in result['error']

    unknown = builder.submit('nope')
    assert unknown['error_type'] == ErrorType.NOT_FOUND.value


def test_builder_edits(container, seeded):
    builder = container.custom_kit_service.builder()
    soap = _product(container, seeded.soap.id)

    assert builder.add_product(soap, 0)['ok'] is False
    assert builder.add_product(soap, 'dos')['ok'] is False
    assert builder.add_product(None)['ok'] is False

    builder.add_product(soap, 2)
    builder.add_product(_product(container, seeded.rice.id), 1)
    builder.update_quantity(seeded.soap.id, 0)
    assert builder.custom_kit.get_item(seeded.soap.id) is None

    builder.remove_product('no-estaba')
    builder.remove_product(seeded.rice.id)
    assert builder.custom_kit.is_empty

    builder.start_from_kit(seeded.kit.id)
    builder.clear()
    assert builder.custom_kit.is_empty
    assert builder.custom_kit.base_kit_id == seeded.kit.id


def test_start_from_kit_round_trip(container, seeded):
    custom = container.custom_kit_service.start_from_kit(seeded.kit.id)['custom_kit']
    assert [i.to_kit_item() for i in custom.selected_items] == seeded.kit.items


def test_start_from_kit_truncates_fractional_quantities(container, seeded):
    kit = container.kit_service.create_kit('Kit granel', [
        {'product_id': seeded.rice.id, 'quantity': 0.5},
        {'product_id': seeded.oil.id, 'quantity': 1.5},
    ], ACTOR)['kit']

    custom = container.custom_kit_service.start_from_kit(kit.id)['custom_kit']
    assert [(i.product_id, i.quantity) for i in custom.selected_items] == [(seeded.oil.id, 1)]

    missing = container.custom_kit_service.start_from_kit('nope')
    assert missing['error_type'] == ErrorType.NOT_FOUND.value


def test_catalog_lists_only_available_products(container, seeded):
    container.stock_service.apply_movement(seeded.soap.id, 'ADJUSTMENT', 0, ACTOR, 'Inventario')
    names = [p.name for p in container.custom_kit_service.get_available_products()]
    assert names == ['Aceite', 'Arroz']


def test_lines_without_quantity_are_rejected(container, seeded):
    service = container.custom_kit_service
    custom = CustomKit(selected_items=[
        CustomKitItem(seeded.soap.id, 'Jabón', 1, ProductUnit.UNIT),
        CustomKitItem(seeded.rice.id, 'Arroz', 0, ProductUnit.KILOGRAM),
    ])

    result = service.validate(custom)
    assert result['valid'] is False
    assert result['reason'] == 'La cantidad de Arroz debe ser mayor a 0'

    submitted = service.submit(seeded.beneficiary.id, custom)
    assert submitted['error_type'] == ErrorType.VALIDATION.value
    assert container.delivery_service.get_all_deliveries() == []

    direct = container.delivery_service.request_custom_delivery(
        seeded.beneficiary.id,
        'Kit personalizado (1 artículos)',
        [KitItem(seeded.soap.id, 'Jabón', 1), KitItem(seeded.rice.id, 'Arroz', -2)],
        '',
    )
    assert direct['ok'] is False
    assert direct['error'] == 'La cantidad de Arroz debe ser mayor a 0'
    assert container.delivery_service.get_all_deliveries() == []


def test_repeated_product_lines_are_checked_together(container, seeded):
    service = container.custom_kit_service

    # 2 + 2 jabones con 3 en stock
    doubled = CustomKit(selected_items=[
        CustomKitItem(seeded.soap.id, 'Jabón', 2, ProductUnit.UNIT),
        CustomKitItem(seeded.soap.id, 'Jabón', 2, ProductUnit.UNIT),
    ])
    result = service.validate(doubled)
    assert result['valid'] is False
    assert result['reason'] == 'Stock insuficiente para Jabón. Disponible: 3 UNIT'
    assert service.submit(seeded.beneficiary.id, doubled)['ok'] is False

    within = CustomKit(selected_items=[
        CustomKitItem(seeded.soap.id, 'Jabón', 1, ProductUnit.UNIT),
        CustomKitItem(seeded.soap.id, 'Jabón', 2, ProductUnit.UNIT),
    ])
    submitted = service.submit(seeded.beneficiary.id, within)
    assert submitted['ok'], submitted
    delivery = submitted['delivery']
    assert [(i.product_id, i.quantity) for i in delivery.custom_items] == [(seeded.soap.id, 3)]
    assert '- Jabón (3 UNIT)' in delivery.request_notes.splitlines()


def test_repeated_lines_of_a_request_are_merged_before_scheduling(container, seeded):
    deliveries = container.delivery_service
    result = deliveries.request_custom_delivery(
        seeded.beneficiary.id,
        'Kit personalizado (4 artículos)',
        [KitItem(seeded.soap.id, 'Jabón', 2), KitItem(seeded.soap.id, 'Jabón', 2)],
        '',
    )
    assert result['ok'], result
    delivery = result['delivery']
    assert [(i.product_id, i.quantity) for i in delivery.custom_items] == [(seeded.soap.id, 4)]

    assert deliveries.approve_delivery_request(delivery.id, ACTOR)['ok']
    scheduled = deliveries.schedule_delivery(delivery.id, '2024-05-03', None, ACTOR)
    assert scheduled['ok'] is False
    assert deliveries.get_delivery(delivery.id).status == DeliveryStatus.APPROVED
    assert stock_of(container, seeded.soap.id) == 3
