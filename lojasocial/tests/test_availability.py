# -*- coding: utf-8 -*-
"""
Test del verificador de disponibilidad de kits
"""
from lojasocial.models import Kit, KitItem
from lojasocial.services import ErrorType

from conftest import ACTOR


def test_kit_available_with_enough_stock(container, seeded):
    availability = container.availability_service
    assert availability.check_availability(seeded.kit) is True

    result = availability.check_kit_availability(seeded.kit.id)
    assert result == {'ok': True, 'kit_id': seeded.kit.id, 'available': True}


def test_details_report_shortfall(container, seeded):
    container.stock_service.apply_movement(seeded.rice.id, 'ADJUSTMENT', 1, ACTOR, 'Inventario')

    result = container.availability_service.get_kit_availability_details(seeded.kit.id)
    assert result['ok']
    assert result['available'] is False

    rice = result['details'][seeded.rice.id]
    assert rice.is_available is False
    assert rice.required_quantity == 2
    assert rice.available_stock == 1
    assert rice.shortfall == 1

    oil = result['details'][seeded.oil.id]
    assert oil.is_available is True
    assert oil.shortfall == 0


def test_exact_stock_is_enough(container, seeded):
    container.stock_service.apply_movement(seeded.rice.id, 'ADJUSTMENT', 2, ACTOR, 'Inventario')
    assert container.availability_service.check_availability(seeded.kit) is True


def test_inactive_product_makes_kit_unavailable(container, seeded):
    container.product_service.deactivate_product(seeded.oil.id, ACTOR)

    details = container.availability_service.get_availability_details(seeded.kit)
    assert details[seeded.oil.id].is_active is False
    assert details[seeded.oil.id].is_available is False
    assert container.availability_service.check_availability(seeded.kit) is False


def test_missing_product_makes_line_unavailable(container, seeded):
    kit = Kit(id='tmp', name='Kit fantasma', items=[KitItem('no-existe', 'Fantasma', 1)])
    details = container.availability_service.get_availability_details(kit)
    assert details['no-existe'].available_stock == 0
    assert details['no-existe'].is_available is False
    assert container.availability_service.check_availability(kit) is False


def test_empty_kit_is_available(container):
    assert container.availability_service.check_availability(Kit(id='e', name='Vacío')) is True


def test_unknown_kit(container):
    result = container.availability_service.check_kit_availability('nope')
    assert result['ok'] is False
    assert result['error_type'] == ErrorType.NOT_FOUND.value


def test_kit_lines_for_same_product_are_merged(container, seeded):
    result = container.kit_service.create_kit('Doble arroz', [
        {'product_id': seeded.rice.id, 'quantity': 6},
        {'product_id': seeded.rice.id, 'quantity': 6},
    ], ACTOR)
    assert result['ok']
    kit = result['kit']
    assert len(kit.items) == 1
    assert kit.items[0].quantity == 12
    assert kit.items[0].product_name == 'Arroz'
    # 12 kg requeridos, 10 disponibles
    assert container.availability_service.check_availability(kit) is False


def test_kit_validation(container, seeded):
    empty = container.kit_service.create_kit('Vacío', [], ACTOR)
    assert empty['error_type'] == ErrorType.VALIDATION.value

    bad_qty = container.kit_service.create_kit('Malo', [{'product_id': seeded.rice.id, 'quantity': 0}], ACTOR)
    assert bad_qty['error_type'] == ErrorType.VALIDATION.value

    missing = container.kit_service.create_kit('Otro', [{'product_id': 'nope', 'quantity': 1}], ACTOR)
    assert missing['error_type'] == ErrorType.NOT_FOUND.value

    for bad in (float('nan'), float('inf'), 'nan'):
        odd = container.kit_service.create_kit('Raro', [{'product_id': seeded.rice.id, 'quantity': bad}], ACTOR)
        assert odd['error_type'] == ErrorType.VALIDATION.value
    assert [k.name for k in container.kit_repo.get_all()] == ['Kit básico']


def test_repeated_lines_must_be_covered_together(container, seeded):
    availability = container.availability_service
    items = [KitItem(seeded.soap.id, 'Jabón', 2), KitItem(seeded.soap.id, 'Jabón', 2)]

    assert availability.check_items(items) is False
    details = availability.get_items_details(items)
    assert details[seeded.soap.id].required_quantity == 4
    assert details[seeded.soap.id].shortfall == 1

    # Las líneas originales no se modifican
    assert [i.quantity for i in items] == [2, 2]
