# -*- coding: utf-8 -*-
"""
Test del libro de stock: movimientos, stock nunca negativo e historial
"""
from datetime import datetime

import pytest

from lojasocial.models import AuditType, MovementType
from lojasocial.services import ErrorType

from conftest import ACTOR, stock_of


def test_initial_stock_is_booked_as_entry(container, seeded):
    result = container.stock_service.get_movements(seeded.rice.id)
    assert result['ok']
    movements = result['movements']
    assert len(movements) == 1
    assert movements[0].type == MovementType.ENTRY
    assert movements[0].reason == 'Stock inicial'
    assert movements[0].new_stock == 10


def test_entry_and_exit_update_stock(container, seeded):
    stock = container.stock_service

    r1 = stock.apply_movement(seeded.rice.id, 'ENTRY', 4, ACTOR, 'Donación')
    assert r1['ok']
    assert r1['product'].current_stock == 14
    assert r1['movement'].delta == 4
    assert r1['movement'].previous_stock == 10

    r2 = stock.apply_movement(seeded.rice.id, MovementType.EXIT, 14, ACTOR, 'Entrega manual')
    assert r2['ok']
    assert r2['movement'].delta == -14
    assert stock_of(container, seeded.rice.id) == 0

    current = stock.get_current_stock(seeded.rice.id)
    assert current == {'ok': True, 'product_id': seeded.rice.id, 'stock': 0, 'unit': 'KILOGRAM'}


def test_exit_over_stock_is_rejected_without_changes(container, seeded):
    before = container.movement_repo.get_by_product(seeded.oil.id)

    result = container.stock_service.apply_movement(seeded.oil.id, 'EXIT', 6, ACTOR, 'Entrega')

    assert result['ok'] is False
    assert result['error_type'] == ErrorType.INSUFFICIENT_STOCK.value
    assert result['product_id'] == seeded.oil.id
    assert result['available'] == 5
    assert result['requested'] == 6
    assert result['shortfall'] == 1
    assert 'Stock insuficiente para Aceite' in result['error']
    assert stock_of(container, seeded.oil.id) == 5
    assert container.movement_repo.get_by_product(seeded.oil.id) == before


def test_transfer_decreases_stock(container, seeded):
    result = container.stock_service.apply_movement(
        seeded.soap.id, 'TRANSFER', 2, ACTOR, 'Traslado a otro local', reference_document='GT-7'
    )
    assert result['ok']
    assert result['movement'].reference_document == 'GT-7'
    assert stock_of(container, seeded.soap.id) == 1

    failed = container.stock_service.apply_movement(seeded.soap.id, 'TRANSFER', 2, ACTOR, 'Traslado')
    assert failed['error_type'] == ErrorType.INSUFFICIENT_STOCK.value


def test_adjustment_sets_absolute_value(container, seeded):
    result = container.stock_service.apply_movement(seeded.rice.id, 'ADJUSTMENT', 7, ACTOR, 'Inventario')
    assert result['ok']
    assert result['product'].current_stock == 7
    assert result['movement'].quantity == 7
    assert result['movement'].delta == -3

    zero = container.stock_service.apply_movement(seeded.rice.id, 'ADJUSTMENT', 0, ACTOR, 'Caducado')
    assert zero['ok']
    assert stock_of(container, seeded.rice.id) == 0

    negative = container.stock_service.apply_movement(seeded.rice.id, 'ADJUSTMENT', -1, ACTOR, 'x')
    assert negative['error_type'] == ErrorType.VALIDATION.value


@pytest.mark.parametrize('quantity', [0, -2, 'abc', None, True, float('nan')])
def test_invalid_quantities(container, seeded, quantity):
    result = container.stock_service.apply_movement(seeded.rice.id, 'ENTRY', quantity, ACTOR, 'x')
    assert result['ok'] is False
    assert result['error_type'] == ErrorType.VALIDATION.value
    assert stock_of(container, seeded.rice.id) == 10


def test_unknown_product_and_type(container, seeded):
    missing = container.stock_service.apply_movement('nope', 'ENTRY', 1, ACTOR, 'x')
    assert missing['error_type'] == ErrorType.NOT_FOUND.value

    bad_type = container.stock_service.apply_movement(seeded.rice.id, 'GIFT', 1, ACTOR, 'x')
    assert bad_type['error_type'] == ErrorType.VALIDATION.value
    assert 'Tipo de movimiento inválido' in bad_type['error']

    no_reason = container.stock_service.apply_movement(seeded.rice.id, 'ENTRY', 1, ACTOR, '  ')
    assert no_reason['error_type'] == ErrorType.VALIDATION.value


def test_movements_are_newest_first_and_audited(container, seeded):
    container.stock_service.apply_movement(seeded.oil.id, 'ENTRY', 1, ACTOR, 'Donación')
    container.stock_service.apply_movement(seeded.oil.id, 'EXIT', 2, ACTOR, 'Entrega')

    movements = container.stock_service.get_movements(seeded.oil.id)['movements']
    assert [m.type for m in movements] == [MovementType.EXIT, MovementType.ENTRY, MovementType.ENTRY]
    assert movements[0].new_stock == 4

    logs = container.audit_service.get_logs(AuditType.STOCK, related_id=seeded.oil.id)
    assert len(logs) == 3


def test_stock_cannot_be_edited_directly(container, seeded):
    result = container.product_service.update_product(seeded.rice.id, {'current_stock': 99}, ACTOR)
    assert result['ok'] is False
    assert stock_of(container, seeded.rice.id) == 10

    renamed = container.product_service.update_product(seeded.rice.id, {'name': 'Arroz largo'}, ACTOR)
    assert renamed['ok']
    assert renamed['product'].name == 'Arroz largo'
    assert renamed['product'].current_stock == 10


def test_low_stock_products(container, seeded):
    container.stock_service.apply_movement(seeded.rice.id, 'EXIT', 8, ACTOR, 'Entrega')
    low = container.product_service.get_low_stock_products()
    assert seeded.rice.id in [p.id for p in low]
    assert seeded.oil.id not in [p.id for p in low]


def test_watch_movements_publishes_new_history(container, seeded):
    with container.stock_service.watch_movements(seeded.soap.id) as live:
        assert len(live.get(timeout=1)) == 1
        container.stock_service.apply_movement(seeded.soap.id, 'EXIT', 1, ACTOR, 'Entrega')
        snapshot = live.get(timeout=1)
        assert len(snapshot) == 2
        assert snapshot[0].type == MovementType.EXIT


def test_audit_entries_use_service_clock(container, seeded, clock):
    before = clock.current
    result = container.stock_service.apply_movement(seeded.rice.id, 'ENTRY', 1, ACTOR, 'Donación')
    assert result['ok']

    log = container.audit_service.get_logs(AuditType.STOCK, related_id=seeded.rice.id)[0]
    stamp = datetime.fromisoformat(log.timestamp)
    assert before <= stamp < clock.current
    assert stamp > result['movement'].performed_at


def test_audit_log_keeps_latest_entries(container, seeded):
    container.audit_repo.MAX_LOGS = 3
    for quantity in (1, 2, 3):
        container.stock_service.apply_movement(seeded.rice.id, 'ENTRY', quantity, ACTOR, 'Donación')

    logs = container.audit_service.get_logs()
    assert len(logs) == 3
    assert all(log.type == AuditType.STOCK for log in logs)
    assert [log.details.get('delta') for log in logs] == [3, 2, 1]
