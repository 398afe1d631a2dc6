# -*- coding: utf-8 -*-
"""
Test de la API HTTP (Flask test client)
"""
import pytest

from lojasocial.main import create_app

from conftest import ACTOR


HEADERS = {'X-User-Id': ACTOR}


@pytest.fixture
def client(container):
    app = create_app(container)
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


def _create_product(client, name, stock, unit='UNIT'):
    r = client.post('/api/products', json={
        'name': name, 'category': 'FOOD', 'unit': unit, 'initial_stock': stock
    }, headers=HEADERS)
    assert r.status_code == 201, r.get_json()
    return r.get_json()['product']


def test_write_routes_require_user(client):
    r = client.post('/api/products', json={'name': 'Arroz'})
    assert r.status_code == 401
    assert r.get_json()['ok'] is False


def test_products_and_stock(client):
    rice = _create_product(client, 'Arroz', 10, unit='KILOGRAM')
    assert rice['current_stock'] == 10
    assert rice['unit'] == 'KILOGRAM'

    r = client.get(f"/api/products/{rice['id']}/stock")
    assert r.status_code == 200
    assert r.get_json()['stock'] == 10

    r = client.post(f"/api/products/{rice['id']}/movements", json={
        'type': 'EXIT', 'quantity': 3, 'reason': 'Entrega manual'
    }, headers=HEADERS)
    assert r.status_code == 201
    body = r.get_json()
    assert body['movement']['delta'] == -3
    assert body['product']['current_stock'] == 7

    r = client.post(f"/api/products/{rice['id']}/movements", json={
        'type': 'EXIT', 'quantity': 50, 'reason': 'Entrega manual'
    }, headers=HEADERS)
    assert r.status_code == 409
    assert r.get_json()['error_type'] == 'INSUFFICIENT_STOCK'
    assert r.get_json()['shortfall'] == 43

    r = client.get(f"/api/products/{rice['id']}/movements")
    assert [m['type'] for m in r.get_json()['movements']] == ['EXIT', 'ENTRY']

    r = client.get('/api/products?q=arr')
    assert [p['name'] for p in r.get_json()['products']] == ['Arroz']


def test_validation_and_not_found_status_codes(client):
    r = client.post('/api/products', json={'name': ''}, headers=HEADERS)
    assert r.status_code == 400

    assert client.get('/api/products/nope').status_code == 404
    assert client.get('/api/products/nope/stock').status_code == 404
    assert client.get('/api/kits/nope/availability').status_code == 404
    assert client.get('/api/deliveries/nope').status_code == 404
    assert client.get('/api/deliveries?status=PERDIDA').status_code == 400

    r = client.get('/api/no-existe')
    assert r.status_code == 404
    assert r.get_json()['ok'] is False


def test_delivery_flow_over_http(client):
    rice = _create_product(client, 'Arroz', 10)
    oil = _create_product(client, 'Aceite', 5)

    r = client.post('/api/kits', json={'name': 'Kit básico', 'items': [
        {'product_id': rice['id'], 'quantity': 2},
        {'product_id': oil['id'], 'quantity': 1},
    ]}, headers=HEADERS)
    assert r.status_code == 201
    kit = r.get_json()['kit']

    r = client.get(f"/api/kits/{kit['id']}/availability")
    assert r.get_json()['available'] is True
    assert r.get_json()['details'][rice['id']]['shortfall'] == 0

    r = client.post('/api/beneficiaries', json={'user_id': 'u-1', 'name': 'Ana'}, headers=HEADERS)
    assert r.status_code == 201
    beneficiary = r.get_json()['beneficiary']

    r = client.post('/api/deliveries/requests', json={
        'beneficiary_id': beneficiary['id'], 'kit_id': kit['id']
    }, headers=HEADERS)
    assert r.status_code == 201
    delivery_id = r.get_json()['delivery']['id']
    assert r.get_json()['delivery']['status'] == 'PENDING_APPROVAL'

    r = client.post(f'/api/deliveries/{delivery_id}/approve', headers=HEADERS)
    assert r.get_json()['delivery']['status'] == 'APPROVED'

    r = client.post(f'/api/deliveries/{delivery_id}/schedule', json={
        'scheduled_date': '2024-05-02'
    }, headers=HEADERS)
    assert r.status_code == 200
    assert r.get_json()['delivery']['status'] == 'SCHEDULED'

    r = client.get(f'/api/deliveries/{delivery_id}/can-confirm')
    assert r.get_json()['can_confirm'] is True

    r = client.post(f'/api/deliveries/{delivery_id}/confirm', headers=HEADERS)
    assert r.status_code == 200
    assert r.get_json()['delivery']['status'] == 'CONFIRMED'
    assert len(r.get_json()['movements']) == 2

    r = client.post(f'/api/deliveries/{delivery_id}/cancel', json={'reason': 'x'}, headers=HEADERS)
    assert r.status_code == 400

    r = client.get('/api/deliveries?status=CONFIRMED')
    assert [d['id'] for d in r.get_json()['deliveries']] == [delivery_id]
    assert client.get(f"/api/products/{rice['id']}/stock").get_json()['stock'] == 8


def test_custom_kit_routes(client, seeded):
    custom_kit = {'selected_items': [
        {'product_id': seeded.soap.id, 'product_name': 'Jabón', 'quantity': 5, 'unit': 'UNIT'}
    ]}
    r = client.post('/api/custom-kits/validate', json={'custom_kit': custom_kit})
    assert r.status_code == 200
    assert r.get_json()['valid'] is False

    custom_kit['selected_items'][0]['quantity'] = 2
    r = client.post('/api/custom-kits/submit', json={
        'beneficiary_id': seeded.beneficiary.id, 'custom_kit': custom_kit
    }, headers=HEADERS)
    assert r.status_code == 201
    delivery = r.get_json()['delivery']
    assert delivery['kit_name'] == 'Kit personalizado (2 artículos)'
    assert delivery['custom_items'][0]['quantity'] == 2

    r = client.get(f'/api/custom-kits/from-kit/{seeded.kit.id}')
    assert r.get_json()['custom_kit']['total_items'] == 3


def test_performance_stats_route(client, seeded):
    client.post(f'/api/products/{seeded.rice.id}/movements', json={
        'type': 'ENTRY', 'quantity': 1, 'reason': 'Donación'
    }, headers=HEADERS)
    r = client.get('/api/admin/performance')
    assert r.status_code == 200
    assert 'functions' in r.get_json()


def test_custom_kit_payload_errors_are_validation_errors(client):
    soap = _create_product(client, 'Jabón', 3)

    r = client.post('/api/custom-kits/validate', json={'custom_kit': {'selected_items': [
        {'product_id': soap['id'], 'product_name': 'Jabón', 'quantity': 'dos'}
    ]}})
    assert r.status_code == 400
    assert r.get_json() == {'ok': False, 'error': 'Cantidad inválida', 'error_type': 'VALIDATION'}

    r = client.post('/api/custom-kits/submit', json={
        'beneficiary_id': 'user-ana',
        'custom_kit': {'selected_items': 'jabón'},
    }, headers=HEADERS)
    assert r.status_code == 400
    assert r.get_json()['error'] == 'Formato de kit personalizado inválido'

    r = client.post('/api/custom-kits/validate', json={'custom_kit': {'selected_items': [
        {'product_id': soap['id'], 'product_name': 'Jabón', 'quantity': 0}
    ]}})
    assert r.status_code == 200
    assert r.get_json()['valid'] is False
    assert r.get_json()['reason'] == 'La cantidad de Jabón debe ser mayor a 0'
