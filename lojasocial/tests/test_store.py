# -*- coding: utf-8 -*-
"""
Test del almacén de documentos JSON y de las consultas en vivo
"""
import json

import pytest

from lojasocial.repositories import JSONDocumentStore, StockMovementRepository, StoreError


def test_insert_generates_id_and_persists(tmp_path):
    path = tmp_path / 'data.json'
    store = JSONDocumentStore(str(path))

    doc = store.insert('products', {'name': 'Arroz'})
    assert doc['id']
    assert store.get('products', doc['id'])['name'] == 'Arroz'

    # Otro almacén sobre el mismo archivo ve los datos
    reopened = JSONDocumentStore(str(path))
    assert reopened.get('products', doc['id'])['name'] == 'Arroz'
    with open(path, 'r', encoding='utf-8') as f:
        assert doc['id'] in json.load(f)['products']


def test_get_returns_copies():
    store = JSONDocumentStore(JSONDocumentStore.MEMORY)
    doc = store.insert('products', {'name': 'Arroz'})
    copy_ = store.get('products', doc['id'])
    copy_['name'] = 'Otro'
    assert store.get('products', doc['id'])['name'] == 'Arroz'


def test_duplicate_id_rejected():
    store = JSONDocumentStore(None)
    store.insert('kits', {'id': 'k1', 'name': 'A'})
    with pytest.raises(StoreError):
        store.insert('kits', {'id': 'k1', 'name': 'B'})
    assert store.get('kits', 'k1')['name'] == 'A'


def test_transaction_rolls_back_on_error():
    store = JSONDocumentStore(None)
    store.insert('products', {'id': 'p1', 'stock': 5})

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.update('products', 'p1', {'stock': 0})
            store.insert('stock_movements', {'product_id': 'p1'})
            raise RuntimeError('boom')

    assert store.get('products', 'p1')['stock'] == 5
    assert store.count('stock_movements') == 0


def test_nested_transaction_rolls_back_inner_level_only():
    store = JSONDocumentStore(None)
    with store.transaction():
        store.insert('products', {'id': 'p1'})
        try:
            with store.transaction():
                store.insert('products', {'id': 'p2'})
                raise ValueError('inner')
        except ValueError:
            pass
    assert store.get('products', 'p1') is not None
    assert store.get('products', 'p2') is None


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / 'data.json'
    path.write_text('{no es json', encoding='utf-8')
    store = JSONDocumentStore(str(path))
    assert store.all('products') == []


def test_write_failure_raises_and_rolls_back(tmp_path):
    blocker = tmp_path / 'blocker'
    store = JSONDocumentStore(str(blocker / 'data.json'))
    # El directorio del archivo pasa a ser un archivo: no se puede escribir
    blocker.write_text('x', encoding='utf-8')

    with pytest.raises(StoreError):
        store.insert('products', {'id': 'p1'})
    assert store.get('products', 'p1') is None


def test_live_query_receives_snapshots_after_commit():
    store = JSONDocumentStore(None)
    live = store.subscribe('products', lambda docs: sorted(d['id'] for d in docs))

    assert live.get(timeout=1) == []

    with store.transaction():
        store.insert('products', {'id': 'a'})
        store.insert('products', {'id': 'b'})
        # Nada se publica hasta el commit
        assert live.get(timeout=0.05) is None

    assert live.get(timeout=1) == ['a', 'b']

    # Cambios en otras colecciones no generan snapshots
    store.insert('kits', {'id': 'k'})
    assert live.get(timeout=0.05) is None
    live.close()


def test_live_query_close_stops_delivery():
    store = JSONDocumentStore(None)
    first = store.subscribe('products', len)
    second = store.subscribe('products', len)
    assert store.subscriber_count('products') == 2

    first.close()
    assert first.closed
    assert store.subscriber_count('products') == 1

    store.insert('products', {'id': 'a'})
    assert first.get(timeout=0.05) is None
    assert list(first) == []
    assert second.latest() == 1
    second.close()


def test_unread_subscriber_keeps_only_latest_snapshot():
    store = JSONDocumentStore(None)
    live = store.subscribe('products', len)

    for i in range(50):
        store.insert('products', {'id': f'p{i}'})

    assert live.get(timeout=1) == 50
    assert live.get(timeout=0.05) is None
    live.close()


def test_rollback_restores_touched_documents_in_place():
    store = JSONDocumentStore(None)
    for doc_id in ('a', 'b', 'c'):
        store.insert('audit', {'id': doc_id, 'n': 0})

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.update('audit', 'b', {'n': 5})
            store.delete('audit', 'a')
            store.insert('audit', {'id': 'd'})
            raise RuntimeError('boom')

    assert store.ids('audit') == ['a', 'b', 'c']
    assert store.get('audit', 'b')['n'] == 0


def test_inner_rollback_keeps_outer_changes_to_same_document():
    store = JSONDocumentStore(None)
    store.insert('products', {'id': 'p1', 'stock': 5})

    with store.transaction():
        store.update('products', 'p1', {'stock': 4})
        try:
            with store.transaction():
                store.update('products', 'p1', {'stock': 0})
                raise ValueError('inner')
        except ValueError:
            pass
        assert store.get('products', 'p1')['stock'] == 4

    assert store.get('products', 'p1')['stock'] == 4


def test_failed_transaction_does_not_notify():
    store = JSONDocumentStore(None)
    with store.subscribe('products', len) as live:
        assert live.get(timeout=1) == 0
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.insert('products', {'id': 'a'})
                raise RuntimeError('boom')
        assert live.get(timeout=0.05) is None
    assert store.subscriber_count('products') == 0


def test_immutable_repository_rejects_updates():
    store = JSONDocumentStore(None)
    repo = StockMovementRepository(store)
    store.insert(repo.COLLECTION, {'id': 'm1', 'product_id': 'p1', 'quantity': 1})
    with pytest.raises(StoreError):
        repo.update('m1', {'quantity': 2})


def test_repositories_satisfy_interfaces(container):
    from lojasocial.repositories import (
        IAuditRepository,
        IBeneficiaryRepository,
        IDeliveryRepository,
        IKitRepository,
        IProductRepository,
        IStockMovementRepository,
    )
    assert isinstance(container.product_repo, IProductRepository)
    assert isinstance(container.kit_repo, IKitRepository)
    assert isinstance(container.beneficiary_repo, IBeneficiaryRepository)
    assert isinstance(container.movement_repo, IStockMovementRepository)
    assert isinstance(container.delivery_repo, IDeliveryRepository)
    assert isinstance(container.audit_repo, IAuditRepository)
