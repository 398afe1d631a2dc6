# -*- coding: utf-8 -*-
"""
Fixtures compartidas: contenedor aislado por test, reloj controlado y
datos base (productos, kit, beneficiario).
"""
import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# Los logs de rendimiento van a un directorio temporal (antes de importar la app)
os.environ.setdefault('LOJASOCIAL_LOGS_DIR', tempfile.mkdtemp(prefix='lojasocial_logs_'))

import pytest

from lojasocial.app_container import AppContainer


ACTOR = 'colaborador-1'
START = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Reloj que avanza un segundo en cada lectura (orden estable de registros)."""

    def __init__(self, start=START, step=timedelta(seconds=1)):
        self.current = start
        self.step = step
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            now = self.current
            self.current = now + self.step
            return now

    def advance(self, delta):
        with self._lock:
            self.current += delta


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def container(tmp_path, clock):
    AppContainer.reset_instance()
    c = AppContainer(str(tmp_path), clock=clock)
    yield c
    AppContainer.reset_instance()


@pytest.fixture
def seeded(container):
    """Arroz (10 kg), aceite (5 l) y jabón (3 u), un kit básico y un beneficiario."""
    products = container.product_service
    rice = products.create_product('Arroz', ACTOR, category='FOOD', unit='KILOGRAM',
                                   minimum_stock=2, initial_stock=10)['product']
    oil = products.create_product('Aceite', ACTOR, category='FOOD', unit='LITER',
                                  minimum_stock=1, initial_stock=5)['product']
    soap = products.create_product('Jabón', ACTOR, category='HYGIENE', unit='UNIT',
                                   initial_stock=3)['product']

    kit = container.kit_service.create_kit('Kit básico', [
        {'product_id': rice.id, 'quantity': 2},
        {'product_id': oil.id, 'quantity': 1},
    ], ACTOR)['kit']

    beneficiary = container.beneficiary_service.create_beneficiary(
        'user-ana', 'Ana Pereira', ACTOR, student_number='A123'
    )['beneficiary']

    return SimpleNamespace(rice=rice, oil=oil, soap=soap, kit=kit, beneficiary=beneficiary)


def stock_of(container, product_id):
    return container.product_repo.get_by_id(product_id).current_stock
