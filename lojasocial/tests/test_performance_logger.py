# -*- coding: utf-8 -*-
"""
Test del profiling interno
"""
import pytest

from lojasocial import performance_logger as perf


@pytest.fixture(autouse=True)
def clean_stats():
    perf.reset_stats()
    yield
    perf.reset_stats()


@pytest.mark.skipif(not perf.ENABLE_PROFILING, reason='profiling desactivado')
def test_profile_function_collects_stats():
    @perf.profile_function(name='Operación de prueba')
    def operation(x):
        return x * 2

    assert operation(2) == 4
    assert operation(3) == 6

    stats = perf.get_function_stats()['Operación de prueba']
    assert stats['calls'] == 2
    assert stats['max_time'] >= 0


@pytest.mark.skipif(not perf.ENABLE_PROFILING, reason='profiling desactivado')
def test_errors_are_still_counted():
    @perf.profile_function
    def failing():
        raise ValueError('boom')

    with pytest.raises(ValueError):
        failing()
    assert perf.get_function_stats()['failing']['calls'] == 1


def test_route_names_resolve_flask_rules():
    name = perf._get_route_name(
        'POST', '/api/deliveries/abc/confirm', '/api/deliveries/<delivery_id>/confirm'
    )
    assert name == 'Confirmar entrega'
    assert perf._get_route_name('GET', '/otra', '/otra') == 'GET /otra'
