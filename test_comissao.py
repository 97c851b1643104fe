#!/usr/bin/env python3
"""Testes da comissão sobre o valor do contrato"""
import math

import pytest

from comissao import (
    attach_commission,
    calculate_commission,
    normalizar_percentual,
    percentual_para_exibicao,
)
from models import ProposalCalcInput
from proposta_calculo import calculate_proposal


def _calculo(total: float):
    return calculate_proposal(ProposalCalcInput.from_dict({'extras': {'valor_baterias': total}}))


@pytest.mark.parametrize('raw, esperado', [
    (3, 0.03),
    (0.03, 0.03),
    ('5', 0.05),
    (1, 1.0),
    (None, 0.03),
    ('abc', 0.03),
    (math.nan, 0.03),
])
def test_normalizar_percentual(raw, esperado):
    assert normalizar_percentual(raw) == pytest.approx(esperado)


def test_normalizar_percentual_fallback_customizado():
    assert normalizar_percentual(None, fallback_percent=5) == pytest.approx(0.05)


@pytest.mark.parametrize('raw, esperado', [(3, 3), (0.025, 2.5), (None, 3)])
def test_percentual_para_exibicao(raw, esperado):
    assert percentual_para_exibicao(raw) == pytest.approx(esperado)


def test_comissao_sobre_total_a_vista():
    comissao = calculate_commission(_calculo(50000), 3)
    assert comissao.percent == pytest.approx(0.03)
    assert comissao.base_value == 50000
    assert comissao.value == pytest.approx(1500)


def test_comissao_usa_total_informado_sem_total_calculado():
    comissao = calculate_commission(_calculo(0), 0.05, total_fallback='R$ 10.000,00')
    assert comissao.base_value == 10000
    assert comissao.value == pytest.approx(500)


def test_comissao_sem_calculo():
    comissao = calculate_commission(None, None, total_fallback=2000)
    assert comissao.value == pytest.approx(60)


def test_attach_commission_nao_altera_original():
    calculo = _calculo(20000)
    com_comissao = attach_commission(calculo, 2.5)
    assert calculo.commission is None
    assert com_comissao.commission.value == pytest.approx(500)
    assert com_comissao.output is calculo.output
    assert com_comissao.to_dict()['commission'] == {
        'percent': pytest.approx(0.025), 'value': pytest.approx(500), 'base_value': 20000}
