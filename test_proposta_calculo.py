#!/usr/bin/env python3
"""Testes do cálculo da proposta (dimensionamento, totais, troca e financiamento)"""
import json
import math

import pytest

from amortizacao import calculate_installment_from_rate
from models import (
    DuplicationRule,
    InverterType,
    ProposalCalcInput,
    ProposalCalcParams,
    RoundMode,
    TradeMode,
)
from proposta_calculo import (
    calculate_proposal,
    merge_params,
    round_mode,
    solve_margin_from_target_total,
)


def _entrada(**secoes) -> ProposalCalcInput:
    return ProposalCalcInput.from_dict(secoes)


def _cenario_duplicacao(**extra) -> dict:
    data = {
        'dimensioning': {'qtd_modulos': 10, 'potencia_modulo_w': 550, 'indice_producao': 120,
                         'tipo_inversor': 'STRING'},
        'kit': {'module_cost_per_watt': 1.2, 'cabling_unit_cost': 5},
        'structure': {'qtd_placas_solo': 10, 'valor_unit_solo': 50, 'qtd_placas_telhado': 0},
        'margin': {'margem_percentual': 0.2},
    }
    data.update(extra)
    return data


# ------------------------
# Dimensionamento
# ------------------------
def test_cenario_regra_de_duplicacao():
    out = calculate_proposal(ProposalCalcInput.from_dict(_cenario_duplicacao())).output
    assert out.kit.custo_modulo_unitario == pytest.approx(660)
    assert out.kit.custo_modulos_total == pytest.approx(6650)
    assert out.kit.custo_inversor_total == 0
    assert out.kit.custo_kit == pytest.approx(6650)
    assert out.structure.valor_estrutura_solo == 500
    assert out.totals.soma_sem_duplicacao == pytest.approx(7150)
    assert out.totals.soma_com_estrutura == pytest.approx(14300)
    assert out.margin.margem_valor == pytest.approx(2860)
    assert out.extras.extras_total == 0
    assert out.totals.total_a_vista == pytest.approx(17160)


def test_views_ignoram_duplicacao():
    out = calculate_proposal(ProposalCalcInput.from_dict(_cenario_duplicacao())).output
    assert out.totals.views.view_valor_kit == pytest.approx(6650)
    assert out.totals.views.view_material == pytest.approx(6650 + 500)


def test_sem_duplicacao():
    data = _cenario_duplicacao(params={'duplication_rule': 'NO_DUPLICATION'})
    data['structure']['qtd_placas_telhado'] = 4
    data['structure']['valor_unit_telhado'] = 25
    calc = calculate_proposal(ProposalCalcInput.from_dict(data))
    assert calc.params.duplication_rule is DuplicationRule.NO_DUPLICATION
    assert calc.output.totals.soma_com_estrutura == pytest.approx(6650 + 500 + 100)
    assert calc.output.totals.views.view_material == pytest.approx(6650 + 600)


def test_telhado_nao_dobra():
    data = _cenario_duplicacao()
    data['structure'].update({'qtd_placas_telhado': 4, 'valor_unit_telhado': 25})
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    assert out.totals.soma_com_estrutura == pytest.approx((6650 + 500) * 2 + 100)


def test_kwp_e_geracao_estimada():
    out = calculate_proposal(ProposalCalcInput.from_dict(_cenario_duplicacao())).output
    assert out.dimensioning.kWp == pytest.approx(5.5)
    assert out.dimensioning.kWh_estimado == pytest.approx(5.5 * 120)


def test_potencia_string_pelo_oversizing_padrao():
    inv = calculate_proposal(ProposalCalcInput.from_dict(_cenario_duplicacao())).output.dimensioning.inversor
    assert inv.pot_string_kw == pytest.approx(5.5 / 1.25)
    assert inv.qtd_string == 0


def test_potencia_string_explicita_e_oversizing_informado():
    data = _cenario_duplicacao()
    data['dimensioning'].update({'fator_oversizing': 1.1})
    inv = calculate_proposal(ProposalCalcInput.from_dict(data)).output.dimensioning.inversor
    assert inv.pot_string_kw == pytest.approx(5.0)

    data['dimensioning'].update({'potencia_inversor_string_kw': 8, 'qtd_inversor_string': 2})
    inv = calculate_proposal(ProposalCalcInput.from_dict(data)).output.dimensioning.inversor
    assert inv.pot_string_kw == 8
    assert inv.qtd_string == 2


def test_oversizing_zero_nao_divide():
    data = _cenario_duplicacao(params={'default_oversizing_factor': 0})
    inv = calculate_proposal(ProposalCalcInput.from_dict(data)).output.dimensioning.inversor
    assert inv.pot_string_kw == 0


def test_inversores_string_por_linhas():
    data = _cenario_duplicacao()
    data['kit']['string_inverter_total_cost'] = 999
    data['dimensioning']['string_inverters'] = [
        {'product_id': 'inv-5k', 'quantity': 2, 'unit_cost': 5000, 'power_kw': 5},
        {'product_id': 'inv-3k', 'quantity': 1, 'unit_cost': 3000, 'power_kw': 3,
         'power_source': 'manual', 'purchase_required': True},
        {'product_id': 'zerado', 'quantity': 0, 'unit_cost': 100, 'power_kw': 5},
        {'product_id': 'sem-potencia', 'quantity': 1, 'unit_cost': 100, 'power_kw': 0},
        {'product_id': 'sem-custo', 'quantity': 1, 'unit_cost': None, 'power_kw': 5},
    ]
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    inv = out.dimensioning.inversor
    assert inv.qtd_string == 3
    assert inv.pot_string_kw == pytest.approx(13)
    assert len(inv.string_inverters) == 2
    assert out.kit.custo_inversor_total == pytest.approx(13000)
    assert out.kit.custo_kit == pytest.approx(6650 + 13000)


def test_linhas_invalidas_caem_no_custo_agregado():
    data = _cenario_duplicacao()
    data['kit']['string_inverter_total_cost'] = 4200
    data['dimensioning']['string_inverters'] = [{'quantity': 0, 'unit_cost': 10, 'power_kw': 1}]
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    assert out.kit.custo_inversor_total == 4200


def test_micro_sugerido_arredonda_para_cima():
    inv = calculate_proposal(ProposalCalcInput.from_dict(_cenario_duplicacao())).output.dimensioning.inversor
    assert inv.qtd_micro_sugerida == 3
    assert inv.qtd_micro == 3
    assert inv.pot_micro_total_kw == 6


def test_micro_selecionado_entra_no_custo():
    data = _cenario_duplicacao()
    data['dimensioning'].update({'tipo_inversor': 'MICRO', 'qtd_inversor_micro': 5})
    data['kit'].update({'micro_unit_cost': 900, 'string_inverter_total_cost': 7000})
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    inv = out.dimensioning.inversor
    assert inv.tipo_inversor is InverterType.MICRO
    assert inv.qtd_micro == 5
    assert inv.qtd_micro_sugerida == 3
    assert out.kit.custo_inversor_total == 4500
    # string continua calculado para exibição, fora do custo
    assert inv.pot_string_kw == pytest.approx(4.4)


def test_string_selecionado_ignora_micro_no_custo():
    data = _cenario_duplicacao()
    data['kit'].update({'micro_unit_cost': 900, 'string_inverter_total_cost': 7000})
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    assert out.kit.custo_inversor_total == 7000


@pytest.mark.parametrize('modo, qtd_modulos, esperado', [
    (RoundMode.CEIL, 10, 3),
    (RoundMode.FLOOR, 10, 2),
    (RoundMode.ROUND, 10, 3),
    (RoundMode.ROUND, 9, 2),
    (RoundMode.ROUND, 14, 4),
])
def test_micro_modos_de_arredondamento(modo, qtd_modulos, esperado):
    data = _cenario_duplicacao(params={'micro_rounding_mode': modo.value})
    data['dimensioning']['qtd_modulos'] = qtd_modulos
    inv = calculate_proposal(ProposalCalcInput.from_dict(data)).output.dimensioning.inversor
    assert inv.qtd_micro_sugerida == esperado


def test_round_mode():
    assert round_mode(2.5, RoundMode.ROUND) == 3
    assert round_mode(-2.5, RoundMode.ROUND) == -2
    assert round_mode(2.1, RoundMode.CEIL) == 3
    assert round_mode(2.9, RoundMode.FLOOR) == 2
    assert round_mode(math.inf, RoundMode.CEIL) == 0
    assert round_mode(math.nan, RoundMode.ROUND) == 0


def test_divisor_micro_zero():
    data = _cenario_duplicacao(params={'micro_per_modules_divisor': 0})
    inv = calculate_proposal(ProposalCalcInput.from_dict(data)).output.dimensioning.inversor
    assert inv.qtd_micro_sugerida == 0


# ------------------------
# Extras e troca
# ------------------------
def test_extras_somados():
    data = _cenario_duplicacao(extras={
        'valor_baterias': 3000,
        'valor_adequacao_padrao': 800,
        'outros_extras': [{'id': '1', 'name': 'Frete', 'value': 150},
                          {'id': '2', 'name': 'Vazio', 'value': None}],
    })
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    assert out.extras.extras_total == pytest.approx(3950)
    assert out.totals.total_a_vista == pytest.approx(17160 + 3950)


def test_troca_limitada_ao_total():
    calc = calculate_proposal(_entrada(
        extras={'valor_baterias': 10000},
        trade={'enabled': True, 'mode': 'TOTAL_VALUE', 'value': 15000},
    ))
    out = calc.output
    assert out.totals.total_bruto_a_vista == 10000
    assert out.trade.applied_on_total == 10000
    assert out.totals.total_a_vista == 0
    assert out.finance.entrada_percentual == 0
    assert out.finance.valor_financiado == 0


def test_troca_parcial_no_total():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 10000},
        trade={'enabled': True, 'mode': 'TOTAL_VALUE', 'value': 2500},
    )).output
    assert out.trade.applied_on_total == 2500
    assert out.trade.applied_on_installments == 0
    assert out.totals.total_a_vista == 7500


def test_troca_desabilitada_nao_aplica():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 10000},
        trade={'enabled': False, 'mode': 'TOTAL_VALUE', 'value': 2500},
    )).output
    assert out.trade.total_applied == 0
    assert out.totals.total_a_vista == 10000


def test_troca_nas_parcelas_limitada_ao_saldo():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 20000},
        finance={'enabled': True, 'entrada_valor': 5000, 'juros_mensal': 0.02, 'num_parcelas': 12,
                 'baloes': [{'balao_valor': 2000, 'balao_mes': 6}]},
        trade={'enabled': True, 'mode': 'INSTALLMENTS', 'value': 20000},
    )).output
    assert out.trade.applied_on_total == 0
    assert out.trade.applied_on_installments == 13000
    assert out.totals.total_a_vista == 20000
    assert out.finance.valor_financiado == 0
    assert out.finance.parcela_mensal == 0
    assert out.finance.total_pago == 7000
    assert out.finance.juros_pagos == 0


def test_troca_nas_parcelas_exige_financiamento():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 20000},
        finance={'enabled': False, 'entrada_valor': 5000},
        trade={'enabled': True, 'mode': 'INSTALLMENTS', 'value': 3000},
    )).output
    assert out.trade.applied_on_installments == 0
    assert out.finance.valor_financiado == 15000


# ------------------------
# Financiamento
# ------------------------
def test_financiamento_completo():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 20000},
        finance={'enabled': True, 'entrada_valor': 5000, 'carencia_meses': 2, 'juros_mensal': 0.02,
                 'num_parcelas': 12, 'baloes': [{'balao_valor': 2000, 'balao_mes': 6}]},
        trade={'enabled': True, 'mode': 'INSTALLMENTS', 'value': 3000},
    )).output
    fin = out.finance
    parcela = calculate_installment_from_rate(
        financed_value=10000, monthly_rate=0.02, grace_months=2, installments=12)
    assert fin.entrada_percentual == pytest.approx(0.25)
    assert fin.total_baloes == 2000
    assert fin.valor_financiado == pytest.approx(10000)
    assert fin.saldo_pos_carencia == pytest.approx(10000 * 1.02 ** 2)
    assert fin.parcela_mensal == pytest.approx(parcela)
    assert fin.total_pago == pytest.approx(5000 + 12 * parcela + 2000)
    assert fin.juros_pagos == pytest.approx(fin.total_pago - 17000)
    assert out.trade.total_applied == 3000


def test_carencia_simples_via_params():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 10000},
        finance={'enabled': True, 'carencia_meses': 3, 'juros_mensal': 0.01, 'num_parcelas': 10},
        params={'grace_interest_mode': 'SIMPLE'},
    )).output
    assert out.finance.saldo_pos_carencia == pytest.approx(10300)


def test_financiamento_desabilitado():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 10000},
        finance={'enabled': False, 'entrada_valor': 1000, 'juros_mensal': 0.02, 'num_parcelas': 12},
    )).output
    assert out.finance.parcela_mensal == 0
    assert out.finance.total_pago == 10000
    assert out.finance.juros_pagos == 0
    assert out.finance.valor_financiado == 9000


def test_valor_financiado_nunca_negativo():
    out = calculate_proposal(_entrada(
        extras={'valor_baterias': 1000},
        finance={'enabled': True, 'entrada_valor': 5000, 'num_parcelas': 12},
    )).output
    assert out.finance.valor_financiado == 0
    assert out.finance.parcela_mensal == 0


# ------------------------
# Coerção e parâmetros
# ------------------------
def test_entrada_vazia_nao_quebra():
    calc = calculate_proposal(ProposalCalcInput())
    out = calc.output
    assert out.totals.total_a_vista == 0
    assert out.finance.total_pago == 0
    assert calc.params == ProposalCalcParams()


def test_campos_invalidos_viram_zero():
    data = {
        'dimensioning': {'qtd_modulos': 'abc', 'potencia_modulo_w': None, 'indice_producao': float('nan'),
                         'fator_oversizing': float('inf')},
        'kit': {'module_cost_per_watt': '', 'cabling_unit_cost': [1, 2]},
        'structure': {'qtd_placas_solo': None, 'valor_unit_solo': 'x'},
        'margin': {'margem_percentual': None},
        'extras': {'valor_baterias': float('-inf'), 'outros_extras': 'não é lista'},
        'finance': {'enabled': True, 'entrada_valor': 'abc', 'num_parcelas': None,
                    'juros_mensal': float('nan'), 'baloes': None},
        'trade': {'enabled': True, 'value': None},
    }
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    valores = [
        out.dimensioning.kWp, out.dimensioning.kWh_estimado, out.dimensioning.inversor.pot_string_kw,
        out.kit.custo_kit, out.structure.valor_estrutura_total, out.margin.margem_valor,
        out.extras.extras_total, out.totals.total_a_vista, out.finance.valor_financiado,
        out.finance.saldo_pos_carencia, out.finance.parcela_mensal, out.finance.total_pago,
        out.finance.juros_pagos,
    ]
    assert all(math.isfinite(v) for v in valores)
    assert out.totals.total_a_vista == 0


def test_numeros_em_texto_e_brl():
    data = _cenario_duplicacao()
    data['dimensioning']['qtd_modulos'] = '10'
    data['structure']['valor_unit_solo'] = 'R$ 50,00'
    data['extras'] = {'valor_baterias': 'R$ 1.234,56'}
    out = calculate_proposal(ProposalCalcInput.from_dict(data)).output
    assert out.totals.total_a_vista == pytest.approx(17160 + 1234.56)


def test_params_base_e_override_do_input():
    base = merge_params({'micro_rounding_mode': 'FLOOR', 'micro_unit_power_kw': 1.5})
    data = _cenario_duplicacao(params={'micro_unit_power_kw': 3})
    calc = calculate_proposal(ProposalCalcInput.from_dict(data), base)
    assert calc.params.micro_rounding_mode is RoundMode.FLOOR
    assert calc.params.micro_unit_power_kw == 3
    assert calc.output.dimensioning.inversor.pot_micro_total_kw == 6


def test_params_enum_invalido():
    with pytest.raises(ValueError):
        merge_params({'grace_interest_mode': 'MENSAL'})


def test_input_enum_invalido():
    with pytest.raises(ValueError):
        ProposalCalcInput.from_dict({'trade': {'mode': 'PARCIAL'}})


def test_to_dict_serializavel():
    data = _cenario_duplicacao(trade={'enabled': True, 'mode': 'TOTAL_VALUE', 'value': 100})
    resultado = calculate_proposal(ProposalCalcInput.from_dict(data)).to_dict()
    texto = json.dumps(resultado)
    volta = json.loads(texto)
    assert volta['params']['duplication_rule'] == 'DUPLICATE_KIT_AND_SOLO_STRUCTURE'
    assert volta['input']['dimensioning']['tipo_inversor'] == 'STRING'
    assert volta['output']['trade']['mode'] == 'TOTAL_VALUE'
    assert 'commission' not in volta


def test_calculo_nao_altera_entrada():
    entrada = ProposalCalcInput.from_dict(_cenario_duplicacao())
    antes = entrada.to_dict()
    calc = calculate_proposal(entrada)
    assert entrada.to_dict() == antes
    assert calc.input is entrada


# ------------------------
# Margem pelo total desejado
# ------------------------
def test_margem_pelo_total_desejado():
    out = calculate_proposal(ProposalCalcInput.from_dict(_cenario_duplicacao())).output
    margem = solve_margin_from_target_total(20000, out.totals.soma_com_estrutura, 500)
    assert margem == pytest.approx((20000 - 500 - 14300) / 14300)

    data = _cenario_duplicacao(extras={'valor_baterias': 500})
    data['margin']['margem_percentual'] = margem
    assert calculate_proposal(ProposalCalcInput.from_dict(data)).output.totals.total_a_vista == pytest.approx(20000)


@pytest.mark.parametrize('base', [0, -10, None, float('nan')])
def test_margem_base_invalida(base):
    assert solve_margin_from_target_total(20000, base, 0) == 0.0


def test_trade_mode_texto_minusculo():
    entrada = ProposalCalcInput.from_dict({'trade': {'enabled': True, 'mode': 'installments'}})
    assert entrada.trade.mode is TradeMode.INSTALLMENTS
