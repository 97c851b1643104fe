#!/usr/bin/env python3
"""
proposta_calculo.py
===================
Fonte ÚNICA da verdade para o cálculo financeiro da proposta solar.

Etapas (na ordem):
- Dimensionamento: kWp, geração estimada e inversores (string ou micro)
- Custos do kit (módulos + cabeamento + inversores) e das estruturas
- Regra de duplicação (kit + estrutura de solo em dobro), margem e extras
- Troca (trade-in) sobre o total à vista ou sobre o saldo financiado
- Financiamento: entrada, balões, carência e parcela fixa

Função pura: sem I/O, sem estado. Campos ausentes ou inválidos valem 0.
"""
from __future__ import annotations

import math
from math import isfinite
from typing import Any, Dict, List, Optional, Tuple

from amortizacao import (
    calculate_financed_balance_after_grace,
    calculate_installment_from_rate,
)
from models import (
    DimensioningOutput,
    DuplicationRule,
    ExtrasOutput,
    FinanceOutput,
    InverterOutput,
    InverterType,
    KitOutput,
    MarginOutput,
    ProposalCalcInput,
    ProposalCalcOutput,
    ProposalCalcParams,
    ProposalCalculation,
    RoundMode,
    StructureOutput,
    TotalsOutput,
    TotalsViews,
    TradeMode,
    TradeOutput,
)
from numeros import coerce_number_or_zero, to_float

_num = coerce_number_or_zero

DEFAULT_PARAMS = ProposalCalcParams()


# ------------------------
# Utilitários
# ------------------------
def round_mode(value: float, mode: RoundMode) -> float:
    """Arredonda conforme o modo; ROUND é meio-para-cima. Não finito -> 0."""
    if not isfinite(value):
        return 0
    mode = RoundMode.from_value(mode, RoundMode.CEIL)
    if mode is RoundMode.CEIL:
        return math.ceil(value)
    if mode is RoundMode.FLOOR:
        return math.floor(value)
    return math.floor(value + 0.5)


def merge_params(*overrides: Optional[Dict[str, Any]],
                 base: ProposalCalcParams = DEFAULT_PARAMS) -> ProposalCalcParams:
    """Aplica, em ordem, parciais sobre os parâmetros padrão."""
    params = base
    for parcial in overrides:
        if parcial:
            params = params.merged(parcial)
    return params


# ------------------------
# Dimensionamento e kit
# ------------------------
def _linhas_string_validas(linhas) -> List[Dict[str, float]]:
    validas = []
    for linha in linhas or []:
        qtd = _num(linha.quantity)
        custo = to_float(linha.unit_cost, math.nan)
        potencia = to_float(linha.power_kw, math.nan)
        if qtd > 0 and isfinite(custo) and isfinite(potencia) and potencia > 0:
            validas.append({'quantity': qtd, 'unit_cost': custo, 'power_kw': potencia})
    return validas


def _calcular_inversores(inp: ProposalCalcInput, params: ProposalCalcParams,
                         kwp: float, qtd_modulos: float) -> Tuple[InverterOutput, float]:
    dim = inp.dimensioning
    kit = inp.kit

    # String: linhas heterogêneas têm prioridade sobre os campos manuais
    linhas = _linhas_string_validas(dim.string_inverters)
    if linhas:
        qtd_string = sum(l['quantity'] for l in linhas)
        pot_string_kw = sum(l['quantity'] * l['power_kw'] for l in linhas)
        custo_string = sum(l['quantity'] * l['unit_cost'] for l in linhas)
    else:
        qtd_manual = _num(dim.qtd_inversor_string)
        qtd_string = qtd_manual if qtd_manual > 0 else 0.0
        pot_manual = _num(dim.potencia_inversor_string_kw)
        fator = _num(dim.fator_oversizing) or _num(params.default_oversizing_factor)
        if pot_manual > 0:
            pot_string_kw = pot_manual
        else:
            pot_string_kw = kwp / fator if fator else 0.0
        custo_string = _num(kit.string_inverter_total_cost)

    # Micro: sugestão sempre calculada (exibição)
    divisor = _num(params.micro_per_modules_divisor)
    qtd_micro_sugerida = round_mode(qtd_modulos / divisor, params.micro_rounding_mode) if divisor else 0
    qtd_micro_manual = _num(dim.qtd_inversor_micro)
    qtd_micro = qtd_micro_manual if qtd_micro_manual > 0 else qtd_micro_sugerida
    pot_micro_total_kw = qtd_micro * _num(params.micro_unit_power_kw)

    tipo = InverterType.from_value(dim.tipo_inversor, InverterType.STRING)
    if tipo is InverterType.MICRO:
        custo_inversor_total = qtd_micro * _num(kit.micro_unit_cost)
    else:
        custo_inversor_total = custo_string

    inversor = InverterOutput(
        tipo_inversor=tipo,
        qtd_string=qtd_string,
        pot_string_kw=pot_string_kw,
        qtd_micro=qtd_micro,
        qtd_micro_sugerida=qtd_micro_sugerida,
        pot_micro_total_kw=pot_micro_total_kw,
        string_inverters=linhas,
    )
    return inversor, custo_inversor_total


def _calcular_dimensionamento_e_kit(inp: ProposalCalcInput,
                                    params: ProposalCalcParams) -> Tuple[DimensioningOutput, KitOutput]:
    dim = inp.dimensioning
    qtd_modulos = _num(dim.qtd_modulos)
    potencia_modulo_w = _num(dim.potencia_modulo_w)
    indice_producao = _num(dim.indice_producao)

    kwp = (qtd_modulos * potencia_modulo_w) / 1000.0
    kwh_estimado = (qtd_modulos * potencia_modulo_w * indice_producao) / 1000.0

    inversor, custo_inversor_total = _calcular_inversores(inp, params, kwp, qtd_modulos)

    custo_modulo_unitario = _num(inp.kit.module_cost_per_watt) * potencia_modulo_w
    custo_modulos_total = qtd_modulos * (custo_modulo_unitario + _num(inp.kit.cabling_unit_cost))
    custo_kit = custo_modulos_total + custo_inversor_total

    dimensionamento = DimensioningOutput(kWp=kwp, kWh_estimado=kwh_estimado, inversor=inversor)
    kit = KitOutput(
        custo_modulo_unitario=custo_modulo_unitario,
        custo_modulos_total=custo_modulos_total,
        custo_inversor_total=custo_inversor_total,
        custo_kit=custo_kit,
    )
    return dimensionamento, kit


# ------------------------
# Estrutura, duplicação e totais
# ------------------------
def _calcular_estrutura(inp: ProposalCalcInput) -> StructureOutput:
    est = inp.structure
    solo = _num(est.qtd_placas_solo) * _num(est.valor_unit_solo)
    telhado = _num(est.qtd_placas_telhado) * _num(est.valor_unit_telhado)
    return StructureOutput(
        valor_estrutura_solo=solo,
        valor_estrutura_telhado=telhado,
        valor_estrutura_total=solo + telhado,
    )


def _soma_com_estrutura(custo_kit: float, estrutura: StructureOutput,
                        regra: DuplicationRule) -> Tuple[float, float]:
    """Retorna (base sem duplicação, base usada para margem)."""
    sem_duplicacao = custo_kit + estrutura.valor_estrutura_solo + estrutura.valor_estrutura_telhado
    regra = DuplicationRule.from_value(regra, DuplicationRule.DUPLICATE_KIT_AND_SOLO_STRUCTURE)
    if regra is DuplicationRule.DUPLICATE_KIT_AND_SOLO_STRUCTURE:
        # Telhado não dobra: só kit e estrutura de solo
        com_estrutura = (custo_kit + estrutura.valor_estrutura_solo) * 2 + estrutura.valor_estrutura_telhado
    else:
        com_estrutura = sem_duplicacao
    return sem_duplicacao, com_estrutura


def _total_extras(inp: ProposalCalcInput) -> float:
    ext = inp.extras
    outros = sum(_num(extra.value) for extra in (ext.outros_extras or []))
    return _num(ext.valor_baterias) + _num(ext.valor_adequacao_padrao) + outros


def _troca_ativa(inp: ProposalCalcInput, modo: TradeMode) -> bool:
    if inp.trade is None or not inp.trade.enabled:
        return False
    return TradeMode.from_value(inp.trade.mode, TradeMode.TOTAL_VALUE) is modo


def solve_margin_from_target_total(target_total: Any, soma_com_estrutura: Any, extras_total: Any) -> float:
    """
    Margem que leva o total à vista ao valor digitado:
      (alvo - extras - base) / base
    Base inválida ou não positiva -> 0.
    """
    base = to_float(soma_com_estrutura, math.nan)
    if not isfinite(base) or base <= 0:
        return 0.0
    margem = (_num(target_total) - _num(extras_total) - base) / base
    return margem if isfinite(margem) else 0.0


# ------------------------
# Orquestrador
# ------------------------
def calculate_proposal(inp: ProposalCalcInput,
                       base_params: ProposalCalcParams = DEFAULT_PARAMS) -> ProposalCalculation:
    """
    Ponto único do cálculo da proposta.
    `base_params` permite que a configuração salva substitua os padrões;
    `inp.params` (parcial) é aplicado por cima.
    """
    params = merge_params(inp.params, base=base_params)

    dimensionamento, kit = _calcular_dimensionamento_e_kit(inp, params)
    estrutura = _calcular_estrutura(inp)

    soma_sem_duplicacao, soma_com_estrutura = _soma_com_estrutura(
        kit.custo_kit, estrutura, params.duplication_rule)
    margem_valor = soma_com_estrutura * _num(inp.margin.margem_percentual)
    extras_total = _total_extras(inp)
    total_bruto_a_vista = soma_com_estrutura + margem_valor + extras_total

    # Troca sobre o total à vista
    valor_troca = max(_num(inp.trade.value), 0.0) if inp.trade is not None else 0.0
    troca_no_total = 0.0
    if _troca_ativa(inp, TradeMode.TOTAL_VALUE):
        troca_no_total = min(valor_troca, max(total_bruto_a_vista, 0.0))
    total_a_vista = total_bruto_a_vista - troca_no_total

    # Financiamento
    fin = inp.finance
    entrada_valor = _num(fin.entrada_valor)
    carencia_meses = _num(fin.carencia_meses)
    juros_mensal = _num(fin.juros_mensal)
    num_parcelas = _num(fin.num_parcelas)
    total_baloes = sum(_num(b.balao_valor) for b in (fin.baloes or []))

    troca_nas_parcelas = 0.0
    if fin.enabled and _troca_ativa(inp, TradeMode.INSTALLMENTS):
        maximo = max(total_a_vista - entrada_valor - total_baloes, 0.0)
        troca_nas_parcelas = min(valor_troca, maximo)

    entrada_percentual = entrada_valor / total_a_vista if total_a_vista > 0 else 0.0
    valor_financiado = max(total_a_vista - entrada_valor - total_baloes - troca_nas_parcelas, 0.0)
    saldo_pos_carencia = calculate_financed_balance_after_grace(
        financed_value=valor_financiado,
        monthly_rate=juros_mensal,
        grace_months=carencia_meses,
        grace_interest_mode=params.grace_interest_mode,
    )
    parcela_mensal = 0.0
    if fin.enabled:
        parcela_mensal = calculate_installment_from_rate(
            financed_value=valor_financiado,
            monthly_rate=juros_mensal,
            grace_months=carencia_meses,
            grace_interest_mode=params.grace_interest_mode,
            installments=num_parcelas,
        )
    if fin.enabled:
        total_pago = entrada_valor + parcela_mensal * num_parcelas + total_baloes
    else:
        total_pago = total_a_vista
    juros_pagos = max(total_pago - (total_a_vista - troca_nas_parcelas), 0.0)

    output = ProposalCalcOutput(
        dimensioning=dimensionamento,
        kit=kit,
        structure=estrutura,
        margin=MarginOutput(margem_valor=margem_valor),
        extras=ExtrasOutput(extras_total=extras_total),
        totals=TotalsOutput(
            soma_sem_duplicacao=soma_sem_duplicacao,
            soma_com_estrutura=soma_com_estrutura,
            total_bruto_a_vista=total_bruto_a_vista,
            total_a_vista=total_a_vista,
            # Views sempre sem duplicação (custos unitários)
            views=TotalsViews(
                view_valor_kit=kit.custo_kit,
                view_material=kit.custo_modulos_total + estrutura.valor_estrutura_total,
            ),
        ),
        finance=FinanceOutput(
            entrada_percentual=entrada_percentual,
            total_baloes=total_baloes,
            valor_financiado=valor_financiado,
            saldo_pos_carencia=saldo_pos_carencia,
            parcela_mensal=parcela_mensal,
            total_pago=total_pago,
            juros_pagos=juros_pagos,
        ),
        trade=TradeOutput(
            enabled=bool(inp.trade is not None and inp.trade.enabled),
            mode=TradeMode.from_value(inp.trade.mode if inp.trade is not None else None,
                                      TradeMode.TOTAL_VALUE),
            value=valor_troca,
            applied_on_total=troca_no_total,
            applied_on_installments=troca_nas_parcelas,
            total_applied=troca_no_total + troca_nas_parcelas,
        ),
    )
    return ProposalCalculation(params=params, input=inp, output=output)
