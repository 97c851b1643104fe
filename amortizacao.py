#!/usr/bin/env python3
"""
amortizacao.py
==============
Motor de amortização das propostas financiadas.

- Saldo após a carência (juros compostos ou simples durante os meses sem parcela)
- Parcela fixa pela fórmula de anuidade (PMT) sobre o saldo pós-carência
- Inversa: taxa mensal implícita a partir de uma parcela desejada (bisseção)
- Cronograma mês a mês (DataFrame) para exibição

Todas as funções são totais: entradas degeneradas (não finitas, zero ou
negativas) retornam 0 em vez de levantar exceção.
"""
from __future__ import annotations

from math import isfinite, nan
from typing import Any

import pandas as pd

from models import GraceInterestMode
from numeros import to_float, finito_ou_zero

# ------------------------
# Constantes do solver
# ------------------------
TAXA_INICIAL_BUSCA: float = 0.05   # 5% a.m. para começar o colchete
TAXA_MAXIMA: float = 3.0           # 300% a.m.: teto de saturação
ITERACOES_BISSECAO: int = 80       # fixo (não por tolerância)

COLUNAS_CRONOGRAMA = ['mes', 'fase', 'saldo_inicial', 'juros', 'amortizacao', 'parcela', 'saldo_final']


def _numero(v: Any) -> float:
    # Ausente/ inválido vira NaN para cair nas guardas de "não finito"
    return to_float(v, nan)


def _modo_carencia(mode: Any) -> GraceInterestMode:
    if isinstance(mode, GraceInterestMode):
        return mode
    try:
        return GraceInterestMode.from_value(mode, GraceInterestMode.COMPOUND)
    except ValueError:
        return GraceInterestMode.COMPOUND


def pmt(rate: float, nper: float, pv: float) -> float:
    """Parcela de anuidade: (rate * pv) / (1 - (1 + rate)^-nper)."""
    if not (isfinite(rate) and isfinite(nper) and isfinite(pv)):
        return 0.0
    if nper <= 0 or rate < 0 or pv < 0:
        return 0.0
    if rate == 0:
        return pv / nper
    try:
        fator = 1.0 - (1.0 + rate) ** -nper
    except OverflowError:
        return 0.0
    if fator <= 0:
        # taxa desprezível frente à precisão do float: limite é pv / nper
        return pv / nper
    return finito_ou_zero((rate * pv) / fator)


def calculate_financed_balance_after_grace(*,
                                           financed_value: Any,
                                           monthly_rate: Any,
                                           grace_months: Any,
                                           grace_interest_mode: Any = GraceInterestMode.COMPOUND) -> float:
    """
    Saldo devedor ao fim da carência.

      COMPOUND: valor * (1 + taxa)^meses
      SIMPLE:   valor * (1 + taxa * meses)

    Sem taxa válida (não finita/negativa) ou sem carência, o valor volta intacto.
    """
    valor = _numero(financed_value)
    if not isfinite(valor) or valor <= 0:
        return 0.0

    taxa = _numero(monthly_rate)
    meses = _numero(grace_months)
    if not isfinite(taxa) or taxa < 0:
        return valor
    if not isfinite(meses) or meses <= 0:
        return valor

    try:
        if _modo_carencia(grace_interest_mode) is GraceInterestMode.SIMPLE:
            saldo = valor * (1.0 + taxa * meses)
        else:
            saldo = valor * (1.0 + taxa) ** meses
    except OverflowError:
        return 0.0
    return finito_ou_zero(saldo)


def calculate_installment_from_rate(*,
                                    financed_value: Any,
                                    monthly_rate: Any,
                                    grace_months: Any,
                                    installments: Any,
                                    grace_interest_mode: Any = GraceInterestMode.COMPOUND) -> float:
    """Parcela mensal fixa sobre o saldo pós-carência."""
    parcelas = _numero(installments)
    if not isfinite(parcelas) or parcelas <= 0:
        return 0.0

    saldo = calculate_financed_balance_after_grace(
        financed_value=financed_value,
        monthly_rate=monthly_rate,
        grace_months=grace_months,
        grace_interest_mode=grace_interest_mode,
    )
    return pmt(_numero(monthly_rate), parcelas, saldo)


def solve_monthly_rate_from_installment(*,
                                        desired_installment: Any,
                                        financed_value: Any,
                                        grace_months: Any,
                                        installments: Any,
                                        grace_interest_mode: Any = GraceInterestMode.COMPOUND) -> float:
    """
    Taxa mensal que produz a parcela desejada.

    A parcela é crescente na taxa, então: colchete exponencial a partir de 5%
    (dobrando até 300%) e depois 80 passos de bisseção. Retorna sempre o limite
    superior do intervalo final. Se nem 300% alcança a parcela, retorna o teto.
    """
    alvo = _numero(desired_installment)
    valor = _numero(financed_value)
    parcelas = _numero(installments)
    if not isfinite(alvo) or alvo <= 0:
        return 0.0
    if not isfinite(valor) or valor <= 0:
        return 0.0
    if not isfinite(parcelas) or parcelas <= 0:
        return 0.0

    def _parcela(taxa: float) -> float:
        return calculate_installment_from_rate(
            financed_value=valor,
            monthly_rate=taxa,
            grace_months=grace_months,
            grace_interest_mode=grace_interest_mode,
            installments=parcelas,
        )

    # Alvo já atendido (ou inalcançável) sem juros
    if alvo <= _parcela(0.0):
        return 0.0

    taxa_baixa = 0.0
    taxa_alta = TAXA_INICIAL_BUSCA
    parcela_alta = _parcela(taxa_alta)
    while parcela_alta < alvo and taxa_alta < TAXA_MAXIMA:
        taxa_alta = min(taxa_alta * 2.0, TAXA_MAXIMA)
        parcela_alta = _parcela(taxa_alta)

    if parcela_alta < alvo:
        return taxa_alta

    for _ in range(ITERACOES_BISSECAO):
        meio = (taxa_baixa + taxa_alta) / 2.0
        if _parcela(meio) >= alvo:
            taxa_alta = meio
        else:
            taxa_baixa = meio

    return taxa_alta


# ------------------------
# Cronograma (exibição)
# ------------------------
def gerar_cronograma_parcelas(*,
                              financed_value: Any,
                              monthly_rate: Any,
                              grace_months: Any,
                              installments: Any,
                              grace_interest_mode: Any = GraceInterestMode.COMPOUND) -> pd.DataFrame:
    """
    Tabela mês a mês: meses de carência (juros capitalizados, sem parcela)
    seguidos das parcelas fixas. Meses fracionários são truncados aqui.
    Retorna DataFrame vazio (mesmas colunas) quando não há parcela.
    """
    parcela = calculate_installment_from_rate(
        financed_value=financed_value,
        monthly_rate=monthly_rate,
        grace_months=grace_months,
        grace_interest_mode=grace_interest_mode,
        installments=installments,
    )
    n_parcelas = int(to_float(installments, 0.0))
    if parcela <= 0 or n_parcelas < 1:
        return pd.DataFrame(columns=COLUNAS_CRONOGRAMA)

    valor = to_float(financed_value, 0.0)
    taxa = to_float(monthly_rate, 0.0)
    meses_carencia = max(int(to_float(grace_months, 0.0)), 0)
    simples = _modo_carencia(grace_interest_mode) is GraceInterestMode.SIMPLE

    linhas = []
    saldo = valor
    mes = 0
    for _ in range(meses_carencia):
        mes += 1
        juros = valor * taxa if simples else saldo * taxa
        linhas.append({
            'mes': mes,
            'fase': 'carencia',
            'saldo_inicial': saldo,
            'juros': juros,
            'amortizacao': 0.0,
            'parcela': 0.0,
            'saldo_final': saldo + juros,
        })
        saldo += juros

    for i in range(n_parcelas):
        mes += 1
        juros = saldo * taxa
        if i == n_parcelas - 1:
            # última parcela quita o resíduo de arredondamento
            amortizacao = saldo
            valor_parcela = juros + amortizacao
        else:
            amortizacao = parcela - juros
            valor_parcela = parcela
        linhas.append({
            'mes': mes,
            'fase': 'amortizacao',
            'saldo_inicial': saldo,
            'juros': juros,
            'amortizacao': amortizacao,
            'parcela': valor_parcela,
            'saldo_final': saldo - amortizacao,
        })
        saldo -= amortizacao

    return pd.DataFrame(linhas, columns=COLUNAS_CRONOGRAMA)
