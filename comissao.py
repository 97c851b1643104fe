#!/usr/bin/env python3
"""
comissao.py
===========
Comissão do vendedor sobre o valor do contrato.

A regra pode estar salva como percentual inteiro (3) ou como fração (0.03):
valores acima de 1 são tratados como percentual e divididos por 100.
"""
from __future__ import annotations

from dataclasses import replace
from math import isfinite, nan
from typing import Any, Optional

from models import Commission, ProposalCalculation
from numeros import coerce_number_or_zero, to_float

COMISSAO_PADRAO_PERCENTUAL: float = 3.0  # 3%


def normalizar_percentual(raw: Any, fallback_percent: float = COMISSAO_PADRAO_PERCENTUAL) -> float:
    """Fração da comissão (0.03 para 3%)."""
    valor = to_float(raw, nan)
    if not isfinite(valor):
        return fallback_percent / 100.0
    return valor / 100.0 if valor > 1 else valor


def percentual_para_exibicao(raw: Any, fallback_percent: float = COMISSAO_PADRAO_PERCENTUAL) -> float:
    """Percentual inteiro para a tela (3.0 para 3%)."""
    valor = to_float(raw, nan)
    if not isfinite(valor):
        return fallback_percent
    return valor if valor > 1 else valor * 100.0


def base_da_comissao(calculation: Optional[ProposalCalculation], total_fallback: Any = None) -> float:
    # Preferência: total à vista calculado; senão o total informado pelo chamador
    if calculation is not None:
        total = calculation.output.totals.total_a_vista
        if isfinite(total) and total > 0:
            return total
    return coerce_number_or_zero(total_fallback)


def calculate_commission(calculation: Optional[ProposalCalculation],
                         percent: Any = None,
                         total_fallback: Any = None,
                         fallback_percent: float = COMISSAO_PADRAO_PERCENTUAL) -> Commission:
    fracao = normalizar_percentual(percent, fallback_percent)
    base = base_da_comissao(calculation, total_fallback)
    return Commission(percent=fracao, value=base * fracao, base_value=base)


def attach_commission(calculation: ProposalCalculation,
                      percent: Any = None,
                      total_fallback: Any = None,
                      fallback_percent: float = COMISSAO_PADRAO_PERCENTUAL) -> ProposalCalculation:
    """Nova ProposalCalculation com a comissão anexada (a original não muda)."""
    comissao = calculate_commission(calculation, percent, total_fallback, fallback_percent)
    return replace(calculation, commission=comissao)
