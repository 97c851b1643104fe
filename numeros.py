#!/usr/bin/env python3
"""
numeros.py
==========
Conversão tolerante de valores numéricos vindos de formulários.

Aceita números, strings simples ("12.5") e strings em formato BRL
("R$ 1.234,56"). Nada aqui levanta exceção: valores inválidos viram o padrão.
"""
from __future__ import annotations

from math import isfinite
from typing import Any


def to_float(v: Any, d: float = 0.0) -> float:
    """Converte para float; retorna `d` se não for possível ou se não for finito."""
    if v is None or isinstance(v, (list, dict, tuple, set)):
        return d
    try:
        if isinstance(v, str):
            s = v.strip()
            for token in ['R$', 'r$', ' ']:
                s = s.replace(token, '')
            if not s:
                return d
            # Vírgula indica formato BRL: ponto é separador de milhar
            if ',' in s:
                s = s.replace('.', '').replace(',', '.')
            n = float(s)
        else:
            n = float(v)
    except (TypeError, ValueError, OverflowError):
        return d
    return n if isfinite(n) else d


def coerce_number_or_zero(v: Any) -> float:
    """Ausente, nulo, não numérico ou não finito -> 0.0."""
    return to_float(v, 0.0)


def finito_ou_zero(v: float) -> float:
    return v if isfinite(v) else 0.0
