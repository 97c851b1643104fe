#!/usr/bin/env python3
"""
Modelos de dados do cálculo de propostas solares
"""

from dataclasses import dataclass, asdict, field, fields
from enum import Enum
from typing import Optional, List, Dict, Any


class _EnumTexto(str, Enum):
    """Enum textual: serializa como a própria string."""

    @classmethod
    def from_value(cls, value: Any, default: "_EnumTexto"):
        if value is None or value == "":
            return default
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            validos = ", ".join(m.value for m in cls)
            raise ValueError(f"{cls.__name__} inválido: {value!r} (use {validos})")


class RoundMode(_EnumTexto):
    CEIL = "CEIL"
    FLOOR = "FLOOR"
    ROUND = "ROUND"


class GraceInterestMode(_EnumTexto):
    COMPOUND = "COMPOUND"
    SIMPLE = "SIMPLE"


class DuplicationRule(_EnumTexto):
    DUPLICATE_KIT_AND_SOLO_STRUCTURE = "DUPLICATE_KIT_AND_SOLO_STRUCTURE"
    NO_DUPLICATION = "NO_DUPLICATION"


class InverterType(_EnumTexto):
    STRING = "STRING"
    MICRO = "MICRO"


class TradeMode(_EnumTexto):
    TOTAL_VALUE = "TOTAL_VALUE"
    INSTALLMENTS = "INSTALLMENTS"


def _serializar(valor: Any) -> Any:
    if isinstance(valor, Enum):
        return valor.value
    if isinstance(valor, dict):
        return {k: _serializar(v) for k, v in valor.items()}
    if isinstance(valor, list):
        return [_serializar(v) for v in valor]
    return valor


def _campos_conhecidos(cls, data: Any) -> Dict[str, Any]:
    """Filtra o dicionário para os campos do dataclass (payloads da UI trazem extras)."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{cls.__name__}: esperado objeto, recebido {type(data).__name__}")
    nomes = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in nomes}


def _lista(data: Any) -> list:
    return data if isinstance(data, list) else []


class _Serializavel:
    def to_dict(self) -> Dict[str, Any]:
        return _serializar(asdict(self))


# ------------------------
# Parâmetros globais
# ------------------------
@dataclass
class ProposalCalcParams(_Serializavel):
    """Constantes ajustáveis do cálculo (todas com padrão)"""
    default_oversizing_factor: float = 1.25
    micro_per_modules_divisor: float = 4
    micro_unit_power_kw: float = 2
    micro_rounding_mode: RoundMode = RoundMode.CEIL
    grace_interest_mode: GraceInterestMode = GraceInterestMode.COMPOUND
    duplication_rule: DuplicationRule = DuplicationRule.DUPLICATE_KIT_AND_SOLO_STRUCTURE

    def merged(self, overrides: Optional[Dict[str, Any]]) -> 'ProposalCalcParams':
        """Merge raso de um dicionário parcial sobre estes parâmetros."""
        base = self.to_dict()
        for key, value in _campos_conhecidos(ProposalCalcParams, overrides).items():
            if value is not None:
                base[key] = value
        return ProposalCalcParams.from_dict(base)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProposalCalcParams':
        data = _campos_conhecidos(cls, data)
        padrao = cls()
        data['micro_rounding_mode'] = RoundMode.from_value(
            data.get('micro_rounding_mode'), padrao.micro_rounding_mode)
        data['grace_interest_mode'] = GraceInterestMode.from_value(
            data.get('grace_interest_mode'), padrao.grace_interest_mode)
        data['duplication_rule'] = DuplicationRule.from_value(
            data.get('duplication_rule'), padrao.duplication_rule)
        return cls(**data)


# ------------------------
# Entrada
# ------------------------
@dataclass
class StringInverterLine(_Serializavel):
    """Linha de inversor string (modelos heterogêneos)"""
    quantity: Any = 0
    unit_cost: Any = 0
    power_kw: Any = 0
    product_id: str = ""
    power_source: str = "product"  # 'product' ou 'manual'
    purchase_required: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StringInverterLine':
        return cls(**_campos_conhecidos(cls, data))


@dataclass
class DimensioningInput(_Serializavel):
    qtd_modulos: Any = 0
    potencia_modulo_w: Any = 0
    indice_producao: Any = 0
    fator_oversizing: Any = 0  # 0/ausente -> usa default_oversizing_factor
    tipo_inversor: InverterType = InverterType.STRING
    potencia_inversor_string_kw: Any = 0
    qtd_inversor_string: Any = 0
    qtd_inversor_micro: Any = 0
    string_inverters: List[StringInverterLine] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DimensioningInput':
        data = _campos_conhecidos(cls, data)
        data['tipo_inversor'] = InverterType.from_value(data.get('tipo_inversor'), InverterType.STRING)
        data['string_inverters'] = [
            StringInverterLine.from_dict(item) for item in _lista(data.get('string_inverters'))
        ]
        return cls(**data)


@dataclass
class KitInput(_Serializavel):
    module_cost_per_watt: Any = 0
    cabling_unit_cost: Any = 0
    micro_unit_cost: Any = 0
    string_inverter_total_cost: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KitInput':
        return cls(**_campos_conhecidos(cls, data))


@dataclass
class StructureInput(_Serializavel):
    qtd_placas_solo: Any = 0
    qtd_placas_telhado: Any = 0
    valor_unit_solo: Any = 0
    valor_unit_telhado: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StructureInput':
        return cls(**_campos_conhecidos(cls, data))


@dataclass
class MarginInput(_Serializavel):
    margem_percentual: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MarginInput':
        return cls(**_campos_conhecidos(cls, data))


@dataclass
class ExtraItem(_Serializavel):
    id: str = ""
    name: str = ""
    value: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtraItem':
        return cls(**_campos_conhecidos(cls, data))


@dataclass
class ExtrasInput(_Serializavel):
    valor_baterias: Any = 0
    valor_adequacao_padrao: Any = 0
    outros_extras: List[ExtraItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExtrasInput':
        data = _campos_conhecidos(cls, data)
        data['outros_extras'] = [ExtraItem.from_dict(e) for e in _lista(data.get('outros_extras'))]
        return cls(**data)


@dataclass
class BalloonPayment(_Serializavel):
    balao_valor: Any = 0
    balao_mes: Any = 0  # informativo, não entra na conta

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BalloonPayment':
        return cls(**_campos_conhecidos(cls, data))


@dataclass
class FinanceInput(_Serializavel):
    enabled: bool = False
    entrada_valor: Any = 0
    carencia_meses: Any = 0
    juros_mensal: Any = 0
    num_parcelas: Any = 0
    baloes: List[BalloonPayment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FinanceInput':
        data = _campos_conhecidos(cls, data)
        data['enabled'] = bool(data.get('enabled', False))
        data['baloes'] = [BalloonPayment.from_dict(b) for b in _lista(data.get('baloes'))]
        return cls(**data)


@dataclass
class TradeInput(_Serializavel):
    enabled: bool = False
    mode: TradeMode = TradeMode.TOTAL_VALUE
    value: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TradeInput':
        data = _campos_conhecidos(cls, data)
        data['enabled'] = bool(data.get('enabled', False))
        data['mode'] = TradeMode.from_value(data.get('mode'), TradeMode.TOTAL_VALUE)
        return cls(**data)


@dataclass
class ProposalCalcInput(_Serializavel):
    """Requisição completa do cálculo"""
    dimensioning: DimensioningInput = field(default_factory=DimensioningInput)
    kit: KitInput = field(default_factory=KitInput)
    structure: StructureInput = field(default_factory=StructureInput)
    margin: MarginInput = field(default_factory=MarginInput)
    extras: ExtrasInput = field(default_factory=ExtrasInput)
    finance: FinanceInput = field(default_factory=FinanceInput)
    trade: Optional[TradeInput] = None
    params: Dict[str, Any] = field(default_factory=dict)  # parcial de ProposalCalcParams

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProposalCalcInput':
        data = _campos_conhecidos(cls, data)
        trade = data.get('trade')
        params = data.get('params')
        return cls(
            dimensioning=DimensioningInput.from_dict(data.get('dimensioning')),
            kit=KitInput.from_dict(data.get('kit')),
            structure=StructureInput.from_dict(data.get('structure')),
            margin=MarginInput.from_dict(data.get('margin')),
            extras=ExtrasInput.from_dict(data.get('extras')),
            finance=FinanceInput.from_dict(data.get('finance')),
            trade=TradeInput.from_dict(trade) if trade is not None else None,
            params=dict(params) if isinstance(params, dict) else {},
        )


# ------------------------
# Saída
# ------------------------
@dataclass
class InverterOutput(_Serializavel):
    tipo_inversor: InverterType
    qtd_string: float
    pot_string_kw: float
    qtd_micro: float
    qtd_micro_sugerida: float
    pot_micro_total_kw: float
    string_inverters: List[Dict[str, float]] = field(default_factory=list)


@dataclass
class DimensioningOutput(_Serializavel):
    kWp: float
    kWh_estimado: float
    inversor: InverterOutput


@dataclass
class KitOutput(_Serializavel):
    custo_modulo_unitario: float
    custo_modulos_total: float
    custo_inversor_total: float
    custo_kit: float


@dataclass
class StructureOutput(_Serializavel):
    valor_estrutura_solo: float
    valor_estrutura_telhado: float
    valor_estrutura_total: float


@dataclass
class MarginOutput(_Serializavel):
    margem_valor: float


@dataclass
class ExtrasOutput(_Serializavel):
    extras_total: float


@dataclass
class TotalsViews(_Serializavel):
    view_valor_kit: float
    view_material: float


@dataclass
class TotalsOutput(_Serializavel):
    soma_sem_duplicacao: float
    soma_com_estrutura: float
    total_bruto_a_vista: float
    total_a_vista: float
    views: TotalsViews


@dataclass
class FinanceOutput(_Serializavel):
    entrada_percentual: float
    total_baloes: float
    valor_financiado: float
    saldo_pos_carencia: float
    parcela_mensal: float
    total_pago: float
    juros_pagos: float


@dataclass
class TradeOutput(_Serializavel):
    enabled: bool
    mode: TradeMode
    value: float
    applied_on_total: float
    applied_on_installments: float
    total_applied: float


@dataclass
class ProposalCalcOutput(_Serializavel):
    dimensioning: DimensioningOutput
    kit: KitOutput
    structure: StructureOutput
    margin: MarginOutput
    extras: ExtrasOutput
    totals: TotalsOutput
    finance: FinanceOutput
    trade: TradeOutput


@dataclass
class Commission(_Serializavel):
    percent: float
    value: float
    base_value: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Commission':
        return cls(**_campos_conhecidos(cls, data))


@dataclass
class ProposalCalculation:
    """Resultado persistido como blob JSON na proposta"""
    params: ProposalCalcParams
    input: ProposalCalcInput
    output: ProposalCalcOutput
    commission: Optional[Commission] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'params': self.params.to_dict(),
            'input': self.input.to_dict(),
            'output': self.output.to_dict(),
        }
        if self.commission is not None:
            data['commission'] = self.commission.to_dict()
        return data
