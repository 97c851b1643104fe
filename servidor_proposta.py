#!/usr/bin/env python3
"""
Servidor Python para o cálculo das propostas (pré-visualização e comissão)
"""

import os
import json
import time
import traceback
from math import isfinite
from flask import Flask, request, jsonify
from flask_cors import CORS
from sqlalchemy import text
#
from db import (
    init_db, SessionLocal, obter_regra, salvar_regra, listar_regras,
    REGRA_COMISSAO, REGRA_PARAMS_CALCULO,
)
from models import ProposalCalcInput, ProposalCalcParams
from proposta_calculo import calculate_proposal, merge_params, solve_margin_from_target_total
from amortizacao import (
    calculate_installment_from_rate,
    solve_monthly_rate_from_installment,
    gerar_cronograma_parcelas,
)
from comissao import attach_commission, calculate_commission
from numeros import to_float

app = Flask(__name__)
CORS(app)


@app.after_request
def add_security_headers(response):
    # Permitir embed em iframe a partir do painel administrativo
    response.headers['X-Frame-Options'] = 'ALLOWALL'
    response.headers['Content-Security-Policy'] = "frame-ancestors *"
    return response


# Inicializa o banco (SQLite por padrão; PostgreSQL via DATABASE_URL)
try:
    init_db()
except Exception as e:
    print(f'⚠️ Falha ao inicializar DB: {e}')

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _erro(e: Exception, status: int = 500):
    if status >= 500:
        traceback.print_exc()
    return jsonify({"success": False, "message": str(e)}), status


def _params_salvos(db) -> ProposalCalcParams:
    """Padrões + override salvo em regras_preco (o input.params vem por cima)."""
    parcial = obter_regra(db, REGRA_PARAMS_CALCULO, {})
    if not isinstance(parcial, dict):
        print(f"⚠️ Regra {REGRA_PARAMS_CALCULO} ignorada: esperado objeto")
        parcial = {}
    return merge_params(parcial)


def _argumentos_financiamento(body: dict) -> dict:
    return {
        'financed_value': body.get('financed_value'),
        'monthly_rate': body.get('monthly_rate'),
        'grace_months': body.get('grace_months'),
        'grace_interest_mode': body.get('grace_interest_mode'),
        'installments': body.get('installments'),
    }


# -----------------------------------------------------------------------------
# Cálculo da proposta
# -----------------------------------------------------------------------------
@app.route('/proposta/calcular', methods=['POST'])
def proposta_calcular():
    """
    Executa o cálculo completo e devolve {params, input, output}.
    Body: ProposalCalcInput + opcionais 'incluir_comissao', 'comissao_percentual', 'total_fallback'.
    """
    try:
        inicio = time.time()
        body = _json_body()
        entrada = ProposalCalcInput.from_dict(body)
        db = SessionLocal()
        try:
            calculo = calculate_proposal(entrada, _params_salvos(db))
            if body.get('incluir_comissao') or body.get('comissao_percentual') is not None:
                percentual = body.get('comissao_percentual')
                if percentual is None:
                    percentual = obter_regra(db, REGRA_COMISSAO)
                calculo = attach_commission(calculo, percentual, body.get('total_fallback'))
        finally:
            db.close()
        dur_ms = int((time.time() - inicio) * 1000)
        print(f"🧮 [proposta/calcular] total_a_vista={calculo.output.totals.total_a_vista:.2f} "
              f"parcela={calculo.output.finance.parcela_mensal:.2f} ({dur_ms} ms)")
        return jsonify({"success": True, "calculation": calculo.to_dict()})
    except ValueError as e:
        return _erro(e, 400)
    except Exception as e:
        return _erro(e)


@app.route('/proposta/resolver-taxa', methods=['POST'])
def proposta_resolver_taxa():
    """
    Taxa mensal implícita a partir da parcela digitada pelo vendedor.
    Body: { desired_installment, financed_value, grace_months, grace_interest_mode, installments }
    """
    try:
        body = _json_body()
        args = _argumentos_financiamento(body)
        args.pop('monthly_rate')
        taxa = solve_monthly_rate_from_installment(desired_installment=body.get('desired_installment'), **args)
        parcela = calculate_installment_from_rate(monthly_rate=taxa, **args)
        return jsonify({"success": True, "monthly_rate": taxa, "parcela_resultante": parcela})
    except Exception as e:
        return _erro(e)


@app.route('/proposta/resolver-margem', methods=['POST'])
def proposta_resolver_margem():
    """
    Margem que leva ao total da usina digitado.
    Body: { target_total, soma_com_estrutura, extras_total }
    """
    try:
        body = _json_body()
        margem = solve_margin_from_target_total(
            body.get('target_total'),
            body.get('soma_com_estrutura'),
            body.get('extras_total'),
        )
        return jsonify({"success": True, "margem_percentual": margem})
    except Exception as e:
        return _erro(e)


@app.route('/proposta/cronograma', methods=['POST'])
def proposta_cronograma():
    """
    Cronograma mês a mês (carência + parcelas).
    Body: { financed_value, monthly_rate, grace_months, grace_interest_mode, installments }
    """
    try:
        args = _argumentos_financiamento(_json_body())
        tabela = gerar_cronograma_parcelas(**args)
        return jsonify({
            "success": True,
            "parcela_mensal": calculate_installment_from_rate(**args),
            "linhas": json.loads(tabela.to_json(orient="records")),
        })
    except Exception as e:
        return _erro(e)


@app.route('/proposta/comissao', methods=['POST'])
def proposta_comissao():
    """
    Comissão sobre o valor do contrato.
    Body: { calculation?: {params, input}, percent?, total_fallback? }
    Sem percent, usa a regra 'dorata_commission_percent' (padrão 3%).
    """
    try:
        body = _json_body()
        db = SessionLocal()
        try:
            percentual = body.get('percent')
            if percentual is None:
                percentual = obter_regra(db, REGRA_COMISSAO)
        finally:
            db.close()

        calculo_salvo = body.get('calculation')
        if isinstance(calculo_salvo, dict):
            # O cálculo é determinístico: reconstruir a partir de params + input
            params = ProposalCalcParams.from_dict(calculo_salvo.get('params') or {})
            entrada = ProposalCalcInput.from_dict(calculo_salvo.get('input') or {})
            calculo = attach_commission(calculate_proposal(entrada, params),
                                        percentual, body.get('total_fallback'))
            comissao = calculo.commission
        else:
            comissao = calculate_commission(None, percentual, body.get('total_fallback'))
        return jsonify({"success": True, "commission": comissao.to_dict()})
    except ValueError as e:
        return _erro(e, 400)
    except Exception as e:
        return _erro(e)


# -----------------------------------------------------------------------------
# Regras de preço (Admin)
# -----------------------------------------------------------------------------
@app.route('/config/regras-preco', methods=['GET'])
def get_regras_preco():
    """Lista as regras de preço salvas."""
    try:
        db = SessionLocal()
        try:
            return jsonify({"success": True, "items": listar_regras(db)})
        finally:
            db.close()
    except Exception as e:
        return _erro(e)


@app.route('/config/regras-preco', methods=['POST'])
def upsert_regra_preco():
    """
    Upsert de uma regra:
    Body: { "key": "dorata_commission_percent", "value": 3 }
          { "key": "proposal_calc_params", "value": { "micro_rounding_mode": "FLOOR" } }
    """
    try:
        body = _json_body()
        key = str(body.get('key') or '').strip()
        if not key:
            return jsonify({"success": False, "message": "Chave inválida"}), 400
        value = body.get('value')

        if key == REGRA_PARAMS_CALCULO:
            if not isinstance(value, dict):
                return jsonify({"success": False, "message": "Parâmetros devem ser um objeto"}), 400
            # valida enums antes de salvar
            merge_params(value)
        elif key == REGRA_COMISSAO:
            if not isfinite(to_float(value, float('nan'))):
                return jsonify({"success": False, "message": "Percentual de comissão inválido"}), 400

        db = SessionLocal()
        try:
            row = salvar_regra(db, key, value)
            print(f"💾 Regra de preço '{key}' salva")
            return jsonify({"success": True, "item": row.to_dict()})
        finally:
            db.close()
    except ValueError as e:
        return _erro(e, 400)
    except Exception as e:
        return _erro(e)


# -----------------------------------------------------------------------------
# Saúde
# -----------------------------------------------------------------------------
@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'message': 'Servidor Python funcionando'})


@app.route('/db/health', methods=['GET'])
def db_health():
    try:
        db = SessionLocal()
        try:
            db.execute(text('SELECT 1'))
        finally:
            db.close()
        return jsonify({'ok': True})
    except Exception as e:
        return jsonify({'ok': False, 'error': str(e)}), 500


if __name__ == '__main__':
    port = int(os.getenv('PORT', '8000'))
    debug = os.getenv('FLASK_DEBUG', '0') == '1'
    print(f'✅ Servidor de propostas na porta {port}')
    app.run(host='0.0.0.0', port=port, debug=debug)
