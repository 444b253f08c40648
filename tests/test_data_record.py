from datetime import date, datetime
from decimal import Decimal

import pytest

from data_record import (
    MAX_DEPENDENTS,
    build_proposal_record,
    format_currency_brl,
    format_date_br,
    has_value,
    normalize_data_record,
    value_to_text,
)
from errors import InvalidInput


def test_normalize_keeps_order_and_drops_none():
    record = normalize_data_record({"nome": "Ana", "rg": None, "cpf": "111", "idade": 30})
    assert list(record.keys()) == ["nome", "cpf", "idade"]
    assert record["idade"] == 30


def test_normalize_converts_dates_and_decimals():
    record = normalize_data_record({"data_nascimento": date(1990, 1, 31), "valor": Decimal("10.50")})
    assert record["data_nascimento"] == "31/01/1990"
    assert record["valor"] == 10.5


@pytest.mark.parametrize("value", [{"a": 1}, ["x"], True])
def test_normalize_rejects_non_scalar_values(value):
    with pytest.raises(InvalidInput):
        normalize_data_record({"campo": value})


def test_normalize_rejects_non_mapping():
    with pytest.raises(InvalidInput):
        normalize_data_record([("nome", "Ana")])


def test_value_to_text():
    assert value_to_text(2.0) == "2"
    assert value_to_text(2.5) == "2.5"
    assert value_to_text(None) == ""


def test_has_value_ignores_blank_text():
    assert has_value({"nome": "Ana"}, "nome")
    assert not has_value({"nome": "   "}, "nome")
    assert not has_value({}, "nome")


def test_format_date_br():
    assert format_date_br("2024-03-05T10:00:00Z") == "05/03/2024"
    assert format_date_br("2024-03-05") == "05/03/2024"
    assert format_date_br(datetime(2020, 12, 1, 8, 30)) == "01/12/2020"
    assert format_date_br("") == ""
    assert format_date_br("ontem") == "ontem"


def test_format_currency_brl():
    assert format_currency_brl(1234.5) == "R$ 1.234,50"
    assert format_currency_brl(Decimal("99")) == "R$ 99,00"
    assert format_currency_brl(0) == ""
    assert format_currency_brl(None) == ""
    assert format_currency_brl("R$ 10,00") == "R$ 10,00"


def test_build_proposal_record_titular_and_plan():
    proposal = {
        "nome_cliente": "Carlos Souza",
        "cpf": "222.333.444-55",
        "data_nascimento": "1985-07-20",
        "sigla_plano": "AMB-01",
        "tipo_cobertura": "Nacional",
        "acomodacao": "Apartamento",
        "valor_plano": 450.9,
        "created_at": "2024-01-10T12:00:00Z",
    }
    record = build_proposal_record(proposal)

    assert record["nome"] == "Carlos Souza"
    assert record["data_nascimento"] == "20/07/1985"
    assert record["plano"] == "AMB-01"
    assert record["cobertura"] == "Nacional"
    assert record["acomodacao"] == "Apartamento"
    assert record["valor"] == "R$ 450,90"
    assert record["data_criacao"] == "10/01/2024"


def test_build_proposal_record_limits_dependents():
    dependents = [{"nome": f"Dep {i}", "parentesco": "Filho"} for i in range(1, 8)]
    record = build_proposal_record({"nome": "Ana"}, dependents=dependents)

    assert record[f"dependente{MAX_DEPENDENTS}_nome"] == f"Dep {MAX_DEPENDENTS}"
    assert f"dependente{MAX_DEPENDENTS + 1}_nome" not in record
    assert record["dependente1_parentesco"] == "Filho"


def test_build_proposal_record_questionnaire():
    questionnaire = [
        {"pergunta": "Fuma?", "resposta": "Não"},
        {"pergunta": "Cirurgias?", "resposta": "Sim", "observacao": "Apendicite em 2010"},
    ]
    record = build_proposal_record({"nome": "Ana"}, questionnaire=questionnaire)

    assert record["pergunta1"] == "Fuma?"
    assert record["resposta2"] == "Sim"
    assert record["observacao2"] == "Apendicite em 2010"
    assert "observacao1" not in record
