"""
Data records fed to the PDF pipeline.

A data record is a flat, ordered mapping of field name to a scalar value.
Titular fields use bare names (nome, cpf, ...), dependents use an indexed
prefix (dependente{N}_nome, N from 1 to 5) and the health questionnaire uses
pergunta{N} / resposta{N} / observacao{N}.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from errors import InvalidInput

RecordValue = Union[str, int, float]
DataRecord = Dict[str, RecordValue]

MAX_DEPENDENTS = 5
MAX_QUESTIONS = 10

_SCALAR_TYPES = (str, int, float, Decimal, date)


# ============================================================================
# Normalization
# ============================================================================

def normalize_data_record(data: Mapping[str, Any]) -> DataRecord:
    """
    Validate and normalize a caller-supplied record.

    Keeps insertion order, drops None values, turns dates into dd/mm/yyyy
    text and Decimals into floats.

    Raises:
        InvalidInput: If the record is not a mapping or holds nested values.
    """
    if not isinstance(data, Mapping):
        raise InvalidInput(f"Data record must be a mapping, got {type(data).__name__}")

    record: DataRecord = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, _SCALAR_TYPES):
            raise InvalidInput(
                f"Data record value for '{key}' must be text, number or date, got {type(value).__name__}"
            )
        if isinstance(value, date):
            value = format_date_br(value)
        elif isinstance(value, Decimal):
            value = float(value)
        record[str(key)] = value
    return record


def value_to_text(value: Optional[RecordValue]) -> str:
    """String form used when writing a value into a form field or a page."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_text(record: Mapping[str, RecordValue], key: str) -> str:
    """Text for a key, empty string when the key is absent."""
    return value_to_text(record.get(key))


def has_value(record: Mapping[str, RecordValue], key: str) -> bool:
    return get_text(record, key).strip() != ""


# ============================================================================
# Formatting helpers
# ============================================================================

def format_date_br(value: Any) -> str:
    """
    Format a date (or ISO date string) as dd/mm/yyyy.

    Returns an empty string for empty input and the input unchanged when it
    cannot be parsed.
    """
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    return parsed.strftime("%d/%m/%Y")


def format_currency_brl(value: Any) -> str:
    """Format a number as Brazilian Real (R$ 1.234,56); text passes through."""
    if value is None or value == "" or value == 0:
        return ""
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        formatted = f"{float(value):,.2f}"
        formatted = formatted.replace(",", "X").replace(".", ",").replace("X", ".")
        return f"R$ {formatted}"
    return str(value)


# ============================================================================
# Proposal -> record assembly
# ============================================================================

def _first(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value:
            return value
    return ""


def build_proposal_record(
    proposal: Mapping[str, Any],
    dependents: Optional[List[Mapping[str, Any]]] = None,
    questionnaire: Optional[List[Mapping[str, Any]]] = None,
) -> DataRecord:
    """
    Build the flat data record for a proposal.

    Args:
        proposal: Proposal row (titular, address, plan and broker columns)
        dependents: Dependent rows, in display order; only the first 5 are used
        questionnaire: Health questionnaire rows with pergunta/resposta/observacao

    Returns:
        DataRecord following the titular / dependenteN_ / perguntaN convention
    """
    record: DataRecord = {
        # Titular
        "nome": _first(proposal, "nome_cliente", "nome"),
        "cpf": _first(proposal, "cpf"),
        "rg": _first(proposal, "rg"),
        "data_nascimento": format_date_br(proposal.get("data_nascimento")),
        "email": _first(proposal, "email"),
        "telefone": _first(proposal, "telefone"),
        "celular": _first(proposal, "celular"),
        "nome_mae": _first(proposal, "nome_mae"),
        "sexo": _first(proposal, "sexo"),
        "estado_civil": _first(proposal, "estado_civil"),
        "naturalidade": _first(proposal, "naturalidade"),
        "nome_pai": _first(proposal, "nome_pai"),
        "nacionalidade": _first(proposal, "nacionalidade"),
        "profissao": _first(proposal, "profissao"),
        "orgao_expedidor": _first(proposal, "orgao_expedidor"),
        "uf_nascimento": _first(proposal, "uf_nascimento"),
        # Address
        "endereco": _first(proposal, "endereco"),
        "bairro": _first(proposal, "bairro"),
        "cidade": _first(proposal, "cidade"),
        "estado": _first(proposal, "estado"),
        "cep": _first(proposal, "cep"),
        # Plan
        "plano": _first(proposal, "codigo_plano", "sigla_plano"),
        "cobertura": _first(proposal, "tipo_cobertura", "cobertura"),
        "acomodacao": _first(proposal, "tipo_acomodacao", "acomodacao"),
        "valor": format_currency_brl(_first(proposal, "valor_plano", "valor")),
        "peso": _first(proposal, "peso"),
        "altura": _first(proposal, "altura"),
        # Broker
        "corretor_nome": _first(proposal, "corretor_nome"),
        "corretor_codigo": _first(proposal, "corretor_codigo"),
        "data_criacao": format_date_br(proposal.get("created_at")),
        "data_atualizacao": format_date_br(proposal.get("updated_at")),
    }

    for index, dependent in enumerate((dependents or [])[:MAX_DEPENDENTS], start=1):
        prefix = f"dependente{index}_"
        record[f"{prefix}nome"] = _first(dependent, "nome")
        record[f"{prefix}cpf"] = _first(dependent, "cpf")
        record[f"{prefix}data_nascimento"] = format_date_br(dependent.get("data_nascimento"))
        record[f"{prefix}parentesco"] = _first(dependent, "parentesco")
        record[f"{prefix}rg"] = _first(dependent, "rg")
        record[f"{prefix}cns"] = _first(dependent, "cns")
        record[f"{prefix}sexo"] = _first(dependent, "sexo")
        record[f"{prefix}estado_civil"] = _first(dependent, "estado_civil")
        record[f"{prefix}naturalidade"] = _first(dependent, "naturalidade")

    for index, entry in enumerate(questionnaire or [], start=1):
        record[f"pergunta{index}"] = _first(entry, "pergunta")
        record[f"resposta{index}"] = _first(entry, "resposta")
        if entry.get("observacao"):
            record[f"observacao{index}"] = entry["observacao"]

    return normalize_data_record(record)
