from field_matching import NAME_VARIATIONS, candidate_names, find_field_name


def test_exact_name_wins():
    assert find_field_name("nome", {"nome", "NOME", "TXT_NOME"}) == "nome"


def test_upper_case_field():
    assert find_field_name("cpf", ["CPF"]) == "CPF"


def test_txt_prefixed_upper_field():
    assert find_field_name("nome", ["TXT_NOME", "outro"]) == "TXT_NOME"


def test_prefix_variants():
    assert find_field_name("cidade", ["txtcidade"]) == "txtcidade"
    assert find_field_name("cidade", ["txt_cidade"]) == "txt_cidade"
    assert find_field_name("cidade", ["field_cidade"]) == "field_cidade"


def test_separator_variants():
    assert find_field_name("data_nascimento", ["datanascimento"]) == "datanascimento"
    assert find_field_name("data_nascimento", ["data nascimento"]) == "data nascimento"
    assert find_field_name("nome-mae", ["nome mae"]) == "nome mae"


def test_no_match_returns_none():
    assert find_field_name("peso", ["altura", "TXT_ALTURA"]) is None


def test_earlier_variation_has_priority():
    # both "NOME" and "txt_nome" exist; upper comes first in the table
    assert find_field_name("nome", ["txt_nome", "NOME"]) == "NOME"


def test_candidate_names_are_unique_and_ordered():
    candidates = candidate_names("NOME")
    assert candidates[0] == "NOME"
    assert len(candidates) == len(set(candidates))
    assert "TXT_NOME" in candidates


def test_every_variation_is_named():
    names = [name for name, _ in NAME_VARIATIONS]
    assert len(names) == len(set(names))
    assert names[0] == "exact"
