"""
Name variations used to match data record keys to template form fields.

Templates come from different operators and rarely share a naming scheme,
so a record key such as "nome" may live in a field called "NOME",
"txt_nome" or "TXT_NOME". Variations are tried in order and the first one
naming an existing field wins.
"""

import re
from typing import Callable, Container, List, Optional, Tuple

NAME_VARIATIONS_VERSION = 2

NameVariation = Tuple[str, Callable[[str], str]]

NAME_VARIATIONS: List[NameVariation] = [
    ("exact", lambda key: key),
    ("upper", lambda key: key.upper()),
    ("lower", lambda key: key.lower()),
    ("txt_prefix", lambda key: f"txt{key}"),
    ("txt_underscore_prefix", lambda key: f"txt_{key}"),
    ("txt_underscore_prefix_upper", lambda key: f"TXT_{key}".upper()),
    ("field_prefix", lambda key: f"field_{key}"),
    ("underscores_stripped", lambda key: key.replace("_", "")),
    ("separators_to_spaces", lambda key: re.sub(r"[_-]", " ", key)),
]


def candidate_names(key: str) -> List[str]:
    """All distinct candidate field names for a key, in lookup order."""
    candidates: List[str] = []
    for _, transform in NAME_VARIATIONS:
        candidate = transform(key)
        if candidate not in candidates:
            candidates.append(candidate)
    return candidates


def find_field_name(key: str, field_names: Container[str]) -> Optional[str]:
    """
    Find the form field a record key should be written to.

    Args:
        key: Data record key
        field_names: Names of the fillable text fields in the template

    Returns:
        The matching field name, or None when no variation exists
    """
    for candidate in candidate_names(key):
        if candidate in field_names:
            return candidate
    return None
