"""
Write data record values into template form fields and flatten the form.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Tuple

from PyPDFForm import PdfWrapper

from data_record import RecordValue, value_to_text
from field_matching import find_field_name
from log_setup import get_logger
from template_parser import ParsedTemplate, is_structural_corruption

logger = get_logger("field_populator")


@dataclass
class PopulateResult:
    pdf_bytes: bytes
    fields_filled: int
    flattened: bool
    unmatched_keys: List[str] = field(default_factory=list)


def map_record_to_fields(
    record: Mapping[str, RecordValue],
    text_field_names: List[str]
) -> Tuple[Dict[str, str], List[str]]:
    """
    Pair record keys with text fields using the name variation table.

    When several keys resolve to the same field, a key naming the field
    exactly wins; otherwise the first key in record order wins. The losing
    keys are logged and reported as unmatched.

    Returns:
        Tuple of (field_name -> text value, record keys whose value was not written)
    """
    available = set(text_field_names)
    values: Dict[str, str] = {}
    sources: Dict[str, str] = {}
    unmatched: List[str] = []

    for key, value in record.items():
        field_name = find_field_name(key, available)
        if field_name is None:
            logger.debug(f"No form field for key '{key}'")
            unmatched.append(key)
            continue
        if field_name != key:
            logger.debug(f"Key '{key}' matched field '{field_name}'")

        previous = sources.get(field_name)
        if previous is not None:
            if key == field_name and previous != field_name:
                winner, loser = key, previous
            else:
                winner, loser = previous, key
            logger.warning(
                f"Keys '{previous}' and '{key}' both match field '{field_name}'; "
                f"keeping '{winner}', dropping '{loser}'"
            )
            unmatched.append(loser)
            if winner == previous:
                continue

        sources[field_name] = key
        values[field_name] = value_to_text(value)

    return values, unmatched


def populate_fields(parsed: ParsedTemplate, record: Mapping[str, RecordValue]) -> PopulateResult:
    """
    Fill the template's text fields and flatten the form.

    Flattening is best effort: if it fails the document is filled again
    without flattening and returned with editable fields.

    Args:
        parsed: Template that passed field discovery
        record: Normalized data record

    Returns:
        PopulateResult with the filled document bytes
    """
    values, unmatched = map_record_to_fields(record, parsed.text_field_names)

    try:
        filled = PdfWrapper(parsed.pdf_bytes).fill(values, flatten=True).read()
        flattened = True
    except Exception as e:
        if is_structural_corruption(e):
            logger.warning(f"Could not flatten form (structural problem in template): {e}. Keeping fields editable.")
        else:
            logger.warning(f"Could not flatten form: {e}. Keeping fields editable.")
        filled = PdfWrapper(parsed.pdf_bytes).fill(values, flatten=False).read()
        flattened = False

    return PopulateResult(
        pdf_bytes=filled,
        fields_filled=len(values),
        flattened=flattened,
        unmatched_keys=unmatched
    )
