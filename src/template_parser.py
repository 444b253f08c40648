"""
Template parsing and form field discovery.

Templates are uploaded by administrators and are often produced by
unknown tools: some are encrypted, some have broken cross-reference
tables, some have no AcroForm at all. Parsing is permissive, and failures
caused by structural corruption are reported as a degrade signal rather
than an error so the caller can synthesize a document instead.
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import List, Optional

from pydantic import BaseModel, Field
from pypdf import PdfReader
from pypdf.errors import PyPdfError
from PyPDFForm import PdfWrapper

from errors import TemplateParseFailed
from log_setup import get_logger
from stage_result import Degrade, DegradeReason, Fail, Ok, StageResult

logger = get_logger("template_parser")

# Lower-cased message fragments of errors caused by a broken document structure
CORRUPTION_SIGNATURES = (
    "xref",
    "startxref",
    "trailer",
    "eof marker",
    "root object",
    "could not find page",
    "page lookup",
    "pdfref",
    "/pages",
    "invalid object",
)


class FormFieldInfo(BaseModel):
    """Information about a PDF form field extracted via PyPDFForm."""
    field_name: str = Field(description="The internal field name from the PDF.")
    field_type: str = Field(description="Type of field: text, checkbox, radio, dropdown, signature, image.")
    field_value: Optional[str] = Field(default=None, description="Current value if any.")
    field_options: Optional[List[str]] = Field(default=None, description="Available options for dropdowns.")


@dataclass
class ParsedTemplate:
    """A template that parsed cleanly and has at least one form field."""
    pdf_bytes: bytes
    page_count: int
    fields: List[FormFieldInfo] = field(default_factory=list)
    encrypted: bool = False

    @property
    def text_field_names(self) -> List[str]:
        return [f.field_name for f in self.fields if f.field_type == "text"]


def is_structural_corruption(error: BaseException) -> bool:
    """True if an error comes from a malformed document structure."""
    if isinstance(error, PyPdfError):
        return True
    message = str(error).lower()
    return any(signature in message for signature in CORRUPTION_SIGNATURES)


def _classify(error: Exception, step: str) -> StageResult:
    if is_structural_corruption(error):
        return Degrade(DegradeReason.STRUCTURAL_CORRUPTION, f"{step}: {error}")
    return Fail(TemplateParseFailed(f"Failed to {step} PDF template: {error}"))


def _widget_kind(widget) -> str:
    return type(widget).__name__.lower()


def discover_fields(pdf_bytes: bytes) -> List[FormFieldInfo]:
    """
    List the form fields of a PDF, in document order.

    Args:
        pdf_bytes: Raw PDF bytes

    Returns:
        List of FormFieldInfo (empty if the PDF has no form)
    """
    widgets = PdfWrapper(pdf_bytes).widgets or {}

    fields = []
    for name, widget in widgets.items():
        value = getattr(widget, "value", None)
        choices = getattr(widget, "choices", None)
        fields.append(FormFieldInfo(
            field_name=name,
            field_type=_widget_kind(widget),
            field_value=str(value) if value not in (None, "") else None,
            field_options=[str(c) for c in choices] if choices else None
        ))
    return fields


def parse_template(pdf_bytes: bytes) -> StageResult:
    """
    Parse template bytes and discover their form fields.

    The structure is loaded first with pypdf in non-strict mode (tolerating
    encryption and invalid objects, walking every page), then the form
    fields are read with PyPDFForm.

    Returns:
        Ok(ParsedTemplate), Degrade(structural-corruption | no-fillable-fields)
        or Fail(TemplateParseFailed)
    """
    if not pdf_bytes:
        return Fail(TemplateParseFailed("Template is empty"))

    try:
        reader = PdfReader(BytesIO(pdf_bytes), strict=False)
        encrypted = reader.is_encrypted
        if encrypted:
            reader.decrypt("")
        page_count = len(reader.pages)
        for page in reader.pages:
            _ = page.mediabox
    except Exception as e:
        return _classify(e, "load")

    if page_count == 0:
        return Degrade(DegradeReason.STRUCTURAL_CORRUPTION, "document has no pages")

    try:
        fields = discover_fields(pdf_bytes)
    except Exception as e:
        return _classify(e, "read form fields of")

    if not fields:
        return Degrade(DegradeReason.NO_FILLABLE_FIELDS, "template has no form fields")

    logger.debug(f"Template has {len(fields)} form fields: {[f'{f.field_name} ({f.field_type})' for f in fields]}")
    return Ok(ParsedTemplate(pdf_bytes=pdf_bytes, page_count=page_count, fields=fields, encrypted=encrypted))
