"""
Proposal PDF generation pipeline.

Fills an uploaded PDF template with proposal data and stores the result.
The process:
1. Resolve the template reference and download it (public URL, then direct storage download)
2. Parse it and discover its form fields
3. Fill the text fields and flatten the form
4. Persist the document and return its public URL

Any template that cannot be used (missing, corrupt, no form fields) is
replaced by a document synthesized from the data record, so callers get
a valid PDF whenever storage is reachable.
"""

import re
import time
import uuid
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, List, Mapping, MutableMapping, Optional
from urllib.parse import unquote, urlsplit

import requests
from pydantic import BaseModel, Field
from pypdf import PdfReader

import config
from data_record import DataRecord, normalize_data_record
from errors import (
    FallbackSynthesisFailed,
    InvalidInput,
    PdfPipelineError,
    TemplateFetchFailed,
    UploadFailed,
)
from fallback_pdf import extract_html_title, html_to_text, synthesize_fallback_pdf, synthesize_text_pdf
from field_populator import populate_fields
from log_setup import get_logger
from stage_result import Degrade, DegradeReason, Fail, Ok, StageResult
from storage import PDF_CONTENT_TYPE, StorageBackend, get_storage
from template_parser import parse_template
from template_resolver import HttpTransport, ResolvedTemplate, resolve_template

logger = get_logger("pdf_pipeline")

DEFAULT_FILE_NAME = "documento"


# ============================================================================
# Response Schemas
# ============================================================================

class FillOutcome(BaseModel):
    """Result of a template fill."""
    url: str = Field(description="Public URL of the stored PDF.")
    storage_path: str = Field(description="Object path inside the output bucket.")
    source: str = Field(description="How the document was produced: 'template', 'fallback' or 'simple'.")
    fields_filled: int = Field(default=0, description="Form fields written from the data record.")
    flattened: bool = Field(default=False, description="Whether the form was flattened.")
    degrade_reason: Optional[str] = Field(default=None, description="Why the template path was abandoned, if it was.")


class FormFieldReport(BaseModel):
    """Form fields found in a PDF."""
    has_fields: bool
    total_fields: int = 0
    fields: List[str] = Field(default_factory=list, description="'name (kind)' for each field.")
    error: Optional[str] = None


@dataclass
class GeneratedDocument:
    pdf_bytes: bytes
    source: str
    fields_filled: int = 0
    flattened: bool = False
    degrade_reason: Optional[str] = None


def is_valid_pdf(pdf_bytes: bytes) -> bool:
    """True if the bytes open as a PDF with at least one page."""
    if not pdf_bytes or pdf_bytes.lstrip()[:5] != b"%PDF-":
        return False
    try:
        return len(PdfReader(BytesIO(pdf_bytes), strict=False).pages) > 0
    except Exception as e:
        logger.debug(f"Generated document failed validation: {e}")
        return False


# ============================================================================
# Pipeline
# ============================================================================

class PdfPipeline:
    """
    Template fill pipeline bound to a storage backend and an HTTP transport.

    Holds no per-call state, so one instance can serve concurrent calls.
    Passing a mutable mapping as template_cache keeps downloaded template
    bytes keyed by reference across calls.
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        transport: Optional[HttpTransport] = None,
        output_bucket: str = config.OUTPUT_BUCKET,
        output_folder: str = config.OUTPUT_FOLDER,
        template_aliases: Optional[Mapping[str, str]] = None,
        template_cache: Optional[MutableMapping[str, bytes]] = None,
    ):
        self.storage = storage or get_storage()
        self.transport = transport or HttpTransport()
        self.output_bucket = output_bucket
        self.output_folder = output_folder.strip("/")
        self.template_aliases = dict(config.TEMPLATE_ALIASES if template_aliases is None else template_aliases)
        self.template_cache = template_cache

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def fill_template(self, template_reference: str, data_record: Mapping[str, Any], file_name: str) -> str:
        """
        Fill a PDF template and return the public URL of the stored result.

        Args:
            template_reference: Template URL or storage path
            data_record: Flat mapping of field name to value
            file_name: Base name for the stored document

        Returns:
            Public URL of the stored PDF

        Raises:
            InvalidInput: Blank template reference or nested data record
            UploadFailed: The document could not be stored
            PdfPipelineError: The template path failed and so did the fallback
                (the template-path error is raised)
        """
        return self.fill_template_detailed(template_reference, data_record, file_name).url

    def fill_template_detailed(self, template_reference: str, data_record: Mapping[str, Any], file_name: str) -> FillOutcome:
        """Same as fill_template, returning how the document was produced."""
        if not isinstance(template_reference, str) or not template_reference.strip():
            raise InvalidInput("Template reference is empty")
        record = normalize_data_record(data_record)

        logger.info(f"Filling template {template_reference!r} as {file_name!r} ({len(record)} keys)")
        result = self._run_template_path(template_reference, record)

        if isinstance(result, Ok):
            document = result.value
        elif isinstance(result, Degrade):
            document = self._synthesize(record, degrade_reason=result.reason.value)
        else:
            document = self._last_resort(result.error, record)

        return self._persist(document, file_name)

    def create_fallback_pdf(self, data_record: Mapping[str, Any], file_name: str, title: Optional[str] = None) -> str:
        """Build a document straight from the data record and store it."""
        record = normalize_data_record(data_record)
        document = self._synthesize(record, title=title)
        return self._persist(document, file_name).url

    def create_simple_pdf(self, title: str, content: str, file_name: str) -> str:
        """Build a title + text document and store it."""
        result = self._run_stage("simple", synthesize_text_pdf, title, content)
        if isinstance(result, Fail):
            raise result.error
        pdf_bytes = result.value
        if not is_valid_pdf(pdf_bytes):
            raise FallbackSynthesisFailed("Generated simple PDF is not a valid document")
        return self._persist(GeneratedDocument(pdf_bytes=pdf_bytes, source="simple"), file_name).url

    def generate_pdf_from_html(self, html_content: str, file_name: str) -> str:
        """Store a text rendition of an HTML proposal (title from its first <h1>)."""
        if not html_content or not html_content.strip():
            raise InvalidInput("HTML content is empty")
        return self.create_simple_pdf(extract_html_title(html_content), html_to_text(html_content), file_name)

    def verify_form_fields(self, pdf_url: str) -> FormFieldReport:
        """
        Download a PDF and list its form fields.

        Never raises; failures are reported in FormFieldReport.error.
        """
        if not pdf_url or not pdf_url.strip():
            return FormFieldReport(has_fields=False, error="PDF URL is empty")

        resolved = resolve_template(pdf_url, self.transport, self.storage)
        if isinstance(resolved, Fail):
            return FormFieldReport(has_fields=False, error=str(resolved.error))

        try:
            parsed = parse_template(resolved.value.pdf_bytes)
        except Exception as e:
            logger.exception(f"Unexpected error inspecting {pdf_url}: {e}")
            return FormFieldReport(has_fields=False, error=str(e))

        if isinstance(parsed, Ok):
            fields = [f"{f.field_name} ({f.field_type})" for f in parsed.value.fields]
            return FormFieldReport(has_fields=True, total_fields=len(fields), fields=fields)
        if isinstance(parsed, Degrade):
            if parsed.reason == DegradeReason.NO_FILLABLE_FIELDS:
                return FormFieldReport(has_fields=False)
            return FormFieldReport(has_fields=False, error=f"PDF structure is corrupt: {parsed.detail}")
        return FormFieldReport(has_fields=False, error=str(parsed.error))

    def is_pdf_accessible(self, url: str) -> bool:
        """True if a HEAD request for the URL succeeds."""
        if not url:
            return False
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            return False
        try:
            return bool(self.transport.fetch(url, method="HEAD").ok)
        except requests.RequestException as e:
            logger.warning(f"Could not reach {url}: {e}")
            return False

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run_stage(self, stage: str, func: Callable[..., Any], *args, bytes_in: Optional[int] = None) -> StageResult:
        """Run one stage, tag its outcome and log the transition."""
        started = time.monotonic()
        try:
            result = func(*args)
            if not isinstance(result, (Ok, Degrade, Fail)):
                result = Ok(result)
        except Exception as e:
            result = Fail(e)
        elapsed_ms = (time.monotonic() - started) * 1000

        message = f"stage={stage} outcome={result.tag} elapsed_ms={elapsed_ms:.1f}"
        if bytes_in is not None:
            message += f" bytes_in={bytes_in}"
        if isinstance(result, Ok):
            value = result.value
            pdf_bytes = value if isinstance(value, bytes) else getattr(value, "pdf_bytes", None)
            if pdf_bytes is not None:
                message += f" bytes_out={len(pdf_bytes)}"
        elif isinstance(result, Degrade):
            message += f" detail={result.detail!r}"
        else:
            message += f" error={str(result.error)!r}"

        if isinstance(result, Fail):
            logger.warning(message)
        else:
            logger.info(message)
        return result

    def _alias_for(self, reference: str) -> Optional[str]:
        decoded = unquote(reference)
        for fragment, replacement in self.template_aliases.items():
            if fragment in reference or fragment in decoded:
                return replacement
        return None

    def _resolve(self, reference: str) -> StageResult:
        if self.template_cache is not None and reference in self.template_cache:
            logger.debug(f"Template cache hit for {reference!r}")
            return Ok(ResolvedTemplate(url=reference, pdf_bytes=self.template_cache[reference], source="cache"))

        result = resolve_template(reference, self.transport, self.storage)

        if isinstance(result, Fail) and isinstance(result.error, TemplateFetchFailed):
            alias = self._alias_for(reference)
            if alias and alias != reference:
                logger.warning(f"Template fetch failed, retrying once with configured alias {alias!r}")
                retry = resolve_template(alias, self.transport, self.storage)
                if isinstance(retry, Ok):
                    result = retry

        if isinstance(result, Ok) and self.template_cache is not None:
            self.template_cache[reference] = result.value.pdf_bytes
        return result

    def _validate_filled(self, pdf_bytes: bytes) -> StageResult:
        if is_valid_pdf(pdf_bytes):
            return Ok(pdf_bytes)
        return Fail(PdfPipelineError("Filled template is not a valid PDF"))

    def _run_template_path(self, reference: str, record: DataRecord) -> StageResult:
        """Resolve -> parse -> populate -> validate, stopping at the first non-Ok outcome."""
        resolved = self._run_stage("resolve", self._resolve, reference)
        if not isinstance(resolved, Ok):
            return resolved

        template_bytes = resolved.value.pdf_bytes
        parsed = self._run_stage("parse", parse_template, template_bytes, bytes_in=len(template_bytes))
        if not isinstance(parsed, Ok):
            return parsed

        populated = self._run_stage("populate", populate_fields, parsed.value, record, bytes_in=len(template_bytes))
        if not isinstance(populated, Ok):
            return populated
        filled = populated.value

        validated = self._run_stage("validate", self._validate_filled, filled.pdf_bytes)
        if not isinstance(validated, Ok):
            return validated

        logger.info(
            f"Filled {filled.fields_filled} of {len(record)} keys "
            f"({len(filled.unmatched_keys)} without a matching field, flattened={filled.flattened})"
        )
        return Ok(GeneratedDocument(
            pdf_bytes=filled.pdf_bytes,
            source="template",
            fields_filled=filled.fields_filled,
            flattened=filled.flattened
        ))

    def _synthesize(self, record: DataRecord, title: Optional[str] = None, degrade_reason: Optional[str] = None) -> GeneratedDocument:
        """
        Raises:
            FallbackSynthesisFailed: If the fallback document could not be built
        """
        result = self._run_stage("fallback", synthesize_fallback_pdf, record, title)
        if isinstance(result, Fail):
            error = result.error
            if isinstance(error, FallbackSynthesisFailed):
                raise error
            raise FallbackSynthesisFailed(f"Failed to create fallback PDF: {error}") from error

        pdf_bytes = result.value
        if not is_valid_pdf(pdf_bytes):
            raise FallbackSynthesisFailed("Generated fallback PDF is not a valid document")
        return GeneratedDocument(pdf_bytes=pdf_bytes, source="fallback", degrade_reason=degrade_reason)

    def _last_resort(self, error: Exception, record: DataRecord) -> GeneratedDocument:
        """Fallback after a template-path error; re-raises that error if the fallback fails too."""
        logger.warning(f"Template path failed ({type(error).__name__}: {error}), generating fallback document")
        try:
            return self._synthesize(record, degrade_reason=f"error:{type(error).__name__}")
        except FallbackSynthesisFailed as fallback_error:
            logger.error(f"Fallback document also failed: {fallback_error}")
            raise error

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _storage_path(self, file_name: str, source: str) -> str:
        safe_name = re.sub(r"\s+", "_", (file_name or "").strip())
        safe_name = re.sub(r"[\\/]+", "_", safe_name) or DEFAULT_FILE_NAME
        marker = "_fallback" if source == "fallback" else ""
        return f"{self.output_folder}/{safe_name}{marker}_{uuid.uuid4()}.pdf"

    def _persist(self, document: GeneratedDocument, file_name: str) -> FillOutcome:
        """
        Upload a document under a unique name and return its public URL.

        Raises:
            UploadFailed: If the upload or the public URL lookup fails
        """
        path = self._storage_path(file_name, document.source)
        started = time.monotonic()
        try:
            self.storage.upload_object(self.output_bucket, path, document.pdf_bytes, PDF_CONTENT_TYPE)
            url = self.storage.get_public_url(self.output_bucket, path)
        except Exception as e:
            logger.error(f"stage=persist outcome=fail:UploadFailed path={path} error={e}")
            raise UploadFailed(f"Failed to upload PDF to {self.output_bucket}/{path}: {e}") from e

        if not url:
            raise UploadFailed(f"Could not get the public URL for {self.output_bucket}/{path}")

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"stage=persist outcome=ok elapsed_ms={elapsed_ms:.1f} "
            f"bytes_in={len(document.pdf_bytes)} source={document.source} path={path}"
        )
        return FillOutcome(
            url=url,
            storage_path=path,
            source=document.source,
            fields_filled=document.fields_filled,
            flattened=document.flattened,
            degrade_reason=document.degrade_reason
        )


# ============================================================================
# Module-level entry points
# ============================================================================

_default_pipeline: Optional[PdfPipeline] = None


def get_pipeline() -> PdfPipeline:
    """Get or create the pipeline bound to the configured storage backend."""
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = PdfPipeline()
    return _default_pipeline


def fill_template(template_reference: str, data_record: Mapping[str, Any], file_name: str) -> str:
    """Fill a template with the default pipeline and return the stored PDF's URL."""
    return get_pipeline().fill_template(template_reference, data_record, file_name)
