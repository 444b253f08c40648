"""
Error types raised by the proposal PDF pipeline.
"""

from typing import Optional

BODY_SNIPPET_LIMIT = 500


class PdfPipelineError(Exception):
    """Base class for every error the pipeline surfaces to its caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(PdfPipelineError):
    """Blank template reference or a data record that is not flat."""


class UnresolvableReference(PdfPipelineError):
    """A storage path could not be turned into a public URL."""


class TemplateFetchFailed(PdfPipelineError):
    """Every retrieval strategy for the template failed."""

    def __init__(self, message: str, status: Optional[int] = None, body_snippet: Optional[str] = None):
        if body_snippet:
            body_snippet = body_snippet[:BODY_SNIPPET_LIMIT]
        details = []
        if status is not None:
            details.append(f"HTTP {status}")
        if body_snippet:
            details.append(f"body: {body_snippet}")
        full_message = f"{message} ({'; '.join(details)})" if details else message
        super().__init__(full_message)
        self.status = status
        self.body_snippet = body_snippet


class TemplateParseFailed(PdfPipelineError):
    """The template bytes could not be parsed for a reason other than known corruption."""


class FallbackSynthesisFailed(PdfPipelineError):
    """The fallback document generator itself failed."""


class UploadFailed(PdfPipelineError):
    """A generated document could not be stored or its public URL obtained."""


class StorageError(Exception):
    """Raised by storage backends when the provider reports a failure."""
