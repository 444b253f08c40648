"""
Shared fixtures: in-memory storage, a scripted HTTP transport and
reportlab-built template PDFs.
"""

from io import BytesIO
from typing import Dict, List, Optional, Tuple, Union

import pytest
import requests
from pypdf import PdfReader
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from errors import StorageError
from pdf_pipeline import PdfPipeline
from storage import StorageBackend


# ============================================================================
# Fakes
# ============================================================================

class FakeStorage(StorageBackend):
    """Dict-backed storage that records uploads."""

    def __init__(self):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.uploads: List[Tuple[str, str, bytes, str]] = []
        self.fail_uploads = False
        self.public_urls_available = True

    def get_public_url(self, bucket: str, path: str) -> Optional[str]:
        if not self.public_urls_available:
            return None
        return f"https://storage.test/{bucket}/{path}"

    def download_object(self, bucket: str, path: str) -> bytes:
        if (bucket, path) not in self.objects:
            raise StorageError(f"Object not found: {bucket}/{path}")
        return self.objects[(bucket, path)]

    def upload_object(self, bucket: str, path: str, data: bytes, content_type: str = "application/pdf") -> None:
        if self.fail_uploads:
            raise StorageError("bucket is read-only")
        self.objects[(bucket, path)] = data
        self.uploads.append((bucket, path, data, content_type))

    @property
    def last_upload(self) -> bytes:
        return self.uploads[-1][2]


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", headers: Optional[Dict[str, str]] = None, text: str = ""):
        self.status_code = status_code
        self.content = content
        self.headers = headers if headers is not None else {"content-type": "application/pdf"}
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400


class FakeTransport:
    """
    Responds from a url -> response (or exception) script.

    Unscripted URLs behave like an unreachable host.
    """

    def __init__(self, routes: Optional[Dict[str, Union[FakeResponse, Exception]]] = None):
        self.routes = dict(routes or {})
        self.calls: List[Tuple[str, str]] = []

    def add(self, url: str, response: Union[FakeResponse, Exception]) -> None:
        self.routes[url] = response

    def fetch(self, url: str, method: str = "GET", headers: Optional[Dict[str, str]] = None):
        self.calls.append((method, url))
        response = self.routes.get(url)
        if response is None:
            raise requests.ConnectionError(f"Failed to resolve host for {url}")
        if isinstance(response, Exception):
            raise response
        return response


def pdf_response(pdf_bytes: bytes) -> FakeResponse:
    return FakeResponse(200, pdf_bytes)


# ============================================================================
# Template builders
# ============================================================================

def make_form_pdf(field_names: List[str]) -> bytes:
    """One-page PDF with an AcroForm text field per name."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.drawString(50, 800, "Proposta")
    y = 750
    for name in field_names:
        c.drawString(50, y + 5, f"{name}:")
        c.acroForm.textfield(name=name, x=150, y=y, width=300, height=20)
        y -= 40
    c.showPage()
    c.save()
    return buffer.getvalue()


def make_plain_pdf(text: str = "Modelo sem campos") -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.drawString(50, 800, text)
    c.showPage()
    c.save()
    return buffer.getvalue()


# ============================================================================
# Inspection helpers
# ============================================================================

def page_count(pdf_bytes: bytes) -> int:
    return len(PdfReader(BytesIO(pdf_bytes)).pages)


def document_text(pdf_bytes: bytes) -> str:
    """Page text plus any remaining form field values."""
    reader = PdfReader(BytesIO(pdf_bytes))
    parts = [page.extract_text() or "" for page in reader.pages]
    fields = reader.get_fields() or {}
    for field in fields.values():
        value = field.get("/V")
        if value is not None:
            parts.append(str(value))
    return "\n".join(parts)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def pipeline(storage, transport):
    return PdfPipeline(storage=storage, transport=transport, template_aliases={})


@pytest.fixture
def form_pdf():
    return make_form_pdf(["nome", "cpf"])


@pytest.fixture
def plain_pdf():
    return make_plain_pdf()
