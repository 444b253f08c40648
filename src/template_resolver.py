"""
Template reference resolution and download.

A template reference may be a full URL, a storage-relative path
("/arquivos/modelos/Proposta.pdf") or a URL with odd encoding or duplicated
slashes. This module turns it into a fetchable URL and downloads the bytes,
falling back to a direct storage download when the public URL fails.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import requests

import config
from errors import StorageError, TemplateFetchFailed, UnresolvableReference
from log_setup import get_logger
from stage_result import Fail, Ok, StageResult
from storage import StorageBackend

logger = get_logger("template_resolver")

TEMPLATE_REQUEST_HEADERS = {
    "Accept": "application/pdf,*/*",
    "Cache-Control": "no-cache",
}

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_DUPLICATE_SLASHES_RE = re.compile(r"([^:])/{2,}")

# Known "public object" URL shapes: (bucket, object path)
PUBLIC_OBJECT_PATTERNS = [
    # Supabase: https://<ref>.supabase.co/storage/v1/object/public/<bucket>/<path>
    re.compile(r"/storage/v1/object/public/([^/?#]+)/([^?#]+)"),
    # S3 virtual-hosted: https://<bucket>.s3.<region>.amazonaws.com/<path>
    re.compile(r"^https?://([^./]+)\.s3[.-](?:[a-z0-9-]+\.)?amazonaws\.com/([^?#]+)", re.IGNORECASE),
]


@dataclass
class ResolvedTemplate:
    """Template bytes plus where they came from."""
    url: str
    pdf_bytes: bytes
    source: str  # "http" or "storage"


# ============================================================================
# Transport
# ============================================================================

class HttpTransport:
    """Thin wrapper over a requests session; the timeout belongs to the transport."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = config.REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, url: str, method: str = "GET", headers: Optional[Dict[str, str]] = None) -> requests.Response:
        return self.session.request(method, url, headers=headers, timeout=self.timeout, allow_redirects=True)


# ============================================================================
# Reference normalization
# ============================================================================

def has_url_scheme(reference: str) -> bool:
    return bool(_SCHEME_RE.match(reference))


def collapse_duplicate_slashes(reference: str) -> str:
    """Collapse repeated slashes in the path, leaving "scheme://" alone."""
    return _DUPLICATE_SLASHES_RE.sub(r"\1/", reference)


def ensure_scheme(url: str) -> str:
    if not has_url_scheme(url):
        return f"https://{url.lstrip('/')}"
    return url


def encode_url_path(url: str) -> str:
    """
    Percent-encode each path segment of a URL.

    URLs that already contain a '%' are assumed to be encoded and returned
    unchanged so they are not encoded twice.
    """
    if "%" in url:
        return url
    parts = urlsplit(url)
    encoded_path = "/".join(
        quote(segment, safe="!'()*") if segment else ""
        for segment in parts.path.split("/")
    )
    return urlunsplit((parts.scheme, parts.netloc, encoded_path, parts.query, parts.fragment))


def storage_path_from_reference(reference: str, prefix: str = config.TEMPLATE_PATH_PREFIX) -> str:
    """Strip the known leading storage segment from a storage-relative reference."""
    if prefix and reference.startswith(prefix):
        reference = reference[len(prefix):]
    return reference.lstrip("/")


def normalize_reference(
    reference: str,
    storage: StorageBackend,
    bucket: str = config.TEMPLATE_BUCKET,
    prefix: str = config.TEMPLATE_PATH_PREFIX,
) -> str:
    """
    Turn a template reference into a fetchable, encoded URL.

    Args:
        reference: URL or storage-relative path
        storage: Storage backend used to resolve storage paths
        bucket: Bucket holding storage-relative templates
        prefix: Leading path segment stripped from storage paths

    Returns:
        Absolute URL with an encoded path

    Raises:
        UnresolvableReference: If the storage backend has no public URL for the path
    """
    processed = collapse_duplicate_slashes(reference.strip())

    if not has_url_scheme(processed):
        storage_path = storage_path_from_reference(processed, prefix)
        try:
            public_url = storage.get_public_url(bucket, storage_path)
        except StorageError as e:
            raise UnresolvableReference(f"Could not get a public URL for storage path '{storage_path}': {e}") from e
        if not public_url:
            raise UnresolvableReference(f"Could not get a public URL for storage path '{storage_path}'")
        logger.debug(f"Storage path '{storage_path}' resolved to {public_url}")
        processed = public_url

    return encode_url_path(ensure_scheme(processed))


def parse_public_object_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Extract (bucket, object path) from a known public-object URL shape.

    Returns:
        Tuple of (bucket, decoded object path), or None if the URL has another shape
    """
    for pattern in PUBLIC_OBJECT_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1), unquote(match.group(2))
    return None


# ============================================================================
# Download
# ============================================================================

def _read_error_body(response) -> Optional[str]:
    try:
        return response.text
    except Exception as e:
        logger.debug(f"Could not read error response body: {e}")
        return None


def _download_from_storage(url: str, storage: StorageBackend, status: int, body: Optional[str]) -> Optional[bytes]:
    object_ref = parse_public_object_url(url)
    if not object_ref:
        return None

    bucket, path = object_ref
    logger.warning(f"Template URL returned HTTP {status}, trying direct download of {bucket}/{path}")
    try:
        data = storage.download_object(bucket, path)
    except StorageError as e:
        raise TemplateFetchFailed(
            f"Failed to download template from {url}; direct storage download failed: {e}",
            status=status,
            body_snippet=body
        ) from e
    if not data:
        raise TemplateFetchFailed(
            f"Failed to download template from {url}; direct storage download returned an empty object",
            status=status,
            body_snippet=body
        )
    return data


def fetch_template(url: str, transport: HttpTransport, storage: StorageBackend) -> Tuple[bytes, str]:
    """
    Download template bytes.

    Returns:
        Tuple of (bytes, source) where source is "http" or "storage"

    Raises:
        TemplateFetchFailed: If no strategy produced a non-empty body
    """
    try:
        response = transport.fetch(url, method="GET", headers=TEMPLATE_REQUEST_HEADERS)
    except requests.RequestException as e:
        raise TemplateFetchFailed(f"Network error downloading template from {url}: {e}") from e

    if not response.ok:
        body = _read_error_body(response)
        data = _download_from_storage(url, storage, response.status_code, body)
        if data is not None:
            return data, "storage"
        raise TemplateFetchFailed(
            f"Failed to download template from {url}",
            status=response.status_code,
            body_snippet=body
        )

    content_type = response.headers.get("content-type", "")
    if content_type and "application/pdf" not in content_type and "octet-stream" not in content_type:
        logger.warning(f"Unexpected template content type: {content_type}")

    data = response.content
    if not data:
        raise TemplateFetchFailed(f"Template download from {url} returned an empty body", status=response.status_code)
    return data, "http"


def resolve_template(reference: str, transport: HttpTransport, storage: StorageBackend) -> StageResult:
    """
    Resolve a template reference and download it.

    Returns:
        Ok(ResolvedTemplate) or Fail(UnresolvableReference | TemplateFetchFailed)
    """
    try:
        url = normalize_reference(reference, storage)
        pdf_bytes, source = fetch_template(url, transport, storage)
    except (UnresolvableReference, TemplateFetchFailed) as e:
        return Fail(e)
    return Ok(ResolvedTemplate(url=url, pdf_bytes=pdf_bytes, source=source))
