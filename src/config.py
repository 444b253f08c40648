"""
Configuration for the proposal PDF pipeline.
Values come from the environment, optionally loaded from src/.env.
"""

import json
import os
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")


def _load_aliases(raw: str) -> Dict[str, str]:
    """Parse PDF_TEMPLATE_ALIASES (a JSON object) into a str -> str dict."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"PDF_TEMPLATE_ALIASES is not valid JSON: {e}")
    if not isinstance(parsed, dict):
        raise ValueError("PDF_TEMPLATE_ALIASES must be a JSON object")
    return {str(k): str(v) for k, v in parsed.items()}


# Storage backend selection: "supabase" or "s3"
STORAGE_BACKEND = os.environ.get("PDF_STORAGE_BACKEND", "supabase").lower()

# Supabase
SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_KEY")

# S3 (Heroku Bucketeer naming)
AWS_ACCESS_KEY_ID = os.environ.get("BUCKETEER_AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.environ.get("BUCKETEER_AWS_SECRET_ACCESS_KEY")
AWS_REGION = os.environ.get("BUCKETEER_AWS_REGION", "us-east-1")

# Where templates live when referenced by storage path
TEMPLATE_BUCKET = os.environ.get("PDF_TEMPLATE_BUCKET", "arquivos")
TEMPLATE_PATH_PREFIX = os.environ.get("PDF_TEMPLATE_PATH_PREFIX", "/arquivos/")

# Where generated documents are stored
OUTPUT_BUCKET = os.environ.get("PDF_OUTPUT_BUCKET", "arquivos")
OUTPUT_FOLDER = os.environ.get("PDF_OUTPUT_FOLDER", "propostas")

REQUEST_TIMEOUT = float(os.environ.get("PDF_REQUEST_TIMEOUT", "30"))

# Lifetime of presigned S3 object URLs (SigV4 maximum is 7 days)
S3_URL_EXPIRES_IN = int(os.environ.get("PDF_S3_URL_EXPIRES_IN", "604800"))

# Optional TrueType font for generated documents (the built-in Helvetica is WinAnsi only)
FALLBACK_FONT_PATH = os.environ.get("PDF_FALLBACK_FONT_PATH")
FALLBACK_FONT_BOLD_PATH = os.environ.get("PDF_FALLBACK_FONT_BOLD_PATH")

# Reference fragment -> replacement reference, tried once when a fetch fails
TEMPLATE_ALIASES = _load_aliases(os.environ.get("PDF_TEMPLATE_ALIASES", ""))
