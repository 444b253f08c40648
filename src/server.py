"""
Flask API Server for proposal PDF generation.

Endpoints:
- POST /api/pdf/fill - Fill a PDF template with a data record
- POST /api/pdf/fallback - Generate a proposal document straight from a data record
- POST /api/pdf/simple - Generate a title + text document
- POST /api/pdf/html - Generate a document from proposal HTML
- POST /api/pdf/fields - List the form fields of a PDF
"""

from datetime import datetime
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from pydantic import BaseModel, Field, ValidationError

from errors import InvalidInput, PdfPipelineError, UploadFailed
from log_setup import get_logger
from pdf_pipeline import get_pipeline

logger = get_logger("server")

# Initialize Flask app
app = Flask(__name__)
CORS(app)  # Enable CORS for all routes


# ============================================================================
# Request Schemas
# ============================================================================

class FillRequest(BaseModel):
    template_reference: str = Field(description="Template URL or storage path.")
    data: Dict[str, Any] = Field(description="Flat data record.")
    file_name: str = Field(description="Base name for the stored document.")


class FallbackRequest(BaseModel):
    data: Dict[str, Any]
    file_name: str
    title: Optional[str] = None


class SimpleRequest(BaseModel):
    title: str
    content: str
    file_name: str


class HtmlRequest(BaseModel):
    html: str
    file_name: str


class FieldsRequest(BaseModel):
    url: str


def _error(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def _parse_body(schema):
    """
    Validate the JSON body against a request schema.

    Returns:
        Tuple of (parsed request, None) or (None, error response)
    """
    data = request.get_json(silent=True)
    if not data:
        return None, _error("Request body must be JSON", 400)
    try:
        return schema.model_validate(data), None
    except ValidationError as e:
        return None, _error(f"Invalid request: {e}", 400)


def _pipeline_error(e: PdfPipelineError):
    if isinstance(e, InvalidInput):
        return _error(e.message, 400)
    if isinstance(e, UploadFailed):
        return _error(f"Upload failed: {e.message}", 502)
    return _error(e.message, 502)


# ============================================================================
# API Endpoints
# ============================================================================

@app.route("/api/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "proposta-pdf-api",
        "timestamp": datetime.now().isoformat()
    })


@app.route("/api/pdf/fill", methods=["POST"])
def fill_template_endpoint():
    """
    Fill a PDF template and store the result.

    Request body:
    {
        "template_reference": "https://.../modelo.pdf" or "/arquivos/modelos/modelo.pdf",
        "data": {"nome": "Ana", "cpf": "111.222.333-44", "dependente1_nome": "Bia"},
        "file_name": "proposta_ana"
    }

    Response:
    {
        "success": true,
        "url": "https://.../propostas/proposta_ana_<uuid>.pdf",
        "storage_path": "propostas/proposta_ana_<uuid>.pdf",
        "source": "template",
        "fields_filled": 2,
        "flattened": true,
        "degrade_reason": null
    }
    """
    fill_request, error = _parse_body(FillRequest)
    if error:
        return error

    logger.info(f"Fill request: template={fill_request.template_reference!r}, "
                f"file_name={fill_request.file_name!r}, keys={len(fill_request.data)}")
    try:
        outcome = get_pipeline().fill_template_detailed(
            fill_request.template_reference,
            fill_request.data,
            fill_request.file_name
        )
    except PdfPipelineError as e:
        logger.error(f"Fill failed: {type(e).__name__}: {e}")
        return _pipeline_error(e)
    except Exception as e:
        logger.exception(f"Failed to fill template: {e}")
        return _error(str(e), 500)

    return jsonify({"success": True, **outcome.model_dump()})


@app.route("/api/pdf/fallback", methods=["POST"])
def fallback_endpoint():
    """Generate a proposal document from the data record alone."""
    fallback_request, error = _parse_body(FallbackRequest)
    if error:
        return error
    try:
        url = get_pipeline().create_fallback_pdf(
            fallback_request.data,
            fallback_request.file_name,
            title=fallback_request.title
        )
    except PdfPipelineError as e:
        return _pipeline_error(e)
    except Exception as e:
        logger.exception(f"Failed to create fallback PDF: {e}")
        return _error(str(e), 500)
    return jsonify({"success": True, "url": url})


@app.route("/api/pdf/simple", methods=["POST"])
def simple_endpoint():
    simple_request, error = _parse_body(SimpleRequest)
    if error:
        return error
    try:
        url = get_pipeline().create_simple_pdf(simple_request.title, simple_request.content, simple_request.file_name)
    except PdfPipelineError as e:
        return _pipeline_error(e)
    except Exception as e:
        logger.exception(f"Failed to create simple PDF: {e}")
        return _error(str(e), 500)
    return jsonify({"success": True, "url": url})


@app.route("/api/pdf/html", methods=["POST"])
def html_endpoint():
    html_request, error = _parse_body(HtmlRequest)
    if error:
        return error
    try:
        url = get_pipeline().generate_pdf_from_html(html_request.html, html_request.file_name)
    except PdfPipelineError as e:
        return _pipeline_error(e)
    except Exception as e:
        logger.exception(f"Failed to generate PDF from HTML: {e}")
        return _error(str(e), 500)
    return jsonify({"success": True, "url": url})


@app.route("/api/pdf/fields", methods=["POST"])
def fields_endpoint():
    """List the form fields of a PDF. Inspection errors are reported in the body."""
    fields_request, error = _parse_body(FieldsRequest)
    if error:
        return error
    report = get_pipeline().verify_form_fields(fields_request.url)
    return jsonify(report.model_dump())


# ============================================================================
# Error Handlers
# ============================================================================

@app.errorhandler(404)
def not_found(e):
    return jsonify({"success": False, "error": "Endpoint not found"}), 404


@app.errorhandler(500)
def server_error(e):
    return jsonify({"success": False, "error": "Internal server error"}), 500


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import os
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "false").lower() == "true"

    logger.info(f"Starting server on port {port}")
    app.run(host="0.0.0.0", port=port, debug=debug)
