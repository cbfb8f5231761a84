"""
HTTP Microservice
=================
Flask-based HTTP API for the certificate extraction engine.

The portal front-end calls this service instead of parsing in the browser,
so OCR and caching happen server-side.

Endpoints:
    POST   /api/extract      → Extract students from an uploaded or stored file
    POST   /api/parse-text   → Extract students from already-extracted text
    GET    /api/health       → Health check
    GET    /api/info         → Parser version info
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.utils import secure_filename

from . import __version__
from . import database as db
from .engine import ExtractionConfig, ExtractionEngine
from .text_source import (
    SUPPORTED_EXTENSIONS,
    TextExtractionError,
    UnsupportedFileError,
    is_supported,
)

logger = logging.getLogger(__name__)

_pkg_dir = Path(__file__).parent
app = Flask(__name__)
CORS(app)

SNIPPET_CHARS = 100
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB


def create_app(config: dict = None) -> Flask:
    """Create and configure the Flask app."""
    if config:
        app.config.update(config)

    # Project root is one level up from the /award_parser/ package dir
    project_root = _pkg_dir.parent.absolute()

    app.config.setdefault("UPLOAD_DIR", str(project_root / "uploads"))
    app.config.setdefault("DB_PATH", db.get_db_path())
    app.config.setdefault("USE_CACHE", True)
    app.config.setdefault("OCR_ENABLED", True)
    # Flask defaults MAX_CONTENT_LENGTH to None
    if not app.config.get("MAX_CONTENT_LENGTH"):
        app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES

    Path(app.config["UPLOAD_DIR"]).mkdir(parents=True, exist_ok=True)

    if app.config["USE_CACHE"]:
        db.init_db(app.config["DB_PATH"])

    return app


def _make_engine() -> ExtractionEngine:
    return ExtractionEngine(ExtractionConfig(
        use_cache=app.config.get("USE_CACHE", True),
        db_path=app.config.get("DB_PATH"),
        ocr_enabled=app.config.get("OCR_ENABLED", True),
        log_level=app.config.get("LOG_LEVEL", "INFO"),
    ))


# ─── Health Check ─────────────────────────────────────────────────────────────


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "award-parser",
        "version": __version__,
    })


@app.route("/api/info", methods=["GET"])
def info():
    """Parser version and capability info."""
    return jsonify({
        "version": __version__,
        "engine": "PyMuPDF",
        "fallback": "tesseract",
        "capabilities": [
            "text_extraction",
            "ocr_fallback",
            "student_segmentation",
            "grade_extraction",
            "result_caching",
        ],
        "supported_formats": sorted(ext.lstrip(".") for ext in SUPPORTED_EXTENSIONS),
    })


# ─── Extraction Endpoints ─────────────────────────────────────────────────────


@app.route("/api/extract", methods=["POST"])
def extract_file():
    """
    Extract students from a certificate file.

    Accepts either:
        - A file upload (multipart/form-data, field "file")
        - A JSON body with filePath relative to the upload directory
    """
    upload_dir = Path(app.config["UPLOAD_DIR"]).resolve()

    if "file" in request.files:
        file = request.files["file"]
        if not file.filename:
            return jsonify({"error": "No file selected"}), 400

        filename = secure_filename(file.filename) or "upload"
        if not is_supported(filename):
            return jsonify({"error": f"Unsupported file type: {filename}"}), 415

        file_key = filename
        file_name = filename
        path = upload_dir / f"{uuid.uuid4().hex}_{filename}"
        file.save(str(path))
        temp_path = str(path)

    elif request.is_json:
        data = request.get_json(silent=True) or {}
        file_path = data.get("filePath")
        if not file_path:
            return jsonify({"error": "filePath is required"}), 400

        path = (upload_dir / file_path).resolve()
        if not path.is_relative_to(upload_dir) or not path.is_file():
            logger.error(f"File not found: {file_path}")
            return jsonify({"error": "File not found in storage"}), 404
        if not is_supported(str(path)):
            return jsonify({"error": f"Unsupported file type: {file_path}"}), 415

        file_key = file_path
        file_name = None
        temp_path = None

    else:
        return jsonify({
            "error": "Provide a file upload or JSON with filePath"
        }), 400

    logger.info(f"Extracting for: {file_key}")

    try:
        result = _make_engine().extract(
            str(path), file_key=file_key, file_name=file_name
        )
    except UnsupportedFileError as e:
        return jsonify({"error": str(e)}), 415
    except TextExtractionError as e:
        logger.error(f"Text extraction failed for {file_key}: {e}")
        return jsonify({
            "error": "Text extraction failed",
            "details": str(e),
        }), 500
    except Exception as e:
        logger.exception(f"Fatal error extracting {file_key}")
        return jsonify({
            "error": "Internal Server Error",
            "details": str(e),
        }), 500
    finally:
        # Uploads are temporary; stored files stay where they are
        if temp_path and os.path.exists(temp_path):
            os.unlink(temp_path)

    if result.students:
        logger.info(f"Candidate found: {result.students[0].candidate_name}")
    else:
        logger.info("No candidates found in text")

    snippet = ""
    if result.students and result.students[0].raw_text:
        snippet = result.students[0].raw_text[:SNIPPET_CHARS]

    return jsonify({
        "success": True,
        "students": [
            s.model_dump(by_alias=True, mode="json") for s in result.students
        ],
        "fileName": result.file_name,
        "method": result.method.value,
        "cached": result.cached,
        "updatedAt": result.updated_at,
        "debug": {"length": result.text_length, "snippet": snippet},
    }), 200


@app.route("/api/parse-text", methods=["POST"])
def parse_text():
    """Extract students from raw text supplied by the caller."""
    data = request.get_json(silent=True) or {}
    text = data.get("text")
    if not isinstance(text, str):
        return jsonify({"error": "text is required"}), 400

    students = _make_engine().extract_text(text)
    return jsonify({
        "success": True,
        "students": [s.model_dump(by_alias=True, mode="json") for s in students],
        "debug": {"length": len(text), "snippet": text[:SNIPPET_CHARS]},
    }), 200


# ─── Server Runner ────────────────────────────────────────────────────────────


def run_server(
    host: str = "0.0.0.0",
    port: int = 5000,
    debug: bool = False,
):
    """Start the microservice server."""
    create_app()
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    run_server(debug=True)
