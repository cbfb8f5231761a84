"""
Extraction Engine
=================
Orchestrator that combines the results cache, text acquisition and the
parsing pipeline into one call per certificate file.

Usage:
    engine = ExtractionEngine(config)
    result = engine.extract("path/to/RESULTS.pdf")
    # result is an ExtractionResult with the parsed students

Architecture:
    file → cache lookup ─hit→ ExtractionResult (cached)
                        └miss→ TextExtractor → extract_students →
                               best-effort cache write → ExtractionResult
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from . import database as db
from .models import ExtractionResult, StudentResult
from .pipeline import extract_students
from .text_source import TextExtractor

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Failures the cache is allowed to have without affecting the result
CACHE_ERRORS = (sqlite3.Error, OSError, ValueError, ValidationError)


@dataclass
class ExtractionConfig:
    """Configuration for the extraction engine."""

    # Cache
    use_cache: bool = True
    db_path: Optional[str] = None

    # Text acquisition
    min_text_length: int = 100
    ocr_enabled: bool = True
    ocr_dpi: int = 300
    ocr_lang: str = "eng"

    # Output
    include_raw_text: bool = True

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    verbose: bool = False


class ExtractionEngine:
    """
    Main certificate extraction engine.

    Orchestrates the full flow for one file:
        1. Cache lookup (best effort)
        2. Text extraction (text layer, OCR fallback)
        3. Parsing into StudentResult records
        4. Cache write (best effort)

    Thread-safe for parallel file processing.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()
        self.text_extractor = TextExtractor(
            min_text_length=self.config.min_text_length,
            ocr_enabled=self.config.ocr_enabled,
            ocr_dpi=self.config.ocr_dpi,
            ocr_lang=self.config.ocr_lang,
        )
        self._setup_logging()
        self._cache_ready = False

    def _setup_logging(self):
        """Configure logging based on config."""
        level_name = "DEBUG" if self.config.verbose else self.config.log_level
        log_level = getattr(logging, level_name.upper(), logging.INFO)

        # Configure root logger for the award_parser package
        package_logger = logging.getLogger("award_parser")
        package_logger.setLevel(log_level)

        # Console handler
        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(console)

        # File handler
        if self.config.log_file:
            log_dir = Path(self.config.log_file).parent
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(
                self.config.log_file, encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            package_logger.addHandler(file_handler)

    # ─── Public API ───────────────────────────────────────────────────────────

    def extract(
        self,
        path: str,
        file_key: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract all students from a certificate file.

        Args:
            path: Path to a PDF, image or text file.
            file_key: Cache identifier; defaults to the sanitized file name.
            file_name: Name to report for the file; defaults to its basename.

        Returns:
            ExtractionResult with zero or more students.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            TextExtractionError: If no text can be obtained from the file.
        """
        path = os.path.abspath(path)
        if not os.path.exists(path):
            raise FileNotFoundError(f"File not found: {path}")

        start_time = time.time()
        file_name = file_name or os.path.basename(path)
        key = db.make_file_key(file_key or file_name)
        file_hash = self._compute_file_hash(path)

        # ── Step 1: Cache lookup ──────────────────────────────────────
        cached = self._lookup_cache(key, file_hash)
        if cached is not None:
            logger.info(
                f"Cache hit for {file_name}: {len(cached.students)} student(s)"
            )
            return cached

        # ── Step 2: Text extraction ───────────────────────────────────
        logger.info(f"Extracting text from: {file_name}")
        extracted = self.text_extractor.extract(path)
        if not extracted.text.strip():
            logger.warning(f"{file_name} has no text layer and no OCR text")

        # ── Step 3: Parse ─────────────────────────────────────────────
        students = extract_students(
            extracted.text,
            include_raw_text=self.config.include_raw_text,
        )

        result = ExtractionResult(
            file_name=file_name,
            file_key=key,
            method=extracted.method,
            text_length=len(extracted.text),
            students=students,
        )

        elapsed = time.time() - start_time
        logger.info(
            f"Parsed {file_name} in {elapsed:.2f}s via {extracted.method.value}: "
            f"{len(students)} student(s)"
        )

        # ── Step 4: Cache write ───────────────────────────────────────
        self._store_cache(result, file_hash)

        return result

    def extract_text(self, raw_text: str) -> list[StudentResult]:
        """Parse already-extracted text. Never touches the cache."""
        return extract_students(
            raw_text,
            include_raw_text=self.config.include_raw_text,
        )

    # ─── Cache Helpers ────────────────────────────────────────────────────────

    def _ensure_cache(self):
        if not self._cache_ready:
            db.init_db(self.config.db_path)
            self._cache_ready = True

    def _lookup_cache(
        self, key: str, file_hash: str
    ) -> Optional[ExtractionResult]:
        if not self.config.use_cache:
            return None
        try:
            self._ensure_cache()
            return db.get_cached_results(
                key, file_hash=file_hash, db_path=self.config.db_path
            )
        except CACHE_ERRORS as e:
            logger.warning(f"Cache lookup failed for {key}: {e}")
            return None

    def _store_cache(self, result: ExtractionResult, file_hash: str):
        if not self.config.use_cache:
            return
        try:
            self._ensure_cache()
            db.save_cached_results(
                result, file_hash=file_hash, db_path=self.config.db_path
            )
        except CACHE_ERRORS as e:
            logger.warning(f"Cache write failed for {result.file_key}: {e}")

    def _compute_file_hash(self, filepath: str) -> str:
        """Compute SHA-256 hash of a file."""
        sha256 = hashlib.sha256()
        with open(filepath, "rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                sha256.update(chunk)
        return sha256.hexdigest()


def result_to_json(result: ExtractionResult) -> str:
    """Serialize an ExtractionResult the way the CLI and service emit it."""
    return json.dumps(
        result.model_dump(by_alias=True, mode="json"),
        indent=2,
        ensure_ascii=False,
        default=str,
    )
