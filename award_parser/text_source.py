"""
Text Source
===========
Pulls raw text out of uploaded certificate files.

Strategies:
    - PDF with a usable text layer → PyMuPDF (fitz) text extraction
    - PDF whose text layer is sparse or missing → render pages, Tesseract OCR
    - Image files → Tesseract OCR
    - Plain text files → read as-is

The parser does not care which strategy produced the text; the method is
only reported for diagnostics and stored alongside cached results.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF
import pytesseract
from PIL import Image

from .models import ExtractedText, ExtractionMethod

logger = logging.getLogger(__name__)

PDF_EXTENSIONS = {".pdf"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"}
TEXT_EXTENSIONS = {".txt"}
SUPPORTED_EXTENSIONS = PDF_EXTENSIONS | IMAGE_EXTENSIONS | TEXT_EXTENSIONS


class TextExtractionError(RuntimeError):
    """Raised when a file cannot be turned into text."""


class UnsupportedFileError(TextExtractionError):
    """Raised for file types no strategy handles."""


def is_supported(path: str) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


class TextExtractor:
    """
    Handles text acquisition for a single file.

    Args:
        min_text_length: A PDF text layer shorter than this (after trimming)
            is considered sparse and OCR is attempted.
        ocr_enabled: Allow the Tesseract fallback.
        ocr_dpi: Render resolution for OCR pages.
        ocr_lang: Tesseract language code.
    """

    def __init__(
        self,
        min_text_length: int = 100,
        ocr_enabled: bool = True,
        ocr_dpi: int = 300,
        ocr_lang: str = "eng",
    ):
        self.min_text_length = min_text_length
        self.ocr_enabled = ocr_enabled
        self.ocr_dpi = ocr_dpi
        self.ocr_lang = ocr_lang

    def get_page_count(self, pdf_path: str) -> int:
        """Get total number of pages in the PDF."""
        with fitz.open(pdf_path) as doc:
            return doc.page_count

    def extract(self, path: str) -> ExtractedText:
        """
        Extract raw text from a file, picking the strategy by extension.

        Raises:
            UnsupportedFileError: If the extension is not handled.
            TextExtractionError: If the file cannot be read at all.
        """
        suffix = Path(path).suffix.lower()

        if suffix in PDF_EXTENSIONS:
            return self._extract_pdf(path)
        if suffix in IMAGE_EXTENSIONS:
            return self._extract_image(path)
        if suffix in TEXT_EXTENSIONS:
            return self._extract_plain(path)

        raise UnsupportedFileError(
            f"Unsupported file type '{suffix or '(none)'}': {path}"
        )

    # ─── PDF ──────────────────────────────────────────────────────────────────

    def _extract_pdf(self, path: str) -> ExtractedText:
        text = ""
        page_count = 0
        layer_error: Optional[Exception] = None

        try:
            with fitz.open(path) as doc:
                page_count = doc.page_count
                text = "\n".join(page.get_text("text") for page in doc)
        except Exception as e:
            layer_error = e
            logger.warning(f"Text layer extraction failed for {path}: {e}")

        if len(text.strip()) >= self.min_text_length:
            logger.info(
                f"Text layer: {len(text)} chars from {page_count} page(s)"
            )
            return ExtractedText(
                text=text,
                method=ExtractionMethod.TEXT_LAYER,
                page_count=page_count,
            )

        if not self.ocr_enabled:
            if layer_error is not None:
                raise TextExtractionError(
                    f"Cannot read PDF {path}: {layer_error}"
                ) from layer_error
            logger.info("Text layer is sparse and OCR is disabled")
            return ExtractedText(
                text=text,
                method=ExtractionMethod.TEXT_LAYER if text else ExtractionMethod.NONE,
                page_count=page_count,
            )

        logger.info(
            f"Text layer sparse ({len(text.strip())} chars), falling back to OCR"
        )
        try:
            ocr_text, page_count = self._ocr_pdf(path)
        except Exception as e:
            if layer_error is not None:
                raise TextExtractionError(
                    f"Cannot read PDF {path}: {layer_error}; OCR failed: {e}"
                ) from e
            logger.warning(f"OCR failed for {path}, keeping text layer: {e}")
            return ExtractedText(
                text=text,
                method=ExtractionMethod.TEXT_LAYER if text else ExtractionMethod.NONE,
                page_count=page_count,
            )

        return ExtractedText(
            text=ocr_text,
            method=ExtractionMethod.OCR,
            page_count=page_count,
        )

    def _ocr_pdf(self, path: str) -> tuple[str, int]:
        """Render each page to an image and OCR it."""
        page_texts: list[str] = []
        with fitz.open(path) as doc:
            for page in doc:
                pix = page.get_pixmap(dpi=self.ocr_dpi)
                image = Image.open(io.BytesIO(pix.tobytes("png")))
                page_texts.append(self._ocr_image(image))
                logger.debug(
                    f"OCR page {page.number + 1}/{doc.page_count}: "
                    f"{len(page_texts[-1])} chars"
                )
            page_count = doc.page_count
        return "\n".join(page_texts), page_count

    # ─── Images / Plain Text ──────────────────────────────────────────────────

    def _extract_image(self, path: str) -> ExtractedText:
        try:
            with Image.open(path) as image:
                text = self._ocr_image(image)
        except (OSError, pytesseract.TesseractError) as e:
            raise TextExtractionError(f"Cannot OCR image {path}: {e}") from e

        logger.info(f"Image OCR: {len(text)} chars")
        return ExtractedText(
            text=text,
            method=ExtractionMethod.IMAGE_OCR,
            page_count=1,
        )

    def _extract_plain(self, path: str) -> ExtractedText:
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise TextExtractionError(f"Cannot read {path}: {e}") from e

        return ExtractedText(
            text=text,
            method=ExtractionMethod.PLAIN,
            page_count=1,
        )

    def _ocr_image(self, image: Image.Image) -> str:
        return pytesseract.image_to_string(image, lang=self.ocr_lang)
