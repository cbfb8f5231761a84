"""
Extraction Pipeline
===================
Composes the parsing stages into the public entry point:

    raw text → normalize → segment → (per chunk) parse_header + buffer_awards
             → list[StudentResult]

Pure and synchronous: no I/O, no shared state between calls.
"""

from __future__ import annotations

import logging
from typing import Optional

from .header import parse_header
from .models import StudentHeader, StudentResult
from .normalizer import normalize
from .segmenter import segment
from .state_machine import buffer_awards

logger = logging.getLogger(__name__)

RAW_TEXT_PREVIEW_CHARS = 300


def parse_student_chunk(
    chunk: str,
    include_raw_text: bool = True,
    header: Optional[StudentHeader] = None,
) -> StudentResult:
    """Parse one segmented chunk into a StudentResult."""
    header = header or parse_header(chunk)
    return StudentResult(
        candidate_name=header.candidate_name,
        uci=header.uci,
        dob=header.dob,
        results=buffer_awards(chunk),
        raw_text=chunk[:RAW_TEXT_PREVIEW_CHARS] if include_raw_text else None,
    )


def extract_students(
    raw_text: str,
    include_raw_text: bool = True,
) -> list[StudentResult]:
    """
    Extract every identifiable student from raw certificate text.

    Chunks whose candidate name cannot be found are dropped: a failed name
    match means the chunk was not a real student record.

    Args:
        raw_text: Text from the PDF text layer or OCR.
        include_raw_text: Keep the first 300 chars of each chunk on the
            result for debugging.

    Returns:
        Zero or more StudentResult entries, in document order.
    """
    normalized = normalize(raw_text)
    chunks = segment(normalized)

    students: list[StudentResult] = []
    for index, chunk in enumerate(chunks):
        header = parse_header(chunk)
        if not header.has_name:
            logger.debug(f"Chunk {index}: no candidate name, skipped")
            continue
        student = parse_student_chunk(
            chunk, include_raw_text=include_raw_text, header=header
        )
        logger.debug(
            f"Chunk {index}: {student.candidate_name} "
            f"({len(student.results)} grade(s))"
        )
        students.append(student)

    logger.debug(f"Extracted {len(students)} student(s) from {len(chunks)} chunk(s)")
    return students
