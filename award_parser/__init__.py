"""
Award Parser
============
Extraction of per-student subject grades from exam-award certificates.

Architecture:
    - Text Normalizer: Repairs OCR-mangled keywords and line structure
    - Block Segmenter: Splits the document into per-candidate chunks
    - Header Parser: Reads candidate name, UCI and date of birth
    - Award Buffer: State machine grouping the lines of each award
    - Award Resolver: Extracts subject code, subject name and grade
    - Engine: Text acquisition (PDF text layer / OCR) plus results cache

Version: 1.0.0
"""

__version__ = "1.0.0"

from .models import ExtractedGrade, StudentResult  # noqa: E402
from .pipeline import extract_students  # noqa: E402

__all__ = ["ExtractedGrade", "StudentResult", "extract_students", "__version__"]
