"""
Data Models
===========
Pydantic models for structured certificate parsing output.
Python attributes are snake_case; JSON uses the camelCase field names
the portal front-end consumes (``model_dump(by_alias=True)``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

UNKNOWN_CANDIDATE = "Unknown Candidate"
UNKNOWN_UCI = "Unknown UCI"
UNKNOWN_DOB = "Unknown DOB"
UNKNOWN_SUBJECT = "Unknown Subject"


# ─── Enums ────────────────────────────────────────────────────────────────────


class ExtractionMethod(str, Enum):
    """How the raw text of a file was obtained."""
    TEXT_LAYER = "text-layer"
    OCR = "ocr"
    IMAGE_OCR = "image-ocr"
    PLAIN = "plain"
    NONE = "none"


# ─── Grade / Student Models ───────────────────────────────────────────────────


class ExtractedGrade(BaseModel):
    """One subject award: code, subject name and letter grade."""
    code: Optional[str] = None
    subject: str = UNKNOWN_SUBJECT
    grade: str


class StudentHeader(BaseModel):
    """Identity fields found at the top of a student chunk."""
    model_config = ConfigDict(populate_by_name=True)

    candidate_name: str = Field(default=UNKNOWN_CANDIDATE, alias="candidateName")
    uci: str = UNKNOWN_UCI
    dob: str = UNKNOWN_DOB

    @property
    def has_name(self) -> bool:
        return bool(self.candidate_name) and self.candidate_name != UNKNOWN_CANDIDATE


class StudentResult(BaseModel):
    """
    A fully parsed candidate record.
    ``raw_text`` holds the first 300 characters of the chunk, for debugging.
    """
    model_config = ConfigDict(populate_by_name=True)

    candidate_name: str = Field(default=UNKNOWN_CANDIDATE, alias="candidateName")
    uci: str = UNKNOWN_UCI
    dob: str = UNKNOWN_DOB
    results: list[ExtractedGrade] = Field(default_factory=list)
    raw_text: Optional[str] = Field(
        default=None,
        alias="rawText",
        description="First 300 characters of the source chunk",
    )

    @computed_field(alias="gradeCount")
    @property
    def grade_count(self) -> int:
        return len(self.results)


# ─── Text Source / Engine Models ──────────────────────────────────────────────


class ExtractedText(BaseModel):
    """Raw text pulled out of a file, with the strategy that produced it."""
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    method: ExtractionMethod = ExtractionMethod.NONE
    page_count: int = Field(default=0, ge=0, alias="pageCount")


class ExtractionResult(BaseModel):
    """
    Output of one engine run over a file.
    This is also the payload persisted in the results cache.
    """
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName")
    file_key: str = Field(alias="fileKey")
    method: ExtractionMethod = ExtractionMethod.NONE
    cached: bool = False
    updated_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        alias="updatedAt",
    )
    text_length: int = Field(default=0, ge=0, alias="textLength")
    students: list[StudentResult] = Field(default_factory=list)

    @computed_field(alias="studentCount")
    @property
    def student_count(self) -> int:
        return len(self.students)
