"""
Award-Block Buffer
==================
Line-scanning state machine that groups the physical lines of one award
announcement into a single block.

An award on the certificate spans several lines (subject name, marks,
grade in parentheses, then a unit breakdown). A block ends at the next
AWARD line, at the next student's header, or, once a grade has been seen,
at a UNIT / Contributing line that starts itemising sub-components.
"""

from __future__ import annotations

import logging
import re
from enum import Enum

from .models import ExtractedGrade
from .resolver import resolve

logger = logging.getLogger(__name__)

# ─── Anchor Patterns ──────────────────────────────────────────────────────────

AWARD_START_PATTERN = re.compile(r"^AWARD", re.IGNORECASE)

# Lines that belong to the next student's header
NEXT_STUDENT_PATTERN = re.compile(
    r"UNIQUE CANDIDATE|^CANDIDATE NAME", re.IGNORECASE
)

# Unit breakdown rows, only a stop condition once a grade was captured
SECTION_BREAK_PATTERN = re.compile(r"^(?:UNIT|Contributing)", re.IGNORECASE)

GRADE_TOKEN_PATTERN = re.compile(r"[A-EU]\*?\s*\(\s*[a-eu]\*?\s*\)")


class BufferState(Enum):
    """Scanner states."""
    IDLE = "IDLE"
    CAPTURING = "CAPTURING"


def buffer_awards(chunk: str) -> list[ExtractedGrade]:
    """
    Scan a student chunk line by line and resolve every award block in it.

    All scan state lives in local variables, so the function is safe to
    call concurrently on independent chunks.
    """
    grades: list[ExtractedGrade] = []
    state = BufferState.IDLE
    block = ""

    def flush(text: str):
        if not text:
            return
        grade = resolve(text)
        if grade is not None:
            grades.append(grade)
        else:
            logger.debug(f"Discarded unresolvable block: {text[:60]!r}")

    for raw_line in (chunk or "").split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        if AWARD_START_PATTERN.match(line):
            if state == BufferState.CAPTURING:
                flush(block)
            block = line
            state = BufferState.CAPTURING
            continue

        if state != BufferState.CAPTURING:
            continue

        if NEXT_STUDENT_PATTERN.search(line):
            flush(block)
            block = ""
            state = BufferState.IDLE
            continue

        if GRADE_TOKEN_PATTERN.search(block) and SECTION_BREAK_PATTERN.match(line):
            flush(block)
            block = ""
            state = BufferState.IDLE
            continue

        block = f"{block} {line}" if block else line

    if state == BufferState.CAPTURING:
        flush(block)

    logger.debug(f"Buffered {len(grades)} award(s)")
    return grades
