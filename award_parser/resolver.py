"""
Award-Block Resolver
====================
Turns one buffered award block into an ExtractedGrade.

The printed layout is roughly:

    AWARD <CODE> <SUBJECT NAME> <MARKS>/<TOTAL> <GRADE> (<grade>)

but OCR reordering makes fixed offsets unreliable. The resolver anchors on
the two most stable tokens, the 5-character subject code and the
parenthesised grade pair, and takes the text between the code and the
nearer of (marks fraction, grade) as the subject name.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .models import UNKNOWN_SUBJECT, ExtractedGrade

logger = logging.getLogger(__name__)

AWARD_KEYWORD = "AWARD"

# "B (b)", "A* (a*)", "U(u)"
GRADE_PATTERN = re.compile(r"([A-EU]\*?)\s*\(\s*([a-eu]\*?)\s*\)")

# "XAC11", "YMA01", "WST02"
SUBJECT_CODE_PATTERN = re.compile(r"[XYW][A-Z]{2}\d{2}", re.IGNORECASE)

# "85/100", "0368 / 0600"
MARKS_PATTERN = re.compile(r"\d+\s*/\s*\d+")

SUBJECT_DISALLOWED_CHARS = re.compile(r"[^A-Za-z\s\-&]")


def resolve(block: str) -> Optional[ExtractedGrade]:
    """
    Resolve a buffered award block.

    Returns:
        The extracted grade, or None when any anchor is missing or the
        anchors overlap. Partial results are never returned.
    """
    if not block or AWARD_KEYWORD not in block.upper():
        return None

    grade_match = GRADE_PATTERN.search(block)
    if not grade_match:
        logger.debug(f"No grade token in block: {block[:60]!r}")
        return None

    code_match = SUBJECT_CODE_PATTERN.search(block)
    if not code_match:
        logger.debug(f"No subject code in block: {block[:60]!r}")
        return None

    code = code_match.group(0)
    code_idx = block.find(code)
    if code_idx == -1:
        return None
    code_end = code_idx + len(code)

    grade_start = grade_match.start()
    marks_match = MARKS_PATTERN.search(block)
    subject_end = marks_match.start() if marks_match else grade_start

    if subject_end <= code_end:
        subject_end = grade_start
        if subject_end <= code_end:
            logger.debug(f"Grade precedes subject code in block: {block[:60]!r}")
            return None

    subject = block[code_end:subject_end].strip()
    subject = SUBJECT_DISALLOWED_CHARS.sub("", subject).strip()

    return ExtractedGrade(
        code=code,
        subject=subject or UNKNOWN_SUBJECT,
        grade=grade_match.group(1),
    )
