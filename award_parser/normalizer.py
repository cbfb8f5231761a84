"""
Text Normalizer
===============
Cleans raw PDF/OCR text before line-oriented parsing.

OCR output of award certificates regularly splits keywords into spaced
letters ("C A N D I D A T E"), swaps I for 1 or l, and merges the AWARD /
UNIT / Contributing section headers into the tabular data around them.
The rules below are applied in a fixed order; later rules rely on the
earlier ones having run.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# ─── Keyword Repair ───────────────────────────────────────────────────────────

# Long keywords tolerate any (or no) whitespace between letters.
KEYWORD_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"C\s*A\s*N\s*D\s*[I1l]\s*D\s*A\s*T\s*E", re.IGNORECASE), "CANDIDATE"),
    (re.compile(r"U\s*N\s*[I1l]\s*Q\s*U\s*E", re.IGNORECASE), "UNIQUE"),
    (re.compile(
        r"D\s*A\s*T\s*E\s*O\s*F\s*B\s*[I1l]\s*R\s*T\s*H", re.IGNORECASE
    ), "DATE OF BIRTH"),
    (re.compile(r"A\s*W\s*A\s*R\s*D", re.IGNORECASE), "AWARD"),
]

# "N O" anywhere, case-sensitive. Broad on purpose: it also joins an N and
# an O across a word gap (e.g. "JOHN OLIVER" -> "JOHNOLIVER").
SPACED_NO_PATTERN = re.compile(r"N\s+O")

# Short keywords only collapse when the letters really are spaced out,
# otherwise every "and" inside ordinary text would be rewritten.
SHORT_KEYWORD_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\bA\s+N\s+D\b", re.IGNORECASE), "AND"),
    (re.compile(r"\bN\s+A\s+M\s+E\b", re.IGNORECASE), "NAME"),
]

# ─── Structure Repair ─────────────────────────────────────────────────────────

# "X A C 1 1" -> "XAC11"
SPACED_CODE_PATTERN = re.compile(
    r"([XYW])\s*([A-Z])\s*([A-Z])\s*(\d)\s*(\d)", re.IGNORECASE
)

AWARD_BREAK_PATTERN = re.compile(r"(AWARD)[ \t]*", re.IGNORECASE)
SECTION_BREAK_PATTERN = re.compile(r"(UNIT|Contributing)", re.IGNORECASE)

HORIZONTAL_SPACE_PATTERN = re.compile(r"[ \t]+")
INDENTED_LINE_PATTERN = re.compile(r"\n\s+")


def normalize(raw: str) -> str:
    """
    Normalize raw certificate text.

    Guarantees on the output:
        - AWARD / UNIT / Contributing always start a line
        - AWARD is always followed by a single space
        - no runs of spaces or tabs, no indentation after a newline

    Args:
        raw: Text as produced by the PDF text layer or OCR.

    Returns:
        The normalized text, or "" for empty input.
    """
    if not raw:
        return ""

    text = raw

    for pattern, replacement in KEYWORD_PATTERNS:
        text = pattern.sub(replacement, text)

    text = SPACED_NO_PATTERN.sub("NO", text)

    for pattern, replacement in SHORT_KEYWORD_PATTERNS:
        text = pattern.sub(replacement, text)

    text = SPACED_CODE_PATTERN.sub(lambda m: "".join(m.groups()), text)

    text = AWARD_BREAK_PATTERN.sub(lambda m: f"\n{m.group(1)} ", text)
    text = SECTION_BREAK_PATTERN.sub(lambda m: f"\n{m.group(1)}", text)

    text = HORIZONTAL_SPACE_PATTERN.sub(" ", text)
    text = INDENTED_LINE_PATTERN.sub("\n", text)

    logger.debug(f"Normalized {len(raw)} chars -> {len(text)} chars")
    return text
