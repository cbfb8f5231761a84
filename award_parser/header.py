"""
Student Header Parser
=====================
Pulls candidate name, unique candidate identifier (UCI) and date of birth
out of a student chunk. Each field is matched independently; a field that
cannot be found keeps its "Unknown ..." placeholder.
"""

from __future__ import annotations

import logging
import re

from .models import (
    UNKNOWN_CANDIDATE,
    UNKNOWN_DOB,
    UNKNOWN_UCI,
    StudentHeader,
)

logger = logging.getLogger(__name__)

# "CANDIDATE NAME: 9220 MOHAMED ZAMEEL:AYSHA"
# Optional admission number, then a run of letters and name punctuation on
# the same line.
CANDIDATE_NAME_PATTERN = re.compile(
    r"CANDIDATE\s+NAME\s*[:.]?\s*(?:\d{4})?\s*[:.]?\s*([A-Z][A-Z \t.\-:]*)",
    re.IGNORECASE,
)

# The name run often swallows the next header when there is no delimiter.
NAME_STOP_PATTERN = re.compile(r"UNIQUE|DATE|CENTRE", re.IGNORECASE)

UCI_LABEL_PATTERN = re.compile(
    r"UNIQUE\s+CANDIDATE\s+IDENTIFIER\s*[:.]?\s*([A-Z0-9]+)",
    re.IGNORECASE,
)

# e.g. 97293B2392200C
UCI_SHAPE_PATTERN = re.compile(r"\b9\d{4}[A-Z]\d{7}[A-Z0-9]\b")

DOB_PATTERN = re.compile(
    r"DATE\s+OF\s+BIRTH\s*[:.]?\s*(\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4})",
    re.IGNORECASE,
)


def parse_candidate_name(chunk: str) -> str:
    match = CANDIDATE_NAME_PATTERN.search(chunk)
    if not match:
        return UNKNOWN_CANDIDATE

    raw_name = NAME_STOP_PATTERN.split(match.group(1), maxsplit=1)[0]
    name = raw_name.strip()
    return name or UNKNOWN_CANDIDATE


def parse_uci(chunk: str) -> str:
    match = UCI_LABEL_PATTERN.search(chunk)
    if match:
        return match.group(1)

    match = UCI_SHAPE_PATTERN.search(chunk)
    if match:
        return match.group(0)

    return UNKNOWN_UCI


def parse_dob(chunk: str) -> str:
    match = DOB_PATTERN.search(chunk)
    return match.group(1) if match else UNKNOWN_DOB


def parse_header(chunk: str) -> StudentHeader:
    """Extract the identity fields of one student chunk. Never raises."""
    if not chunk:
        return StudentHeader()

    header = StudentHeader(
        candidate_name=parse_candidate_name(chunk),
        uci=parse_uci(chunk),
        dob=parse_dob(chunk),
    )
    logger.debug(
        f"Header: name={header.candidate_name!r} "
        f"uci={header.uci!r} dob={header.dob!r}"
    )
    return header
