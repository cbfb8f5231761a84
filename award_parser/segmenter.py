"""
Block Segmenter
===============
Splits normalized certificate text into one chunk per candidate, using the
"CANDIDATE NAME" header as the anchor.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# "CANDIDATE NAME", "CANDIDATE NO. AND NAME", "CANDIDATE NUMBER AND NAME"
CANDIDATE_ANCHOR_PATTERN = re.compile(
    r"CANDIDATE\s+(?:(?:NO|NUMBER)\s*\.?\s*(?:AND\s+)?)?NAME",
    re.IGNORECASE,
)

BLOCK_DELIMITER = "|||BLOCK_START|||"
CANONICAL_ANCHOR = "CANDIDATE NAME"

# Shorter chunks are page furniture or the preamble before the first anchor.
MIN_CHUNK_LENGTH = 50


def segment(normalized: str) -> list[str]:
    """
    Split normalized text into per-student chunks.

    Every chunk starts with the canonical "CANDIDATE NAME" anchor, except
    in the fallback case where no anchor survived OCR and the whole text
    is returned as a single chunk.
    """
    if not normalized:
        return []

    marked = CANDIDATE_ANCHOR_PATTERN.sub(
        BLOCK_DELIMITER + CANONICAL_ANCHOR, normalized
    )
    chunks = [
        chunk for chunk in marked.split(BLOCK_DELIMITER)
        if len(chunk) > MIN_CHUNK_LENGTH
    ]

    if not chunks and len(normalized) > MIN_CHUNK_LENGTH:
        logger.debug("No candidate anchor found, using whole text as one chunk")
        chunks = [normalized]

    logger.debug(f"Segmented text into {len(chunks)} chunk(s)")
    return chunks
