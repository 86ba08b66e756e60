"""Normalizer.

Cleans pasted text before classification: unifies line breaks, strips
Arabic diacritics (tashkeel), bidi control marks, byte-order marks and
leading bullet glyphs.  Blank lines survive ``normalize_text`` so line
counts are preserved; ``split_lines`` is where they are dropped.
"""

from __future__ import annotations

import logging
import re

from ..timing import timed_node

log = logging.getLogger(__name__)

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\u2028|\u2029|\u0085")
_BOM_RE = re.compile(r"\uFEFF")
# Arabic diacritics as a character-class body
TASHKEEL = r"\u064B-\u065F\u0670"
_DIACRITICS_RE = re.compile(rf"[{TASHKEEL}]")
_INVISIBLE_RE = re.compile(r"[\u200E\u200F\u061C\uFEFF\u202A-\u202E\u2066-\u2069\t]+")

_BULLET_GLYPHS = (
    r"\u2022\u00B7\u2219\u22C5\u25CF\u25CB\u25E6"
    r"\u25A0\u25A1\u25AA\u25AB\u25C6\u25C7"
    r"\u2013\u2014\u2212\u2012\u2015\u2023\u2043*+"
)
_LEADING_MARKS = r"^[\s\u200E\u200F\u061C\uFEFF]*"
# The ASCII hyphen is stripped as a bullet but does not count as one
# when deciding whether a line was written as a list item.
_LEADING_BULLET_RE = re.compile(_LEADING_MARKS + "[" + _BULLET_GLYPHS + r"\-]+\s*")
_STARTS_WITH_BULLET_RE = re.compile(_LEADING_MARKS + "[" + _BULLET_GLYPHS + "]")

_SENTENCE_PUNCTUATION_RE = re.compile(r"[.!?\u060C\u061B]")


def normalize_text(text: str) -> str:
    """Drop byte-order marks and collapse line-break variants to ``\\n``."""
    return _LINE_BREAK_RE.sub("\n", _BOM_RE.sub("", text))


def strip_leading_bullets(line: str) -> str:
    return _LEADING_BULLET_RE.sub("", line, count=1)


def starts_with_bullet(line: str) -> bool:
    return bool(_STARTS_WITH_BULLET_RE.match(line))


def strip_invisible(line: str) -> str:
    """Drop bidi control marks and byte-order marks, keeping diacritics."""
    return _INVISIBLE_RE.sub("", line)


def normalize_line(line: str) -> str:
    """Return the comparison form of a single line."""
    line = _DIACRITICS_RE.sub("", line)
    line = strip_invisible(line)
    line = strip_leading_bullets(line)
    return line.strip()


def has_sentence_punctuation(line: str) -> bool:
    return bool(_SENTENCE_PUNCTUATION_RE.search(line))


def word_count(line: str) -> int:
    return len(line.split())


@timed_node("normalizer", "rules")
def split_lines(text: str) -> list[str]:
    """Split *text* into trimmed, non-blank lines in input order."""
    lines = [line.strip() for line in normalize_text(text).split("\n")]
    kept = [line for line in lines if line]
    log.info("Normalizer: %d line(s), %d non-blank", len(lines), len(kept))
    return kept
