"""Pattern matchers.

Independent predicates, one per candidate label.  Every matcher takes a
single line and normalizes it itself, so the matchers can be called in
any order and from anywhere (classifier, memory adjuster, tests).
"""

from __future__ import annotations

import re
from typing import Optional

from ..models import CHARACTER, DIALOGUE, PARENTHETICAL, SCENE_HEADER_LABELS
from . import lexicons
from .normalizer import (
    TASHKEEL,
    has_sentence_punctuation,
    normalize_line,
    strip_invisible,
    word_count,
)

_ARABIC = r"\u0600-\u06FF"
_DIGITS = r"0-9\u0660-\u0669"

_BRACKETS_RE = re.compile(r"[{}()\[\]]")
_NON_ARABIC_RE = re.compile(rf"[^{_ARABIC}\s]")
_NON_ARABIC_LETTER_RE = re.compile(rf"[^{_ARABIC}]")
_DASHES_RE = re.compile(r"[-–—]")
_SPACES_RE = re.compile(r"\s+")
_TRAILING_COLONS_RE = re.compile(r":+\s*$")

# Scene headers
SCENE_NUMBER_RE = re.compile(rf"(?:مشهد|scene)\s*([{_DIGITS}]+)", re.IGNORECASE)
_SCENE_NUMBER_START_RE = re.compile(rf"^\s*(?:مشهد|scene)\s*[{_DIGITS}]+", re.IGNORECASE)
# Matches the cue on display text, so tashkeel may sit on any of its letters.
_SCENE_CUE_DISPLAY = "".join(f"{letter}[{TASHKEEL}]*" for letter in "مشهد")
_SCENE_SPLIT_RE = re.compile(
    rf"^\s*((?:{_SCENE_CUE_DISPLAY}|scene)\s*[{_DIGITS}]+)\s*[-–—:،]?\s*(.*)",
    re.IGNORECASE,
)

# Character cues
CHARACTER_RE = re.compile(rf"^\s*(?:صوت\s+)?[{_ARABIC}][{_ARABIC}\s{_DIGITS}]{{0,30}}:?\s*$")
_ARABIC_NAME_ONLY_RE = re.compile(
    r"^[\s\u0600-\u06FF\d\u0660-\u0669\u0750-\u077F\u08A0-\u08FF"
    r"\uFB50-\uFDFF\uFE70-\uFEFF]+$"
)
_INLINE_DIALOGUE_RE = re.compile(r"^([^:：]{1,60}?)\s*[:：]\s*(.+)$")
_PARENTHETICAL_RE = re.compile(r"^[(（].*?[)）]$")

_LEADING_PARTICLES = ("و", "ف", "ل")


_PATTERN_CACHE: dict[str, object] = {}


def _compiled(key: str, build):
    """Build a lexicon-backed pattern once and reuse it."""
    pattern = _PATTERN_CACHE.get(key)
    if pattern is None:
        pattern = build()
        _PATTERN_CACHE[key] = pattern
    return pattern


def _time_re() -> re.Pattern:
    return _compiled("time", lambda: re.compile(
        f"({lexicons.alternation(lexicons.TIME_CUES)})", re.IGNORECASE))


def _interior_re() -> re.Pattern:
    return _compiled("interior", lambda: re.compile(
        f"({lexicons.alternation(lexicons.INTERIOR_CUES)})", re.IGNORECASE))


def _transition_re() -> re.Pattern:
    return _compiled("transition", lambda: re.compile(
        f"^({lexicons.alternation(lexicons.TRANSITION_CUES)})", re.IGNORECASE))


def _action_openers() -> tuple[re.Pattern, ...]:
    def build():
        narrator = lexicons.alternation(lexicons.NARRATOR_VERBS)
        narrator_past = lexicons.alternation(lexicons.NARRATOR_PAST_VERBS)
        return (
            # imperfective verb prefix, optionally after "then" / "and he/she"
            re.compile(rf"^\s*(?:ثم\s+)?(?:و(?:هو|هي)\s+)?[يت][{_ARABIC}]{{2,}}(?:\s+\S|$)"),
            re.compile(rf"^\s*(?:و|ف|ل)?(?:{narrator})(?:\s+\S|$)"),
            re.compile(rf"^\s*(?:{narrator_past})(?:\s+\S|$)"),
        )
    return _compiled("action_openers", build)


def _known_place_re() -> re.Pattern:
    return _compiled("known_places", lambda: re.compile(
        f"^({lexicons.alternation(lexicons.KNOWN_PLACES)})", re.IGNORECASE))


def _qualified_place_re() -> re.Pattern:
    return _compiled("qualified_places", lambda: re.compile(
        rf"^({lexicons.alternation(lexicons.QUALIFIED_PLACES)})"
        r"\s+[\w\s]+\s*[–—-]\s*[\w\s]+",
        re.IGNORECASE,
    ))


# ---------------------------------------------------------------------------
# Basmala
# ---------------------------------------------------------------------------

def is_basmala(line: str) -> bool:
    """True when the line carries "in the name of", "God" and "the Merciful"."""
    cleaned = normalize_line(_BRACKETS_RE.sub("", line))
    compact = _NON_ARABIC_RE.sub("", cleaned)
    has_basm = "بسم" in compact
    has_allah = "الله" in compact
    has_rahman = "الرحمن" in compact or "الرحي" in compact
    return has_basm and has_allah and has_rahman


# ---------------------------------------------------------------------------
# Scene headers and transitions
# ---------------------------------------------------------------------------

def is_scene_header_1(line: str) -> bool:
    return bool(SCENE_NUMBER_RE.search(normalize_line(line)))


def is_scene_header_2(line: str) -> bool:
    normalized = _SPACES_RE.sub(" ", _DASHES_RE.sub(" ", normalize_line(line))).strip()
    return bool(_time_re().search(normalized)) and bool(_interior_re().search(normalized))


def is_complete_scene_header(line: str) -> bool:
    normalized = normalize_line(line)
    return bool(_SCENE_NUMBER_START_RE.match(normalized)) and is_scene_header_2(normalized)


def split_scene_header(line: str) -> Optional[tuple[str, str]]:
    """Split ``"مشهد 1 - داخلي ليل"`` into ``("مشهد 1", "داخلي ليل")``.

    Returns None when there is no number cue at the start or nothing
    is left after it.  Bidi marks are dropped; diacritics are kept in
    the returned parts.
    """
    m = _SCENE_SPLIT_RE.match(strip_invisible(line))
    if not m:
        return None
    number, description = m.group(1).strip(), m.group(2).strip()
    if not description:
        return None
    return number, description


def is_transition(line: str) -> bool:
    return bool(_transition_re().match(normalize_line(line)))


def is_parenthetical(line: str) -> bool:
    return bool(_PARENTHETICAL_RE.match(line.strip()))


# ---------------------------------------------------------------------------
# Action
# ---------------------------------------------------------------------------

def is_action_verb_start(line: str) -> bool:
    """True when the first token (or the first token minus a leading
    conjunction particle) is a known action verb."""
    tokens = line.split()
    if not tokens:
        return False
    first = _NON_ARABIC_LETTER_RE.sub("", normalize_line(tokens[0]))
    if not first:
        return False

    verbs = lexicons.get_lexicon(lexicons.ACTION_VERBS)
    if first in verbs:
        return True
    for particle in _LEADING_PARTICLES:
        if first.startswith(particle) and len(first) > 1 and first[1:] in verbs:
            return True
    return False


def matches_action_start_pattern(line: str) -> bool:
    normalized = normalize_line(line)
    return any(p.search(normalized) for p in _action_openers())


def is_likely_action(line: str) -> bool:
    if not line or not line.strip():
        return False
    normalized = normalize_line(line)
    return matches_action_start_pattern(normalized) or is_action_verb_start(normalized)


# ---------------------------------------------------------------------------
# Character cues
# ---------------------------------------------------------------------------

def _has_colon(line: str) -> bool:
    return ":" in line or "：" in line


def is_character_line(
    line: str,
    last_label: Optional[str] = None,
    in_dialogue_block: bool = False,
) -> bool:
    """Decide whether *line* has the shape of a character cue.

    *last_label* / *in_dialogue_block* describe the surrounding dialogue
    exchange when the caller knows it.
    """
    trimmed = line.strip()
    if not trimmed:
        return False
    if is_complete_scene_header(trimmed) or is_transition(trimmed) or is_parenthetical(trimmed):
        return False

    normalized = normalize_line(trimmed)
    if word_count(normalized) > 5:
        return False
    if is_action_verb_start(normalized) or matches_action_start_pattern(normalized):
        return False

    has_colon = _has_colon(trimmed)
    if has_colon and trimmed.endswith((":", "：")):
        return True

    if not has_colon:
        if not _ARABIC_NAME_ONLY_RE.match(normalized):
            return False
        tokens = normalized.split()
        if not tokens or len(tokens) > 3:
            return False
        stop_words = lexicons.get_lexicon(lexicons.CHARACTER_STOP_WORDS)
        return not any(t in stop_words for t in tokens)

    if in_dialogue_block:
        if last_label == DIALOGUE:
            return False
        if last_label in (CHARACTER, PARENTHETICAL):
            return bool(CHARACTER_RE.match(trimmed))

    return bool(CHARACTER_RE.match(trimmed))


def parse_inline_character_dialogue(line: str) -> Optional[tuple[str, str]]:
    """Split ``"NAME: TEXT"`` into ``(NAME, TEXT)`` when NAME is a valid cue."""
    m = _INLINE_DIALOGUE_RE.match(line.strip())
    if not m:
        return None
    name, text = m.group(1).strip(), m.group(2).strip()
    if not name or not text:
        return None
    cue = f"{name}:"
    if not CHARACTER_RE.match(cue) or not is_character_line(cue):
        return None
    return name, text


# ---------------------------------------------------------------------------
# Scene header, part 3 (location line under a scene heading)
# ---------------------------------------------------------------------------

def is_scene_header_3_candidate(line: str, last_label: Optional[str]) -> bool:
    if last_label not in SCENE_HEADER_LABELS:
        return False
    normalized = _TRAILING_COLONS_RE.sub("", normalize_line(line))
    if word_count(normalized) > 12 or has_sentence_punctuation(line):
        return False
    if is_action_verb_start(normalized) or matches_action_start_pattern(normalized):
        return False
    return bool(_known_place_re().match(normalized) or _qualified_place_re().match(normalized))
