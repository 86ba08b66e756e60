"""Context Window Builder.

Derives a fresh ``ContextWindow`` for one line from the batch's lines
and the labels finalized so far.  The label history is taken as an
immutable tuple so the same history always yields the same window.
"""

from __future__ import annotations

from typing import Sequence

from ..models import (
    CHARACTER,
    DIALOGUE_BLOCK_LABELS,
    SCENE_HEADER_1,
    SCENE_HEADER_2,
    SCENE_HEADER_3,
    SCENE_HEADER_LABELS,
    SCENE_HEADER_TOP_LINE,
    ContextWindow,
    LinePattern,
    LineStats,
)
from .normalizer import has_sentence_punctuation, normalize_line, starts_with_bullet, word_count

WINDOW_SIZE = 3
SHORT_LINE_CHARS = 30
LONG_LINE_CHARS = 100

_ALL_SCENE_HEADER_LABELS = frozenset([
    SCENE_HEADER_TOP_LINE, SCENE_HEADER_1, SCENE_HEADER_2, SCENE_HEADER_3,
])


def build_context(
    lines: Sequence[str],
    index: int,
    previous_labels: Sequence[str],
) -> ContextWindow:
    current = lines[index] if 0 <= index < len(lines) else ""
    history = tuple(previous_labels)

    previous_lines = tuple(lines[max(0, index - WINDOW_SIZE):index])
    next_lines = tuple(lines[index + 1:index + 1 + WINDOW_SIZE])

    trimmed = current.strip()
    stats = LineStats(
        word_count=word_count(normalize_line(current)),
        char_count=len(trimmed),
        has_colon=":" in trimmed or "：" in trimmed,
        has_punctuation=has_sentence_punctuation(trimmed),
        starts_with_bullet=starts_with_bullet(current),
        is_short=len(trimmed) < SHORT_LINE_CHARS,
        is_long=len(trimmed) > LONG_LINE_CHARS,
    )

    last = history[-1] if history else None
    pattern = LinePattern(
        is_in_dialogue_block=any(t in DIALOGUE_BLOCK_LABELS for t in history[-3:]),
        is_in_scene_header=last in SCENE_HEADER_LABELS,
        last_scene_distance=_distance_to_last(history, _ALL_SCENE_HEADER_LABELS),
        last_character_distance=_distance_to_last(history, frozenset([CHARACTER])),
    )

    return ContextWindow(
        previous_lines=previous_lines,
        current_line=current,
        next_lines=next_lines,
        previous_types=history,
        stats=stats,
        pattern=pattern,
    )


def _distance_to_last(history: tuple[str, ...], labels: frozenset[str]) -> int:
    """0 when the previous label matches, 1 for the one before, -1 if none."""
    for distance, label in enumerate(reversed(history)):
        if label in labels:
            return distance
    return -1
