"""Data models for the paste classification pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


BASMALA = "basmala"
SCENE_HEADER_TOP_LINE = "scene-header-top-line"
SCENE_HEADER_1 = "scene-header-1"
SCENE_HEADER_2 = "scene-header-2"
SCENE_HEADER_3 = "scene-header-3"
ACTION = "action"
CHARACTER = "character"
DIALOGUE = "dialogue"
PARENTHETICAL = "parenthetical"
TRANSITION = "transition"

ALLOWED_LABELS = frozenset([
    BASMALA, SCENE_HEADER_TOP_LINE, SCENE_HEADER_1, SCENE_HEADER_2,
    SCENE_HEADER_3, ACTION, CHARACTER, DIALOGUE, PARENTHETICAL, TRANSITION,
])

# Labels that open a scene; a scene-header-3 may only follow one of these.
SCENE_HEADER_LABELS = frozenset([SCENE_HEADER_TOP_LINE, SCENE_HEADER_1, SCENE_HEADER_2])

DIALOGUE_BLOCK_LABELS = frozenset([CHARACTER, DIALOGUE, PARENTHETICAL])

MEMORY_HISTORY_LIMIT = 20


@dataclass(frozen=True)
class LineStats:
    word_count: int
    char_count: int
    has_colon: bool
    has_punctuation: bool
    starts_with_bullet: bool
    is_short: bool  # < 30 chars
    is_long: bool  # > 100 chars


@dataclass(frozen=True)
class LinePattern:
    is_in_dialogue_block: bool
    is_in_scene_header: bool
    last_scene_distance: int  # -1 when no scene header so far
    last_character_distance: int  # -1 when no character so far


@dataclass(frozen=True)
class ContextWindow:
    """Everything the classifier may look at for one line.

    Built fresh for every line from the label history of the lines
    already finalized in the same batch.
    """

    previous_lines: tuple[str, ...]
    current_line: str
    next_lines: tuple[str, ...]
    previous_types: tuple[str, ...]
    stats: LineStats
    pattern: LinePattern

    @property
    def last_type(self) -> Optional[str]:
        return self.previous_types[-1] if self.previous_types else None

    @property
    def next_line(self) -> Optional[str]:
        return self.next_lines[0] if self.next_lines else None


@dataclass(frozen=True)
class Decision:
    """A label together with the rule that produced it and its confidence."""

    label: str
    rule: str
    confidence: float


@dataclass
class ScreenplayBlock:
    """One labelled unit of output.

    A scene header written on a single line becomes a
    ``scene-header-top-line`` block whose ``children`` hold the
    ``scene-header-1`` and ``scene-header-2`` parts.
    """

    label: str
    text: str
    margin_top: str = ""  # "" = base spacing, "0" = no gap, "14pt" = paragraph gap
    confidence: float = 1.0
    rule: str = ""
    style: Optional[dict[str, Any]] = None
    children: list[ScreenplayBlock] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "label": self.label,
            "text": self.text,
            "margin_top": self.margin_top,
            "confidence": round(self.confidence, 2),
            "rule": self.rule,
        }
        if self.style is not None:
            data["style"] = self.style
        if self.children:
            data["children"] = [c.to_dict() for c in self.children]
        return data


@dataclass(frozen=True)
class ClassificationRecord:
    """A finalized (text, label) pair fed to the memory update step."""

    line: str
    label: str


@dataclass
class ContextMemory:
    """Session-scoped learned state.

    ``last_classifications`` is newest-first and never longer than
    ``MEMORY_HISTORY_LIMIT``.  ``common_locations`` is kept for the
    record format but not read by classification.
    """

    session_id: str
    last_modified: int = 0  # epoch milliseconds
    common_characters: list[str] = field(default_factory=list)
    common_locations: list[str] = field(default_factory=list)
    last_classifications: list[str] = field(default_factory=list)
    character_dialogue_map: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "last_modified": self.last_modified,
            "common_characters": list(self.common_characters),
            "common_locations": list(self.common_locations),
            "last_classifications": list(self.last_classifications),
            "character_dialogue_map": dict(self.character_dialogue_map),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ContextMemory:
        return cls(
            session_id=str(data["session_id"]),
            last_modified=int(data.get("last_modified", 0)),
            common_characters=[str(c) for c in data.get("common_characters", [])],
            common_locations=[str(c) for c in data.get("common_locations", [])],
            last_classifications=[
                str(c) for c in data.get("last_classifications", [])
            ][:MEMORY_HISTORY_LIMIT],
            character_dialogue_map={
                str(k): int(v) for k, v in data.get("character_dialogue_map", {}).items()
            },
        )


@dataclass
class StageMetrics:
    """Timing and stats for one pipeline stage."""

    stage_name: str
    stage_type: str  # "rules" | "io"
    duration_ms: int = 0


@dataclass
class BatchResult:
    """Complete output of one paste batch."""

    batch_id: str
    session_id: str
    blocks: list[ScreenplayBlock] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    pending_count: int = 0
    warnings: list[str] = field(default_factory=list)
    report: dict = field(default_factory=dict)
