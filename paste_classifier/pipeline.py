"""Pipeline orchestrator.

Runs one paste batch: normalize and split the text, load the session
memory, tag every line in order, update the memory, then register any
low-confidence lines for later confirmation.  Per-stage timing is
collected into the batch report.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from .confirmations import ConfirmationCallback, ConfirmationQueue, PendingConfirmation
from .memory_store import ContextMemoryManager
from .models import (
    CHARACTER,
    DIALOGUE,
    SCENE_HEADER_1,
    SCENE_HEADER_2,
    SCENE_HEADER_TOP_LINE,
    BatchResult,
    ClassificationRecord,
    ContextMemory,
    ScreenplayBlock,
    StageMetrics,
)
from .nodes import normalizer
from .nodes.context_window import build_context
from .nodes.memory_adjuster import adjust_with_memory
from .nodes.patterns import (
    is_basmala,
    is_scene_header_1,
    is_scene_header_2,
    is_transition,
    parse_inline_character_dialogue,
    split_scene_header,
)
from .nodes.rule_classifier import CONFIDENCE_STRUCTURAL, classify_line
from .nodes.spacing import INITIAL_PREVIOUS_LABEL, NO_GAP, spacing_before
from .timing import collect_metrics, timed_node

log = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.7
CONFIDENCE_INLINE = 0.9

StyleProvider = Callable[[str], dict[str, Any]]


@dataclass
class TaggingOutcome:
    blocks: list[ScreenplayBlock] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    records: list[ClassificationRecord] = field(default_factory=list)
    low_confidence: list[tuple[int, str, str, float]] = field(default_factory=list)


def new_batch_id() -> str:
    return f"paste-{uuid.uuid4().hex[:12]}"


@timed_node("tagger", "rules")
def tag_lines(
    lines: Sequence[str],
    memory: Optional[ContextMemory] = None,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    style_for: Optional[StyleProvider] = None,
) -> TaggingOutcome:
    """Classify *lines* in order and build the block sequence.

    ``low_confidence`` lists ``(block_index, line, label, confidence)``
    for every block whose confidence is below *confidence_threshold*.
    """
    out = TaggingOutcome()
    previous = INITIAL_PREVIOUS_LABEL

    for index, raw in enumerate(lines):
        trimmed = raw.strip()
        if not trimmed:
            continue
        line = normalizer.strip_leading_bullets(trimmed)
        if not line:
            continue
        ctx = build_context(lines, index, out.labels)

        inline = None if _is_structural(line) else parse_inline_character_dialogue(line)
        if inline is not None:
            name, speech = inline
            out.blocks.append(_make_block(
                CHARACTER, name, spacing_before(previous, CHARACTER),
                CONFIDENCE_INLINE, "inline_character", style_for,
            ))
            out.blocks.append(_make_block(
                DIALOGUE, speech, NO_GAP, CONFIDENCE_INLINE, "inline_dialogue", style_for,
            ))
            out.labels.extend([CHARACTER, DIALOGUE])
            out.records.extend([
                ClassificationRecord(name, CHARACTER),
                ClassificationRecord(speech, DIALOGUE),
            ])
            previous = DIALOGUE
            log.debug("Line %d: inline %s / %s", index, CHARACTER, DIALOGUE)
            continue

        decision = classify_line(line, ctx)
        if decision.confidence < CONFIDENCE_STRUCTURAL:
            try:
                decision = adjust_with_memory(line, ctx, decision, memory)
            except Exception:
                log.exception("Memory adjustment failed on line %d; keeping %s", index, decision.label)

        label = decision.label
        parts = split_scene_header(line) if label == SCENE_HEADER_TOP_LINE else None
        if label == SCENE_HEADER_TOP_LINE and parts is None:
            label = SCENE_HEADER_1

        block = _make_block(
            label, line, spacing_before(previous, label),
            decision.confidence, decision.rule, style_for,
        )
        if parts is not None:
            number, description = parts
            block.children = [
                _make_block(SCENE_HEADER_1, number, "", decision.confidence, decision.rule, style_for),
                _make_block(SCENE_HEADER_2, description, "", decision.confidence, decision.rule, style_for),
            ]
        out.blocks.append(block)
        out.labels.append(label)
        out.records.append(ClassificationRecord(line, label))
        previous = label

        if decision.confidence < confidence_threshold:
            out.low_confidence.append((len(out.blocks) - 1, line, label, decision.confidence))
        log.debug("Line %d: %s via %s (%.2f)", index, label, decision.rule, decision.confidence)

    return out


async def run_paste_batch(
    text: str,
    session_id: Optional[str] = None,
    memory_manager: Optional[ContextMemoryManager] = None,
    confirmations: Optional[ConfirmationQueue] = None,
    request_confirmation: Optional[ConfirmationCallback] = None,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    style_for: Optional[StyleProvider] = None,
    batch_id: Optional[str] = None,
) -> BatchResult:
    """Classify one pasted text and return its blocks.

    Low-confidence blocks keep their suggested label; when *confirmations*
    is given they are registered there under the batch id so a later
    ``confirmations.resolve(batch_id)`` can finalize them.
    """
    batch_id = batch_id or new_batch_id()
    session_id = session_id or f"session-{uuid.uuid4().hex[:12]}"
    result = BatchResult(batch_id=batch_id, session_id=session_id)

    with collect_metrics() as metrics:
        lines = normalizer.split_lines(text)
        if not lines:
            log.info("Batch %s: nothing to classify", batch_id)
            result.report = _build_report(metrics, 0, [])
            return result

        memory = await _load_memory(memory_manager, session_id, result.warnings)
        outcome = tag_lines(lines, memory, confidence_threshold, style_for)
        await _update_memory(memory_manager, session_id, outcome.records, result.warnings)

    pending = [
        PendingConfirmation(
            batch_id=batch_id,
            block_index=block_index,
            line=line,
            suggested_label=label,
            confidence=confidence,
            callback=request_confirmation,
        )
        for block_index, line, label, confidence in outcome.low_confidence
    ]
    if confirmations is not None:
        confirmations.register_batch(batch_id, outcome.blocks, pending, style_for=style_for)

    result.blocks = outcome.blocks
    result.labels = outcome.labels
    result.pending_count = len(pending)
    result.report = _build_report(metrics, len(lines), outcome.blocks)

    log.info(
        "Batch %s complete: %d line(s) -> %d block(s), %d pending | total=%dms",
        batch_id, len(lines), len(outcome.blocks), len(pending),
        result.report["total_duration_ms"],
    )
    return result


@timed_node("memory_load", "io")
async def _load_memory(
    manager: Optional[ContextMemoryManager],
    session_id: str,
    warnings: list[str],
) -> Optional[ContextMemory]:
    if manager is None:
        return None
    try:
        return await manager.load_context(session_id)
    except Exception as exc:
        log.warning("Memory unavailable for session %s, using rules only: %s", session_id, exc)
        warnings.append(f"memory load failed: {exc}")
        return None


@timed_node("memory_update", "io")
async def _update_memory(
    manager: Optional[ContextMemoryManager],
    session_id: str,
    records: list[ClassificationRecord],
    warnings: list[str],
) -> None:
    if manager is None or not records:
        return
    try:
        await manager.update_memory(session_id, records)
    except Exception as exc:
        log.warning("Memory update failed for session %s: %s", session_id, exc)
        warnings.append(f"memory update failed: {exc}")


def _is_structural(line: str) -> bool:
    """Lines that must never be split as ``NAME: TEXT``."""
    return (
        is_basmala(line)
        or is_scene_header_1(line)
        or is_scene_header_2(line)
        or is_transition(line)
    )


def _make_block(
    label: str,
    text: str,
    margin_top: str,
    confidence: float,
    rule: str,
    style_for: Optional[StyleProvider],
) -> ScreenplayBlock:
    return ScreenplayBlock(
        label=label,
        text=text,
        margin_top=margin_top,
        confidence=confidence,
        rule=rule,
        style=style_for(label) if style_for is not None else None,
    )


def _build_report(
    metrics: list[StageMetrics],
    line_count: int,
    blocks: list[ScreenplayBlock],
) -> dict:
    total_ms = sum(m.duration_ms for m in metrics)
    return {
        "total_duration_ms": total_ms,
        "rules_duration_ms": sum(m.duration_ms for m in metrics if m.stage_type == "rules"),
        "io_duration_ms": sum(m.duration_ms for m in metrics if m.stage_type == "io"),
        "line_count": line_count,
        "block_count": len(blocks),
        "label_counts": dict(Counter(b.label for b in blocks)),
        "stages": [
            {"stage": m.stage_name, "type": m.stage_type, "duration_ms": m.duration_ms}
            for m in metrics
        ],
    }
