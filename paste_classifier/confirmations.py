"""Confidence / Confirmation Protocol.

Low-confidence lines are never blocking.  The batch renders them with
the suggested label and registers a ``PendingConfirmation`` keyed by
``"{batch_id}:{block_index}"``.  A later ``resolve(batch_id)`` call asks
for the final labels and relabels the batch's blocks in place.

Each pending item ends in one of two ways:

- resolved: an explicit decision, a callback answer, or a declined
  callback (``None``) that accepts the suggested label; the item is
  removed.
- left pending: the callback raised or answered with an unknown label;
  the block keeps the suggested label and a later resolve may retry.

Only batches with pending items are kept, and a batch is dropped as
soon as its last item is resolved.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .models import (
    ALLOWED_LABELS,
    SCENE_HEADER_1,
    SCENE_HEADER_2,
    SCENE_HEADER_TOP_LINE,
    ScreenplayBlock,
)
from .nodes.patterns import split_scene_header
from .nodes.spacing import INITIAL_PREVIOUS_LABEL, spacing_before

log = logging.getLogger(__name__)

# (line, suggested_label, confidence) -> final label, None to accept the suggestion
ConfirmationCallback = Callable[[str, str, float], Union[Optional[str], Awaitable[Optional[str]]]]
# (batch_id, pending_count) -> None
PendingNotifier = Callable[[str, int], None]
# label -> rendering descriptor
StyleProvider = Callable[[str], dict[str, Any]]


class UnknownBatchError(KeyError):
    """No batch with this id is awaiting confirmation."""


@dataclass
class PendingConfirmation:
    batch_id: str
    block_index: int
    line: str
    suggested_label: str
    confidence: float
    callback: Optional[ConfirmationCallback] = None

    @property
    def correlation_id(self) -> str:
        return f"{self.batch_id}:{self.block_index}"

    def to_dict(self) -> dict:
        return {
            "correlation_id": self.correlation_id,
            "batch_id": self.batch_id,
            "block_index": self.block_index,
            "line": self.line,
            "suggested_label": self.suggested_label,
            "confidence": round(self.confidence, 2),
        }


@dataclass
class ResolveOutcome:
    batch_id: str
    resolved: dict[int, str]  # block_index -> final label
    unresolved: list[int]
    blocks: list[ScreenplayBlock] = field(default_factory=list)


class ConfirmationQueue:
    """Pending confirmations of every open batch, plus the blocks they relabel."""

    def __init__(self, notifier: Optional[PendingNotifier] = None) -> None:
        self._notifier = notifier
        self._blocks: dict[str, list[ScreenplayBlock]] = {}
        self._pending: dict[str, dict[int, PendingConfirmation]] = {}
        self._styles: dict[str, Optional[StyleProvider]] = {}

    def register_batch(
        self,
        batch_id: str,
        blocks: list[ScreenplayBlock],
        pending: list[PendingConfirmation],
        style_for: Optional[StyleProvider] = None,
    ) -> None:
        """Remember *blocks* and their pending items and notify once.

        A batch with nothing pending is not kept.
        """
        if not pending:
            return
        self._blocks[batch_id] = blocks
        self._pending[batch_id] = {p.block_index: p for p in pending}
        self._styles[batch_id] = style_for
        log.info("Batch %s: %d line(s) awaiting confirmation", batch_id, len(pending))
        if self._notifier is not None:
            self._notifier(batch_id, len(pending))

    def has_batch(self, batch_id: str) -> bool:
        return batch_id in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def blocks(self, batch_id: str) -> list[ScreenplayBlock]:
        if batch_id not in self._blocks:
            raise UnknownBatchError(batch_id)
        return self._blocks[batch_id]

    def pending(self, batch_id: str) -> list[PendingConfirmation]:
        if batch_id not in self._pending:
            raise UnknownBatchError(batch_id)
        return sorted(self._pending[batch_id].values(), key=lambda p: p.block_index)

    def discard(self, batch_id: str) -> None:
        self._blocks.pop(batch_id, None)
        self._pending.pop(batch_id, None)
        self._styles.pop(batch_id, None)

    async def resolve(
        self,
        batch_id: str,
        callback: Optional[ConfirmationCallback] = None,
        decisions: Optional[Mapping[int, str]] = None,
    ) -> ResolveOutcome:
        """Drain the batch's pending confirmations.

        For every item the final label comes from ``decisions`` when it
        has the item's block index, otherwise from *callback*, otherwise
        from the callback registered with the item.  With none of them
        the suggested label is accepted.  The batch is dropped once no
        item is left pending.
        """
        pending = self.pending(batch_id)
        blocks = self._blocks[batch_id]
        style_for = self._styles.get(batch_id)
        decisions = decisions or {}
        outcome = ResolveOutcome(batch_id=batch_id, resolved={}, unresolved=[], blocks=blocks)

        for item in pending:
            if item.block_index in decisions:
                answer: Optional[str] = decisions[item.block_index]
            else:
                fn = callback or item.callback
                try:
                    answer = await _ask(fn, item) if fn is not None else None
                except Exception:
                    log.warning("Confirmation callback failed for %s; keeping %r",
                                item.correlation_id, item.suggested_label, exc_info=True)
                    outcome.unresolved.append(item.block_index)
                    continue

            final = item.suggested_label if answer is None else answer
            if not _acceptable(final, blocks[item.block_index]):
                log.warning("Confirmation for %s returned unusable label %r; keeping %r",
                            item.correlation_id, final, item.suggested_label)
                outcome.unresolved.append(item.block_index)
                continue

            if final != blocks[item.block_index].label:
                log.info("Confirmation %s: %s -> %s", item.correlation_id, item.suggested_label, final)
            _relabel(blocks, item.block_index, final, style_for)
            outcome.resolved[item.block_index] = final
            del self._pending[batch_id][item.block_index]

        if not self._pending[batch_id]:
            log.info("Batch %s fully confirmed", batch_id)
            self.discard(batch_id)
        return outcome


async def _ask(fn: ConfirmationCallback, item: PendingConfirmation) -> Optional[str]:
    answer = fn(item.line, item.suggested_label, item.confidence)
    if inspect.isawaitable(answer):
        answer = await answer
    return answer


def _acceptable(label: str, block: ScreenplayBlock) -> bool:
    if label not in ALLOWED_LABELS:
        return False
    # A scene-header group needs a number part and a description part.
    if label == SCENE_HEADER_TOP_LINE and block.label != SCENE_HEADER_TOP_LINE:
        return split_scene_header(block.text) is not None
    return True


def _relabel(
    blocks: list[ScreenplayBlock],
    index: int,
    label: str,
    style_for: Optional[StyleProvider] = None,
) -> None:
    """Set the confirmed label on one block and refresh what depends on it."""
    block = blocks[index]
    block.label = label
    block.confidence = 1.0
    block.rule = "confirmed"
    if block.style is not None and style_for is not None:
        block.style = style_for(label)

    if label == SCENE_HEADER_TOP_LINE:
        if not block.children:
            number, description = split_scene_header(block.text)
            block.children = [
                _child(SCENE_HEADER_1, number, block, style_for),
                _child(SCENE_HEADER_2, description, block, style_for),
            ]
    else:
        block.children = []

    previous = blocks[index - 1].label if index > 0 else INITIAL_PREVIOUS_LABEL
    block.margin_top = spacing_before(previous, label)
    if index + 1 < len(blocks):
        following = blocks[index + 1]
        following.margin_top = spacing_before(label, following.label)


def _child(
    label: str,
    text: str,
    parent: ScreenplayBlock,
    style_for: Optional[StyleProvider],
) -> ScreenplayBlock:
    style = style_for(label) if parent.style is not None and style_for is not None else None
    return ScreenplayBlock(label, text, confidence=1.0, rule="confirmed", style=style)
