import asyncio

import pytest

from paste_classifier.confirmations import ConfirmationQueue, PendingConfirmation, UnknownBatchError
from paste_classifier.models import (
    ACTION,
    CHARACTER,
    DIALOGUE,
    SCENE_HEADER_1,
    SCENE_HEADER_2,
    SCENE_HEADER_TOP_LINE,
    ScreenplayBlock,
)
from paste_classifier.nodes.spacing import BASE_SPACING, NO_GAP, PARAGRAPH_GAP
from paste_classifier.styles import get_format_styles


def make_batch():
    blocks = [
        ScreenplayBlock(ACTION, "الشمس تغرب", margin_top=PARAGRAPH_GAP, confidence=0.7),
        ScreenplayBlock(CHARACTER, "سارة", margin_top=PARAGRAPH_GAP, confidence=0.5, rule="likely_character"),
        ScreenplayBlock(DIALOGUE, "هل رأيت المفتاح الذي تركته هنا؟", margin_top=NO_GAP, confidence=0.8),
    ]
    pending = [PendingConfirmation("b1", 1, "سارة", CHARACTER, 0.5)]
    return blocks, pending


def test_correlation_id():
    item = PendingConfirmation("b1", 4, "سارة", CHARACTER, 0.5)
    assert item.correlation_id == "b1:4"
    assert item.to_dict()["correlation_id"] == "b1:4"


def test_notifier_called_once_per_batch():
    calls = []
    queue = ConfirmationQueue(notifier=lambda batch_id, count: calls.append((batch_id, count)))
    blocks, pending = make_batch()
    pending.append(PendingConfirmation("b1", 0, "الشمس تغرب", ACTION, 0.6))

    queue.register_batch("b1", blocks, pending)
    assert calls == [("b1", 2)]


def test_notifier_not_called_without_pending():
    calls = []
    queue = ConfirmationQueue(notifier=lambda batch_id, count: calls.append(count))
    queue.register_batch("b1", make_batch()[0], [])
    assert calls == []
    assert not queue.has_batch("b1")


def test_unknown_batch():
    queue = ConfirmationQueue()
    assert not queue.has_batch("missing")
    with pytest.raises(UnknownBatchError):
        queue.pending("missing")
    with pytest.raises(UnknownBatchError):
        asyncio.run(queue.resolve("missing"))


def test_callback_relabels_only_its_block():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)

    outcome = asyncio.run(queue.resolve("b1", callback=lambda line, label, confidence: ACTION))

    assert outcome.resolved == {1: ACTION}
    assert outcome.unresolved == []
    assert [b.label for b in blocks] == [ACTION, ACTION, DIALOGUE]
    assert blocks[1].confidence == 1.0
    assert blocks[1].rule == "confirmed"
    assert outcome.blocks is blocks
    assert not queue.has_batch("b1")


def test_relabel_refreshes_spacing_around_block():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)

    asyncio.run(queue.resolve("b1", decisions={1: ACTION}))

    assert blocks[1].margin_top == PARAGRAPH_GAP  # action -> action
    assert blocks[2].margin_top == BASE_SPACING  # action -> dialogue


def test_async_callback():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)

    async def confirm(line, label, confidence):
        return DIALOGUE

    asyncio.run(queue.resolve("b1", callback=confirm))
    assert blocks[1].label == DIALOGUE


def test_registered_callback_is_used():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    seen = []

    def confirm(line, label, confidence):
        seen.append((line, label, confidence))
        return None

    pending[0].callback = confirm
    queue.register_batch("b1", blocks, pending)
    outcome = asyncio.run(queue.resolve("b1"))

    assert seen == [("سارة", CHARACTER, 0.5)]
    assert outcome.resolved == {1: CHARACTER}
    assert blocks[1].label == CHARACTER


def test_decision_beats_callback():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)

    asyncio.run(queue.resolve("b1", callback=lambda *args: DIALOGUE, decisions={1: ACTION}))
    assert blocks[1].label == ACTION


def test_failing_callback_leaves_item_pending():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)

    def broken(line, label, confidence):
        raise RuntimeError("dialog closed")

    outcome = asyncio.run(queue.resolve("b1", callback=broken))

    assert outcome.resolved == {}
    assert outcome.unresolved == [1]
    assert blocks[1].label == CHARACTER
    assert blocks[1].confidence == 0.5
    assert [p.block_index for p in queue.pending("b1")] == [1]
    assert queue.has_batch("b1")

    asyncio.run(queue.resolve("b1", callback=lambda *args: ACTION))
    assert blocks[1].label == ACTION
    assert not queue.has_batch("b1")


def test_unknown_label_leaves_item_pending():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)

    outcome = asyncio.run(queue.resolve("b1", decisions={1: "narrator"}))

    assert outcome.unresolved == [1]
    assert blocks[1].label == CHARACTER


def test_discard():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)
    queue.discard("b1")
    assert not queue.has_batch("b1")


def test_batches_without_pending_are_not_kept():
    queue = ConfirmationQueue()
    for i in range(50):
        queue.register_batch(f"b{i}", make_batch()[0], [])
    assert len(queue) == 0


def test_partially_resolved_batch_is_kept():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    pending.insert(0, PendingConfirmation("b1", 0, "الشمس تغرب", ACTION, 0.6))
    queue.register_batch("b1", blocks, pending)

    def confirm(line, label, confidence):
        if line == "سارة":
            raise RuntimeError("dialog closed")
        return None

    outcome = asyncio.run(queue.resolve("b1", callback=confirm))

    assert outcome.resolved == {0: ACTION}
    assert [p.block_index for p in queue.pending("b1")] == [1]
    assert len(queue) == 1


def test_relabel_restyles_styled_blocks():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    for block in blocks:
        block.style = get_format_styles(block.label)
    queue.register_batch("b1", blocks, pending, style_for=get_format_styles)

    asyncio.run(queue.resolve("b1", decisions={1: DIALOGUE}))

    assert blocks[1].style == get_format_styles(DIALOGUE)
    assert blocks[1].style != get_format_styles(CHARACTER)


def test_relabel_leaves_unstyled_blocks_unstyled():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending, style_for=get_format_styles)

    asyncio.run(queue.resolve("b1", decisions={1: ACTION}))
    assert blocks[1].style is None


def test_relabel_to_scene_header_builds_children():
    queue = ConfirmationQueue()
    header = "مشهد 3 - خارجي نهار"
    blocks = [ScreenplayBlock(ACTION, header, margin_top=PARAGRAPH_GAP, confidence=0.6,
                              style=get_format_styles(ACTION))]
    queue.register_batch("b1", blocks, [PendingConfirmation("b1", 0, header, ACTION, 0.6)],
                         style_for=get_format_styles)

    outcome = asyncio.run(queue.resolve("b1", decisions={0: SCENE_HEADER_TOP_LINE}))

    assert outcome.resolved == {0: SCENE_HEADER_TOP_LINE}
    children = blocks[0].children
    assert [(c.label, c.text) for c in children] == [
        (SCENE_HEADER_1, "مشهد 3"),
        (SCENE_HEADER_2, "خارجي نهار"),
    ]
    assert children[0].style == get_format_styles(SCENE_HEADER_1)
    assert blocks[0].style == get_format_styles(SCENE_HEADER_TOP_LINE)


def test_scene_header_label_rejected_for_line_without_cue():
    queue = ConfirmationQueue()
    blocks, pending = make_batch()
    queue.register_batch("b1", blocks, pending)

    outcome = asyncio.run(queue.resolve("b1", decisions={1: SCENE_HEADER_TOP_LINE}))

    assert outcome.unresolved == [1]
    assert blocks[1].label == CHARACTER
    assert blocks[1].children == []
    assert queue.has_batch("b1")


def test_relabel_away_from_scene_header_drops_children():
    queue = ConfirmationQueue()
    header = "مشهد 3 - خارجي نهار"
    block = ScreenplayBlock(SCENE_HEADER_TOP_LINE, header, confidence=0.6, children=[
        ScreenplayBlock(SCENE_HEADER_1, "مشهد 3"),
        ScreenplayBlock(SCENE_HEADER_2, "خارجي نهار"),
    ])
    queue.register_batch("b1", [block], [PendingConfirmation("b1", 0, header, SCENE_HEADER_TOP_LINE, 0.6)])

    asyncio.run(queue.resolve("b1", decisions={0: ACTION}))

    assert block.label == ACTION
    assert block.children == []
