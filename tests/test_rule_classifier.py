from paste_classifier.models import (
    ACTION,
    BASMALA,
    CHARACTER,
    DIALOGUE,
    PARENTHETICAL,
    SCENE_HEADER_1,
    SCENE_HEADER_2,
    SCENE_HEADER_3,
    SCENE_HEADER_TOP_LINE,
    TRANSITION,
)
from paste_classifier.nodes.context_window import build_context
from paste_classifier.nodes.normalizer import strip_leading_bullets
from paste_classifier.nodes.rule_classifier import classify_line

BULLET = chr(0x2022)
LONG_ACTION = (
    "الغرفة مظلمة تماما والرياح تعصف بالنوافذ القديمة بينما تتساقط الأمطار "
    "بغزارة على السطح المعدني للمنزل المهجور في أطراف المدينة."
)


def classify(lines, index=0, history=()):
    line = strip_leading_bullets(lines[index].strip())
    return classify_line(line, build_context(lines, index, list(history)))


def test_basmala_wins_regardless_of_history():
    for history in ([], [CHARACTER], [DIALOGUE, DIALOGUE], [SCENE_HEADER_2]):
        decision = classify(["بسم الله الرحمن الرحيم"], 0, history)
        assert decision.label == BASMALA
        assert decision.confidence == 0.95


def test_complete_scene_header():
    decision = classify(["مشهد 1 - داخلي ليل"])
    assert decision.label == SCENE_HEADER_TOP_LINE
    assert decision.rule == "complete_scene_header"


def test_scene_number_alone():
    assert classify(["مشهد 12"]).label == SCENE_HEADER_1


def test_time_and_place_alone():
    assert classify(["مشهد 1", "داخلي - ليل"], 1, [SCENE_HEADER_1]).label == SCENE_HEADER_2


def test_transition():
    assert classify(["قطع إلى:"], 0, [ACTION]).label == TRANSITION


def test_bulleted_prose_is_action():
    decision = classify([BULLET + " الشمس تغرب ببطء"], 0, [DIALOGUE])
    assert decision.label == ACTION
    assert decision.rule == "bullet_prose"


def test_parenthetical_only_inside_dialogue():
    lines = ["علي:", "(بهدوء)"]
    assert classify(lines, 1, [CHARACTER]).label == PARENTHETICAL
    assert classify(lines, 1, [ACTION]).label == ACTION


def test_action_verb_beats_dialogue_context():
    decision = classify(["علي:", "يدخل أحمد إلى الغرفة"], 1, [CHARACTER])
    assert decision.label == ACTION
    assert decision.rule == "action_opener"
    assert decision.confidence == 0.85


def test_location_line_after_scene_heading():
    decision = classify(["داخلي - ليل", "منزل أحمد - الصالة"], 1, [SCENE_HEADER_2])
    assert decision.label == SCENE_HEADER_3
    assert decision.confidence == 0.8


def test_dialogue_after_cue():
    lines = ["أحمد:", "أين كنت طوال هذا الوقت يا صديقي."]
    decision = classify(lines, 1, [CHARACTER])
    assert decision.label == DIALOGUE
    assert decision.rule == "dialogue_after_cue"


def test_dialogue_after_parenthetical():
    lines = ["أحمد:", "(بهدوء)", "لا أعرف ماذا أقول لك الآن."]
    assert classify(lines, 2, [CHARACTER, PARENTHETICAL]).label == DIALOGUE


def test_dialogue_continuation():
    lines = ["أحمد:", "أين كنت؟", "هذا ليس عدلا يا صديقي."]
    decision = classify(lines, 2, [CHARACTER, DIALOGUE])
    assert decision.label == DIALOGUE
    assert decision.rule == "dialogue_continuation"


def test_short_colon_line_is_low_confidence_character():
    decision = classify(["علي:"], 0, [ACTION])
    assert decision.label == CHARACTER
    assert decision.rule == "colon_character"
    assert decision.confidence == 0.6


def test_short_line_before_long_line_is_likely_character():
    decision = classify(["سارة", "هل رأيت المفتاح الذي تركته هنا؟"])
    assert decision.label == CHARACTER
    assert decision.rule == "likely_character"
    assert decision.confidence == 0.5


def test_no_character_right_after_character():
    decision = classify(["سارة", "هل رأيت المفتاح الذي تركته هنا؟"], 0, [CHARACTER])
    assert decision.label == ACTION


def test_short_line_before_short_line_is_action():
    assert classify(["سارة", "نعم"]).label == ACTION


def test_long_punctuated_line_is_action():
    decision = classify([LONG_ACTION])
    assert decision.label == ACTION
    assert decision.rule == "long_sentence"
    assert decision.confidence == 0.75


def test_default_is_action():
    decision = classify(["الشمس تغرب"])
    assert decision.label == ACTION
    assert decision.rule == "default"
    assert decision.confidence == 0.7


def test_deterministic_for_same_context():
    lines = ["سارة", "هل رأيت المفتاح الذي تركته هنا؟"]
    assert classify(lines, 0, []) == classify(lines, 0, [])
