import pytest

from paste_classifier.intake import (
    SOURCE_EXTRACTED_TEXT,
    SOURCE_STRUCTURED_BLOCKS,
    EmptyImportError,
    choose_source_text,
)
from paste_classifier.styles import DEFAULT_FONT, get_format_styles


def test_extracted_text_wins():
    source, text = choose_source_text("يدخل أحمد", ["سارة"])
    assert source == SOURCE_EXTRACTED_TEXT
    assert text == "يدخل أحمد"


def test_structured_blocks_fallback():
    source, text = choose_source_text("   ", ["  مشهد 1 ", "", "يدخل أحمد"])
    assert source == SOURCE_STRUCTURED_BLOCKS
    assert text == "مشهد 1\nيدخل أحمد"


def test_nothing_to_import():
    with pytest.raises(EmptyImportError):
        choose_source_text(None, [])
    with pytest.raises(EmptyImportError):
        choose_source_text("", ["  "])


def test_format_styles():
    style = get_format_styles("dialogue")
    assert style["font_family"] == DEFAULT_FONT
    assert style["direction"] == "rtl"
    assert style["width"] == "2.5in"

    assert get_format_styles("basmala")["direction"] == "ltr"
    assert get_format_styles("action", size="14pt")["font_size"] == "14pt"
