"""Import intake.

Chooses the text an imported file feeds into the paste pipeline: the
extracted plain text when there is any, otherwise the texts of the
extractor's structured blocks joined one per line.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

log = logging.getLogger(__name__)

SOURCE_EXTRACTED_TEXT = "extracted-text"
SOURCE_STRUCTURED_BLOCKS = "structured-blocks"


class EmptyImportError(ValueError):
    """The import carried no usable text."""


def choose_source_text(
    text: Optional[str],
    structured_blocks: Optional[Sequence[str]] = None,
) -> tuple[str, str]:
    """Return ``(source, text)`` or raise ``EmptyImportError``."""
    if text and text.strip():
        return SOURCE_EXTRACTED_TEXT, text

    joined = "\n".join(b.strip() for b in structured_blocks or () if b and b.strip())
    if joined:
        log.info("Import: no extracted text, using %d structured block(s)",
                 len(joined.split("\n")))
        return SOURCE_STRUCTURED_BLOCKS, joined

    raise EmptyImportError("No text found in the imported file")
