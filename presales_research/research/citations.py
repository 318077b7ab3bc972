from __future__ import annotations

import re
from typing import Iterable

from presales_research.models.schemas import Annotation, Citation

MARKDOWN_LINK_RE = re.compile(r"\[([^\[\]]+)\]\((https?://[^\s)]+)\)")


def inline_citations(raw_text: str) -> list[Citation]:
    """Markdown ``[title](url)`` links in the order they appear."""
    return [
        Citation(title=match.group(1).strip(), url=match.group(2))
        for match in MARKDOWN_LINK_RE.finditer(raw_text or "")
    ]


def annotation_citations(annotations: Iterable[Annotation]) -> list[Citation]:
    return [
        Citation(
            title=ann.title or ann.url,
            url=ann.url,
            start_index=ann.start_index,
            end_index=ann.end_index,
        )
        for ann in annotations
    ]


def extract_citations(raw_text: str, annotations: Iterable[Annotation] = ()) -> list[Citation]:
    """Inline links first, then model annotations. Duplicates are kept."""
    return inline_citations(raw_text) + annotation_citations(annotations)
