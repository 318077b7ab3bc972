"""Heuristic parser turning the model's free-form answer into report sections.

The parser is one ``ReportParser`` strategy among possible others (for example
a schema-constrained model output mode). It scans the text line by line: a
line shaped like a heading that matches an entry of the ordered header table
switches the current section, every other line is offered to the current
section's collector. Nothing here raises on unexpected text; unmatched content
is simply dropped and missing sections keep their empty defaults.

Markdown, bold and colon-terminated headings match on any keyword they
contain. Plain and numbered headings, whatever their case, must consist of the
section phrase plus qualifier words ("Key stakeholders", "3. Technology
Stack"), so a numbered list item such as "1. Expand Team Training" stays an
item.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, Sequence, TypeVar

from pydantic import BaseModel

from presales_research.models.schemas import PreDemoChecklist, ReportSections, Stakeholder

SectionsT = TypeVar("SectionsT", bound=BaseModel)
SectionsT_co = TypeVar("SectionsT_co", bound=BaseModel, covariant=True)


class ReportParser(Protocol[SectionsT_co]):
    def parse(self, raw_text: str) -> SectionsT_co: ...


class SectionKind(str, Enum):
    TEXT = "text"
    LIST = "list"
    STAKEHOLDERS = "stakeholders"


@dataclass(frozen=True)
class HeaderRule:
    pattern: re.Pattern[str]
    field: str
    kind: SectionKind


def rule(pattern: str, field: str, kind: SectionKind) -> HeaderRule:
    return HeaderRule(re.compile(pattern, re.IGNORECASE), field, kind)


REPORT_HEADER_RULES: tuple[HeaderRule, ...] = (
    rule(r"company overview|executive summary|\boverview\b|\babout\b", "company_overview", SectionKind.TEXT),
    rule(r"recent news|recent developments|\bnews\b|developments", "recent_developments", SectionKind.LIST),
    rule(
        r"stakeholders|leadership|executives|decision[- ]makers|\bteam\b",
        "key_stakeholders",
        SectionKind.STAKEHOLDERS,
    ),
    rule(r"technology|tech stack", "technology_stack", SectionKind.LIST),
    rule(r"challenges|pain points", "challenges", SectionKind.LIST),
    rule(r"opportunit", "opportunities", SectionKind.LIST),
    rule(r"recommendation|next steps", "recommendations", SectionKind.LIST),
)

CHECKLIST_HEADER_RULES: tuple[HeaderRule, ...] = (
    rule(r"company overview|\boverview\b", "company_overview", SectionKind.TEXT),
    rule(r"recent news|\bnews\b", "recent_news", SectionKind.TEXT),
    rule(r"key executives|executives|leadership|decision[- ]makers", "key_executives", SectionKind.STAKEHOLDERS),
    rule(r"technology|tech stack", "technology_stack", SectionKind.LIST),
    rule(r"recent initiatives|initiatives", "recent_initiatives", SectionKind.LIST),
    rule(r"pain points|challenges", "potential_pain_points", SectionKind.LIST),
    rule(r"competitor", "competitor_usage", SectionKind.LIST),
    rule(r"budget", "budget_indicators", SectionKind.TEXT),
    rule(r"demo focus|recommend", "recommended_demo_focus", SectionKind.LIST),
)

BULLET_RE = re.compile(r"^\s*(?:[-•*]|\d+\.)\s+(.*?)\s*$")
NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.*?)\s*$")
MARKDOWN_HEADING_RE = re.compile(r"^\s*#{1,6}\s+(.*?)\s*#*\s*$")
BOLD_LINE_RE = re.compile(r"^\s*(?:\d+[.)]\s*)?\*\*(.+?)\*\*\s*:?\s*$")
STAKEHOLDER_RE = re.compile(r"^(?P<name>.+?)(?:\s*:\s*|\s+[-–—]\s+)(?P<role>.+)$")

WORD_RE = re.compile(r"[\w&]+")

MAX_HEADING_WORDS = 6
# Words allowed around the section phrase in a plain heading.
HEADING_QUALIFIERS = frozenset(
    {
        "key", "recent", "potential", "current", "main", "major", "notable",
        "strategic", "sales", "recommended", "stack", "usage", "indicators",
        "and", "&", "of", "the", "our",
    }
)


@dataclass(frozen=True)
class HeadingCandidate:
    text: str
    # markdown, bold or colon-terminated
    explicit: bool


def heading_candidate(line: str) -> HeadingCandidate | None:
    """Return the heading words if the line is shaped like a section heading."""
    stripped = line.strip()
    if not stripped:
        return None

    match = MARKDOWN_HEADING_RE.match(stripped) or BOLD_LINE_RE.match(stripped)
    if match:
        text, explicit = match.group(1), True
    elif stripped[0] in "-•*":
        return None
    else:
        numbered = NUMBERED_RE.match(stripped)
        text = numbered.group(1) if numbered else stripped
        explicit = text.endswith(":")

    text = text.strip().strip("*").strip().rstrip(":").strip()
    if not text or text[-1] in ".!?":
        return None
    if len(text.split()) > MAX_HEADING_WORDS:
        return None
    return HeadingCandidate(text, explicit)


def heading_text(line: str) -> str | None:
    candidate = heading_candidate(line)
    return candidate.text if candidate is not None else None


def covers_heading(pattern: re.Pattern[str], text: str) -> bool:
    """True when ``text`` is only ``pattern`` matches (widened to whole words) and qualifiers."""
    leftover: list[str] = []
    last = 0
    for match in pattern.finditer(text):
        start, end = match.start(), match.end()
        while start > 0 and text[start - 1].isalnum():
            start -= 1
        while end < len(text) and text[end].isalnum():
            end += 1
        if start > last:
            leftover.append(text[last:start])
        last = max(last, end)
    if last == 0:
        return False
    leftover.append(text[last:])
    words = WORD_RE.findall(" ".join(leftover).lower())
    return all(word in HEADING_QUALIFIERS for word in words)


def _strip_emphasis(text: str) -> str:
    return text.replace("**", "").strip()


class SectionParser(Generic[SectionsT]):
    """Table-driven line scanner producing an instance of ``model``.

    ``default_field`` receives lines that appear before any recognised
    heading.
    """

    def __init__(
        self,
        rules: Sequence[HeaderRule],
        model: type[SectionsT],
        default_field: str,
    ):
        self.rules = tuple(rules)
        self.model = model
        kinds = {r.field: r.kind for r in self.rules}
        if default_field not in kinds:
            raise ValueError(f"default section {default_field!r} is not in the header table")
        self.default_field = default_field
        self._kinds = kinds

    def match_header(self, line: str) -> HeaderRule | None:
        candidate = heading_candidate(line)
        if candidate is None:
            return None
        for header in self.rules:
            if candidate.explicit:
                if header.pattern.search(candidate.text):
                    return header
            elif covers_heading(header.pattern, candidate.text):
                return header
        return None

    def parse(self, raw_text: str) -> SectionsT:
        text_buffers: dict[str, list[str]] = {}
        list_buffers: dict[str, list[str]] = {}
        stakeholder_buffers: dict[str, list[Stakeholder]] = {}

        current = self.default_field
        for line in (raw_text or "").splitlines():
            header = self.match_header(line)
            if header is not None:
                current = header.field
                continue

            kind = self._kinds[current]
            if kind is SectionKind.TEXT:
                text_buffers.setdefault(current, []).append(line)
            elif kind is SectionKind.LIST:
                item = self._list_item(line)
                if item:
                    list_buffers.setdefault(current, []).append(item)
            else:
                person = self._stakeholder(line)
                if person is not None:
                    stakeholder_buffers.setdefault(current, []).append(person)

        values: dict[str, object] = {}
        for field, lines in text_buffers.items():
            values[field] = "\n".join(lines).strip()
        values.update(list_buffers)
        values.update(stakeholder_buffers)
        return self.model(**values)

    @staticmethod
    def _list_item(line: str) -> str | None:
        match = BULLET_RE.match(line)
        if not match:
            return None
        return match.group(1).strip() or None

    @staticmethod
    def _stakeholder(line: str) -> Stakeholder | None:
        stripped = line.strip()
        if not stripped:
            return None
        bullet = BULLET_RE.match(stripped)
        if bullet:
            stripped = bullet.group(1)
        match = STAKEHOLDER_RE.match(stripped)
        if not match:
            return None
        name = _strip_emphasis(match.group("name"))
        role = _strip_emphasis(match.group("role"))
        if not name or not role:
            return None
        return Stakeholder(name=name, role=role)


def report_parser() -> SectionParser[ReportSections]:
    return SectionParser(REPORT_HEADER_RULES, ReportSections, "company_overview")


def checklist_parser() -> SectionParser[PreDemoChecklist]:
    return SectionParser(CHECKLIST_HEADER_RULES, PreDemoChecklist, "company_overview")
