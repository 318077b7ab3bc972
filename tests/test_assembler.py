from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from presales_research.models.schemas import (
    Annotation,
    ReportSections,
    Stakeholder,
    ToolCall,
)
from presales_research.research.assembler import FALLBACK_NOTE, assemble_report

FIXED = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _clock():
    return FIXED


@pytest.fixture
def sections():
    return ReportSections(
        company_overview="Acme makes widgets.",
        key_stakeholders=[Stakeholder(name="Jane Doe", role="CEO")],
        technology_stack=["Salesforce", "AWS"],
    )


class TestAssembleReport:
    def test_primary_report(self, sections, make_invocation):
        invocation = make_invocation(
            "Acme makes widgets [Acme](https://acme.com).",
            tool_trace=[
                ToolCall(type="web_search_call", action="search", query="acme"),
                ToolCall(type="web_search_call", action="open_page", url="https://acme.com"),
                ToolCall(type="code_interpreter_call"),
            ],
            annotations=[Annotation(title="Acme news", url="https://acme.com/news")],
        )

        report = assemble_report(sections, invocation, company="Acme", fallback_used=False, clock=_clock)

        assert report.company_overview == "Acme makes widgets."
        assert report.technology_stack == ["Salesforce", "AWS"]
        assert report.key_stakeholders[0].name == "Jane Doe"
        assert report.full_report == invocation.raw_text
        assert [c.url for c in report.citations] == ["https://acme.com", "https://acme.com/news"]
        assert report.metadata.company == "Acme"
        assert report.metadata.model_used == invocation.model_used
        assert report.metadata.fallback_used is False
        assert report.metadata.timestamp == FIXED.isoformat()
        assert report.metadata.search_count == 1
        assert report.metadata.pages_read == 1
        assert report.metadata.note is None

    def test_fallback_report_carries_note(self, sections, make_invocation):
        invocation = make_invocation("Fallback text", model="gpt-4o")
        report = assemble_report(sections, invocation, company="Acme", fallback_used=True, clock=_clock)

        assert report.metadata.fallback_used is True
        assert report.metadata.model_used == "gpt-4o"
        assert report.metadata.note == FALLBACK_NOTE
        assert report.metadata.search_count == 0
        assert report.metadata.pages_read == 0

    def test_inputs_are_not_mutated(self, sections, make_invocation):
        before = sections.model_dump()
        invocation = make_invocation("text [Acme](https://acme.com)")
        invocation_before = invocation.model_dump()

        report = assemble_report(sections, invocation, company="Acme", fallback_used=False, clock=_clock)

        assert sections.model_dump() == before
        assert invocation.model_dump() == invocation_before
        assert report.technology_stack is not sections.technology_stack

    def test_empty_sections_keep_defaults(self, make_invocation):
        report = assemble_report(
            ReportSections(), make_invocation(""), company="Acme", fallback_used=False, clock=_clock
        )
        assert report.company_overview == ""
        assert report.recent_developments == []
        assert report.citations == []

    def test_report_is_immutable(self, sections, make_invocation):
        report = assemble_report(sections, make_invocation("x"), company="Acme", fallback_used=False, clock=_clock)
        with pytest.raises(ValidationError):
            report.full_report = "changed"

    def test_wire_shape_is_camel_case(self, sections, make_invocation):
        report = assemble_report(sections, make_invocation("x"), company="Acme", fallback_used=False, clock=_clock)
        payload = report.model_dump(by_alias=True)

        assert "companyOverview" in payload
        assert "keyStakeholders" in payload
        assert "fullReport" in payload
        assert payload["metadata"]["modelUsed"] == report.metadata.model_used
        assert payload["metadata"]["fallbackUsed"] is False
