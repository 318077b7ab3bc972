from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads exchanged with callers: camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


# --- Requests ---


class ResearchRequest(WireModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    company: str = Field(min_length=1)
    industry: Optional[str] = None
    use_case: Optional[str] = None
    requirements: Optional[str] = None

    def echo(self) -> dict[str, str]:
        """Request fields that are set, keyed the way they travel on the wire."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DemoContact(WireModel):
    name: str
    title: Optional[str] = None
    demo_date: Optional[str] = None


class ChecklistRequest(ResearchRequest):
    contact: Optional[DemoContact] = None


# --- Model invocation ---


class ToolCall(WireModel):
    """One tool invocation made by the research model, in call order."""

    type: str
    id: Optional[str] = None
    status: Optional[str] = None
    action: Optional[str] = None
    query: Optional[str] = None
    url: Optional[str] = None


class Annotation(WireModel):
    """Source citation supplied by the model service next to its answer."""

    title: str = ""
    url: str
    start_index: Optional[int] = None
    end_index: Optional[int] = None


class TokenUsage(WireModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


WEB_SEARCH_CALL = "web_search_call"
PAGE_ACTIONS = frozenset({"open_page", "find_in_page"})


class ModelInvocationResult(WireModel):
    raw_text: str
    model_used: str
    tool_trace: list[ToolCall] = Field(default_factory=list)
    annotations: list[Annotation] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @property
    def search_count(self) -> int:
        return sum(
            1
            for call in self.tool_trace
            if call.type == WEB_SEARCH_CALL and call.action not in PAGE_ACTIONS
        )

    @property
    def pages_read(self) -> int:
        return sum(
            1
            for call in self.tool_trace
            if call.type == WEB_SEARCH_CALL and call.action in PAGE_ACTIONS
        )


# --- Reports ---


class Stakeholder(WireModel):
    name: str
    role: str


class Citation(WireModel):
    title: str
    url: str
    start_index: Optional[int] = None
    end_index: Optional[int] = None


class ReportSections(WireModel):
    """Section fields recovered from the model's free text."""

    company_overview: str = ""
    recent_developments: list[str] = Field(default_factory=list)
    key_stakeholders: list[Stakeholder] = Field(default_factory=list)
    technology_stack: list[str] = Field(default_factory=list)
    challenges: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ReportMetadata(WireModel):
    company: str
    model_used: str
    fallback_used: bool
    timestamp: str
    search_count: int = 0
    pages_read: int = 0
    note: Optional[str] = None


class StructuredReport(ReportSections):
    model_config = ConfigDict(frozen=True)

    citations: list[Citation] = Field(default_factory=list)
    full_report: str = ""
    metadata: ReportMetadata


# --- Pre-demo checklist ---


class PreDemoChecklist(WireModel):
    company_overview: str = ""
    recent_news: str = ""
    key_executives: list[Stakeholder] = Field(default_factory=list)
    technology_stack: list[str] = Field(default_factory=list)
    recent_initiatives: list[str] = Field(default_factory=list)
    potential_pain_points: list[str] = Field(default_factory=list)
    competitor_usage: list[str] = Field(default_factory=list)
    budget_indicators: str = ""
    recommended_demo_focus: list[str] = Field(default_factory=list)


class ChecklistMetadata(WireModel):
    company: str
    use_case: Optional[str] = None
    requirements: Optional[str] = None
    model: str
    fallback_used: bool
    tokens: int = 0
    timestamp: str


class ChecklistResponse(WireModel):
    success: bool = True
    checklist: PreDemoChecklist
    metadata: ChecklistMetadata


# --- Catalogue ---


class ModelInfo(WireModel):
    id: str
    role: str
    mode: str
    description: str


class ModelsResponse(WireModel):
    models: list[ModelInfo]
