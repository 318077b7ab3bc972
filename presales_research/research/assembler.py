from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from presales_research.models.schemas import (
    ModelInvocationResult,
    ReportMetadata,
    ReportSections,
    StructuredReport,
)
from presales_research.research.citations import extract_citations

FALLBACK_NOTE = (
    "Generated by the fallback model without live web research; "
    "verify time-sensitive details before use."
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def assemble_report(
    sections: ReportSections,
    invocation: ModelInvocationResult,
    *,
    company: str,
    fallback_used: bool,
    clock: Callable[[], datetime] = utc_now,
) -> StructuredReport:
    """Combine parsed sections, citations and run metadata into the final report."""
    section_values = sections.model_dump(include=set(ReportSections.model_fields))
    metadata = ReportMetadata(
        company=company,
        model_used=invocation.model_used,
        fallback_used=fallback_used,
        timestamp=clock().isoformat(),
        search_count=invocation.search_count,
        pages_read=invocation.pages_read,
        note=FALLBACK_NOTE if fallback_used else None,
    )
    return StructuredReport(
        **section_values,
        citations=extract_citations(invocation.raw_text, invocation.annotations),
        full_report=invocation.raw_text,
        metadata=metadata,
    )
