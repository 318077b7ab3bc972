from __future__ import annotations

from typing import Any

from presales_research.models.events import (
    ProgressStatus,
    ProgressUpdate,
    ResearchComplete,
    ResearchFailed,
)
from presales_research.models.schemas import StructuredReport


def progress(
    status: ProgressStatus,
    message: str,
    *,
    search_count: int | None = None,
    pages_read: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> ProgressUpdate:
    return ProgressUpdate(
        status=status,
        message=message,
        search_count=search_count,
        pages_read=pages_read,
        metadata=metadata,
    )


def initializing(company: str, metadata: dict[str, Any] | None = None) -> ProgressUpdate:
    return progress(
        ProgressStatus.INITIALIZING,
        f"Starting research on {company}...",
        search_count=0,
        pages_read=0,
        metadata=metadata,
    )


def searching(query: str | None, search_count: int, pages_read: int, metadata: dict[str, Any] | None = None) -> ProgressUpdate:
    message = f"Searching the web for {query}..." if query else "Searching the web..."
    return progress(
        ProgressStatus.SEARCHING,
        message,
        search_count=search_count,
        pages_read=pages_read,
        metadata=metadata,
    )


def reading(url: str | None, search_count: int, pages_read: int, metadata: dict[str, Any] | None = None) -> ProgressUpdate:
    message = f"Reading {url}..." if url else f"Reading page {pages_read}..."
    return progress(
        ProgressStatus.READING,
        message,
        search_count=search_count,
        pages_read=pages_read,
        metadata=metadata,
    )


def analyzing(message: str, search_count: int, pages_read: int, metadata: dict[str, Any] | None = None) -> ProgressUpdate:
    return progress(
        ProgressStatus.ANALYZING,
        message,
        search_count=search_count,
        pages_read=pages_read,
        metadata=metadata,
    )


def fallback(reason: str, fallback_model: str, metadata: dict[str, Any] | None = None) -> ProgressUpdate:
    """Plain-language notice that the primary model was skipped."""
    return progress(
        ProgressStatus.FALLBACK,
        f"Primary research model {reason}, using fallback model {fallback_model}.",
        metadata=metadata,
    )


def complete(report: StructuredReport) -> ResearchComplete:
    return ResearchComplete(results=report)


def error(
    message: str,
    details: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ResearchFailed:
    return ResearchFailed(message=message, details=details, metadata=metadata)
