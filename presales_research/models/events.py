from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from presales_research.models.schemas import StructuredReport, WireModel


class EventType(str, Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressStatus(str, Enum):
    INITIALIZING = "initializing"
    SEARCHING = "searching"
    READING = "reading"
    ANALYZING = "analyzing"
    FALLBACK = "fallback"


class _Event(WireModel):
    @property
    def is_terminal(self) -> bool:
        return self.type != EventType.PROGRESS.value

    def to_sse(self) -> dict[str, str]:
        """Frame for sse_starlette: event name plus the JSON-encoded event."""
        return {
            "event": self.type,
            "data": self.model_dump_json(by_alias=True, exclude_none=True),
        }


class ProgressUpdate(_Event):
    type: Literal["progress"] = "progress"
    status: ProgressStatus
    message: str
    search_count: Optional[int] = None
    pages_read: Optional[int] = None
    metadata: Optional[dict[str, Any]] = None


class ResearchComplete(_Event):
    type: Literal["complete"] = "complete"
    results: StructuredReport


class ResearchFailed(_Event):
    type: Literal["error"] = "error"
    message: str
    details: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


ProgressEvent = Annotated[
    Union[ProgressUpdate, ResearchComplete, ResearchFailed],
    Field(discriminator="type"),
]

progress_event_adapter: TypeAdapter[ProgressEvent] = TypeAdapter(ProgressEvent)


def parse_event(payload: str | bytes) -> ProgressUpdate | ResearchComplete | ResearchFailed:
    """Decode one JSON frame back into its event variant."""
    return progress_event_adapter.validate_json(payload)
