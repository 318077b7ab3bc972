"""Shared fixtures: fake model service, recording sink, test settings."""
import asyncio
import os

os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

import pytest

from presales_research.config import Settings
from presales_research.models.schemas import ModelInvocationResult, ResearchRequest, ToolCall
from presales_research.research.errors import TransportClosedError

PRIMARY_MODEL = "o4-mini-deep-research-test"
FALLBACK_MODEL = "gpt-4o-test"


class FakeModelService:
    """Scripted stand-in for ResearchModelService.

    ``primary`` / ``fallback`` are either a result to return or an exception
    to raise; ``*_delay`` makes the call sleep first so deadlines can trip.
    """

    primary_model = PRIMARY_MODEL
    fallback_model = FALLBACK_MODEL

    def __init__(
        self,
        *,
        primary=None,
        fallback=None,
        tool_calls=(),
        primary_delay: float = 0.0,
        fallback_delay: float = 0.0,
    ):
        self.primary = primary
        self.fallback = fallback
        self.tool_calls = list(tool_calls)
        self.primary_delay = primary_delay
        self.fallback_delay = fallback_delay
        self.research_calls: list[dict] = []
        self.complete_calls: list[list[dict]] = []

    async def research(self, prompt, *, instructions=None, on_tool_call=None):
        self.research_calls.append({"prompt": prompt, "instructions": instructions})
        for call in self.tool_calls:
            if on_tool_call is not None:
                await on_tool_call(call)
        if self.primary_delay:
            await asyncio.sleep(self.primary_delay)
        if isinstance(self.primary, BaseException):
            raise self.primary
        return self.primary

    async def complete(self, messages):
        self.complete_calls.append(messages)
        if self.fallback_delay:
            await asyncio.sleep(self.fallback_delay)
        if isinstance(self.fallback, BaseException):
            raise self.fallback
        return self.fallback


class RecordingSink:
    """Collects events; optionally behaves as if the caller left after N events."""

    def __init__(self, disconnect_after: int | None = None):
        self.events = []
        self.close_calls = 0
        self.disconnect_after = disconnect_after

    async def send(self, event) -> None:
        if self.disconnect_after is not None and len(self.events) >= self.disconnect_after:
            raise TransportClosedError("caller went away")
        self.events.append(event)

    async def aclose(self) -> None:
        self.close_calls += 1

    @property
    def types(self) -> list[str]:
        return [e.type for e in self.events]

    @property
    def statuses(self) -> list[str]:
        return [e.status.value for e in self.events if e.type == "progress"]


def invocation(text: str, model: str = PRIMARY_MODEL, **kwargs) -> ModelInvocationResult:
    return ModelInvocationResult(raw_text=text, model_used=model, **kwargs)


def search_call(query: str, call_id: str = "ws_1") -> ToolCall:
    return ToolCall(type="web_search_call", id=call_id, status="completed", action="search", query=query)


@pytest.fixture
def fake_service_cls():
    return FakeModelService


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def make_invocation():
    return invocation


@pytest.fixture
def make_search_call():
    return search_call


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        openai_api_key="test",
        primary_timeout_seconds=0.5,
        fallback_timeout_seconds=0.5,
        log_file_enabled=False,
    )


@pytest.fixture
def acme_request() -> ResearchRequest:
    return ResearchRequest(company="Acme", requirements="focus on technology stack")
