"""OpenAI model service with the two call modes the research pipeline uses.

* ``research``: Responses API with web search (and optionally code execution)
  enabled. Streams typed events; tool calls are surfaced to the caller as they
  finish so progress can be reported while the model is still working.
* ``complete``: plain Chat Completions, no tools.

Both calls consume a stream of heterogeneous chunks and fold it into a
``ModelInvocationResult`` through an explicit accumulator that ends in either
``StreamState.DONE`` or ``StreamState.FAILED``.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import openai

from presales_research.config import Settings
from presales_research.models.schemas import (
    Annotation,
    ModelInvocationResult,
    TokenUsage,
    ToolCall,
)
from presales_research.research.errors import ModelCallError, ModelUnavailableError
from presales_research.services import logger as log_service

ToolCallHook = Callable[[ToolCall], Awaitable[None]]

TOOL_ITEM_TYPES = frozenset(
    {"web_search_call", "code_interpreter_call", "file_search_call", "mcp_call"}
)


class ModelService(Protocol):
    """What the orchestrator needs from a model backend."""

    primary_model: str
    fallback_model: str

    async def research(
        self,
        prompt: str,
        *,
        instructions: str | None = None,
        on_tool_call: ToolCallHook | None = None,
    ) -> ModelInvocationResult: ...

    async def complete(self, messages: list[dict[str, str]]) -> ModelInvocationResult: ...


class StreamState(str, Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StreamAccumulator:
    """Fold state for one streamed model call."""

    model: str
    state: StreamState = StreamState.RUNNING
    text_parts: list[str] = field(default_factory=list)
    final_text: str | None = None
    tool_trace: list[ToolCall] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None
    error: str | None = None
    error_code: str | None = None

    def fail(self, message: str, code: str | None = None) -> None:
        self.state = StreamState.FAILED
        self.error = message
        self.error_code = code

    def result(self) -> ModelInvocationResult:
        if self.state is StreamState.RUNNING:
            self.fail("stream ended before the model finished")
        if self.state is StreamState.FAILED:
            message = self.error or "model call failed"
            if self.error_code == "model_not_found":
                raise ModelUnavailableError(self.model, message)
            raise ModelCallError(self.model, message)
        text = self.final_text if self.final_text is not None else "".join(self.text_parts)
        return ModelInvocationResult(
            raw_text=text,
            model_used=self.model,
            tool_trace=list(self.tool_trace),
            annotations=list(self.annotations),
            usage=self.usage,
        )


# --- Responses API mapping ---


def tool_call_from_item(item: Any) -> ToolCall:
    action = getattr(item, "action", None)
    action_type = getattr(action, "type", None) if action is not None else None
    query = getattr(action, "query", None) if action is not None else None
    url = getattr(action, "url", None) if action is not None else None
    return ToolCall(
        type=getattr(item, "type", "unknown"),
        id=getattr(item, "id", None),
        status=getattr(item, "status", None),
        action=action_type,
        query=query,
        url=url,
    )


def _message_contents(response: Any) -> list[Any]:
    contents: list[Any] = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                contents.append(content)
    return contents


def output_text(response: Any) -> str:
    text = getattr(response, "output_text", None)
    if isinstance(text, str) and text:
        return text
    return "".join(getattr(c, "text", "") or "" for c in _message_contents(response))


def annotations_from_response(response: Any) -> list[Annotation]:
    annotations: list[Annotation] = []
    for content in _message_contents(response):
        for ann in getattr(content, "annotations", None) or []:
            if getattr(ann, "type", "url_citation") != "url_citation":
                continue
            url = getattr(ann, "url", None)
            if not url:
                continue
            annotations.append(
                Annotation(
                    title=getattr(ann, "title", None) or "",
                    url=url,
                    start_index=getattr(ann, "start_index", None),
                    end_index=getattr(ann, "end_index", None),
                )
            )
    return annotations


def _usage_from_response(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    return TokenUsage(
        input_tokens=getattr(usage, "input_tokens", 0) or 0,
        output_tokens=getattr(usage, "output_tokens", 0) or 0,
    )


def _finish_from_response(acc: StreamAccumulator, response: Any) -> None:
    acc.final_text = output_text(response)
    acc.annotations = annotations_from_response(response)
    acc.usage = _usage_from_response(response)
    if not acc.tool_trace:
        acc.tool_trace = [
            tool_call_from_item(item)
            for item in getattr(response, "output", None) or []
            if getattr(item, "type", None) in TOOL_ITEM_TYPES
        ]


def apply_response_event(acc: StreamAccumulator, event: Any) -> ToolCall | None:
    """Fold one Responses stream event; returns a tool call when one just finished."""
    etype = getattr(event, "type", "")

    if etype == "response.output_text.delta":
        acc.text_parts.append(getattr(event, "delta", "") or "")
        return None

    if etype == "response.output_item.done":
        item = getattr(event, "item", None)
        if getattr(item, "type", None) in TOOL_ITEM_TYPES:
            call = tool_call_from_item(item)
            acc.tool_trace.append(call)
            return call
        return None

    if etype == "response.completed":
        _finish_from_response(acc, event.response)
        acc.state = StreamState.DONE
        return None

    if etype == "response.incomplete":
        _finish_from_response(acc, event.response)
        if acc.final_text:
            acc.state = StreamState.DONE
        else:
            details = getattr(event.response, "incomplete_details", None)
            acc.fail(f"response incomplete: {getattr(details, 'reason', 'unknown')}")
        return None

    if etype == "response.failed":
        err = getattr(event.response, "error", None)
        acc.fail(
            getattr(err, "message", None) or "response failed",
            getattr(err, "code", None),
        )
        return None

    if etype == "error":
        acc.fail(getattr(event, "message", None) or "stream error", getattr(event, "code", None))
        return None

    return None


# --- Chat Completions mapping ---


def apply_completion_chunk(acc: StreamAccumulator, chunk: Any) -> None:
    usage = getattr(chunk, "usage", None)
    if usage:
        acc.usage = TokenUsage(
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )

    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return
    choice = choices[0]
    delta = getattr(choice, "delta", None)
    text = getattr(delta, "content", None) if delta is not None else None
    if text:
        acc.text_parts.append(text)
    reason = getattr(choice, "finish_reason", None)
    if reason:
        acc.finish_reason = reason


def finish_completion(acc: StreamAccumulator) -> None:
    """Terminal transition once the chunk stream is exhausted."""
    if acc.finish_reason == "content_filter":
        acc.fail("completion blocked by content filter")
    elif acc.finish_reason or acc.text_parts:
        acc.state = StreamState.DONE
    else:
        acc.fail("completion stream ended without content")


def classify_error(exc: Exception, model: str) -> ModelCallError:
    """Map SDK exceptions onto the pipeline's error taxonomy."""
    if isinstance(exc, openai.NotFoundError):
        return ModelUnavailableError(model, str(exc))
    code = getattr(exc, "code", None)
    if code == "model_not_found":
        return ModelUnavailableError(model, str(exc))
    if isinstance(exc, openai.PermissionDeniedError) and "model" in str(exc).lower():
        return ModelUnavailableError(model, str(exc))
    return ModelCallError(model, str(exc))


class ResearchModelService:
    """Process-scoped handle on the OpenAI client.

    Built once (FastAPI lifespan or CLI run) and passed to whatever needs it;
    ``aclose`` releases the underlying HTTP pool.
    """

    def __init__(
        self,
        openai_client: Any,
        *,
        primary_model: str,
        fallback_model: str,
        enable_code_interpreter: bool = True,
        fallback_max_tokens: int = 2000,
        fallback_temperature: float = 0.7,
    ):
        self._client = openai_client
        self.primary_model = primary_model
        self.fallback_model = fallback_model
        self.enable_code_interpreter = enable_code_interpreter
        self.fallback_max_tokens = fallback_max_tokens
        self.fallback_temperature = fallback_temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResearchModelService":
        from openai import AsyncOpenAI

        kwargs: dict[str, Any] = {"api_key": settings.openai_api_key}
        base_url = settings.openai_base_url.strip()
        if base_url:
            kwargs["base_url"] = base_url
        return cls(
            AsyncOpenAI(**kwargs),
            primary_model=settings.primary_model,
            fallback_model=settings.fallback_model,
            enable_code_interpreter=settings.primary_enable_code_interpreter,
            fallback_max_tokens=settings.fallback_max_tokens,
            fallback_temperature=settings.fallback_temperature,
        )

    async def aclose(self) -> None:
        await self._client.close()

    def research_tools(self) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = [{"type": "web_search_preview"}]
        if self.enable_code_interpreter:
            tools.append({"type": "code_interpreter", "container": {"type": "auto"}})
        return tools

    async def research(
        self,
        prompt: str,
        *,
        instructions: str | None = None,
        on_tool_call: ToolCallHook | None = None,
    ) -> ModelInvocationResult:
        model = self.primary_model
        acc = StreamAccumulator(model=model)
        kwargs: dict[str, Any] = {
            "model": model,
            "input": prompt,
            "tools": self.research_tools(),
            "stream": True,
        }
        if instructions:
            kwargs["instructions"] = instructions

        t0 = time.monotonic()
        try:
            stream = await self._client.responses.create(**kwargs)
            async with stream:
                async for event in stream:
                    call = apply_response_event(acc, event)
                    if call is not None and on_tool_call is not None:
                        await on_tool_call(call)
                    if acc.state is not StreamState.RUNNING:
                        break
            result = acc.result()
        except ModelCallError as exc:
            self._log(model, "primary", t0, acc.usage, error=str(exc))
            raise
        except openai.OpenAIError as exc:
            self._log(model, "primary", t0, acc.usage, error=str(exc))
            raise classify_error(exc, model) from exc

        self._log(model, "primary", t0, result.usage)
        return result

    async def complete(self, messages: list[dict[str, str]]) -> ModelInvocationResult:
        model = self.fallback_model
        acc = StreamAccumulator(model=model)

        t0 = time.monotonic()
        try:
            stream = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self.fallback_max_tokens,
                temperature=self.fallback_temperature,
                stream=True,
                stream_options={"include_usage": True},
            )
            async with stream:
                async for chunk in stream:
                    apply_completion_chunk(acc, chunk)
            finish_completion(acc)
            result = acc.result()
        except ModelCallError as exc:
            self._log(model, "fallback", t0, acc.usage, error=str(exc))
            raise
        except openai.OpenAIError as exc:
            self._log(model, "fallback", t0, acc.usage, error=str(exc))
            raise classify_error(exc, model) from exc

        self._log(model, "fallback", t0, result.usage)
        return result

    async def probe(self, model: str, mode: str) -> str | None:
        """Cheap availability check; returns an error message or None when usable."""
        try:
            if mode == "responses":
                await self._client.responses.create(
                    model=model,
                    input="Test model availability",
                    tools=[{"type": "web_search_preview"}],
                )
            else:
                await self._client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": "Test model availability"}],
                    max_tokens=10,
                )
        except openai.OpenAIError as exc:
            return str(classify_error(exc, model))
        return None

    @staticmethod
    def _log(
        model: str,
        caller: str,
        t0: float,
        usage: TokenUsage,
        error: str | None = None,
    ) -> None:
        log_service.log_llm_call(
            model=model,
            caller=caller,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
            status="error" if error else "success",
            error=error,
        )
