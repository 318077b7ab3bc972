from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any

from presales_research.config import Settings
from presales_research.llm_client import ModelService
from presales_research.models.schemas import ModelInvocationResult, ToolCall
from presales_research.research.errors import (
    FallbackExhaustedError,
    ModelCallError,
    ModelTimeoutError,
    ModelUnavailableError,
    TransportClosedError,
)
from presales_research.services import logger as log_service
from presales_research.services import streaming
from presales_research.services.logger import logger
from presales_research.services.progress import ProgressEmitter


class OrchestratorState(str, Enum):
    INIT = "init"
    PRIMARY_ATTEMPT = "primary_attempt"
    PRIMARY_OK = "primary_ok"
    PRIMARY_FAIL = "primary_fail"
    FALLBACK_ATTEMPT = "fallback_attempt"
    FALLBACK_OK = "fallback_ok"
    FALLBACK_FAIL = "fallback_fail"
    DONE = "done"
    TERMINAL_ERROR = "terminal_error"


S = OrchestratorState

# PRIMARY_FAIL -> TERMINAL_ERROR is only taken when the failure is not
# fallback-eligible under the configured policy.
TRANSITIONS: dict[OrchestratorState, frozenset[OrchestratorState]] = {
    S.INIT: frozenset({S.PRIMARY_ATTEMPT}),
    S.PRIMARY_ATTEMPT: frozenset({S.PRIMARY_OK, S.PRIMARY_FAIL}),
    S.PRIMARY_OK: frozenset({S.DONE}),
    S.PRIMARY_FAIL: frozenset({S.FALLBACK_ATTEMPT, S.TERMINAL_ERROR}),
    S.FALLBACK_ATTEMPT: frozenset({S.FALLBACK_OK, S.FALLBACK_FAIL}),
    S.FALLBACK_OK: frozenset({S.DONE}),
    S.FALLBACK_FAIL: frozenset({S.TERMINAL_ERROR}),
    S.DONE: frozenset(),
    S.TERMINAL_ERROR: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    pass


@dataclass(frozen=True)
class OrchestrationOutcome:
    result: ModelInvocationResult
    fallback_used: bool
    primary_failure: ModelCallError | None = None


class ModelOrchestrator:
    """Primary/fallback call sequence for a single request.

    Deadlines apply per attempt, so the worst case is the primary deadline
    plus the fallback deadline. Timeouts and model-unavailable errors always
    lead to the fallback; other primary failures do so only while
    ``fallback_on_unexpected_error`` is enabled. Cancellation is never turned
    into a fallback: it propagates into whichever call is in flight.
    """

    def __init__(
        self,
        service: ModelService,
        config: Settings,
        *,
        system_prompt: str,
        fallback_system_prompt: str,
        emitter: ProgressEmitter | None = None,
        company: str = "",
        metadata: dict[str, Any] | None = None,
    ):
        self.service = service
        self.primary_timeout = float(config.primary_timeout_seconds)
        self.fallback_timeout = float(config.fallback_timeout_seconds)
        self.fallback_on_unexpected_error = bool(config.fallback_on_unexpected_error)
        self.system_prompt = system_prompt
        self.fallback_system_prompt = fallback_system_prompt
        self.emitter = emitter
        self.company = company
        self.metadata = dict(metadata or {})
        self.state = OrchestratorState.INIT
        self.history: list[OrchestratorState] = [OrchestratorState.INIT]
        self.search_count = 0
        self.pages_read = 0

    def _transition(self, new_state: OrchestratorState, **data: Any) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
        log_service.log_research_step(
            company=self.company,
            step_type="orchestrator",
            status=new_state.value,
            data=data or None,
        )

    def _meta(self, model: str) -> dict[str, Any]:
        return {**self.metadata, "model": model}

    async def _emit(self, event: Any) -> None:
        if self.emitter is not None:
            await self.emitter.emit(event)

    async def _on_tool_call(self, call: ToolCall) -> None:
        meta = self._meta(self.service.primary_model)
        if call.type == "web_search_call":
            if call.action in ("open_page", "find_in_page"):
                self.pages_read += 1
                await self._emit(streaming.reading(call.url, self.search_count, self.pages_read, meta))
            else:
                self.search_count += 1
                await self._emit(streaming.searching(call.query, self.search_count, self.pages_read, meta))
        elif call.type == "code_interpreter_call":
            await self._emit(
                streaming.analyzing("Running code analysis on findings...", self.search_count, self.pages_read, meta)
            )

    def _fallback_eligible(self, failure: ModelCallError) -> bool:
        if isinstance(failure, (ModelTimeoutError, ModelUnavailableError)):
            return True
        return self.fallback_on_unexpected_error

    async def _attempt_primary(self, prompt: str) -> ModelInvocationResult:
        model = self.service.primary_model
        try:
            return await asyncio.wait_for(
                self.service.research(
                    prompt,
                    instructions=self.system_prompt,
                    on_tool_call=self._on_tool_call,
                ),
                timeout=self.primary_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ModelTimeoutError(model, self.primary_timeout) from exc
        except ModelCallError:
            raise
        except Exception as exc:
            logger.exception(f"Unexpected failure in primary model call ({model})")
            raise ModelCallError(model, f"{type(exc).__name__}: {exc}") from exc

    async def _attempt_fallback(self, prompt: str) -> ModelInvocationResult:
        model = self.service.fallback_model
        messages = [
            {"role": "system", "content": self.fallback_system_prompt},
            {"role": "user", "content": prompt},
        ]
        try:
            return await asyncio.wait_for(
                self.service.complete(messages),
                timeout=self.fallback_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ModelTimeoutError(model, self.fallback_timeout) from exc
        except ModelCallError:
            raise
        except Exception as exc:
            logger.exception(f"Unexpected failure in fallback model call ({model})")
            raise ModelCallError(model, f"{type(exc).__name__}: {exc}") from exc

    async def run(self, prompt: str) -> OrchestrationOutcome:
        self._transition(OrchestratorState.PRIMARY_ATTEMPT, model=self.service.primary_model)
        try:
            result = await self._attempt_primary(prompt)
        except ModelCallError as exc:
            primary_failure = exc
        else:
            self._transition(
                OrchestratorState.PRIMARY_OK,
                search_count=result.search_count,
                pages_read=result.pages_read,
            )
            self._transition(OrchestratorState.DONE)
            return OrchestrationOutcome(result=result, fallback_used=False)

        self._transition(
            OrchestratorState.PRIMARY_FAIL,
            reason=primary_failure.reason,
            error=str(primary_failure),
        )
        if not self._fallback_eligible(primary_failure):
            self._transition(OrchestratorState.TERMINAL_ERROR)
            raise FallbackExhaustedError(primary_failure, None)
        if self.emitter is not None and self.emitter.transport_closed:
            raise TransportClosedError("caller disconnected before fallback")

        fallback_model = self.service.fallback_model
        self._transition(OrchestratorState.FALLBACK_ATTEMPT, model=fallback_model)
        await self._emit(streaming.fallback(primary_failure.reason, fallback_model, self._meta(fallback_model)))
        try:
            result = await self._attempt_fallback(prompt)
        except ModelCallError as exc:
            self._transition(OrchestratorState.FALLBACK_FAIL, reason=exc.reason, error=str(exc))
            self._transition(OrchestratorState.TERMINAL_ERROR)
            raise FallbackExhaustedError(primary_failure, exc) from exc

        self._transition(OrchestratorState.FALLBACK_OK)
        self._transition(OrchestratorState.DONE)
        return OrchestrationOutcome(
            result=result,
            fallback_used=True,
            primary_failure=primary_failure,
        )
