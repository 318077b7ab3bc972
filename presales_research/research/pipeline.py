from __future__ import annotations

from datetime import datetime
from typing import Callable

from presales_research.config import Settings
from presales_research.llm_client import ModelService
from presales_research.models.schemas import (
    ChecklistMetadata,
    ChecklistRequest,
    ChecklistResponse,
    ReportSections,
    ResearchRequest,
    StructuredReport,
)
from presales_research.research.assembler import assemble_report, utc_now
from presales_research.research.errors import FallbackExhaustedError, TransportClosedError
from presales_research.research.orchestrator import ModelOrchestrator
from presales_research.research.parser import ReportParser, checklist_parser, report_parser
from presales_research.services import logger as log_service
from presales_research.services import streaming
from presales_research.services.logger import logger
from presales_research.services.progress import ProgressEmitter
from presales_research.services.prompt_store import (
    build_checklist_prompt,
    build_research_prompt,
    render_prompt,
)


class ResearchPipeline:
    """One research run: orchestrate, parse, assemble, report.

    Always ends with exactly one terminal event on the emitter (unless the
    caller disconnected) and always closes the emitter.
    """

    def __init__(
        self,
        service: ModelService,
        config: Settings,
        *,
        parser: ReportParser[ReportSections] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.service = service
        self.config = config
        self.parser = parser or report_parser()
        self.clock = clock

    async def run(self, request: ResearchRequest, emitter: ProgressEmitter) -> StructuredReport | None:
        echo = request.echo()
        log_service.log_event(
            event_type="research_started",
            message="Research started",
            company=request.company,
            model=self.service.primary_model,
        )
        try:
            await emitter.emit(
                streaming.initializing(request.company, {**echo, "model": self.service.primary_model})
            )
            orchestrator = ModelOrchestrator(
                self.service,
                self.config,
                system_prompt=render_prompt("research.system_prompt"),
                fallback_system_prompt=render_prompt("research.fallback_system_prompt"),
                emitter=emitter,
                company=request.company,
                metadata=echo,
            )
            outcome = await orchestrator.run(build_research_prompt(request))
            if emitter.transport_closed:
                raise TransportClosedError("caller disconnected before the report was ready")

            invocation = outcome.result
            await emitter.emit(
                streaming.analyzing(
                    "Analyzing findings and structuring the report...",
                    invocation.search_count,
                    invocation.pages_read,
                    {**echo, "model": invocation.model_used},
                )
            )
            sections = self.parser.parse(invocation.raw_text)
            report = assemble_report(
                sections,
                invocation,
                company=request.company,
                fallback_used=outcome.fallback_used,
                clock=self.clock,
            )
            await emitter.emit(streaming.complete(report))
            log_service.log_event(
                event_type="research_complete",
                message="Research complete",
                company=request.company,
                model=invocation.model_used,
                fallback_used=outcome.fallback_used,
                citations=len(report.citations),
            )
            return report
        except TransportClosedError:
            log_service.log_event(
                event_type="research_abandoned",
                message="Caller disconnected; remaining work skipped",
                company=request.company,
            )
            return None
        except FallbackExhaustedError as exc:
            log_service.log_event(
                event_type="research_failed",
                message=str(exc),
                company=request.company,
                details=exc.details,
            )
            await emitter.emit(streaming.error(str(exc), exc.details, echo))
            return None
        except Exception as exc:
            logger.exception(f"Unhandled error in research pipeline for {request.company}")
            await emitter.emit(
                streaming.error(
                    "Research failed unexpectedly.",
                    f"{type(exc).__name__}: {exc}",
                    echo,
                )
            )
            return None
        finally:
            await emitter.close()


async def generate_checklist(
    service: ModelService,
    config: Settings,
    request: ChecklistRequest,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> ChecklistResponse:
    """Non-streaming pre-demo checklist; raises FallbackExhaustedError on total failure."""
    orchestrator = ModelOrchestrator(
        service,
        config,
        system_prompt=render_prompt("checklist.system_prompt"),
        fallback_system_prompt=render_prompt("checklist.system_prompt"),
        company=request.company,
        metadata=request.echo(),
    )
    outcome = await orchestrator.run(build_checklist_prompt(request))
    invocation = outcome.result
    return ChecklistResponse(
        checklist=checklist_parser().parse(invocation.raw_text),
        metadata=ChecklistMetadata(
            company=request.company,
            use_case=request.use_case,
            requirements=request.requirements,
            model=invocation.model_used,
            fallback_used=outcome.fallback_used,
            tokens=invocation.usage.total_tokens,
            timestamp=clock().isoformat(),
        ),
    )
