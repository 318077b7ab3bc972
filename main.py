"""Presales Research - company research from the command line.

    python main.py research --company "Acme" --requirements "focus on technology stack"
    python main.py check-models
"""

import argparse
import asyncio

from presales_research.config import settings
from presales_research.llm_client import ResearchModelService
from presales_research.models.schemas import ResearchRequest
from presales_research.research.pipeline import ResearchPipeline
from presales_research.services.progress import Event, ProgressEmitter


class ConsoleSink:
    """Prints each event as it arrives."""

    async def send(self, event: Event) -> None:
        if event.type == "progress":
            counters = ""
            if event.search_count is not None:
                counters = f" (searches: {event.search_count}, pages: {event.pages_read or 0})"
            print(f"[~] {event.status.value}: {event.message}{counters}")

        elif event.type == "complete":
            report = event.results
            meta = report.metadata
            print(f"\n[*] Research Complete!")
            print(f"   Model: {meta.model_used}{' (fallback)' if meta.fallback_used else ''}")
            print(f"   Searches: {meta.search_count}, pages read: {meta.pages_read}")
            print(f"   Citations: {len(report.citations)}")
            if meta.note:
                print(f"   Note: {meta.note}")
            print(f"\n{'=' * 50}")
            print("REPORT:")
            print(f"{'=' * 50}")
            print(report.full_report)

        elif event.type == "error":
            print(f"\n[!] Error: {event.message}")
            if event.details:
                print(f"    {event.details}")

    async def aclose(self) -> None:
        return None


async def run_research(args: argparse.Namespace) -> None:
    request = ResearchRequest(
        company=args.company,
        industry=args.industry,
        use_case=args.use_case,
        requirements=args.requirements,
    )
    print(f"Research target: {request.company}")
    print("-" * 50)

    service = ResearchModelService.from_settings(settings)
    try:
        await ResearchPipeline(service, settings).run(request, ProgressEmitter(ConsoleSink()))
    finally:
        await service.aclose()


async def check_models() -> None:
    print("\n--- Model Availability Check ---\n")
    service = ResearchModelService.from_settings(settings)
    try:
        for model, mode in ((service.primary_model, "responses"), (service.fallback_model, "chat")):
            error = await service.probe(model, mode)
            if error is None:
                print(f"[+] Model available: {model} ({mode})")
            else:
                print(f"[!] Model not available: {model} ({mode})")
                print(f"    Error: {error}")
    finally:
        await service.aclose()
    print("\nCheck complete.\n")


def main():
    parser = argparse.ArgumentParser(description="Presales company research")
    sub = parser.add_subparsers(dest="command", required=True)

    research = sub.add_parser("research", help="Run one research request")
    research.add_argument("--company", "-c", required=True, help="Company to research")
    research.add_argument("--industry", help="Industry context")
    research.add_argument("--use-case", dest="use_case", help="Use case being sold")
    research.add_argument("--requirements", "-r", help="Free-text requirements")

    sub.add_parser("check-models", help="Probe primary and fallback model availability")

    args = parser.parse_args()

    if args.command == "research":
        asyncio.run(run_research(args))
    else:
        asyncio.run(check_models())


if __name__ == "__main__":
    main()
