from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

from presales_research.models.schemas import ChecklistRequest, ResearchRequest


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"
_catalog_cache: dict[str, Any] | None = None
_catalog_mtime_ns: int | None = None


def _load_catalog() -> dict[str, Any]:
    global _catalog_cache, _catalog_mtime_ns
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _catalog_cache is not None and _catalog_mtime_ns == mtime_ns:
        return _catalog_cache

    payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Prompt catalog must be a JSON object.")
    _catalog_cache = payload
    _catalog_mtime_ns = mtime_ns
    return payload


def _resolve_prompt_entry(key: str) -> str:
    node: Any = _load_catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    if not isinstance(node, str):
        raise TypeError(f"Prompt key must map to a string: {key}")
    return node


def render_prompt(key: str, **values: Any) -> str:
    template = Template(_resolve_prompt_entry(key))
    try:
        return template.substitute(**values)
    except KeyError as exc:
        missing = str(exc.args[0])
        raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc


def clear_prompt_cache() -> None:
    global _catalog_cache, _catalog_mtime_ns
    _catalog_cache = None
    _catalog_mtime_ns = None


def _context_block(request: ResearchRequest) -> str:
    lines: list[str] = []
    if request.industry:
        lines.append(f"Industry: {request.industry}")
    if request.use_case:
        lines.append(f"Use case: {request.use_case}")
    if request.requirements:
        lines.append(f"Requirements:\n{request.requirements}")
    if isinstance(request, ChecklistRequest) and request.contact is not None:
        contact = request.contact
        who = f"{contact.name} ({contact.title})" if contact.title else contact.name
        lines.append(f"Contact: {who}")
        if contact.demo_date:
            lines.append(f"Demo date: {contact.demo_date}")
    if not lines:
        return ""
    return "\n" + "\n".join(lines) + "\n"


def build_research_prompt(request: ResearchRequest) -> str:
    """Fold every request field into the single instruction body sent to both models."""
    return render_prompt(
        "research.instructions",
        company=request.company,
        context=_context_block(request),
    )


def build_checklist_prompt(request: ChecklistRequest) -> str:
    return render_prompt(
        "checklist.instructions",
        company=request.company,
        context=_context_block(request),
    )
