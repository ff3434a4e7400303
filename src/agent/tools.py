"""
Tools the model may call, and the deterministic search heuristic.

There is one known tool. Model tool calls are resolved into a closed set
of variants: SearchToolCall for the search tool, UnknownToolCall for any
other name. Unknown calls are never dispatched.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

from src.agent.wire import ToolCall, ToolSpec
from src.utils.logging import get_logger

logger = get_logger("tools")

SEARCH_TOOL_NAME = "search_current_immigration_info"

# Years from this one on are treated as time-sensitive
MIN_FRESH_YEAR = 2023

FRESHNESS_KEYWORDS = (
    # change / recency
    "cambios",
    "cambio",
    "nuevo",
    "nueva",
    "nuevos",
    "nuevas",
    "actualizado",
    "actualizada",
    "reciente",
    "vigente",
    # date-sensitive procedure details
    "requisitos",
    "plazos",
    "plazo",
    "tasas",
    "tasa",
    "tiempos",
    "cita previa",
    "formulario",
    "modelo ex",
    # institutions
    "boe",
    "sepe",
    "seguridad social",
    "policía nacional",
    "policia nacional",
    # regions with diverging procedures
    "madrid",
    "barcelona",
    "cataluña",
    "valencia",
    "andalucía",
    "andalucia",
    "sevilla",
    "málaga",
    "malaga",
)

_YEAR = re.compile(r"\b(\d{4})\b")
_KEYWORD_PATTERNS = [
    re.compile(rf"(?<!\w){re.escape(k)}(?!\w)") for k in FRESHNESS_KEYWORDS
]


@dataclass(frozen=True)
class SearchToolCall:
    call_id: str
    query: str
    focus_sites: list[str] | None = None
    reason: str | None = None


@dataclass(frozen=True)
class UnknownToolCall:
    call_id: str
    name: str
    arguments: dict = field(default_factory=dict)


ToolInvocation = SearchToolCall | UnknownToolCall


def search_tool_definition() -> ToolSpec:
    return ToolSpec(
        name=SEARCH_TOOL_NAME,
        description=(
            "Busca información actualizada sobre inmigración española cuando exista "
            "cualquier posibilidad de cambios recientes, variaciones por provincia o "
            "detalles sensibles a la fecha: cambios en leyes, nuevos requisitos, tasas o "
            "documentos, tiempos de procesamiento y citas, formularios oficiales, y cuando "
            'el usuario mencione años (2023+), "cambios", "nuevo" o "actualizado".'
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": (
                        "La consulta específica sobre inmigración que necesita información "
                        'actualizada. Ejemplo: "nuevos requisitos renovación NIE 2024".'
                    ),
                },
                "focus_sites": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": (
                        "Sitios específicos donde buscar (opcional). Por defecto busca en "
                        "fuentes oficiales españolas."
                    ),
                },
                "search_reason": {
                    "type": "string",
                    "description": "Breve explicación de por qué se necesita información actual.",
                },
            },
            "required": ["query"],
        },
    )


def extract_tool_invocation(tool_calls: list[ToolCall]) -> ToolInvocation | None:
    """
    Resolve the first tool call of a reply; the rest are ignored.

    Returns None when there are no calls or the arguments are not a JSON
    object with the fields the tool requires.
    """
    if not tool_calls:
        return None
    if len(tool_calls) > 1:
        logger.info("extra_tool_calls_ignored", count=len(tool_calls) - 1)

    call = tool_calls[0]
    try:
        args = json.loads(call.arguments or "{}")
    except json.JSONDecodeError as e:
        logger.warning("tool_arguments_invalid", tool=call.name, error=str(e))
        return None
    if not isinstance(args, dict):
        logger.warning("tool_arguments_not_object", tool=call.name)
        return None

    if call.name != SEARCH_TOOL_NAME:
        logger.warning("unknown_tool_requested", tool=call.name)
        return UnknownToolCall(call_id=call.id, name=call.name, arguments=args)

    query = args.get("query")
    if not isinstance(query, str) or not query.strip():
        logger.warning("search_tool_missing_query")
        return None

    sites = args.get("focus_sites")
    if not isinstance(sites, list) or not all(isinstance(s, str) for s in sites):
        sites = None
    reason = args.get("search_reason")
    return SearchToolCall(
        call_id=call.id,
        query=query.strip(),
        focus_sites=sites or None,
        reason=reason if isinstance(reason, str) else None,
    )


def needs_fresh_search(question: str) -> bool:
    """True when the question names a recent year or a time-sensitive keyword."""
    for match in _YEAR.finditer(question):
        if int(match.group(1)) >= MIN_FRESH_YEAR:
            return True
    lowered = question.lower()
    return any(p.search(lowered) for p in _KEYWORD_PATTERNS)
