"""Estimate service layer: utterances in, priced line items and totals out.

Each utterance runs through the intent parser, every intent is mapped onto
the catalog and the matched task is priced for the room. Failures are
collected per utterance or per intent and never abort the batch. The HTTP
handlers, the conversation flow and the CLI all go through this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ...retriever.task_mapper import NoMatch, map_task_description
from ...store.catalog_store import Catalog, CatalogStore, CatalogTask
from ..error_messages import measurement_out_of_range_message, no_task_recognized_message, unmapped_task_message
from ..geometry import RoomGeometry, validate_dimensions
from ..intent_parser import parse_utterance, render_intent
from ..models import SpeechResult, utterance_text
from ..pricing import MappedLineItem, PricingConfig, resolve_line_item, round_money, to_decimal

logger = logging.getLogger("rostkalkyl.estimate")

ERROR_NO_TASK = "no_task_recognized"
ERROR_UNMAPPED = "unmapped_task"

SECTION_PREP = "Förberedelse"
SECTION_PAINT = "Målning"
SECTION_FINISH = "Finish"
SECTION_ORDER = (SECTION_PREP, SECTION_PAINT, SECTION_FINISH)

_PREP_KEYWORDS = ("spackla", "spack", "slipa", "grund", "tvätt", "rengör")
_FINISH_KEYWORDS = ("lack", "fernissa", "finish")

Utterance = Union[str, SpeechResult, Dict[str, Any]]


class ServiceError(Exception):
    """Domain specific error that can be translated to HTTP responses."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class EstimateError:
    kind: str
    utterance: str
    message: str
    description: Optional[str] = None
    suggestions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "utterance": self.utterance,
            "description": self.description,
            "message": self.message,
            "suggestions": list(self.suggestions),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "EstimateError":
        return cls(
            kind=str(payload["kind"]),
            utterance=str(payload.get("utterance", "")),
            message=str(payload.get("message", "")),
            description=payload.get("description"),
            suggestions=tuple(payload.get("suggestions") or ()),
        )


@dataclass(frozen=True)
class EstimateTotals:
    subtotal: float
    markup: float
    grand_total: float
    labor_total: float
    material_total: float
    markup_pct: float
    currency: str = "SEK"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "markup": self.markup,
            "markup_pct": self.markup_pct,
            "grand_total": self.grand_total,
            "labor_total": self.labor_total,
            "material_total": self.material_total,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class EstimateSection:
    title: str
    items: Tuple[MappedLineItem, ...]
    subtotal: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
        }


@dataclass(frozen=True)
class EstimateResult:
    line_items: Tuple[MappedLineItem, ...]
    errors: Tuple[EstimateError, ...]
    totals: EstimateTotals
    unmapped: Tuple[str, ...] = ()
    sections: Tuple[EstimateSection, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_items": [item.to_dict() for item in self.line_items],
            "errors": [error.to_dict() for error in self.errors],
            "totals": self.totals.to_dict(),
            "unmapped": list(self.unmapped),
            "sections": [section.to_dict() for section in self.sections],
        }


@dataclass
class EstimateServiceContext:
    """Shared state for the HTTP app: active catalog, pricing and live conversations."""

    store: CatalogStore
    config: PricingConfig
    logger: Any
    conversations: Dict[str, Any] = field(default_factory=dict)
    catalog_path: Optional[Path] = None
    catalog_errors: List[Dict[str, Any]] = field(default_factory=list)
    fixes: Optional[Dict[str, str]] = None
    debug: bool = False

    @property
    def catalog(self) -> Catalog:
        return self.store.catalog


def task_section(task: CatalogTask) -> str:
    """Section title for *task*: prep flag or prep wording first, then lacquer/varnish."""
    name = task.name_sv.lower()
    task_id = task.id.lower()
    if task.prep_required or any(key in name or key in task_id for key in _PREP_KEYWORDS):
        return SECTION_PREP
    if any(key in name for key in _FINISH_KEYWORDS):
        return SECTION_FINISH
    return SECTION_PAINT


def compute_totals(line_items: Iterable[MappedLineItem], config: Optional[PricingConfig] = None) -> EstimateTotals:
    """Sum unrounded subtotals, add the batch markup and round once."""
    config = config or PricingConfig()
    subtotal = Decimal("0")
    labor = Decimal("0")
    material = Decimal("0")
    for item in line_items:
        subtotal += item.raw_subtotal
        labor += item.labor_cost
        material += item.material_cost
    markup = subtotal * to_decimal(config.batch_markup_pct) / Decimal("100")
    return EstimateTotals(
        subtotal=round_money(subtotal),
        markup=round_money(markup),
        grand_total=round_money(subtotal + markup),
        labor_total=round_money(labor),
        material_total=round_money(material),
        markup_pct=config.batch_markup_pct,
        currency=config.currency,
    )


def group_sections(line_items: Sequence[MappedLineItem], catalog: Catalog) -> Tuple[EstimateSection, ...]:
    grouped: Dict[str, List[MappedLineItem]] = {title: [] for title in SECTION_ORDER}
    for item in line_items:
        task = catalog.lookup(item.task_id)
        title = task_section(task) if task is not None else SECTION_PAINT
        grouped[title].append(item)
    sections: List[EstimateSection] = []
    for title in SECTION_ORDER:
        items = grouped[title]
        if not items:
            continue
        raw = sum((item.raw_subtotal for item in items), Decimal("0"))
        sections.append(EstimateSection(title=title, items=tuple(items), subtotal=round_money(raw)))
    return tuple(sections)


def estimate_utterance(
    utterance: Utterance,
    geometry: RoomGeometry,
    catalog: Catalog,
    config: Optional[PricingConfig] = None,
    fixes: Optional[Dict[str, str]] = None,
) -> Tuple[List[MappedLineItem], List[EstimateError]]:
    """Price one utterance; returns the line items and errors it produced."""
    config = config or PricingConfig()
    text = utterance_text(utterance)
    intents = parse_utterance(text, fixes)
    if not intents:
        logger.info("No task recognized in utterance %r", text)
        return [], [EstimateError(kind=ERROR_NO_TASK, utterance=text, message=no_task_recognized_message(text))]

    items: List[MappedLineItem] = []
    errors: List[EstimateError] = []
    for intent in intents:
        description = render_intent(intent)
        result = map_task_description(description, catalog, surface_hint=intent.surface)
        if isinstance(result, NoMatch):
            errors.append(
                EstimateError(
                    kind=ERROR_UNMAPPED,
                    utterance=text,
                    description=description,
                    message=unmapped_task_message(description, result.suggestions),
                    suggestions=result.suggestions,
                )
            )
            continue
        item = resolve_line_item(
            result.task,
            geometry,
            intent.layers,
            config=config,
            surface=intent.surface,
            quantity_modifier=intent.quantity_modifier,
        )
        logger.debug(
            "Mapped %r -> %s (%s, score %.2f): %s x %s",
            description, result.task.id, result.match_kind, result.score, item.quantity, item.unit_price,
        )
        items.append(item)
    return items, errors


def generate_estimate(
    utterances: Iterable[Utterance],
    geometry: RoomGeometry,
    catalog: Catalog,
    config: Optional[PricingConfig] = None,
    fixes: Optional[Dict[str, str]] = None,
) -> EstimateResult:
    """Run every utterance through parse, map and price and assemble the estimate.

    Unparseable utterances and unmapped intents become entries in
    ``errors`` (and their descriptions in ``unmapped``); everything else is
    priced. The batch markup from *config* is applied on the summed
    subtotal.
    """

    config = config or PricingConfig()
    line_items: List[MappedLineItem] = []
    errors: List[EstimateError] = []
    for utterance in utterances:
        items, item_errors = estimate_utterance(utterance, geometry, catalog, config, fixes)
        line_items.extend(items)
        errors.extend(item_errors)

    unmapped = tuple(error.description for error in errors if error.kind == ERROR_UNMAPPED and error.description)
    totals = compute_totals(line_items, config)
    if errors:
        logger.info("Estimate built with %d line item(s) and %d error(s)", len(line_items), len(errors))
    return EstimateResult(
        line_items=tuple(line_items),
        errors=tuple(errors),
        totals=totals,
        unmapped=unmapped,
        sections=group_sections(line_items, catalog),
    )


def catalog_stats(*, ctx: EstimateServiceContext) -> Dict[str, Any]:
    catalog = ctx.catalog
    return {
        "tasks": len(catalog),
        "by_unit": catalog.stats_by_unit(),
        "by_surface": catalog.stats_by_surface(),
        "rejected_rows": len(ctx.catalog_errors),
        "path": str(ctx.catalog_path) if ctx.catalog_path else None,
    }


def _geometry_from_payload(payload: Any) -> RoomGeometry:
    if not isinstance(payload, dict):
        raise ServiceError("Fältet 'geometry' saknas eller är ogiltigt.", status_code=422)
    try:
        values = {
            "width": float(payload["width"]),
            "length": float(payload["length"]),
            "height": float(payload["height"]),
            "doors": int(payload.get("doors", 1)),
            "windows": int(payload.get("windows", 1)),
        }
    except KeyError as exc:
        raise ServiceError(f"Måttet {exc.args[0]!r} saknas i 'geometry'.", status_code=422) from exc
    except (TypeError, ValueError) as exc:
        raise ServiceError("Måtten i 'geometry' måste vara tal.", status_code=422) from exc
    problems = validate_dimensions(**values)
    if problems:
        raise ServiceError(measurement_out_of_range_message(problems), status_code=422)
    return RoomGeometry(**values)


def run_estimate(*, payload: Dict[str, Any], ctx: EstimateServiceContext) -> Dict[str, Any]:
    """Estimate for ``payload = {"utterances": [...], "geometry": {...}}``."""
    utterances = (payload or {}).get("utterances")
    if not isinstance(utterances, list) or not utterances:
        raise ServiceError("Ange minst en arbetsuppgift i 'utterances'.", status_code=422)
    geometry = _geometry_from_payload((payload or {}).get("geometry"))
    result = generate_estimate(utterances, geometry, ctx.catalog, ctx.config, ctx.fixes)
    response = result.to_dict()
    response["geometry"] = geometry.to_dict()
    response["quantities"] = geometry.summary()
    if ctx.debug:
        response["config"] = ctx.config.to_dict()
    return response
