from __future__ import annotations

"""Quantity and price resolution for a single catalog task in a room."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import os
from typing import Any, Dict, Mapping, Optional, Union

from ..store.catalog_store import CatalogTask
from .geometry import RoomGeometry
from .models import UNIT_LABELS, Surface, Unit

CENT = Decimal("0.01")
_HUNDRED = Decimal("100")

ENV_LABOR_RATE = "ROSTKALKYL_LABOR_RATE"
ENV_TASK_MARKUP = "ROSTKALKYL_TASK_MARKUP_PCT"
ENV_BATCH_MARKUP = "ROSTKALKYL_BATCH_MARKUP_PCT"
ENV_CURRENCY = "ROSTKALKYL_CURRENCY"


def to_decimal(value: Union[float, int, str, Decimal, None]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Union[float, Decimal]) -> float:
    """Round to whole öre, half up (2.675 -> 2.68)."""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return float(str(raw).strip().replace(",", "."))
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class PricingConfig:
    labor_rate: float = 500.0
    task_markup_pct: float = 10.0
    batch_markup_pct: float = 15.0
    currency: str = "SEK"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PricingConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            labor_rate=_env_float(env, ENV_LABOR_RATE, defaults.labor_rate),
            task_markup_pct=_env_float(env, ENV_TASK_MARKUP, defaults.task_markup_pct),
            batch_markup_pct=_env_float(env, ENV_BATCH_MARKUP, defaults.batch_markup_pct),
            currency=(env.get(ENV_CURRENCY) or defaults.currency).strip(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labor_rate": self.labor_rate,
            "task_markup_pct": self.task_markup_pct,
            "batch_markup_pct": self.batch_markup_pct,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class MappedLineItem:
    task_id: str
    task_name: str
    unit: Unit
    quantity: float
    layers: int
    unit_price: float
    subtotal: float
    # unrounded figures; totals are summed from these and rounded once
    raw_subtotal: Decimal = Decimal("0")
    labor_cost: Decimal = Decimal("0")
    material_cost: Decimal = Decimal("0")
    surface: Optional[str] = None

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "unit": self.unit.value,
            "unit_label": UNIT_LABELS[self.unit],
            "quantity": self.quantity,
            "layers": self.layers,
            "unit_price": self.unit_price,
            "subtotal": self.subtotal,
            "surface": self.surface,
        }
        if include_raw:
            payload["raw_subtotal"] = str(self.raw_subtotal)
            payload["labor_cost"] = str(self.labor_cost)
            payload["material_cost"] = str(self.material_cost)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MappedLineItem":
        subtotal = payload.get("subtotal", 0.0)
        return cls(
            task_id=str(payload["task_id"]),
            task_name=str(payload["task_name"]),
            unit=Unit(payload["unit"]),
            quantity=float(payload.get("quantity", 0.0)),
            layers=int(payload.get("layers", 1)),
            unit_price=float(payload.get("unit_price", 0.0)),
            subtotal=float(subtotal),
            raw_subtotal=to_decimal(payload.get("raw_subtotal", subtotal)),
            labor_cost=to_decimal(payload.get("labor_cost", 0)),
            material_cost=to_decimal(payload.get("material_cost", 0)),
            surface=payload.get("surface"),
        )


def unit_cost(task: CatalogTask, config: PricingConfig) -> Decimal:
    """Labor hours × effective hourly rate + material cost, per unit, before markup."""
    rate = task.labor_rate if task.labor_rate is not None else config.labor_rate
    return to_decimal(task.labor_hours_per_unit) * to_decimal(rate) + to_decimal(task.material_cost_per_unit)


def price_with_markup(task: CatalogTask, config: PricingConfig) -> Decimal:
    markup = task.markup_pct if task.markup_pct is not None else config.task_markup_pct
    return unit_cost(task, config) * (1 + to_decimal(markup) / _HUNDRED)


def resolve_line_item(
    task: CatalogTask,
    geometry: RoomGeometry,
    layers: Optional[int] = None,
    *,
    config: Optional[PricingConfig] = None,
    surface: Union[Surface, str, None] = None,
    quantity_modifier: float = 1.0,
) -> MappedLineItem:
    """Price *task* for the room described by *geometry*.

    The base quantity comes from the task's surface type (falling back to
    *surface* when the task has none) and is multiplied by
    *quantity_modifier* and the layer count. Quantities at or below zero
    produce a zero line.
    """

    config = config or PricingConfig()
    effective_layers = layers if layers is not None else task.default_layers
    if effective_layers < 1:
        raise ValueError(f"layers must be at least 1, got {effective_layers}")

    surface_key = task.surface_type or surface
    base = geometry.quantity_for(surface_key, task.unit)
    quantity = max(0.0, base * quantity_modifier * effective_layers)

    qty = to_decimal(quantity)
    price = price_with_markup(task, config)
    rate = task.labor_rate if task.labor_rate is not None else config.labor_rate
    raw_subtotal = qty * price
    labor = qty * to_decimal(task.labor_hours_per_unit) * to_decimal(rate)
    material = qty * to_decimal(task.material_cost_per_unit)

    surface_value = surface_key.value if isinstance(surface_key, Surface) else surface_key
    return MappedLineItem(
        task_id=task.id,
        task_name=task.name_sv,
        unit=task.unit,
        quantity=round(quantity, 4),
        layers=effective_layers,
        unit_price=round_money(price),
        subtotal=round_money(raw_subtotal),
        raw_subtotal=raw_subtotal,
        labor_cost=labor,
        material_cost=material,
        surface=surface_value,
    )
