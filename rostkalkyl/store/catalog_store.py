from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..app.models import Surface, Unit, normalize_surface, normalize_unit

logger = logging.getLogger("rostkalkyl.catalog")

_TRUE_VALUES = {"true", "yes", "ja", "1", "x"}
_FALSE_VALUES = {"false", "no", "nej", "0", ""}


@dataclass(frozen=True)
class CatalogTask:
    id: str
    name_sv: str
    unit: Unit
    labor_hours_per_unit: float
    name_en: Optional[str] = None
    material_cost_per_unit: Optional[float] = None
    default_layers: int = 1
    surface_type: Optional[Surface] = None
    synonyms: Tuple[str, ...] = ()
    prep_required: bool = False
    labor_rate: Optional[float] = None
    markup_pct: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name_sv": self.name_sv,
            "name_en": self.name_en,
            "unit": self.unit.value,
            "labor_hours_per_unit": self.labor_hours_per_unit,
            "material_cost_per_unit": self.material_cost_per_unit,
            "default_layers": self.default_layers,
            "surface_type": self.surface_type.value if self.surface_type else None,
            "synonyms": list(self.synonyms),
            "prep_required": self.prep_required,
            "labor_rate": self.labor_rate,
            "markup_pct": self.markup_pct,
        }


def _parse_decimal(value: Any) -> Any:
    """Accept Swedish decimal commas ("0,15") in numeric catalog cells."""
    if isinstance(value, str):
        cleaned = value.strip().replace(" ", "").replace(",", ".")
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return value
    return value


class CatalogRow(BaseModel):
    """Validation model for one raw catalog row (MEPS sheet column names accepted)."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str = Field(min_length=1, validation_alias=AliasChoices("id", "meps_id", "mepsid"))
    name_sv: str = Field(
        min_length=1,
        validation_alias=AliasChoices("name_sv", "task_name_sv", "taskname_sv", "namn", "name"),
    )
    name_en: Optional[str] = Field(default=None, validation_alias=AliasChoices("name_en", "task_name_en", "taskname_en"))
    unit: Unit = Field(validation_alias=AliasChoices("unit", "enhet"))
    labor_hours_per_unit: float = Field(
        ge=0,
        validation_alias=AliasChoices("labor_hours_per_unit", "labor_norm_per_unit", "labor_norm", "labour_norm_per_unit"),
    )
    material_cost_per_unit: Optional[float] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("material_cost_per_unit", "price_material_per_unit", "price_material"),
    )
    default_layers: int = Field(default=1, ge=1, validation_alias=AliasChoices("default_layers", "defaultlayers"))
    surface_type: Optional[Surface] = Field(default=None, validation_alias=AliasChoices("surface_type", "surfacetype"))
    synonyms: Tuple[str, ...] = Field(default=(), validation_alias=AliasChoices("synonyms", "synonymer"))
    prep_required: bool = Field(default=False, validation_alias=AliasChoices("prep_required", "preprequired"))
    labor_rate: Optional[float] = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("labor_rate", "price_labor_per_hour", "price_labor"),
    )
    markup_pct: Optional[float] = Field(
        default=None,
        ge=0,
        le=100,
        validation_alias=AliasChoices("markup_pct", "markup", "markup_percentage"),
    )

    @field_validator("id", "name_sv", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        return str(value)

    @field_validator("name_en", mode="before")
    @classmethod
    def _coerce_optional_text(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("unit", mode="before")
    @classmethod
    def _coerce_unit(cls, value: Any) -> Unit:
        unit = normalize_unit(value)
        if unit is None:
            raise ValueError("unit must be one of: area, length, count (m2, lpm, st)")
        return unit

    @field_validator("surface_type", mode="before")
    @classmethod
    def _coerce_surface(cls, value: Any) -> Optional[Surface]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        surface = normalize_surface(value)
        if surface is None:
            raise ValueError("surface_type must be one of: wall, ceiling, floor, door, window, trim")
        return surface

    @field_validator("labor_hours_per_unit", "material_cost_per_unit", "labor_rate", "markup_pct", mode="before")
    @classmethod
    def _coerce_decimal(cls, value: Any) -> Any:
        return _parse_decimal(value)

    @field_validator("default_layers", mode="before")
    @classmethod
    def _coerce_layers(cls, value: Any) -> Any:
        value = _parse_decimal(value)
        if value is None:
            return 1
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    @field_validator("synonyms", mode="before")
    @classmethod
    def _split_synonyms(cls, value: Any) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            parts: Iterable[Any] = value.split(";")
        elif isinstance(value, (list, tuple)):
            parts = value
        else:
            raise ValueError("synonyms must be a list or a semicolon-separated string")
        return tuple(str(part).strip() for part in parts if part is not None and str(part).strip())

    @field_validator("prep_required", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Any:
        if value is None:
            return False
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
        return value

    def to_task(self) -> CatalogTask:
        return CatalogTask(
            id=self.id,
            name_sv=self.name_sv,
            name_en=self.name_en,
            unit=self.unit,
            labor_hours_per_unit=self.labor_hours_per_unit,
            material_cost_per_unit=self.material_cost_per_unit,
            default_layers=self.default_layers,
            surface_type=self.surface_type,
            synonyms=self.synonyms,
            prep_required=self.prep_required,
            labor_rate=self.labor_rate,
            markup_pct=self.markup_pct,
        )


def _alias_lookup() -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for name, info in CatalogRow.model_fields.items():
        lookup[name] = name
        alias = info.validation_alias
        if isinstance(alias, AliasChoices):
            for choice in alias.choices:
                if isinstance(choice, str):
                    lookup[choice] = name
    return lookup


_ALIAS_TO_FIELD = _alias_lookup()


def _row_error(row: int, field_name: Optional[str], message: str) -> Dict[str, Any]:
    return {"row": row, "field": field_name, "message": message}


def _validation_errors(row: int, exc: ValidationError) -> List[Dict[str, Any]]:
    errors: List[Dict[str, Any]] = []
    for detail in exc.errors():
        loc = detail.get("loc") or ()
        raw_field = str(loc[0]) if loc else None
        field_name = _ALIAS_TO_FIELD.get(raw_field, raw_field) if raw_field else None
        message = str(detail.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append(_row_error(row, field_name, message))
    return errors


class Catalog:
    """Immutable index of catalog tasks in load order."""

    def __init__(self, tasks: Iterable[CatalogTask] = ()) -> None:
        self._tasks: Tuple[CatalogTask, ...] = tuple(tasks)
        self._by_id: Dict[str, CatalogTask] = {task.id: task for task in self._tasks}

    @classmethod
    def load(cls, rows: Iterable[Any]) -> Tuple["Catalog", List[Dict[str, Any]]]:
        """Validate raw *rows* and build a catalog from the valid ones.

        Returns ``(catalog, errors)``. Each error is ``{row, field, message}``
        with a 1-based row index; rejected rows are left out of the catalog.
        The first row carrying an id wins, later duplicates are rejected.
        """

        tasks: List[CatalogTask] = []
        errors: List[Dict[str, Any]] = []
        seen: Dict[str, int] = {}
        for index, raw in enumerate(rows, start=1):
            if not isinstance(raw, Mapping):
                errors.append(_row_error(index, None, "row must be a mapping of column names to values"))
                continue
            try:
                parsed = CatalogRow.model_validate(dict(raw))
            except ValidationError as exc:
                errors.extend(_validation_errors(index, exc))
                continue
            if parsed.id in seen:
                errors.append(
                    _row_error(index, "id", f"duplicate id '{parsed.id}' (first defined in row {seen[parsed.id]})")
                )
                continue
            seen[parsed.id] = index
            tasks.append(parsed.to_task())
        return cls(tasks), errors

    def lookup(self, task_id: str) -> Optional[CatalogTask]:
        return self._by_id.get(task_id)

    def all(self) -> List[CatalogTask]:
        return list(self._tasks)

    def stats_by_unit(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for task in self._tasks:
            counts[task.unit.value] = counts.get(task.unit.value, 0) + 1
        return counts

    def stats_by_surface(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for task in self._tasks:
            key = task.surface_type.value if task.surface_type else "none"
            counts[key] = counts.get(key, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[CatalogTask]:
        return iter(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._by_id


SourceType = Union[Mapping[str, Any], Iterable[Any]]


class CatalogStore:
    """Holder for the active catalog; reloads swap the reference atomically."""

    def __init__(self, catalog: Optional[Catalog] = None) -> None:
        self._catalog = catalog if catalog is not None else Catalog()
        self._lock = threading.Lock()

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    def load(self, source: SourceType) -> List[Dict[str, Any]]:
        """Build a catalog from *source* and make it the active one.

        *source* is either an iterable of rows or the loader shape
        ``{"rows": [...], "errors": [...]}``; upstream errors are returned
        unchanged ahead of the row validation errors. Readers that already
        hold the previous catalog keep using it.
        """

        if isinstance(source, Mapping):
            rows = source.get("rows") or []
            upstream = list(source.get("errors") or [])
        else:
            rows = source
            upstream = []
        catalog, errors = Catalog.load(rows)
        with self._lock:
            self._catalog = catalog
        logger.info("Catalog loaded: %d tasks accepted, %d rows rejected", len(catalog), len({e["row"] for e in errors}))
        for error in errors:
            logger.debug("Catalog row %s rejected (%s): %s", error["row"], error["field"], error["message"])
        return upstream + errors
