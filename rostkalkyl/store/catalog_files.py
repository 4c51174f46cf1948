from __future__ import annotations

"""Read catalog sheets exported as CSV, JSON or YAML into ``{rows, errors}``."""

import csv
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

ALLOWED_FORMATS = ("csv", "json", "yaml")

# Header spellings seen in exported MEPS sheets.
COLUMN_ALIASES: Dict[str, str] = {
    "meps id": "meps_id",
    "mepsid": "meps_id",
    "task name sv": "task_name_sv",
    "task name swedish": "task_name_sv",
    "taskname_sv": "task_name_sv",
    "task name en": "task_name_en",
    "task name english": "task_name_en",
    "taskname_en": "task_name_en",
    "labor norm": "labor_norm_per_unit",
    "labor_norm": "labor_norm_per_unit",
    "labour_norm_per_unit": "labor_norm_per_unit",
    "material factor": "material_factor_per_unit",
    "material_factor": "material_factor_per_unit",
    "default layers": "default_layers",
    "defaultlayers": "default_layers",
    "surface type": "surface_type",
    "surfacetype": "surface_type",
    "prep required": "prep_required",
    "preprequired": "prep_required",
    "price material": "price_material_per_unit",
    "price_material": "price_material_per_unit",
    "price labor": "price_labor_per_hour",
    "price_labor": "price_labor_per_hour",
    "markup": "markup_pct",
    "markup_percentage": "markup_pct",
}

# Each entry lists the accepted spellings of one required column.
REQUIRED_COLUMNS = (
    ("id", "meps_id"),
    ("name_sv", "task_name_sv", "name", "namn"),
    ("unit", "enhet"),
    ("labor_hours_per_unit", "labor_norm_per_unit"),
)


class CatalogFileError(Exception):
    """Raised when a catalog file cannot be read at all."""


def normalize_column_name(name: Any) -> str:
    text = str(name or "").strip().lower()
    return COLUMN_ALIASES.get(text, text.replace(" ", "_"))


def resolve_format(path: Path, explicit: Optional[str] = None) -> str:
    if explicit:
        fmt = explicit.lower()
        if fmt not in ALLOWED_FORMATS:
            raise CatalogFileError(f"Unsupported format '{explicit}'. Allowed: {', '.join(ALLOWED_FORMATS)}")
        return fmt
    suffix = path.suffix.lower()
    if suffix in (".csv", ".tsv"):
        return "csv"
    if suffix == ".json":
        return "json"
    if suffix in (".yaml", ".yml"):
        return "yaml"
    raise CatalogFileError("Unable to infer catalog format from file extension. Please pass --format.")


def _missing_columns(columns: Iterable[str]) -> List[Dict[str, Any]]:
    present = set(columns)
    errors: List[Dict[str, Any]] = []
    for spellings in REQUIRED_COLUMNS:
        if not present.intersection(spellings):
            errors.append(
                {"row": 0, "field": spellings[0], "message": f"Required column '{spellings[0]}' is missing"}
            )
    return errors


def _clean_cell(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _read_csv(path: Path) -> Dict[str, Any]:
    content = path.read_text(encoding="utf-8-sig")
    if not content.strip():
        return {"rows": [], "errors": []}
    try:
        dialect = csv.Sniffer().sniff(content.splitlines()[0], delimiters=",;\t")
        delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","
    reader = csv.DictReader(content.splitlines(), delimiter=delimiter)
    columns = [normalize_column_name(name) for name in (reader.fieldnames or [])]
    missing = _missing_columns(columns)
    if missing:
        return {"rows": [], "errors": missing}
    rows: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    for index, raw in enumerate(reader, start=1):
        if None in raw:
            errors.append({"row": index, "field": None, "message": "Row has more cells than the header"})
        row = {
            normalize_column_name(key): _clean_cell(value)
            for key, value in raw.items()
            if key is not None
        }
        rows.append(row)
    return {"rows": rows, "errors": errors}


def _rows_from_document(data: Any) -> Dict[str, Any]:
    if isinstance(data, dict):
        for key in ("tasks", "rows", "catalog"):
            if key in data:
                data = data[key]
                break
    if data is None:
        return {"rows": [], "errors": []}
    if not isinstance(data, list):
        raise CatalogFileError("Catalog document must be a list of task objects (or contain a 'tasks' list).")
    rows: List[Any] = []
    for entry in data:
        if isinstance(entry, dict):
            rows.append({normalize_column_name(key): _clean_cell(value) for key, value in entry.items()})
        else:
            rows.append(entry)
    return {"rows": rows, "errors": []}


def read_catalog_file(path: Union[str, Path], fmt: Optional[str] = None) -> Dict[str, Any]:
    """Read *path* and return the loader shape ``{"rows": [...], "errors": [...]}``.

    Column headers are lowercased and mapped through :data:`COLUMN_ALIASES`.
    File-level problems (missing required CSV columns) come back as errors
    with ``row`` 0; unreadable files raise :class:`CatalogFileError`.
    """

    path = Path(path)
    resolved = resolve_format(path, fmt)
    if not path.exists():
        raise CatalogFileError(f"File not found: {path}")
    if resolved == "csv":
        return _read_csv(path)
    text = path.read_text(encoding="utf-8")
    try:
        if resolved == "json":
            data = json.loads(text or "[]")
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise CatalogFileError(f"Could not parse {path.name}: {exc}") from exc
    return _rows_from_document(data)
