"""Shared vocabulary for the estimating pipeline: actions, surfaces and units."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Union


class Action(str, Enum):
    PAINT = "paint"
    PRIME = "prime"
    TOPCOAT = "topcoat"
    SKIM_COAT = "skim_coat"
    OTHER = "other"


class Surface(str, Enum):
    WALL = "wall"
    CEILING = "ceiling"
    FLOOR = "floor"
    DOOR = "door"
    WINDOW = "window"
    TRIM = "trim"


class Unit(str, Enum):
    AREA = "area"
    LENGTH = "length"
    COUNT = "count"


# Swedish catalog spellings (MEPS sheets use m2/lpm/st and vägg/tak/...)
_UNIT_ALIASES = {
    "area": Unit.AREA,
    "m2": Unit.AREA,
    "m²": Unit.AREA,
    "kvm": Unit.AREA,
    "kvadratmeter": Unit.AREA,
    "length": Unit.LENGTH,
    "lpm": Unit.LENGTH,
    "lm": Unit.LENGTH,
    "m": Unit.LENGTH,
    "meter": Unit.LENGTH,
    "löpmeter": Unit.LENGTH,
    "count": Unit.COUNT,
    "st": Unit.COUNT,
    "stk": Unit.COUNT,
    "styck": Unit.COUNT,
}

_SURFACE_ALIASES = {
    "wall": Surface.WALL,
    "vägg": Surface.WALL,
    "väggar": Surface.WALL,
    "ceiling": Surface.CEILING,
    "tak": Surface.CEILING,
    "floor": Surface.FLOOR,
    "golv": Surface.FLOOR,
    "door": Surface.DOOR,
    "dörr": Surface.DOOR,
    "dörrar": Surface.DOOR,
    "window": Surface.WINDOW,
    "fönster": Surface.WINDOW,
    "trim": Surface.TRIM,
    "list": Surface.TRIM,
    "lister": Surface.TRIM,
}

UNIT_LABELS = {
    Unit.AREA: "m²",
    Unit.LENGTH: "lpm",
    Unit.COUNT: "st",
}

# Indefinite plural used when an intent is rendered back to text ("måla väggar").
SURFACE_PLURALS_SV = {
    Surface.WALL: "väggar",
    Surface.CEILING: "tak",
    Surface.FLOOR: "golv",
    Surface.DOOR: "dörrar",
    Surface.WINDOW: "fönster",
    Surface.TRIM: "lister",
}


def normalize_unit(value: Union[str, Unit, None]) -> Optional[Unit]:
    if value is None:
        return None
    if isinstance(value, Unit):
        return value
    key = str(value).strip().lower()
    return _UNIT_ALIASES.get(key)


def normalize_surface(value: Union[str, Surface, None]) -> Optional[Surface]:
    if value is None:
        return None
    if isinstance(value, Surface):
        return value
    key = str(value).strip().lower()
    return _SURFACE_ALIASES.get(key)


@dataclass(frozen=True)
class SpeechResult:
    """Transcript handed over by the speech-to-text collaborator; only ``text`` is used."""

    text: str
    confidence: Optional[float] = None
    language: Optional[str] = None
    duration_seconds: Optional[float] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SpeechResult":
        return cls(
            text=str(payload.get("text") or ""),
            confidence=payload.get("confidence"),
            language=payload.get("language"),
            duration_seconds=payload.get("durationSeconds", payload.get("duration_seconds")),
        )


def utterance_text(value: Union[str, SpeechResult, Mapping[str, Any], None]) -> str:
    if value is None:
        return ""
    if isinstance(value, SpeechResult):
        return value.text
    if isinstance(value, Mapping):
        return str(value.get("text") or "")
    return str(value)
