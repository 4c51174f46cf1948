"""Parsers for the individual conversation steps: names, measurements, done and confirm."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Dict, Optional, Tuple

from ..shared.normalize import normalize_utterance, words_to_numbers

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
DEFAULT_DOORS = 1
DEFAULT_WINDOWS = 1

_NUM = r"(\d+(?:\.\d+)?)"

_RE_NAME_LEAD_INS = (
    re.compile(
        r"^(?:projektet\s+heter|projektnamnet\s+är|rummet\s+heter|rummet\s+är|namnet\s+är|det\s+heter|det\s+är"
        r"|jag\s+vill\s+kalla\s+det|vi\s+kallar\s+det|kalla\s+det)\s+",
        re.IGNORECASE,
    ),
    re.compile(r"^(?:jag|vi|det)\s+(?:ska|vill|behöver)\s+(?:måla|renovera)\s+", re.IGNORECASE),
)
_RE_EDGE_PUNCTUATION = re.compile(r"^[\s\"'“”«»,.!?:;-]+|[\s\"'“”«»,.!?:;-]+$")

_RE_SEPARATOR = r"\s*(?:gånger|x|×|\*|by)\s*"
_RE_TRIPLE = re.compile(rf"{_NUM}(?:\s*m(?:eter)?)?{_RE_SEPARATOR}{_NUM}(?:\s*m(?:eter)?)?{_RE_SEPARATOR}{_NUM}")
_RE_WHITESPACE_TRIPLE = re.compile(rf"(?<![\d.]){_NUM}\s+(?:m(?:eter)?\s+)?{_NUM}\s+(?:m(?:eter)?\s+)?{_NUM}(?![\d.])")
_RE_LABELLED = {
    "width": re.compile(rf"\bbredd(?:en)?\s*(?:är|:)?\s*{_NUM}|{_NUM}\s*(?:m|meter)?\s*bred\b"),
    "length": re.compile(rf"\blängd(?:en)?\s*(?:är|:)?\s*{_NUM}|{_NUM}\s*(?:m|meter)?\s*lång\b"),
    "height": re.compile(rf"\b(?:tak)?höjd(?:en)?\s*(?:är|:)?\s*{_NUM}|{_NUM}\s*(?:m|meter)?\s*hög\b"),
}
_RE_COUNTS = {
    "doors": (
        re.compile(r"(?<![\d.])(\d+)\s*(?:st(?:ycken)?\s+)?dörr(?:ar|en|arna)?\b"),
        re.compile(r"\bdörr(?:ar|en|arna)?\s*:?\s*(\d+)\b"),
        re.compile(r"\b(?:inga|ingen)\s+dörr(?:ar)?\b"),
    ),
    "windows": (
        re.compile(r"(?<![\d.])(\d+)\s*(?:st(?:ycken)?\s+)?fönst(?:er|ret|ren)\b"),
        re.compile(r"\bfönst(?:er|ret|ren)\s*:?\s*(\d+)\b"),
        re.compile(r"\b(?:inga|inget)\s+fönster\b"),
    ),
}

# "klar" only counts as the last word ("sen är jag klar"), not as an adjective ("klar lack").
_RE_DONE = re.compile(
    r"\b(?:klar|klart|färdig|färdiga|slut)(?:\s+(?:nu|då|med\s+det|med\s+allt))?$"
    r"|det\s+var\s+allt|det\s+är\s+allt|inga\s+fler|inget\s+mer"
)
_RE_CONFIRM = re.compile(
    r"\b(?:ja|japp|jajamen|jo|visst|ok|okej|okay|bra|absolut|självklart|stämmer|korrekt|precis|bekräfta|bekräftar"
    r"|godkänn|godkänner)\b|vill\s+se"
)
_RE_NEGATION = re.compile(r"\b(?:nej|inte|icke|nä|nää|aldrig)\b")


@dataclass(frozen=True)
class RoomMeasurements:
    width: float
    length: float
    height: float
    doors: int = DEFAULT_DOORS
    windows: int = DEFAULT_WINDOWS

    def to_dict(self) -> Dict[str, float]:
        return {
            "width": self.width,
            "length": self.length,
            "height": self.height,
            "doors": self.doors,
            "windows": self.windows,
        }


def parse_name(text: str) -> Optional[str]:
    """Strip spoken lead-ins ("projektet heter ...") and capitalise; ``None`` when not 2-100 characters."""
    if not text:
        return None
    name = " ".join(text.split())
    for pattern in _RE_NAME_LEAD_INS:
        name = pattern.sub("", name, count=1)
    name = _RE_EDGE_PUNCTUATION.sub("", name)
    if not (NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH):
        return None
    return name[0].upper() + name[1:]


def _extract_count(text: str, key: str, default: int) -> Tuple[int, str]:
    counted, inverse, none = _RE_COUNTS[key]
    for pattern in (counted, inverse):
        match = pattern.search(text)
        if match:
            return int(match.group(1)), text[: match.start()] + " " + text[match.end():]
    match = none.search(text)
    if match:
        return 0, text[: match.start()] + " " + text[match.end():]
    return default, text


def _dimensions(text: str) -> Optional[Tuple[float, float, float]]:
    labelled = {}
    for key, pattern in _RE_LABELLED.items():
        match = pattern.search(text)
        if match:
            labelled[key] = float(next(group for group in match.groups() if group is not None))
    if len(labelled) == 3:
        return labelled["width"], labelled["length"], labelled["height"]
    for pattern in (_RE_TRIPLE, _RE_WHITESPACE_TRIPLE):
        match = pattern.search(text)
        if match:
            return float(match.group(1)), float(match.group(2)), float(match.group(3))
    return None


def parse_measurements(text: str) -> Optional[RoomMeasurements]:
    """Read width, length and height (plus optional door/window counts) from *text*.

    Accepted: "fyra gånger fem gånger två och en halv", "bredd 4, längd 5,
    höjd 2,5", "4x5x2.5", "4 5 2,5" and "4 meter bred, 5 meter lång, 2,5
    meter hög". Doors and windows default to one each. Returns ``None``
    when no complete triple is found; range checks are left to the caller.
    """

    normalized = words_to_numbers(normalize_utterance(text))
    if not normalized:
        return None
    doors, remaining = _extract_count(normalized, "doors", DEFAULT_DOORS)
    windows, remaining = _extract_count(remaining, "windows", DEFAULT_WINDOWS)
    dims = _dimensions(remaining)
    if dims is None:
        return None
    width, length, height = dims
    return RoomMeasurements(width=width, length=length, height=height, doors=doors, windows=windows)


def _cleaned(text: str) -> str:
    return re.sub(r"[!?.,]", " ", normalize_utterance(text)).strip()


def is_done(text: str) -> bool:
    """True for "klar", "färdig", "det var allt", "inga fler" and similar."""
    return bool(_RE_DONE.search(_cleaned(text)))


def is_confirmation(text: str) -> bool:
    """True for "ja", "okej", "stämmer", "bekräfta" etc.; a negation ("stämmer inte") wins."""
    cleaned = _cleaned(text)
    if not cleaned or _RE_NEGATION.search(cleaned):
        return False
    return bool(_RE_CONFIRM.search(cleaned))
