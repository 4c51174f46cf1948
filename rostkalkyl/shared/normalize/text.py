from __future__ import annotations

"""Normalization primitives shared between the intent, measurement and catalog parsers."""

from functools import lru_cache
from pathlib import Path
import re
import unicodedata
from typing import Dict, List, Mapping, Optional, Tuple, Union

import yaml

_RE_WHITESPACE = re.compile(r"\s+")
_RE_DECIMAL_COMMA = re.compile(r"(\d),(\d)")
_RE_TOKEN = re.compile(r"\d+(?:\.\d+)?|[^\W\d_]+")
_RE_NUMBER = re.compile(r"^\d+(?:\.\d+)?$")

DEFAULT_FIXES_PATH = Path(__file__).resolve().parent / "transcription_fixes.yaml"

NUMBER_WORDS: Dict[str, int] = {
    "noll": 0,
    "en": 1,
    "ett": 1,
    "två": 2,
    "tre": 3,
    "fyra": 4,
    "fem": 5,
    "sex": 6,
    "sju": 7,
    "åtta": 8,
    "nio": 9,
    "tio": 10,
    "elva": 11,
    "tolv": 12,
    "tretton": 13,
    "fjorton": 14,
    "femton": 15,
    "sexton": 16,
    "sjutton": 17,
    "arton": 18,
    "nitton": 19,
    "tjugo": 20,
    "trettio": 30,
    "fyrtio": 40,
    "femtio": 50,
    "sextio": 60,
    "sjuttio": 70,
    "åttio": 80,
    "nittio": 90,
}

_TENS_ALT = "tjugo|trettio|fyrtio|femtio|sextio|sjuttio|åttio|nittio"
_NUMBER_ALT = "|".join(sorted(NUMBER_WORDS, key=len, reverse=True))
_NUMERAL = rf"(?:\d+(?:\.\d+)?|{_NUMBER_ALT})"
_RE_AND_A_HALF = re.compile(rf"\b({_NUMERAL})\s+och\s+en\s+halv\b")
# "fyra och fyrtio" is how a length of 4.40 m is read out.
_RE_AND_CENTIMETRES = re.compile(rf"\b({_NUMERAL})\s+och\s+({_TENS_ALT})\b")
_RE_SPOKEN_DECIMAL = re.compile(rf"\b({_NUMERAL})\s+komma\s+({_NUMERAL})\b")
_RE_NUMBER_WORD = re.compile(rf"\b({_NUMBER_ALT})\b")


def normalize_utterance(text: str, fixes: Optional[Mapping[str, str]] = None) -> str:
    """Return a deterministic lowercase form of *text* for the Swedish parsers.

    The procedure applies NFC composition (speech engines occasionally emit
    decomposed å/ä/ö), lowercases, turns decimal commas between digits into
    dots and collapses whitespace. Swedish letters are preserved. When *fixes*
    is given, known mishearings are replaced afterwards.
    """

    if not text:
        return ""

    normalized = unicodedata.normalize("NFC", text).strip().lower()
    normalized = _RE_DECIMAL_COMMA.sub(r"\1.\2", normalized)
    normalized = _RE_WHITESPACE.sub(" ", normalized).strip()
    if fixes:
        normalized = apply_transcription_fixes(normalized, fixes)
    return normalized


def tokenize(text: str) -> List[str]:
    """Split *text* into ordered word and number tokens, dropping punctuation."""

    if not text:
        return []
    return _RE_TOKEN.findall(text.lower())


def parse_number(token: str) -> Optional[float]:
    """Interpret a single token as a number (digits or a Swedish number word)."""

    if not token:
        return None
    token = token.strip().lower().replace(",", ".")
    if _RE_NUMBER.match(token):
        return float(token)
    if token in NUMBER_WORDS:
        return float(NUMBER_WORDS[token])
    return None


def words_to_numbers(text: str) -> str:
    """Rewrite spoken numbers in *text* as digits.

    Handles "två och en halv" (2.5), "fyra och fyrtio" (4.4), "två komma
    fem" (2.5) and the single number words in :data:`NUMBER_WORDS`. The
    article "en" is rewritten too, so only call this on text where every
    number word is a quantity.
    """

    if not text:
        return ""

    def _half(match: "re.Match[str]") -> str:
        return _format_number(_numeral_value(match.group(1)) + 0.5)

    def _centimetres(match: "re.Match[str]") -> str:
        whole = _numeral_value(match.group(1))
        return _format_number(whole + NUMBER_WORDS[match.group(2)] / 100.0)

    def _decimal(match: "re.Match[str]") -> str:
        whole = _format_number(_numeral_value(match.group(1)))
        fraction = _format_number(_numeral_value(match.group(2)))
        return f"{whole}.{fraction}"

    result = _RE_AND_A_HALF.sub(_half, text)
    result = _RE_AND_CENTIMETRES.sub(_centimetres, result)
    result = _RE_SPOKEN_DECIMAL.sub(_decimal, result)
    result = _RE_NUMBER_WORD.sub(lambda m: str(NUMBER_WORDS[m.group(1)]), result)
    return result


@lru_cache(maxsize=8)
def _load_fixes_cached(path: str) -> Tuple[Tuple[str, str], ...]:
    content = Path(path).read_text(encoding="utf-8")
    loaded = yaml.safe_load(content) or {}
    if not isinstance(loaded, dict):
        raise ValueError("transcription fixes YAML must define a mapping")
    pairs: List[Tuple[str, str]] = []
    for wrong, right in loaded.items():
        wrong_norm = normalize_utterance(str(wrong))
        right_norm = normalize_utterance(str(right)) if right is not None else ""
        if wrong_norm:
            pairs.append((wrong_norm, right_norm))
    # Longest phrase first so "grundmålatak" wins over "målatak".
    pairs.sort(key=lambda pair: len(pair[0]), reverse=True)
    return tuple(pairs)


def load_transcription_fixes(path: Union[str, Path, None] = None) -> Dict[str, str]:
    """Load the ``{misheard: corrected}`` mapping from *path*.

    Defaults to the bundled ``transcription_fixes.yaml``. Keys and values are
    normalized via :func:`normalize_utterance`; the result is ordered longest
    key first.
    """

    resolved = Path(path) if path is not None else DEFAULT_FIXES_PATH
    return dict(_load_fixes_cached(str(resolved)))


def apply_transcription_fixes(text: str, fixes: Mapping[str, str]) -> str:
    """Replace whole-word occurrences of each misheard phrase in *text*."""

    if not text or not fixes:
        return text
    result = text
    for wrong, right in fixes.items():
        pattern = re.compile(rf"(?<!\w){re.escape(wrong)}(?!\w)")
        result = pattern.sub(right, result)
    return _RE_WHITESPACE.sub(" ", result).strip()


def _numeral_value(token: str) -> float:
    value = parse_number(token)
    return 0.0 if value is None else value


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
