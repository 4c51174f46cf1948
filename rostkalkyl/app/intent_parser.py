"""Turn a Swedish painting utterance into structured task intents.

Matching is keyword based. Every token is checked against ``KEYWORD_RULES``,
an ordered table of tagged rules: the highest priority rule whose pattern
fully matches the token wins, table order breaking ties. Utterances are split
into clauses first so that "spackla och måla väggarna, taket två lager"
yields one intent per action and surface pair.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..shared.normalize import load_transcription_fixes, normalize_utterance, parse_number, tokenize
from .models import SURFACE_PLURALS_SV, Action, Surface

logger = logging.getLogger("rostkalkyl.intent")

STAGE_WASH = 0
STAGE_JOINT_FILL = 1
STAGE_SAND = 2
STAGE_SKIM_COAT = 3
STAGE_PRIME = 4
STAGE_PAINT = 5
STAGE_SEAL = 6

KIND_ACTION = "action"
KIND_SURFACE = "surface"


@dataclass(frozen=True)
class KeywordRule:
    pattern: str
    kind: str
    value: Union[Action, Surface]
    priority: int = 10
    lemma: Optional[str] = None
    stage: Optional[int] = None

    def matches(self, token: str) -> bool:
        return _compile(self.pattern).fullmatch(token) is not None


@lru_cache(maxsize=None)
def _compile(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern)


KEYWORD_RULES: Tuple[KeywordRule, ...] = (
    # pipeline-only steps
    KeywordRule(
        r"tvätta|tvättar|tvättas|tvättat|tvätt|tvättning|rengöra|rengör|rengörs|rengöring|avfetta|avfettar|avfettas|avfettning",
        KIND_ACTION, Action.OTHER, 10, "tvätta", STAGE_WASH,
    ),
    KeywordRule(
        r"skarvspackla|skarvspacklar|skarvspacklas|skarvspacklat|skarvspackling",
        KIND_ACTION, Action.OTHER, 20, "skarvspackla", STAGE_JOINT_FILL,
    ),
    KeywordRule(
        r"slipa|slipar|slipas|slipat|slipning|mellanslipa|mellanslipas|mellanslipning",
        KIND_ACTION, Action.OTHER, 10, "slipa", STAGE_SAND,
    ),
    KeywordRule(
        r"foga|fogar|fogas|fogat|fogning|mjukfoga|mjukfogar|mjukfogas|mjukfogning|täta|tätar|tätas|tätning",
        KIND_ACTION, Action.OTHER, 10, "foga", STAGE_SEAL,
    ),
    # coating steps
    KeywordRule(
        r"bredspackla|bredspacklar|bredspacklas|bredspacklat|bredspackling",
        KIND_ACTION, Action.SKIM_COAT, 20, "bredspackla", STAGE_SKIM_COAT,
    ),
    KeywordRule(
        r"helspackla|helspacklar|helspacklas|helspacklat|helspackling",
        KIND_ACTION, Action.SKIM_COAT, 20, "helspackla", STAGE_SKIM_COAT,
    ),
    KeywordRule(
        r"punktspackla|punktspacklar|punktspacklas|punktspacklat|punktspackling",
        KIND_ACTION, Action.SKIM_COAT, 20, "punktspackla", STAGE_SKIM_COAT,
    ),
    KeywordRule(
        r"spackla|spacklar|spacklas|spacklat|spacklade|spackling|spacklingen",
        KIND_ACTION, Action.SKIM_COAT, 10, "spackla", STAGE_SKIM_COAT,
    ),
    KeywordRule(
        r"grundmåla|grundmålar|grundmålas|grundmålat|grundmålade|grundmålning|grunda|grundar|grundas|grundat|grundning"
        r"|grundbehandla|grundbehandlar|grundbehandlas|grundbehandling",
        KIND_ACTION, Action.PRIME, 20, "grundmåla", STAGE_PRIME,
    ),
    KeywordRule(
        r"spärrgrunda|spärrgrundar|spärrgrundas|spärrgrundat|spärrgrundning",
        KIND_ACTION, Action.PRIME, 20, "spärrgrunda", STAGE_PRIME,
    ),
    KeywordRule(
        r"täckmåla|täckmålar|täckmålas|täckmålat|täckmålade|täckmålning|färdigmåla|färdigmålar|färdigmålas"
        r"|slutstryka|slutstryker|slutstrykning",
        KIND_ACTION, Action.TOPCOAT, 20, "täckmåla", STAGE_PAINT,
    ),
    KeywordRule(
        r"lacka|lackar|lackas|lackat|lackade|lackera|lackerar|lackeras|lackering",
        KIND_ACTION, Action.PAINT, 10, "lacka", STAGE_PAINT,
    ),
    KeywordRule(
        r"fernissa|fernissar|fernissas|fernissat|fernissning",
        KIND_ACTION, Action.PAINT, 10, "fernissa", STAGE_PAINT,
    ),
    KeywordRule(
        r"måla|målar|målas|målat|målade|målning|målningen|stryka|stryker|strykas|rolla|rollar|rollas|behandla|behandlas",
        KIND_ACTION, Action.PAINT, 10, "måla", STAGE_PAINT,
    ),
    # unknown compounds such as "lasyrmåla" still count as painting
    KeywordRule(r"\w+måla|\w+målar|\w+målas", KIND_ACTION, Action.PAINT, 0, None, STAGE_PAINT),
    KeywordRule(r"\w+spackla|\w+spacklar|\w+spacklas", KIND_ACTION, Action.SKIM_COAT, 0, None, STAGE_SKIM_COAT),
    # surfaces
    KeywordRule(
        r"list|listen|lister|listerna|listverk\w*|taklist\w*|golvlist\w*|fönsterlist\w*|sockel|sockeln|socklar|socklarna"
        r"|foder|fodret|fodren|dörrfoder\w*|fönsterfoder\w*|karm|karmen|karmar|karmarna|dörrkarm\w*",
        KIND_SURFACE, Surface.TRIM, 20,
    ),
    KeywordRule(
        r"vägg|väggen|väggar|väggarna|väggyta|väggytan|väggytor|väggytorna|innervägg\w*",
        KIND_SURFACE, Surface.WALL, 10,
    ),
    KeywordRule(
        r"tak|taket|taken|innertak|innertaket|takyta|takytan|takytor|takytorna",
        KIND_SURFACE, Surface.CEILING, 10,
    ),
    KeywordRule(r"golv|golvet|golven|golvyta|golvytan|golvytor", KIND_SURFACE, Surface.FLOOR, 10),
    KeywordRule(
        r"dörr|dörren|dörrar|dörrarna|innerdörr\w*|ytterdörr\w*|dörrblad\w*",
        KIND_SURFACE, Surface.DOOR, 10,
    ),
    KeywordRule(
        r"fönster|fönstret|fönstren|fönsterna|fönsterbåge\w*|fönsterbåg\w*|fönsterbänk\w*",
        KIND_SURFACE, Surface.WINDOW, 10,
    ),
)

LAYER_WORDS = frozenset(
    {"lager", "lagret", "lagren", "gång", "gånger", "gången", "stryk", "strykning", "strykningar", "skikt"}
)

SEQUENCE_CUES = frozenset(
    {"först", "sedan", "sen", "därefter", "efteråt", "innan", "före", "efter", "slutligen", "sist", "avslutningsvis"}
)

PIPELINE_ONLY_STAGES = frozenset({STAGE_WASH, STAGE_JOINT_FILL, STAGE_SAND, STAGE_SEAL})

STOPWORDS = frozenset(
    {
        "alla", "allt", "all", "de", "den", "det", "dem", "denna", "detta", "dessa", "i", "på", "hela", "rummet",
        "rum", "och", "samt", "att", "ha", "ska", "skall", "vill", "jag", "vi", "du", "ni", "man", "med", "av",
        "för", "till", "en", "ett", "också", "även", "först", "sedan", "sen", "därefter", "efteråt", "innan",
        "före", "efter", "slutligen", "sist", "inkl", "inklusive", "kan", "bara", "nu", "så", "där", "här",
        "sida", "sidan", "sidor", "sidorna", "båda", "bägge", "vara", "är", "behöver", "gärna", "mm", "osv",
    }
)

SURFACE_TOKENS = frozenset(surface.value for surface in Surface)

_RULES_BY_PRIORITY: Tuple[KeywordRule, ...] = tuple(
    sorted(KEYWORD_RULES, key=lambda rule: -rule.priority)
)

_RE_CLAUSE_SPLIT = re.compile(
    r"\s*(?:[,;!?]|\.(?=\s|$))\s*"
    r"|\s+(?:och\s+sedan|och\s+sen|och\s+därefter|och\s+efter\s+det|och|samt|sedan|sen|därefter|efter\s+det|innan|slutligen)\s+"
)
_RE_BOTH_SIDES = re.compile(r"\b(?:båda|bägge|två)\s+sid(?:or|orna)\b|\bdubbelsidig\w*")


@dataclass(frozen=True)
class TaskIntent:
    action: Action
    surface: Union[Surface, str]
    verb: str
    quantity_modifier: float = 1.0
    layers: Optional[int] = None
    stage: int = STAGE_PAINT
    span: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "surface": self.surface.value if isinstance(self.surface, Surface) else self.surface,
            "verb": self.verb,
            "quantity_modifier": self.quantity_modifier,
            "layers": self.layers,
            "stage": self.stage,
            "span": self.span,
        }


@dataclass
class _Clause:
    text: str
    tokens: List[str]
    actions: List[Tuple[KeywordRule, str]] = field(default_factory=list)
    surfaces: List[Surface] = field(default_factory=list)
    layers: Optional[int] = None
    quantity_modifier: float = 1.0
    group: int = -1
    inherited_actions: bool = False


def match_keyword(token: str) -> Optional[KeywordRule]:
    """Return the winning rule for a single normalized token, if any."""
    if not token:
        return None
    for rule in _RULES_BY_PRIORITY:
        if rule.matches(token):
            return rule
    return None


def canonical_tokens(text: str) -> List[str]:
    """Tokens of *text* reduced to rule lemmas, surfaces as enum values, stopwords removed.

    Used by the catalog mapper so that "grundmålning av taket" and
    "Grundmåla tak" share the tokens ``grundmåla`` and ``ceiling``.
    """

    result: List[str] = []
    for token in tokenize(normalize_utterance(text)):
        if token in STOPWORDS or token in LAYER_WORDS or parse_number(token) is not None:
            continue
        rule = match_keyword(token)
        if rule is None:
            result.append(token)
        elif rule.kind == KIND_SURFACE:
            result.append(rule.value.value)
        else:
            result.append(rule.lemma or token)
    return result


def _split_clauses(text: str) -> List[str]:
    return [part.strip() for part in _RE_CLAUSE_SPLIT.split(text) if part and part.strip()]


def _layer_count(tokens: Sequence[str]) -> Optional[int]:
    for idx in range(1, len(tokens)):
        if tokens[idx] not in LAYER_WORDS:
            continue
        value = parse_number(tokens[idx - 1])
        if value is not None and value >= 1 and float(value).is_integer():
            return int(value)
    return None


def _scan_clause(text: str) -> _Clause:
    tokens = tokenize(text)
    clause = _Clause(text=text, tokens=tokens)
    for token in tokens:
        rule = match_keyword(token)
        if rule is None:
            continue
        if rule.kind == KIND_ACTION:
            clause.actions.append((rule, token))
        elif rule.value not in clause.surfaces:
            clause.surfaces.append(rule.value)
    clause.layers = _layer_count(tokens)
    if _RE_BOTH_SIDES.search(text):
        clause.quantity_modifier = 2.0
    return clause


def _assign_groups(clauses: List[_Clause]) -> None:
    group = -1
    last_actions: List[Tuple[KeywordRule, str]] = []
    for clause in clauses:
        if clause.actions:
            group += 1
            clause.group = group
            last_actions = clause.actions
        elif group >= 0:
            # Trailing clauses ("taket två lager") belong to the current group.
            clause.group = group
            if clause.surfaces:
                clause.actions = list(last_actions)
                clause.inherited_actions = True
    # Leading surface-only clauses ("väggarna och taket ska målas") borrow from the next action clause.
    for idx, clause in enumerate(clauses):
        if clause.actions or not clause.surfaces:
            continue
        donor = next((c for c in clauses[idx + 1:] if c.actions and not c.inherited_actions), None)
        if donor is not None:
            clause.actions = list(donor.actions)
            clause.inherited_actions = True
            clause.group = donor.group


def _group_surfaces(clauses: List[_Clause], group: int) -> List[Surface]:
    surfaces: List[Surface] = []
    for clause in clauses:
        if clause.group == group:
            for surface in clause.surfaces:
                if surface not in surfaces:
                    surfaces.append(surface)
    return surfaces


def _borrow_surfaces(clauses: List[_Clause], idx: int) -> List[Surface]:
    following = (c for c in clauses[idx + 1:] if c.surfaces)
    preceding = (c for c in reversed(clauses[:idx]) if c.surfaces)
    for donor in (next(following, None), next(preceding, None)):
        if donor is not None:
            return _group_surfaces(clauses, donor.group) or list(donor.surfaces)
    return []


def _free_text_surface(clause: _Clause) -> Optional[str]:
    """First content word after the verb, kept verbatim when no known surface is named."""
    seen_action = False
    for token in clause.tokens:
        if match_keyword(token) is not None:
            seen_action = True
            continue
        if not seen_action:
            continue
        if token in STOPWORDS or token in LAYER_WORDS or token in SEQUENCE_CUES or parse_number(token) is not None:
            continue
        return token
    return None


def _group_value(clauses: List[_Clause], group: int, attr: str, default: Any) -> Any:
    for clause in clauses:
        if clause.group == group:
            value = getattr(clause, attr)
            if value is not None and value != default:
                return value
    return default


def parse_utterance(text: str, fixes: Optional[Dict[str, str]] = None) -> List[TaskIntent]:
    """Parse *text* into task intents; returns ``[]`` when nothing is recognized.

    *fixes* defaults to the bundled transcription fixes table.
    """

    if not text or not text.strip():
        return []
    if fixes is None:
        fixes = load_transcription_fixes()
    normalized = normalize_utterance(text, fixes)
    clauses = [clause for clause in (_scan_clause(part) for part in _split_clauses(normalized)) if clause.tokens]
    _assign_groups(clauses)

    intents: List[TaskIntent] = []
    for idx, clause in enumerate(clauses):
        if not clause.actions:
            continue
        surfaces: List[Union[Surface, str]] = list(clause.surfaces) or list(_borrow_surfaces(clauses, idx))
        if not surfaces:
            free_text = _free_text_surface(clause)
            if free_text is None:
                continue
            surfaces = [free_text]
        layers = clause.layers or _group_value(clauses, clause.group, "layers", None)
        modifier = clause.quantity_modifier
        if modifier == 1.0:
            modifier = _group_value(clauses, clause.group, "quantity_modifier", 1.0)
        for rule, token in clause.actions:
            for surface in surfaces:
                intents.append(
                    TaskIntent(
                        action=rule.value,
                        surface=surface,
                        verb=rule.lemma or token,
                        quantity_modifier=modifier,
                        layers=layers,
                        stage=rule.stage if rule.stage is not None else STAGE_PAINT,
                        span=clause.text,
                    )
                )

    if len(intents) > 1 and _has_pipeline_cue(normalized, intents):
        intents.sort(key=lambda intent: intent.stage)
    logger.debug("Parsed %d intent(s) from %r", len(intents), normalized)
    return intents


def _has_pipeline_cue(normalized: str, intents: Sequence[TaskIntent]) -> bool:
    if any(token in SEQUENCE_CUES for token in tokenize(normalized)):
        return True
    return any(intent.stage in PIPELINE_ONLY_STAGES for intent in intents)


def render_intent(intent: TaskIntent) -> str:
    """Render an intent as the catalog-style phrase "verb surface" (e.g. "måla väggar")."""
    if isinstance(intent.surface, Surface):
        surface_text = SURFACE_PLURALS_SV[intent.surface]
    else:
        surface_text = str(intent.surface)
    return f"{intent.verb} {surface_text}".strip()
