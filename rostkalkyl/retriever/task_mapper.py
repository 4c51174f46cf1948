from __future__ import annotations

"""Deterministic mapping of a task description onto a catalog task.

Lookup order, first hit wins: exact name, exact synonym, token overlap.
Nothing is guessed: when no candidate qualifies the caller receives a
:class:`NoMatch` carrying the closest task names for the error message.
"""

from dataclasses import dataclass
from functools import lru_cache
import logging
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from ..app.intent_parser import KIND_ACTION, SURFACE_TOKENS, canonical_tokens, match_keyword
from ..app.models import Surface, normalize_surface
from ..shared.fuzzy_matcher import find_best_matches
from ..shared.normalize import normalize_utterance, tokenize
from ..store.catalog_store import Catalog, CatalogTask

logger = logging.getLogger("rostkalkyl.mapper")

MIN_OVERLAP_SCORE = 0.0
_SUGGESTION_LIMIT = 3
_SUGGESTION_MIN_SCORE = 0.35

MATCH_NAME = "name"
MATCH_SYNONYM = "synonym"
MATCH_OVERLAP = "overlap"


@dataclass(frozen=True)
class TaskMatch:
    task: CatalogTask
    score: float
    match_kind: str

    @property
    def matched(self) -> bool:
        return True


@dataclass(frozen=True)
class NoMatch:
    description: str
    suggestions: Tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return False


MatchResult = Union[TaskMatch, NoMatch]


def _exact_key(text: str) -> str:
    return " ".join(tokenize(normalize_utterance(text)))


@lru_cache(maxsize=4096)
def _task_tokens(task: CatalogTask) -> FrozenSet[str]:
    tokens = set(canonical_tokens(task.name_sv))
    for synonym in task.synonyms:
        tokens.update(canonical_tokens(synonym))
    if task.surface_type is not None:
        tokens.add(task.surface_type.value)
    return frozenset(tokens)


def _is_action(token: str) -> bool:
    rule = match_keyword(token)
    return rule is not None and rule.kind == KIND_ACTION


def _prefer_hint(hits: Sequence[CatalogTask], hint: Optional[Surface]) -> CatalogTask:
    if hint is not None:
        for task in hits:
            if task.surface_type == hint:
                return task
    return hits[0]


def _overlap_score(description_tokens: Sequence[str], task: CatalogTask) -> float:
    desc = set(description_tokens)
    if not desc:
        return 0.0
    overlap = desc & _task_tokens(task)
    if not (overlap - SURFACE_TOKENS):
        return 0.0
    surfaces = desc & SURFACE_TOKENS
    plain = {token for token in desc - surfaces if not _is_action(token)}
    objects = surfaces or plain
    if not objects or not (overlap & objects):
        return 0.0
    return len(overlap) / len(desc)


def suggest_tasks(description: str, catalog: Catalog, limit: int = _SUGGESTION_LIMIT) -> List[str]:
    names = [task.name_sv for task in catalog]
    return [name for name, _ in find_best_matches(description, names, top_k=limit, min_score=_SUGGESTION_MIN_SCORE)]


def map_task_description(
    description: str,
    catalog: Catalog,
    surface_hint: Union[Surface, str, None] = None,
    min_score: float = MIN_OVERLAP_SCORE,
) -> MatchResult:
    """Resolve *description* against *catalog*.

    Exact name and synonym hits score 1.0; among several the task whose
    surface equals *surface_hint* wins, else the first in load order. The
    overlap stage only considers tasks tagged with the hinted surface and
    needs at least one non-surface token in common.
    """

    hint = normalize_surface(surface_hint) if surface_hint is not None else None
    key = _exact_key(description)
    tasks: List[CatalogTask] = catalog.all()
    if not key or not tasks:
        return NoMatch(description=description)

    name_hits = [task for task in tasks if _exact_key(task.name_sv) == key]
    if name_hits:
        return TaskMatch(task=_prefer_hint(name_hits, hint), score=1.0, match_kind=MATCH_NAME)

    synonym_hits = [task for task in tasks if any(_exact_key(s) == key for s in task.synonyms)]
    if synonym_hits:
        return TaskMatch(task=_prefer_hint(synonym_hits, hint), score=1.0, match_kind=MATCH_SYNONYM)

    description_tokens = canonical_tokens(description)
    candidates: Iterable[CatalogTask] = tasks
    if hint is not None:
        candidates = [task for task in tasks if task.surface_type == hint]

    best: Optional[CatalogTask] = None
    best_score = 0.0
    for task in candidates:
        score = _overlap_score(description_tokens, task)
        if score > best_score:
            best, best_score = task, score
    if best is not None and best_score >= min_score:
        return TaskMatch(task=best, score=round(best_score, 4), match_kind=MATCH_OVERLAP)

    suggestions = tuple(suggest_tasks(description, catalog))
    logger.info("No catalog task for %r (hint=%s)", description, hint.value if hint else None)
    return NoMatch(description=description, suggestions=suggestions)
