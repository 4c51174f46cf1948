from pathlib import Path

import pytest

from rostkalkyl.app.intent_parser import parse_utterance, render_intent
from rostkalkyl.app.models import Surface
from rostkalkyl.retriever.task_mapper import (
    MATCH_NAME,
    MATCH_OVERLAP,
    MATCH_SYNONYM,
    NoMatch,
    TaskMatch,
    map_task_description,
)
from rostkalkyl.store import Catalog, read_catalog_file

DEMO_CATALOG = Path(__file__).resolve().parents[1] / "data" / "meps_catalog.yaml"


@pytest.fixture(scope="module")
def catalog() -> Catalog:
    loaded, errors = Catalog.load(read_catalog_file(DEMO_CATALOG)["rows"])
    assert errors == []
    return loaded


def test_synonym_match_scores_one(catalog):
    result = map_task_description("måla väggar", catalog)
    assert isinstance(result, TaskMatch)
    assert result.task.name_sv == "Täckmåla väggar"
    assert result.score == 1.0
    assert result.match_kind == MATCH_SYNONYM


def test_exact_name_match_ignores_case_and_punctuation(catalog):
    result = map_task_description("Grundmåla tak.", catalog)
    assert result.matched
    assert result.task.id == "MÅL-TAK-GRUNDMÅL-M2"
    assert result.match_kind == MATCH_NAME


def test_overlap_uses_surface_hint(catalog):
    result = map_task_description("rolla väggytorna", catalog, surface_hint=Surface.WALL)
    assert isinstance(result, TaskMatch)
    assert result.match_kind == MATCH_OVERLAP
    assert result.task.surface_type is Surface.WALL
    assert result.task.id == "MÅL-VÄGG-TÄCKMÅL-M2"


def test_unknown_verb_is_not_matched(catalog):
    result = map_task_description("slicka fönster", catalog)
    assert isinstance(result, NoMatch)
    assert not result.matched
    assert result.description == "slicka fönster"


def test_unknown_object_is_not_matched(catalog):
    result = map_task_description("måla bänken", catalog)
    assert isinstance(result, NoMatch)


def test_action_without_catalog_task_for_surface(catalog):
    result = map_task_description("slipa tak", catalog, surface_hint=Surface.CEILING)
    assert isinstance(result, NoMatch)


def test_empty_catalog_never_matches():
    assert isinstance(map_task_description("måla väggar", Catalog()), NoMatch)


def test_min_score_can_be_raised(catalog):
    result = map_task_description("rolla väggytorna", catalog, surface_hint=Surface.WALL, min_score=1.01)
    assert isinstance(result, NoMatch)


@pytest.mark.parametrize(
    "utterance, task_id",
    [
        ("måla väggarna två lager", "MÅL-VÄGG-TÄCKMÅL-M2"),
        ("grundmåla taket", "MÅL-TAK-GRUNDMÅL-M2"),
        ("bredspackla väggarna", "MÅL-VÄGG-SPACK-BRED-M2"),
        ("tvätta väggarna", "MÅL-VÄGG-TVÄTT-M2"),
        ("måla dörrarna", "MÅL-DÖRR-EN-SIDA-ST"),
        ("lacka golvet", "MÅL-GOLV-LACK-M2"),
    ],
)
def test_rendered_intents_map_to_catalog(catalog, utterance, task_id):
    intent = parse_utterance(utterance)[0]
    result = map_task_description(render_intent(intent), catalog, surface_hint=intent.surface)
    assert result.matched
    assert result.task.id == task_id


def test_render_then_remap_returns_same_task(catalog):
    first = map_task_description("stryka väggar", catalog)
    assert first.match_kind == MATCH_SYNONYM
    again = map_task_description(first.task.name_sv, catalog)
    assert again.task.id == first.task.id
