import pytest

from rostkalkyl.app.intent_parser import (
    STAGE_PAINT,
    STAGE_PRIME,
    STAGE_SAND,
    STAGE_SKIM_COAT,
    canonical_tokens,
    match_keyword,
    parse_utterance,
    render_intent,
)
from rostkalkyl.app.models import Action, Surface


def _pairs(intents):
    return [(intent.verb, intent.surface) for intent in intents]


def test_single_task_with_layers():
    intents = parse_utterance("Måla väggarna två lager")
    assert len(intents) == 1
    intent = intents[0]
    assert intent.action is Action.PAINT
    assert intent.surface is Surface.WALL
    assert intent.layers == 2
    assert render_intent(intent) == "måla väggar"


def test_layers_from_digits_and_gånger():
    assert parse_utterance("stryka taket 3 gånger")[0].layers == 3
    assert parse_utterance("måla taket")[0].layers is None


def test_prime_ceiling():
    intents = parse_utterance("grundmåla taket")
    assert _pairs(intents) == [("grundmåla", Surface.CEILING)]
    assert intents[0].action is Action.PRIME
    assert intents[0].stage == STAGE_PRIME


def test_priority_prefers_specific_compound():
    rule = match_keyword("bredspackla")
    assert rule is not None
    assert rule.value is Action.SKIM_COAT
    assert rule.lemma == "bredspackla"
    assert match_keyword("lasyrmåla").value is Action.PAINT
    assert match_keyword("dörrfoder").value is Surface.TRIM
    assert match_keyword("hej") is None


def test_one_action_many_surfaces():
    intents = parse_utterance("måla väggarna och taket två lager")
    assert _pairs(intents) == [("måla", Surface.WALL), ("måla", Surface.CEILING)]
    assert all(intent.layers == 2 for intent in intents)


def test_many_actions_one_surface_keeps_spoken_order():
    intents = parse_utterance("spackla och måla väggarna")
    assert _pairs(intents) == [("spackla", Surface.WALL), ("måla", Surface.WALL)]


def test_sequence_cue_orders_by_pipeline_stage():
    intents = parse_utterance("måla väggarna, men först slipa och spackla väggarna")
    assert [intent.stage for intent in intents] == [STAGE_SAND, STAGE_SKIM_COAT, STAGE_PAINT]


def test_leading_surface_clause_borrows_action():
    intents = parse_utterance("väggarna och taket ska målas")
    assert _pairs(intents) == [("måla", Surface.WALL), ("måla", Surface.CEILING)]


def test_both_sides_doubles_quantity():
    intent = parse_utterance("måla dörrarna på båda sidor")[0]
    assert intent.surface is Surface.DOOR
    assert intent.quantity_modifier == 2.0


def test_transcription_fix_applied_before_parsing():
    intents = parse_utterance("målarbänka två lager")
    assert _pairs(intents) == [("måla", Surface.WALL)]
    assert intents[0].layers == 2


def test_unknown_object_is_kept_verbatim():
    intents = parse_utterance("måla bänken")
    assert len(intents) == 1
    assert intents[0].surface == "bänken"
    assert render_intent(intents[0]) == "måla bänken"


@pytest.mark.parametrize("text", ["", "   ", "hej hur mår du", "väggarna är fina", "två lager"])
def test_nothing_recognized_returns_empty_list(text):
    assert parse_utterance(text) == []


def test_canonical_tokens_reduce_inflections():
    assert canonical_tokens("grundmålning av taket") == ["grundmåla", "ceiling"]
    assert canonical_tokens("Grundmåla tak") == ["grundmåla", "ceiling"]


def test_intent_to_dict():
    payload = parse_utterance("måla väggarna två lager")[0].to_dict()
    assert payload["action"] == "paint"
    assert payload["surface"] == "wall"
    assert payload["layers"] == 2
