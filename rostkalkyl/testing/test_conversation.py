from pathlib import Path

import pytest

from rostkalkyl.app.conversation import (
    ERROR_FINISHED,
    ERROR_INVALID_MEASUREMENT,
    ERROR_INVALID_NAME,
    ERROR_MEASUREMENT_RANGE,
    ERROR_MISSING_MEASUREMENTS,
    ERROR_NOT_CONFIRMED,
    ConversationMachine,
    ConversationState,
    Step,
    advance,
)
from rostkalkyl.app.conversation_parser import is_confirmation, is_done, parse_measurements, parse_name
from rostkalkyl.app.services.estimate_service import ERROR_UNMAPPED
from rostkalkyl.store import Catalog, read_catalog_file

DEMO_CATALOG = Path(__file__).resolve().parents[1] / "data" / "meps_catalog.yaml"

STEP_ORDER = list(Step)


@pytest.fixture(scope="module")
def catalog() -> Catalog:
    loaded, _ = Catalog.load(read_catalog_file(DEMO_CATALOG)["rows"])
    return loaded


@pytest.fixture
def machine(catalog) -> ConversationMachine:
    return ConversationMachine(catalog)


def _collecting(machine: ConversationMachine) -> ConversationMachine:
    machine.process_input("Projektet heter Villa Ek")
    machine.process_input("vardagsrummet")
    machine.process_input("fyra gånger fem gånger två och en halv")
    assert machine.step is Step.COLLECTING_TASKS
    return machine


# --- parsers ---

@pytest.mark.parametrize(
    "text, expected",
    [
        ("Projektet heter Villa Ek", "Villa Ek"),
        ("det heter köksrenoveringen.", "Köksrenoveringen"),
        ("rummet heter sovrum två", "Sovrum två"),
        ("Hallen", "Hallen"),
    ],
)
def test_parse_name_strips_lead_ins(text, expected):
    assert parse_name(text) == expected


@pytest.mark.parametrize("text", ["", "a", "det heter x", "x" * 101])
def test_parse_name_rejects_bad_lengths(text):
    assert parse_name(text) is None


@pytest.mark.parametrize(
    "text, dims",
    [
        ("fyra gånger fem gånger två och en halv", (4.0, 5.0, 2.5)),
        ("bredd 4, längd 5, höjd 2,5", (4.0, 5.0, 2.5)),
        ("4x5x2.5", (4.0, 5.0, 2.5)),
        ("4 × 5 × 2,6 meter", (4.0, 5.0, 2.6)),
        ("3,5 4 2,4", (3.5, 4.0, 2.4)),
        ("fyra meter bred, fem meter lång och två och en halv meter hög", (4.0, 5.0, 2.5)),
    ],
)
def test_parse_measurements_forms(text, dims):
    measurements = parse_measurements(text)
    assert measurements is not None
    assert (measurements.width, measurements.length, measurements.height) == pytest.approx(dims)
    assert measurements.doors == 1
    assert measurements.windows == 1


def test_parse_measurements_door_and_window_counts():
    measurements = parse_measurements("fyra gånger fem gånger två och en halv, två dörrar och tre fönster")
    assert (measurements.width, measurements.length, measurements.height) == pytest.approx((4.0, 5.0, 2.5))
    assert measurements.doors == 2
    assert measurements.windows == 3
    assert parse_measurements("4x5x2.5 inga fönster").windows == 0
    assert parse_measurements("4x5x2.5 dörrar 3").doors == 3


@pytest.mark.parametrize("text", ["", "ungefär fyra gånger fem", "stort rum"])
def test_parse_measurements_incomplete(text):
    assert parse_measurements(text) is None


def test_done_and_confirmation_phrases():
    assert is_done("klar")
    assert is_done("Jag är klar!")
    assert is_done("det var allt")
    assert is_done("inga fler")
    assert not is_done("måla väggarna")
    assert not is_done("lacka dörrarna med klar lack")
    assert is_done("grundmåla taket, sen är jag klar")
    assert is_done("jag är färdig nu")
    assert is_confirmation("Ja")
    assert is_confirmation("okej, det stämmer")
    assert is_confirmation("bekräfta")
    assert not is_confirmation("nej")
    assert not is_confirmation("det stämmer inte")
    assert not is_confirmation("vänta lite")


# --- state machine ---

def test_full_conversation(machine):
    assert machine.step is Step.AWAITING_PROJECT_NAME
    assert machine.prompt == "Vad heter projektet?"
    _collecting(machine)
    turn = machine.process_input("måla väggarna två lager")
    assert turn.accepted
    assert turn.step is Step.COLLECTING_TASKS
    assert "Täckmåla väggar" in turn.prompt
    turn = machine.process_input("grundmåla taket")
    assert turn.accepted

    turn = machine.process_input("klar")
    assert turn.step is Step.AWAITING_CONFIRMATION
    assert "2 uppgifter" in turn.prompt

    turn = machine.process_input("ja")
    assert turn.step is Step.DONE

    summary = machine.get_summary()
    assert summary["project_name"] == "Villa Ek"
    assert summary["room_name"] == "Vardagsrummet"
    assert summary["geometry"] == {"width": 4.0, "length": 5.0, "height": 2.5, "doors": 1, "windows": 1}
    assert [task["task_id"] for task in summary["tasks"]] == ["MÅL-VÄGG-TÄCKMÅL-M2", "MÅL-TAK-GRUNDMÅL-M2"]


def test_invalid_name_keeps_step(machine):
    turn = machine.process_input("x")
    assert not turn.accepted
    assert turn.step is Step.AWAITING_PROJECT_NAME
    assert turn.errors[0].kind == ERROR_INVALID_NAME


def test_invalid_measurements_reprompt(machine):
    machine.process_input("Villa Ek")
    machine.process_input("Köket")
    turn = machine.process_input("ganska stort")
    assert turn.step is Step.AWAITING_MEASUREMENTS
    assert turn.errors[0].kind == ERROR_INVALID_MEASUREMENT
    turn = machine.process_input("200 gånger 5 gånger 2,5")
    assert turn.step is Step.AWAITING_MEASUREMENTS
    assert turn.errors[0].kind == ERROR_MEASUREMENT_RANGE
    assert "Bredden får vara högst 100 m." in turn.prompt


def test_unknown_task_is_reported_and_collecting_continues(machine):
    _collecting(machine)
    turn = machine.process_input("lacka fönstren")
    assert not turn.accepted
    assert turn.step is Step.COLLECTING_TASKS
    assert turn.errors[0].kind == ERROR_UNMAPPED
    assert machine.estimate().unmapped == ("lacka fönster",)


def test_done_without_tasks_still_advances(machine):
    _collecting(machine)
    turn = machine.process_input("det var allt")
    assert turn.step is Step.AWAITING_CONFIRMATION
    assert machine.state.line_items == ()


def test_tasks_in_done_utterance_are_kept(machine):
    _collecting(machine)
    turn = machine.process_input("grundmåla taket, sen är jag klar")
    assert turn.step is Step.AWAITING_CONFIRMATION
    assert len(machine.state.line_items) == 1


def test_confirmation_is_never_skipped(machine):
    _collecting(machine)
    machine.process_input("klar")
    turn = machine.process_input("vänta lite")
    assert turn.step is Step.AWAITING_CONFIRMATION
    assert turn.errors[0].kind == ERROR_NOT_CONFIRMED


def test_done_rejects_input_without_changing_state(machine):
    _collecting(machine)
    machine.process_input("klar")
    machine.process_input("ja")
    before = machine.state
    turn = machine.process_input("måla taket")
    assert not turn.accepted
    assert turn.errors[0].kind == ERROR_FINISHED
    assert turn.transcript_entry is None
    assert machine.state is before


def test_steps_never_move_backwards(machine):
    replies = [
        "x", "Villa Ek", "", "Köket", "hej", "4x5x2.5", "hej", "måla väggarna",
        "klar", "nej", "ja", "måla taket",
    ]
    last = 0
    for reply in replies:
        index = STEP_ORDER.index(machine.process_input(reply).step)
        assert index >= last
        assert index - last <= 1
        last = index
    assert machine.step is Step.DONE


def test_advance_is_pure(catalog):
    state = ConversationState()
    result = advance(state, "Villa Ek", catalog)
    assert state.step is Step.AWAITING_PROJECT_NAME
    assert state.transcript == ()
    assert result.state.project_name == "Villa Ek"
    assert result.state.transcript[0].text == "Villa Ek"


def test_state_serializes_and_resumes(machine, catalog):
    _collecting(machine)
    machine.process_input("måla väggarna två lager")
    payload = machine.state.to_dict()
    resumed = ConversationMachine.from_state(payload, catalog)
    assert resumed.state == machine.state
    assert resumed.estimate().totals == machine.estimate().totals
    turn = resumed.process_input("klar")
    assert turn.step is Step.AWAITING_CONFIRMATION


def test_turn_errors_are_kept_apart_from_collected_errors(machine):
    _collecting(machine)
    turn = machine.process_input("grundmåla taket och lacka fönstren")
    assert turn.accepted
    assert [error.kind for error in turn.errors] == [ERROR_UNMAPPED]
    assert len(machine.state.line_items) == 1
    assert len(machine.state.errors) == 1

    turn = machine.process_input("klar")
    assert turn.step is Step.AWAITING_CONFIRMATION
    assert turn.errors == ()
    assert len(machine.state.errors) == 1
    assert len(machine.state.line_items) == 1


def test_adjective_klar_adds_task_without_finishing(machine):
    _collecting(machine)
    turn = machine.process_input("lacka dörrarna med klar lack")
    assert turn.step is Step.COLLECTING_TASKS


def test_missing_geometry_is_rejected_not_raised(catalog):
    state = ConversationState(step=Step.COLLECTING_TASKS)
    result = advance(state, "måla väggarna", catalog)
    assert not result.accepted
    assert result.step is Step.COLLECTING_TASKS
    assert result.errors[0].kind == ERROR_MISSING_MEASUREMENTS


def test_from_dict_requires_geometry_after_measurements():
    with pytest.raises(ValueError):
        ConversationState.from_dict({"step": "collecting_tasks"})
    with pytest.raises(ValueError):
        ConversationState.from_dict({"step": "awaiting_confirmation", "geometry": None})
    assert ConversationState.from_dict({"step": "awaiting_measurements"}).geometry is None
