"""Step-by-step conversation that builds an estimate for one room.

The conversation is an explicit, serializable :class:`ConversationState`
passed through the pure :func:`advance` transition. Steps only ever move
forward::

    AWAITING_PROJECT_NAME -> AWAITING_ROOM_NAME -> AWAITING_MEASUREMENTS
        -> COLLECTING_TASKS -> AWAITING_CONFIRMATION -> DONE

A reply that cannot be parsed for the current step re-emits the prompt and
leaves the step unchanged. :class:`ConversationMachine` wraps the state for
callers that want a mutable handle (HTTP sessions, the CLI).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..store.catalog_store import Catalog
from .conversation_parser import is_confirmation, is_done, parse_measurements, parse_name
from .error_messages import (
    confirmation_reprompt_message,
    conversation_finished_message,
    invalid_measurement_message,
    invalid_name_message,
    measurement_out_of_range_message,
    missing_measurements_message,
)
from .geometry import RoomGeometry, validate_dimensions
from .intent_parser import parse_utterance
from .pricing import MappedLineItem, PricingConfig
from .services.estimate_service import (
    ERROR_UNMAPPED,
    EstimateError,
    EstimateResult,
    compute_totals,
    estimate_utterance,
    group_sections,
)

logger = logging.getLogger("rostkalkyl.conversation")

ERROR_EMPTY_INPUT = "empty_input"
ERROR_INVALID_NAME = "invalid_name"
ERROR_INVALID_MEASUREMENT = "invalid_measurement"
ERROR_MEASUREMENT_RANGE = "measurement_out_of_range"
ERROR_MISSING_MEASUREMENTS = "missing_measurements"
ERROR_NOT_CONFIRMED = "not_confirmed"
ERROR_FINISHED = "conversation_finished"


class Step(str, Enum):
    AWAITING_PROJECT_NAME = "awaiting_project_name"
    AWAITING_ROOM_NAME = "awaiting_room_name"
    AWAITING_MEASUREMENTS = "awaiting_measurements"
    COLLECTING_TASKS = "collecting_tasks"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DONE = "done"


PROMPTS: Dict[Step, str] = {
    Step.AWAITING_PROJECT_NAME: "Vad heter projektet?",
    Step.AWAITING_ROOM_NAME: "Tack! Vad heter rummet?",
    Step.AWAITING_MEASUREMENTS: (
        "Bra! Nu behöver jag rummets mått. Säg bredd, längd och höjd i meter. "
        "Till exempel: fyra gånger fem gånger två och en halv."
    ),
    Step.COLLECTING_TASKS: (
        "Perfekt! Berätta vilka målningsarbeten som ska göras, en uppgift i taget, "
        'till exempel "måla väggar två lager" eller "grundmåla tak". Säg "klar" när du är färdig.'
    ),
    Step.AWAITING_CONFIRMATION: "Stämmer kalkylen?",
    Step.DONE: "Kalkylen är bekräftad.",
}
NEXT_TASK_PROMPT = 'Nästa uppgift? Eller säg "klar" om du är färdig.'
_STEPS_NEEDING_GEOMETRY = (Step.COLLECTING_TASKS, Step.AWAITING_CONFIRMATION, Step.DONE)


@dataclass(frozen=True)
class TranscriptEntry:
    step: Step
    text: str
    accepted: bool
    reply: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.step.value, "text": self.text, "accepted": self.accepted, "reply": self.reply}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TranscriptEntry":
        return cls(
            step=Step(payload["step"]),
            text=str(payload.get("text", "")),
            accepted=bool(payload.get("accepted", False)),
            reply=str(payload.get("reply", "")),
        )


@dataclass(frozen=True)
class ConversationState:
    step: Step = Step.AWAITING_PROJECT_NAME
    project_name: Optional[str] = None
    room_name: Optional[str] = None
    geometry: Optional[RoomGeometry] = None
    line_items: Tuple[MappedLineItem, ...] = ()
    errors: Tuple[EstimateError, ...] = ()
    transcript: Tuple[TranscriptEntry, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "project_name": self.project_name,
            "room_name": self.room_name,
            "geometry": self.geometry.to_dict() if self.geometry else None,
            "line_items": [item.to_dict(include_raw=True) for item in self.line_items],
            "errors": [error.to_dict() for error in self.errors],
            "transcript": [entry.to_dict() for entry in self.transcript],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConversationState":
        """Rebuild a state from :meth:`to_dict` output.

        Raises ``ValueError`` when a state past the measurement step carries
        no geometry.
        """
        step = Step(payload.get("step", Step.AWAITING_PROJECT_NAME.value))
        geometry = RoomGeometry.from_dict(payload.get("geometry"))
        if geometry is None and step in _STEPS_NEEDING_GEOMETRY:
            raise ValueError(f"conversation state in step {step.value!r} has no room geometry")
        return cls(
            step=step,
            project_name=payload.get("project_name"),
            room_name=payload.get("room_name"),
            geometry=geometry,
            line_items=tuple(MappedLineItem.from_dict(item) for item in payload.get("line_items") or ()),
            errors=tuple(EstimateError.from_dict(error) for error in payload.get("errors") or ()),
            transcript=tuple(TranscriptEntry.from_dict(entry) for entry in payload.get("transcript") or ()),
        )


@dataclass(frozen=True)
class TurnResult:
    state: ConversationState
    prompt: str
    step: Step
    transcript_entry: Optional[TranscriptEntry]
    accepted: bool
    errors: Tuple[EstimateError, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "prompt": self.prompt,
            "accepted": self.accepted,
            "done": self.step is Step.DONE,
            "errors": [error.to_dict() for error in self.errors],
            "transcript_entry": self.transcript_entry.to_dict() if self.transcript_entry else None,
        }


def _format_amount(value: float) -> str:
    return f"{value:,.2f}".replace(",", " ").replace(".", ",")


def confirmation_prompt(state: ConversationState, config: PricingConfig) -> str:
    count = len(state.line_items)
    if not count:
        return "Inga uppgifter har lagts till. Vill du bekräfta en tom kalkyl?"
    totals = compute_totals(state.line_items, config)
    noun = "uppgift" if count == 1 else "uppgifter"
    return (
        f"{count} {noun}, totalt {_format_amount(totals.grand_total)} {totals.currency} "
        f"inklusive {totals.markup_pct:g} % pålägg. Stämmer kalkylen?"
    )


def _error(kind: str, text: str, message: str) -> EstimateError:
    return EstimateError(kind=kind, utterance=text, message=message)


def _reject(state: ConversationState, text: str, errors: Sequence[EstimateError], prompt: str) -> TurnResult:
    reply = "\n".join([error.message for error in errors] + ([prompt] if prompt else []))
    entry = TranscriptEntry(step=state.step, text=text, accepted=False, reply=reply)
    new_state = replace(state, transcript=state.transcript + (entry,))
    return TurnResult(
        state=new_state, prompt=reply, step=state.step, transcript_entry=entry, accepted=False, errors=tuple(errors)
    )


def _accept(
    state: ConversationState,
    text: str,
    prompt: str,
    *,
    turn_errors: Sequence[EstimateError] = (),
    **changes: Any,
) -> TurnResult:
    new_state = replace(state, **changes)
    if new_state.step is not state.step:
        logger.debug("Conversation step %s -> %s", state.step.value, new_state.step.value)
    entry = TranscriptEntry(step=state.step, text=text, accepted=True, reply=prompt)
    new_state = replace(new_state, transcript=new_state.transcript + (entry,))
    return TurnResult(
        state=new_state,
        prompt=prompt,
        step=new_state.step,
        transcript_entry=entry,
        accepted=True,
        errors=tuple(turn_errors),
    )


def _handle_name(state: ConversationState, text: str, next_step: Step, subject: str, field_name: str) -> TurnResult:
    name = parse_name(text)
    if name is None:
        return _reject(state, text, [_error(ERROR_INVALID_NAME, text, invalid_name_message(subject))], "")
    return _accept(state, text, PROMPTS[next_step], step=next_step, **{field_name: name})


def _handle_measurements(state: ConversationState, text: str) -> TurnResult:
    measurements = parse_measurements(text)
    prompt = PROMPTS[Step.AWAITING_MEASUREMENTS]
    if measurements is None:
        logger.info("Could not read measurements from %r", text)
        return _reject(state, text, [_error(ERROR_INVALID_MEASUREMENT, text, invalid_measurement_message())], prompt)
    problems = validate_dimensions(**measurements.to_dict())
    if problems:
        message = measurement_out_of_range_message(problems)
        return _reject(state, text, [_error(ERROR_MEASUREMENT_RANGE, text, message)], "")
    geometry = RoomGeometry(**measurements.to_dict())
    prompt = (
        f"Mått: {geometry.width:g} × {geometry.length:g} × {geometry.height:g} meter, "
        f"{geometry.doors} dörr(ar) och {geometry.windows} fönster.\n{PROMPTS[Step.COLLECTING_TASKS]}"
    )
    return _accept(state, text, prompt, step=Step.COLLECTING_TASKS, geometry=geometry)


def _handle_tasks(
    state: ConversationState,
    text: str,
    catalog: Catalog,
    config: PricingConfig,
    fixes: Optional[Dict[str, str]],
) -> TurnResult:
    if state.geometry is None:
        logger.warning("Conversation in %s has no room measurements", state.step.value)
        return _reject(state, text, [_error(ERROR_MISSING_MEASUREMENTS, text, missing_measurements_message())], "")
    done = is_done(text)
    if done and not parse_utterance(text, fixes):
        items: List[MappedLineItem] = []
        errors: List[EstimateError] = []
    else:
        items, errors = estimate_utterance(text, state.geometry, catalog, config, fixes)

    line_items = state.line_items + tuple(items)
    all_errors = state.errors + tuple(errors)
    if done:
        advanced = replace(state, line_items=line_items, errors=all_errors)
        return _accept(
            state,
            text,
            confirmation_prompt(advanced, config),
            turn_errors=errors,
            step=Step.AWAITING_CONFIRMATION,
            line_items=line_items,
            errors=all_errors,
        )

    if not items:
        return _reject(replace(state, errors=all_errors), text, errors, NEXT_TASK_PROMPT)

    added = ", ".join(item.task_name for item in items)
    lines = [f"Lade till: {added}."] + [error.message for error in errors] + [NEXT_TASK_PROMPT]
    return _accept(state, text, "\n".join(lines), turn_errors=errors, line_items=line_items, errors=all_errors)


def advance(
    state: ConversationState,
    text: str,
    catalog: Catalog,
    config: Optional[PricingConfig] = None,
    fixes: Optional[Dict[str, str]] = None,
) -> TurnResult:
    """Apply one user reply to *state* and return the next state and prompt.

    Never mutates *state*. In ``DONE`` the reply is refused and the state
    is returned unchanged.
    """

    config = config or PricingConfig()
    text = (text or "").strip()

    if state.step is Step.DONE:
        error = _error(ERROR_FINISHED, text, conversation_finished_message())
        return TurnResult(
            state=state, prompt=error.message, step=state.step, transcript_entry=None, accepted=False, errors=(error,)
        )

    if not text:
        prompt = current_prompt(state, config)
        return _reject(state, text, [_error(ERROR_EMPTY_INPUT, text, "Jag hörde inget. Försök igen.")], prompt)

    if state.step is Step.AWAITING_PROJECT_NAME:
        return _handle_name(state, text, Step.AWAITING_ROOM_NAME, "projektet", "project_name")
    if state.step is Step.AWAITING_ROOM_NAME:
        return _handle_name(state, text, Step.AWAITING_MEASUREMENTS, "rummet", "room_name")
    if state.step is Step.AWAITING_MEASUREMENTS:
        return _handle_measurements(state, text)
    if state.step is Step.COLLECTING_TASKS:
        return _handle_tasks(state, text, catalog, config, fixes)

    if is_confirmation(text):
        totals = compute_totals(state.line_items, config)
        prompt = f"{PROMPTS[Step.DONE]} Totalt {_format_amount(totals.grand_total)} {totals.currency}."
        return _accept(state, text, prompt, step=Step.DONE)
    return _reject(
        state, text, [_error(ERROR_NOT_CONFIRMED, text, confirmation_reprompt_message())], ""
    )


def current_prompt(state: ConversationState, config: Optional[PricingConfig] = None) -> str:
    if state.step is Step.AWAITING_CONFIRMATION:
        return confirmation_prompt(state, config or PricingConfig())
    return PROMPTS[state.step]


class ConversationMachine:
    """Mutable wrapper around :func:`advance`; drive it from one caller at a time."""

    def __init__(
        self,
        catalog: Catalog,
        config: Optional[PricingConfig] = None,
        fixes: Optional[Dict[str, str]] = None,
        state: Optional[ConversationState] = None,
    ):
        self.catalog = catalog
        self.config = config or PricingConfig()
        self.fixes = fixes
        self._state = state or ConversationState()

    @classmethod
    def from_state(
        cls,
        state: Union[ConversationState, Mapping[str, Any]],
        catalog: Catalog,
        config: Optional[PricingConfig] = None,
        fixes: Optional[Dict[str, str]] = None,
    ) -> "ConversationMachine":
        if not isinstance(state, ConversationState):
            state = ConversationState.from_dict(state)
        return cls(catalog, config=config, fixes=fixes, state=state)

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def step(self) -> Step:
        return self._state.step

    @property
    def prompt(self) -> str:
        return current_prompt(self._state, self.config)

    def process_input(self, text: str) -> TurnResult:
        result = advance(self._state, text, self.catalog, self.config, self.fixes)
        self._state = result.state
        return result

    def get_summary(self) -> Dict[str, Any]:
        state = self._state
        return {
            "project_name": state.project_name,
            "room_name": state.room_name,
            "geometry": state.geometry.to_dict() if state.geometry else None,
            "tasks": [item.to_dict() for item in state.line_items],
        }

    def estimate(self) -> EstimateResult:
        """Estimate assembled from the tasks collected so far."""
        state = self._state
        unmapped = tuple(
            error.description for error in state.errors if error.kind == ERROR_UNMAPPED and error.description
        )
        return EstimateResult(
            line_items=state.line_items,
            errors=state.errors,
            totals=compute_totals(state.line_items, self.config),
            unmapped=unmapped,
            sections=group_sections(state.line_items, self.catalog),
        )
