"""Friendly Swedish messages for estimate, catalog and conversation errors.

Every user-facing text is built here so the HTTP API, the CLI and the
conversation flow share the same wording.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Sequence

_EXAMPLE_TASK = "måla väggar två lager"
_EXAMPLE_MEASUREMENTS = "fyra gånger fem gånger två och en halv"


def _bullet_list(items: Iterable[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def no_task_recognized_message(utterance: str) -> str:
    """Reply when no action and surface could be found in an utterance."""
    cleaned = utterance.strip()
    if not cleaned:
        return f'Jag hörde ingen arbetsuppgift. Säg till exempel "{_EXAMPLE_TASK}".'
    return (
        f'Jag kunde inte hitta någon arbetsuppgift i "{cleaned}".\n'
        f'Säg till exempel "{_EXAMPLE_TASK}".'
    )


def unmapped_task_message(description: str, suggestions: Sequence[str] = ()) -> str:
    """Reply when a recognized task has no counterpart in the catalog."""
    text = f'Kunde inte hitta uppgiften "{description.strip()}" i MEPS-katalogen.'
    cleaned = [s.strip() for s in suggestions if s and s.strip()]
    if not cleaned:
        return text
    return f"{text}\nMenade du:\n{_bullet_list(cleaned)}"


def invalid_measurement_message() -> str:
    return (
        "Jag uppfattade inte måtten.\n"
        f'Säg bredd, längd och höjd i meter, till exempel "{_EXAMPLE_MEASUREMENTS}" '
        'eller "bredd 4, längd 5, höjd 2,5".'
    )


def measurement_out_of_range_message(problems: Iterable[str]) -> str:
    translated = [_MEASUREMENT_PROBLEMS_SV.get(problem, problem) for problem in problems]
    return "Måtten verkar inte stämma:\n" + _bullet_list(translated) + "\nSäg måtten igen."


_MEASUREMENT_PROBLEMS_SV: Dict[str, str] = {
    "width must be positive": "Bredden måste vara större än noll.",
    "length must be positive": "Längden måste vara större än noll.",
    "height must be positive": "Höjden måste vara större än noll.",
    "width exceeds 100 m": "Bredden får vara högst 100 m.",
    "length exceeds 100 m": "Längden får vara högst 100 m.",
    "height exceeds 10 m": "Takhöjden får vara högst 10 m.",
    "doors must be zero or more": "Antalet dörrar kan inte vara negativt.",
    "windows must be zero or more": "Antalet fönster kan inte vara negativt.",
}


def invalid_name_message(subject: str) -> str:
    """*subject* is "projektet" or "rummet"."""
    return f"Namnet på {subject} måste vara mellan 2 och 100 tecken. Vad heter {subject}?"


def conversation_finished_message() -> str:
    return "Kalkylen är redan bekräftad. Starta en ny konversation för att räkna på ett nytt rum."


def confirmation_reprompt_message() -> str:
    return 'Svara "ja" eller "stämmer" för att bekräfta kalkylen.'


def catalog_rows_rejected_message(errors: Sequence[Dict[str, Any]]) -> str:
    """Summary of rejected catalog rows, one bullet per problem."""
    if not errors:
        return "Katalogen lästes in utan fel."
    lines = []
    for error in errors:
        field = error.get("field")
        where = f"rad {error.get('row')}"
        if field:
            where += f", fält {field}"
        lines.append(f"{where}: {error.get('message')}")
    return f"{len(errors)} fel i katalogen:\n{_bullet_list(lines)}"


def unknown_session_message(session_id: str) -> str:
    return f"Konversationen {session_id} finns inte (eller har avslutats)."


def missing_measurements_message() -> str:
    return "Rummets mått saknas i konversationen. Starta en ny konversation och säg måtten igen."
