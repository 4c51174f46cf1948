from rostkalkyl.app.error_messages import (
    catalog_rows_rejected_message,
    invalid_name_message,
    measurement_out_of_range_message,
    no_task_recognized_message,
    unknown_session_message,
    unmapped_task_message,
)


def test_unmapped_task_without_suggestions():
    msg = unmapped_task_message("lacka fönster")
    assert msg == 'Kunde inte hitta uppgiften "lacka fönster" i MEPS-katalogen.'


def test_unmapped_task_lists_suggestions():
    msg = unmapped_task_message("slipa tak", ["Slipa väggar", " ", "Grundmåla tak"])
    assert "Menade du:" in msg
    assert msg.count("- ") == 2
    assert "- Slipa väggar" in msg and "- Grundmåla tak" in msg


def test_no_task_recognized_quotes_utterance():
    assert '"hej hej"' in no_task_recognized_message("  hej hej ")
    assert "Jag hörde ingen arbetsuppgift" in no_task_recognized_message("")


def test_measurement_problems_are_translated():
    msg = measurement_out_of_range_message(["width exceeds 100 m", "height must be positive"])
    assert "- Bredden får vara högst 100 m." in msg
    assert "- Höjden måste vara större än noll." in msg
    assert msg.endswith("Säg måtten igen.")


def test_catalog_rows_rejected_summary():
    assert catalog_rows_rejected_message([]) == "Katalogen lästes in utan fel."
    msg = catalog_rows_rejected_message(
        [
            {"row": 3, "field": "unit", "message": "unknown unit 'liter'"},
            {"row": 7, "message": "duplicate id"},
        ]
    )
    assert msg.startswith("2 fel i katalogen:")
    assert "- rad 3, fält unit: unknown unit 'liter'" in msg
    assert "- rad 7: duplicate id" in msg


def test_name_and_session_messages():
    assert "Vad heter rummet?" in invalid_name_message("rummet")
    assert "abc123" in unknown_session_message("abc123")
