from pathlib import Path

from rostkalkyl.shared.fuzzy_matcher import combined_similarity, find_best_matches
from rostkalkyl.shared.normalize.text import (
    DEFAULT_FIXES_PATH,
    apply_transcription_fixes,
    load_transcription_fixes,
    normalize_utterance,
    parse_number,
    tokenize,
    words_to_numbers,
)


def test_normalize_utterance_lowercases_and_keeps_swedish_letters() -> None:
    assert normalize_utterance("  Måla   VÄGGARNA  ") == "måla väggarna"


def test_normalize_utterance_composes_decomposed_letters() -> None:
    decomposed = "ma\u030ala"
    assert normalize_utterance(decomposed) == "måla"


def test_decimal_comma_becomes_dot() -> None:
    assert normalize_utterance("Höjd 2,5 meter") == "höjd 2.5 meter"


def test_tokenize_drops_punctuation() -> None:
    assert tokenize("måla väggarna, taket 2.5!") == ["måla", "väggarna", "taket", "2.5"]


def test_parse_number_digits_and_words() -> None:
    assert parse_number("4") == 4.0
    assert parse_number("2,5") == 2.5
    assert parse_number("tre") == 3.0
    assert parse_number("väggar") is None


def test_words_to_numbers_handles_halves_and_centimetres() -> None:
    assert words_to_numbers("fyra gånger fem gånger två och en halv") == "4 gånger 5 gånger 2.5"
    assert words_to_numbers("fyra och fyrtio") == "4.4"
    assert words_to_numbers("två komma fem") == "2.5"


def test_bundled_fixes_are_loaded_longest_first() -> None:
    fixes = load_transcription_fixes()
    assert fixes["målarbänka"] == "måla väggar"
    keys = list(fixes)
    assert keys == sorted(keys, key=len, reverse=True)
    assert DEFAULT_FIXES_PATH.exists()


def test_fixes_replace_whole_words_only() -> None:
    fixes = {"tack": "tak"}
    assert apply_transcription_fixes("måla tack", fixes) == "måla tak"
    assert apply_transcription_fixes("tacksam", fixes) == "tacksam"


def test_normalize_utterance_applies_fixes() -> None:
    fixes = load_transcription_fixes()
    assert normalize_utterance("Målarbänka två lager", fixes) == "måla väggar två lager"


def test_custom_fixes_file(tmp_path: Path) -> None:
    path = tmp_path / "fixes.yaml"
    path.write_text("Rolla tack: rolla tak\n", encoding="utf-8")
    assert load_transcription_fixes(path) == {"rolla tack": "rolla tak"}


def test_fuzzy_suggestions_rank_closest_name_first() -> None:
    names = ["Täckmåla väggar", "Grundmåla tak", "Måla dörrar"]
    matches = find_best_matches("täckmåla vägg", names, top_k=2)
    assert matches
    assert matches[0][0] == "Täckmåla väggar"
    assert combined_similarity("grundmåla tak", "Grundmåla tak") > combined_similarity("grundmåla tak", "Måla dörrar")
