"""Utility helpers for Swedish text normalization and transcription fixes."""

from .text import (
    NUMBER_WORDS,
    apply_transcription_fixes,
    load_transcription_fixes,
    normalize_utterance,
    parse_number,
    tokenize,
    words_to_numbers,
)

__all__ = [
    "NUMBER_WORDS",
    "apply_transcription_fixes",
    "load_transcription_fixes",
    "normalize_utterance",
    "parse_number",
    "tokenize",
    "words_to_numbers",
]
