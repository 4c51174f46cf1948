# FUZZY NAME SIMILARITY FOR "MENADE DU ...?" SUGGESTIONS
#
# Only used to list nearby catalog task names in error messages. A fuzzy
# score never selects a task.

from typing import List, Tuple
from difflib import SequenceMatcher
import re


def normalize_for_matching(text: str) -> str:
    """Lowercase, drop punctuation, keep Swedish letters"""
    text = text.lower()
    text = re.sub(r'[^\w\s-]', '', text)
    return ' '.join(text.split())


def extract_tokens(text: str) -> List[str]:
    """Words of 3+ characters (drops "i", "på", "av" and similar)"""
    tokens = re.split(r'[\s-]+', normalize_for_matching(text))
    return [t for t in tokens if len(t) >= 3]


def token_overlap_score(query_tokens: List[str], name_tokens: List[str]) -> float:
    """Jaccard similarity of two token lists"""
    if not query_tokens or not name_tokens:
        return 0.0
    query_set = set(query_tokens)
    name_set = set(name_tokens)
    union = len(query_set | name_set)
    return len(query_set & name_set) / union if union > 0 else 0.0


def ngram_similarity(s1: str, s2: str, n: int = 3) -> float:
    """Character n-gram Jaccard similarity; tolerant of compound words ("takmålning" vs "måla tak")"""
    def get_ngrams(text: str) -> set:
        text = normalize_for_matching(text).replace(' ', '')
        return set(text[i:i + n] for i in range(len(text) - n + 1))

    ngrams1 = get_ngrams(s1)
    ngrams2 = get_ngrams(s2)
    if not ngrams1 or not ngrams2:
        return 0.0
    return len(ngrams1 & ngrams2) / len(ngrams1 | ngrams2)


def combined_similarity(query: str, name: str) -> float:
    """
    Weighted similarity between a description and a task name, 0..1

    Weights:
    - Sequence matching: 50% (misheard letters, word order)
    - N-gram: 30% (compounds and inflections)
    - Token overlap: 20% (shared whole words)
    """
    sequence_score = SequenceMatcher(None,
                                     normalize_for_matching(query),
                                     normalize_for_matching(name)).ratio()
    ngram_score = ngram_similarity(query, name)
    token_score = token_overlap_score(extract_tokens(query), extract_tokens(name))

    return sequence_score * 0.50 + ngram_score * 0.30 + token_score * 0.20


def find_best_matches(
    query: str,
    names: List[str],
    top_k: int = 5,
    min_score: float = 0.25
) -> List[Tuple[str, float]]:
    """
    Find the catalog task names closest to a spoken description

    Args:
        query: Task description as heard
        names: Catalog task names (name_sv)
        top_k: Number of top matches to return
        min_score: Minimum similarity score (default 0.25)

    Returns:
        List of (name, score) tuples, sorted by score desc; ties keep catalog order
    """
    matches = []
    seen = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        score = combined_similarity(query, name)
        if score >= min_score:
            matches.append((name, score))

    matches.sort(key=lambda x: x[1], reverse=True)
    return matches[:top_k]
