"""
Fuzzy Name Matching
===================
Compares the name read from an ID card with the name the user claimed.

OCR output is lossy: surnames get garbled, long names get truncated, middle
names are missing from cards. Several similarity signals are computed and any
single strong one is enough for a match:

1. Full string Levenshtein similarity
2. Word-level pairing (edit distance or prefix, rewards truncation)
3. First-name agreement
4. Word containment
"""

import re
from typing import List, Tuple

from scan_types import MatchResult

WORD_MATCH_THRESHOLD = 0.6
PREFIX_MIN_SIMILARITY = 0.85
FIRST_NAME_THRESHOLD = 0.7
FIRST_NAME_MATCH = 0.65
CONTAINS_SIMILARITY = 0.85
MATCH_THRESHOLD = 0.60


def levenshtein_distance(a: str, b: str) -> int:
    """
    Single-character edits (insert, delete, substitute) turning one name into
    the other. Keeps one row per character of the shorter string.
    """
    if len(a) < len(b):
        a, b = b, a

    row = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        diagonal, row[0] = row[0], i
        for j, cb in enumerate(b, 1):
            diagonal, row[j] = row[j], min(row[j] + 1, row[j - 1] + 1, diagonal + (ca != cb))
    return row[-1]


def normalize_name(name: str) -> str:
    """Lowercase, keep only letters and single spaces."""
    if not name:
        return ""
    name = re.sub(r"[^a-z\s]", "", name.lower())
    return re.sub(r"\s+", " ", name).strip()


def edit_similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein_distance(a, b) / longest


def word_pair_similarity(a: str, b: str) -> Tuple[float, bool]:
    """Similarity of two words and whether they count as a matched pair."""
    sim = edit_similarity(a, b)
    if a.startswith(b) or b.startswith(a):
        shorter, longer = sorted((len(a), len(b)))
        return max(sim, PREFIX_MIN_SIMILARITY, shorter / longer), True
    return sim, sim >= WORD_MATCH_THRESHOLD


def _match_words(ref_words: List[str], ext_words: List[str]) -> int:
    """Greedily pair reference words with unused extracted words."""
    used = set()
    matched = 0
    for rw in ref_words:
        best_idx, best_sim = None, -1.0
        for idx, ew in enumerate(ext_words):
            if idx in used:
                continue
            sim, ok = word_pair_similarity(rw, ew)
            if ok and sim > best_sim:
                best_idx, best_sim = idx, sim
        if best_idx is not None:
            used.add(best_idx)
            matched += 1
    return matched


def _directional_match(a: str, b: str) -> Tuple[bool, float]:
    """Signals computed with `a` as the reference name."""
    full_similarity = edit_similarity(a, b)

    a_words = [w for w in a.split(" ") if len(w) >= 2]
    b_words = [w for w in b.split(" ") if len(w) >= 2]

    matched_words = _match_words(a_words, b_words)
    total_words = max(len(a_words), len(b_words))
    word_similarity = matched_words / total_words if total_words else 0.0

    first_name_sim = 0.0
    if a_words:
        first_name_sim = max((word_pair_similarity(a_words[0], bw)[0] for bw in b_words),
                             default=0.0)
    first_name_score = max(0.78, first_name_sim * 0.9) if first_name_sim >= FIRST_NAME_THRESHOLD else 0.0

    contains_match = any(
        aw in bw or bw in aw
        for aw in a_words if len(aw) >= 3
        for bw in b_words if len(bw) >= 3
    )

    similarity = max(
        full_similarity,
        word_similarity * 0.95,
        first_name_score,
        CONTAINS_SIMILARITY if contains_match else 0.0,
    )

    is_match = (
        similarity >= MATCH_THRESHOLD
        or (first_name_sim >= FIRST_NAME_MATCH and matched_words >= 1)
        or matched_words >= 2
        or contains_match
    )
    return is_match, min(similarity, 1.0)


def fuzzy_name_match(reference_name: str, extracted_name: str) -> MatchResult:
    """
    Decide whether the name read from the card matches the claimed name.

    The decision does not depend on argument order; the similarity is
    reported with `reference_name` as the reference.
    """
    a = normalize_name(reference_name)
    b = normalize_name(extracted_name)

    if not a or not b:
        return MatchResult(match=False, similarity=0.0)
    if a == b:
        return MatchResult(match=True, similarity=1.0)

    is_match, similarity = _directional_match(a, b)
    if not is_match:
        is_match, _ = _directional_match(b, a)
    return MatchResult(match=is_match, similarity=similarity)


def verify_against_reference(reference_name: str, extracted_name: str) -> MatchResult:
    """Verification entry point; usable without running extraction."""
    return fuzzy_name_match(reference_name, extracted_name)
