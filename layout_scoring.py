"""
Layout scoring for recognized ID card text.

The score says how much a block of OCR text looks like the expected card:
each vocabulary hit ("Name :", "Programme", a registration number, ...)
adds its weight. It is only used to rank readings against each other and to
decide whether the card looks like the expected institution's at all.
"""

import re

from scan_config import CardProfile, ScanConfig, DEFAULT_PROFILE, DEFAULT_CONFIG


def score_layout(text: str, profile: CardProfile = DEFAULT_PROFILE) -> int:
    """Sum the weights of the profile's vocabulary found in `text`."""
    if not text:
        return 0
    return sum(weight for pattern, weight in profile.score_rules
               if re.search(pattern, text, re.IGNORECASE))


def is_field_label(text: str, profile: CardProfile = DEFAULT_PROFILE) -> bool:
    """True if the text contains any of the card's label vocabulary."""
    return score_layout(text, profile) > 0


def institution_for_score(score: int, profile: CardProfile = DEFAULT_PROFILE,
                          config: ScanConfig = DEFAULT_CONFIG) -> str:
    if score >= config.institution_min_score:
        return profile.institution_name
    return profile.unknown_institution
