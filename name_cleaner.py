"""
Name Text Cleaning and Fallback Extraction
==========================================
Post-processing for OCR output from ID cards: strips watermark bleed-through,
label words and recognition noise from name candidates, and pulls the name
and registration number straight out of full-card text when the field-based
pass cannot be used.
"""

import logging
import re
from typing import Optional

from scan_config import CardProfile, DEFAULT_PROFILE

logger = logging.getLogger(__name__)


def clean_name(raw: str, profile: CardProfile = DEFAULT_PROFILE) -> str:
    """
    Remove digits, punctuation, single letters, watermark and label tokens.

    Applying it twice gives the same result as applying it once.
    """
    if not raw:
        return ""

    text = re.sub(r"[0-9]", "", raw)
    text = re.sub(r"[^A-Za-z\s]", " ", text)

    dropped = {t.upper() for t in profile.watermark_tokens}
    dropped.update(t.upper() for t in profile.label_tokens)

    tokens = [t for t in text.split() if len(t) > 1 and t.upper() not in dropped]
    return " ".join(tokens)


def extract_name_fallback(full_text: str,
                          profile: CardProfile = DEFAULT_PROFILE) -> Optional[str]:
    """Extract the name from full-card text without field geometry."""
    if not full_text:
        return None

    # Strategy 1: "Name : VALUE" patterns, strict to loose
    for pattern in profile.fallback_name_patterns:
        match = re.search(pattern, full_text, re.IGNORECASE)
        if match and match.group(1):
            cleaned = clean_name(match.group(1), profile)
            if len(cleaned) >= 3:
                logger.info(f"Fallback name (label pattern): {cleaned.upper()}")
                return cleaned.upper()

    lines = [line.strip() for line in full_text.splitlines() if len(line.strip()) > 2]

    # Strategy 2: label on its own line, value on the next
    for i, line in enumerate(lines[:-1]):
        if re.search(r"\bname\b", line, re.IGNORECASE) and not re.search(r"[:;]", line):
            cleaned = clean_name(lines[i + 1], profile)
            if len(cleaned) >= 3:
                logger.info(f"Fallback name (next line): {cleaned.upper()}")
                return cleaned.upper()

    # Strategy 3: card names are printed in capitals
    if profile.uppercase_name_fallback:
        for line in lines:
            if re.search(profile.non_name_line_pattern, line, re.IGNORECASE):
                continue
            if re.search(r"\d{3,}", line):
                continue
            words = re.sub(r"[^A-Za-z\s]", "", line).split()
            upper_words = [w for w in words if len(w) >= 2 and w.isupper()]
            if len(upper_words) >= 2 and len(" ".join(upper_words)) >= 5:
                cleaned = clean_name(" ".join(upper_words), profile)
                if len(cleaned) >= 3:
                    logger.info(f"Fallback name (uppercase line): {cleaned}")
                    return cleaned.upper()

    logger.info("No name found in full text")
    return None


def extract_registration_number(full_text: str,
                                profile: CardProfile = DEFAULT_PROFILE) -> Optional[str]:
    """Find the registration number, e.g. RA2511003010756."""
    if not full_text:
        return None
    for pattern in profile.registration_patterns:
        match = re.search(pattern, full_text, re.IGNORECASE)
        if match and match.group(1):
            return match.group(1).strip().upper()
    return None
