"""
Card Profile and Scan Configuration
===================================
Institution-specific vocabulary (labels, watermarks, ID shapes) and the
pipeline's tuning constants. Defaults describe SRM student ID cards:

    Name      : FIRSTNAME LASTNAME
    Programme : B.Tech.(CSE)
    Register No : RA2511003010756

Both can be overridden from a JSON file so the same pipeline can be pointed
at a different card layout, e.g.:

    {"institution_name": "Other University", "watermark_tokens": ["OU"]}
"""

import json
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Tuple, Dict, Any, Union

# Glyphs OCR splits in two
GLYPH_SPLITS = {"m": "(?:m|rn|nn)"}
ANY_LETTER = "[a-z@3]"


def one_edit_pattern(word: str) -> str:
    """
    Regex for `word` with at most one letter dropped, added or substituted,
    e.g. "name" -> "Nme", "Nama", "Nome", "Nanne", "Narne".
    """
    glyphs = [GLYPH_SPLITS.get(ch, re.escape(ch)) for ch in word.lower()]
    spellings = set()
    for i in range(len(glyphs)):
        spellings.add("".join(glyphs[:i] + [ANY_LETTER] + glyphs[i + 1:]))
        spellings.add("".join(glyphs[:i] + glyphs[i + 1:]))
    for i in range(len(glyphs) + 1):
        spellings.add("".join(glyphs[:i] + [ANY_LETTER] + glyphs[i:]))
    return "(?:" + "|".join(sorted(spellings, key=lambda s: (-len(s), s))) + ")"


# Label followed by either separator
NAME_LABEL_PATTERN = r"\b" + one_edit_pattern("name") + r"\s*[:;]"


@dataclass(frozen=True)
class CardProfile:
    """Vocabulary of one institution's ID card layout. Patterns are case-insensitive."""

    institution_name: str = "SRM Institute of Science and Technology"
    unknown_institution: str = "unknown"

    name_label_pattern: str = NAME_LABEL_PATTERN

    # (pattern, weight) hits summed by layout scoring
    score_rules: Tuple[Tuple[str, int], ...] = (
        (NAME_LABEL_PATTERN, 50),
        (r"programme", 20),
        (r"register", 20),
        (r"srm", 10),
        (r"faculty", 10),
        (r"engineering", 10),
        (r"b\.?\s?tech", 15),
        (r"ra\d{6,}", 25),
        (r"kattankulathur", 10),
        (r"valid", 5),
    )

    # Background watermark text that bleeds into the foreground
    watermark_tokens: Tuple[str, ...] = ("SRM", "OSRM", "CSRM", "SRMIST", "SRMI")

    # Label words that get captured alongside the name value
    label_tokens: Tuple[str, ...] = (
        "NAME", "NANE", "NARNE", "NAM",
        "PROGRAMME", "PROGRAM", "REGISTER", "REGISTRATION", "REG", "NO",
        "VALID", "UPTO", "TILL", "DEPT", "DEPARTMENT", "BRANCH", "COURSE",
        "STUDENT", "ID",
    )

    # Ordered from strict to loose; group 1 is the name value
    fallback_name_patterns: Tuple[str, ...] = (
        r"name\s*[:;]\s*(.+?)(?:\n|programme|program|register|valid|$)",
        r"name\s*[:;]\s*(.+)",
        r"nam[ec]\s*[:;]\s*(.+?)(?:\n|$)",
        NAME_LABEL_PATTERN + r"\s*(.+?)(?:\n|programme|program|register|valid|$)",
    )

    # Lines skipped when hunting for an all-caps name without a label
    non_name_line_pattern: str = (
        r"programme|register|valid|faculty|engineering|technology|campus|"
        r"kattankulathur|chengalpattu|student|website|email|phone|"
        r"university|institute|college|science"
    )

    # Ordered; group 1 is the registration number
    registration_patterns: Tuple[str, ...] = (
        r"(?:register|reg)\s*(?:no)?\.?\s*[:;]\s*(RA\d{6,})",
        r"\b(RA\d{10,})",
        r"\b([A-Z]{2}\d{8,})",
    )

    uppercase_name_fallback: bool = True


@dataclass(frozen=True)
class ScanConfig:
    """Tuning constants for the two-pass pipeline."""

    # Cards are photographed upright or sideways
    rotations: Tuple[int, ...] = (0, 90)
    early_exit_score: int = 60
    institution_min_score: int = 15

    # Pass 1
    pass1_min_dimension: int = 1200
    pass1_sharpen: float = 0.8  # 0 disables
    pass1_contrast: float = 1.5

    # Name field geometry
    value_start_ratio: float = 0.25
    crop_padding_ratio: float = 0.3
    crop_min_padding: int = 8

    # Pass 2
    crop_upscale: float = 3.0
    threshold_variants: Tuple[Tuple[int, int], ...] = ((31, 10), (15, 8))
    high_contrast_strength: float = 2.0
    min_candidate_length: int = 2
    fallback_confidence: float = 0.3

    # Tesseract page segmentation: single uniform block of text
    page_seg_mode: int = 6
    # Seconds per recognition call, 0 for no limit. Also bounds how long a
    # cancelled scan keeps running.
    recognition_timeout: float = 20.0

    def __post_init__(self):
        if not self.rotations:
            raise ValueError("At least one rotation is required")
        bad = [r for r in self.rotations if r % 90 != 0]
        if bad:
            raise ValueError(f"Rotations must be multiples of 90 degrees: {bad}")
        if self.recognition_timeout < 0:
            raise ValueError(f"recognition_timeout must be >= 0, got {self.recognition_timeout}")


DEFAULT_PROFILE = CardProfile()
DEFAULT_CONFIG = ScanConfig()


def _as_tuple(value):
    if isinstance(value, list):
        return tuple(_as_tuple(v) for v in value)
    return value


def _override(base, data: Dict[str, Any]):
    known = {f.name for f in fields(base)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {type(base).__name__} keys: {sorted(unknown)}")
    return replace(base, **{k: _as_tuple(v) for k, v in data.items()})


def load_profile(path: Union[str, Path]) -> CardProfile:
    """Load a card profile, starting from the defaults."""
    with open(path, "r", encoding="utf-8") as f:
        return _override(DEFAULT_PROFILE, json.load(f))


def load_config(path: Union[str, Path]) -> ScanConfig:
    """Load pipeline tuning, starting from the defaults."""
    with open(path, "r", encoding="utf-8") as f:
        return _override(DEFAULT_CONFIG, json.load(f))
