"""
Locate the "Name :" field among recognized lines.
"""

import logging
import re
from typing import Optional, Sequence

from scan_config import CardProfile, DEFAULT_PROFILE
from scan_types import NameLocation, RecognizedLine

logger = logging.getLogger(__name__)

SEPARATOR_WORD = re.compile(r"[:;][:;.\-]*")


def find_name_line(lines: Sequence[RecognizedLine],
                   profile: CardProfile = DEFAULT_PROFILE,
                   value_start_ratio: float = 0.25) -> Optional[NameLocation]:
    """
    Find the first line carrying the name label.

    The value is taken to start right after a standalone ":" / ";" word. When
    the separator is glued to a neighbouring word (or missing), the value
    start is estimated at `value_start_ratio` of the line width.

    Returns None if no line has the label.
    """
    label = re.compile(profile.name_label_pattern, re.IGNORECASE)

    for idx, line in enumerate(lines):
        if not label.search(line.text):
            continue

        value_start_x = None
        for word in line.words:
            if SEPARATOR_WORD.fullmatch(word.text.strip()):
                value_start_x = word.bbox.x1
                break

        if value_start_x is None:
            value_start_x = line.bbox.x0 + line.bbox.width * value_start_ratio
            logger.debug(f"No separator word on line {idx}, estimating value start at x={value_start_x:.0f}")

        logger.info(f"Name label found on line {idx}: {line.text!r}")
        return NameLocation(line_index=idx, value_start_x=value_start_x, line_bbox=line.bbox)

    logger.info("No name label found in recognized lines")
    return None
