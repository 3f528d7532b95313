"""
Plan the crop rectangle around the name value for the second OCR pass.
"""

import logging
import re
from typing import Sequence

from layout_scoring import is_field_label
from scan_config import CardProfile, DEFAULT_PROFILE
from scan_types import BBox, CropRegion, RecognizedLine

logger = logging.getLogger(__name__)


def _has_name_text(text: str) -> bool:
    return len(re.sub(r"[^A-Za-z]", "", text)) >= 3


def plan_crop(lines: Sequence[RecognizedLine], name_line_idx: int,
              value_start_x: float, line_bbox: BBox, buffer_width: int,
              profile: CardProfile = DEFAULT_PROFILE,
              padding_ratio: float = 0.3, min_padding: int = 8) -> CropRegion:
    """
    Rectangle from the value start to the right edge, padded around the label
    line.

    Long names wrap onto a second printed line; when the next line is not
    another field label it is included in the crop.
    """
    pad = max(padding_ratio * line_bbox.height, min_padding)
    top = line_bbox.y0 - pad
    bottom = line_bbox.y1 + pad

    next_idx = name_line_idx + 1
    if next_idx < len(lines):
        next_line = lines[next_idx]
        if not is_field_label(next_line.text, profile) and _has_name_text(next_line.text):
            bottom = max(bottom, next_line.bbox.y1 + pad)
            logger.info(f"Name continues on next line: {next_line.text!r}")

    x = min(max(int(value_start_x), 0), max(buffer_width - 1, 0))
    y = max(int(top), 0)
    return CropRegion(
        x=x,
        y=y,
        width=max(buffer_width - x, 1),
        height=max(int(round(bottom)) - y, 1),
    )
