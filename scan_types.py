"""
ID Card Scan Data Types
=======================
Results and intermediate records passed between the stages of the
identity-card OCR pipeline, plus the pipeline's error types.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, Tuple, Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from image_buffer import PixelBuffer


class ScanError(Exception):
    """Base class for identity scan failures."""


class ImageDecodeError(ScanError):
    """Input bytes are not a readable raster image."""


class OCREngineError(ScanError):
    """The recognition engine is unavailable or a recognition call failed."""


class ScanCancelled(ScanError):
    """The caller raised the cancellation signal during a scan."""


@dataclass(frozen=True)
class BBox:
    """Axis-aligned box, (x0, y0) top-left, (x1, y1) bottom-right."""
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    def scaled(self, sx: float, sy: float) -> "BBox":
        return BBox(self.x0 * sx, self.y0 * sy, self.x1 * sx, self.y1 * sy)


@dataclass(frozen=True)
class RecognizedWord:
    text: str
    confidence: float  # 0-100
    bbox: BBox


@dataclass(frozen=True)
class RecognizedLine:
    """One recognized text line in the coordinate space of its source buffer."""
    text: str
    confidence: float  # 0-100
    bbox: BBox
    words: Tuple[RecognizedWord, ...] = ()


@dataclass(frozen=True)
class Recognition:
    """Output of one OCR call; lines are in top-to-bottom reading order."""
    text: str
    lines: Tuple[RecognizedLine, ...] = ()

    @classmethod
    def from_lines(cls, lines) -> "Recognition":
        lines = tuple(lines)
        return cls(text="\n".join(line.text for line in lines), lines=lines)


@dataclass(frozen=True)
class NameLocation:
    """Position of the "Name" label line, relative to one list of lines."""
    line_index: int
    value_start_x: float
    line_bbox: BBox


@dataclass(frozen=True)
class CropRegion:
    x: int
    y: int
    width: int
    height: int

    def scaled(self, sx: float, sy: float) -> "CropRegion":
        """Move the region into a buffer whose size differs by (sx, sy)."""
        return CropRegion(
            x=int(round(self.x * sx)),
            y=int(round(self.y * sy)),
            width=max(1, int(round(self.width * sx))),
            height=max(1, int(round(self.height * sy))),
        )


@dataclass(frozen=True)
class PassOneResult:
    """Best full-card reading across the rotation trials."""
    text: str
    lines: Tuple[RecognizedLine, ...]
    score: int
    rotation: int
    preprocessed: "PixelBuffer"
    source: "PixelBuffer"  # rotated, unpreprocessed pixels


@dataclass(frozen=True)
class VariantCandidate:
    """Pass-2 reading of one preprocessed variant of the name crop."""
    variant: str
    raw_text: str
    cleaned: str
    confidence: float  # average word confidence, 0-100


@dataclass(frozen=True)
class ScanResult:
    """Pipeline output. The caller owns persistence."""
    is_valid: bool
    name: Optional[str] = None
    registration_number: Optional[str] = None
    institution: Optional[str] = None
    confidence: float = 0.0
    error: Optional[str] = None
    error_code: Optional[str] = None
    method: Optional[str] = None  # "field" or "fallback"
    rotation: Optional[int] = None
    stages: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["stages"] = list(self.stages)
        return data


@dataclass(frozen=True)
class MatchResult:
    match: bool
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {"match": self.match, "similarity": round(self.similarity, 4)}
