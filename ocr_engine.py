"""
Recognition engine interface.

Engines turn a PixelBuffer into recognized lines with word boxes and
confidences. They are scoped to one scan: the pipeline opens an engine with
`with factory() as engine:` so it is always closed, whichever way the scan
ends.
"""

from abc import ABC, abstractmethod
from typing import Optional

from image_buffer import PixelBuffer
from scan_types import Recognition


class RecognitionEngine(ABC):
    """OCR capability used by the ID card pipeline."""

    def open(self) -> None:
        """Acquire engine resources. Raise OCREngineError if unavailable."""

    def close(self) -> None:
        """Release engine resources."""

    def __enter__(self) -> "RecognitionEngine":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abstractmethod
    def recognize(self, buffer: PixelBuffer,
                  page_seg_mode: Optional[int] = None) -> Recognition:
        """
        Recognize text in `buffer`.

        Returns literal engine output (no correction); bounding boxes are in
        the buffer's pixel coordinates. Raises OCREngineError on failure.
        """
        raise NotImplementedError
