"""
Tesseract Recognition Engine
============================
Binds the pipeline's recognition interface to Tesseract through pytesseract.
Tesseract is free, offline, and reports per-word boxes and confidences.

Setup:
1. Install Tesseract (Windows installer:
   https://github.com/UB-Mannheim/tesseract/wiki, or `apt install tesseract-ocr`)

2. Add to PATH or set the TESSERACT_CMD environment variable

3. Install Python wrapper:
   pip install pytesseract pillow

Usage:
    python ocr_tesseract.py --check
    python ocr_tesseract.py card.jpg
    python ocr_tesseract.py card.jpg --psm 6 --output lines.json
"""

import argparse
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Optional, List, Dict, Any

import cv2
import pytesseract
from PIL import Image

from image_buffer import PixelBuffer, decode_image
from ocr_engine import RecognitionEngine
from scan_types import (
    BBox, RecognizedWord, RecognizedLine, Recognition, OCREngineError, ImageDecodeError,
)

logger = logging.getLogger(__name__)

TESSERACT_PATHS = [
    r"C:\Program Files\Tesseract-OCR\tesseract.exe",
    r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
]


def find_tesseract_cmd() -> Optional[str]:
    """Locate the Tesseract binary: TESSERACT_CMD, known install paths, then PATH."""
    env_cmd = os.environ.get("TESSERACT_CMD")
    if env_cmd:
        return env_cmd
    for path in TESSERACT_PATHS:
        if Path(path).exists():
            return path
    return shutil.which("tesseract")


def to_pil(buffer: PixelBuffer) -> Image.Image:
    """Convert a BGR/grayscale buffer to a PIL image."""
    if buffer.channels == 1:
        return Image.fromarray(buffer.pixels.reshape(buffer.height, buffer.width))
    if buffer.channels == 4:
        return Image.fromarray(cv2.cvtColor(buffer.pixels, cv2.COLOR_BGRA2RGB))
    return Image.fromarray(cv2.cvtColor(buffer.pixels, cv2.COLOR_BGR2RGB))


def group_words_into_lines(data: Dict[str, List[Any]]) -> List[RecognizedLine]:
    """
    Group `image_to_data` word rows into lines.

    Rows are keyed by (page, block, paragraph, line); Tesseract emits them in
    reading order, which is preserved.
    """
    grouped: Dict[tuple, List[RecognizedWord]] = {}
    for i, raw_text in enumerate(data.get("text", [])):
        text = str(raw_text).strip()
        if not text:
            continue
        conf = float(data["conf"][i])
        if conf < 0:
            continue
        left, top = float(data["left"][i]), float(data["top"][i])
        bbox = BBox(left, top, left + float(data["width"][i]), top + float(data["height"][i]))
        key = (data["page_num"][i], data["block_num"][i], data["par_num"][i], data["line_num"][i])
        grouped.setdefault(key, []).append(RecognizedWord(text=text, confidence=conf, bbox=bbox))

    lines = []
    for words in grouped.values():
        bbox = BBox(
            min(w.bbox.x0 for w in words),
            min(w.bbox.y0 for w in words),
            max(w.bbox.x1 for w in words),
            max(w.bbox.y1 for w in words),
        )
        lines.append(RecognizedLine(
            text=" ".join(w.text for w in words),
            confidence=sum(w.confidence for w in words) / len(words),
            bbox=bbox,
            words=tuple(words),
        ))
    return lines


class TesseractEngine(RecognitionEngine):
    """Recognition engine backed by the Tesseract CLI."""

    def __init__(self, language: str = "eng", page_seg_mode: int = 6,
                 timeout: float = 0, tesseract_cmd: Optional[str] = None):
        self.language = language
        self.page_seg_mode = page_seg_mode
        self.timeout = timeout
        self.tesseract_cmd = tesseract_cmd
        self._open = False

    def open(self) -> None:
        cmd = self.tesseract_cmd or find_tesseract_cmd()
        if cmd:
            pytesseract.pytesseract.tesseract_cmd = cmd
        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise OCREngineError(f"Tesseract not found: {e}") from e
        logger.debug(f"Using Tesseract {version}")
        self._open = True

    def close(self) -> None:
        self._open = False

    def recognize(self, buffer: PixelBuffer,
                  page_seg_mode: Optional[int] = None) -> Recognition:
        if not self._open:
            raise OCREngineError("Tesseract engine is not open")

        psm = page_seg_mode if page_seg_mode is not None else self.page_seg_mode
        config = f"--oem 3 --psm {psm}"
        try:
            data = pytesseract.image_to_data(
                to_pil(buffer),
                lang=self.language,
                config=config,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout,
            )
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError,
                RuntimeError, OSError) as e:
            # pytesseract reports timeouts as a bare RuntimeError
            raise OCREngineError(f"Tesseract recognition failed: {e}") from e

        lines = group_words_into_lines(data)
        logger.debug(f"Recognized {len(lines)} lines from {buffer.width}x{buffer.height} image")
        return Recognition.from_lines(lines)


def check_tesseract(language: str = "eng") -> bool:
    """Check if Tesseract is installed and has the requested language."""
    cmd = find_tesseract_cmd()
    if cmd:
        pytesseract.pytesseract.tesseract_cmd = cmd
    try:
        version = pytesseract.get_tesseract_version()
        print(f"Tesseract version: {version}")

        langs = pytesseract.get_languages()
        if language not in langs:
            print(f"\nWarning: language pack '{language}' not found!")
            print("Available languages:", langs)
            return False

        print(f"Language support ({language}): yes")
        return True

    except (pytesseract.TesseractNotFoundError, OSError) as e:
        print(f"Error: Tesseract not found - {e}")
        print("\nPlease install Tesseract:")
        print("https://github.com/UB-Mannheim/tesseract/wiki")
        return False


def main():
    parser = argparse.ArgumentParser(
        description="Dump Tesseract lines, boxes and confidences for an ID card photo")
    parser.add_argument("image", nargs="?", help="Image file to process")
    parser.add_argument("--output", type=Path, help="Output JSON file")
    parser.add_argument("--psm", type=int, default=6,
                        help="Tesseract page segmentation mode (default: %(default)s)")
    parser.add_argument("--lang", default="eng", help="Tesseract language (default: %(default)s)")
    parser.add_argument("--check", action="store_true",
                        help="Check Tesseract installation")

    args = parser.parse_args()

    if args.check or not args.image:
        check_tesseract(args.lang)
        if not args.image:
            print("\nUsage: python ocr_tesseract.py card.jpg")
        return

    if not Path(args.image).exists():
        print(f"Error: Image not found: {args.image}")
        sys.exit(1)

    try:
        buffer = decode_image(Path(args.image).read_bytes())
        with TesseractEngine(language=args.lang, page_seg_mode=args.psm) as engine:
            recognition = engine.recognize(buffer)
    except (ImageDecodeError, OCREngineError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    output = {
        "text": recognition.text,
        "lines": [
            {
                "text": line.text,
                "confidence": round(line.confidence, 1),
                "bbox": [line.bbox.x0, line.bbox.y0, line.bbox.x1, line.bbox.y1],
            }
            for line in recognition.lines
        ],
    }

    output_str = json.dumps(output, ensure_ascii=False, indent=2)
    print(output_str)

    if args.output:
        args.output.write_text(output_str, encoding="utf-8")
        print(f"\nSaved to {args.output}")


if __name__ == "__main__":
    main()
