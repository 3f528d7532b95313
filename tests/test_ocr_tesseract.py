import unittest
from unittest.mock import patch

import numpy as np
import pytesseract

import ocr_tesseract
from image_buffer import PixelBuffer
from ocr_tesseract import TesseractEngine, group_words_into_lines, to_pil
from scan_types import OCREngineError


def _data(rows):
    """image_to_data style dict from (text, conf, left, top, width, height, block, line) rows."""
    keys = ("text", "conf", "left", "top", "width", "height", "block_num", "line_num")
    data = {key: [row[i] for row in rows] for i, key in enumerate(keys)}
    data["page_num"] = [1] * len(rows)
    data["par_num"] = [1] * len(rows)
    return data


CARD_DATA = _data([
    ("", -1, 0, 0, 1920, 1200, 0, 0),
    ("SRM", 91, 100, 50, 120, 60, 1, 1),
    ("INSTITUTE", 89, 240, 50, 300, 60, 1, 1),
    ("Name", 95, 100, 400, 200, 60, 2, 1),
    (":", 60, 320, 405, 20, 50, 2, 1),
    ("REVANTH", 88, 380, 398, 320, 64, 2, 1),
    ("  ", 95, 720, 400, 10, 60, 2, 1),
    ("Programme", 93, 100, 500, 330, 60, 2, 2),
])


class TestGroupWordsIntoLines(unittest.TestCase):
    def test_lines_in_reading_order(self) -> None:
        lines = group_words_into_lines(CARD_DATA)

        self.assertEqual([line.text for line in lines], ["SRM INSTITUTE", "Name : REVANTH", "Programme"])

    def test_line_box_and_confidence(self) -> None:
        name_line = group_words_into_lines(CARD_DATA)[1]

        self.assertEqual((name_line.bbox.x0, name_line.bbox.y0), (100, 398))
        self.assertEqual((name_line.bbox.x1, name_line.bbox.y1), (700, 462))
        self.assertAlmostEqual(name_line.confidence, (95 + 60 + 88) / 3)
        self.assertEqual([w.text for w in name_line.words], ["Name", ":", "REVANTH"])
        self.assertEqual(name_line.words[1].bbox.x1, 340)

    def test_string_confidences(self) -> None:
        data = _data([("ARJUN", "87.5", 10, 10, 50, 20, 1, 1), ("x", "-1", 70, 10, 5, 20, 1, 1)])
        lines = group_words_into_lines(data)
        self.assertEqual(len(lines), 1)
        self.assertAlmostEqual(lines[0].confidence, 87.5)

    def test_empty(self) -> None:
        self.assertEqual(group_words_into_lines(_data([])), [])


class TestTesseractEngine(unittest.TestCase):
    def setUp(self) -> None:
        self.buffer = PixelBuffer(np.full((30, 60), 255, dtype=np.uint8))

    def test_recognize_requires_open(self) -> None:
        with self.assertRaises(OCREngineError):
            TesseractEngine().recognize(self.buffer)

    def test_missing_binary(self) -> None:
        with patch.object(ocr_tesseract.pytesseract, "get_tesseract_version",
                          side_effect=pytesseract.TesseractNotFoundError()):
            with self.assertRaises(OCREngineError):
                with TesseractEngine(tesseract_cmd="tesseract"):
                    pass

    @patch.object(ocr_tesseract.pytesseract, "get_tesseract_version", return_value="5.3.0")
    def test_recognize(self, _version) -> None:
        with patch.object(ocr_tesseract.pytesseract, "image_to_data", return_value=CARD_DATA) as image_to_data:
            with TesseractEngine(tesseract_cmd="tesseract", timeout=5) as engine:
                recognition = engine.recognize(self.buffer, page_seg_mode=7)

        self.assertEqual(recognition.text, "SRM INSTITUTE\nName : REVANTH\nProgramme")
        self.assertEqual(len(recognition.lines), 3)
        kwargs = image_to_data.call_args.kwargs
        self.assertEqual(kwargs["config"], "--oem 3 --psm 7")
        self.assertEqual(kwargs["lang"], "eng")
        self.assertEqual(kwargs["timeout"], 5)

    @patch.object(ocr_tesseract.pytesseract, "get_tesseract_version", return_value="5.3.0")
    def test_timeout_becomes_engine_error(self, _version) -> None:
        with patch.object(ocr_tesseract.pytesseract, "image_to_data",
                          side_effect=RuntimeError("Tesseract process timeout")):
            with TesseractEngine(tesseract_cmd="tesseract") as engine:
                with self.assertRaises(OCREngineError):
                    engine.recognize(self.buffer)

    def test_to_pil_modes(self) -> None:
        self.assertEqual(to_pil(self.buffer).mode, "L")
        color = PixelBuffer(np.zeros((4, 4, 3), dtype=np.uint8))
        self.assertEqual(to_pil(color).mode, "RGB")


if __name__ == "__main__":
    unittest.main()
