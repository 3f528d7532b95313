import contextlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import id_ocr
import ocr_tesseract
from fakes import FakeEngine, card_image_bytes, name_crop_reading, reading, text_line
from scan_types import OCREngineError, Recognition


def _card_engine():
    card = reading(
        text_line("SRM INSTITUTE OF SCIENCE AND TECHNOLOGY", 50, 110),
        text_line("Name : REVANTH SAI", 400, 460),
        text_line("Programme : B.Tech (CSE)", 500, 560),
        text_line("Register No : RA2111003010756", 600, 660),
    )
    return FakeEngine([card, name_crop_reading("REVANTH SAI", 85.0)])


class _CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.image = self.root / "card.png"
        self.image.write_bytes(card_image_bytes())

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def run_main(self, main, argv, **kwargs) -> str:
        stdout = io.StringIO()
        with patch.object(sys, "argv", argv), contextlib.redirect_stdout(stdout):
            main(**kwargs)
        return stdout.getvalue()


class TestIdOcrCli(_CliTestCase):
    def test_scan_with_reference(self) -> None:
        output = self.root / "result.json"

        printed = self.run_main(
            id_ocr.main,
            ["id_ocr.py", str(self.image), "--reference", "Revanth Sai", "--output", str(output)],
            engine_factory=_card_engine,
        )

        data = json.loads(printed)
        self.assertEqual(data["scan"]["name"], "REVANTH SAI")
        self.assertEqual(data["scan"]["registration_number"], "RA2111003010756")
        self.assertTrue(data["match"]["match"])
        self.assertTrue(data["verified"])
        self.assertEqual(json.loads(output.read_text(encoding="utf-8")), data)

    def test_scan_without_reference(self) -> None:
        data = json.loads(self.run_main(id_ocr.main, ["id_ocr.py", str(self.image)],
                                        engine_factory=_card_engine))
        self.assertNotIn("match", data)
        self.assertNotIn("verified", data)

    def test_rotations_flag(self) -> None:
        engine = FakeEngine([Recognition(text="")] * 3)

        data = json.loads(self.run_main(
            id_ocr.main, ["id_ocr.py", str(self.image), "--rotations", "90"],
            engine_factory=lambda: engine,
        ))

        self.assertEqual(len(engine.calls), 1)
        self.assertEqual(data["scan"]["rotation"], 90)
        self.assertEqual(data["scan"]["error_code"], "card_not_detected")

    def test_invalid_rotation_is_usage_error(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                self.run_main(id_ocr.main, ["id_ocr.py", str(self.image), "--rotations", "45"],
                              engine_factory=_card_engine)
        self.assertEqual(cm.exception.code, 2)

    def test_engine_failure_exits_2(self) -> None:
        stdout = io.StringIO()
        with patch.object(sys, "argv", ["id_ocr.py", str(self.image)]), contextlib.redirect_stdout(stdout):
            with self.assertRaises(SystemExit) as cm:
                id_ocr.main(engine_factory=lambda: FakeEngine(error=OCREngineError("tesseract missing")))

        self.assertEqual(cm.exception.code, 2)
        self.assertIn("tesseract missing", json.loads(stdout.getvalue())["error"])

    def test_missing_image_exits_1(self) -> None:
        stdout = io.StringIO()
        with patch.object(sys, "argv", ["id_ocr.py", str(self.root / "nope.png")]), \
                contextlib.redirect_stdout(stdout):
            with self.assertRaises(SystemExit) as cm:
                id_ocr.main(engine_factory=_card_engine)

        self.assertEqual(cm.exception.code, 1)
        self.assertIn("Image not found", json.loads(stdout.getvalue())["error"])


class TestTesseractCli(_CliTestCase):
    def test_dump_lines(self) -> None:
        engine = FakeEngine([reading(text_line("Name : ARJUN KUMAR", 10, 40, conf=91.26))])

        with patch.object(ocr_tesseract, "TesseractEngine", return_value=engine) as engine_cls:
            printed = self.run_main(ocr_tesseract.main, ["ocr_tesseract.py", str(self.image), "--psm", "7"])

        engine_cls.assert_called_once_with(language="eng", page_seg_mode=7)
        data = json.loads(printed)
        self.assertEqual(data["text"], "Name : ARJUN KUMAR")
        self.assertEqual(data["lines"][0]["confidence"], 91.3)
        self.assertEqual(data["lines"][0]["bbox"][1], 10)
        self.assertTrue(engine.closed)

    def test_output_file(self) -> None:
        output = self.root / "lines.json"
        engine = FakeEngine([reading(text_line("SRM", 10, 40))])

        with patch.object(ocr_tesseract, "TesseractEngine", return_value=engine):
            printed = self.run_main(ocr_tesseract.main, ["ocr_tesseract.py", str(self.image), "--output", str(output)])

        self.assertIn(f"Saved to {output}", printed)
        self.assertEqual(json.loads(output.read_text(encoding="utf-8"))["text"], "SRM")

    def test_engine_error_exits_1(self) -> None:
        engine = FakeEngine(error=OCREngineError("Tesseract not found"))

        with patch.object(ocr_tesseract, "TesseractEngine", return_value=engine):
            with self.assertRaises(SystemExit) as cm:
                self.run_main(ocr_tesseract.main, ["ocr_tesseract.py", str(self.image)])

        self.assertEqual(cm.exception.code, 1)

    def test_check_only(self) -> None:
        with patch.object(ocr_tesseract, "check_tesseract", return_value=True) as check:
            printed = self.run_main(ocr_tesseract.main, ["ocr_tesseract.py", "--check", "--lang", "eng"])

        check.assert_called_once_with("eng")
        self.assertIn("Usage", printed)


if __name__ == "__main__":
    unittest.main()
