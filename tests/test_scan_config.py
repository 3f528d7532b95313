import json
import tempfile
import unittest
from pathlib import Path

from scan_config import DEFAULT_CONFIG, DEFAULT_PROFILE, ScanConfig, load_config, load_profile


class TestScanConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        self.assertEqual(DEFAULT_CONFIG.rotations, (0, 90))
        self.assertEqual(DEFAULT_CONFIG.early_exit_score, 60)
        self.assertEqual(DEFAULT_CONFIG.institution_min_score, 15)

    def test_rejects_bad_rotations(self) -> None:
        with self.assertRaises(ValueError):
            ScanConfig(rotations=())
        with self.assertRaises(ValueError):
            ScanConfig(rotations=(0, 45))

    def test_rejects_negative_timeout(self) -> None:
        with self.assertRaises(ValueError):
            ScanConfig(recognition_timeout=-1)
        self.assertEqual(ScanConfig(recognition_timeout=0).recognition_timeout, 0)


class TestLoadFromJson(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, name: str, payload: dict) -> Path:
        path = self.root / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_profile_override(self) -> None:
        path = self._write("profile.json", {
            "institution_name": "Other University",
            "watermark_tokens": ["OU"],
            "score_rules": [["other", 40], ["campus", 10]],
        })

        profile = load_profile(path)

        self.assertEqual(profile.institution_name, "Other University")
        self.assertEqual(profile.watermark_tokens, ("OU",))
        self.assertEqual(profile.score_rules, (("other", 40), ("campus", 10)))
        self.assertEqual(profile.label_tokens, DEFAULT_PROFILE.label_tokens)

    def test_config_override(self) -> None:
        config = load_config(self._write("config.json", {"rotations": [0, 90, 270], "early_exit_score": 80}))
        self.assertEqual(config.rotations, (0, 90, 270))
        self.assertEqual(config.early_exit_score, 80)
        self.assertEqual(config.crop_upscale, DEFAULT_CONFIG.crop_upscale)

    def test_unknown_keys_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_profile(self._write("profile.json", {"institution": "typo"}))
        with self.assertRaises(ValueError):
            load_config(self._write("config.json", {"rotation": [0]}))

    def test_invalid_values_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_config(self._write("config.json", {"rotations": [30]}))


if __name__ == "__main__":
    unittest.main()
