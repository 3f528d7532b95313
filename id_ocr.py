"""
Student ID Card OCR Pipeline
============================
Reads the cardholder's name and registration number from a photo of a
student ID card and checks the name against a claimed name.

Features:
- Rotation trials (upright / sideways photos), best reading picked by layout score
- Locates the "Name :" field and re-reads just that region, upscaled
- Several denoising variants of the name crop (adaptive thresholds, high contrast)
- Watermark/label cleanup and regex fallback when the field cannot be located
- Fuzzy name verification tolerant of OCR truncation and garbled surnames

Usage:
    python id_ocr.py card.jpg
    python id_ocr.py card.jpg --reference "Revanth Sai" --output result.json
    python id_ocr.py card.jpg --profile other_college.json --rotations 0 90 270
"""

import argparse
import json
import logging
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Optional, List, Tuple, Callable

from crop_planner import plan_crop
from image_buffer import (
    PixelBuffer, decode_image, rotate, scale_up, crop_canvas, upscale,
    grayscale, enhance_contrast, stretch_contrast, sharpen, adaptive_threshold,
)
from layout_scoring import score_layout, institution_for_score
from name_cleaner import clean_name, extract_name_fallback, extract_registration_number
from name_locator import find_name_line
from name_matcher import verify_against_reference
from ocr_engine import RecognitionEngine
from scan_config import (
    CardProfile, ScanConfig, DEFAULT_PROFILE, DEFAULT_CONFIG, load_profile, load_config,
)
from scan_types import (
    NameLocation, PassOneResult, Recognition, ScanResult, VariantCandidate,
    ImageDecodeError, OCREngineError, ScanCancelled,
)

logger = logging.getLogger(__name__)

NAME_NOT_FOUND_MESSAGE = (
    "Could not read the name on your ID. Please retake the photo in better "
    "lighting, hold the card upright and avoid glare."
)
CARD_NOT_DETECTED_MESSAGE = (
    "Could not detect an ID card. Please make sure the entire card is "
    "visible and try again."
)
DECODE_FAILED_MESSAGE = "Could not open the image. Please upload a JPEG or PNG photo of your ID card."
CANCELLED_MESSAGE = "Scan cancelled."


def average_word_confidence(recognition: Recognition) -> float:
    """Mean word confidence (0-100), falling back to line confidences."""
    confs = [w.confidence for line in recognition.lines for w in line.words if w.confidence >= 0]
    if not confs:
        confs = [line.confidence for line in recognition.lines if line.confidence >= 0]
    return sum(confs) / len(confs) if confs else 0.0


def select_best_candidate(candidates: List[VariantCandidate]) -> Optional[VariantCandidate]:
    """
    Longest cleaned reading wins, ties go to higher confidence.

    Truncation is the usual failure on the name field, so a longer reading is
    taken as the more complete one.
    """
    if not candidates:
        return None
    return max(candidates, key=lambda c: (len(c.cleaned), c.confidence))


def validate_scan_result(result: ScanResult) -> bool:
    """A scan is usable when it is valid and carries a plausible name."""
    if not result.is_valid:
        return False
    if not result.name or len(result.name) < 3:
        return False
    return True


def mask_id_number(id_number: Optional[str]) -> Optional[str]:
    """Mask all but the last four characters, e.g. ****0756."""
    if not id_number or len(id_number) <= 4:
        return id_number
    return f"****{id_number[-4:]}"


class _ScanRun:
    """Per-call state: the open engine, the cancellation signal and visited stages."""

    def __init__(self, engine: RecognitionEngine, cancel_event: Optional[threading.Event]):
        self.engine = engine
        self.cancel_event = cancel_event
        self.stages: List[str] = []

    def enter(self, stage: str):
        logger.debug(f"Stage: {stage}")
        self.stages.append(stage)

    def check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ScanCancelled("Scan cancelled by caller")

    def recognize(self, buffer: PixelBuffer, page_seg_mode: int) -> Recognition:
        self.check_cancelled()
        recognition = self.engine.recognize(buffer, page_seg_mode)
        # Drop results that finished after cancellation
        self.check_cancelled()
        return recognition


class IDOCRPipeline:
    """Two-pass ID card OCR pipeline."""

    def __init__(self, engine_factory: Optional[Callable[[], RecognitionEngine]] = None,
                 config: ScanConfig = DEFAULT_CONFIG,
                 profile: CardProfile = DEFAULT_PROFILE):
        if engine_factory is None:
            from ocr_tesseract import TesseractEngine

            def engine_factory():
                return TesseractEngine(page_seg_mode=config.page_seg_mode,
                                       timeout=config.recognition_timeout)

        self.engine_factory = engine_factory
        self.config = config
        self.profile = profile

    def preprocess_for_recognition(self, image: PixelBuffer) -> PixelBuffer:
        """Light full-card preprocessing: grayscale, upscale, contrast."""
        gray = grayscale(image)
        scaled = scale_up(gray, self.config.pass1_min_dimension)
        prepared = stretch_contrast(scaled)
        if self.config.pass1_sharpen > 0:
            prepared = sharpen(prepared, self.config.pass1_sharpen)
        return enhance_contrast(prepared, self.config.pass1_contrast)

    def build_variants(self, crop: PixelBuffer) -> List[Tuple[str, PixelBuffer]]:
        """Independently denoised versions of the (grayscale) name crop."""
        variants = [
            (f"adaptive_{block}", adaptive_threshold(crop, block, c))
            for block, c in self.config.threshold_variants
        ]
        variants.append(("high_contrast", enhance_contrast(crop, self.config.high_contrast_strength)))
        return variants

    def run_pass_one(self, run: _ScanRun, image: PixelBuffer) -> PassOneResult:
        """Recognize the full card at each candidate rotation, keep the best."""
        best = None
        for deg in self.config.rotations:
            run.enter(f"rotation_trial({deg})")
            rotated = rotate(image, deg)
            prepared = self.preprocess_for_recognition(rotated)
            recognition = run.recognize(prepared, self.config.page_seg_mode)
            score = score_layout(recognition.text, self.profile)
            logger.info(f"Rotation {deg}°: score={score}")

            if best is None or score > best.score:
                best = PassOneResult(
                    text=recognition.text,
                    lines=recognition.lines,
                    score=score,
                    rotation=deg,
                    preprocessed=prepared,
                    source=rotated,
                )

            if score >= self.config.early_exit_score:
                logger.info(f"Strong match at {deg}°, stopping early")
                break

        return best

    def run_pass_two(self, run: _ScanRun, pass_one: PassOneResult,
                     location: NameLocation) -> Optional[VariantCandidate]:
        """Re-read the name region from the sharper, unpreprocessed pixels."""
        cfg = self.config
        region = plan_crop(
            pass_one.lines, location.line_index, location.value_start_x,
            location.line_bbox, pass_one.preprocessed.width, self.profile,
            padding_ratio=cfg.crop_padding_ratio, min_padding=cfg.crop_min_padding,
        )

        # Lines were recognized on the preprocessed (rescaled) image
        sx = pass_one.source.width / pass_one.preprocessed.width
        sy = pass_one.source.height / pass_one.preprocessed.height
        source_region = region.scaled(sx, sy)
        crop = crop_canvas(pass_one.source, source_region.x, source_region.y,
                           source_region.width, source_region.height)
        crop = grayscale(upscale(crop, cfg.crop_upscale))
        run.enter("cropped")
        logger.info(f"Name crop {source_region} -> {crop.width}x{crop.height}")

        candidates = []
        for variant_name, variant in self.build_variants(crop):
            run.enter(f"variant_trial({variant_name})")
            recognition = run.recognize(variant, cfg.page_seg_mode)
            candidate = VariantCandidate(
                variant=variant_name,
                raw_text=recognition.text,
                cleaned=clean_name(recognition.text, self.profile),
                confidence=average_word_confidence(recognition),
            )
            logger.debug(f"Variant {variant_name}: {candidate.cleaned!r} (conf {candidate.confidence:.1f})")
            candidates.append(candidate)

        best = select_best_candidate(candidates)
        if best is not None:
            logger.info(f"Best variant {best.variant}: {best.cleaned!r} (conf {best.confidence:.1f})")
        return best

    def _scan(self, run: _ScanRun, image: PixelBuffer) -> ScanResult:
        cfg = self.config
        run.enter("idle")
        pass_one = self.run_pass_one(run, image)
        run.enter("best_selected")
        logger.info(f"Best OCR result at {pass_one.rotation}° (score: {pass_one.score})")

        registration_number = extract_registration_number(pass_one.text, self.profile)
        institution = institution_for_score(pass_one.score, self.profile, cfg)

        name, confidence, method = None, 0.0, None
        location = find_name_line(pass_one.lines, self.profile, cfg.value_start_ratio)
        if location is not None:
            best = self.run_pass_two(run, pass_one, location)
            if best is not None and len(best.cleaned) >= cfg.min_candidate_length:
                name = best.cleaned.upper()
                confidence = min(max(best.confidence / 100.0, 0.0), 1.0)
                method = "field"
            else:
                logger.info("Name crop gave no usable text, using full-text fallback")

        if name is None:
            name = extract_name_fallback(pass_one.text, self.profile)
            if name:
                confidence = cfg.fallback_confidence
                method = "fallback"
            run.enter("done_fallback")
        else:
            run.enter("done")

        if not name:
            card_seen = pass_one.score >= cfg.institution_min_score
            logger.info(f"No name extracted (layout score {pass_one.score})")
            return ScanResult(
                is_valid=False,
                registration_number=registration_number,
                institution=institution,
                confidence=0.0,
                error=NAME_NOT_FOUND_MESSAGE if card_seen else CARD_NOT_DETECTED_MESSAGE,
                error_code="name_not_found" if card_seen else "card_not_detected",
                rotation=pass_one.rotation,
                stages=tuple(run.stages),
            )

        return ScanResult(
            is_valid=True,
            name=name,
            registration_number=registration_number,
            institution=institution,
            confidence=round(confidence, 4),
            method=method,
            rotation=pass_one.rotation,
            stages=tuple(run.stages),
        )

    def extract_from_buffer(self, image: PixelBuffer,
                            cancel_event: Optional[threading.Event] = None) -> ScanResult:
        """Scan a decoded image. OCREngineError propagates to the caller."""
        with self.engine_factory() as engine:
            run = _ScanRun(engine, cancel_event)
            try:
                return self._scan(run, image)
            except ScanCancelled:
                logger.info("Scan cancelled")
                return ScanResult(
                    is_valid=False,
                    error=CANCELLED_MESSAGE,
                    error_code="cancelled",
                    stages=tuple(run.stages),
                )

    def extract(self, image_bytes: bytes,
                cancel_event: Optional[threading.Event] = None) -> ScanResult:
        """Decode and scan raw image bytes."""
        try:
            image = decode_image(image_bytes)
        except ImageDecodeError as e:
            logger.warning(f"Image decode failed: {e}")
            return ScanResult(
                is_valid=False,
                error=DECODE_FAILED_MESSAGE,
                error_code="decode_failed",
            )

        logger.info(f"Image size: {image.width}x{image.height}")
        return self.extract_from_buffer(image, cancel_event)


def extract_identity_text(image_bytes: bytes,
                          engine_factory: Optional[Callable[[], RecognitionEngine]] = None,
                          config: Optional[ScanConfig] = None,
                          profile: Optional[CardProfile] = None,
                          cancel_event: Optional[threading.Event] = None) -> ScanResult:
    """Pipeline entry point: image bytes in, ScanResult out."""
    pipeline = IDOCRPipeline(engine_factory, config or DEFAULT_CONFIG, profile or DEFAULT_PROFILE)
    return pipeline.extract(image_bytes, cancel_event)


def main(engine_factory: Optional[Callable[[], RecognitionEngine]] = None):
    parser = argparse.ArgumentParser(description="Student ID Card OCR")
    parser.add_argument("image", help="ID card image file")
    parser.add_argument("--reference", "-r", help="Claimed name to verify against the card")
    parser.add_argument("--output", "-o", type=Path, help="Output JSON file")
    parser.add_argument("--profile", type=Path, help="Card profile JSON (labels, watermarks, ID patterns)")
    parser.add_argument("--config", type=Path, help="Pipeline tuning JSON")
    parser.add_argument("--rotations", type=int, nargs="+",
                        help="Rotations to try, in degrees (default: 0 90)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log pipeline stages")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not Path(args.image).exists():
        print(json.dumps({"error": f"Image not found: {args.image}"}))
        sys.exit(1)

    try:
        profile = load_profile(args.profile) if args.profile else DEFAULT_PROFILE
        config = load_config(args.config) if args.config else DEFAULT_CONFIG
        if args.rotations:
            config = replace(config, rotations=tuple(args.rotations))
    except ValueError as e:
        parser.error(str(e))

    pipeline = IDOCRPipeline(engine_factory, config=config, profile=profile)
    try:
        result = pipeline.extract(Path(args.image).read_bytes())
    except OCREngineError as e:
        print(json.dumps({"error": str(e)}))
        sys.exit(2)

    output_data = {"scan": result.to_dict()}
    if args.reference:
        match = verify_against_reference(args.reference, result.name or "")
        output_data["match"] = match.to_dict()
        output_data["verified"] = validate_scan_result(result) and match.match

    output = json.dumps(output_data, ensure_ascii=False, indent=2)
    print(output)

    if args.output:
        args.output.write_text(output, encoding="utf-8")


if __name__ == "__main__":
    main()
