from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest import mock

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from smsocr.config import QualityThresholds
from smsocr.models import (
    AxisReport,
    BrightnessStatus,
    ContrastStatus,
    PixelBuffer,
    Priority,
    ResolutionStatus,
    SharpnessStatus,
)
from smsocr.quality import (
    QualityAnalyzer,
    analyze_brightness,
    analyze_contrast,
    analyze_resolution,
    build_suggestions,
    grade_for,
)

CFG = QualityThresholds()


def _checkerboard(height: int, width: int, square: int = 8) -> np.ndarray:
    ys, xs = np.indices((height, width))
    return np.where(((ys // square) + (xs // square)) % 2 == 0, 0, 255).astype(np.uint8)


class AxisBandTests(unittest.TestCase):
    def test_resolution_bands(self) -> None:
        self.assertEqual(analyze_resolution(400, 1000, CFG).status, ResolutionStatus.POOR)
        self.assertEqual(analyze_resolution(1000, 1000, CFG).status, ResolutionStatus.ACCEPTABLE)
        self.assertEqual(analyze_resolution(1500, 2000, CFG).status, ResolutionStatus.EXCELLENT)

        large = analyze_resolution(3000, 3000, CFG)
        self.assertEqual(large.status, ResolutionStatus.GOOD)
        self.assertAlmostEqual(large.score, 0.9)
        self.assertIn("downscaled", large.recommendation)

    def test_brightness_bands(self) -> None:
        cases = [
            (20, BrightnessStatus.TOO_DARK, 0.5),
            (64, BrightnessStatus.DARK, 0.7),
            (128, BrightnessStatus.GOOD, 1.0),
            (190, BrightnessStatus.BRIGHT, 0.85),
            (230, BrightnessStatus.TOO_BRIGHT, 0.6),
        ]
        for mean, status, score in cases:
            with self.subTest(mean=mean):
                report = analyze_brightness([mean, mean, mean], CFG)
                self.assertEqual(report.status, status)
                self.assertAlmostEqual(report.score, score)
                self.assertAlmostEqual(report.value, mean / 255.0)

    def test_contrast_bands(self) -> None:
        cases = [
            (10, ContrastStatus.LOW),
            (50, ContrastStatus.ACCEPTABLE),
            (90, ContrastStatus.GOOD),
            (160, ContrastStatus.HIGH),
        ]
        for stdev, status in cases:
            with self.subTest(stdev=stdev):
                self.assertEqual(analyze_contrast([stdev], CFG).status, status)

    def test_grade_bands(self) -> None:
        self.assertEqual(grade_for(0.95), "A")
        self.assertEqual(grade_for(0.8), "B")
        self.assertEqual(grade_for(0.75), "C")
        self.assertEqual(grade_for(0.65), "D")
        self.assertEqual(grade_for(0.1), "F")


class QualityAnalyzerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.analyzer = QualityAnalyzer()

    def test_flat_gray_screenshot(self) -> None:
        buf = PixelBuffer(np.full((1600, 400, 3), 128, dtype=np.uint8), format="PNG")
        report = self.analyzer.analyze(buf)

        self.assertEqual(report.resolution.status, ResolutionStatus.ACCEPTABLE)
        self.assertEqual(report.brightness.status, BrightnessStatus.GOOD)
        self.assertEqual(report.contrast.status, ContrastStatus.LOW)
        self.assertEqual(report.sharpness.status, SharpnessStatus.BLURRY)
        self.assertAlmostEqual(report.overall_score, (0.7 + 1.0 + 0.5 + 0.4) / 4)
        self.assertEqual(report.grade, "D")
        self.assertTrue(report.needs_enhancement)
        self.assertEqual((report.width, report.height, report.format), (400, 1600, "PNG"))

        by_axis = {s.axis: s.priority for s in report.suggestions}
        self.assertEqual(by_axis["contrast"], Priority.HIGH)
        self.assertEqual(by_axis["sharpness"], Priority.HIGH)
        self.assertEqual(by_axis["resolution"], Priority.HIGH)
        self.assertNotIn("brightness", by_axis)

    def test_below_good_resolution_and_contrast_are_high_priority(self) -> None:
        axes = {
            "resolution": AxisReport(score=0.7, status=ResolutionStatus.ACCEPTABLE, value=1.0),
            "contrast": AxisReport(score=0.7, status=ContrastStatus.ACCEPTABLE, value=0.4),
        }
        priorities = {s.axis: s.priority for s in build_suggestions(axes)}
        self.assertEqual(priorities, {"resolution": Priority.HIGH, "contrast": Priority.HIGH})

    def test_overall_is_mean_of_axis_scores(self) -> None:
        buf = PixelBuffer(_checkerboard(1800, 1200, square=16), format="PNG")
        report = self.analyzer.analyze(buf)

        scores = [axis.score for axis in report.axes.values()]
        self.assertAlmostEqual(report.overall_score, sum(scores) / 4)
        self.assertEqual(report.sharpness.status, SharpnessStatus.SHARP)
        self.assertFalse(report.needs_enhancement)
        self.assertEqual(report.suggestions, ())

    def test_alpha_is_excluded_from_brightness(self) -> None:
        arr = np.zeros((600, 600, 4), dtype=np.uint8)
        arr[:, :, :3] = 128
        report = self.analyzer.analyze(PixelBuffer(arr, format="PNG"))

        self.assertTrue(report.has_alpha)
        self.assertEqual(report.brightness.status, BrightnessStatus.GOOD)

    def test_sharpness_failure_degrades_only_that_axis(self) -> None:
        buf = PixelBuffer(np.full((800, 800, 3), 128, dtype=np.uint8), format="PNG")
        with mock.patch("smsocr.quality.codec.to_grayscale", side_effect=RuntimeError("boom")):
            with self.assertLogs("smsocr.quality", level="WARNING"):
                report = self.analyzer.analyze(buf)

        self.assertEqual(report.sharpness.status, SharpnessStatus.UNKNOWN)
        self.assertAlmostEqual(report.sharpness.score, 0.5)
        self.assertIn("boom", report.sharpness.details["error"])
        self.assertEqual(report.brightness.status, BrightnessStatus.GOOD)
        self.assertIn("sharpness", {s.axis for s in report.suggestions})

    def test_report_serializes_statuses_as_strings(self) -> None:
        buf = PixelBuffer(np.full((100, 100), 40, dtype=np.uint8), format="PNG")
        data = self.analyzer.analyze(buf).to_dict()

        self.assertEqual(data["brightness"]["status"], "too_dark")
        self.assertEqual(data["resolution"]["status"], "poor")


if __name__ == "__main__":
    unittest.main()
