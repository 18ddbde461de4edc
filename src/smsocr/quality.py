from __future__ import annotations

import logging

import numpy as np

from . import codec
from .config import QualityThresholds
from .errors import AnalysisDegraded
from .models import (
    AxisReport,
    BrightnessStatus,
    ContrastStatus,
    PixelBuffer,
    Priority,
    QualityReport,
    ResolutionStatus,
    SharpnessStatus,
    Suggestion,
)

logger = logging.getLogger(__name__)

# Keyed by (axis, status); statuses missing here produce no suggestion.
_SUGGESTIONS: dict[tuple[str, object], tuple[Priority, str]] = {
    ("resolution", ResolutionStatus.POOR): (Priority.HIGH, "Use a higher resolution image."),
    ("resolution", ResolutionStatus.ACCEPTABLE): (Priority.HIGH, "Use a larger capture to improve recognition."),
    ("brightness", BrightnessStatus.TOO_DARK): (Priority.HIGH, "Increase brightness by 30%."),
    ("brightness", BrightnessStatus.DARK): (Priority.MEDIUM, "Increase brightness by 15%."),
    ("brightness", BrightnessStatus.TOO_BRIGHT): (Priority.MEDIUM, "Reduce brightness by 15%."),
    ("brightness", BrightnessStatus.BRIGHT): (Priority.MEDIUM, "Reduce brightness by 5%."),
    ("contrast", ContrastStatus.LOW): (Priority.HIGH, "Normalize contrast."),
    ("contrast", ContrastStatus.ACCEPTABLE): (Priority.HIGH, "Improve contrast."),
    ("sharpness", SharpnessStatus.BLURRY): (Priority.HIGH, "Apply strong sharpening."),
    ("sharpness", SharpnessStatus.SOFT): (Priority.MEDIUM, "Apply light sharpening."),
    ("sharpness", SharpnessStatus.UNKNOWN): (Priority.LOW, "Check focus manually; sharpness could not be measured."),
}


def grade_for(score: float, thresholds: QualityThresholds | None = None) -> str:
    cfg = thresholds or QualityThresholds()
    for floor, grade in cfg.grade_bands:
        if score >= floor:
            return grade
    return "F"


def analyze_resolution(width: int, height: int, cfg: QualityThresholds) -> AxisReport:
    megapixels = width * height / 1_000_000
    details = {"megapixels": round(megapixels, 2), "dimensions": f"{width}x{height}"}

    if megapixels < cfg.resolution_poor_mp:
        return AxisReport(
            score=cfg.resolution_poor_score,
            status=ResolutionStatus.POOR,
            value=megapixels,
            recommendation=f"Image is very small (< {cfg.resolution_poor_mp}MP). Use a larger image.",
            details=details,
        )
    if megapixels < cfg.resolution_acceptable_mp:
        return AxisReport(
            score=cfg.resolution_acceptable_score,
            status=ResolutionStatus.ACCEPTABLE,
            value=megapixels,
            recommendation="Low resolution. Larger images improve OCR.",
            details=details,
        )
    if megapixels > cfg.resolution_large_mp:
        return AxisReport(
            score=cfg.resolution_large_score,
            status=ResolutionStatus.GOOD,
            value=megapixels,
            recommendation="Very high resolution. It will be downscaled for performance.",
            details=details,
        )
    return AxisReport(score=1.0, status=ResolutionStatus.EXCELLENT, value=megapixels, details=details)


def analyze_brightness(channel_means: list[float], cfg: QualityThresholds) -> AxisReport:
    normalized = float(np.mean(channel_means)) / 255.0
    details = {"percentage": round(normalized * 100, 1)}

    if normalized < cfg.brightness_too_dark:
        score, status, rec = cfg.brightness_too_dark_score, BrightnessStatus.TOO_DARK, "Image is very dark. Increase brightness."
    elif normalized < cfg.brightness_dark:
        score, status, rec = cfg.brightness_dark_score, BrightnessStatus.DARK, "Image is dark. Consider increasing brightness."
    elif normalized > cfg.brightness_too_bright:
        score, status, rec = cfg.brightness_too_bright_score, BrightnessStatus.TOO_BRIGHT, "Image is very bright. Reduce brightness."
    elif normalized > cfg.brightness_bright:
        score, status, rec = cfg.brightness_bright_score, BrightnessStatus.BRIGHT, "Image is slightly bright."
    else:
        score, status, rec = 1.0, BrightnessStatus.GOOD, None
    return AxisReport(score=score, status=status, value=normalized, recommendation=rec, details=details)


def analyze_contrast(channel_stdevs: list[float], cfg: QualityThresholds) -> AxisReport:
    avg_stdev = float(np.mean(channel_stdevs))
    normalized = avg_stdev / cfg.contrast_divisor
    details = {"stdev": round(avg_stdev, 2)}

    if normalized < cfg.contrast_low:
        score, status, rec = cfg.contrast_low_score, ContrastStatus.LOW, "Contrast is very low. Normalize contrast."
    elif normalized < cfg.contrast_acceptable:
        score, status, rec = cfg.contrast_acceptable_score, ContrastStatus.ACCEPTABLE, "Contrast is low. Improve contrast."
    elif normalized > cfg.contrast_high:
        score, status, rec = cfg.contrast_high_score, ContrastStatus.HIGH, "Contrast is very high and may introduce noise."
    else:
        score, status, rec = 1.0, ContrastStatus.GOOD, None
    return AxisReport(score=score, status=status, value=normalized, recommendation=rec, details=details)


def luma_variance(buffer: PixelBuffer, max_side: int) -> float:
    try:
        gray = codec.to_grayscale(buffer)
        luma = codec.to_luma(codec.fit_inside(gray, max_side, max_side))
    except Exception as exc:  # noqa: BLE001 - a failed pass degrades only this axis
        raise AnalysisDegraded(f"Sharpness could not be computed: {exc}") from exc
    if luma.size == 0:
        raise AnalysisDegraded("No pixels left after downscaling.")
    return float(np.var(luma, dtype=np.float64))


def analyze_sharpness(buffer: PixelBuffer, cfg: QualityThresholds) -> AxisReport:
    try:
        variance = luma_variance(buffer, cfg.sharpness_max_side)
    except AnalysisDegraded as exc:
        logger.warning("Sharpness analysis degraded: %s", exc)
        return AxisReport(
            score=cfg.sharpness_unknown_score,
            status=SharpnessStatus.UNKNOWN,
            value=0.0,
            recommendation="Could not analyze sharpness.",
            details={"error": str(exc)},
        )

    details = {"variance": round(variance, 2)}
    if variance < cfg.sharpness_blurry:
        score, status, rec = cfg.sharpness_blurry_score, SharpnessStatus.BLURRY, "Image is very blurry. Apply sharpening."
    elif variance < cfg.sharpness_soft:
        score, status, rec = cfg.sharpness_soft_score, SharpnessStatus.SOFT, "Image is slightly soft. Apply light sharpening."
    elif variance > cfg.sharpness_sharp:
        score, status, rec = cfg.sharpness_sharp_score, SharpnessStatus.SHARP, "Image is very sharp and may contain noise."
    else:
        score, status, rec = min(variance / cfg.sharpness_normalizer, 1.0), SharpnessStatus.GOOD, None
    return AxisReport(score=score, status=status, value=variance, recommendation=rec, details=details)


def build_suggestions(axes: dict[str, AxisReport]) -> tuple[Suggestion, ...]:
    suggestions: list[Suggestion] = []
    for name, axis in axes.items():
        entry = _SUGGESTIONS.get((name, axis.status))
        if entry is None:
            continue
        priority, action = entry
        suggestions.append(Suggestion(priority=priority, axis=name, action=action))
    return tuple(suggestions)


class QualityAnalyzer:
    def __init__(self, thresholds: QualityThresholds | None = None) -> None:
        self.thresholds = thresholds or QualityThresholds()

    def analyze(self, buffer: PixelBuffer) -> QualityReport:
        cfg = self.thresholds
        stats = codec.channel_statistics(buffer)

        resolution = analyze_resolution(buffer.width, buffer.height, cfg)
        brightness = analyze_brightness([s.mean for s in stats], cfg)
        contrast = analyze_contrast([s.stdev for s in stats], cfg)
        sharpness = analyze_sharpness(buffer, cfg)

        axes = {"resolution": resolution, "brightness": brightness, "contrast": contrast, "sharpness": sharpness}
        overall = sum(axis.score for axis in axes.values()) / len(axes)
        report = QualityReport(
            resolution=resolution,
            brightness=brightness,
            contrast=contrast,
            sharpness=sharpness,
            overall_score=overall,
            grade=grade_for(overall, cfg),
            needs_enhancement=overall < cfg.enhancement_threshold,
            suggestions=build_suggestions(axes),
            width=buffer.width,
            height=buffer.height,
            format=buffer.format,
            channels=buffer.channels,
            has_alpha=buffer.has_alpha,
        )
        logger.debug(
            "Quality %.3f (%s): resolution=%s brightness=%s contrast=%s sharpness=%s",
            overall,
            report.grade,
            resolution.status.value,
            brightness.status.value,
            contrast.status.value,
            sharpness.status.value,
        )
        return report
