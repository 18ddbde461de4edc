from __future__ import annotations

import logging

import numpy as np

from . import codec
from .config import RotationThresholds
from .errors import RotationUncertain
from .models import PixelBuffer, RotationDecision, RotationMethod

logger = logging.getLogger(__name__)


def compute_gradients(luma: np.ndarray, threshold: int, step: int) -> tuple[int, int]:
    """Count sparse-grid samples whose horizontal / vertical intensity change exceeds threshold.

    Samples start at (1, 1) and advance by ``step`` in both directions, stopping
    one pixel short of each border so every sample has all four neighbours.
    """
    height, width = luma.shape[:2]
    if height < 3 or width < 3:
        return 0, 0

    img = luma.astype(np.int16, copy=False)
    ys = np.arange(1, height - 1, step)
    xs = np.arange(1, width - 1, step)
    gx = np.abs(img[np.ix_(ys, xs + 1)] - img[np.ix_(ys, xs - 1)])
    gy = np.abs(img[np.ix_(ys + 1, xs)] - img[np.ix_(ys - 1, xs)])
    return int(np.count_nonzero(gx > threshold)), int(np.count_nonzero(gy > threshold))


class RotationDetector:
    """Infers a quarter-turn correction for a decoded image.

    Screenshots are judged from their aspect ratio alone; photos use their
    orientation tag first and fall back to a coarse gradient scan.
    """

    def __init__(self, thresholds: RotationThresholds | None = None) -> None:
        self.thresholds = thresholds or RotationThresholds()

    def detect(self, buffer: PixelBuffer) -> RotationDecision:
        try:
            fmt = (buffer.format or "").upper()
            if fmt in self.thresholds.screenshot_formats:
                return self.detect_from_dimensions(buffer.width, buffer.height)

            from_tag = self.detect_from_orientation(buffer.orientation)
            if from_tag.needs_rotation:
                logger.debug("Orientation tag %s -> %s degrees", buffer.orientation, from_tag.angle)
                return from_tag

            if self.should_use_visual_analysis(fmt, buffer.width, buffer.height):
                logger.debug("Falling back to gradient scan for %sx%s %s", buffer.width, buffer.height, fmt)
                return self.detect_visually(buffer)

            return RotationDecision(
                angle=0,
                confidence=self.thresholds.assumed_correct_confidence,
                method=RotationMethod.ASSUMED_CORRECT,
                orientation_tag=buffer.orientation,
            )
        except Exception as exc:  # noqa: BLE001 - rotation is best-effort, never fatal
            logger.warning("Rotation detection failed: %s", exc)
            return RotationDecision(angle=0, confidence=0.0, method=RotationMethod.ERROR, error=str(exc))

    def detect_from_dimensions(self, width: int, height: int) -> RotationDecision:
        cfg = self.thresholds
        aspect_ratio = width / height

        # Chat screenshots are reliably tall; extreme ratios suggest a quarter turn.
        if aspect_ratio < cfg.suspicious_aspect_ratio:
            return RotationDecision(
                angle=90,
                confidence=cfg.vertical_confidence,
                method=RotationMethod.DIMENSIONAL_VERTICAL,
                aspect_ratio=aspect_ratio,
                reason="narrow_vertical",
            )
        if aspect_ratio > cfg.wide_aspect_ratio:
            return RotationDecision(
                angle=90,
                confidence=cfg.horizontal_confidence,
                method=RotationMethod.DIMENSIONAL_HORIZONTAL,
                aspect_ratio=aspect_ratio,
                reason="narrow_horizontal",
            )
        return RotationDecision(
            angle=0,
            confidence=cfg.default_confidence,
            method=RotationMethod.DEFAULT_DIMENSIONAL,
            aspect_ratio=aspect_ratio,
        )

    def detect_from_orientation(self, orientation: int | None) -> RotationDecision:
        angle = dict(self.thresholds.orientation_angles).get(orientation or 0, 0)
        return RotationDecision(
            angle=angle,
            confidence=1.0 if angle else 0.0,
            method=RotationMethod.ORIENTATION_METADATA,
            orientation_tag=orientation,
        )

    def should_use_visual_analysis(self, fmt: str, width: int, height: int) -> bool:
        cfg = self.thresholds
        if fmt not in cfg.photo_formats:
            return False
        if width < cfg.visual_min_size or height < cfg.visual_min_size:
            return False
        return width * height <= cfg.visual_max_pixels

    def detect_visually(self, buffer: PixelBuffer) -> RotationDecision:
        cfg = self.thresholds
        try:
            luma = self._scan_luma(buffer)
        except RotationUncertain as exc:
            logger.warning("%s", exc)
            return RotationDecision(
                angle=0,
                confidence=0.0,
                method=RotationMethod.GRADIENT_VISUAL_FAILED,
                orientation_tag=buffer.orientation,
                error=str(exc),
            )

        horizontal, vertical = compute_gradients(luma, cfg.visual_gradient_threshold, cfg.visual_sample_step)
        ratio = vertical / (horizontal + 1)

        # The scan cannot tell 90 from 270 degrees; it only ever suggests 90.
        if ratio > cfg.visual_ratio_threshold:
            return RotationDecision(
                angle=90,
                confidence=cfg.visual_confidence,
                method=RotationMethod.GRADIENT_VISUAL,
                horizontal_gradients=horizontal,
                vertical_gradients=vertical,
                gradient_ratio=ratio,
                orientation_tag=buffer.orientation,
            )
        return RotationDecision(
            angle=0,
            confidence=cfg.visual_uncertain_confidence,
            method=RotationMethod.GRADIENT_VISUAL_UNCERTAIN,
            horizontal_gradients=horizontal,
            vertical_gradients=vertical,
            gradient_ratio=ratio,
            orientation_tag=buffer.orientation,
        )

    def _scan_luma(self, buffer: PixelBuffer) -> np.ndarray:
        target = self.thresholds.visual_resize_target
        try:
            return codec.to_luma(codec.fit_inside(buffer, target, target, enlarge=True))
        except Exception as exc:  # noqa: BLE001 - any codec failure leaves orientation unknown
            raise RotationUncertain(f"Gradient scan failed: {exc}") from exc

    def rotate(self, buffer: PixelBuffer, angle: int) -> PixelBuffer:
        if angle == 0:
            return buffer
        logger.debug("Rotating %sx%s by %s degrees", buffer.width, buffer.height, angle)
        return codec.rotate(buffer, angle)

    def detect_and_correct(self, buffer: PixelBuffer) -> tuple[PixelBuffer, RotationDecision]:
        decision = self.detect(buffer)
        if decision.needs_rotation:
            return self.rotate(buffer, decision.angle), decision
        return buffer, decision
