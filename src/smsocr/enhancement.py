from __future__ import annotations

import logging

from . import codec
from .config import EnhancementSettings
from .models import BrightnessStatus, PixelBuffer, QualityReport, SharpnessStatus

logger = logging.getLogger(__name__)


def brightness_factors(cfg: EnhancementSettings) -> dict[BrightnessStatus, float]:
    return {
        BrightnessStatus.TOO_DARK: cfg.too_dark_factor,
        BrightnessStatus.DARK: cfg.dark_factor,
        BrightnessStatus.GOOD: 1.0,
        BrightnessStatus.BRIGHT: cfg.bright_factor,
        BrightnessStatus.TOO_BRIGHT: cfg.too_bright_factor,
    }


def sharpen_params(cfg: EnhancementSettings) -> dict[SharpnessStatus, tuple[float, float, float] | None]:
    return {
        SharpnessStatus.BLURRY: cfg.strong_sharpen,
        SharpnessStatus.SOFT: cfg.moderate_sharpen,
        SharpnessStatus.GOOD: None,
        SharpnessStatus.SHARP: None,
        SharpnessStatus.UNKNOWN: None,
    }


def target_height(width: int, height: int, cfg: EnhancementSettings) -> int | None:
    """Height the enhancer resizes to, or None to keep the current size."""
    megapixels = width * height / 1_000_000
    if megapixels > cfg.max_megapixels:
        return cfg.target_height
    if height < cfg.small_height:
        return cfg.upscale_height
    if cfg.small_height < height < cfg.normalize_max_height and height != cfg.target_height:
        return cfg.target_height
    return None


class ImageEnhancer:
    def __init__(self, settings: EnhancementSettings | None = None) -> None:
        self.settings = settings or EnhancementSettings()
        self._brightness = brightness_factors(self.settings)
        self._sharpen = sharpen_params(self.settings)

    def enhance(self, buffer: PixelBuffer, report: QualityReport) -> PixelBuffer:
        cfg = self.settings
        out = self.resize_if_needed(buffer)

        factor = self._brightness[report.brightness.status]
        if factor != 1.0:
            logger.debug("Brightness x%.2f (%s)", factor, report.brightness.status.value)
            out = codec.modulate_brightness(out, factor)

        if report.contrast.score < cfg.contrast_score_threshold:
            logger.debug("Normalizing contrast (score %.2f)", report.contrast.score)
            out = codec.normalize_contrast(out, cutoff=cfg.contrast_cutoff)

        params = self._sharpen[report.sharpness.status]
        if params is not None:
            sigma, flat, jagged = params
            logger.debug("Sharpening sigma=%.1f (%s)", sigma, report.sharpness.status.value)
            out = codec.sharpen(out, sigma, flat, jagged)

        if report.sharpness.status is SharpnessStatus.SHARP:
            logger.debug("Median denoise %dx%d", cfg.median_size, cfg.median_size)
            out = codec.median_filter(out, cfg.median_size)

        return codec.drop_alpha(codec.to_srgb(out))

    def resize_if_needed(self, buffer: PixelBuffer) -> PixelBuffer:
        height = target_height(buffer.width, buffer.height, self.settings)
        if height is None:
            logger.debug("Size OK: %sx%s", buffer.width, buffer.height)
            return buffer
        logger.debug("Resizing %sx%s to height %s", buffer.width, buffer.height, height)
        return codec.resize_to_height(buffer, height)

    def preprocess_for_ocr(self, buffer: PixelBuffer) -> PixelBuffer:
        cfg = self.settings
        sigma, flat, jagged = cfg.moderate_sharpen
        out = codec.resize_to_height(buffer, cfg.target_height)
        out = codec.normalize_contrast(out, cutoff=cfg.contrast_cutoff)
        out = codec.sharpen(out, sigma, flat, jagged)
        out = codec.median_filter(out, cfg.median_size)
        return codec.to_grayscale(out)
