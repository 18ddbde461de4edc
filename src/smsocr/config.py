from __future__ import annotations

import os
from dataclasses import dataclass, field

from .input_loader import ACCEPTED_EXTENSIONS, MAX_FILE_SIZE_BYTES

_MIB = 1024 * 1024


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True, frozen=True)
class QualityThresholds:
    # Resolution bands, in megapixels.
    resolution_poor_mp: float = 0.5
    resolution_acceptable_mp: float = 2.0
    resolution_large_mp: float = 8.0
    resolution_poor_score: float = 0.4
    resolution_acceptable_score: float = 0.7
    resolution_large_score: float = 0.9

    # Brightness bands, mean intensity normalized to [0, 1].
    brightness_too_dark: float = 0.2
    brightness_dark: float = 0.3
    brightness_bright: float = 0.7
    brightness_too_bright: float = 0.8
    brightness_too_dark_score: float = 0.5
    brightness_dark_score: float = 0.7
    brightness_bright_score: float = 0.85
    brightness_too_bright_score: float = 0.6

    # Contrast bands, mean channel stdev divided by contrast_divisor.
    contrast_divisor: float = 128.0
    contrast_low: float = 0.3
    contrast_acceptable: float = 0.5
    contrast_high: float = 1.2
    contrast_low_score: float = 0.5
    contrast_acceptable_score: float = 0.7
    contrast_high_score: float = 0.8

    # Sharpness bands, luma variance.
    sharpness_max_side: int = 500
    sharpness_normalizer: float = 500.0
    sharpness_blurry: float = 50.0
    sharpness_soft: float = 100.0
    sharpness_sharp: float = 800.0
    sharpness_blurry_score: float = 0.4
    sharpness_soft_score: float = 0.6
    sharpness_sharp_score: float = 0.85
    sharpness_unknown_score: float = 0.5

    grade_bands: tuple[tuple[float, str], ...] = ((0.9, "A"), (0.8, "B"), (0.7, "C"), (0.6, "D"))
    enhancement_threshold: float = 0.7


@dataclass(slots=True, frozen=True)
class RotationThresholds:
    suspicious_aspect_ratio: float = 0.4
    wide_aspect_ratio: float = 2.5
    vertical_confidence: float = 0.7
    horizontal_confidence: float = 0.6
    default_confidence: float = 0.95
    assumed_correct_confidence: float = 0.8

    visual_min_size: int = 100
    visual_max_pixels: int = 10_000_000
    visual_resize_target: int = 150
    visual_gradient_threshold: int = 40
    visual_ratio_threshold: float = 2.0
    visual_sample_step: int = 5
    visual_confidence: float = 0.6
    visual_uncertain_confidence: float = 0.5

    screenshot_formats: tuple[str, ...] = ("PNG",)
    photo_formats: tuple[str, ...] = ("JPEG", "MPO", "HEIF")
    orientation_angles: tuple[tuple[int, int], ...] = ((3, 180), (6, 90), (8, 270))


@dataclass(slots=True, frozen=True)
class EnhancementSettings:
    max_megapixels: float = 8.0
    target_height: int = 1920
    small_height: int = 1000
    upscale_height: int = 1500
    normalize_max_height: int = 3000

    too_dark_factor: float = 1.30
    dark_factor: float = 1.15
    too_bright_factor: float = 0.85
    bright_factor: float = 0.95

    contrast_score_threshold: float = 0.7
    contrast_cutoff: float = 1.0

    strong_sharpen: tuple[float, float, float] = (2.0, 1.0, 1.0)
    moderate_sharpen: tuple[float, float, float] = (1.5, 0.7, 0.7)
    median_size: int = 3


@dataclass(slots=True)
class Settings:
    max_file_size_mb: int = MAX_FILE_SIZE_BYTES // _MIB
    accepted_extensions: tuple[str, ...] = ACCEPTED_EXTENSIONS
    output_dir: str = "output"
    ocr_engine: str = "auto"
    tesseract_lang: str = "por"
    tesseract_psm: int = 6
    tesseract_oem: int = 3
    min_word_confidence: float = 50.0
    paddle_lang: str = "pt"
    easyocr_langs: tuple[str, ...] = ("pt", "en")
    easyocr_gpu: bool = False
    log_level: str | None = None
    quality: QualityThresholds = field(default_factory=QualityThresholds)
    rotation: RotationThresholds = field(default_factory=RotationThresholds)
    enhancement: EnhancementSettings = field(default_factory=EnhancementSettings)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * _MIB


def load_settings() -> Settings:
    langs = os.getenv("EASYOCR_LANGS", "pt,en")
    parsed_langs = tuple(x.strip() for x in langs.split(",") if x.strip())
    log_level = os.getenv("LOG_LEVEL")

    return Settings(
        max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", str(MAX_FILE_SIZE_BYTES // _MIB))),
        output_dir=os.getenv("OUTPUT_DIR", "output"),
        ocr_engine=os.getenv("OCR_ENGINE", "auto").strip().lower(),
        tesseract_lang=os.getenv("TESSERACT_LANG", "por").strip(),
        tesseract_psm=int(os.getenv("TESSERACT_PSM", "6")),
        paddle_lang=os.getenv("PADDLE_LANG", "pt").strip().lower(),
        easyocr_langs=parsed_langs or ("pt", "en"),
        easyocr_gpu=_env_bool("EASYOCR_GPU", False),
        log_level=log_level.strip().lower() if log_level else None,
    )
