from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import numpy as np


@dataclass(slots=True, frozen=True, eq=False)
class PixelBuffer:
    """Decoded raster, rows x columns x channels of uint8 samples.

    The sample array is copied on construction and marked read-only, so a
    buffer can be shared between stages without aliasing.
    """

    data: np.ndarray
    format: str | None = None
    orientation: int | None = None

    def __post_init__(self) -> None:
        arr = np.array(self.data, dtype=np.uint8, copy=True)
        if arr.ndim == 2:
            arr = arr[:, :, np.newaxis]
        if arr.ndim != 3 or arr.shape[2] not in (1, 2, 3, 4):
            raise ValueError(f"Unsupported pixel array shape: {arr.shape}")
        arr.setflags(write=False)
        object.__setattr__(self, "data", arr)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def channels(self) -> int:
        return int(self.data.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.channels in (2, 4)

    @property
    def megapixels(self) -> float:
        return self.width * self.height / 1_000_000

    def describe(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "channels": self.channels,
            "has_alpha": self.has_alpha,
            "format": self.format,
        }


class ResolutionStatus(str, Enum):
    POOR = "poor"
    ACCEPTABLE = "acceptable"
    GOOD = "good"
    EXCELLENT = "excellent"


class BrightnessStatus(str, Enum):
    TOO_DARK = "too_dark"
    DARK = "dark"
    GOOD = "good"
    BRIGHT = "bright"
    TOO_BRIGHT = "too_bright"


class ContrastStatus(str, Enum):
    LOW = "low"
    ACCEPTABLE = "acceptable"
    GOOD = "good"
    HIGH = "high"


class SharpnessStatus(str, Enum):
    BLURRY = "blurry"
    SOFT = "soft"
    GOOD = "good"
    SHARP = "sharp"
    UNKNOWN = "unknown"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(slots=True, frozen=True)
class AxisReport:
    score: float
    status: ResolutionStatus | BrightnessStatus | ContrastStatus | SharpnessStatus
    value: float
    recommendation: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Suggestion:
    priority: Priority
    axis: str
    action: str


@dataclass(slots=True, frozen=True)
class QualityReport:
    resolution: AxisReport
    brightness: AxisReport
    contrast: AxisReport
    sharpness: AxisReport
    overall_score: float
    grade: str
    needs_enhancement: bool
    suggestions: tuple[Suggestion, ...] = ()
    width: int = 0
    height: int = 0
    format: str | None = None
    channels: int = 0
    has_alpha: bool = False

    @property
    def axes(self) -> dict[str, AxisReport]:
        return {
            "resolution": self.resolution,
            "brightness": self.brightness,
            "contrast": self.contrast,
            "sharpness": self.sharpness,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RotationMethod(str, Enum):
    DIMENSIONAL_VERTICAL = "dimensional-vertical"
    DIMENSIONAL_HORIZONTAL = "dimensional-horizontal"
    DEFAULT_DIMENSIONAL = "default-dimensional"
    ORIENTATION_METADATA = "orientation-metadata"
    GRADIENT_VISUAL = "gradient-visual"
    GRADIENT_VISUAL_UNCERTAIN = "gradient-visual-uncertain"
    GRADIENT_VISUAL_FAILED = "gradient-visual-failed"
    ASSUMED_CORRECT = "assumed-correct"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class RotationDecision:
    angle: int
    confidence: float
    method: RotationMethod
    needs_rotation: bool = field(init=False)
    aspect_ratio: float | None = None
    horizontal_gradients: int | None = None
    vertical_gradients: int | None = None
    gradient_ratio: float | None = None
    orientation_tag: int | None = None
    reason: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.angle not in (0, 90, 180, 270):
            raise ValueError(f"Rotation angle must be a quarter turn, got {self.angle}")
        object.__setattr__(self, "needs_rotation", self.angle != 0)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class PreprocessingResult:
    source: str | None
    original: PixelBuffer
    original_size: int
    final: PixelBuffer
    final_bytes: bytes
    quality: QualityReport
    rotation: RotationDecision
    enhancement_mode: str
    processing_time_ms: float

    @property
    def final_size(self) -> int:
        return len(self.final_bytes)

    @property
    def final_width(self) -> int:
        return self.final.width

    @property
    def final_height(self) -> int:
        return self.final.height

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "original": {"size": self.original_size, **self.original.describe()},
            "processed": {"size": self.final_size, **self.final.describe()},
            "quality": self.quality.to_dict(),
            "rotation": self.rotation.to_dict(),
            "enhancement_mode": self.enhancement_mode,
            "processing_time_ms": round(self.processing_time_ms, 2),
        }


@dataclass(slots=True)
class OCRWord:
    text: str
    confidence: float
    bbox: list[tuple[float, float]] = field(default_factory=list)


@dataclass(slots=True)
class OCRResult:
    engine: str
    words: list[OCRWord]
    full_text: str
    mean_confidence: float
    line_count: int = 0
    processing_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
