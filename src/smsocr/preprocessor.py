from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from . import codec
from .config import Settings, load_settings
from .enhancement import ImageEnhancer
from .errors import DecodeError, TransformError
from .input_loader import validate_bytes, validate_file
from .models import PixelBuffer, PreprocessingResult, QualityReport, RotationDecision
from .quality import QualityAnalyzer
from .rotation import RotationDetector

logger = logging.getLogger(__name__)


def _safe_stem(name: str | None) -> str:
    stem = Path(name).stem if name else ""
    stem = re.sub(r"[^A-Za-z0-9_.-]+", "_", stem).strip("._")
    return stem or "image"


def _log_quality(quality: QualityReport) -> None:
    logger.info("Quality score %.1f%% (grade %s)", quality.overall_score * 100, quality.grade)
    for name, axis in quality.axes.items():
        logger.info("  %s: %s (score %.2f, value %.3f)", name, axis.status.value, axis.score, axis.value)
    for suggestion in quality.suggestions:
        logger.info("  [%s] %s", suggestion.priority.value.upper(), suggestion.action)
    logger.info("  Needs enhancement: %s", "yes" if quality.needs_enhancement else "no")


def _log_rotation(rotation: RotationDecision) -> None:
    logger.info(
        "Rotation: method=%s angle=%s confidence=%.0f%% needs_rotation=%s",
        rotation.method.value,
        rotation.angle,
        rotation.confidence * 100,
        rotation.needs_rotation,
    )


def _validate_output(final: PixelBuffer, encoded: bytes) -> PixelBuffer:
    """Decode the encoded output and check it against the buffer it came from."""
    try:
        check = codec.decode(encoded)
    except DecodeError as exc:
        raise TransformError(f"Processed image could not be read back: {exc}") from exc
    if (check.width, check.height, check.channels) != (final.width, final.height, final.channels):
        raise TransformError(
            "Processed image metadata mismatch: "
            f"{check.width}x{check.height}x{check.channels} != {final.width}x{final.height}x{final.channels}"
        )
    return check


class Preprocessor:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or load_settings()
        self.quality_analyzer = QualityAnalyzer(self.settings.quality)
        self.rotation_detector = RotationDetector(self.settings.rotation)
        self.image_enhancer = ImageEnhancer(self.settings.enhancement)

    def validate_file(self, file_path: str | Path) -> Path:
        return validate_file(
            file_path,
            max_bytes=self.settings.max_file_size_bytes,
            accepted_extensions=self.settings.accepted_extensions,
        )

    def process(self, file_path: str | Path) -> PreprocessingResult:
        start = time.perf_counter()
        logger.info("Preprocessing %s", Path(file_path).name)
        path = self.validate_file(file_path)
        data = path.read_bytes()
        # The file may have grown between stat() and read().
        validate_bytes(data, max_bytes=self.settings.max_file_size_bytes)
        logger.info("File OK: %.2f KB", len(data) / 1024)
        return self._run(data, source=str(file_path), start=start)

    def process_bytes(self, data: bytes, source: str | None = None) -> PreprocessingResult:
        start = time.perf_counter()
        validate_bytes(data, max_bytes=self.settings.max_file_size_bytes)
        return self._run(data, source=source, start=start)

    def process_many(self, file_paths: Iterable[str | Path], max_workers: int | None = None) -> list[PreprocessingResult]:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self.process, file_paths))

    def _run(self, data: bytes, source: str | None, start: float) -> PreprocessingResult:
        original = codec.decode(data)

        logger.info("Stage 1/4: quality analysis")
        quality = self.quality_analyzer.analyze(original)
        _log_quality(quality)

        logger.info("Stage 2/4: rotation detection")
        working, rotation = self.rotation_detector.detect_and_correct(original)
        _log_rotation(rotation)

        logger.info("Stage 3/4: enhancement")
        if quality.needs_enhancement:
            final = self.image_enhancer.enhance(working, quality)
            mode = "full"
        else:
            logger.info("Image quality is good, applying baseline preprocessing")
            final = self.image_enhancer.preprocess_for_ocr(working)
            mode = "baseline"

        logger.info("Stage 4/4: final validation")
        final_bytes = codec.encode(final, "PNG")
        final = _validate_output(final, final_bytes)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            "Done in %.0f ms: %sx%s, %.2f KB -> %.2f KB",
            elapsed_ms,
            final.width,
            final.height,
            len(data) / 1024,
            len(final_bytes) / 1024,
        )
        return PreprocessingResult(
            source=source,
            original=original,
            original_size=len(data),
            final=final,
            final_bytes=final_bytes,
            quality=quality,
            rotation=rotation,
            enhancement_mode=mode,
            processing_time_ms=elapsed_ms,
        )

    def save_processed(self, result: PreprocessingResult, output_dir: str | Path | None = None) -> Path:
        out_dir = Path(output_dir) if output_dir is not None else Path(self.settings.output_dir) / "processed"
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / f"{_safe_stem(result.source)}_processed.png"
        out_path.write_bytes(result.final_bytes)
        logger.info("Saved processed image to %s", out_path)
        return out_path
