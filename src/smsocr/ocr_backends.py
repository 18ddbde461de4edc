from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass

from . import codec
from .config import Settings
from .models import OCRResult, OCRWord, PixelBuffer

logger = logging.getLogger(__name__)

ENGINES = ("tesseract", "paddle", "easy")


def _mean_conf(words: list[OCRWord]) -> float:
    if not words:
        return 0.0
    return float(sum(word.confidence for word in words) / len(words))


def _quad(left: float, top: float, width: float, height: float) -> list[tuple[float, float]]:
    right, bottom = left + width, top + height
    return [(left, top), (right, top), (right, bottom), (left, bottom)]


@dataclass(slots=True)
class OCRBackend:
    name: str

    def run(self, buffer: PixelBuffer) -> OCRResult:
        start = time.perf_counter()
        words, lines = self._recognize(buffer)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        result = OCRResult(
            engine=self.name,
            words=words,
            full_text="\n".join(lines),
            mean_confidence=_mean_conf(words),
            line_count=len(lines),
            processing_time_ms=elapsed_ms,
        )
        logger.info(
            "OCR (%s): %d words, %d lines, mean confidence %.1f%% in %.0f ms",
            self.name,
            len(words),
            len(lines),
            result.mean_confidence * 100,
            elapsed_ms,
        )
        return result

    def _recognize(self, buffer: PixelBuffer) -> tuple[list[OCRWord], list[str]]:  # pragma: no cover - interface method
        raise NotImplementedError


class TesseractBackend(OCRBackend):
    def __init__(self, lang: str, psm: int = 6, oem: int = 3, min_confidence: float = 50.0) -> None:
        super().__init__(name="tesseract")
        try:
            import pytesseract
        except ImportError as exc:
            raise RuntimeError("pytesseract is not installed. Use extra: [ocr-tesseract]") from exc

        # Fails fast when the tesseract binary is missing from PATH.
        pytesseract.get_tesseract_version()
        self._tesseract = pytesseract
        self.lang = lang
        self.config = f"--oem {oem} --psm {psm}"
        self.min_confidence = min_confidence

    def _recognize(self, buffer: PixelBuffer) -> tuple[list[OCRWord], list[str]]:
        data = self._tesseract.image_to_data(
            codec.to_pil(buffer),
            lang=self.lang,
            config=self.config,
            output_type=self._tesseract.Output.DICT,
        )

        words: list[OCRWord] = []
        lines: dict[tuple[int, int, int], list[str]] = {}
        for i, raw_text in enumerate(data.get("text", [])):
            text = str(raw_text).strip()
            if not text:
                continue
            key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
            lines.setdefault(key, []).append(text)

            conf = float(data["conf"][i])
            if conf <= self.min_confidence:
                continue
            bbox = _quad(
                float(data["left"][i]),
                float(data["top"][i]),
                float(data["width"][i]),
                float(data["height"][i]),
            )
            words.append(OCRWord(text=text, confidence=conf / 100.0, bbox=bbox))

        return words, [" ".join(tokens) for _, tokens in sorted(lines.items())]


class PaddleBackend(OCRBackend):
    def __init__(self, lang: str) -> None:
        super().__init__(name="paddle")

        # Windows CPU deployments can fail in oneDNN fused conv ops on some wheel combos.
        os.environ.setdefault("FLAGS_use_mkldnn", "0")
        os.environ.setdefault("OMP_NUM_THREADS", "1")

        try:
            from paddleocr import PaddleOCR
        except ImportError as exc:
            raise RuntimeError("PaddleOCR is not installed. Use extra: [ocr-paddle]") from exc

        base = {"use_angle_cls": False, "lang": lang, "use_gpu": False, "enable_mkldnn": False}
        attempts = [{**base, "show_log": False}, base]

        last_exc: Exception | None = None
        self._reader = None
        for kwargs in attempts:
            try:
                self._reader = PaddleOCR(**kwargs)
                break
            except Exception as exc:  # noqa: BLE001 - version-specific PaddleOCR kwargs
                last_exc = exc
                msg = str(exc).lower()
                if "unknown argument" in msg or "unexpected keyword" in msg:
                    continue
                raise

        if self._reader is None:
            assert last_exc is not None
            raise last_exc

    def _recognize(self, buffer: PixelBuffer) -> tuple[list[OCRWord], list[str]]:
        image_bgr = codec.to_bgr(buffer)
        try:
            raw = self._reader.ocr(image_bgr, cls=False)
        except TypeError:
            # Older signatures may not support `cls`.
            raw = self._reader.ocr(image_bgr)

        words: list[OCRWord] = []
        lines: list[str] = []
        for block in raw or []:
            if not block:
                continue
            for item in block:
                try:
                    bbox, payload = item
                    text, conf = payload
                except (TypeError, ValueError):
                    continue
                text = str(text).strip()
                if not text:
                    continue
                words.append(OCRWord(text=text, confidence=float(conf), bbox=[(float(x), float(y)) for x, y in bbox]))
                lines.append(text)
        return words, lines


class EasyBackend(OCRBackend):
    def __init__(self, langs: tuple[str, ...], gpu: bool = False) -> None:
        super().__init__(name="easy")
        try:
            import easyocr
        except ImportError as exc:
            raise RuntimeError("EasyOCR is not installed. Use extra: [ocr-easy]") from exc
        self._reader = easyocr.Reader(list(langs), gpu=gpu, verbose=False)

    def _recognize(self, buffer: PixelBuffer) -> tuple[list[OCRWord], list[str]]:
        raw = self._reader.readtext(codec.to_bgr(buffer), detail=1, paragraph=False)
        words: list[OCRWord] = []
        lines: list[str] = []
        for item in raw or []:
            try:
                bbox, text, conf = item
            except (TypeError, ValueError):
                continue
            text = str(text).strip()
            if not text:
                continue
            words.append(OCRWord(text=text, confidence=float(conf), bbox=[(float(x), float(y)) for x, y in bbox]))
            lines.append(text)
        return words, lines


def _create(engine: str, settings: Settings) -> OCRBackend:
    if engine == "tesseract":
        return TesseractBackend(
            lang=settings.tesseract_lang,
            psm=settings.tesseract_psm,
            oem=settings.tesseract_oem,
            min_confidence=settings.min_word_confidence,
        )
    if engine == "paddle":
        return PaddleBackend(lang=settings.paddle_lang)
    return EasyBackend(langs=settings.easyocr_langs, gpu=settings.easyocr_gpu)


def build_ocr_backend(settings: Settings) -> OCRBackend:
    preferred = settings.ocr_engine.lower()
    if preferred != "auto" and preferred not in ENGINES:
        raise ValueError(f"Unsupported OCR_ENGINE value: {settings.ocr_engine}")

    order = list(ENGINES) if preferred == "auto" else [preferred]
    errors: list[str] = []

    for engine in order:
        try:
            backend = _create(engine, settings)
        except Exception as exc:  # noqa: BLE001 - backend fallback logic
            logger.debug("OCR backend %s unavailable: %s", engine, exc)
            errors.append(f"{engine}: {exc}")
            continue
        logger.info("Using OCR backend: %s", backend.name)
        return backend

    raise RuntimeError("Could not initialize OCR backend. " + " | ".join(errors))
