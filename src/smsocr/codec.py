from __future__ import annotations

import io
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import ExifTags, Image, ImageEnhance, ImageFilter, ImageOps, UnidentifiedImageError

from .errors import DecodeError, TransformError
from .models import PixelBuffer

_NATIVE_MODES = {"L", "LA", "RGB", "RGBA"}
_HEIF_BRANDS = {b"heic", b"heix", b"heim", b"heis", b"hevc", b"mif1", b"msf1"}
_ROTATE_CODES = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}
# UnsharpMask ignores differences below this many levels.
_SHARPEN_THRESHOLD = 3


@dataclass(slots=True, frozen=True)
class ChannelStats:
    mean: float
    stdev: float


@contextmanager
def _guard(step: str) -> Iterator[None]:
    try:
        yield
    except (cv2.error, OSError, ValueError) as exc:
        raise TransformError(f"{step} failed: {exc}") from exc


def _looks_like_heif(data: bytes) -> bool:
    return len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in _HEIF_BRANDS


def _register_heif_opener() -> None:
    try:
        import pillow_heif
    except ImportError as exc:
        raise DecodeError("HEIC support requires pillow-heif. Install extra: [heic]") from exc
    pillow_heif.register_heif_opener()


def _wide_to_luma(im: Image.Image) -> Image.Image:
    """Scale 16-bit, 32-bit integer and float samples down to 8 bits.

    ``Image.convert("L")`` clamps these modes at 255 instead of scaling them.
    """
    arr = np.asarray(im)
    if im.mode == "F":
        samples = arr.astype(np.float64)
        lo, hi = float(samples.min()), float(samples.max())
        if 0.0 <= lo and hi <= 1.0:
            samples = samples * 255.0
        elif hi > lo:
            samples = (samples - lo) * (255.0 / (hi - lo))
        scaled = np.clip(np.rint(samples), 0, 255)
    else:
        samples = arr.astype(np.int64)
        lo, hi = int(samples.min()), int(samples.max())
        if im.mode.startswith("I;16") or (lo >= 0 and hi <= 0xFFFF):
            scaled = samples >> 8
        elif hi > lo:
            scaled = (samples - lo) * 255 // (hi - lo)
        else:
            scaled = np.clip(samples, 0, 255)
    return Image.fromarray(scaled.astype(np.uint8))


def _to_native_mode(im: Image.Image) -> Image.Image:
    if im.mode in _NATIVE_MODES:
        return im
    if im.mode in {"P", "PA"} and ("transparency" in im.info or im.mode == "PA"):
        return im.convert("RGBA")
    if im.mode == "F" or im.mode == "I" or im.mode.startswith("I;16"):
        return _wide_to_luma(im)
    if im.mode == "1":
        return im.convert("L")
    # CMYK, YCbCr, LAB, HSV and palette images all land on RGB.
    return im.convert("RGB")


def read_orientation(im: Image.Image) -> int | None:
    value = im.getexif().get(ExifTags.Base.Orientation)
    if value is None:
        return None
    return int(value)


def decode(data: bytes) -> PixelBuffer:
    if not data:
        raise DecodeError("Image data is empty.")
    if _looks_like_heif(data):
        _register_heif_opener()

    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            fmt = im.format
            # Orientation is reported, not applied: rotation is the detector's decision.
            orientation = read_orientation(im)
            im = _to_native_mode(im)
            arr = np.asarray(im)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc

    if arr.size == 0:
        raise DecodeError("Decoded image has no pixels.")
    return PixelBuffer(arr, format=fmt, orientation=orientation)


def to_pil(buffer: PixelBuffer) -> Image.Image:
    arr = buffer.data[:, :, 0] if buffer.channels == 1 else buffer.data
    return Image.fromarray(np.ascontiguousarray(arr))


def encode(buffer: PixelBuffer, fmt: str = "PNG") -> bytes:
    out = io.BytesIO()
    with _guard(f"encode as {fmt}"):
        to_pil(buffer).save(out, format=fmt)
    return out.getvalue()


def _split_alpha(data: np.ndarray) -> tuple[np.ndarray, np.ndarray | None]:
    if data.shape[2] in (2, 4):
        return np.ascontiguousarray(data[:, :, :-1]), np.ascontiguousarray(data[:, :, -1:])
    return data, None


def _map_color(buffer: PixelBuffer, fn: Callable[[np.ndarray], np.ndarray]) -> PixelBuffer:
    color, alpha = _split_alpha(buffer.data)
    out = fn(color)
    if out.ndim == 2:
        out = out[:, :, np.newaxis]
    if alpha is not None:
        out = np.concatenate([out, alpha], axis=2)
    return PixelBuffer(out, format=buffer.format, orientation=buffer.orientation)


def _map_color_pil(buffer: PixelBuffer, fn: Callable[[Image.Image], Image.Image]) -> PixelBuffer:
    def _apply(color: np.ndarray) -> np.ndarray:
        plane = color[:, :, 0] if color.shape[2] == 1 else color
        return np.asarray(fn(Image.fromarray(np.ascontiguousarray(plane))))

    return _map_color(buffer, _apply)


def channel_statistics(buffer: PixelBuffer) -> list[ChannelStats]:
    color, _ = _split_alpha(buffer.data)
    if color.size == 0:
        raise DecodeError("Image has no pixel data for channel statistics.")
    try:
        means, stdevs = cv2.meanStdDev(np.ascontiguousarray(color))
    except cv2.error as exc:
        raise DecodeError(f"Could not compute channel statistics: {exc}") from exc
    return [ChannelStats(mean=float(m), stdev=float(s)) for m, s in zip(means.ravel(), stdevs.ravel())]


def to_luma(buffer: PixelBuffer) -> np.ndarray:
    color, _ = _split_alpha(buffer.data)
    if color.shape[2] == 1:
        return color[:, :, 0]
    return cv2.cvtColor(np.ascontiguousarray(color), cv2.COLOR_RGB2GRAY)


def fit_size(width: int, height: int, max_width: int, max_height: int, enlarge: bool = False) -> tuple[int, int]:
    scale = min(max_width / width, max_height / height)
    if scale >= 1.0 and not enlarge:
        return width, height
    return max(1, round(width * scale)), max(1, round(height * scale))


def fit_inside(buffer: PixelBuffer, max_width: int, max_height: int, enlarge: bool = False) -> PixelBuffer:
    new_w, new_h = fit_size(buffer.width, buffer.height, max_width, max_height, enlarge=enlarge)
    if (new_w, new_h) == (buffer.width, buffer.height):
        return buffer
    interpolation = cv2.INTER_AREA if new_w < buffer.width else cv2.INTER_CUBIC
    with _guard("resize"):
        resized = cv2.resize(buffer.data, (new_w, new_h), interpolation=interpolation)
    return PixelBuffer(resized, format=buffer.format, orientation=buffer.orientation)


def resize_to_height(buffer: PixelBuffer, height: int) -> PixelBuffer:
    if height == buffer.height:
        return buffer
    width = max(1, round(buffer.width * height / buffer.height))
    with _guard("resize"):
        resized = cv2.resize(buffer.data, (width, height), interpolation=cv2.INTER_LANCZOS4)
    return PixelBuffer(resized, format=buffer.format, orientation=buffer.orientation)


def rotate(buffer: PixelBuffer, angle: int) -> PixelBuffer:
    if angle % 360 == 0:
        return buffer
    code = _ROTATE_CODES.get(angle % 360)
    if code is None:
        raise TransformError(f"Only quarter-turn rotations are supported, got {angle}.")
    with _guard("rotate"):
        rotated = cv2.rotate(buffer.data, code)
    # The pixels now carry the orientation, so the tag no longer applies.
    return PixelBuffer(rotated, format=buffer.format, orientation=None)


def modulate_brightness(buffer: PixelBuffer, factor: float) -> PixelBuffer:
    with _guard("brightness"):
        return _map_color_pil(buffer, lambda im: ImageEnhance.Brightness(im).enhance(factor))


def normalize_contrast(buffer: PixelBuffer, cutoff: float = 1.0) -> PixelBuffer:
    with _guard("contrast normalization"):
        return _map_color_pil(buffer, lambda im: ImageOps.autocontrast(im, cutoff=cutoff, preserve_tone=True))


def sharpen(buffer: PixelBuffer, sigma: float, flat: float, jagged: float) -> PixelBuffer:
    percent = round(100 * (flat + jagged))
    mask = ImageFilter.UnsharpMask(radius=sigma, percent=percent, threshold=_SHARPEN_THRESHOLD)
    with _guard("sharpen"):
        return _map_color_pil(buffer, lambda im: im.filter(mask))


def median_filter(buffer: PixelBuffer, size: int = 3) -> PixelBuffer:
    if size < 3 or size % 2 == 0:
        raise TransformError(f"Median window must be an odd size >= 3, got {size}.")
    with _guard("median filter"):
        return _map_color(buffer, lambda color: cv2.medianBlur(color, size))


def to_grayscale(buffer: PixelBuffer) -> PixelBuffer:
    with _guard("grayscale"):
        luma = to_luma(buffer)
    return PixelBuffer(luma, format=buffer.format, orientation=buffer.orientation)


def to_srgb(buffer: PixelBuffer) -> PixelBuffer:
    if buffer.channels >= 3:
        return buffer
    with _guard("sRGB conversion"):
        return _map_color(buffer, lambda color: cv2.cvtColor(color, cv2.COLOR_GRAY2RGB))


def drop_alpha(buffer: PixelBuffer) -> PixelBuffer:
    if not buffer.has_alpha:
        return buffer
    color, _ = _split_alpha(buffer.data)
    return PixelBuffer(color, format=buffer.format, orientation=buffer.orientation)


def to_bgr(buffer: PixelBuffer) -> np.ndarray:
    rgb = drop_alpha(to_srgb(buffer))
    return cv2.cvtColor(np.ascontiguousarray(rgb.data), cv2.COLOR_RGB2BGR)
