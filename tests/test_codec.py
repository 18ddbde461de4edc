from __future__ import annotations

import io
import sys
import unittest
from pathlib import Path

import numpy as np
from PIL import Image

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from smsocr import codec
from smsocr.errors import DecodeError, TransformError
from smsocr.models import BrightnessStatus, PixelBuffer
from smsocr.quality import QualityAnalyzer


def _png_bytes(arr: np.ndarray) -> bytes:
    out = io.BytesIO()
    Image.fromarray(arr).save(out, format="PNG")
    return out.getvalue()


class PixelBufferTests(unittest.TestCase):
    def test_buffer_copies_and_freezes_samples(self) -> None:
        src = np.zeros((4, 6, 3), dtype=np.uint8)
        buf = PixelBuffer(src, format="PNG")
        src[0, 0, 0] = 255

        self.assertEqual(buf.data[0, 0, 0], 0)
        self.assertFalse(buf.data.flags.writeable)
        with self.assertRaises(ValueError):
            buf.data[0, 0, 0] = 1

    def test_two_dimensional_input_becomes_single_channel(self) -> None:
        buf = PixelBuffer(np.zeros((5, 7), dtype=np.uint8))
        self.assertEqual((buf.width, buf.height, buf.channels), (7, 5, 1))
        self.assertFalse(buf.has_alpha)

    def test_rejects_unsupported_channel_count(self) -> None:
        with self.assertRaises(ValueError):
            PixelBuffer(np.zeros((5, 5, 5), dtype=np.uint8))


class DecodeTests(unittest.TestCase):
    def test_decode_png_with_alpha(self) -> None:
        arr = np.full((10, 20, 4), 200, dtype=np.uint8)
        buf = codec.decode(_png_bytes(arr))

        self.assertEqual(buf.format, "PNG")
        self.assertEqual((buf.width, buf.height, buf.channels), (20, 10, 4))
        self.assertTrue(buf.has_alpha)
        self.assertIsNone(buf.orientation)

    def test_decode_reports_but_does_not_apply_orientation(self) -> None:
        im = Image.new("RGB", (40, 20), (10, 20, 30))
        exif = im.getexif()
        exif[0x0112] = 6
        out = io.BytesIO()
        im.save(out, format="JPEG", exif=exif.tobytes())

        buf = codec.decode(out.getvalue())
        self.assertEqual(buf.orientation, 6)
        self.assertEqual((buf.width, buf.height), (40, 20))

    def test_decode_scales_sixteen_bit_gray(self) -> None:
        out = io.BytesIO()
        Image.fromarray(np.full((60, 60), 128 * 257, dtype=np.uint16)).save(out, format="PNG")
        buf = codec.decode(out.getvalue())

        self.assertEqual(buf.channels, 1)
        self.assertTrue(np.all(buf.data == 128))

        report = QualityAnalyzer().analyze(buf)
        self.assertEqual(report.brightness.status, BrightnessStatus.GOOD)

    def test_decode_scales_float_samples(self) -> None:
        out = io.BytesIO()
        Image.fromarray(np.full((20, 20), 0.5, dtype=np.float32)).save(out, format="TIFF")
        buf = codec.decode(out.getvalue())

        self.assertEqual(buf.channels, 1)
        self.assertTrue(np.all(buf.data == 128))

    def test_decode_rejects_garbage_and_empty_input(self) -> None:
        with self.assertRaises(DecodeError):
            codec.decode(b"definitely not an image")
        with self.assertRaises(DecodeError):
            codec.decode(b"")

    def test_encode_preserves_geometry(self) -> None:
        buf = PixelBuffer(np.random.default_rng(1).integers(0, 256, (12, 9, 3), dtype=np.uint8))
        back = codec.decode(codec.encode(buf))
        self.assertTrue(np.array_equal(back.data, buf.data))


class TransformTests(unittest.TestCase):
    def test_channel_statistics_ignore_alpha(self) -> None:
        arr = np.zeros((8, 8, 4), dtype=np.uint8)
        arr[:, :, :3] = 100
        stats = codec.channel_statistics(PixelBuffer(arr))

        self.assertEqual(len(stats), 3)
        for s in stats:
            self.assertAlmostEqual(s.mean, 100.0)
            self.assertAlmostEqual(s.stdev, 0.0)

    def test_rotate_quarter_turn_clockwise(self) -> None:
        arr = np.arange(6, dtype=np.uint8).reshape(2, 3)
        buf = PixelBuffer(arr, orientation=6)
        rotated = codec.rotate(buf, 90)

        self.assertEqual((rotated.width, rotated.height), (2, 3))
        self.assertEqual(rotated.data[0, 0, 0], arr[-1, 0])
        self.assertIsNone(rotated.orientation)

    def test_rotate_rejects_non_quarter_turns(self) -> None:
        buf = PixelBuffer(np.zeros((3, 3), dtype=np.uint8))
        with self.assertRaises(TransformError):
            codec.rotate(buf, 45)

    def test_median_filter_requires_odd_window(self) -> None:
        buf = PixelBuffer(np.zeros((5, 5), dtype=np.uint8))
        with self.assertRaises(TransformError):
            codec.median_filter(buf, 4)

    def test_fit_size_never_enlarges_unless_asked(self) -> None:
        self.assertEqual(codec.fit_size(100, 50, 500, 500), (100, 50))
        self.assertEqual(codec.fit_size(100, 50, 150, 150, enlarge=True), (150, 75))
        self.assertEqual(codec.fit_size(1000, 2000, 500, 500), (250, 500))

    def test_to_srgb_keeps_alpha_and_drop_alpha_removes_it(self) -> None:
        arr = np.zeros((4, 4, 2), dtype=np.uint8)
        arr[:, :, 0] = 50
        arr[:, :, 1] = 255
        rgb = codec.to_srgb(PixelBuffer(arr))
        self.assertEqual(rgb.channels, 4)
        self.assertEqual(codec.drop_alpha(rgb).channels, 3)


if __name__ == "__main__":
    unittest.main()
