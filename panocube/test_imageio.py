import base64
import os
import tempfile
import threading
import time
import unittest
from io import BytesIO
from pathlib import Path
from unittest import mock

import numpy as np
import requests
from PIL import Image

from panocube import config
from panocube.errors import DecodeError, DegenerateInputError
from panocube.imageio import Raster, encode_raster, load_raster, parse_data_uri, save_raster, to_data_uri


def png_bytes(pixels):
    buf = BytesIO()
    Image.fromarray(pixels).save(buf, format="PNG")
    return buf.getvalue()


def gradient(width=12, height=6):
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = np.arange(width, dtype=np.uint8)[None, :] * 20
    pixels[..., 1] = np.arange(height, dtype=np.uint8)[:, None] * 40
    pixels[..., 2] = 90
    pixels[..., 3] = 255
    return pixels


class RasterTests(unittest.TestCase):
    def test_read_only(self):
        raster = Raster(gradient())
        self.assertEqual(raster.size, (12, 6))
        self.assertFalse(raster.pixels.flags.writeable)
        with self.assertRaises(ValueError):
            raster.pixels[0, 0, 0] = 1

    def test_copy_isolated_from_input(self):
        src = gradient()
        raster = Raster(src)
        src[0, 0] = 0
        self.assertEqual(raster.pixel(0, 0), (0, 0, 90, 255))
        self.assertEqual(raster.pixel(0, 1), (0, 40, 90, 255))
        self.assertEqual(raster.pixel(1, 0), (20, 0, 90, 255))

    def test_rgb_and_grey_gain_alpha(self):
        rgb = np.full((2, 3, 3), 7, dtype=np.uint8)
        self.assertEqual(Raster(rgb).pixel(2, 1), (7, 7, 7, 255))
        grey = np.full((2, 3), 9, dtype=np.uint8)
        self.assertEqual(Raster(grey).pixel(0, 0), (9, 9, 9, 255))

    def test_empty_rejected(self):
        with self.assertRaises(DecodeError):
            Raster(np.zeros((0, 4, 4), dtype=np.uint8))
        with self.assertRaises(DecodeError):
            Raster(np.zeros((4, 4, 2), dtype=np.uint8))


class LoaderTests(unittest.TestCase):
    def setUp(self):
        self.pixels = gradient()
        self.png = png_bytes(self.pixels)

    def test_bytes(self):
        raster = load_raster(self.png)
        np.testing.assert_array_equal(raster.pixels, self.pixels)

    def test_data_uri(self):
        uri = "data:image/png;base64," + base64.b64encode(self.png).decode("ascii")
        np.testing.assert_array_equal(load_raster(uri).pixels, self.pixels)

    def test_path_and_str_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "pano.png")
            with open(path, "wb") as f:
                f.write(self.png)
            np.testing.assert_array_equal(load_raster(path).pixels, self.pixels)
            np.testing.assert_array_equal(load_raster(Path(path)).pixels, self.pixels)

    def test_pil_image_rgb_converted(self):
        im = Image.new("RGB", (5, 3), (10, 20, 30))
        raster = load_raster(im)
        self.assertEqual(raster.size, (5, 3))
        self.assertEqual(raster.pixel(4, 2), (10, 20, 30, 255))

    def test_url(self):
        resp = mock.Mock(content=self.png)
        resp.raise_for_status.return_value = None
        with mock.patch("panocube.imageio.requests.get", return_value=resp) as get:
            raster = load_raster("https://example.com/pano.png", timeout=5)
        get.assert_called_once_with("https://example.com/pano.png", timeout=5)
        np.testing.assert_array_equal(raster.pixels, self.pixels)

    def test_url_failure(self):
        with mock.patch("panocube.imageio.requests.get", side_effect=requests.ConnectionError("refused")):
            with self.assertRaises(DecodeError):
                load_raster("http://example.com/pano.jpg")

    def test_http_error_status(self):
        resp = mock.Mock(content=b"")
        resp.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
        with mock.patch("panocube.imageio.requests.get", return_value=resp):
            with self.assertRaises(DecodeError):
                load_raster("http://example.com/missing.jpg")

    def test_corrupt_sources(self):
        bad = [
            b"not an image at all",
            b"",
            "",
            "data:image/png;base64,bm90IGFuIGltYWdl",
            "data:image/png;base64",
            "/definitely/not/here.png",
            12345,
            self.png[:40],
        ]
        for source in bad:
            with self.assertRaises(DecodeError, msg=repr(source)[:40]):
                load_raster(source)

    def test_percent_encoded_data_uri(self):
        self.assertEqual(parse_data_uri("data:text/plain,a%20b"), b"a b")

    def test_concurrent_decodes_share_pixel_limit(self):
        real_open = Image.open
        seen = []

        def slow_open(*args, **kwargs):
            seen.append(Image.MAX_IMAGE_PIXELS)
            time.sleep(0.01)
            return real_open(*args, **kwargs)

        data = png_bytes(gradient())
        results = []
        with mock.patch("panocube.imageio.Image.open", side_effect=slow_open):
            threads = [threading.Thread(target=lambda: results.append(load_raster(data))) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()
        self.assertEqual(len(results), 8)
        self.assertEqual(set(seen), {config.MAX_IMAGE_PIXELS})
        self.assertEqual(Image.MAX_IMAGE_PIXELS, config.MAX_IMAGE_PIXELS)
        for raster in results:
            np.testing.assert_array_equal(raster.pixels, gradient())


class EncoderTests(unittest.TestCase):
    def setUp(self):
        pixels = gradient()
        pixels[0, 0, 3] = 100
        self.raster = Raster(pixels)

    def test_png_is_lossless_with_alpha(self):
        data = encode_raster(self.raster, "png")
        with Image.open(BytesIO(data)) as im:
            self.assertEqual(im.format, "PNG")
            np.testing.assert_array_equal(np.asarray(im.convert("RGBA")), self.raster.pixels)

    def test_jpeg_and_webp(self):
        for fmt, pil_name in (("jpeg", "JPEG"), ("jpg", "JPEG"), ("webp", "WEBP")):
            data = encode_raster(self.raster, fmt, quality=80)
            with Image.open(BytesIO(data)) as im:
                self.assertEqual(im.format, pil_name)
                self.assertEqual(im.size, (12, 6))

    def test_unknown_format(self):
        with self.assertRaises(DegenerateInputError):
            encode_raster(self.raster, "tiff")

    def test_data_uri(self):
        uri = to_data_uri(encode_raster(self.raster, "png"), "png")
        self.assertTrue(uri.startswith("data:image/png;base64,"))
        np.testing.assert_array_equal(load_raster(uri).pixels, self.raster.pixels)

    def test_save_raster_uses_extension(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "face.png")
            save_raster(self.raster, path)
            with Image.open(path) as im:
                self.assertEqual(im.format, "PNG")


if __name__ == "__main__":
    unittest.main()
