"""Tests for Cairo image composition."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

import cairo
from PIL import Image

from blendtools.compose import (
    compose_stereo_pair,
    compose_tiles,
    image_to_surface,
    load_surface,
    save_surface,
    surface_to_image,
)
from blendtools.config import StereoConfig, TileConfig
from blendtools.testing_fakes import BLUE, GREEN, RED, read_pixel, write_png


class ComposeTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def png(self, name: str, size, color) -> str:
        path = str(self.root / name)
        write_png(path, size, color)
        return path


class TestStereoComposition(ComposeTestCase):
    def test_cross_layout(self) -> None:
        left = self.png("L.png", (10, 6), RED)
        right = self.png("R.png", (10, 6), BLUE)
        out = str(self.root / "pair.png")
        size = compose_stereo_pair(
            left, right, out, StereoConfig(gap=4, background=(0.0, 1.0, 0.0, 1.0))
        )
        self.assertEqual(size, (24, 6))
        self.assertEqual(read_pixel(out, 0, 0), (0, 0, 255, 255))
        self.assertEqual(read_pixel(out, 11, 3), (0, 255, 0, 255))
        self.assertEqual(read_pixel(out, 23, 5), (255, 0, 0, 255))

    def test_parallel_layout(self) -> None:
        left = self.png("L.png", (10, 6), RED)
        right = self.png("R.png", (10, 6), BLUE)
        out = str(self.root / "pair.png")
        compose_stereo_pair(left, right, out, StereoConfig(layout="parallel"))
        self.assertEqual(read_pixel(out, 0, 0), (255, 0, 0, 255))
        self.assertEqual(read_pixel(out, 19, 0), (0, 0, 255, 255))

    def test_size_mismatch(self) -> None:
        left = self.png("L.png", (10, 6), RED)
        right = self.png("R.png", (12, 6), BLUE)
        with self.assertRaises(ValueError):
            compose_stereo_pair(left, right, str(self.root / "pair.png"))

    def test_missing_eye(self) -> None:
        left = self.png("L.png", (10, 6), RED)
        with self.assertRaises(FileNotFoundError):
            compose_stereo_pair(left, str(self.root / "nope.png"), str(self.root / "p.png"))


class TestTileComposition(ComposeTestCase):
    def test_grid_without_labels(self) -> None:
        paths = [
            self.png("a.png", (8, 6), RED),
            self.png("b.png", (8, 6), GREEN),
            self.png("c.png", (8, 6), BLUE),
        ]
        out = str(self.root / "sheet.png")
        size, columns = compose_tiles(
            paths, out, config=TileConfig(gap=2, labels=False, background=(0.0, 0.0, 0.0, 1.0))
        )
        self.assertEqual(columns, 2)
        self.assertEqual(size, (18, 14))
        self.assertEqual(read_pixel(out, 0, 0), (255, 0, 0, 255))
        self.assertEqual(read_pixel(out, 10, 0), (0, 255, 0, 255))
        self.assertEqual(read_pixel(out, 0, 8), (0, 0, 255, 255))
        self.assertEqual(read_pixel(out, 10, 8), (0, 0, 0, 255))

    def test_labels_are_drawn(self) -> None:
        paths = [self.png("a.png", (64, 48), GREEN), self.png("b.png", (64, 48), GREEN)]
        plain = str(self.root / "plain.png")
        labelled = str(self.root / "labelled.png")
        compose_tiles(paths, plain, labels=["Front", "Side"], config=TileConfig(labels=False))
        compose_tiles(paths, labelled, labels=["Front", "Side"], config=TileConfig())
        self.assertEqual(read_pixel(plain, 1, 46), (0, 255, 0, 255))
        self.assertNotEqual(read_pixel(labelled, 1, 46), (0, 255, 0, 255))

    def test_label_count_mismatch(self) -> None:
        paths = [self.png("a.png", (8, 6), RED)]
        with self.assertRaises(ValueError):
            compose_tiles(paths, str(self.root / "s.png"), labels=["a", "b"])

    def test_no_tiles(self) -> None:
        with self.assertRaises(ValueError):
            compose_tiles([], str(self.root / "s.png"))


class TestFormats(ComposeTestCase):
    def test_bmp_input_through_pillow(self) -> None:
        path = self.root / "in.bmp"
        Image.new("RGB", (5, 4), (255, 0, 0)).save(path)
        surface = load_surface(str(path))
        self.assertEqual((surface.get_width(), surface.get_height()), (5, 4))
        self.assertEqual(surface_to_image(surface).getpixel((2, 2)), (255, 0, 0, 255))

    def test_jpeg_output_is_rgb(self) -> None:
        surface = load_surface(self.png("a.png", (8, 6), RED))
        out = self.root / "nested" / "out.jpg"
        save_surface(surface, str(out))
        with Image.open(out) as image:
            self.assertEqual(image.mode, "RGB")
            self.assertEqual(image.size, (8, 6))

    def test_unknown_extension(self) -> None:
        surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, 2, 2)
        with self.assertRaises(ValueError):
            save_surface(surface, str(self.root / "out.notanimage"))

    def test_premultiplied_alpha_survives_conversion(self) -> None:
        image = Image.new("RGBA", (2, 2), (255, 0, 0, 128))
        back = surface_to_image(image_to_surface(image))
        r, g, b, a = back.getpixel((0, 0))
        self.assertEqual(a, 128)
        self.assertEqual((g, b), (0, 0))
        self.assertGreaterEqual(r, 254)


if __name__ == "__main__":
    unittest.main()
