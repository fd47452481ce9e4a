"""Image composition with Cairo; Pillow handles formats Cairo cannot read or write."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Optional, Sequence, Tuple

import cairo
import numpy as np
from PIL import Image

from blendtools.config import Color, StereoConfig, TileConfig
from blendtools.layout import Rect, Size, stereo_pair_layout, tile_grid, tile_layout

# Byte order of a native-endian ARGB32 pixel in memory
_LITTLE_ENDIAN = sys.byteorder == "little"


def _pixel_view(surface: cairo.ImageSurface) -> np.ndarray:
    """(height, width, 4) uint8 view of an image surface's pixel buffer."""
    surface.flush()
    width, height, stride = surface.get_width(), surface.get_height(), surface.get_stride()
    buf = np.ndarray(shape=(height, stride), dtype=np.uint8, buffer=surface.get_data())
    return buf[:, : width * 4].reshape(height, width, 4)


def image_to_surface(image: Image.Image) -> cairo.ImageSurface:
    """Convert a Pillow image to a premultiplied ARGB32 surface."""
    rgba = np.asarray(image.convert("RGBA"), dtype=np.uint16)
    alpha = rgba[..., 3:4]
    rgb = (rgba[..., :3] * alpha + 127) // 255
    if _LITTLE_ENDIAN:
        pixels = np.concatenate([rgb[..., ::-1], alpha], axis=2)
    else:
        pixels = np.concatenate([alpha, rgb], axis=2)

    height, width = rgba.shape[:2]
    surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
    _pixel_view(surface)[...] = pixels.astype(np.uint8)
    surface.mark_dirty()
    return surface


def surface_to_image(surface: cairo.ImageSurface) -> Image.Image:
    """Convert an ARGB32/RGB24 surface to an un-premultiplied RGBA Pillow image."""
    pixels = _pixel_view(surface).astype(np.uint16)
    if _LITTLE_ENDIAN:
        rgb, alpha = pixels[..., 2::-1], pixels[..., 3:4]
    else:
        rgb, alpha = pixels[..., 1:4], pixels[..., 0:1]
    if surface.get_format() != cairo.FORMAT_ARGB32:
        alpha = np.full_like(alpha, 255)
        straight = rgb
    else:
        safe = np.maximum(alpha, 1)
        straight = np.where(alpha > 0, (rgb * 255 + safe // 2) // safe, 0)
    rgba = np.concatenate([np.minimum(straight, 255), alpha], axis=2).astype(np.uint8)
    return Image.fromarray(rgba, "RGBA")


def load_surface(path: str) -> cairo.ImageSurface:
    """Load an image file; PNG through Cairo, everything else through Pillow."""
    source = Path(path)
    if not source.is_file():
        raise FileNotFoundError(f"Image not found: {path}")
    if source.suffix.lower() == ".png":
        return cairo.ImageSurface.create_from_png(str(source))
    with Image.open(source) as image:
        return image_to_surface(image)


def save_surface(surface: cairo.ImageSurface, path: str) -> None:
    """Write a surface; PNG through Cairo, other extensions through Pillow."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    suffix = target.suffix.lower()
    if suffix == ".png":
        surface.write_to_png(str(target))
        return
    if suffix not in Image.registered_extensions():
        raise ValueError(f"Unsupported output image format: {suffix or path}")
    image = surface_to_image(surface)
    if suffix in (".jpg", ".jpeg", ".bmp"):
        image = image.convert("RGB")
    image.save(target)


def new_canvas(width: int, height: int, background: Color) -> cairo.ImageSurface:
    surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
    ctx = cairo.Context(surface)
    ctx.set_source_rgba(*background)
    ctx.set_operator(cairo.OPERATOR_SOURCE)
    ctx.paint()
    return surface


def blit(canvas: cairo.ImageSurface, surface: cairo.ImageSurface, rect: Rect) -> None:
    """Paint ``surface`` into ``rect`` of ``canvas``, scaling when sizes differ."""
    ctx = cairo.Context(canvas)
    ctx.translate(rect.x, rect.y)
    src_w, src_h = surface.get_width(), surface.get_height()
    if (src_w, src_h) != (rect.width, rect.height):
        ctx.scale(rect.width / src_w, rect.height / src_h)
    ctx.set_source_surface(surface, 0, 0)
    ctx.rectangle(0, 0, src_w, src_h)
    ctx.fill()


def draw_label(canvas: cairo.ImageSurface, text: str, rect: Rect, size: float = 14.0) -> None:
    """Draw ``text`` white-on-dark in the bottom-left corner of ``rect``."""
    ctx = cairo.Context(canvas)
    ctx.select_font_face("sans-serif", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_BOLD)
    ctx.set_font_size(size)
    extents = ctx.text_extents(text)
    pad = max(2.0, size * 0.3)

    box_h = extents.height + 2 * pad
    box_w = min(extents.x_advance + 2 * pad, rect.width)
    ctx.rectangle(rect.x, rect.bottom - box_h, box_w, box_h)
    ctx.set_source_rgba(0.0, 0.0, 0.0, 0.6)
    ctx.fill()

    ctx.rectangle(rect.x, rect.bottom - box_h, box_w, box_h)
    ctx.clip()
    ctx.move_to(rect.x + pad - extents.x_bearing, rect.bottom - pad - (extents.height + extents.y_bearing))
    ctx.set_source_rgba(1.0, 1.0, 1.0, 1.0)
    ctx.show_text(text)


def surface_size(surface: cairo.ImageSurface) -> Size:
    return surface.get_width(), surface.get_height()


def compose_stereo_pair(
    left_path: str,
    right_path: str,
    output_path: str,
    config: Optional[StereoConfig] = None,
) -> Size:
    """
    Compose left/right eye renders into one side-by-side image.

    Args:
        left_path: Left-eye render
        right_path: Right-eye render
        output_path: Composite image path
        config: Layout, gap and background

    Returns:
        Size of the written image
    """
    config = config or StereoConfig()
    left = load_surface(left_path)
    right = load_surface(right_path)
    if surface_size(left) != surface_size(right):
        raise ValueError(
            f"eye renders differ in size: {surface_size(left)} vs {surface_size(right)}"
        )

    canvas_size, left_rect, right_rect = stereo_pair_layout(
        surface_size(left), config.gap, config.layout
    )
    canvas = new_canvas(*canvas_size, config.background)
    blit(canvas, left, left_rect)
    blit(canvas, right, right_rect)
    save_surface(canvas, output_path)
    return canvas_size


def compose_tiles(
    paths: Sequence[str],
    output_path: str,
    labels: Optional[Sequence[str]] = None,
    config: Optional[TileConfig] = None,
) -> Tuple[Size, int]:
    """
    Tile several renders into one grid image.

    Args:
        paths: Tile images, row-major
        output_path: Composite image path
        labels: Caption per tile (drawn when ``config.labels`` is set)
        config: Columns, spacing, background and labelling

    Returns:
        (size of the written image, number of columns)
    """
    config = config or TileConfig()
    if not paths:
        raise ValueError("no tiles to compose")
    if labels is not None and len(labels) != len(paths):
        raise ValueError("labels must match tiles one to one")

    surfaces = [load_surface(path) for path in paths]
    canvas_size, rects = tile_layout(
        [surface_size(s) for s in surfaces], config.columns, config.gap, config.margin
    )
    canvas = new_canvas(*canvas_size, config.background)
    for index, (surface, rect) in enumerate(zip(surfaces, rects)):
        blit(canvas, surface, rect)
        if config.labels and labels is not None:
            draw_label(canvas, labels[index], rect, config.label_size)
    save_surface(canvas, output_path)

    columns, _ = tile_grid(len(surfaces), config.columns)
    return canvas_size, columns
