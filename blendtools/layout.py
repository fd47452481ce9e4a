"""Rectangle arithmetic for stereo pairs and multi-camera tile grids."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import List, Optional, Sequence, Tuple

Size = Tuple[int, int]


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def centered(self, size: Size) -> "Rect":
        """A ``size`` rect centred inside this one (rounded down)."""
        width, height = size
        return Rect(
            self.x + (self.width - width) // 2,
            self.y + (self.height - height) // 2,
            width,
            height,
        )


def stereo_pair_layout(eye_size: Size, gap: int = 0, layout: str = "cross") -> Tuple[Size, Rect, Rect]:
    """
    Place two equally sized eye views side by side.

    Args:
        eye_size: (width, height) of each eye render
        gap: Pixels between the two views
        layout: ``cross`` puts the right-eye view on the left for cross-eyed
            viewing, ``parallel`` keeps left on the left

    Returns:
        (canvas size, left-eye rect, right-eye rect)
    """
    width, height = eye_size
    if width < 1 or height < 1:
        raise ValueError("eye size must be positive")
    if gap < 0:
        raise ValueError("gap must be >= 0")

    first = Rect(0, 0, width, height)
    second = Rect(width + gap, 0, width, height)
    canvas = (2 * width + gap, height)
    if layout == "cross":
        return canvas, second, first
    if layout == "parallel":
        return canvas, first, second
    raise ValueError(f"unknown stereo layout: {layout}")


def tile_grid(count: int, columns: Optional[int] = None) -> Tuple[int, int]:
    """(columns, rows) for ``count`` tiles; near-square by default."""
    if count < 1:
        raise ValueError("count must be >= 1")
    if columns is None:
        columns = math.ceil(math.sqrt(count))
    if columns < 1:
        raise ValueError("columns must be >= 1")
    columns = min(columns, count)
    rows = math.ceil(count / columns)
    return columns, rows


def tile_layout(
    sizes: Sequence[Size],
    columns: Optional[int] = None,
    gap: int = 0,
    margin: int = 0,
) -> Tuple[Size, List[Rect]]:
    """
    Lay tiles out row-major in a grid of equal cells.

    Args:
        sizes: (width, height) of each tile
        columns: Grid columns (default: ``ceil(sqrt(len(sizes)))``)
        gap: Pixels between cells
        margin: Pixels around the grid

    Returns:
        (canvas size, one rect per tile, centred in its cell)
    """
    if gap < 0 or margin < 0:
        raise ValueError("gap and margin must be >= 0")
    cols, rows = tile_grid(len(sizes), columns)
    cell_w = max(w for w, _ in sizes)
    cell_h = max(h for _, h in sizes)

    rects = []
    for index, size in enumerate(sizes):
        row, col = divmod(index, cols)
        cell = Rect(
            margin + col * (cell_w + gap),
            margin + row * (cell_h + gap),
            cell_w,
            cell_h,
        )
        rects.append(cell.centered(size))

    canvas = (
        2 * margin + cols * cell_w + (cols - 1) * gap,
        2 * margin + rows * cell_h + (rows - 1) * gap,
    )
    return canvas, rects
