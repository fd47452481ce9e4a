"""In-process stand-ins for Blender used by the unit tests."""

from __future__ import annotations

import contextlib
import copy
import io
from pathlib import Path
import sys
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import cairo

RED = (1.0, 0.0, 0.0, 1.0)
GREEN = (0.0, 1.0, 0.0, 1.0)
BLUE = (0.0, 0.0, 1.0, 1.0)


def write_png(path: str, size: Tuple[int, int], color: Sequence[float]) -> None:
    """Write a solid-colour PNG."""
    surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, *size)
    ctx = cairo.Context(surface)
    ctx.set_source_rgba(*color)
    ctx.paint()
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    surface.write_to_png(path)


def read_pixel(path: str, x: int, y: int) -> Tuple[int, int, int, int]:
    """(r, g, b, a) of one pixel of a PNG, un-premultiplied for opaque pixels."""
    surface = cairo.ImageSurface.create_from_png(path)
    surface.flush()
    stride = surface.get_stride()
    data = bytes(surface.get_data())
    offset = y * stride + x * 4
    value = int.from_bytes(data[offset : offset + 4], sys.byteorder)
    alpha = (value >> 24) & 0xFF
    if surface.get_format() != cairo.FORMAT_ARGB32:
        alpha = 0xFF
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF, alpha


def make_camera(name: str, active: bool = False, interocular: float = 0.065) -> Dict[str, Any]:
    return {
        "name": name,
        "data_name": name,
        "type": "PERSP",
        "lens": 50.0,
        "lens_unit": "MILLIMETERS",
        "ortho_scale": 6.0,
        "sensor_width": 36.0,
        "sensor_height": 24.0,
        "sensor_fit": "AUTO",
        "clip_start": 0.1,
        "clip_end": 100.0,
        "shift_x": 0.0,
        "shift_y": 0.0,
        "location": [7.36, -6.93, 4.96],
        "rotation_deg": [63.6, 0.0, 46.7],
        "parent": None,
        "is_active": active,
        "interocular_distance": interocular,
        "convergence_distance": 1.95,
    }


def make_scene(
    name: str = "Scene",
    cameras: Sequence[str] = ("Camera",),
    active: Optional[str] = "Camera",
    frame_start: int = 1,
    frame_end: int = 3,
    frame_step: int = 1,
) -> Dict[str, Any]:
    return {
        "name": name,
        "frame_start": frame_start,
        "frame_end": frame_end,
        "frame_step": frame_step,
        "frame_current": frame_start,
        "fps": 24,
        "fps_base": 1.0,
        "engine": "BLENDER_EEVEE_NEXT",
        "resolution_x": 1920,
        "resolution_y": 1080,
        "resolution_percentage": 50,
        "pixel_aspect_x": 1.0,
        "pixel_aspect_y": 1.0,
        "output_path": "//render/",
        "file_format": "PNG",
        "film_transparent": False,
        "use_multiview": False,
        "camera": active,
        "world": "World",
        "view_layers": ["ViewLayer"],
        "object_counts": {"CAMERA": len(cameras), "LIGHT": 1, "MESH": 2},
        "cameras": [make_camera(cam, active=cam == active) for cam in cameras],
    }


def make_info(scenes: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    scenes = scenes if scenes is not None else [make_scene()]
    return {
        "blend_file": "/projects/shot.blend",
        "blender_version": "4.2.3 LTS",
        "file_version": [4, 2, 3],
        "scenes": scenes,
        "active_scene": scenes[0]["name"] if scenes else None,
    }


def eye_color(task: Dict[str, Any]) -> Sequence[float]:
    offset = task.get("eye_offset") or 0.0
    if offset < 0:
        return RED
    if offset > 0:
        return BLUE
    return GREEN


class FakeRunner:
    """Answers ``run_script`` calls the way the Blender-side scripts would."""

    def __init__(
        self,
        info: Optional[Dict[str, Any]] = None,
        dependencies: Optional[List[Dict[str, Any]]] = None,
        tile_size: Tuple[int, int] = (8, 6),
        color_for: Callable[[Dict[str, Any]], Sequence[float]] = eye_color,
    ) -> None:
        self.info = info if info is not None else make_info()
        self.dependencies = dependencies or []
        self.tile_size = tile_size
        self.color_for = color_for
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def run_script(
        self,
        script_name: str,
        blend_path: str,
        payload: Optional[Dict[str, Any]] = None,
        on_event: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> Any:
        payload = copy.deepcopy(payload or {})
        self.calls.append((script_name, blend_path, payload))
        if script_name == "scene_info":
            return copy.deepcopy(self.info)
        if script_name == "list_deps":
            return {"blend_file": blend_path, "dependencies": copy.deepcopy(self.dependencies)}
        if script_name == "render_frames":
            return self._render(payload, on_event)
        raise KeyError(script_name)

    def _render(self, payload: Dict[str, Any], on_event) -> Dict[str, Any]:
        tasks = payload.get("tasks") or []
        records = []
        for index, task in enumerate(tasks):
            write_png(task["filepath"], self.tile_size, self.color_for(task))
            record = {
                "index": index,
                "frame": task["frame"],
                "camera": task["camera"],
                "filepath": task["filepath"],
                "elapsed": 0.5,
            }
            records.append(record)
            if on_event is not None:
                on_event({"type": "rendered", "total": len(tasks), **record})
        return {"scene": payload.get("scene"), "rendered": records}


def run_main(main: Callable[..., int], argv: Sequence[str]) -> Tuple[int, str, str]:
    """Run a command ``main`` and return (exit status, stdout, stderr)."""
    out, err = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        code = main(list(argv))
    return code, out.getvalue(), err.getvalue()
