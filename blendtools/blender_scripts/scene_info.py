"""
Report scene, camera and render metadata of the open .blend file.

Usage: blender -b scene.blend --python scene_info.py -- payload.json
"""

from __future__ import annotations

from collections import Counter
import math
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent))

from bridge import run  # noqa: E402

try:
    import bpy

    BLENDER_AVAILABLE = True
except ImportError:
    bpy = None
    BLENDER_AVAILABLE = False


def _round_all(values: Any, digits: int = 4) -> List[float]:
    return [round(float(v), digits) for v in values]


def describe_camera(obj: Any, scene: Any) -> Dict[str, Any]:
    """Describe a camera object and its camera data."""
    cam = obj.data
    stereo = getattr(cam, "stereo", None)
    return {
        "name": obj.name,
        "data_name": cam.name,
        "type": cam.type,
        "lens": round(cam.lens, 3),
        "lens_unit": cam.lens_unit,
        "ortho_scale": round(cam.ortho_scale, 4),
        "sensor_width": round(cam.sensor_width, 3),
        "sensor_height": round(cam.sensor_height, 3),
        "sensor_fit": cam.sensor_fit,
        "clip_start": round(cam.clip_start, 4),
        "clip_end": round(cam.clip_end, 4),
        "shift_x": round(cam.shift_x, 4),
        "shift_y": round(cam.shift_y, 4),
        "location": _round_all(obj.location),
        "rotation_deg": [round(math.degrees(v), 3) for v in obj.rotation_euler],
        "parent": obj.parent.name if obj.parent else None,
        "is_active": scene.camera is not None and scene.camera.name == obj.name,
        "interocular_distance": (
            round(stereo.interocular_distance, 4) if stereo is not None else None
        ),
        "convergence_distance": (
            round(stereo.convergence_distance, 4) if stereo is not None else None
        ),
    }


def describe_scene(scene: Any) -> Dict[str, Any]:
    """Describe frame range, render settings and cameras of a scene."""
    render = scene.render
    objects = list(scene.objects)
    cameras = [obj for obj in objects if obj.type == "CAMERA"]
    return {
        "name": scene.name,
        "frame_start": scene.frame_start,
        "frame_end": scene.frame_end,
        "frame_step": scene.frame_step,
        "frame_current": scene.frame_current,
        "fps": render.fps,
        "fps_base": round(render.fps_base, 6),
        "engine": render.engine,
        "resolution_x": render.resolution_x,
        "resolution_y": render.resolution_y,
        "resolution_percentage": render.resolution_percentage,
        "pixel_aspect_x": round(render.pixel_aspect_x, 4),
        "pixel_aspect_y": round(render.pixel_aspect_y, 4),
        "output_path": render.filepath,
        "file_format": render.image_settings.file_format,
        "film_transparent": bool(render.film_transparent),
        "use_multiview": bool(render.use_multiview),
        "camera": scene.camera.name if scene.camera else None,
        "world": scene.world.name if scene.world else None,
        "view_layers": [vl.name for vl in scene.view_layers],
        "object_counts": dict(sorted(Counter(obj.type for obj in objects).items())),
        "cameras": [describe_camera(obj, scene) for obj in cameras],
    }


def collect_info(
    data: Any, scene_name: Optional[str] = None, version: str = ""
) -> Dict[str, Any]:
    """Collect info for every scene, or just ``scene_name``."""
    scenes = list(data.scenes)
    if scene_name is not None:
        scenes = [scene for scene in scenes if scene.name == scene_name]
        if not scenes:
            raise KeyError(f"Scene not found: {scene_name}")
    return {
        "blend_file": data.filepath,
        "blender_version": version,
        "file_version": list(getattr(data, "version", ()) or ()),
        "scenes": [describe_scene(scene) for scene in scenes],
    }


def main(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not BLENDER_AVAILABLE:
        raise RuntimeError("Must run inside Blender")
    info = collect_info(bpy.data, payload.get("scene"), bpy.app.version_string)
    info["active_scene"] = bpy.context.scene.name if bpy.context.scene else None
    return info


if __name__ == "__main__":
    run(main)
