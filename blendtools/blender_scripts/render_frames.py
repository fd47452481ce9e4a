"""
Render a list of (camera, frame) stills from the open .blend file.

Usage: blender -b scene.blend --python render_frames.py -- payload.json

Payload keys:
    scene: Scene name (default: active scene)
    settings: Render overrides (resolution, percentage, engine, samples,
        file_format, film_transparent)
    tasks: [{frame, camera, filepath, eye_offset}], eye_offset shifts the
        camera along its local X axis for stereo renders
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent))

from bridge import emit_event, run  # noqa: E402

try:
    import bpy
    from mathutils import Matrix, Vector

    BLENDER_AVAILABLE = True
except ImportError:
    bpy = None
    Matrix = None
    Vector = None
    BLENDER_AVAILABLE = False


def apply_settings(scene: Any, settings: Dict[str, Any]) -> None:
    """Apply render overrides to ``scene`` in place."""
    render = scene.render
    resolution = settings.get("resolution")
    if resolution:
        render.resolution_x, render.resolution_y = int(resolution[0]), int(resolution[1])
    if settings.get("percentage"):
        render.resolution_percentage = int(settings["percentage"])
    if settings.get("engine"):
        render.engine = settings["engine"]
    if settings.get("samples"):
        samples = int(settings["samples"])
        if render.engine == "CYCLES":
            scene.cycles.samples = samples
        elif hasattr(scene, "eevee"):
            scene.eevee.taa_render_samples = samples
    if settings.get("file_format"):
        render.image_settings.file_format = settings["file_format"]
    if settings.get("film_transparent") is not None:
        render.film_transparent = bool(settings["film_transparent"])


def offset_camera_matrix(matrix_world: Any, offset: float) -> Any:
    """Return ``matrix_world`` translated along its own local X axis."""
    axis = matrix_world.to_3x3().normalized() @ Vector((1.0, 0.0, 0.0))
    return Matrix.Translation(axis * offset) @ matrix_world


def run_tasks(
    scene: Any,
    tasks: List[Dict[str, Any]],
    cameras: Dict[str, Any],
    render_still: Callable[[Any, str], None],
    on_done: Optional[Callable[..., None]] = None,
) -> List[Dict[str, Any]]:
    """
    Render each task in order.

    Args:
        scene: Scene to render
        tasks: Task dicts with frame, camera, filepath and optional eye_offset
        cameras: Camera objects by name
        render_still: Callable writing the current scene state to a path
        on_done: Called with per-task details after each still

    Returns:
        One record per rendered task
    """
    missing = sorted({t["camera"] for t in tasks if t["camera"] not in cameras})
    if missing:
        raise KeyError(f"Camera(s) not found in scene {scene.name}: {', '.join(missing)}")

    original_camera = scene.camera
    original_frame = scene.frame_current
    records = []
    try:
        for index, task in enumerate(tasks):
            start = time.perf_counter()
            camera = cameras[task["camera"]]
            scene.camera = camera
            scene.frame_set(int(task["frame"]))

            offset = float(task.get("eye_offset") or 0.0)
            original_matrix = None
            if offset:
                original_matrix = camera.matrix_world.copy()
                camera.matrix_world = offset_camera_matrix(original_matrix, offset)
            try:
                render_still(scene, task["filepath"])
            finally:
                if original_matrix is not None:
                    camera.matrix_world = original_matrix

            record = {
                "index": index,
                "frame": int(task["frame"]),
                "camera": task["camera"],
                "filepath": task["filepath"],
                "elapsed": time.perf_counter() - start,
            }
            records.append(record)
            if on_done is not None:
                on_done(**record)
    finally:
        scene.camera = original_camera
        scene.frame_set(original_frame)
    return records


def _render_still(scene: Any, filepath: str) -> None:
    scene.render.filepath = filepath
    bpy.ops.render.render(write_still=True, scene=scene.name)


def main(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not BLENDER_AVAILABLE:
        raise RuntimeError("Must run inside Blender")

    scene_name = payload.get("scene")
    if scene_name:
        scene = bpy.data.scenes.get(scene_name)
        if scene is None:
            raise KeyError(f"Scene not found: {scene_name}")
    else:
        scene = bpy.context.scene

    apply_settings(scene, payload.get("settings") or {})
    cameras = {obj.name: obj for obj in scene.objects if obj.type == "CAMERA"}
    tasks = payload.get("tasks") or []
    records = run_tasks(
        scene,
        tasks,
        cameras,
        _render_still,
        on_done=lambda **record: emit_event(type="rendered", total=len(tasks), **record),
    )
    return {"scene": scene.name, "rendered": records}


if __name__ == "__main__":
    run(main)
