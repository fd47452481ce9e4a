"""
Render stereo pairs and compose them side by side.

Each frame is rendered twice, with the camera shifted by half the eye
separation to the left and right along its local X axis. The two views are
then placed side by side: cross-eyed layout (default) puts the right-eye view
on the left.

Usage:
    blend-stereo scene.blend -o stereo/ --frames 1-24
    blend-stereo scene.blend --separation 0.1 --layout parallel --gap 16
"""

from __future__ import annotations

import argparse
import dataclasses
from dataclasses import dataclass
from pathlib import Path
import tempfile
from typing import Any, Dict, List, Optional, Sequence

from blendtools.cli_common import (
    add_blender_arguments,
    add_render_arguments,
    build_config,
    parse_color,
    report_errors,
)
from blendtools.compose import compose_stereo_pair
from blendtools.config import DEFAULT_STEREO_TEMPLATE, StereoConfig, ToolConfig
from blendtools.frames import (
    OutputPlanner,
    RenderTask,
    apply_overwrite_policy,
    ensure_unique_paths,
)
from blendtools.info import scene_info
from blendtools.render import (
    RenderSummary,
    execute_tasks,
    select_cameras,
    select_frames,
    select_scene,
)
from blendtools.runner import BlenderRunner
from blendtools.utils.progress import iter_progress, progress_print
from blendtools.utils.timing import Stopwatch

# Human interocular distance in metres, used when a camera reports none
DEFAULT_SEPARATION = 0.065


@dataclass
class StereoPair:
    frame: int
    camera: str
    output: str
    left: str
    right: str
    separation: float

    def eye_tasks(self) -> List[RenderTask]:
        half = self.separation / 2.0
        return [
            RenderTask(self.frame, self.camera, self.left, eye_offset=-half),
            RenderTask(self.frame, self.camera, self.right, eye_offset=half),
        ]


def camera_separation(
    scene: Dict[str, Any], camera: str, config: StereoConfig
) -> float:
    """Explicit separation, else the camera's interocular distance."""
    if config.separation is not None:
        return config.separation
    for cam in scene["cameras"]:
        if cam["name"] == camera and cam.get("interocular_distance"):
            return float(cam["interocular_distance"])
    return DEFAULT_SEPARATION


def plan_pairs(
    blend_path: str,
    scene: Dict[str, Any],
    cfg: ToolConfig,
    frames: Sequence[int],
    cameras: Sequence[str],
    eye_dir: Optional[str] = None,
) -> List[StereoPair]:
    """
    Plan one composed pair per (camera, frame).

    Args:
        blend_path: Source .blend
        scene: Scene info dict
        cfg: Tool configuration
        frames: Frames to render
        cameras: Camera names
        eye_dir: Directory for eye renders (default: beside the pair)

    Returns:
        Planned pairs, cameras outermost
    """
    planner = OutputPlanner(
        cfg.output.output_dir,
        cfg.output.name_template,
        cfg.render.extension,
        blend=Path(blend_path).stem,
        scene=scene["name"],
    )
    pairs = []
    for camera in cameras:
        separation = camera_separation(scene, camera, cfg.stereo)
        for frame in frames:
            output = planner.path_for(frame, camera)
            base = Path(eye_dir) if eye_dir else output.parent
            pairs.append(
                StereoPair(
                    frame=frame,
                    camera=camera,
                    output=str(output),
                    left=str(base / f"{output.stem}_L.png"),
                    right=str(base / f"{output.stem}_R.png"),
                    separation=separation,
                )
            )
    ensure_unique_paths(pair.output for pair in pairs)
    return pairs


def render_pairs(
    runner: BlenderRunner,
    blend_path: str,
    scene: str,
    pairs: Sequence[StereoPair],
    cfg: ToolConfig,
    progress: bool = True,
) -> RenderSummary:
    """Render both eyes of every pair in one Blender session, then compose."""
    summary = RenderSummary()
    tasks = [task for pair in pairs for task in pair.eye_tasks()]
    eye_settings = dataclasses.replace(cfg.render, file_format="PNG")

    with Stopwatch() as watch:
        summary.rendered = execute_tasks(
            runner, blend_path, scene, tasks, eye_settings, progress, desc="eyes"
        )
        for pair in iter_progress(pairs, desc="compose", total=len(pairs), enabled=progress):
            compose_stereo_pair(pair.left, pair.right, pair.output, cfg.stereo)
    summary.elapsed = watch.elapsed
    return summary


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blend-stereo",
        description="Render stereo pairs from a .blend file and compose them side by side.",
    )
    add_blender_arguments(parser)
    add_render_arguments(parser, DEFAULT_STEREO_TEMPLATE)
    group = parser.add_argument_group("stereo")
    group.add_argument(
        "--separation",
        type=float,
        default=None,
        help="Eye separation in scene units (default: camera interocular distance)",
    )
    group.add_argument(
        "--layout",
        choices=("cross", "parallel"),
        default=None,
        help="cross: right eye on the left (default); parallel: left eye on the left",
    )
    group.add_argument("--gap", type=int, default=None, help="Pixels between the two views")
    group.add_argument(
        "--background", type=parse_color, default=None, help="Gap colour, e.g. #000000"
    )
    group.add_argument(
        "--keep-eyes", action="store_true", default=None, help="Keep the single-eye renders"
    )
    return parser.parse_args(argv)


def _stereo_config(args: argparse.Namespace) -> ToolConfig:
    cfg = build_config(args, DEFAULT_STEREO_TEMPLATE)
    for name in ("separation", "layout", "gap", "background", "keep_eyes"):
        value = getattr(args, name)
        if value is not None:
            setattr(cfg.stereo, name, value)
    cfg.validate()
    if cfg.render.file_format == "OPEN_EXR":
        raise ValueError("stereo pairs cannot be written as OPEN_EXR; use PNG or TIFF")
    return cfg


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    def body() -> int:
        cfg = _stereo_config(args)
        runner = BlenderRunner(cfg.blender)

        scene = select_scene(scene_info(args.blend_file, scene=args.scene, runner=runner), args.scene)
        cameras = select_cameras(scene, args.camera, args.all_cameras)
        frames = select_frames(scene, args.frames, args.step)

        with tempfile.TemporaryDirectory(prefix="blend_stereo_") as tmp:
            eye_dir = None if cfg.stereo.keep_eyes else tmp
            pairs = plan_pairs(args.blend_file, scene, cfg, frames, cameras, eye_dir)
            pairs, skipped = apply_overwrite_policy(
                pairs, cfg.output.if_exists, path_of=lambda pair: pair.output
            )
            progress_print(
                f'Scene "{scene["name"]}": {len(pairs)} stereo pair(s) to render, '
                f"{len(skipped)} skipped"
            )
            if args.dry_run:
                for pair in pairs:
                    print(f"{pair.camera}\t{pair.frame}\t{pair.separation:g}\t{pair.output}")
                return 0

            summary = render_pairs(
                runner, args.blend_file, scene["name"], pairs, cfg, not args.no_progress
            )
        summary.skipped = [pair.output for pair in skipped]
        progress_print(summary.describe("eye render"))
        return 0

    return report_errors(body)


if __name__ == "__main__":
    raise SystemExit(main())
