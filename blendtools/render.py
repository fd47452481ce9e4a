"""
Batch-render stills from one or more cameras of a .blend file.

Usage:
    blend-render scene.blend -o renders/ --frames 1-100x10
    blend-render scene.blend --all-cameras --resolution 960x540 --if-exists skip
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from blendtools.cli_common import (
    add_blender_arguments,
    add_render_arguments,
    build_config,
    report_errors,
)
from blendtools.config import DEFAULT_RENDER_TEMPLATE, RenderSettings, ToolConfig
from blendtools.errors import BlendToolsError
from blendtools.frames import (
    OutputPlanner,
    RenderTask,
    apply_overwrite_policy,
    frame_sequence,
    parse_frame_ranges,
)
from blendtools.info import scene_info
from blendtools.runner import BlenderRunner
from blendtools.utils.progress import progress_bar, progress_print
from blendtools.utils.timing import Stopwatch, format_elapsed


def select_scene(info: Dict[str, Any], name: Optional[str] = None) -> Dict[str, Any]:
    """Pick the named scene, else the active one, else the first."""
    scenes = info["scenes"]
    if not scenes:
        raise BlendToolsError("The file contains no scenes")
    wanted = name or info.get("active_scene")
    for scene in scenes:
        if scene["name"] == wanted:
            return scene
    if name:
        raise BlendToolsError(f"Scene not found: {name}")
    return scenes[0]


def select_cameras(
    scene: Dict[str, Any],
    names: Optional[Sequence[str]] = None,
    all_cameras: bool = False,
) -> List[str]:
    """Camera names to render: explicit, all, or the active camera."""
    available = [cam["name"] for cam in scene["cameras"]]
    if all_cameras:
        if not available:
            raise BlendToolsError(f'Scene "{scene["name"]}" has no cameras')
        return available
    if names:
        unknown = [name for name in names if name not in available]
        if unknown:
            raise BlendToolsError(
                f"Camera(s) not found in scene \"{scene['name']}\": {', '.join(unknown)}; "
                f"available: {', '.join(available) or 'none'}"
            )
        return list(dict.fromkeys(names))
    if not scene.get("camera"):
        raise BlendToolsError(
            f'Scene "{scene["name"]}" has no active camera; pass --camera or --all-cameras'
        )
    return [scene["camera"]]


def select_frames(
    scene: Dict[str, Any], spec: Optional[str] = None, step: Optional[int] = None
) -> List[int]:
    """Frames from ``spec``, else the scene range with ``step`` (or the scene step)."""
    if spec:
        return parse_frame_ranges(spec)
    return frame_sequence(
        scene["frame_start"], scene["frame_end"], step or scene["frame_step"] or 1
    )


@dataclass
class RenderSummary:
    """What a batch render did."""

    rendered: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def mean_elapsed(self) -> float:
        if not self.rendered:
            return 0.0
        return sum(r["elapsed"] for r in self.rendered) / len(self.rendered)

    def describe(self, noun: str = "still") -> str:
        text = (
            f"Rendered {len(self.rendered)} {noun}(s) in {format_elapsed(self.elapsed)}"
        )
        if self.rendered:
            text += f" (mean {format_elapsed(self.mean_elapsed)} per {noun})"
        if self.skipped:
            text += f"; skipped {len(self.skipped)} existing"
        return text


def execute_tasks(
    runner: BlenderRunner,
    blend_path: str,
    scene: str,
    tasks: Sequence[RenderTask],
    settings: RenderSettings,
    progress: bool = True,
    desc: str = "render",
) -> List[Dict[str, Any]]:
    """
    Render ``tasks`` in a single Blender session.

    Args:
        runner: Blender runner
        blend_path: .blend file to render
        scene: Scene name
        tasks: Stills to write
        settings: Render overrides
        progress: Show a progress bar
        desc: Progress bar label

    Returns:
        One record per still (frame, camera, filepath, elapsed)
    """
    if not tasks:
        return []
    for task in tasks:
        Path(task.filepath).parent.mkdir(parents=True, exist_ok=True)

    bar = progress_bar(len(tasks), desc=desc, unit="still", enabled=progress)

    def on_event(event: Dict[str, Any]) -> None:
        if event.get("type") != "rendered":
            return
        bar.update(1)
        bar.set_postfix_str(
            f"{event['camera']} f{event['frame']} {format_elapsed(event['elapsed'])}"
        )
        if not progress:
            progress_print(
                f"[{event['index'] + 1}/{event['total']}] {event['filepath']} "
                f"({format_elapsed(event['elapsed'])})"
            )

    payload = {
        "scene": scene,
        "settings": settings.to_dict(),
        "tasks": [task.to_payload() for task in tasks],
    }
    try:
        result = runner.run_script("render_frames", blend_path, payload, on_event=on_event)
    finally:
        bar.close()
    return result["rendered"]


def plan_render(
    blend_path: str,
    scene: Dict[str, Any],
    cfg: ToolConfig,
    frames: Sequence[int],
    cameras: Sequence[str],
) -> List[RenderTask]:
    planner = OutputPlanner(
        cfg.output.output_dir,
        cfg.output.name_template,
        cfg.render.extension,
        blend=Path(blend_path).stem,
        scene=scene["name"],
    )
    return planner.plan(frames, cameras)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blend-render", description="Render stills from a .blend file in batch."
    )
    add_blender_arguments(parser)
    add_render_arguments(parser, DEFAULT_RENDER_TEMPLATE)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    def body() -> int:
        cfg = build_config(args, DEFAULT_RENDER_TEMPLATE)
        cfg.validate()
        runner = BlenderRunner(cfg.blender)

        scene = select_scene(scene_info(args.blend_file, scene=args.scene, runner=runner), args.scene)
        cameras = select_cameras(scene, args.camera, args.all_cameras)
        frames = select_frames(scene, args.frames, args.step)
        tasks = plan_render(args.blend_file, scene, cfg, frames, cameras)
        tasks, skipped = apply_overwrite_policy(tasks, cfg.output.if_exists)

        progress_print(
            f'Scene "{scene["name"]}": {len(frames)} frame(s) x {len(cameras)} camera(s), '
            f"{len(tasks)} to render, {len(skipped)} skipped"
        )
        if args.dry_run:
            for task in tasks:
                print(f"{task.camera}\t{task.frame}\t{task.filepath}")
            return 0

        summary = RenderSummary(skipped=[t.filepath for t in skipped])
        with Stopwatch() as watch:
            summary.rendered = execute_tasks(
                runner,
                args.blend_file,
                scene["name"],
                tasks,
                cfg.render,
                progress=not args.no_progress,
            )
        summary.elapsed = watch.elapsed
        progress_print(summary.describe())
        return 0

    return report_errors(body)


if __name__ == "__main__":
    raise SystemExit(main())
