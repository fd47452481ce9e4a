"""
Render several cameras per frame and tile them into one contact sheet.

Usage:
    blend-multicam scene.blend -o sheets/ --frames 1
    blend-multicam scene.blend --camera Front --camera Side --columns 2 --no-labels
"""

from __future__ import annotations

import argparse
import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
import tempfile
from typing import Dict, List, Optional, Sequence

from blendtools.cli_common import (
    add_blender_arguments,
    add_render_arguments,
    build_config,
    parse_color,
    report_errors,
)
from blendtools.compose import compose_tiles
from blendtools.config import DEFAULT_MULTICAM_TEMPLATE, ToolConfig
from blendtools.frames import (
    OutputPlanner,
    RenderTask,
    apply_overwrite_policy,
    ensure_unique_paths,
)
from blendtools.info import scene_info
from blendtools.render import RenderSummary, execute_tasks, select_frames, select_scene
from blendtools.runner import BlenderRunner
from blendtools.utils.progress import iter_progress, progress_print
from blendtools.utils.timing import Stopwatch


@dataclass
class ContactSheet:
    """All camera views of one frame and the composite they produce."""

    frame: int
    output: str
    tiles: Dict[str, str] = field(default_factory=dict)

    def tile_tasks(self) -> List[RenderTask]:
        return [
            RenderTask(self.frame, camera, path) for camera, path in self.tiles.items()
        ]


def multicam_cameras(
    scene: Dict, names: Optional[Sequence[str]] = None
) -> List[str]:
    """Explicit cameras (validated) or every camera in the scene."""
    available = [cam["name"] for cam in scene["cameras"]]
    if not names:
        if not available:
            raise ValueError(f'Scene "{scene["name"]}" has no cameras')
        return available
    unknown = [name for name in names if name not in available]
    if unknown:
        raise ValueError(
            f"Camera(s) not found in scene \"{scene['name']}\": {', '.join(unknown)}"
        )
    return list(dict.fromkeys(names))


def plan_sheets(
    blend_path: str,
    scene: Dict,
    cfg: ToolConfig,
    frames: Sequence[int],
    cameras: Sequence[str],
    tile_dir: Optional[str] = None,
) -> List[ContactSheet]:
    """One sheet per frame; tiles go to ``tile_dir`` or beside the sheet."""
    planner = OutputPlanner(
        cfg.output.output_dir,
        cfg.output.name_template,
        cfg.render.extension,
        blend=Path(blend_path).stem,
        scene=scene["name"],
    )
    sheets = []
    for frame in frames:
        output = planner.path_for(frame)
        base = Path(tile_dir) if tile_dir else output.parent
        sheet = ContactSheet(frame=frame, output=str(output))
        for index, camera in enumerate(cameras):
            sheet.tiles[camera] = str(base / f"{output.stem}_{index:02d}.png")
        sheets.append(sheet)
    ensure_unique_paths(sheet.output for sheet in sheets)
    return sheets


def render_sheets(
    runner: BlenderRunner,
    blend_path: str,
    scene: str,
    sheets: Sequence[ContactSheet],
    cfg: ToolConfig,
    progress: bool = True,
) -> RenderSummary:
    """Render every tile in one Blender session, then compose each sheet."""
    summary = RenderSummary()
    tasks = [task for sheet in sheets for task in sheet.tile_tasks()]
    tile_settings = dataclasses.replace(cfg.render, file_format="PNG")

    with Stopwatch() as watch:
        summary.rendered = execute_tasks(
            runner, blend_path, scene, tasks, tile_settings, progress, desc="tiles"
        )
        for sheet in iter_progress(sheets, desc="compose", total=len(sheets), enabled=progress):
            compose_tiles(
                list(sheet.tiles.values()),
                sheet.output,
                labels=list(sheet.tiles.keys()),
                config=cfg.tile,
            )
    summary.elapsed = watch.elapsed
    return summary


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blend-multicam",
        description="Render several cameras per frame and tile them into one image.",
    )
    add_blender_arguments(parser)
    add_render_arguments(parser, DEFAULT_MULTICAM_TEMPLATE)
    group = parser.add_argument_group("tiling")
    group.add_argument("--columns", type=int, default=None, help="Grid columns")
    group.add_argument("--gap", type=int, default=None, help="Pixels between tiles")
    group.add_argument("--margin", type=int, default=None, help="Pixels around the grid")
    group.add_argument(
        "--background", type=parse_color, default=None, help="Background colour"
    )
    group.add_argument(
        "--label-size", type=float, default=None, help="Camera label font size"
    )
    group.add_argument(
        "--no-labels", action="store_true", help="Do not draw camera names"
    )
    group.add_argument(
        "--keep-tiles", action="store_true", default=None, help="Keep per-camera renders"
    )
    return parser.parse_args(argv)


def _multicam_config(args: argparse.Namespace) -> ToolConfig:
    cfg = build_config(args, DEFAULT_MULTICAM_TEMPLATE)
    for name in ("columns", "gap", "margin", "background", "label_size", "keep_tiles"):
        value = getattr(args, name)
        if value is not None:
            setattr(cfg.tile, name, value)
    if args.no_labels:
        cfg.tile.labels = False
    cfg.validate()
    if cfg.render.file_format == "OPEN_EXR":
        raise ValueError("contact sheets cannot be written as OPEN_EXR; use PNG or TIFF")
    return cfg


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    def body() -> int:
        cfg = _multicam_config(args)
        runner = BlenderRunner(cfg.blender)

        scene = select_scene(scene_info(args.blend_file, scene=args.scene, runner=runner), args.scene)
        cameras = multicam_cameras(scene, None if args.all_cameras else args.camera)
        frames = select_frames(scene, args.frames, args.step)

        with tempfile.TemporaryDirectory(prefix="blend_multicam_") as tmp:
            tile_dir = None if cfg.tile.keep_tiles else tmp
            sheets = plan_sheets(args.blend_file, scene, cfg, frames, cameras, tile_dir)
            sheets, skipped = apply_overwrite_policy(
                sheets, cfg.output.if_exists, path_of=lambda sheet: sheet.output
            )
            progress_print(
                f'Scene "{scene["name"]}": {len(sheets)} sheet(s) of {len(cameras)} camera(s), '
                f"{len(skipped)} skipped"
            )
            if args.dry_run:
                for sheet in sheets:
                    print(f"{sheet.frame}\t{sheet.output}\t{', '.join(sheet.tiles)}")
                return 0

            summary = render_sheets(
                runner, args.blend_file, scene["name"], sheets, cfg, not args.no_progress
            )
        summary.skipped = [sheet.output for sheet in skipped]
        progress_print(summary.describe("tile"))
        return 0

    return report_errors(body)


if __name__ == "__main__":
    raise SystemExit(main())
