"""Command-line options and error reporting shared by the blend-* commands."""

from __future__ import annotations

import argparse
import sys
from typing import Callable, Optional, Tuple

from blendtools.config import FILE_FORMAT_EXTENSIONS, ToolConfig, load_overrides
from blendtools.errors import BlendToolsError, BlenderScriptError


def parse_resolution(text: str) -> Tuple[int, int]:
    """argparse type for ``WIDTHxHEIGHT``."""
    try:
        width, height = (int(part) for part in text.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}")
    if width < 1 or height < 1:
        raise argparse.ArgumentTypeError("resolution must be positive")
    return width, height


def parse_color(text: str) -> Tuple[float, float, float, float]:
    """argparse type for ``#RRGGBB``, ``#RRGGBBAA`` or ``r,g,b[,a]`` floats."""
    value = text.strip()
    try:
        if value.startswith("#") and len(value) in (7, 9):
            channels = [int(value[i : i + 2], 16) / 255.0 for i in range(1, len(value), 2)]
        else:
            channels = [float(part) for part in value.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid color: {text!r}")
    if len(channels) == 3:
        channels.append(1.0)
    if len(channels) != 4 or not all(0.0 <= c <= 1.0 for c in channels):
        raise argparse.ArgumentTypeError(f"invalid color: {text!r}")
    return tuple(channels)


def add_blender_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("blend_file", help="Path to the .blend file")
    group = parser.add_argument_group("blender")
    group.add_argument(
        "--blender",
        default=None,
        help="Blender executable (default: $BLENDER_PATH, $BLENDER, or blender on PATH)",
    )
    group.add_argument(
        "--factory-startup",
        action="store_true",
        default=None,
        help="Ignore user preferences and startup files",
    )
    group.add_argument(
        "--enable-autoexec",
        action="store_true",
        default=None,
        help="Allow Python scripts embedded in the .blend to run",
    )
    group.add_argument(
        "-v", "--verbose", action="store_true", default=None, help="Echo Blender's output"
    )
    group.add_argument("--config-path", default=None, help="JSON config override file")
    group.add_argument("--config-json", default=None, help="Inline JSON config overrides")


def add_render_arguments(parser: argparse.ArgumentParser, default_template: str) -> None:
    group = parser.add_argument_group("render")
    group.add_argument("--scene", default=None, help="Scene to render (default: active scene)")
    group.add_argument(
        "--frames",
        default=None,
        help="Frames, e.g. 1-10,15,20-30x2 (default: scene range)",
    )
    group.add_argument(
        "--step", type=int, default=None, help="Frame step when using the scene range"
    )
    group.add_argument(
        "--camera",
        action="append",
        default=None,
        help="Camera object name (repeatable; default: active camera)",
    )
    group.add_argument(
        "--all-cameras", action="store_true", help="Render from every camera in the scene"
    )
    group.add_argument(
        "--resolution", type=parse_resolution, default=None, help="Override as WIDTHxHEIGHT"
    )
    group.add_argument("--percentage", type=int, default=None, help="Resolution percentage")
    group.add_argument("--engine", default=None, help="Render engine, e.g. CYCLES")
    group.add_argument("--samples", type=int, default=None, help="Render samples")
    group.add_argument(
        "--format",
        dest="file_format",
        choices=sorted(FILE_FORMAT_EXTENSIONS),
        default=None,
        help="Output image format",
    )
    group.add_argument(
        "--transparent",
        action="store_true",
        default=None,
        help="Render with a transparent film",
    )

    out = parser.add_argument_group("output")
    out.add_argument("-o", "--output-dir", default=None, help="Output directory")
    out.add_argument(
        "--name-template",
        default=None,
        help=(
            "Output name without extension; fields {blend} {scene} {camera} {frame} "
            f"(default: {default_template})"
        ),
    )
    out.add_argument(
        "--if-exists",
        choices=("error", "overwrite", "skip"),
        default=None,
        help="What to do with outputs that already exist (default: error)",
    )
    out.add_argument(
        "--dry-run", action="store_true", help="Print the render plan without rendering"
    )
    out.add_argument(
        "--no-progress", action="store_true", help="Disable the progress bar"
    )


def _set_if_given(target: object, name: str, value: object) -> None:
    if value is not None:
        setattr(target, name, value)


def build_config(
    args: argparse.Namespace, default_template: Optional[str] = None
) -> ToolConfig:
    """Defaults, then the JSON overrides, then explicit command-line flags."""
    cfg = ToolConfig()
    if default_template is not None:
        cfg.output.name_template = default_template
    cfg.apply_overrides(load_overrides(args.config_path, args.config_json))

    _set_if_given(cfg.blender, "executable", args.blender)
    _set_if_given(cfg.blender, "factory_startup", args.factory_startup)
    _set_if_given(cfg.blender, "enable_autoexec", args.enable_autoexec)
    _set_if_given(cfg.blender, "verbose", args.verbose)

    for name in ("resolution", "percentage", "engine", "samples", "file_format"):
        _set_if_given(cfg.render, name, getattr(args, name, None))
    _set_if_given(cfg.render, "film_transparent", getattr(args, "transparent", None))
    if cfg.render.engine is not None:
        cfg.render.engine = cfg.render.engine.upper()

    _set_if_given(cfg.output, "output_dir", getattr(args, "output_dir", None))
    _set_if_given(cfg.output, "name_template", getattr(args, "name_template", None))
    _set_if_given(cfg.output, "if_exists", getattr(args, "if_exists", None))
    return cfg


def report_errors(body: Callable[[], int]) -> int:
    """Run a command body, turning expected failures into an exit status."""
    try:
        return body()
    except (BlendToolsError, ValueError, KeyError, FileNotFoundError) as exc:
        message = exc.args[0] if isinstance(exc, KeyError) and exc.args else exc
        print(f"Error: {message}", file=sys.stderr)
        if isinstance(exc, BlenderScriptError) and exc.traceback_text:
            print(exc.traceback_text.rstrip(), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
