"""
Print scene, camera and render metadata of a .blend file.

Usage:
    blend-info scene.blend
    blend-info scene.blend --scene Shot010 --json
    blend-info scene.blend --header-only   # no Blender needed
"""

from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Optional, Sequence

from blendtools.blendfile import read_header, read_render_info
from blendtools.cli_common import add_blender_arguments, build_config, report_errors
from blendtools.config import BlenderConfig
from blendtools.runner import BlenderRunner


def scene_info(
    blend_path: str,
    config: Optional[BlenderConfig] = None,
    scene: Optional[str] = None,
    runner: Optional[BlenderRunner] = None,
) -> Dict[str, Any]:
    """Ask Blender for scene/camera/render metadata."""
    runner = runner or BlenderRunner(config)
    return runner.run_script("scene_info", blend_path, {"scene": scene})


def header_info(blend_path: str) -> Dict[str, Any]:
    """Header and per-scene frame ranges, read without Blender."""
    header = read_header(blend_path)
    info: Dict[str, Any] = {"blend_file": blend_path, "header": header.to_dict()}
    if header.compression != "zstd":
        info["scenes"] = [
            {"name": name, "frame_start": start, "frame_end": end}
            for name, start, end in read_render_info(blend_path)
        ]
    return info


def effective_resolution(scene: Dict[str, Any]) -> tuple:
    pct = scene["resolution_percentage"]
    return (
        int(scene["resolution_x"] * pct / 100),
        int(scene["resolution_y"] * pct / 100),
    )


def _fmt_vec(values: Sequence[float], digits: int = 2) -> str:
    return "(" + ", ".join(f"{v:.{digits}f}" for v in values) + ")"


def _format_camera(cam: Dict[str, Any]) -> List[str]:
    marker = "*" if cam["is_active"] else " "
    if cam["type"] == "ORTHO":
        optics = f"ortho scale {cam['ortho_scale']:g}"
    elif cam["lens_unit"] == "FOV" or cam["type"] == "PANO":
        optics = f"{cam['lens']:g}mm ({cam['lens_unit'].lower()})"
    else:
        optics = f"{cam['lens']:g}mm"
    lines = [
        f"    {marker} {cam['name']}  {cam['type']} {optics}, "
        f"sensor {cam['sensor_width']:g}mm ({cam['sensor_fit']}), "
        f"clip {cam['clip_start']:g}-{cam['clip_end']:g}",
        f"        location {_fmt_vec(cam['location'])}  "
        f"rotation {_fmt_vec(cam['rotation_deg'], 1)}",
    ]
    if cam["shift_x"] or cam["shift_y"]:
        lines.append(f"        shift {cam['shift_x']:g}, {cam['shift_y']:g}")
    if cam.get("interocular_distance") is not None:
        lines.append(
            f"        stereo interocular {cam['interocular_distance']:g}, "
            f"convergence {cam['convergence_distance']:g}"
        )
    if cam.get("parent"):
        lines.append(f"        parent {cam['parent']}")
    return lines


def format_scene(scene: Dict[str, Any]) -> str:
    """Human-readable block for one scene."""
    eff_x, eff_y = effective_resolution(scene)
    fps = scene["fps"] / scene["fps_base"] if scene["fps_base"] else float(scene["fps"])
    counts = ", ".join(f"{kind} {n}" for kind, n in scene["object_counts"].items())
    lines = [
        f'Scene "{scene["name"]}"',
        f"  Frames:       {scene['frame_start']} - {scene['frame_end']} "
        f"(step {scene['frame_step']}), current {scene['frame_current']}",
        f"  Frame rate:   {fps:.2f} fps",
        f"  Engine:       {scene['engine']}",
        f"  Resolution:   {scene['resolution_x']} x {scene['resolution_y']} "
        f"@ {scene['resolution_percentage']}% ({eff_x} x {eff_y})",
        f"  Pixel aspect: {scene['pixel_aspect_x']:g} : {scene['pixel_aspect_y']:g}",
        f"  Output:       {scene['output_path'] or '(none)'} ({scene['file_format']})",
        f"  Transparent:  {'yes' if scene['film_transparent'] else 'no'}",
        f"  Multiview:    {'yes' if scene['use_multiview'] else 'no'}",
        f"  Camera:       {scene['camera'] or '(none)'}",
        f"  View layers:  {', '.join(scene['view_layers'])}",
        f"  World:        {scene['world'] or '(none)'}",
        f"  Objects:      {counts or '(none)'}",
    ]
    if scene["cameras"]:
        lines.append("  Cameras:")
        for cam in scene["cameras"]:
            lines.extend(_format_camera(cam))
    return "\n".join(lines)


def format_info(info: Dict[str, Any]) -> str:
    lines = [
        f"File:          {info['blend_file']}",
        f"Blender:       {info['blender_version']}",
    ]
    if info.get("file_version"):
        lines.append("Saved with:    " + ".".join(str(v) for v in info["file_version"]))
    if info.get("active_scene"):
        lines.append(f"Active scene:  {info['active_scene']}")
    for scene in info["scenes"]:
        lines.append("")
        lines.append(format_scene(scene))
    return "\n".join(lines)


def format_header_info(info: Dict[str, Any]) -> str:
    header = info["header"]
    details = []
    if header["pointer_size"]:
        details.append(f"{header['pointer_size'] * 8}-bit")
    if header["endian"]:
        details.append(f"{header['endian']}-endian")
    details.append(header["compression"] or "uncompressed")
    lines = [
        f"File:     {info['blend_file']}",
        f"Version:  {header['version']} ({', '.join(details)})",
    ]
    if "scenes" not in info:
        lines.append("Scenes:   unavailable for zstd-compressed files")
    for scene in info.get("scenes", []):
        lines.append(
            f'Scene "{scene["name"]}": frames {scene["frame_start"]} - {scene["frame_end"]}'
        )
    return "\n".join(lines)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blend-info", description="Print scene, camera and render settings of a .blend file."
    )
    add_blender_arguments(parser)
    parser.add_argument("--scene", default=None, help="Only report this scene")
    parser.add_argument("--json", action="store_true", help="Print JSON")
    parser.add_argument(
        "--header-only",
        action="store_true",
        help="Read version and frame ranges from the file header without Blender",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    def body() -> int:
        if args.header_only:
            info = header_info(args.blend_file)
            if args.scene is not None and "scenes" in info:
                info["scenes"] = [s for s in info["scenes"] if s["name"] == args.scene]
            print(json.dumps(info, indent=2) if args.json else format_header_info(info))
            return 0

        cfg = build_config(args)
        cfg.blender.validate()
        info = scene_info(args.blend_file, cfg.blender, args.scene)
        print(json.dumps(info, indent=2) if args.json else format_info(info))
        return 0

    return report_errors(body)


if __name__ == "__main__":
    raise SystemExit(main())
