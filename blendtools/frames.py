"""Frame-range parsing, output path planning and the existing-output policy."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
import string
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from blendtools.errors import OutputExistsError

T = TypeVar("T")

TEMPLATE_FIELDS = {"blend", "scene", "camera", "frame", "eye"}

_RANGE_RE = re.compile(r"^(-?\d+)(?:\s*(?:-|\.\.)\s*(-?\d+)(?:\s*x\s*(\d+))?)?$")


def frame_sequence(start: int, end: int, step: int = 1) -> List[int]:
    """Inclusive frame range with a positive step."""
    if step < 1:
        raise ValueError("step must be >= 1")
    if end < start:
        raise ValueError(f"frame range end {end} is before start {start}")
    return list(range(start, end + 1, step))


def parse_frame_ranges(spec: str) -> List[int]:
    """
    Parse a frame list such as ``"1-10,15,20-30x2"``.

    Args:
        spec: Comma-separated frames or ``start-end`` ranges, each range
            optionally followed by ``xSTEP``

    Returns:
        Frames in the order given, duplicates dropped
    """
    frames: List[int] = []
    seen = set()
    parts = [part.strip() for part in spec.split(",")]
    if not any(parts):
        raise ValueError("empty frame list")
    for part in parts:
        if not part:
            continue
        match = _RANGE_RE.match(part)
        if match is None:
            raise ValueError(f"invalid frame range: {part!r}")
        start = int(match.group(1))
        if match.group(2) is None:
            values = [start]
        else:
            step = int(match.group(3)) if match.group(3) else 1
            values = frame_sequence(start, int(match.group(2)), step)
        for frame in values:
            if frame not in seen:
                seen.add(frame)
                frames.append(frame)
    return frames


@dataclass
class RenderTask:
    """One still to render: a camera at a frame, written to ``filepath``."""

    frame: int
    camera: str
    filepath: str
    eye_offset: float = 0.0

    def to_payload(self) -> Dict[str, object]:
        """Return the dict consumed by the Blender-side render script."""
        return {
            "frame": self.frame,
            "camera": self.camera,
            "filepath": self.filepath,
            "eye_offset": self.eye_offset,
        }


def _safe_component(value: str) -> str:
    for sep in {"/", "\\", os.sep}:
        value = value.replace(sep, "_")
    return value


class OutputPlanner:
    """Expand an output name template into concrete file paths."""

    def __init__(
        self,
        output_dir: str,
        name_template: str,
        extension: str,
        blend: str = "",
        scene: str = "",
    ) -> None:
        self.output_dir = Path(output_dir)
        self.name_template = name_template
        self.extension = extension
        self.blend = blend
        self.scene = scene
        self._check_template()

    def _check_template(self) -> None:
        try:
            parsed = list(string.Formatter().parse(self.name_template))
        except ValueError as exc:
            raise ValueError(f"invalid name template: {exc}") from exc
        for _, field_name, _, _ in parsed:
            if field_name is None:
                continue
            if field_name not in TEMPLATE_FIELDS:
                raise ValueError(
                    f"unknown name template field {{{field_name}}}; "
                    f"use one of {sorted(TEMPLATE_FIELDS)}"
                )

    def path_for(self, frame: int, camera: str = "", eye: str = "") -> Path:
        name = self.name_template.format(
            blend=_safe_component(self.blend),
            scene=_safe_component(self.scene),
            camera=_safe_component(camera),
            frame=frame,
            eye=eye,
        )
        return self.output_dir / f"{name}{self.extension}"

    def plan(self, frames: Sequence[int], cameras: Sequence[str]) -> List[RenderTask]:
        """One task per (camera, frame), cameras outermost."""
        tasks = [
            RenderTask(frame=frame, camera=camera, filepath=str(self.path_for(frame, camera)))
            for camera in cameras
            for frame in frames
        ]
        ensure_unique_paths(task.filepath for task in tasks)
        return tasks


def ensure_unique_paths(paths: Iterable[str]) -> None:
    """Raise when two planned outputs resolve to the same file."""
    seen = set()
    for path in paths:
        key = os.path.normcase(os.path.abspath(path))
        if key in seen:
            raise ValueError(
                f"name template maps several renders to {path}; "
                "include {camera} and {frame} in the template"
            )
        seen.add(key)


def apply_overwrite_policy(
    items: Sequence[T],
    policy: str,
    path_of: Optional[Callable[[T], str]] = None,
) -> Tuple[List[T], List[T]]:
    """
    Filter planned items whose output already exists.

    Args:
        items: Planned work items
        policy: ``error``, ``overwrite`` or ``skip``
        path_of: Output path of an item (default: ``item.filepath``)

    Returns:
        (items to process, items skipped)
    """
    path_of = path_of or (lambda item: item.filepath)
    existing = [item for item in items if Path(path_of(item)).exists()]

    if policy == "overwrite" or not existing:
        return list(items), []
    if policy == "error":
        raise OutputExistsError([path_of(item) for item in existing])
    if policy == "skip":
        existing_ids = {id(item) for item in existing}
        return [item for item in items if id(item) not in existing_ids], existing
    raise ValueError(f"unknown overwrite policy: {policy}")
