"""Configuration models for the Blender command wrappers."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
import shutil
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from blendtools.errors import BlenderNotFoundError

load_dotenv()

BLENDER_ENV_VARS = ("BLENDER_PATH", "BLENDER")

FILE_FORMAT_EXTENSIONS = {
    "PNG": ".png",
    "JPEG": ".jpg",
    "BMP": ".bmp",
    "TIFF": ".tif",
    "OPEN_EXR": ".exr",
}

_VALID_IF_EXISTS = {"error", "overwrite", "skip"}
_VALID_STEREO_LAYOUTS = {"cross", "parallel"}
_VALID_ENGINES = {
    "CYCLES",
    "BLENDER_EEVEE",
    "BLENDER_EEVEE_NEXT",
    "BLENDER_WORKBENCH",
}

DEFAULT_RENDER_TEMPLATE = "{camera}/{blend}_{frame:04d}"
DEFAULT_STEREO_TEMPLATE = "{blend}_{camera}_stereo_{frame:04d}"
DEFAULT_MULTICAM_TEMPLATE = "{blend}_multicam_{frame:04d}"

Color = Tuple[float, float, float, float]


def _validate_color(name: str, color: Color) -> None:
    if len(color) != 4:
        raise ValueError(f"{name} must have 4 components (RGBA)")
    if not all(0.0 <= c <= 1.0 for c in color):
        raise ValueError(f"{name} components must be in [0, 1]")


@dataclass
class BlenderConfig:
    """How to launch Blender."""

    executable: Optional[str] = None
    factory_startup: bool = False
    enable_autoexec: bool = False
    verbose: bool = False
    extra_args: List[str] = field(default_factory=list)

    def validate(self) -> None:
        """Validate configuration values."""
        if self.executable is not None and not self.executable:
            raise ValueError("executable must be a non-empty path when provided")
        if not all(isinstance(arg, str) for arg in self.extra_args):
            raise ValueError("extra_args must be strings")

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "executable": self.executable,
            "factory_startup": self.factory_startup,
            "enable_autoexec": self.enable_autoexec,
            "verbose": self.verbose,
            "extra_args": list(self.extra_args),
        }


@dataclass
class RenderSettings:
    """Render overrides applied inside Blender before the first still."""

    resolution: Optional[Tuple[int, int]] = None
    percentage: Optional[int] = None
    engine: Optional[str] = None
    samples: Optional[int] = None
    file_format: str = "PNG"
    film_transparent: Optional[bool] = None

    @property
    def extension(self) -> str:
        return FILE_FORMAT_EXTENSIONS[self.file_format]

    def validate(self) -> None:
        """Validate configuration values."""
        if self.resolution is not None:
            if len(self.resolution) != 2 or min(self.resolution) < 1:
                raise ValueError("resolution must be two positive integers")
        if self.percentage is not None and not (1 <= self.percentage <= 1000):
            raise ValueError("percentage must be in [1, 1000]")
        if self.engine is not None and self.engine not in _VALID_ENGINES:
            raise ValueError(f"engine must be one of {sorted(_VALID_ENGINES)}")
        if self.samples is not None and self.samples < 1:
            raise ValueError("samples must be >= 1")
        if self.file_format not in FILE_FORMAT_EXTENSIONS:
            raise ValueError(
                f"file_format must be one of {sorted(FILE_FORMAT_EXTENSIONS)}"
            )

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "resolution": list(self.resolution) if self.resolution else None,
            "percentage": self.percentage,
            "engine": self.engine,
            "samples": self.samples,
            "file_format": self.file_format,
            "film_transparent": self.film_transparent,
        }


@dataclass
class OutputConfig:
    """Where rendered files go and what to do with existing ones."""

    output_dir: str = "."
    name_template: str = DEFAULT_RENDER_TEMPLATE
    if_exists: str = "error"

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.name_template:
            raise ValueError("name_template must not be empty")
        if self.if_exists not in _VALID_IF_EXISTS:
            raise ValueError(f"if_exists must be one of {sorted(_VALID_IF_EXISTS)}")

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "output_dir": self.output_dir,
            "name_template": self.name_template,
            "if_exists": self.if_exists,
        }


@dataclass
class StereoConfig:
    """Stereo pair rendering and composition."""

    separation: Optional[float] = None
    layout: str = "cross"
    gap: int = 0
    background: Color = (0.0, 0.0, 0.0, 1.0)
    keep_eyes: bool = False

    def validate(self) -> None:
        """Validate configuration values."""
        if self.separation is not None and self.separation <= 0:
            raise ValueError("separation must be > 0")
        if self.layout not in _VALID_STEREO_LAYOUTS:
            raise ValueError(f"layout must be one of {sorted(_VALID_STEREO_LAYOUTS)}")
        if self.gap < 0:
            raise ValueError("gap must be >= 0")
        _validate_color("background", self.background)

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "separation": self.separation,
            "layout": self.layout,
            "gap": self.gap,
            "background": list(self.background),
            "keep_eyes": self.keep_eyes,
        }


@dataclass
class TileConfig:
    """Multi-camera tiling."""

    columns: Optional[int] = None
    gap: int = 4
    margin: int = 0
    background: Color = (0.0, 0.0, 0.0, 1.0)
    labels: bool = True
    label_size: float = 14.0
    keep_tiles: bool = False

    def validate(self) -> None:
        """Validate configuration values."""
        if self.columns is not None and self.columns < 1:
            raise ValueError("columns must be >= 1")
        if self.gap < 0 or self.margin < 0:
            raise ValueError("gap and margin must be >= 0")
        if self.label_size <= 0:
            raise ValueError("label_size must be > 0")
        _validate_color("background", self.background)

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "columns": self.columns,
            "gap": self.gap,
            "margin": self.margin,
            "background": list(self.background),
            "labels": self.labels,
            "label_size": self.label_size,
            "keep_tiles": self.keep_tiles,
        }


_TUPLE_FIELDS = {"resolution", "background"}


@dataclass
class ToolConfig:
    """Root configuration shared by all commands."""

    blender: BlenderConfig = field(default_factory=BlenderConfig)
    render: RenderSettings = field(default_factory=RenderSettings)
    output: OutputConfig = field(default_factory=OutputConfig)
    stereo: StereoConfig = field(default_factory=StereoConfig)
    tile: TileConfig = field(default_factory=TileConfig)

    def validate(self) -> None:
        """Validate configuration values across groups."""
        self.blender.validate()
        self.render.validate()
        self.output.validate()
        self.stereo.validate()
        self.tile.validate()

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "blender": self.blender.to_dict(),
            "render": self.render.to_dict(),
            "output": self.output.to_dict(),
            "stereo": self.stereo.to_dict(),
            "tile": self.tile.to_dict(),
        }

    def apply_overrides(self, overrides: Mapping[str, Any]) -> None:
        """Apply a partial ``{group: {key: value}}`` mapping in place."""
        for group_name, values in overrides.items():
            group = getattr(self, group_name, None)
            if group is None or group_name not in self.__dataclass_fields__:
                raise ValueError(f"Unknown config group: {group_name}")
            if not isinstance(values, Mapping):
                raise ValueError(f"Config group {group_name} must be an object")
            for key, value in values.items():
                if key not in group.__dataclass_fields__:
                    raise ValueError(f"Unknown config key: {group_name}.{key}")
                if key in _TUPLE_FIELDS and value is not None:
                    value = tuple(value)
                setattr(group, key, value)

    @classmethod
    def from_dict(cls, overrides: Mapping[str, Any]) -> "ToolConfig":
        cfg = cls()
        cfg.apply_overrides(overrides)
        return cfg


def load_overrides(
    config_path: Optional[str] = None, config_json: Optional[str] = None
) -> Dict[str, Any]:
    """Merge a JSON override file and an inline JSON string (inline wins)."""
    overrides: Dict[str, Any] = {}
    if config_path:
        with open(config_path, "r", encoding="utf-8") as handle:
            overrides = json.load(handle)
    if config_json:
        inline = json.loads(config_json)
        for group, values in inline.items():
            merged = dict(overrides.get(group, {}))
            merged.update(values)
            overrides[group] = merged
    return overrides


def resolve_blender_executable(explicit: Optional[str] = None) -> str:
    """
    Locate the Blender executable.

    Args:
        explicit: Path given on the command line or in a config file

    Returns:
        Path to an executable file
    """
    candidates = [explicit] + [os.environ.get(name) for name in BLENDER_ENV_VARS]
    for candidate in candidates:
        if not candidate:
            continue
        path = Path(candidate).expanduser()
        if path.is_file():
            return str(path)
        found = shutil.which(candidate)
        if found:
            return found
        raise BlenderNotFoundError(f"Blender executable not found: {candidate}")

    found = shutil.which("blender")
    if found:
        return found
    raise BlenderNotFoundError(
        "Blender executable not found; pass --blender or set BLENDER_PATH"
    )
