"""
List external file dependencies of the open .blend file.

Usage: blender -b scene.blend --python list_deps.py -- payload.json
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent))

from bridge import run  # noqa: E402

try:
    import bpy

    BLENDER_AVAILABLE = True
except ImportError:
    bpy = None
    BLENDER_AVAILABLE = False


# Image sources that reference files on disk
FILE_IMAGE_SOURCES = {"FILE", "SEQUENCE", "MOVIE", "TILED"}

# (kind, bpy.data collection name)
COLLECTIONS = (
    ("image", "images"),
    ("library", "libraries"),
    ("sound", "sounds"),
    ("font", "fonts"),
    ("movieclip", "movieclips"),
    ("cache", "cache_files"),
    ("volume", "volumes"),
)


def _is_packed(block: Any) -> bool:
    if getattr(block, "packed_file", None) is not None:
        return True
    return bool(len(getattr(block, "packed_files", ()) or ()))


def _wants(kind: str, block: Any) -> bool:
    filepath = getattr(block, "filepath", "")
    if kind == "image":
        return bool(filepath) and getattr(block, "source", "") in FILE_IMAGE_SOURCES
    if kind == "font":
        return bool(filepath) and filepath != "<builtin>"
    return bool(filepath)


def collect_dependencies(
    data: Any,
    abspath: Callable[..., str],
    kinds: Optional[Iterable[str]] = None,
) -> List[Dict[str, Any]]:
    """
    Collect external file references from a ``bpy.data``-like object.

    Args:
        data: ``bpy.data`` or an object exposing the same collections
        abspath: ``bpy.path.abspath``-compatible resolver
        kinds: Restrict to these dependency kinds

    Returns:
        One dict per dependency, in collection order
    """
    wanted = set(kinds) if kinds else None
    deps: List[Dict[str, Any]] = []
    for kind, attr in COLLECTIONS:
        if wanted is not None and kind not in wanted:
            continue
        for block in getattr(data, attr, ()):
            if not _wants(kind, block):
                continue
            library = getattr(block, "library", None)
            filepath = block.filepath
            deps.append(
                {
                    "kind": kind,
                    "name": block.name,
                    "filepath": filepath,
                    "abspath": abspath(filepath, library=library),
                    "packed": _is_packed(block),
                    "library": library.name if library is not None else None,
                }
            )
    return deps


def main(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not BLENDER_AVAILABLE:
        raise RuntimeError("Must run inside Blender")
    return {
        "blend_file": bpy.data.filepath,
        "dependencies": collect_dependencies(
            bpy.data, bpy.path.abspath, payload.get("kinds")
        ),
    }


if __name__ == "__main__":
    run(main)
