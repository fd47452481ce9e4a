"""Scripts executed inside Blender's Python by the command wrappers.

These modules are passed to ``blender --python`` and must only depend on the
standard library, ``bpy`` and each other.
"""

from pathlib import Path

SCRIPTS_DIR = Path(__file__).resolve().parent


def script_path(name: str) -> Path:
    """Return the path of a bundled Blender-side script."""
    path = SCRIPTS_DIR / f"{name}.py"
    if not path.is_file():
        raise FileNotFoundError(f"Unknown Blender script: {name}")
    return path
