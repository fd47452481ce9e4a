"""Command-line wrappers that drive Blender in background mode."""

__version__ = "0.3.0"

COMMANDS = {
    "deps": "blendtools.deps",
    "info": "blendtools.info",
    "render": "blendtools.render",
    "stereo": "blendtools.stereo",
    "multicam": "blendtools.multicam",
}
