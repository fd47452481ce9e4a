"""
List the external files a .blend depends on.

Usage:
    blend-deps scene.blend
    blend-deps scene.blend --missing --json
"""

from __future__ import annotations

import argparse
from dataclasses import asdict, dataclass
import glob
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from blendtools.cli_common import add_blender_arguments, build_config, report_errors
from blendtools.config import BlenderConfig
from blendtools.runner import BlenderRunner

DEPENDENCY_KINDS = ["image", "library", "sound", "font", "movieclip", "cache", "volume"]

# Tokens Blender expands per tile / frame when loading file sequences
_UDIM_TOKENS = ("<UDIM>", "<UVTILE>")


def resolve_blend_relative(path: str, blend_dir: Path) -> str:
    """Resolve Blender's ``//`` prefix against the .blend directory."""
    if path.startswith("//"):
        return str(blend_dir / path[2:])
    return path


def path_exists(path: str) -> bool:
    """True if ``path`` exists; UDIM paths match any tile on disk."""
    for token in _UDIM_TOKENS:
        if token in path:
            pattern = glob.escape(path).replace(glob.escape(token), "[0-9]" * 4)
            return bool(glob.glob(pattern))
    return Path(path).exists()


@dataclass
class Dependency:
    """An external file referenced by a datablock."""

    kind: str
    name: str
    filepath: str
    abspath: str
    packed: bool
    library: Optional[str]
    exists: bool

    @property
    def status(self) -> str:
        if self.packed:
            return "packed"
        return "ok" if self.exists else "MISSING"

    @property
    def missing(self) -> bool:
        return not self.packed and not self.exists

    @classmethod
    def from_result(cls, data: Dict[str, Any], blend_dir: Path) -> "Dependency":
        abspath = resolve_blend_relative(data["abspath"], blend_dir)
        return cls(
            kind=data["kind"],
            name=data["name"],
            filepath=data["filepath"],
            abspath=abspath,
            packed=bool(data["packed"]),
            library=data.get("library"),
            exists=path_exists(abspath),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable dict."""
        data = asdict(self)
        data["status"] = self.status
        return data


def list_dependencies(
    blend_path: str,
    config: Optional[BlenderConfig] = None,
    kinds: Optional[Iterable[str]] = None,
    runner: Optional[BlenderRunner] = None,
) -> List[Dependency]:
    """
    Ask Blender for the external files of ``blend_path``.

    Args:
        blend_path: .blend file to inspect
        config: How to launch Blender
        kinds: Restrict to these dependency kinds
        runner: Pre-built runner (overrides ``config``)

    Returns:
        Dependencies with on-disk existence resolved
    """
    runner = runner or BlenderRunner(config)
    result = runner.run_script(
        "list_deps", blend_path, {"kinds": sorted(kinds) if kinds else None}
    )
    blend_dir = Path(blend_path).resolve().parent
    return [Dependency.from_result(item, blend_dir) for item in result["dependencies"]]


def filter_dependencies(
    deps: Sequence[Dependency], missing_only: bool = False, include_packed: bool = True
) -> List[Dependency]:
    selected = list(deps)
    if missing_only:
        selected = [dep for dep in selected if dep.missing]
    if not include_packed:
        selected = [dep for dep in selected if not dep.packed]
    return selected


def format_table(deps: Sequence[Dependency], absolute: bool = False) -> str:
    """Fixed-width table: kind, status, datablock name, path."""
    if not deps:
        return "(no external dependencies)"
    rows = [("KIND", "STATUS", "NAME", "PATH")]
    for dep in deps:
        path = dep.abspath if absolute else dep.filepath
        if dep.library:
            path = f"{path}  [linked from {dep.library}]"
        rows.append((dep.kind, dep.status, dep.name, path))
    widths = [max(len(row[i]) for row in rows) for i in range(3)]
    return "\n".join(
        f"{kind:<{widths[0]}}  {status:<{widths[1]}}  {name:<{widths[2]}}  {path}"
        for kind, status, name, path in rows
    )


def summarize(deps: Sequence[Dependency]) -> str:
    missing = sum(1 for dep in deps if dep.missing)
    packed = sum(1 for dep in deps if dep.packed)
    return f"{len(deps)} dependencies, {missing} missing, {packed} packed"


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blend-deps", description="List external files referenced by a .blend file."
    )
    add_blender_arguments(parser)
    parser.add_argument(
        "--kind",
        action="append",
        choices=DEPENDENCY_KINDS,
        default=None,
        help="Only list this kind of dependency (repeatable)",
    )
    parser.add_argument(
        "--missing",
        action="store_true",
        help="Only list missing files; exit status 1 when any are missing",
    )
    parser.add_argument("--no-packed", action="store_true", help="Hide packed files")
    parser.add_argument("--absolute", action="store_true", help="Show resolved paths")
    parser.add_argument("--json", action="store_true", help="Print JSON")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    def body() -> int:
        cfg = build_config(args)
        cfg.blender.validate()
        deps = list_dependencies(args.blend_file, cfg.blender, args.kind)
        shown = filter_dependencies(deps, args.missing, not args.no_packed)

        if args.json:
            print(json.dumps([dep.to_dict() for dep in shown], indent=2))
        else:
            print(format_table(shown, args.absolute))
            print(summarize(deps))

        if args.missing and shown:
            return 1
        return 0

    return report_errors(body)


if __name__ == "__main__":
    raise SystemExit(main())
