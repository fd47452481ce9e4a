"""
Dispatch ``python -m blendtools <command> [args...]`` to the blend-* commands.
"""

from __future__ import annotations

import importlib
import sys
from typing import Optional, Sequence

from blendtools import COMMANDS, __version__


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in ("-h", "--help"):
        print("usage: python -m blendtools {" + ",".join(COMMANDS) + "} [args...]")
        return 0 if argv else 2
    if argv[0] == "--version":
        print(f"blendtools {__version__}")
        return 0
    module_name = COMMANDS.get(argv[0])
    if module_name is None:
        print(f"Error: unknown command {argv[0]!r}", file=sys.stderr)
        return 2
    return importlib.import_module(module_name).main(argv[1:])


if __name__ == "__main__":
    raise SystemExit(main())
