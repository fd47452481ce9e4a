"""Payload and result plumbing between the host process and Blender.

Blender prints its own startup chatter on stdout, so results are framed by
line prefixes the host can pick out reliably.
"""

from __future__ import annotations

import json
import sys
import traceback
from typing import Any, Callable, Dict, List, Optional

EVENT_PREFIX = "BLENDTOOLS_EVENT:"
RESULT_PREFIX = "BLENDTOOLS_RESULT:"
ERROR_PREFIX = "BLENDTOOLS_ERROR:"


def script_args(argv: Optional[List[str]] = None) -> List[str]:
    """Return the arguments after Blender's ``--`` separator."""
    argv = sys.argv if argv is None else argv
    if "--" not in argv:
        return []
    return argv[argv.index("--") + 1 :]


def read_payload(argv: Optional[List[str]] = None) -> Dict[str, Any]:
    args = script_args(argv)
    if not args:
        return {}
    with open(args[0], "r", encoding="utf-8") as handle:
        return json.load(handle)


def _emit(prefix: str, data: Any) -> None:
    sys.stdout.write(prefix + json.dumps(data) + "\n")
    sys.stdout.flush()


def emit_event(**data: Any) -> None:
    _emit(EVENT_PREFIX, data)


def emit_result(data: Any) -> None:
    _emit(RESULT_PREFIX, data)


def emit_error(message: str, traceback_text: str = "") -> None:
    _emit(ERROR_PREFIX, {"message": message, "traceback": traceback_text})


def run(main: Callable[[Dict[str, Any]], Any]) -> None:
    """Run ``main(payload)`` and report its result or failure on stdout."""
    try:
        result = main(read_payload())
    except Exception as exc:
        emit_error(f"{type(exc).__name__}: {exc}", traceback.format_exc())
        sys.exit(1)
    emit_result(result)
