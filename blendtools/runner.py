"""Launch Blender in background mode with an embedded script and decode its output."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import json
import os
from pathlib import Path
import subprocess
import tempfile
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from blendtools.blender_scripts import script_path
from blendtools.blender_scripts.bridge import (
    ERROR_PREFIX,
    EVENT_PREFIX,
    RESULT_PREFIX,
)
from blendtools.config import BlenderConfig, resolve_blender_executable
from blendtools.errors import BlenderProcessError, BlenderScriptError
from blendtools.utils.progress import progress_print

LOG_TAIL_LINES = 200

EventCallback = Callable[[Dict[str, Any]], None]

_NO_RESULT = object()


@dataclass
class ScriptOutput:
    """Decoded stdout of one Blender run."""

    result: Any = _NO_RESULT
    events: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    log: Deque[str] = field(default_factory=lambda: deque(maxlen=LOG_TAIL_LINES))

    @property
    def has_result(self) -> bool:
        return self.result is not _NO_RESULT


def decode_output(
    lines: Iterable[str],
    on_event: Optional[EventCallback] = None,
    echo: bool = False,
) -> ScriptOutput:
    """
    Split Blender's stdout into events, the final result and plain log lines.

    Args:
        lines: Output lines (with or without trailing newlines)
        on_event: Called for every event as it is decoded
        echo: Print non-marker lines as they arrive

    Returns:
        ScriptOutput with whatever was found
    """
    output = ScriptOutput()
    for raw in lines:
        line = raw.rstrip("\r\n")
        if line.startswith(EVENT_PREFIX):
            event = json.loads(line[len(EVENT_PREFIX) :])
            output.events.append(event)
            if on_event is not None:
                on_event(event)
        elif line.startswith(RESULT_PREFIX):
            output.result = json.loads(line[len(RESULT_PREFIX) :])
        elif line.startswith(ERROR_PREFIX):
            output.error = json.loads(line[len(ERROR_PREFIX) :])
        else:
            output.log.append(line)
            if echo:
                progress_print(f"[blender] {line}")
    return output


class BlenderRunner:
    """Runs bundled Blender-side scripts against a .blend file."""

    def __init__(self, config: Optional[BlenderConfig] = None) -> None:
        self.config = config or BlenderConfig()
        self.executable = resolve_blender_executable(self.config.executable)

    def build_command(
        self, blend_path: str, script: str, payload_path: Optional[str] = None
    ) -> List[str]:
        """Build the Blender command line; options that affect loading precede the file."""
        cmd = [self.executable, "--background"]
        if self.config.factory_startup:
            cmd.append("--factory-startup")
        cmd.append("-y" if self.config.enable_autoexec else "-Y")
        cmd.extend(self.config.extra_args)
        cmd.append(str(blend_path))
        cmd.extend(["--python-exit-code", "1", "--python", str(script)])
        if payload_path is not None:
            cmd.extend(["--", str(payload_path)])
        return cmd

    def run_script(
        self,
        script_name: str,
        blend_path: str,
        payload: Optional[Dict[str, Any]] = None,
        on_event: Optional[EventCallback] = None,
    ) -> Any:
        """
        Run a bundled script inside Blender and return its decoded result.

        Args:
            script_name: Module name under ``blendtools.blender_scripts``
            blend_path: .blend file to open
            payload: JSON-serializable input for the script
            on_event: Progress event callback

        Returns:
            The value passed to ``emit_result`` by the script
        """
        blend = Path(blend_path)
        if not blend.is_file():
            raise FileNotFoundError(f"Blend file not found: {blend_path}")

        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".json", prefix="blendtools_", delete=False, encoding="utf-8"
        ) as handle:
            json.dump(payload or {}, handle)
            payload_path = handle.name

        cmd = self.build_command(str(blend.resolve()), str(script_path(script_name)), payload_path)
        if self.config.verbose:
            progress_print("Running: " + " ".join(cmd))

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
            try:
                output = decode_output(proc.stdout, on_event, echo=self.config.verbose)
                returncode = proc.wait()
            except BaseException:
                proc.kill()
                proc.wait()
                raise
            finally:
                proc.stdout.close()
        finally:
            os.remove(payload_path)

        if output.error is not None:
            raise BlenderScriptError(
                output.error.get("message", "Blender script failed"),
                output.error.get("traceback", ""),
            )
        if returncode != 0:
            raise BlenderProcessError(
                f"Blender failed running {script_name}", returncode, output.log
            )
        if not output.has_result:
            raise BlenderProcessError(
                f"Blender produced no result for {script_name}", returncode, output.log
            )
        return output.result
