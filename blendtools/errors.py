"""Exception hierarchy for the Blender command wrappers."""

from __future__ import annotations

from typing import List, Optional, Sequence


class BlendToolsError(Exception):
    """Base class for errors reported by the command wrappers."""


class BlenderNotFoundError(BlendToolsError):
    """No usable Blender executable could be located."""


class NotABlendFileError(BlendToolsError):
    """The input file does not carry a .blend header."""


class BlenderProcessError(BlendToolsError):
    """Blender exited abnormally or produced no result."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        output_tail: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output_tail: List[str] = list(output_tail or [])

    def __str__(self) -> str:
        text = super().__str__()
        if self.returncode is not None:
            text = f"{text} (exit status {self.returncode})"
        if self.output_tail:
            tail = "\n".join(f"  | {line}" for line in self.output_tail[-20:])
            text = f"{text}\nLast Blender output:\n{tail}"
        return text


class BlenderScriptError(BlendToolsError):
    """The embedded script raised inside Blender."""

    def __init__(self, message: str, traceback_text: str = "") -> None:
        super().__init__(message)
        self.traceback_text = traceback_text


class OutputExistsError(BlendToolsError):
    """Planned outputs already exist and the policy is ``error``."""

    def __init__(self, paths: Sequence[str]) -> None:
        self.paths = list(paths)
        shown = ", ".join(self.paths[:5])
        more = f" (+{len(self.paths) - 5} more)" if len(self.paths) > 5 else ""
        super().__init__(
            f"{len(self.paths)} output file(s) already exist: {shown}{more}. "
            "Use --if-exists overwrite or --if-exists skip."
        )
