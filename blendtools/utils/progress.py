"""Progress bars and progress-safe console output on stderr."""

from __future__ import annotations

from dataclasses import dataclass
import random
import sys
from typing import Iterable, Optional, TypeVar

from tqdm import tqdm

T = TypeVar("T")

_BAR_CHARS = "⣀⣄⣆⣇⣧⣶⣷⣿"
_DEFAULT_BAR_FORMAT = "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"
_ANSI_RESET = "\x1b[0m"
_BRIGHT_COLORS = [
    "\x1b[92m",  # bright green
    "\x1b[93m",  # bright yellow
    "\x1b[96m",  # bright cyan
    "\x1b[95m",  # bright magenta
    "\x1b[94m",  # bright blue
]


@dataclass
class _DummyBar:
    total: Optional[int] = None
    n: int = 0

    def update(self, n: int = 1) -> None:
        self.n += n

    def set_postfix_str(self, s: str = "", refresh: bool = True) -> None:
        return None

    def close(self) -> None:
        return None


def _bar_format() -> str:
    if not sys.stderr.isatty():
        return _DEFAULT_BAR_FORMAT
    color = random.choice(_BRIGHT_COLORS)
    return f"{color}{_DEFAULT_BAR_FORMAT}{_ANSI_RESET}"


def iter_progress(
    iterable: Iterable[T],
    *,
    desc: Optional[str] = None,
    total: Optional[int] = None,
    enabled: bool = True,
) -> Iterable[T]:
    if not enabled:
        return iterable
    return tqdm(
        iterable,
        desc=desc,
        total=total,
        ascii=_BAR_CHARS,
        bar_format=_bar_format(),
        file=sys.stderr,
        leave=True,
        dynamic_ncols=True,
    )


def progress_bar(
    total: int,
    *,
    desc: Optional[str] = None,
    unit: str = "it",
    enabled: bool = True,
):
    """Return a tqdm bar, or a no-op stand-in when progress is disabled."""
    if not enabled:
        return _DummyBar(total=total)
    return tqdm(
        total=total,
        desc=desc,
        unit=unit,
        ascii=_BAR_CHARS,
        bar_format=_bar_format(),
        file=sys.stderr,
        leave=True,
        dynamic_ncols=True,
    )


def progress_print(*args: object, enabled: bool = True) -> None:
    """Print to stderr without disrupting an active tqdm bar."""
    if not enabled:
        return
    tqdm.write(" ".join(str(arg) for arg in args), file=sys.stderr)
