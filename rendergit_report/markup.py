from __future__ import annotations

import html
import shutil
import subprocess
import sys
from typing import List

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers.diff import DiffLexer

from rendergit_report.errors import MarkupError

DELTA_THEME = "gruvbox-light"
DELTA_OPTIONS = ["--paging=never", "--wrap-max-lines=0", "--width=200", "--true-color=always"]
AHA_OPTIONS = ["--no-header", "--line-fix"]

RENDERERS = ("pygments", "delta")


def plain_markup(patch: str) -> str:
    return f'<pre class="diff"><code>{html.escape(patch)}</code></pre>'


class PygmentsMarkup:
    name = "pygments"

    def __init__(self) -> None:
        self.formatter = HtmlFormatter(nowrap=False)

    def css(self) -> str:
        return self.formatter.get_style_defs(".highlight")

    def render(self, patch: str) -> str:
        if not patch.strip():
            return "<p class='meta'><em>No textual changes</em></p>"
        try:
            return highlight(patch, DiffLexer(), self.formatter)
        except Exception as exc:  # pygments raises arbitrary errors on odd input
            raise MarkupError(f"pygments failed: {exc}") from exc


class DeltaMarkup:
    """Colorize with delta, then translate its ANSI output to HTML with aha."""

    name = "delta"

    def __init__(self, theme: str = DELTA_THEME) -> None:
        self.theme = theme

    @staticmethod
    def available() -> bool:
        return all(shutil.which(cmd) for cmd in ("delta", "aha"))

    def css(self) -> str:
        return ""

    def _pipe(self, cmd: List[str], data: str) -> str:
        try:
            cp = subprocess.run(cmd, input=data, text=True, capture_output=True, check=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise MarkupError(f"{cmd[0]} failed: {exc}") from exc
        return cp.stdout

    def render(self, patch: str) -> str:
        if not patch.strip():
            return "<p class='meta'><em>No textual changes</em></p>"
        colored = self._pipe(["delta", *DELTA_OPTIONS, f"--syntax-theme={self.theme}"], patch)
        return self._pipe(["aha", *AHA_OPTIONS], colored)


def select_markup(name: str, notices: List[str]):
    """Return the requested markup collaborator, degrading to pygments."""
    if name == "delta":
        if DeltaMarkup.available():
            return DeltaMarkup()
        msg = "delta/aha not found in PATH; falling back to pygments highlighting."
        print(f"⚠️  {msg}", file=sys.stderr)
        notices.append(msg)
    elif name != "pygments":
        raise ValueError(f"unknown renderer: {name}")
    return PygmentsMarkup()
