from __future__ import annotations

import os
import pathlib
import shlex
import subprocess
import sys
import tempfile
from typing import Callable, List, Optional, TextIO

from rendergit_report.errors import PlanError, PlanSourceError
from rendergit_report.history_range import CommitRange
from rendergit_report.plan import PLAN_HELP, PlanRecord, Resolver, comment_block, parse_plan

MAX_EDIT_ATTEMPTS = 3
SCISSORS = "# ------------------------ >8 ------------------------"

Editor = Callable[[str], None]
Ask = Callable[[str], bool]


def read_plan_file(path: str) -> str:
    try:
        return pathlib.Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise PlanSourceError(f"cannot read history plan {path}: {exc}") from exc


def read_plan_stream(stream: TextIO) -> str:
    return stream.read()


def editor_command() -> str:
    for var in ("GIT_EDITOR", "VISUAL", "EDITOR"):
        value = os.environ.get(var, "").strip()
        if value:
            return value
    return "vi"


def launch_editor(path: str) -> None:
    cmd = shlex.split(editor_command()) + [path]
    try:
        cp = subprocess.run(cmd)
    except OSError as exc:
        raise PlanSourceError(f"could not start editor '{cmd[0]}': {exc}") from exc
    if cp.returncode != 0:
        raise PlanSourceError(f"editor '{cmd[0]}' exited with status {cp.returncode}; aborting.")


def ask_retry(prompt: str) -> bool:
    if not sys.stdin.isatty():
        return False
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("", "y", "yes")


def strip_scissors(text: str) -> str:
    """Drop everything from the scissors line on."""
    kept: List[str] = []
    for line in text.splitlines(keepends=True):
        if line.rstrip("\r\n") == SCISSORS:
            break
        kept.append(line)
    return "".join(kept)


def editor_buffer(plan_text: str, range_label: str, error: Optional[PlanError] = None) -> str:
    body = plan_text if plan_text.endswith("\n") or not plan_text else plan_text + "\n"
    help_lines = [SCISSORS, "# Do not modify or remove the line above.", "# Everything below it is ignored.", "#"]
    if error is not None:
        help_lines += [f"# ERROR: {error}", "# Fix the plan above and save again.", "#"]
    help_lines.append(f"# History plan for {range_label} (oldest first)")
    return body + "\n" + "\n".join(help_lines) + "\n" + comment_block(PLAN_HELP)


def edit_plan(
    initial: str,
    commit_range: CommitRange,
    resolve: Resolver,
    range_label: str = "",
    editor: Optional[Editor] = None,
    ask: Optional[Ask] = None,
) -> List[PlanRecord]:
    """
    Let the user edit the plan until it parses, within MAX_EDIT_ATTEMPTS.

    Each rejected attempt is discarded entirely; the user's text comes back
    with the error shown below the scissors line.
    """
    editor = editor or launch_editor
    ask = ask or ask_retry
    text = initial
    error: Optional[PlanError] = None

    with tempfile.TemporaryDirectory(prefix="rendergit_plan_") as tmpdir:
        path = os.path.join(tmpdir, "history-plan")
        for attempt in range(1, MAX_EDIT_ATTEMPTS + 1):
            pathlib.Path(path).write_text(editor_buffer(text, range_label, error), encoding="utf-8")
            editor(path)
            text = strip_scissors(pathlib.Path(path).read_text(encoding="utf-8"))
            try:
                return parse_plan(text, commit_range, resolve)
            except PlanError as exc:
                error = exc
                print(f"❌ Invalid history plan: {exc}", file=sys.stderr)
                if attempt == MAX_EDIT_ATTEMPTS or not ask("Edit the history plan again? [Y/n] "):
                    raise
