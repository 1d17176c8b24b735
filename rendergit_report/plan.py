"""
History plan parsing.

A plan is line oriented, one directive per line, in git-rebase style:

    <action> <hash> [%<annotation>] [#<message>]

`action` is one of pick, drop, squash, bundle. The `%` annotation is a drop
reason or a bundle section label; pick and squash take none. `#` starts a
free-text message. Blank lines and lines starting with `#` are ignored.

Directives must walk forward through the commit range: commits may be left
out, never repeated or reordered.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from rendergit_report.errors import PlanError
from rendergit_report.history_range import CommitRange

PICK = "pick"
DROP = "drop"
SQUASH = "squash"
BUNDLE = "bundle"
ACTIONS = (PICK, DROP, SQUASH, BUNDLE)

# actions whose `%` annotation carries meaning
_ANNOTATED = frozenset({DROP, BUNDLE})

_DIRECTIVE_RE = re.compile(r"^\s*(?P<action>[A-Za-z]+)\s+(?P<hash>\S+)(?P<tail>.*)$")
_HASH_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")

PLAN_HELP = """\
Commands:
  pick <hash> [# message]            render the commit and its diff
  drop <hash> [% reason] [# message] leave the diff out, show a notice instead
  squash <hash> [# message]          merge contiguous squash lines into one diff
  bundle <hash> [% section] [# msg]  group contiguous bundle lines in a section

The first line of a bundle run must name its section with %SECTION; later
lines inherit it or switch to a new one with their own %SECTION.
Lines may be removed but must stay in history order (oldest first).
Use \\# to put a literal '#' inside a %annotation.
Blank lines and lines starting with '#' are ignored.
"""

Resolver = Callable[[str], Optional[str]]


@dataclasses.dataclass(frozen=True)
class PlanRecord:
    action: str
    commit: str
    position: int
    reason: str = ""
    section: str = ""
    message: str = ""
    line_no: int = 0


@dataclasses.dataclass
class _PlanParseState:
    last_position: int = -1
    last_action: Optional[str] = None
    section: str = ""
    seen: Dict[str, int] = dataclasses.field(default_factory=dict)
    records: List[PlanRecord] = dataclasses.field(default_factory=list)


def split_tail(tail: str) -> Tuple[Optional[str], str]:
    """
    Split the text after the hash into (annotation, message).

    The annotation is None when no `%` is present. Both parts are trimmed;
    `\\#` inside the annotation is unescaped to `#`.
    """
    tail = tail.strip()
    if not tail:
        return None, ""
    if tail.startswith("#"):
        return None, tail[1:].strip()
    if not tail.startswith("%"):
        raise ValueError("expected %annotation or #message after the hash")

    chars: List[str] = []
    i = 1
    while i < len(tail):
        ch = tail[i]
        if ch == "\\" and i + 1 < len(tail) and tail[i + 1] == "#":
            chars.append("#")
            i += 2
            continue
        if ch == "#":
            return "".join(chars).strip(), tail[i + 1:].strip()
        chars.append(ch)
        i += 1
    return "".join(chars).strip(), ""


def _parse_line(state: _PlanParseState, line_no: int, line: str,
                commit_range: CommitRange, resolve: Resolver) -> PlanRecord:
    def fail(reason: str) -> PlanError:
        return PlanError(line_no, line, reason)

    m = _DIRECTIVE_RE.match(line)
    if not m:
        raise fail("expected '<action> <hash>'")
    action, ref, tail = m.group("action"), m.group("hash"), m.group("tail")

    if action not in ACTIONS:
        raise fail(f"unknown action '{action}' (expected one of {', '.join(ACTIONS)})")

    # the hash may run straight into its %annotation or #message
    for marker in "%#":
        if marker in ref:
            ref, rest = ref.split(marker, 1)
            tail = marker + rest + tail
            break
    if not _HASH_RE.match(ref):
        raise fail(f"'{ref}' is not a commit hash (7-40 hex digits)")

    try:
        annotation, message = split_tail(tail)
    except ValueError as exc:
        raise fail(str(exc)) from None

    sha = resolve(ref.lower())
    if sha is None:
        raise fail(f"'{ref}' does not resolve to a commit")
    sha = sha.lower()

    position = commit_range.position(sha)
    if position is None:
        raise fail(f"commit {sha[:8]} is not in range")
    if sha in state.seen:
        raise fail(f"duplicate commit {sha[:8]} (already used on line {state.seen[sha]})")
    if position <= state.last_position:
        raise fail(f"order violation: commit {sha[:8]} comes before the previous line's commit in history")

    if annotation is not None and action not in _ANNOTATED:
        raise fail(f"'{action}' does not take a %annotation")

    reason = section = ""
    if action == DROP:
        reason = annotation or ""
    elif action == BUNDLE:
        continuing = state.last_action == BUNDLE
        if annotation:
            section = annotation
        elif continuing:
            section = state.section
        else:
            raise fail("first commit in a bundle run must include %SECTION")
        state.section = section

    state.seen[sha] = line_no
    state.last_position = position
    state.last_action = action
    return PlanRecord(
        action=action,
        commit=sha,
        position=position,
        reason=reason,
        section=section,
        message=message,
        line_no=line_no,
    )


def parse_plan(text: str, commit_range: CommitRange, resolve: Resolver) -> List[PlanRecord]:
    """
    Validate `text` against `commit_range` and return its records in order.

    `resolve` maps a (possibly abbreviated) hash to a full sha or None. The
    whole plan is rejected with a PlanError on the first bad line.
    """
    state = _PlanParseState()
    for line_no, raw in enumerate(text.splitlines(), 1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        state.records.append(_parse_line(state, line_no, raw, commit_range, resolve))
    return list(state.records)


def synthesize_default_plan(commit_range: CommitRange, subjects: Optional[Mapping[str, str]] = None) -> str:
    """One `pick` line per commit in range order, subjects as messages."""
    lines = []
    for sha in commit_range:
        subject = (subjects or {}).get(sha, "").strip()
        lines.append(f"pick {sha} # {subject}" if subject else f"pick {sha}")
    return "\n".join(lines) + ("\n" if lines else "")


def comment_block(text: str) -> str:
    return "".join(f"# {line}".rstrip() + "\n" for line in text.splitlines())
