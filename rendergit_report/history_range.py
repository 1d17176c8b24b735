from __future__ import annotations

import dataclasses
from typing import Dict, Iterator, Optional, Tuple

from rendergit_report import gitops
from rendergit_report.errors import RangeError


@dataclasses.dataclass(frozen=True)
class CommitRange:
    """Commits strictly after `base` up to and including `tip`, oldest first."""

    base: str
    tip: str
    commits: Tuple[str, ...]
    _positions: Dict[str, int] = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        positions = {sha: i for i, sha in enumerate(self.commits)}
        if len(positions) != len(self.commits):
            raise ValueError("commit range contains duplicate commits")
        object.__setattr__(self, "_positions", positions)

    def position(self, sha: str) -> Optional[int]:
        return self._positions.get(sha)

    def __contains__(self, sha: object) -> bool:
        return sha in self._positions

    def __len__(self) -> int:
        return len(self.commits)

    def __iter__(self) -> Iterator[str]:
        return iter(self.commits)


def resolve_range(repo_dir: str, a: str, b: str) -> CommitRange:
    """
    Resolve A (exclusive) .. B (inclusive) along B's first-parent chain.

    A must be an ancestor of B *and* sit on B's first-parent chain; being
    reachable only through a merged-in side branch is not enough.
    """
    base = gitops.resolve_commit(repo_dir, a)
    if base is None:
        raise RangeError(f"'{a}' is not a valid commit-ish.")
    tip = gitops.resolve_commit(repo_dir, b)
    if tip is None:
        raise RangeError(f"'{b}' is not a valid commit-ish.")

    if not gitops.is_ancestor(repo_dir, base, tip):
        raise RangeError(
            f"expected A to be an ancestor of B, but got A='{a}' and B='{b}'.\n"
            f"Hint: swap commits if they were provided in reverse order: {b} {a}"
        )

    if base not in gitops.first_parent_chain(repo_dir, tip):
        raise RangeError(
            f"first-parent path of B ('{b}') does not include A ('{a}').\n"
            "Hint: choose an A commit from B's first-parent history (or swap commits if reversed)."
        )

    commits = gitops.first_parent_range(repo_dir, base, tip)
    return CommitRange(base=base, tip=tip, commits=tuple(commits))


def default_bounds(repo_dir: str) -> Tuple[str, str]:
    """Bounds used by interactive mode when none are given: root of HEAD .. HEAD."""
    return gitops.root_commit(repo_dir, "HEAD"), "HEAD"
