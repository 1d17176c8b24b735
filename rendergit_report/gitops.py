from __future__ import annotations

import dataclasses
import subprocess
from typing import List, Optional, Tuple

from rendergit_report.errors import GitError

# ---- constants ---------------------------------------------------------------

EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

# field sep 0x1f; %B last so a message may contain anything but NUL
_INFO_FORMAT = "%H%x1f%P%x1f%an%x1f%ae%x1f%ad%x1f%s%x1f%B"


def run(cmd: List[str], cwd: str | None = None, check: bool = True) -> subprocess.CompletedProcess:
    # commit content is not guaranteed to be UTF-8
    return subprocess.run(cmd, cwd=cwd, check=check, encoding="utf-8", errors="replace", capture_output=True)


def git(repo_dir: str, *args: str) -> str:
    """Run a git subcommand and return stdout, raising GitError on failure."""
    try:
        cp = run(["git", *args], cwd=repo_dir)
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
        raise GitError(f"git {' '.join(args)} failed: {detail}") from exc
    except OSError as exc:
        raise GitError(f"could not run git: {exc}") from exc
    return cp.stdout


# ---- commit lookups ----------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class CommitInfo:
    sha: str
    parents: Tuple[str, ...]
    author_name: str
    author_email: str
    author_date_iso: str
    subject: str
    message: str

    @property
    def first_parent(self) -> Optional[str]:
        return self.parents[0] if self.parents else None

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def short(self) -> str:
        return self.sha[:8]


def resolve_commit(repo_dir: str, ref: str) -> Optional[str]:
    """Return the full sha `ref` names, or None for unknown or ambiguous refs."""
    cp = run(["git", "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=repo_dir, check=False)
    if cp.returncode != 0:
        return None
    sha = cp.stdout.strip().lower()
    return sha or None


def is_ancestor(repo_dir: str, ancestor: str, descendant: str) -> bool:
    cp = run(["git", "merge-base", "--is-ancestor", ancestor, descendant], cwd=repo_dir, check=False)
    if cp.returncode == 0:
        return True
    if cp.returncode == 1:
        return False
    raise GitError(f"git merge-base --is-ancestor failed: {cp.stderr.strip()}")


def first_parent_chain(repo_dir: str, tip: str) -> List[str]:
    """All commits on tip's first-parent chain, newest first."""
    return git(repo_dir, "rev-list", "--first-parent", tip).split()


def first_parent_range(repo_dir: str, base: str, tip: str) -> List[str]:
    """Commits of base..tip along the first-parent chain, oldest first."""
    return git(repo_dir, "rev-list", "--first-parent", "--reverse", f"{base}..{tip}").split()


def root_commit(repo_dir: str, tip: str) -> str:
    chain = first_parent_chain(repo_dir, tip)
    if not chain:
        raise GitError(f"no commits reachable from {tip}")
    return chain[-1]


def repo_toplevel(repo_dir: str) -> str:
    return git(repo_dir, "rev-parse", "--show-toplevel").strip()


def get_commit_info(repo_dir: str, sha: str) -> CommitInfo:
    out = git(repo_dir, "log", "-1", "--date=iso-strict", "--pretty=format:" + _INFO_FORMAT, sha)
    parts = out.split("\x1f", 6)
    if len(parts) != 7:
        raise GitError(f"unexpected git log output for {sha}")
    h, p, an, ae, ad, s, body = parts
    return CommitInfo(
        sha=h,
        parents=tuple(x for x in p.split() if x),
        author_name=an,
        author_email=ae,
        author_date_iso=ad,
        subject=s.strip(),
        message=body.strip("\n"),
    )


def parent_ref(info: CommitInfo) -> str:
    """Diff base for a commit: its first parent, or the empty tree for a root."""
    return info.first_parent if info.first_parent else EMPTY_TREE_SHA


# ---- diffs -------------------------------------------------------------------

def get_numstat(repo_dir: str, parent: str, sha: str) -> Tuple[int, int, int]:
    """
    Return (files_changed, insertions, deletions) using --numstat.
    """
    out = git(repo_dir, "diff", "--numstat", "-M", "-C", parent, sha)
    files_changed = insertions = deletions = 0
    for line in out.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        a, d = parts[0], parts[1]
        if a.isdigit():
            insertions += int(a)
        if d.isdigit():
            deletions += int(d)
        files_changed += 1
    return files_changed, insertions, deletions


def get_name_status(repo_dir: str, parent: str, sha: str) -> List[Tuple[str, str]]:
    out = git(repo_dir, "diff", "--name-status", "-M", "-C", parent, sha)
    result: List[Tuple[str, str]] = []
    for line in out.splitlines():
        # e.g. "M\tpath" or "R100\told\tnew"
        parts = line.split("\t")
        if len(parts) < 2:
            continue
        result.append((parts[0], parts[-1]))
    return result


def get_patch(repo_dir: str, parent: str, sha: str, context: int) -> str:
    return git(repo_dir, "diff", "-M", "-C", f"-U{context}", "--no-color", "--no-ext-diff", parent, sha)


def get_no_index_patch(old_path: str, new_path: str, cwd: str | None = None) -> str:
    # exit status 1 only means the files differ
    cp = run(["git", "diff", "--no-index", "--no-ext-diff", "--no-color", old_path, new_path], cwd=cwd, check=False)
    if cp.returncode not in (0, 1):
        raise GitError(f"git diff --no-index failed: {cp.stderr.strip()}")
    return cp.stdout
