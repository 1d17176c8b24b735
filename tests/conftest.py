from __future__ import annotations

import dataclasses
import subprocess
from pathlib import Path
from typing import Dict, List

import pytest

from rendergit_report.history_range import CommitRange


def git(cwd: Path, *args: str) -> str:
    cp = subprocess.run(["git", *args], cwd=cwd, check=True, text=True, capture_output=True)
    return cp.stdout.strip()


@dataclasses.dataclass
class GitRepo:
    path: Path
    shas: Dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def dir(self) -> str:
        return str(self.path)

    def commit(self, name: str, filename: str = "file.txt", line: str = "", message: str = "") -> str:
        target = self.path / filename
        existing = target.read_text(encoding="utf-8") if target.exists() else ""
        target.write_text(existing + (line or name) + "\n", encoding="utf-8")
        git(self.path, "add", filename)
        git(self.path, "commit", "-q", "-m", message or name)
        self.shas[name] = git(self.path, "rev-parse", "HEAD")
        return self.shas[name]


def init_repo(path: Path) -> GitRepo:
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q")
    git(path, "config", "user.name", "Test User")
    git(path, "config", "user.email", "test@example.com")
    git(path, "config", "commit.gpgsign", "false")
    return GitRepo(path=path)


@pytest.fixture
def linear_repo(tmp_path: Path) -> GitRepo:
    """base -> one -> two -> three on a single branch."""
    repo = init_repo(tmp_path / "linear")
    for name in ("base", "one", "two", "three"):
        repo.commit(name)
    return repo


@pytest.fixture
def merge_repo(tmp_path: Path) -> GitRepo:
    """
    base -> main1 -> merge (first parent main1, second parent side1)
        \\-> side1
    """
    repo = init_repo(tmp_path / "merge")
    repo.commit("base")
    main_branch = git(repo.path, "rev-parse", "--abbrev-ref", "HEAD")
    git(repo.path, "checkout", "-q", "-b", "side")
    repo.commit("side1", filename="side.txt")
    git(repo.path, "checkout", "-q", main_branch)
    repo.commit("main1")
    git(repo.path, "merge", "-q", "--no-ff", "--no-edit", "side")
    repo.shas["merge"] = git(repo.path, "rev-parse", "HEAD")
    return repo


def fake_sha(n: int) -> str:
    return f"{n:x}".rjust(2, "0") * 20


@pytest.fixture
def fake_commits() -> List[str]:
    return [fake_sha(n) for n in range(0x11, 0x17)]


@pytest.fixture
def fake_range(fake_commits: List[str]) -> CommitRange:
    return CommitRange(base="0" * 40, tip=fake_commits[-1], commits=tuple(fake_commits))


@pytest.fixture
def resolver(fake_commits: List[str]):
    """Prefix lookup over the range plus one commit outside of it."""
    known = list(fake_commits) + [fake_sha(0xEE)]

    def resolve(ref: str):
        matches = [sha for sha in known if sha.startswith(ref.lower())]
        return matches[0] if len(matches) == 1 else None

    return resolve
