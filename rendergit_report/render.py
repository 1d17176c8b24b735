from __future__ import annotations

import dataclasses
import html
import sys
from typing import Dict, List, Optional, Sequence, Tuple

from rendergit_report import gitops
from rendergit_report.blocks import Block, BundleRun, Dropped, Single, SquashRun
from rendergit_report.errors import GitError, MarkupError
from rendergit_report.markup import plain_markup
from rendergit_report.plan import PlanRecord

DEFAULT_CONTEXT = 3
DEFAULT_MAX_DIFF_BYTES = 512 * 1024  # 512 KiB per diff

NO_REASON = "no reason provided"

_STATUS_TITLES = {
    "A": "Added",
    "M": "Modified",
    "D": "Deleted",
    "R": "Renamed",
    "C": "Copied",
    "T": "Type change",
    "U": "Unmerged",
    "X": "Unknown",
    "B": "Broken",
}


def bytes_human(n: int) -> str:
    units = ["B", "KiB", "MiB", "GiB", "TiB"]
    f = float(n)
    i = 0
    while f >= 1024.0 and i < len(units) - 1:
        f /= 1024.0
        i += 1
    return f"{int(f)} {units[i]}" if i == 0 else f"{f:.1f} {units[i]}"


def truncate_patch(patch: str, max_bytes: int) -> Tuple[str, bool]:
    b = patch.encode("utf-8", errors="ignore")
    if max_bytes <= 0 or len(b) <= max_bytes:
        return patch, False
    return b[:max_bytes].decode("utf-8", errors="ignore") + "\n\n... [diff truncated]\n", True


def status_badge(s: str) -> str:
    # Reduce noise for rename/copy details like "R100" -> "R"
    label = s[0] if s and s[0].isalpha() else s
    title = _STATUS_TITLES.get(label, s)
    return f'<span class="badge badge-{label}" title="{html.escape(title)}">{html.escape(label)}</span>'


def file_list(name_status: Sequence[Tuple[str, str]]) -> str:
    if not name_status:
        return "<em>No file changes</em>"
    items = [f"<li>{status_badge(st)} <code>{html.escape(path)}</code></li>" for st, path in name_status]
    return "<ul class='file-list'>" + "\n".join(items) + "</ul>"


def notice(text: str, kind: str = "info") -> str:
    return f"<div class='notice notice-{kind}'>{text}</div>"


@dataclasses.dataclass
class DiffRender:
    files_changed: int
    insertions: int
    deletions: int
    name_status: List[Tuple[str, str]]
    patch_truncated: bool
    patch_html: str


class BlockRenderer:
    """Turns compiled plan blocks into self-contained HTML fragments."""

    def __init__(self, repo_dir: str, markup, context: int = DEFAULT_CONTEXT,
                 max_diff_bytes: int = DEFAULT_MAX_DIFF_BYTES) -> None:
        self.repo_dir = repo_dir
        self.markup = markup
        self.context = context
        self.max_diff_bytes = max_diff_bytes
        self.failures = 0
        self._info: Dict[str, gitops.CommitInfo] = {}

    # ---- collaborators -------------------------------------------------------

    def info(self, sha: str) -> gitops.CommitInfo:
        if sha not in self._info:
            self._info[sha] = gitops.get_commit_info(self.repo_dir, sha)
        return self._info[sha]

    def diff(self, parent: str, sha: str) -> DiffRender:
        files_changed, ins, dels = gitops.get_numstat(self.repo_dir, parent, sha)
        name_status = gitops.get_name_status(self.repo_dir, parent, sha)
        raw_patch = gitops.get_patch(self.repo_dir, parent, sha, self.context)
        raw_patch, truncated = truncate_patch(raw_patch, self.max_diff_bytes)
        return DiffRender(
            files_changed=files_changed,
            insertions=ins,
            deletions=dels,
            name_status=name_status,
            patch_truncated=truncated,
            patch_html=self.markup.render(raw_patch),
        )

    def _diff_or_fallback(self, parent: str, sha: str) -> Tuple[Optional[DiffRender], str]:
        """Render a diff; on failure warn and return plain-text markup instead."""
        try:
            return self.diff(parent, sha), ""
        except (GitError, MarkupError, OSError, ValueError) as exc:
            self.failures += 1
            print(f"⚠️  Warning: diff for {sha[:8]} failed ({exc}); including plain text.", file=sys.stderr)
        try:
            raw, _ = truncate_patch(gitops.get_patch(self.repo_dir, parent, sha, self.context), self.max_diff_bytes)
        except (GitError, ValueError):
            return None, notice("The diff for this commit could not be rendered.", "warn")
        return None, notice("The highlighted diff could not be rendered; showing plain text instead.", "warn") + plain_markup(raw)

    # ---- pieces --------------------------------------------------------------

    def commit_header(self, c: gitops.CommitInfo, level: int = 2, extra: str = "") -> str:
        parent_txt = c.first_parent[:8] if c.first_parent else "∅ (root)"
        subject = html.escape(c.subject) if c.subject else "(no subject)"
        return (
            f"<h{level}><code class='sha'>{c.short}</code> {subject}</h{level}>"
            f"<div class='meta'>"
            f"<strong>Commit:</strong> <code>{c.sha}</code><br>"
            f"<strong>Author:</strong> {html.escape(c.author_name)} &lt;{html.escape(c.author_email)}&gt; "
            f"&middot; <strong>Date:</strong> {html.escape(c.author_date_iso)} "
            f"&middot; <strong>Parent:</strong> {html.escape(parent_txt)} "
            f"{'&middot; <strong>Merge:</strong> yes ' if c.is_merge else ''}"
            f"{extra}"
            f"</div>"
        )

    @staticmethod
    def plan_note(record: PlanRecord) -> str:
        if not record.message:
            return ""
        return f"<div class='plan-note'><strong>Plan note:</strong> {html.escape(record.message)}</div>"

    @staticmethod
    def commit_message(c: gitops.CommitInfo) -> str:
        return f"<div class='commit-msg'>{html.escape(c.message)}</div>"

    def diff_section(self, parent: str, sha: str, title: str) -> str:
        r, fallback = self._diff_or_fallback(parent, sha)
        if r is None:
            return f"<h3>{html.escape(title)}</h3><div class='diff'>{fallback}</div>"
        truncated = "<span class='pill warn'>truncated</span>" if r.patch_truncated else ""
        stats = (
            f"<div class='stats'>"
            f"<span class='pill'>{r.files_changed} files</span>"
            f"<span class='pill plus'>+{r.insertions}</span>"
            f"<span class='pill minus'>-{r.deletions}</span>"
            f"{truncated}"
            f"</div>"
        )
        return (
            f"<h3>{html.escape(title)}</h3>"
            f"{stats}"
            f"<div class='changed'>{file_list(r.name_status)}</div>"
            f"<div class='diff highlight'>{r.patch_html}</div>"
        )

    # ---- blocks --------------------------------------------------------------

    def render_single(self, record: PlanRecord, section: str = "") -> str:
        c = self.info(record.commit)
        extra = f"&middot; <strong>Section:</strong> {html.escape(section)}" if section else ""
        return (
            f"<section class='commit-block' id='commit-{c.sha}'>"
            f"{self.commit_header(c, extra=extra)}"
            f"{self.plan_note(record)}"
            f"<h3>Commit-Message</h3>{self.commit_message(c)}"
            f"{self.diff_section(gitops.parent_ref(c), c.sha, 'Changes made in this commit (diff against parent):')}"
            f"</section>"
        )

    def render_dropped(self, record: PlanRecord) -> str:
        c = self.info(record.commit)
        reason = record.reason or NO_REASON
        return (
            f"<section class='commit-block dropped' id='commit-{c.sha}'>"
            f"{self.commit_header(c)}"
            f"{self.plan_note(record)}"
            + notice(
                "<strong>Omitted:</strong> this commit was dropped from the report; "
                "its diff against neighboring commits is not shown. "
                f"<strong>Reason:</strong> {html.escape(reason)}",
                "drop",
            )
            + "</section>"
        )

    def render_squash(self, block: SquashRun) -> str:
        first = self.info(block.first.commit)
        last = self.info(block.last.commit)
        members = []
        for record in block.records:
            c = self.info(record.commit)
            members.append(f"<li>{self.commit_header(c, level=4)}{self.plan_note(record)}{self.commit_message(c)}</li>")
        count = len(block.records)
        title = f"Squashed {count} commit{'s' if count != 1 else ''}: {first.short}..{last.short}"
        return (
            f"<section class='commit-block squash' id='squash-{first.sha}'>"
            f"<h2>{html.escape(title)}</h2>"
            f"<div class='meta'><strong>From:</strong> <code>{first.sha}</code><br>"
            f"<strong>To:</strong> <code>{last.sha}</code></div>"
            + notice(
                "<strong>Scope change:</strong> the diff below combines all commits of this run "
                "into one change; intermediate transitions are not shown individually.",
                "scope",
            )
            + f"<h3>Squashed commits</h3><ol class='squash-members'>{''.join(members)}</ol>"
            + self.diff_section(gitops.parent_ref(first), last.sha, "Combined changes (diff against parent of first commit):")
            + "</section>"
        )

    def render_bundle(self, block: BundleRun) -> str:
        label = html.escape(block.label)
        parts = [
            f"<div class='section-marker begin'><h2>BEGINNING OF SECTION {label}</h2>"
            + notice(
                "Commits in this section are grouped for reading only; "
                "grouping does not reduce diff scope and each commit is still shown against its own parent.",
                "bundle",
            )
            + "</div>"
        ]
        for record in block.records:
            section = record.section if record.section != block.label else ""
            parts.append(self.render_single(record, section=section))
        parts.append(f"<div class='section-marker end'><h2>END OF SECTION {label}</h2></div>")
        return "\n".join(parts)

    def render(self, block: Block) -> str:
        if isinstance(block, Single):
            return self.render_single(block.record)
        if isinstance(block, Dropped):
            return self.render_dropped(block.record)
        if isinstance(block, SquashRun):
            return self.render_squash(block)
        if isinstance(block, BundleRun):
            return self.render_bundle(block)
        raise TypeError(f"unknown block type: {type(block).__name__}")

    def render_all(self, blocks: Sequence[Block]) -> List[str]:
        return [self.render(block) for block in blocks]
