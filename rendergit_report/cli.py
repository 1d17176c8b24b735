from __future__ import annotations

import argparse
import dataclasses
import functools
import os
import pathlib
import shutil
import sys
from typing import List, Optional, Sequence

from rendergit_report import __version__, gitops
from rendergit_report.blocks import compile_blocks
from rendergit_report.document import build_html, normalize_output, render_demo_section, repo_name, write_report
from rendergit_report.errors import ReportError, ReportInputError
from rendergit_report.history_range import CommitRange, default_bounds, resolve_range
from rendergit_report.markup import RENDERERS, select_markup
from rendergit_report.plan import PlanRecord, parse_plan, synthesize_default_plan
from rendergit_report.plan_source import edit_plan, read_plan_file, read_plan_stream
from rendergit_report.render import DEFAULT_CONTEXT, DEFAULT_MAX_DIFF_BYTES, BlockRenderer, bytes_human

DEFAULT_DEMO_OLD = "testfileold"
DEFAULT_DEMO_NEW = "testfilenew"


@dataclasses.dataclass
class ReportOptions:
    repo_dir: str
    a_commit: str
    b_commit: str
    output: Optional[str]
    include_demo: bool
    demo_old: str
    demo_new: str
    interactive: bool
    plan_file: Optional[str]
    plan_stdin: bool
    renderer: str
    context: int
    max_diff_bytes: int
    print_plan: bool


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="rendergit-report",
        description=(
            "Render per-commit diffs along the first-parent chain from A (exclusive) "
            "to B (inclusive) as a PDF report, optionally reshaped by a history plan."
        ),
        epilog=(
            "Range semantics: A must be an ancestor of B and lie on B's first-parent chain. "
            "Commits are collected oldest to newest. The demo section is opt-in and not derived "
            "from commit history."
        ),
    )
    ap.add_argument("a_commit", nargs="?", metavar="A", help="Exclusive lower bound (commit-ish)")
    ap.add_argument("b_commit", nargs="?", metavar="B", help="Inclusive upper bound (commit-ish)")
    ap.add_argument("--out", "--output", "-o", dest="output", help="Output file, .pdf or .html (default: diff-report.pdf)")
    ap.add_argument("--repo", default=".", help="Repository directory (default: current directory)")
    ap.add_argument("--include-demo", action="store_true", help="Include a demo section that explains diff colors")
    ap.add_argument("--demo-old", help=f"Demo old file (default: {DEFAULT_DEMO_OLD}, requires --include-demo)")
    ap.add_argument("--demo-new", help=f"Demo new file (default: {DEFAULT_DEMO_NEW}, requires --include-demo)")

    src = ap.add_mutually_exclusive_group()
    src.add_argument("--interactive", "-i", action="store_true",
                     help="Edit the history plan in $GIT_EDITOR/$VISUAL/$EDITOR (A/B default to root..HEAD)")
    src.add_argument("--history-plan", dest="plan_file", metavar="FILE", help="Read the history plan from FILE")
    src.add_argument("--history-plan-stdin", dest="plan_stdin", action="store_true",
                     help="Read the history plan from standard input")

    ap.add_argument("--renderer", choices=RENDERERS, default="pygments", help="Diff markup renderer (default: pygments)")
    ap.add_argument("-U", "--context", type=int, default=DEFAULT_CONTEXT, help="Diff context lines")
    ap.add_argument("--max-diff-bytes", type=int, default=DEFAULT_MAX_DIFF_BYTES,
                    help="Truncate each diff after this many bytes (0 to disable)")
    ap.add_argument("--print-plan", action="store_true", help="Print the default history plan for the range and exit")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return ap


def parse_options(argv: Optional[Sequence[str]] = None) -> ReportOptions:
    ap = build_parser()
    args = ap.parse_args(argv)

    a, b = args.a_commit, args.b_commit
    if not args.interactive and (a is None or b is None):
        ap.error("both A and B are required unless --interactive is given")
    if a is not None and b is None:
        ap.error("B is required when A is given with --interactive")
    if not args.include_demo and (args.demo_old or args.demo_new):
        ap.error("--demo-old/--demo-new require --include-demo")
    if args.context < 0:
        ap.error("--context must be >= 0")

    if a is None:
        a, b = default_bounds(args.repo)

    return ReportOptions(
        repo_dir=args.repo,
        a_commit=a,
        b_commit=b,
        output=args.output,
        include_demo=args.include_demo,
        demo_old=args.demo_old or DEFAULT_DEMO_OLD,
        demo_new=args.demo_new or DEFAULT_DEMO_NEW,
        interactive=args.interactive,
        plan_file=args.plan_file,
        plan_stdin=args.plan_stdin,
        renderer=args.renderer,
        context=args.context,
        max_diff_bytes=args.max_diff_bytes,
        print_plan=args.print_plan,
    )


def check_dependencies(opts: ReportOptions) -> None:
    if shutil.which("git") is None:
        raise ReportInputError("'git' not found in PATH.")
    if opts.include_demo:
        for path in (opts.demo_old, opts.demo_new):
            if not os.path.isfile(path):
                raise ReportInputError(f"demo file not found: {path}")


def default_plan(opts: ReportOptions, commit_range: CommitRange) -> str:
    subjects = {sha: gitops.get_commit_info(opts.repo_dir, sha).subject for sha in commit_range}
    return synthesize_default_plan(commit_range, subjects)


def acquire_records(opts: ReportOptions, commit_range: CommitRange) -> List[PlanRecord]:
    resolve = functools.partial(gitops.resolve_commit, opts.repo_dir)
    label = f"{opts.a_commit}..{opts.b_commit}"
    if opts.interactive:
        print("📝 Opening history plan in editor...", file=sys.stderr)
        return edit_plan(default_plan(opts, commit_range), commit_range, resolve, range_label=label)
    if opts.plan_file:
        text = read_plan_file(opts.plan_file)
    elif opts.plan_stdin:
        text = read_plan_stream(sys.stdin)
    else:
        text = synthesize_default_plan(commit_range)
    return parse_plan(text, commit_range, resolve)


def generate(opts: ReportOptions) -> pathlib.Path:
    output = normalize_output(opts.output)
    check_dependencies(opts)

    print(f"📜 Resolving {opts.a_commit}..{opts.b_commit} (first-parent)...", file=sys.stderr)
    commit_range = resolve_range(opts.repo_dir, opts.a_commit, opts.b_commit)
    if not len(commit_range):
        print(f"No commits found in {opts.a_commit}..{opts.b_commit} (first-parent).", file=sys.stderr)

    records = acquire_records(opts, commit_range)
    blocks = compile_blocks(records)
    print(f"🗂️  History plan: {len(records)} of {len(commit_range)} commits in {len(blocks)} blocks", file=sys.stderr)

    notices: List[str] = []
    markup = select_markup(opts.renderer, notices)
    cap = bytes_human(opts.max_diff_bytes) if opts.max_diff_bytes else "unlimited"
    print(f"🧮 Rendering diffs with -U {opts.context} (per-diff cap: {cap}, renderer: {markup.name})", file=sys.stderr)
    renderer = BlockRenderer(opts.repo_dir, markup, context=opts.context, max_diff_bytes=opts.max_diff_bytes)
    fragments = renderer.render_all(blocks)
    if renderer.failures:
        print(f"⚠️  {renderer.failures} diff(s) fell back to plain text.", file=sys.stderr)

    demo_html = render_demo_section(opts.demo_old, opts.demo_new, markup) if opts.include_demo else ""

    print("🔨 Building HTML...", file=sys.stderr)
    html_out = build_html(
        repo_name(opts.repo_dir),
        f"{opts.a_commit}..{opts.b_commit}",
        commit_range,
        fragments,
        markup_css=markup.css(),
        demo_html=demo_html,
        notices=notices,
    )

    print(f"💾 Writing: {output.resolve()}", file=sys.stderr)
    return write_report(html_out, output)


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        opts = parse_options(argv)
        if opts.print_plan:
            commit_range = resolve_range(opts.repo_dir, opts.a_commit, opts.b_commit)
            sys.stdout.write(default_plan(opts, commit_range))
            return 0
        written = generate(opts)
    except ReportError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return exc.exit_code
    print(f"✅ Wrote report to: {written}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
