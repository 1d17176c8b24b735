from __future__ import annotations

import html
import pathlib
import shutil
import subprocess
import sys
from typing import Optional, Sequence

from rendergit_report import gitops
from rendergit_report.errors import GitError, MarkupError, ReportInputError
from rendergit_report.history_range import CommitRange
from rendergit_report.markup import plain_markup

DEFAULT_OUTPUT_FILENAME = "diff-report.pdf"
PDF_SUFFIXES = (".pdf",)
HTML_SUFFIXES = (".html", ".htm")
PDF_CONVERTER = "wkhtmltopdf"

_CSS = """
  body { background:#fff; color:#111; font-family: ui-monospace,SFMono-Regular,Menlo,Consolas,'Liberation Mono',monospace; line-height:1.4; margin:2rem; }
  h1, h2, h3, h4 { font-family: system-ui,-apple-system,'Segoe UI',Roboto,Arial,sans-serif; }
  .meta { color:#555; margin-bottom:.75rem; font-size:.9rem; }
  .commit-block { page-break-after: always; margin-bottom: 2rem; }
  .commit-msg { white-space: pre-wrap; background:#f6f8fa; border:1px solid #eaecef; padding:1rem; border-radius:8px; }
  .plan-note { color:#444; font-style: italic; margin:.25rem 0 .5rem; }
  .pagebreak { page-break-after: always; }
  .diff { border:1px solid #eaecef; border-radius:8px; overflow:hidden; }
  hr.sep { margin:2rem 0; border:none; border-top:1px solid #ddd; }
  pre { margin:0; padding:1rem; }
  .sha { background:#eef2f7; padding:.05rem .35rem; border-radius:4px; }
  .stats { display:flex; gap:.5rem; align-items:center; margin:.25rem 0 .5rem; flex-wrap:wrap; }
  .pill { background:#f2f4f7; border:1px solid #e1e5ea; padding:.15rem .5rem; border-radius:999px; font-size:.85rem; }
  .pill.plus { color:#0a7b34; border-color:#dfeee6; background:#f6fbf7; }
  .pill.minus { color:#a01515; border-color:#f1d8d8; background:#fdf7f7; }
  .pill.warn { color:#8a6d3b; border-color:#efe3c0; background:#fdf8e7; }
  .file-list { list-style:none; padding:0; margin:.25rem 0; }
  .file-list li { padding:.12rem 0; }
  .badge { display:inline-block; font-size:.75rem; padding:.05rem .4rem; border-radius:999px; margin-right:.35rem; border:1px solid #d1d9e0; background:#fff; }
  .badge-A { background:#eefbf2; border-color:#dbeee0; }
  .badge-M { background:#eef2fb; border-color:#dfe3f6; }
  .badge-D { background:#fdf0f0; border-color:#f3dcdc; }
  .badge-R { background:#fff6ea; border-color:#f1e3c9; }
  .badge-C { background:#f2f9ff; border-color:#dbe9f6; }
  .notice { border-left:4px solid #0366d6; background:#f1f8ff; padding:.6rem .9rem; margin:.75rem 0; border-radius:4px; }
  .notice-warn, .notice-drop { border-color:#d29922; background:#fff8e5; }
  .notice-scope { border-color:#8250df; background:#f7f2ff; }
  .squash-members { padding-left:1.25rem; }
  .section-marker { border:2px dashed #999; padding:.5rem 1rem; margin:1.5rem 0; border-radius:8px; }
  .section-marker.end { page-break-after: always; }
  .table2 { width:100%; table-layout:fixed; border-collapse:separate; border-spacing:16px 0; }
  .table2 td { width:50%; vertical-align:top; }
  pre.code { white-space:pre; overflow-x:auto; background:#f6f8fa; border:1px solid #eaecef; border-radius:8px; padding:1rem; }
  code { white-space: pre-wrap; }
"""


def normalize_output(path: Optional[str]) -> pathlib.Path:
    """Validate the requested output target; a missing suffix means PDF."""
    out = pathlib.Path(path or DEFAULT_OUTPUT_FILENAME)
    if out.is_dir():
        raise ReportInputError(f"output path is a directory: {out}")
    suffix = out.suffix.lower()
    if not suffix:
        return out.with_name(out.name + ".pdf")
    if suffix not in PDF_SUFFIXES + HTML_SUFFIXES:
        raise ReportInputError(f"unsupported output type '{out.suffix}' (use .pdf or .html): {out}")
    return out


def render_demo_section(old_path: str, new_path: str, markup) -> str:
    """Opt-in 'How to read diffs?' section built from two standalone files."""
    esc_old, esc_new = html.escape(old_path), html.escape(new_path)
    old_text = pathlib.Path(old_path).read_text(encoding="utf-8", errors="replace")
    new_text = pathlib.Path(new_path).read_text(encoding="utf-8", errors="replace")
    patch = gitops.get_no_index_patch(old_path, new_path)
    try:
        diff_html = markup.render(patch)
    except MarkupError as exc:
        print(f"⚠️  Warning: demo diff markup failed ({exc}); including plain text.", file=sys.stderr)
        diff_html = plain_markup(patch)
    return f"""
<h2>How to read diffs?</h2>
<p>In the toy example below, we compare <code>{esc_old}</code> → <code>{esc_new}</code>.
Green lines are additions, red lines are deletions. Inline highlights mark changed words or whitespace.</p>
<h3>The compared files</h3>
<table class="table2"><tr>
<td><h4>{esc_old}</h4><pre class="code">{html.escape(old_text)}</pre></td>
<td><h4>{esc_new}</h4><pre class="code">{html.escape(new_text)}</pre></td>
</tr></table>
<h3>Example diff</h3>
<div class="diff highlight">{diff_html}</div>
<hr class="sep">
<div class="pagebreak"></div>
"""


def build_html(
    repo_name: str,
    range_label: str,
    commit_range: CommitRange,
    fragments: Sequence[str],
    markup_css: str = "",
    demo_html: str = "",
    notices: Sequence[str] = (),
) -> str:
    if not len(commit_range):
        body = "<p>No commits found in the specified range.</p>"
    elif not fragments:
        body = "<p>No commits selected by the history plan.</p>"
    else:
        body = "\n".join(fragments)

    notice_html = "".join(f"<div class='notice notice-warn'>{html.escape(n)}</div>" for n in notices)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Git Diff Report – {html.escape(repo_name)}</title>
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<style>
{_CSS}
  /* Pygments */
  {markup_css}
</style>
</head>
<body>
<h1>Git Diff Report</h1>
<p class="meta"><strong>Repository:</strong> {html.escape(repo_name)}<br>
<strong>Range:</strong> {html.escape(range_label)} (first-parent, oldest → newest, {len(commit_range)} commits)</p>
{notice_html}
<hr class="sep">
{demo_html}
{body}
</body>
</html>
"""


def write_report(html_out: str, output: pathlib.Path) -> pathlib.Path:
    """
    Write the report to `output` and return the path actually written.

    PDF targets are converted with wkhtmltopdf; when it is missing or fails
    without producing a PDF the HTML lands next to the requested path instead.
    """
    if output.suffix.lower() in HTML_SUFFIXES:
        output.write_text(html_out, encoding="utf-8")
        return output

    html_path = output.with_suffix(".html")
    if shutil.which(PDF_CONVERTER) is None:
        return _write_html_fallback(html_out, html_path, f"{PDF_CONVERTER} not found in PATH")

    output.unlink(missing_ok=True)
    tmp_html = output.with_name(f".{output.stem}.tmp.html")
    tmp_html.write_text(html_out, encoding="utf-8")
    try:
        cp = subprocess.run([PDF_CONVERTER, "--quiet", str(tmp_html), str(output)], text=True, capture_output=True)
    finally:
        tmp_html.unlink(missing_ok=True)

    if cp.returncode == 0:
        return output
    detail = cp.stderr.strip() or f"exit status {cp.returncode}"
    if output.is_file() and output.stat().st_size > 0:
        # wkhtmltopdf exits non-zero on asset warnings while still producing a PDF
        print(f"⚠️  {PDF_CONVERTER} reported problems ({detail}); keeping {output}", file=sys.stderr)
        return output
    return _write_html_fallback(html_out, html_path, f"{PDF_CONVERTER} failed ({detail})")


def _write_html_fallback(html_out: str, html_path: pathlib.Path, why: str) -> pathlib.Path:
    overwrite = " (overwriting existing file)" if html_path.exists() else ""
    print(f"⚠️  {why}; writing HTML instead of PDF: {html_path}{overwrite}", file=sys.stderr)
    html_path.write_text(html_out, encoding="utf-8")
    return html_path


def repo_name(repo_dir: str) -> str:
    try:
        return pathlib.Path(gitops.repo_toplevel(repo_dir)).name
    except GitError:
        return pathlib.Path(repo_dir).resolve().name
