from __future__ import annotations

import pathlib
import subprocess

import pytest

from rendergit_report import document
from rendergit_report import markup as markup_mod
from rendergit_report.document import build_html, normalize_output, write_report
from rendergit_report.errors import ReportInputError
from rendergit_report.history_range import CommitRange
from rendergit_report.markup import DeltaMarkup, PygmentsMarkup, plain_markup, select_markup


def test_normalize_output_defaults_and_suffixes(tmp_path) -> None:
    assert normalize_output(None) == pathlib.Path("diff-report.pdf")
    assert normalize_output(str(tmp_path / "report")) == tmp_path / "report.pdf"
    assert normalize_output(str(tmp_path / "r.HTML")) == tmp_path / "r.HTML"


def test_normalize_output_rejects_directories_and_unknown_types(tmp_path) -> None:
    with pytest.raises(ReportInputError, match="directory"):
        normalize_output(str(tmp_path))
    with pytest.raises(ReportInputError, match="unsupported output type"):
        normalize_output(str(tmp_path / "r.txt"))


def test_build_html_placeholders() -> None:
    empty = CommitRange(base="0" * 40, tip="0" * 40, commits=())
    assert "No commits found in the specified range." in build_html("repo", "A..B", empty, [])
    one = CommitRange(base="0" * 40, tip="a" * 40, commits=("a" * 40,))
    assert "No commits selected by the history plan." in build_html("repo", "A..B", one, [])
    page = build_html("repo", "A..B", one, ["<p>frag</p>"], notices=["<careful>"])
    assert "<p>frag</p>" in page
    assert "&lt;careful&gt;" in page


def test_plain_markup_escapes() -> None:
    assert plain_markup("<b>&") == '<pre class="diff"><code>&lt;b&gt;&amp;</code></pre>'


def test_pygments_markup_handles_empty_patch() -> None:
    assert "No textual changes" in PygmentsMarkup().render("")
    assert ".highlight" in PygmentsMarkup().css()


def test_delta_renderer_degrades_when_tools_missing(monkeypatch, capsys) -> None:
    monkeypatch.setattr(DeltaMarkup, "available", staticmethod(lambda: False))
    notices = []
    chosen = select_markup("delta", notices)
    assert chosen.name == "pygments"
    assert notices and "delta/aha not found" in notices[0]
    assert "falling back" in capsys.readouterr().err


def test_delta_renderer_pipes_through_delta_and_aha(monkeypatch) -> None:
    calls = []

    class Done:
        def __init__(self, stdout):
            self.stdout = stdout

    def fake_run(cmd, input, text, capture_output, check):
        calls.append(cmd[0])
        return Done(f"<{cmd[0]}>{input}")

    monkeypatch.setattr(markup_mod.subprocess, "run", fake_run)
    out = DeltaMarkup().render("+x\n")
    assert calls == ["delta", "aha"]
    assert out == "<aha><delta>+x\n"


class FakeConverter:
    """Stands in for wkhtmltopdf: records the temp HTML and optionally writes a PDF."""

    def __init__(self, returncode=0, pdf_bytes=b"%PDF-1.4\n"):
        self.returncode = returncode
        self.pdf_bytes = pdf_bytes
        self.saw_html = None

    def __call__(self, cmd, **kwargs):
        tmp_html, out = pathlib.Path(cmd[-2]), pathlib.Path(cmd[-1])
        self.saw_html = tmp_html.read_text(encoding="utf-8")
        if self.pdf_bytes:
            out.write_bytes(self.pdf_bytes)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr="Warning: blocked asset")


@pytest.fixture
def converter_on_path(monkeypatch):
    monkeypatch.setattr(document.shutil, "which", lambda cmd: "/usr/bin/" + cmd)


def test_write_report_converts_pdf_and_removes_temp_html(tmp_path, monkeypatch, converter_on_path) -> None:
    fake = FakeConverter()
    monkeypatch.setattr(document.subprocess, "run", fake)
    out = tmp_path / "report.pdf"
    assert write_report("<p>page</p>", out) == out
    assert fake.saw_html == "<p>page</p>"
    assert out.read_bytes().startswith(b"%PDF")
    assert list(tmp_path.iterdir()) == [out]


def test_write_report_keeps_pdf_when_converter_only_warns(tmp_path, monkeypatch, converter_on_path, capsys) -> None:
    monkeypatch.setattr(document.subprocess, "run", FakeConverter(returncode=1))
    out = tmp_path / "report.pdf"
    assert write_report("<p>page</p>", out) == out
    assert not (tmp_path / "report.html").exists()
    assert "keeping" in capsys.readouterr().err


def test_write_report_degrades_to_html_when_converter_fails(tmp_path, monkeypatch, converter_on_path, capsys) -> None:
    monkeypatch.setattr(document.subprocess, "run", FakeConverter(returncode=2, pdf_bytes=b""))
    out = tmp_path / "report.pdf"
    out.write_bytes(b"%PDF stale from an earlier run")
    (tmp_path / "report.html").write_text("old", encoding="utf-8")
    written = write_report("<p>page</p>", out)
    assert written == tmp_path / "report.html"
    assert written.read_text(encoding="utf-8") == "<p>page</p>"
    assert not out.exists()
    assert not (tmp_path / ".report.tmp.html").exists()
    err = capsys.readouterr().err
    assert "wkhtmltopdf failed" in err
    assert "overwriting existing file" in err
