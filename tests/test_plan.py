from __future__ import annotations

import pytest

from rendergit_report.blocks import Single, compile_blocks
from rendergit_report.errors import PlanError
from rendergit_report.plan import (
    BUNDLE,
    DROP,
    PICK,
    SQUASH,
    comment_block,
    parse_plan,
    split_tail,
    synthesize_default_plan,
)


def test_parse_picks_resolves_abbreviations_to_full_hashes(fake_commits, fake_range, resolver) -> None:
    text = f"pick {fake_commits[0][:7]}\npick {fake_commits[2][:10]} # third\n"
    records = parse_plan(text, fake_range, resolver)
    assert [r.commit for r in records] == [fake_commits[0], fake_commits[2]]
    assert [r.position for r in records] == [0, 2]
    assert records[1].message == "third"
    assert all(r.action == PICK for r in records)


def test_blank_and_comment_lines_are_ignored(fake_commits, fake_range, resolver) -> None:
    text = f"\n# a comment\n   \n   # indented comment\npick {fake_commits[1]}\n"
    records = parse_plan(text, fake_range, resolver)
    assert len(records) == 1
    assert records[0].line_no == 5


def test_empty_plan_selects_nothing(fake_range, resolver) -> None:
    assert parse_plan("# nothing here\n\n", fake_range, resolver) == []


def test_uppercase_hash_is_accepted(fake_commits, fake_range, resolver) -> None:
    records = parse_plan(f"pick {fake_commits[0][:8].upper()}", fake_range, resolver)
    assert records[0].commit == fake_commits[0]


@pytest.mark.parametrize(
    "line, fragment",
    [
        ("fixup {sha}", "unknown action 'fixup'"),
        ("Pick {sha}", "unknown action 'Pick'"),
        ("pick zzzzzzz", "is not a commit hash"),
        ("pick 123", "is not a commit hash"),
        ("pick", "expected '<action> <hash>'"),
        ("pick {sha} trailing words", "expected %annotation or #message"),
        ("pick {sha} % label", "'pick' does not take a %annotation"),
        ("squash {sha} %label", "'squash' does not take a %annotation"),
        ("pick {sha} %", "'pick' does not take a %annotation"),
    ],
)
def test_malformed_lines_are_rejected(fake_commits, fake_range, resolver, line, fragment) -> None:
    with pytest.raises(PlanError) as err:
        parse_plan(line.format(sha=fake_commits[0]), fake_range, resolver)
    assert fragment in str(err.value)
    assert err.value.line_no == 1


def test_unresolvable_hash_is_rejected(fake_range, resolver) -> None:
    with pytest.raises(PlanError, match="does not resolve to a commit"):
        parse_plan("pick abcdef0", fake_range, resolver)


def test_ambiguous_prefix_does_not_resolve(fake_range) -> None:
    def resolve(ref):
        return None

    with pytest.raises(PlanError, match="does not resolve"):
        parse_plan("pick 1111111", fake_range, resolve)


def test_commit_outside_range_is_rejected(fake_range, resolver) -> None:
    with pytest.raises(PlanError, match="not in range"):
        parse_plan("pick eeeeeee", fake_range, resolver)


def test_duplicate_commit_is_rejected(fake_commits, fake_range, resolver) -> None:
    text = f"pick {fake_commits[0]}\ndrop {fake_commits[0][:7]}\n"
    with pytest.raises(PlanError) as err:
        parse_plan(text, fake_range, resolver)
    assert "duplicate" in err.value.reason
    assert err.value.line_no == 2
    assert err.value.line == f"drop {fake_commits[0][:7]}"


def test_reordered_commits_are_an_order_violation(fake_commits, fake_range, resolver) -> None:
    text = f"pick {fake_commits[2]}\npick {fake_commits[1]}\n"
    with pytest.raises(PlanError, match="order violation") as err:
        parse_plan(text, fake_range, resolver)
    assert err.value.line_no == 2


def test_parse_is_atomic(fake_commits, fake_range, resolver) -> None:
    good = "".join(f"pick {sha}\n" for sha in fake_commits[:3])
    with pytest.raises(PlanError) as err:
        parse_plan(good + "bogus line here\n", fake_range, resolver)
    assert err.value.line_no == 4
    # a later parse starts from scratch
    assert len(parse_plan(good, fake_range, resolver)) == 3


def test_error_message_carries_line_number_and_raw_line() -> None:
    err = PlanError(7, "pick nope", "bad hash")
    assert str(err) == "line 7: bad hash: pick nope"
    assert err.exit_code == 3


def test_drop_reason_is_optional(fake_commits, fake_range, resolver) -> None:
    text = f"drop {fake_commits[0]} % generated code # noisy\ndrop {fake_commits[1]} # no reason\n"
    first, second = parse_plan(text, fake_range, resolver)
    assert (first.action, first.reason, first.message) == (DROP, "generated code", "noisy")
    assert (second.reason, second.message) == ("", "no reason")


def test_bundle_section_and_message_are_separated(fake_commits, fake_range, resolver) -> None:
    text = f"bundle {fake_commits[0]} % BUNDLE nrntn wabba # Handle optional ..."
    (record,) = parse_plan(text, fake_range, resolver)
    assert record.action == BUNDLE
    assert record.section == "BUNDLE nrntn wabba"
    assert record.message == "Handle optional ..."


def test_first_bundle_without_section_is_rejected(fake_commits, fake_range, resolver) -> None:
    with pytest.raises(PlanError, match="first commit in a bundle run must include %SECTION"):
        parse_plan(f"bundle {fake_commits[0]} # only comment", fake_range, resolver)


def test_bundle_after_other_action_starts_a_new_run(fake_commits, fake_range, resolver) -> None:
    text = (
        f"bundle {fake_commits[0]} % Sec\n"
        f"pick {fake_commits[1]}\n"
        f"bundle {fake_commits[2]}\n"
    )
    with pytest.raises(PlanError, match="must include %SECTION") as err:
        parse_plan(text, fake_range, resolver)
    assert err.value.line_no == 3


def test_bundle_continuation_inherits_and_overrides_section(fake_commits, fake_range, resolver) -> None:
    text = (
        f"bundle {fake_commits[0]} % Sec # start\n"
        f"bundle {fake_commits[1]} # continuation only\n"
        f"bundle {fake_commits[2]} % Other\n"
        f"bundle {fake_commits[3]}\n"
    )
    records = parse_plan(text, fake_range, resolver)
    assert [r.section for r in records] == ["Sec", "Sec", "Other", "Other"]
    assert records[1].message == "continuation only"


def test_section_and_message_whitespace_is_trimmed(fake_commits, fake_range, resolver) -> None:
    text = f"bundle {fake_commits[0]}      %    Spaced   Section    Name      #   msg with leading spaces"
    (record,) = parse_plan(text, fake_range, resolver)
    assert record.section == "Spaced   Section    Name"
    assert record.message == "msg with leading spaces"


def test_escaped_hash_stays_in_annotation(fake_commits, fake_range, resolver) -> None:
    text = f"drop {fake_commits[0]} % issue \\#42 was a revert # see tracker"
    (record,) = parse_plan(text, fake_range, resolver)
    assert record.reason == "issue #42 was a revert"
    assert record.message == "see tracker"


def test_marker_may_follow_hash_without_space(fake_commits, fake_range, resolver) -> None:
    text = f"pick {fake_commits[0]}#tight\nbundle {fake_commits[1]}%Sec"
    first, second = parse_plan(text, fake_range, resolver)
    assert first.message == "tight"
    assert second.section == "Sec"


def test_plan_may_skip_commits(fake_commits, fake_range, resolver) -> None:
    text = f"pick {fake_commits[1]}\nsquash {fake_commits[4]}\n"
    records = parse_plan(text, fake_range, resolver)
    assert [r.action for r in records] == [PICK, SQUASH]


@pytest.mark.parametrize(
    "tail, expected",
    [
        ("", (None, "")),
        ("   ", (None, "")),
        (" # msg ", (None, "msg")),
        (" % label ", ("label", "")),
        (" %label#msg", ("label", "msg")),
        (" % a \\# b # c # d", ("a # b", "c # d")),
        (" %", ("", "")),
    ],
)
def test_split_tail(tail, expected) -> None:
    assert split_tail(tail) == expected


def test_split_tail_rejects_bare_text() -> None:
    with pytest.raises(ValueError):
        split_tail(" stray")


def test_default_plan_round_trips_to_one_single_per_commit(fake_commits, fake_range, resolver) -> None:
    text = synthesize_default_plan(fake_range, {fake_commits[0]: "first commit"})
    lines = text.splitlines()
    assert lines[0] == f"pick {fake_commits[0]} # first commit"
    assert lines[1] == f"pick {fake_commits[1]}"

    blocks = compile_blocks(parse_plan(text, fake_range, resolver))
    assert all(isinstance(b, Single) for b in blocks)
    assert [b.record.commit for b in blocks] == fake_commits


def test_comment_block_prefixes_every_line() -> None:
    assert comment_block("a\n\nb") == "# a\n#\n# b\n"
