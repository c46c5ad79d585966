"""Tests for Slack text normalization."""

import re

import pytest

from release_notes_dashboard.text_normalizer import (
    format_sender_name,
    mark_section_headers,
    normalize_text,
    to_html,
)

SAMPLES = [
    "<https://a.test|Label> see <https://b.test>",
    "Posted in <#C024BE7LR|releases> by <@U024BE7LH> :tada:",
    "*Bold* and _italic_ and **strong** and ~gone~",
    "- one\n* two\n• three\n◦ four\n‣ five",
    "Run `make build` now\n```\nsecret()\n```\nDone",
    "a\n\n\n\n\n   b   ",
    "5 &lt; 6 &amp; 7 &gt; 3 AT&T",
    "<script>alert(1)</script> ok",
    "c:a:b:d: x:y:z:",
    "*:a*: nested *_markers_* here",
    "&gt; quoted\n> also quoted",
    "feature_flag_name * stray _ underscores",
    "",
]


def _has_residual_markup(text: str) -> bool:
    if "<" in text or ">" in text:
        return True
    if "*" in text or "_" in text:
        return True
    return bool(re.search(r":(?![0-9]+:)[A-Za-z0-9_+\-]+:", text))


def test_normalize_none_and_empty():
    assert normalize_text(None) == ""
    assert normalize_text("") == ""


def test_links_are_relabelled():
    result = normalize_text("<https://a.test|Label> see <https://b.test>")
    assert result == "Label see https://b.test"


def test_channel_references():
    assert normalize_text("Posted in <#C123|releases>") == "Posted in #releases"
    assert normalize_text("<#C123> hello") == "hello"
    assert normalize_text("<#C123|> hello") == "hello"


def test_user_mentions_never_leak_ids():
    result = normalize_text("ping <@U123ABC> and <@U999|jane>")
    assert result == "ping @user and @jane"
    assert "U123ABC" not in result
    assert "U999" not in result


def test_special_mentions():
    assert normalize_text("<!here> deploying") == "@here deploying"
    assert normalize_text("<!subteam^S1|@platform> heads up") == "@platform heads up"


def test_emoji_removed_but_clock_times_kept():
    assert normalize_text("Shipped :rocket: today :+1:") == "Shipped today"
    assert normalize_text("Deploy at 10:30:45 UTC") == "Deploy at 10:30:45 UTC"


def test_code_blocks():
    result = normalize_text("Run `make build` now\n```\nsecret()\n```\nDone")
    assert result == "Run make build now\n\nDone"


def test_emphasis_unwrapped():
    assert normalize_text("*Bold* and _italic_ and **strong**") == "Bold and italic and strong"
    assert normalize_text("~old~ behaviour") == "old behaviour"


def test_underscores_in_identifiers_are_escaped_not_removed():
    assert normalize_text("use feature_flag_name") == "use feature&#95;flag&#95;name"
    assert normalize_text("5 * 3") == "5 &#42; 3"


def test_bullets_are_unified():
    result = normalize_text("- one\n* two\n• three\n◦ four\n  ‣ five")
    assert result == "• one\n• two\n• three\n• four\n• five"


def test_blank_lines_and_whitespace():
    assert normalize_text("a\n\n\n\n\n   b   ") == "a\n\nb"
    assert normalize_text("a   b\t\tc") == "a b c"


def test_html_is_neutralized():
    assert normalize_text("<script>alert(1)</script> ok") == "alert(1) ok"
    assert normalize_text("5 &lt; 6 &amp; 7 AT&T") == "5 &lt; 6 &amp; 7 AT&amp;T"


def test_quote_markers_dropped():
    assert normalize_text("&gt; quoted\n> also quoted") == "quoted\nalso quoted"


@pytest.mark.parametrize("sample", SAMPLES)
def test_normalize_is_idempotent(sample):
    once = normalize_text(sample)
    assert normalize_text(once) == once


@pytest.mark.parametrize("sample", SAMPLES)
def test_no_residual_markup(sample):
    assert not _has_residual_markup(normalize_text(sample))


def test_mark_section_headers():
    text = normalize_text("Problem: slow builds\nSolution: caching\nproblems remain")
    marked = mark_section_headers(text)
    assert marked == (
        "<strong>Problem</strong>: slow builds\n"
        "<strong>Solution</strong>: caching\n"
        "problems remain"
    )


def test_mark_section_headers_case_insensitive():
    assert mark_section_headers("what's new: dark mode") == "<strong>what's new</strong>: dark mode"


def test_to_html_breaks_lines():
    assert to_html("Impact: big\nsecond") == "<strong>Impact</strong>: big<br/>second"


def test_format_sender_name():
    assert format_sender_name("john.doe") == "John Doe"
    assert format_sender_name("JANE.M.SMITH") == "Jane M Smith"
    assert format_sender_name("alice") == "Alice"
    assert format_sender_name("") == ""
    assert format_sender_name(None) == ""
