"""Tests for thread reconstruction."""

from release_notes_dashboard.records import RawRecord
from release_notes_dashboard.thread_reconstructor import ThreadReconstructor


def _record(index, ts, parent=None, text="message"):
    return RawRecord(id=index, occurred_at=ts, main_text=text, parent_link_id=parent)


def _shape(groups):
    return [
        (group.parent.occurred_at, [reply.occurred_at for reply in group.replies])
        for group in groups
    ]


def test_reply_attaches_and_orphan_is_promoted():
    records = [
        _record(1, "100"),
        _record(2, "105", parent="100"),
        _record(3, "110", parent="999"),
    ]

    groups = ThreadReconstructor().reconstruct(records)

    assert _shape(groups) == [("100", ["105"]), ("110", [])]


def test_self_link_is_a_parent():
    groups = ThreadReconstructor().reconstruct([_record(1, "100", parent="100")])
    assert _shape(groups) == [("100", [])]


def test_sender_like_link_is_not_a_thread_link():
    records = [_record(1, "100"), _record(2, "105", parent="U024BE7LH")]

    groups = ThreadReconstructor().reconstruct(records)

    assert _shape(groups) == [("100", []), ("105", [])]


def test_numeric_links_compare_by_value():
    records = [
        _record(1, "1700000000.100"),
        _record(2, "1700000050.000", parent="1700000000.1"),
    ]

    groups = ThreadReconstructor().reconstruct(records)

    assert _shape(groups) == [("1700000000.100", ["1700000050.000"])]


def test_replies_sorted_ascending():
    records = [
        _record(1, "100"),
        _record(2, "130", parent="100"),
        _record(3, "120", parent="100"),
        _record(4, "125", parent="100"),
    ]

    groups = ThreadReconstructor().reconstruct(records)

    assert _shape(groups) == [("100", ["120", "125", "130"])]


def test_reply_before_parent_in_input_still_attaches():
    records = [_record(1, "105", parent="100"), _record(2, "100")]

    groups = ThreadReconstructor().reconstruct(records)

    assert _shape(groups) == [("100", ["105"])]


def test_orphan_keeps_its_read_position():
    records = [
        _record(1, "100"),
        _record(2, "110", parent="999"),
        _record(3, "120"),
    ]

    groups = ThreadReconstructor().reconstruct(records)

    assert [group.parent.occurred_at for group in groups] == ["100", "110", "120"]


def test_duplicate_parent_keys_attach_to_first():
    records = [
        _record(1, "100", text="first"),
        _record(2, "100", text="second"),
        _record(3, "101", parent="100"),
    ]

    groups = ThreadReconstructor().reconstruct(records)

    assert [group.parent.main_text for group in groups] == ["first", "second"]
    assert len(groups[0].replies) == 1
    assert groups[1].replies == []


def test_malformed_tokens_do_not_raise():
    records = [
        _record(1, ""),
        _record(2, "not-a-date", parent="abc"),
        _record(3, "2024-05-01T10:00:00Z", parent="2024-05-01T09:00:00Z"),
    ]

    groups = ThreadReconstructor().reconstruct(records)

    assert len(groups) == 3
    assert all(group.replies == [] for group in groups)


def test_iso_timestamps_thread():
    records = [
        _record(1, "2024-05-01T09:00:00Z"),
        _record(2, "2024-05-01T09:30:00Z", parent="2024-05-01T09:00:00Z"),
    ]

    groups = ThreadReconstructor().reconstruct(records)

    assert _shape(groups) == [("2024-05-01T09:00:00Z", ["2024-05-01T09:30:00Z"])]


def test_empty_input():
    assert ThreadReconstructor().reconstruct([]) == []
