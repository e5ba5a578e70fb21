"""Tests for the typing tracker."""
from roomhub.chat.typing_tracker import TypingTracker


def test_start_adds_once():
    tracker = TypingTracker()
    assert tracker.start("alice") is True
    assert tracker.start("alice") is False
    assert tracker.names() == ["alice"]


def test_stop_non_member_is_noop():
    tracker = TypingTracker()
    assert tracker.stop("alice") is False
    assert tracker.names() == []


def test_stop_removes_member():
    tracker = TypingTracker()
    tracker.start("alice")
    tracker.start("bob")
    assert tracker.stop("alice") is True
    assert "alice" not in tracker
    assert tracker.names() == ["bob"]


def test_names_is_full_sorted_set():
    tracker = TypingTracker()
    for name in ["carol", "alice", "bob"]:
        tracker.start(name)
    assert tracker.names() == ["alice", "bob", "carol"]
