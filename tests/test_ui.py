"""Tests for the friend picker helpers."""

from prompt_toolkit.document import Document

from receipt_split.models import SplitwiseUser
from receipt_split.ui import FriendCompleter, friend_label, fuzzy_match

FRIENDS = [
    SplitwiseUser(
        id=102, first_name="Ben", last_name="Okafor", email="ben@example.com"
    ),
    SplitwiseUser(id=103, first_name="Cy"),
]


def test_fuzzy_match_in_order():
    assert fuzzy_match("bok", "ben okafor")
    assert fuzzy_match("", "anything")
    assert not fuzzy_match("kob", "ben okafor")


def test_friend_label():
    assert friend_label(FRIENDS[0]) == "Ben Okafor <ben@example.com>"
    assert friend_label(FRIENDS[1]) == "Cy"


def test_completer_maps_labels_to_ids():
    completer = FriendCompleter(FRIENDS)

    assert completer.label_to_id == {"Ben Okafor <ben@example.com>": 102, "Cy": 103}


def test_completer_filters_fuzzily():
    completer = FriendCompleter(FRIENDS)

    completions = list(completer.get_completions(Document("bok"), None))

    assert [c.text for c in completions] == ["Ben Okafor <ben@example.com>"]
    assert completions[0].start_position == -3


def test_completer_lists_everyone_for_empty_query():
    completer = FriendCompleter(FRIENDS)

    completions = list(completer.get_completions(Document(""), None))

    assert len(completions) == 2
