"""Unit tests for the push channel mailboxes."""
from conftest import drain
from mongo_toolz.channel.hub import ProgressChannel


def test_send_to_open_mailbox_queues_in_order():
    channel = ProgressChannel()
    mailbox = channel.open("abc")
    channel.send("abc", "backup-progress", {"docsDone": 1})
    channel.send("abc", "backup-progress", {"docsDone": 2})
    assert drain(mailbox) == [
        {"event": "backup-progress", "data": {"docsDone": 1}},
        {"event": "backup-progress", "data": {"docsDone": 2}},
    ]


def test_send_without_recipient_is_noop():
    channel = ProgressChannel()
    mailbox = channel.open("abc")
    channel.send(None, "backup-start", {})
    channel.send("", "backup-start", {})
    assert drain(mailbox) == []


def test_send_to_unknown_or_closed_recipient_is_noop():
    channel = ProgressChannel()
    channel.send("ghost", "backup-start", {})
    mailbox = channel.open("abc")
    channel.close("abc")
    channel.send("abc", "backup-start", {})
    assert drain(mailbox) == []
    assert not channel.is_connected("abc")
    channel.close("abc")  # closing twice is fine


def test_open_generates_unique_ids():
    channel = ProgressChannel()
    a, b = channel.open(), channel.open()
    assert a.recipient_id != b.recipient_id
    assert len(channel) == 2
    assert channel.is_connected(a.recipient_id)
