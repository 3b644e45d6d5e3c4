"""Tests for matching inbound frames to awaited responses."""

import queue

import pytest

from quadboot.protocol.correlator import ResponseCorrelator
from quadboot.protocol.errors import ErrorKind, TransportTimeout
from quadboot.protocol.framing import Frame
from quadboot.protocol.messages import MessageId


def _correlator(**kwargs):
    inbox = queue.Queue()
    return inbox, ResponseCorrelator(inbox, poll_interval=0.001, **kwargs)


def test_returns_matching_frame() -> None:
    inbox, corr = _correlator()
    inbox.put(Frame(MessageId.BOOT_RESPONSE, b"\x09"))
    assert corr.await_response(timeout=0.1).status == 9


def test_unrelated_frames_are_held_not_dropped() -> None:
    """Shell output arriving before the reply is kept for later."""
    inbox, corr = _correlator()
    inbox.put(Frame(MessageId.SHELL_TO_PC, b"hello"))
    inbox.put(Frame(MessageId.BOOT_RESPONSE, b"\x01"))

    assert corr.await_frame(MessageId.BOOT_RESPONSE, 0.1).payload == b"\x01"
    assert corr.held_frames() == [Frame(MessageId.SHELL_TO_PC, b"hello")]


def test_held_frame_satisfies_later_wait() -> None:
    inbox, corr = _correlator()
    inbox.put(Frame(MessageId.SHELL_TO_PC, b"a"))
    inbox.put(Frame(MessageId.BOOT_RESPONSE, b"\x01"))
    corr.await_frame(MessageId.BOOT_RESPONSE, 0.1)

    frame = corr.await_frame(MessageId.SHELL_TO_PC, 0.01)
    assert frame.payload == b"a"
    assert corr.held_frames() == []


def test_responses_taken_in_arrival_order() -> None:
    inbox, corr = _correlator()
    for status in (1, 2, 3):
        inbox.put(Frame(MessageId.BOOT_RESPONSE, bytes([status])))
    assert [corr.await_response(timeout=0.1).status for _ in range(3)] == [1, 2, 3]


def test_timeout_names_expected_id() -> None:
    inbox, corr = _correlator()
    inbox.put(Frame(MessageId.SHELL_TO_PC, b"noise"))

    with pytest.raises(TransportTimeout) as excinfo:
        corr.await_frame(MessageId.BOOT_RESPONSE, 0.02)

    err = excinfo.value
    assert err.kind == ErrorKind.TIMEOUT
    assert err.expected_id == MessageId.BOOT_RESPONSE
    assert "0x15" in str(err)
    assert len(corr.held_frames()) == 1


def test_idle_called_while_waiting() -> None:
    calls = []
    _, corr = _correlator(idle=lambda: calls.append(1))
    with pytest.raises(TransportTimeout):
        corr.await_frame(MessageId.BOOT_RESPONSE, 0.02)
    assert calls


def test_held_frames_are_bounded() -> None:
    inbox, corr = _correlator(held_limit=3)
    for i in range(5):
        inbox.put(Frame(MessageId.SHELL_TO_PC, bytes([i])))
    inbox.put(Frame(MessageId.BOOT_RESPONSE, b"\x01"))

    corr.await_frame(MessageId.BOOT_RESPONSE, 0.1)
    held = corr.pop_held()
    assert [f.payload for f in held] == [b"\x02", b"\x03", b"\x04"]
    assert corr.held_frames() == []


def test_discard_drops_stale_replies_and_keeps_the_rest() -> None:
    inbox, corr = _correlator()
    inbox.put(Frame(MessageId.SHELL_TO_PC, b"a"))
    inbox.put(Frame(MessageId.BOOT_RESPONSE, b"\x01"))
    with pytest.raises(TransportTimeout):
        corr.await_frame(MessageId.SHELL_FROM_PC, 0.01)
    inbox.put(Frame(MessageId.BOOT_RESPONSE, b"\x01"))
    inbox.put(Frame(MessageId.SHELL_TO_PC, b"b"))

    assert corr.discard(MessageId.BOOT_RESPONSE) == 2
    assert inbox.empty()
    assert [f.payload for f in corr.held_frames()] == [b"a", b"b"]
    assert corr.discard(MessageId.BOOT_RESPONSE) == 0
