"""Shared fixtures: an in-process bootloader simulator speaking the wire format."""

import queue
import struct

import pytest
from intelhex import IntelHex

from quadboot.protocol.config import BootConfig
from quadboot.protocol.crc import crc32
from quadboot.protocol.framing import Frame, decode_frame
from quadboot.protocol.messages import FlashStatus, MessageId


class TrackingQueue(queue.Queue):
    """Queue that counts frames taken by the host."""

    def __init__(self):
        super().__init__()
        self.taken = 0

    def get(self, block=True, timeout=None):
        item = super().get(block, timeout)
        self.taken += 1
        return item


class FakeBootloader:
    """
    Transport double that answers boot commands like the device would.

    Every frame the host sends is decoded with the real codec and answered
    synchronously by pushing a response onto ``inbox``.
    """

    def __init__(self, flash_size=0x100000, flash_base=0x08000000):
        self.inbox = TrackingQueue()
        self.flash_base = flash_base
        self.flash = bytearray(b"\xFF" * flash_size)
        self.received = []
        self.enter_failures = 0
        self.enter_status = 1
        self.late_enter_replies = False
        self.exit_status = 1
        self.silent = set()
        self._late = []
        self.erase_status = {}
        self.write_status = None
        self.verify_override = None
        self.chatter = False
        self.erased = []
        self.writes = []
        self.shell_resets = 0
        self.exited = False
        self.responses_sent = 0
        self.max_in_flight = 0

    @property
    def write_count(self):
        return len(self.writes)

    def read(self, address, length):
        offset = address - self.flash_base
        return bytes(self.flash[offset:offset + length])

    def _respond(self, payload):
        if self.chatter:
            self.inbox.put(Frame(MessageId.SHELL_TO_PC, b"tick\n"))
            self.responses_sent += 1
        self.inbox.put(Frame(MessageId.BOOT_RESPONSE, payload))
        self.responses_sent += 1

    def send(self, data):
        frame = decode_frame(data)
        self.received.append(frame)
        # Replies held back from earlier commands show up now
        for payload in self._late:
            self._respond(payload)
        self._late = []
        if frame.id in self.silent:
            return
        handler = {
            MessageId.SHELL_FROM_PC: self._on_shell,
            MessageId.BOOT_ENTER: self._on_enter,
            MessageId.BOOT_EXIT: self._on_exit,
            MessageId.BOOT_ERASE_SECTOR: self._on_erase,
            MessageId.BOOT_WRITE_DATA: self._on_write,
            MessageId.BOOT_VERIFY: self._on_verify,
        }[frame.id]
        handler(frame.payload)

    def _on_shell(self, payload):
        if b"reset" in payload:
            self.shell_resets += 1

    def _on_enter(self, payload):
        if self.enter_failures > 0:
            self.enter_failures -= 1
            if self.late_enter_replies:
                self._late.append(bytes([self.enter_status]))
            return
        self._respond(bytes([self.enter_status]))

    def _on_exit(self, payload):
        self.exited = True
        self._respond(bytes([self.exit_status]))

    def _on_erase(self, payload):
        (sector,) = struct.unpack("<I", payload)
        self.erased.append(sector)
        self._respond(bytes([self.erase_status.get(sector, FlashStatus.COMPLETE)]))

    def _on_write(self, payload):
        (address,) = struct.unpack_from("<I", payload)
        data = payload[4:]
        self.writes.append((address, len(data)))

        # Every earlier command is answered and consumed, except writes
        outstanding = self.responses_sent - self.inbox.taken + 1
        self.max_in_flight = max(self.max_in_flight, outstanding)

        status = FlashStatus.COMPLETE
        if self.write_status is not None:
            status = self.write_status(address)
        if status == FlashStatus.COMPLETE:
            offset = address - self.flash_base
            self.flash[offset:offset + len(data)] = data
        self._respond(bytes([status]))

    def _on_verify(self, payload):
        address, length = struct.unpack("<II", payload)
        value = crc32(self.read(address, length))
        if self.verify_override is not None:
            value = self.verify_override
        self._respond(struct.pack("<I", value))


@pytest.fixture
def device():
    return FakeBootloader()


@pytest.fixture
def fast_config():
    """Default target timings shrunk for tests."""
    return BootConfig(
        entry_timeout=0.02,
        response_timeout=0.5,
        erase_timeout=0.5,
        poll_interval=0.001,
    )


@pytest.fixture
def make_hex(tmp_path):
    """Write an Intel HEX file from {address: bytes} and return its path."""

    def _make(sections, name="app.hex"):
        ih = IntelHex()
        for address, data in sections.items():
            ih.frombytes(data, offset=address)
        path = tmp_path / name
        ih.write_hex_file(str(path))
        return str(path)

    return _make
