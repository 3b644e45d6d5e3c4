"""
Serial frame transport.

Handles the byte stream side of the link with the bootloader:
- Serial port setup and teardown
- Splitting the inbound stream on 0x00 frame terminators
- Decoding frames and queueing them for the control thread
- Writing encoded frames, each preceded by a resync delimiter

Inbound bytes are read by pyserial's ``ReaderThread``; decoded frames are
handed over through a ``queue.Queue`` so the protocol logic only ever runs
on the thread that drains it.
"""

import logging
import queue
import threading
from typing import Optional

import serial
import serial.threaded

from .errors import FrameError, TransportError
from .framing import FRAME_TERMINATOR, Frame, decode_frame

logger = logging.getLogger(__name__)

RESYNC = bytes([FRAME_TERMINATOR])


class FramePacketizer(serial.threaded.Packetizer):
    """
    Split the serial stream into frames and decode them.

    Corrupt frames are counted and dropped, so to the protocol they look
    like frames that never arrived.
    """

    TERMINATOR = RESYNC

    def __init__(self, inbox: "queue.Queue[Frame]"):
        super().__init__()
        self.inbox = inbox
        self.frames_received = 0
        self.frames_dropped = 0

    def handle_packet(self, packet: bytes) -> None:
        # Back-to-back delimiters from the resync byte
        if not packet:
            return
        logger.debug(f"<<< {packet.hex().upper()}")
        try:
            frame = decode_frame(bytes(packet))
        except FrameError as e:
            self.frames_dropped += 1
            logger.debug(f"Dropped corrupt frame: {e}")
            return
        self.frames_received += 1
        self.inbox.put(frame)

    def connection_lost(self, exc: Optional[BaseException]) -> None:
        if exc is not None:
            logger.warning(f"Serial connection lost: {exc}")
        super().connection_lost(exc)


class SerialTransport:
    """
    Frame transport over a serial port.

    Example:
        with SerialTransport("/dev/ttyUSB0") as transport:
            transport.send(encode_frame(MessageId.BOOT_EXIT))
            frame = transport.inbox.get(timeout=1.0)
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        timeout: float = 1.0,
        resync: bool = True,
    ):
        """
        Args:
            port: Serial port (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Serial baud rate (default 115200)
            timeout: Write timeout in seconds
            resync: Send a 0x00 before every frame
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.resync = resync
        self.inbox: "queue.Queue[Frame]" = queue.Queue()
        self.ser: Optional[serial.Serial] = None
        self._reader: Optional[serial.threaded.ReaderThread] = None
        self._packetizer: Optional[FramePacketizer] = None
        self._write_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._reader is not None and self._reader.alive

    @property
    def frames_dropped(self) -> int:
        return self._packetizer.frames_dropped if self._packetizer else 0

    def open(self) -> None:
        """
        Open the port and start the reader thread.

        Raises:
            TransportError: If the port cannot be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=8,
                parity="N",
                stopbits=1,
                timeout=self.timeout,
                write_timeout=self.timeout,
            )
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Cannot open port {self.port}: {e}")

        self._reader = serial.threaded.ReaderThread(
            self.ser, lambda: FramePacketizer(self.inbox)
        )
        self._reader.start()
        _, self._packetizer = self._reader.connect()
        logger.debug(f"Opened {self.port} at {self.baudrate} bps")

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
            logger.debug(f"Closed {self.port}")
        elif self.ser and self.ser.is_open:
            self.ser.close()

    def __enter__(self) -> "SerialTransport":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def send(self, data: bytes) -> None:
        """
        Write one encoded frame.

        Raises:
            TransportError: If the port is closed or the write fails
        """
        if not self.ser or not self.ser.is_open:
            raise TransportError("Serial port not open")

        out = RESYNC + data if self.resync else data
        try:
            with self._write_lock:
                written = self.ser.write(out)
        except serial.SerialException as e:
            raise TransportError(f"Write error: {e}")
        if written is not None and written != len(out):
            raise TransportError(f"Incomplete write: sent {written}/{len(out)} bytes")
        logger.debug(f">>> {out.hex().upper()}")
