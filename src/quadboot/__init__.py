"""
quadboot - firmware updater for the quadcontrol serial bootloader

Loads Intel HEX images and programs them over a COBS/R framed serial link:
enter bootloader, erase, pipelined write, CRC verify, start application.
"""

__version__ = "0.1.0"

from quadboot.protocol import BootConfig, BootProtocol, SerialTransport, UpdateStateMachine
from quadboot.core.actions import flash_image, flash_serial

__all__ = [
    "BootConfig",
    "BootProtocol",
    "SerialTransport",
    "UpdateStateMachine",
    "flash_image",
    "flash_serial",
    "__version__",
]
