"""
Bootloader target configuration.

A ``BootConfig`` bundles every protocol parameter the update engine needs.
Named target profiles give sensible defaults per board; CLI options
override single fields with ``dataclasses.replace``.

Usage:
    from quadboot.protocol.config import get_target

    config = get_target("quadcontrol")
    config = dataclasses.replace(config, soft_reset=False)
"""

from dataclasses import dataclass
from typing import Dict, List

from .messages import BOOT_MAGIC, WRITE_CHUNK_SIZE
from .pipeline import MAX_WINDOW

DEFAULT_BAUDRATE = 115200
DEFAULT_TARGET = "quadcontrol"


@dataclass(frozen=True)
class BootConfig:
    """
    Protocol parameters for one bootloader target.

    Attributes:
        description: Human readable board description
        app_base: Default application start address (raw binaries)
        magic: Value sent with the enter-bootloader command
        first_sector: First flash sector erased before programming
        sector_count: Number of consecutive sectors erased
        vector_table_size: Leading image bytes written last
        chunk_size: Data bytes per write command
        window: Maximum write commands awaiting acknowledgment
        response_timeout: Default reply timeout in seconds
        erase_timeout: Reply timeout for a sector erase in seconds
        entry_timeout: Reply timeout per bootloader entry attempt
        entry_attempts: Entry attempts before giving up
        poll_interval: Inbox wait step in seconds
        soft_reset: Send a shell reset before each entry attempt
    """
    description: str = ""
    app_base: int = 0x08010000
    magic: int = BOOT_MAGIC
    first_sector: int = 4
    sector_count: int = 8
    vector_table_size: int = 8
    chunk_size: int = WRITE_CHUNK_SIZE
    window: int = MAX_WINDOW
    response_timeout: float = 1.0
    erase_timeout: float = 2.0
    entry_timeout: float = 1.0
    entry_attempts: int = 100
    poll_interval: float = 0.01
    soft_reset: bool = True

    def __post_init__(self) -> None:
        if self.sector_count < 1:
            raise ValueError("sector_count must be >= 1")
        if self.entry_attempts < 1:
            raise ValueError("entry_attempts must be >= 1")
        if not 0 < self.chunk_size <= WRITE_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be 1..{WRITE_CHUNK_SIZE}")
        if self.window < 1:
            raise ValueError("window must be >= 1")

    @property
    def sectors(self) -> range:
        """Sector indices erased before programming."""
        return range(self.first_sector, self.first_sector + self.sector_count)


TARGETS: Dict[str, BootConfig] = {
    "quadcontrol": BootConfig(
        description="STM32F4 flight controller, application in sectors 4-11",
        app_base=0x08010000,
        first_sector=4,
        sector_count=8,
    ),
    "quadcontrol-small": BootConfig(
        description="STM32F4 with 512 KiB flash, application in sectors 4-7",
        app_base=0x08010000,
        first_sector=4,
        sector_count=4,
    ),
}


def list_targets() -> List[str]:
    return sorted(TARGETS)


def get_target(name: str) -> BootConfig:
    """
    Look up a target profile by name (case-insensitive).

    Raises:
        KeyError: If the target is unknown
    """
    key = name.strip().lower()
    if key not in TARGETS:
        raise KeyError(f"Unknown target '{name}'. Known targets: {', '.join(list_targets())}")
    return TARGETS[key]
