"""
Firmware image loading.

Reads Intel HEX files (or raw binaries placed at a base address) into
contiguous memory sections. Only the first section is flashed by the
update engine; additional sections are reported but ignored.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from intelhex import IntelHex, IntelHexError

from quadboot.protocol.crc import crc32
from quadboot.protocol.errors import LoadError

logger = logging.getLogger(__name__)

BINARY_SUFFIXES = (".bin",)


@dataclass(frozen=True)
class MemorySection:
    """Contiguous run of image bytes at a flash address."""
    start_address: int
    data: bytes

    @property
    def end_address(self) -> int:
        """Return end address (exclusive)."""
        return self.start_address + len(self.data)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def crc32(self) -> int:
        return crc32(self.data)

    @property
    def region(self) -> str:
        return f"0x{self.start_address:08X}-0x{self.end_address:08X}"


def sections_from_intelhex(ih: IntelHex) -> List[MemorySection]:
    """Split an IntelHex object into contiguous sections, lowest address first."""
    sections = []
    for start, end in ih.segments():
        data = ih.tobinstr(start=start, end=end - 1)
        sections.append(MemorySection(start, bytes(data)))
    return sections


def load_image(path: str, base_address: Optional[int] = None) -> List[MemorySection]:
    """
    Load a firmware image.

    Args:
        path: Intel HEX file, or a raw binary when it ends in .bin
        base_address: Load address for raw binaries (ignored for HEX)

    Returns:
        Sections in address order (may be empty)

    Raises:
        LoadError: If the file is missing or cannot be parsed
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise LoadError(f"Image file not found: {path}")

    ih = IntelHex()
    try:
        if file_path.suffix.lower() in BINARY_SUFFIXES:
            if base_address is None:
                raise LoadError(f"Raw binary {file_path.name} needs a base address")
            ih.loadbin(str(file_path), offset=base_address)
        else:
            ih.loadhex(str(file_path))
    except IntelHexError as e:
        raise LoadError(f"Can't parse {file_path.name}: {e}")
    except OSError as e:
        raise LoadError(f"Can't read {file_path.name}: {e}")

    sections = sections_from_intelhex(ih)
    logger.debug(f"Loaded {file_path.name}: {len(sections)} section(s)")
    return sections


def load_first_section(
    path: str,
    base_address: Optional[int] = None,
    min_size: int = 0,
) -> MemorySection:
    """
    Load an image and return the section to flash.

    Raises:
        LoadError: If the image is empty or the first section is too small
    """
    sections = load_image(path, base_address)
    if not sections:
        raise LoadError(f"No data in {Path(path).name}")
    if len(sections) > 1:
        logger.warning(
            f"{Path(path).name} has {len(sections)} sections; only "
            f"{sections[0].region} will be flashed"
        )
    first = sections[0]
    if first.size <= min_size:
        raise LoadError(
            f"Image section {first.region} too small: {first.size} bytes "
            f"(needs more than {min_size})"
        )
    return first
