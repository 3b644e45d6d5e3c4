"""
Remediation hints for update failures.

Maps each error kind to a short, user-facing suggestion the CLI prints
under the error message.
"""

from typing import Dict, Optional

from quadboot.protocol.errors import ErrorKind

REMEDIATIONS: Dict[ErrorKind, str] = {
    ErrorKind.FRAME_FORMAT:
        "Corrupt data on the link. Check the cable and baud rate.",
    ErrorKind.CHECKSUM:
        "Frames are arriving damaged. Check the cable and baud rate.",
    ErrorKind.TRANSPORT:
        "Close other serial apps and check the port name ('ports' command).",
    ErrorKind.TIMEOUT:
        "Device stopped answering. Power cycle it and re-run the full update.",
    ErrorKind.DEVICE_STATUS:
        "Flash controller reported an error. Check write protection, then re-run the update.",
    ErrorKind.INTEGRITY:
        "Flash contents do not match the image. Re-run the full update.",
    ErrorKind.ENTRY:
        "Device did not enter or leave the bootloader. Reset it and retry. "
        "If only the exit failed, the image is already written.",
    ErrorKind.LOAD:
        "Check that the file is valid Intel HEX, or pass --base for raw binaries.",
    ErrorKind.SESSION_BUSY:
        "Another update is running on this connection. Wait for it to finish.",
}


def remediation_for(kind: Optional[ErrorKind]) -> str:
    """Suggested action for an error kind, or an empty string."""
    if kind is None:
        return ""
    return REMEDIATIONS.get(kind, "Check logs for more details.")
