"""
Result objects for firmware updates.

Provides one result structure the CLI can print, serialize to JSON, or
inspect programmatically.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from quadboot.protocol.errors import BootloaderError, ErrorKind


class Outcome(Enum):
    """How an update ended. Cancellation is not a failure."""
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DRY_RUN = "dry_run"


@dataclass
class UpdateResult:
    """
    Unified result object for update operations.

    Attributes:
        outcome: DONE, FAILED, CANCELLED or DRY_RUN
        operation: Name of the operation (e.g., "flash", "inspect")
        image: Image file path
        region: Flashed address range (e.g., "0x08010000-0x08014000")
        bytes_len: Number of image bytes
        image_crc: CRC-32 of the flashed section
        error_kind: Taxonomy kind of the error that ended the update
        errors: Error messages, verbatim
        warnings: Non-blocking issues encountered
        timings: Milliseconds per phase, plus "total"
        metadata: Additional operation-specific data
        logs: Captured log lines from the operation
    """
    outcome: Outcome
    operation: str
    image: str = ""
    region: str = ""
    bytes_len: int = 0
    image_crc: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True unless the update failed."""
        return self.outcome != Outcome.FAILED

    @property
    def cancelled(self) -> bool:
        return self.outcome == Outcome.CANCELLED

    @property
    def message(self) -> str:
        """First error message, or an empty string."""
        return self.errors[0] if self.errors else ""

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_error(self, error: BootloaderError) -> None:
        """Record an error and mark result as failed."""
        self.errors.append(str(error))
        self.error_kind = error.kind
        self.outcome = Outcome.FAILED

    def to_summary(self) -> str:
        """
        Generate a human-readable summary string.

        Suitable for CLI output or simple logging.
        """
        lines = [f"[{self.outcome.name}] {self.operation}"]

        if self.image:
            lines.append(f"  Image: {self.image}")
        if self.region:
            lines.append(f"  Region: {self.region}")
        if self.bytes_len:
            lines.append(f"  Bytes: {self.bytes_len:,}")
        if self.image_crc is not None:
            lines.append(f"  CRC-32: 0x{self.image_crc:08X}")
        if self.timings:
            for name, ms in self.timings.items():
                lines.append(f"  {name}: {ms:.0f} ms")

        if self.warnings:
            lines.append("  Warnings:")
            for warn in self.warnings:
                lines.append(f"    - {warn}")

        if self.errors:
            lines.append("  Errors:")
            for err in self.errors:
                lines.append(f"    - {err}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "outcome": self.outcome.value,
            "operation": self.operation,
            "image": self.image,
            "region": self.region,
            "bytes_len": self.bytes_len,
            "image_crc": f"0x{self.image_crc:08X}" if self.image_crc is not None else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "timings": {k: round(v, 1) for k, v in self.timings.items()},
            "metadata": self.metadata,
            "logs": self.logs,
        }

    @classmethod
    def failure(
        cls,
        operation: str,
        error: BootloaderError,
        **kwargs,
    ) -> "UpdateResult":
        """Create a failed result."""
        result = cls(outcome=Outcome.FAILED, operation=operation, **kwargs)
        result.add_error(error)
        return result
