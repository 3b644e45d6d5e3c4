"""
Safety context and write gating for flash operations.

Flashing erases the application on the device, so the CLI must get an
explicit go-ahead first: the --write flag plus either a typed
confirmation or a matching --confirm token.
"""

import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional

# Confirmation token required for non-interactive writes
CONFIRMATION_TOKEN = "FLASH"


class WritePermissionError(Exception):
    """
    Raised when a flash operation is not permitted.

    Attributes:
        reason: Human-readable explanation of why write was denied
        details: Additional context (port, region, etc.)
    """
    def __init__(self, reason: str, details: Optional[dict] = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)


@dataclass
class SafetyContext:
    """
    Safety context for flash operations.

    Attributes:
        write_enabled: Whether the --write flag was provided
        confirmation_token: For non-interactive mode, must match CONFIRMATION_TOKEN
        interactive: Whether the caller can prompt for confirmation
        port: Serial port that will be written
        dry_run: Load and plan only, never touch the device
        warnings: Warning messages accumulated during the operation
    """
    write_enabled: bool = False
    confirmation_token: Optional[str] = None
    interactive: bool = True
    port: str = ""
    dry_run: bool = False
    warnings: List[str] = field(default_factory=list)

    prompt_confirmation: Optional[Callable[[str], str]] = None
    show_details: Optional[Callable[[dict], None]] = None

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_details_dict(self, target_region: str = "", bytes_length: int = 0) -> dict:
        """Create a details dictionary for display."""
        details = {
            "port": self.port or "-",
            "target_region": target_region,
            "bytes_length": bytes_length,
        }
        if self.warnings:
            details["warnings"] = self.warnings
        return details


def require_write_permission(
    ctx: SafetyContext,
    target_region: str = "",
    bytes_length: int = 0,
) -> None:
    """
    Enforce flash permission rules.

    Rules enforced:
    1. Dry run: always allowed (nothing is written)
    2. Write not enabled: denied with instructions
    3. Confirmation token present: must match exactly
    4. Interactive: prompt for the token
    5. Otherwise denied

    Raises:
        WritePermissionError: If the flash is not permitted
    """
    details = ctx.to_details_dict(target_region, bytes_length)

    if ctx.dry_run:
        return

    if not ctx.write_enabled:
        raise WritePermissionError(
            "Flashing requires explicit permission. Use the --write flag.",
            details=details,
        )

    if ctx.confirmation_token is not None:
        if ctx.confirmation_token.strip().upper() != CONFIRMATION_TOKEN:
            raise WritePermissionError(
                f"Confirmation token mismatch. Expected '{CONFIRMATION_TOKEN}'.",
                details=details,
            )
        return

    if ctx.interactive and ctx.prompt_confirmation:
        if ctx.show_details:
            ctx.show_details(details)
        user_input = ctx.prompt_confirmation(
            f"Type '{CONFIRMATION_TOKEN}' to proceed, or anything else to abort"
        )
        if user_input.strip().upper() != CONFIRMATION_TOKEN:
            raise WritePermissionError(
                "Confirmation failed. Flash aborted by user.",
                details=details,
            )
        return

    raise WritePermissionError(
        f"Non-interactive mode requires --confirm {CONFIRMATION_TOKEN}.",
        details=details,
    )


def create_cli_safety_context(
    write_flag: bool,
    port: str = "",
    confirmation_token: Optional[str] = None,
) -> SafetyContext:
    """
    Create a SafetyContext configured for CLI usage.

    Without --write the context is a dry run. Interactive prompting is only
    possible when stdin is a TTY and no token was given.
    """
    interactive = sys.stdin.isatty() and confirmation_token is None

    return SafetyContext(
        write_enabled=write_flag,
        confirmation_token=confirmation_token,
        interactive=interactive,
        port=port,
        dry_run=not write_flag,
    )
