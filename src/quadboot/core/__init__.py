"""
Core module for quadboot.

Front-end facing layer on top of the protocol package:
- Write gating / confirmation (safety.py)
- Image loading (image.py)
- Progress reporting and cancellation (progress.py)
- Result objects (results.py)
- Update workflows (actions.py)
- Remediation hints (messages.py)
"""

from .safety import SafetyContext, require_write_permission, WritePermissionError
from .image import MemorySection, load_image, load_first_section
from .progress import ProgressReporter
from .results import Outcome, UpdateResult
from .messages import REMEDIATIONS, remediation_for
from .actions import (
    exclusive_session,
    flash_image,
    flash_serial,
    inspect_image,
)

__all__ = [
    # Safety
    "SafetyContext",
    "require_write_permission",
    "WritePermissionError",
    # Images
    "MemorySection",
    "load_image",
    "load_first_section",
    # Progress
    "ProgressReporter",
    # Results
    "Outcome",
    "UpdateResult",
    # Messages
    "REMEDIATIONS",
    "remediation_for",
    # Actions
    "exclusive_session",
    "flash_image",
    "flash_serial",
    "inspect_image",
]
