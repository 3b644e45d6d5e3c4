"""
Progress reporting and cooperative cancellation.

The update engine reports ``(percent, text)`` and polls ``is_cancelled``
between protocol steps. ``cancel()`` may be called from any thread, for
example a signal handler or a UI button.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ProgressReporter:
    """
    Progress sink with a cancellation flag.

    Example:
        reporter = ProgressReporter(lambda pct, text: print(pct, text))
        ...
        reporter.cancel()
    """

    def __init__(self, callback: Optional[Callable[[int, str], None]] = None):
        self.callback = callback
        self.percent = 0
        self.text = ""
        self._cancel = threading.Event()

    def report(self, percent: int, text: str) -> None:
        self.percent = max(0, min(100, int(percent)))
        self.text = text
        logger.debug(f"{self.percent:3d}%: {text}")
        if self.callback:
            self.callback(self.percent, text)

    def cancel(self) -> None:
        """Request the update to stop at the next step boundary."""
        if not self._cancel.is_set():
            logger.info("Cancellation requested")
        self._cancel.set()

    def is_cancelled(self) -> bool:
        return self._cancel.is_set()
