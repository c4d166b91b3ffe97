"""Progress and diagnostics sinks.

The clustering engine never prints: long phases report to a
ProgressMonitor and every advisory message goes through Diagnostics,
which forwards it to the standard logging machinery and keeps a copy
so callers can inspect what happened during a run.
"""

import logging
import threading
from typing import List, Optional


logger = logging.getLogger(__name__)


class ProgressMonitor:
    """Progress sink with cooperative interruption.

    Tasks nest: each open task keeps its own label and percentage.
    Within a task, reported percentages never decrease and are clamped
    to [0, 100].
    """

    def __init__(self):
        self._tasks: List[List] = []
        self._interrupt = threading.Event()

    def begin_task(self, label: str) -> None:
        """Start a (possibly nested) task."""
        self._tasks.append([label, 0])
        logger.debug("Begin task: %s", label)

    def display_label(self, label: str) -> None:
        """Update the current task label."""
        if self._tasks:
            self._tasks[-1][0] = label
        logger.debug(label)

    def display_progression(self, percent: float) -> None:
        """Report progression of the current task."""
        if not self._tasks:
            return
        percent = int(min(max(percent, 0), 100))
        if percent > self._tasks[-1][1]:
            self._tasks[-1][1] = percent

    def request_interruption(self) -> None:
        """Ask every running loop to stop at its next check."""
        self._interrupt.set()

    def is_interruption_requested(self) -> bool:
        """Whether an interruption has been requested."""
        return self._interrupt.is_set()

    def end_task(self) -> None:
        """Close the current task."""
        if self._tasks:
            label, _ = self._tasks.pop()
            logger.debug("End task: %s", label)

    @property
    def label(self) -> str:
        """Label of the innermost open task."""
        return self._tasks[-1][0] if self._tasks else ""

    @property
    def progression(self) -> int:
        """Percentage of the innermost open task."""
        return self._tasks[-1][1] if self._tasks else 0

    @property
    def depth(self) -> int:
        """Number of open tasks."""
        return len(self._tasks)


class Diagnostics:
    """Collects warnings, errors and messages emitted during a run.

    Errors fail the current operation without raising; callers decide
    from the boolean returns of the engine.
    """

    def __init__(self, name: Optional[str] = None):
        self._logger = logging.getLogger(name or "kmcluster")
        self.warnings: List[str] = []
        self.errors: List[str] = []
        self.messages: List[str] = []

    def add_warning(self, text: str) -> None:
        self.warnings.append(text)
        self._logger.warning(text)

    def add_error(self, text: str) -> None:
        self.errors.append(text)
        self._logger.error(text)

    def add_message(self, text: str) -> None:
        self.messages.append(text)
        self._logger.info(text)

    def clear(self) -> None:
        """Forget recorded entries."""
        self.warnings.clear()
        self.errors.clear()
        self.messages.clear()

    def has_warning(self, fragment: str) -> bool:
        """Whether any recorded warning contains the given text."""
        return any(fragment in w for w in self.warnings)
