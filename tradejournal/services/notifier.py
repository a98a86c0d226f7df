"""User-facing notices: success/error messages and the undo prompt.

A sink (the UI layer) can be attached to render notices. Falls back to
logging when no sink is configured.
"""

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    """Notice severity levels."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.SUCCESS: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


@dataclass
class Notice:
    """A message shown to the user, optionally with one action button."""

    id: int
    message: str
    level: NoticeLevel = NoticeLevel.INFO
    duration_seconds: float | None = None  # visible countdown, None = default toast
    action_label: str | None = None
    on_action: Callable[[], object] | None = field(default=None, repr=False)
    dismissed: bool = False

    def trigger(self) -> object:
        """Invoke the notice's action (e.g. Undo). No-op once dismissed."""
        if self.dismissed or self.on_action is None:
            return None
        return self.on_action()


class Notifier:
    """Send notices to the UI sink, or to the log when there is none."""

    def __init__(self, sink: Callable[[Notice], None] | None = None) -> None:
        self._sink = sink
        self._ids = itertools.count(1)
        # Notices with an action (undo prompts) until dismissed
        self.active: dict[int, Notice] = {}

    def _emit(self, notice: Notice) -> Notice:
        if notice.on_action is not None:
            self.active[notice.id] = notice
        if self._sink is None:
            logger.log(
                _LOG_LEVELS.get(notice.level, logging.INFO),
                "NOTICE [%s]: %s", notice.level.value, notice.message,
            )
            return notice
        try:
            self._sink(notice)
        except Exception as e:
            logger.error("Failed to deliver notice %r: %s", notice.message, e)
        return notice

    def send(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> Notice:
        return self._emit(Notice(id=next(self._ids), message=message, level=level))

    def success(self, message: str) -> Notice:
        return self.send(message, NoticeLevel.SUCCESS)

    def error(self, message: str) -> Notice:
        return self.send(message, NoticeLevel.ERROR)

    def undo_prompt(
        self, message: str, duration_seconds: float, on_undo: Callable[[], object]
    ) -> Notice:
        """Show a notice with an Undo button and a countdown of ``duration_seconds``."""
        return self._emit(
            Notice(
                id=next(self._ids),
                message=message,
                duration_seconds=duration_seconds,
                action_label="Undo",
                on_action=on_undo,
            )
        )

    def dismiss(self, notice: Notice) -> None:
        notice.dismissed = True
        self.active.pop(notice.id, None)
