from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger("addon_manager.events")


class BatchObserver(Protocol):
    """
    Receives progress and status for batch operations.

    The managers never talk to a UI directly; hosts plug in an observer.
    """

    def on_progress(self, completed: int, total: int) -> None: ...

    def on_status_message(self, text: str) -> None: ...

    def on_download_progress(self, received: int, total: Optional[int]) -> None: ...

    def on_fatal_error(self, message: str) -> None: ...

    def on_nothing_selected(self) -> None: ...


class LoggingObserver:
    """Default observer: everything goes to the addon_manager.events logger."""

    def on_progress(self, completed: int, total: int) -> None:
        logger.debug("Progress %d/%d", completed, total)

    def on_status_message(self, text: str) -> None:
        logger.info(text)

    def on_download_progress(self, received: int, total: Optional[int]) -> None:
        pass

    def on_fatal_error(self, message: str) -> None:
        logger.error("Fatal error: %s", message)

    def on_nothing_selected(self) -> None:
        logger.warning("No add-ons selected, nothing to do")


class UninstallSignal:
    """
    Raised by the host when the application itself is being uninstalled.

    Subscribers run in subscription order.
    """

    def __init__(self) -> None:
        self._subscribers: List[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._subscribers.append(callback)

    def fire(self) -> None:
        logger.info("Application uninstalling, notifying %d subscriber(s)", len(self._subscribers))
        for callback in self._subscribers:
            callback()
