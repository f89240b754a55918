# camstatus/events.py
import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class Subscribers:
    """List of observer callbacks. A failing observer is logged and skipped."""

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable] = []

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """Registers `callback` and returns a function that removes it again."""
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, *args) -> None:
        for callback in list(self._callbacks):
            try:
                callback(*args)
            except Exception:
                logger.exception(f"[EVENTS] '{self.name}' observer {callback!r} failed")

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self):
        return len(self._callbacks)
