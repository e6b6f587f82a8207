"""Page lifecycle events the delivery client guards against while a test is open."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, List, Optional

logger = logging.getLogger(__name__)

BEFORE_UNLOAD = "beforeunload"
VISIBILITY_HIDDEN = "visibility_hidden"

UnloadHandler = Callable[[], Optional[str]]
HiddenHandler = Callable[[], object]


class PageEvents:
    """Listener registry standing in for the hosting page.

    ``before_unload`` handlers may return a warning to show the participant;
    ``visibility_hidden`` handlers are notified when the page is backgrounded.
    The two events are independent and either can fire without the other.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Callable[[], object]]] = defaultdict(list)

    def add_listener(self, event: str, handler: Callable[[], object]) -> Callable[[], None]:
        if event not in (BEFORE_UNLOAD, VISIBILITY_HIDDEN):
            raise ValueError(f"Unsupported page event: {event}")
        self._handlers[event].append(handler)

        def remove() -> None:
            self.remove_listener(event, handler)

        return remove

    def remove_listener(self, event: str, handler: Callable[[], object]) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def dispatch_before_unload(self) -> Optional[str]:
        warning: Optional[str] = None
        for handler in list(self._handlers.get(BEFORE_UNLOAD, ())):
            result = handler()
            if warning is None and isinstance(result, str):
                warning = result
        return warning

    def dispatch_visibility_hidden(self) -> None:
        handlers = list(self._handlers.get(VISIBILITY_HIDDEN, ()))
        logger.debug("Page hidden; notifying %d listener(s)", len(handlers))
        for handler in handlers:
            handler()


__all__ = ["BEFORE_UNLOAD", "PageEvents", "VISIBILITY_HIDDEN"]
