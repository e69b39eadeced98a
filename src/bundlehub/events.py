"""
Lifecycle event channels.

The registry manager publishes install, update, uninstall and sync events on
``EventEmitter`` channels; front ends subscribe without the manager knowing
about them.
"""

import inspect
from typing import Any, Callable, Generic, List, TypeVar

from bundlehub.log_utils import logger

T = TypeVar("T")

Listener = Callable[[T], Any]


class EventEmitter(Generic[T]):
    """A typed observer channel; listeners may be plain or async callables."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register ``listener`` and return a callable that removes it again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def fire(self, payload: T) -> None:
        """
        Deliver ``payload`` to every listener in subscription order.

        A failing listener is logged and does not stop delivery to the others.
        """
        for listener in list(self._listeners):
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Listener for {self.name} raised: {e}")
