"""
vmstarter Event Bus

Delivers progress and lifecycle notifications to listeners:
- Topic based registration
- Synchronous delivery in registration order
- Listener failures are logged and never interrupt delivery

Author: YSNRFD
Version: 1.0.0
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional
import time

from vmstarter.logger import get_logger


TOPIC_READY = "emulator-ready"
TOPIC_STARTED = "emulator-started"
TOPIC_STOPPED = "emulator-stopped"
TOPIC_FATAL = "emulator-error"


Listener = Callable[[Any], None]


@dataclass
class Event:
    """A delivered notification, kept in the bus history."""
    topic: str
    data: Any = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class _Registration:
    listener: Listener
    owner: Any = None


class EventBus:
    """
    A simple publish/subscribe bus.

    Example:
        >>> bus = EventBus()
        >>> bus.register("download-progress", lambda e: print(e.percent))
        >>> bus.send("download-progress", progress)
    """

    def __init__(self, history_size: int = 256):
        self._logger = get_logger('bus')
        self._listeners: dict[str, List[_Registration]] = {}
        self._history: List[Event] = []
        self._history_size = history_size
        self._events_sent = 0

    def register(self, topic: str, listener: Listener, owner: Any = None) -> None:
        """
        Register a listener for a topic.

        Args:
            topic: Name of the topic
            listener: Called with the event payload
            owner: Optional object the registration belongs to
        """
        self._listeners.setdefault(topic, []).append(_Registration(listener, owner))
        self._logger.debug("Registered listener", context={'topic': topic})

    def unregister(self, topic: str, listener: Listener) -> bool:
        """
        Remove a listener.

        Returns:
            True if the listener was registered, False otherwise
        """
        registrations = self._listeners.get(topic, [])
        for i, registration in enumerate(registrations):
            if registration.listener == listener:
                registrations.pop(i)
                return True
        return False

    def send(self, topic: str, data: Any = None) -> None:
        """Deliver ``data`` to every listener of ``topic``."""
        event = Event(topic=topic, data=data)
        self._events_sent += 1
        self._history.append(event)
        if len(self._history) > self._history_size:
            self._history = self._history[-self._history_size:]

        for registration in list(self._listeners.get(topic, [])):
            try:
                registration.listener(data)
            except Exception as e:
                self._logger.exception(
                    f"Error in event listener: {e}",
                    exc=e,
                    context={'topic': topic}
                )

    def history(self, topic: Optional[str] = None) -> List[Event]:
        """Recently sent events, optionally filtered by topic."""
        if topic is None:
            return list(self._history)
        return [event for event in self._history if event.topic == topic]

    def get_stats(self) -> dict[str, Any]:
        """Get bus statistics."""
        return {
            'events_sent': self._events_sent,
            'topics': sorted(self._listeners),
            'listeners': sum(len(r) for r in self._listeners.values()),
        }
