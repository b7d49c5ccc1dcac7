"""In-process broadcast bus for local runs and tests."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Mapping[str, Any]], None]


@dataclass(frozen=True)
class DeliveredMessage:
    topic: str
    event: str
    payload: Mapping[str, Any]


class InMemoryChannel:
    def __init__(self, bus: "InMemoryBus", topic: str):
        self.bus = bus
        self.topic = topic
        self.closed = False

    def send(self, event: str, payload: Mapping[str, Any]) -> str:
        if self.closed:
            raise RuntimeError(f"Channel '{self.topic}' has been removed")
        self.bus._deliver(self.topic, event, payload)
        return "ok"


class InMemoryBus:
    """Channel-scoped publish/subscribe with the same shape as the HTTP client.

    Delivery is synchronous and in publish order. A failing subscriber is
    logged and does not affect other subscribers or the sender.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self.history: list[DeliveredMessage] = []
        self.open_channels = 0

    def channel(self, topic: str) -> InMemoryChannel:
        self.open_channels += 1
        return InMemoryChannel(self, topic)

    def remove_channel(self, channel: InMemoryChannel) -> None:
        if not channel.closed:
            channel.closed = True
            self.open_channels -= 1

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for ``topic``; returns an unsubscribe function."""
        self._subscribers[topic].append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers[topic]:
                self._subscribers[topic].remove(callback)

        return _unsubscribe

    def messages_for(self, topic: str) -> list[DeliveredMessage]:
        return [m for m in self.history if m.topic == topic]

    def _deliver(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        self.history.append(DeliveredMessage(topic=topic, event=event, payload=payload))
        for callback in list(self._subscribers[topic]):
            try:
                callback(event, payload)
            except Exception as exc:
                logger.error(f"Subscriber failed for {topic}/{event}: {exc}")
