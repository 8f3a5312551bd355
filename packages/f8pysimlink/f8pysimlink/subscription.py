from __future__ import annotations

import threading
from collections import deque
from enum import Enum

from .events import EventCallback


class SubscriptionType(Enum):
    """
    Classification of a topic, decided once from its first inbound message.
    """

    Unknown = "Unknown"
    Regular = "Regular"
    SharedState = "SharedState"


GroupPair = tuple[str, str]


class Subscription:
    """
    Per-topic subscription record.

    - subs: `(from_group, to_group)` pairs currently subscribed at the server
    - requested: pairs requested before a connection existed (FIFO)
    - deferred: callbacks waiting for the topic to be classified (FIFO)
    """

    def __init__(self, topic: str) -> None:
        self.topic = str(topic).upper()
        self.subs: set[GroupPair] = set()
        self.requested: deque[GroupPair] = deque()
        self.actonly = False
        self.deferred: deque[EventCallback] = deque()
        self._type = SubscriptionType.Unknown
        self._type_lock = threading.Lock()

    @property
    def subscription_type(self) -> SubscriptionType:
        return self._type

    def classify(self, kind: SubscriptionType) -> bool:
        """
        Commit the Unknown -> `kind` transition.

        Returns False when the topic was already classified; the first caller
        wins and the type never changes afterwards.
        """
        if kind is SubscriptionType.Unknown:
            raise ValueError("cannot classify a subscription as Unknown")
        with self._type_lock:
            if self._type is not SubscriptionType.Unknown:
                return False
            self._type = kind
            return True

    def is_active(self, pair: GroupPair) -> bool:
        return pair in self.subs

    def drain_deferred(self) -> list[EventCallback]:
        out: list[EventCallback] = []
        while self.deferred:
            out.append(self.deferred.popleft())
        return out

    def __repr__(self) -> str:
        return f"Subscription(topic={self.topic!r}, type={self._type.value}, subs={sorted(self.subs)!r})"
