from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeAlias


@dataclass(frozen=True)
class SubscriptionEvent:
    """
    Event delivered to subscriber callbacks.

    - topic: uppercase topic name
    - data: raw payload (Regular) or the node's topic state (SharedState)
    - sender_id: remote node that produced the event
    - to_group: group the message was addressed to ('*' is broadcast)
    """

    topic: str
    data: Any
    sender_id: str | None = None
    to_group: str = "*"


EventCallback: TypeAlias = Callable[[SubscriptionEvent], Any]
