"""
Topic pub/sub client with per-node shared-state mirrors.

Convenience re-exports:
- `from f8pysimlink import SimClient, SimClientConfig`
- `from f8pysimlink import SharedState, ActionType, SubscriptionType`

The websocket transport lives in `f8pysimlink.ws_transport` and is imported
on demand so the engine can be used without a network stack.
"""

from .actions import ActionType, is_action
from .client import SimClient
from .config import SimClientConfig
from .events import SubscriptionEvent
from .shared_state import SharedState
from .subscription import Subscription, SubscriptionType

__all__ = [
    "ActionType",
    "SharedState",
    "SimClient",
    "SimClientConfig",
    "Subscription",
    "SubscriptionEvent",
    "SubscriptionType",
    "is_action",
]
