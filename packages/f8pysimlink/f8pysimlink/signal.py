from __future__ import annotations

import logging
from dataclasses import dataclass

from .events import EventCallback, SubscriptionEvent


log = logging.getLogger(__name__)


@dataclass
class _Receiver:
    callback: EventCallback
    once: bool = False


class Signal:
    """
    Named topic -> callbacks dispatcher.

    Each `SimClient` owns its own signals; there is no process-wide registry.
    Callback failures are logged and never stop delivery to later receivers.
    """

    def __init__(self, name: str) -> None:
        self.name = str(name)
        self._receivers: dict[str, list[_Receiver]] = {}

    def connect(self, topic: str, callback: EventCallback, *, once: bool = False) -> None:
        self._receivers.setdefault(str(topic), []).append(_Receiver(callback, once=bool(once)))

    def disconnect(self, topic: str, callback: EventCallback) -> bool:
        receivers = self._receivers.get(str(topic))
        if not receivers:
            return False
        for i, rec in enumerate(receivers):
            if rec.callback == callback:
                del receivers[i]
                return True
        return False

    def has_receivers(self, topic: str) -> bool:
        return bool(self._receivers.get(str(topic)))

    def receiver_count(self, topic: str) -> int:
        return len(self._receivers.get(str(topic), ()))

    def emit(self, event: SubscriptionEvent) -> int:
        """
        Deliver `event` to every receiver of `event.topic`.

        Returns the number of callbacks invoked.
        """
        topic = str(event.topic)
        receivers = self._receivers.get(topic)
        if not receivers:
            return 0
        # Snapshot: callbacks may connect new receivers while we iterate.
        snapshot = list(receivers)
        for rec in snapshot:
            if rec.once:
                try:
                    receivers.remove(rec)
                except ValueError:
                    pass
        for rec in snapshot:
            try:
                rec.callback(event)
            except Exception as exc:
                log.error("signal[%s] callback failed topic=%s", self.name, topic, exc_info=exc)
        return len(snapshot)

    def clear(self) -> None:
        self._receivers.clear()
