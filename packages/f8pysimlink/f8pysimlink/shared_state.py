from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .actions import ActionType, parse_action
from .events import SubscriptionEvent
from .signal import Signal
from .value_tree import deep_clone, index_of, is_map, is_sequence, merge_into


log = logging.getLogger(__name__)


def _store_key(topic: str) -> str:
    return str(topic).lower()


def _signal_key(topic: str) -> str:
    return str(topic).upper()


class SharedState:
    """
    Per-remote-node state mirrors and the delta reconciliation engine.

    - `defaults`: template (`topic -> value tree`) cloned for every new node
    - `remotes`: `node_id -> {topic: value tree}`, one independent mirror per node
    - `signal`: topic-changed notifications, keyed by uppercase topic; only
      the active node's changes are emitted
    """

    def __init__(self) -> None:
        self.defaults: dict[str, Any] = {}
        self.remotes: dict[str, dict[str, Any]] = {}
        self.act_id: str | None = None
        self.signal = Signal("SharedState")

    # --- store ----------------------------------------------------------
    def reset(self, node_id: str) -> None:
        """
        Replace the node's mirror with a fresh copy of the defaults.

        When the node is active, observers get one notification per topic so
        they learn the view was cleared.
        """
        node_id = str(node_id)
        store = deep_clone(self.defaults)
        self.remotes[node_id] = store
        if node_id == self.act_id:
            self._emit_all(node_id, store)

    def set_act_node(self, node_id: str) -> None:
        node_id = str(node_id)
        store = self.remotes.get(node_id)
        if store is None:
            store = deep_clone(self.defaults)
            self.remotes[node_id] = store
        self.act_id = node_id
        log.info("active node set to %s", node_id)
        self._emit_all(node_id, store)

    def add_topic(self, topic: str) -> None:
        key = _store_key(topic)
        if key in self.defaults:
            return
        self.defaults[key] = {}
        for store in self.remotes.values():
            store[key] = {}

    def is_shared_state(self, topic: str) -> bool:
        return _store_key(topic) in self.defaults

    def has_node(self, node_id: str) -> bool:
        return str(node_id) in self.remotes

    def node_ids(self) -> list[str]:
        return list(self.remotes.keys())

    def get(self, node_id: str | None = None, topic: str | None = None) -> Any:
        """
        Snapshot of a node's mirror (active node by default).

        Returns a deep copy; `None` when the node (or topic) is unknown.
        """
        nid = self.act_id if node_id is None else str(node_id)
        if nid is None:
            return None
        store = self.remotes.get(nid)
        if store is None:
            return None
        if topic is None:
            return deep_clone(store)
        key = _store_key(topic)
        if key not in store:
            return None
        return deep_clone(store[key])

    # --- reconciliation ---------------------------------------------------
    def on_shared_state_received(self, event: SubscriptionEvent) -> None:
        self.apply_delta(event.sender_id, event.topic, event.data, to_group=event.to_group)

    def apply_delta(self, sender_id: str | None, topic: str, payload: Any, *, to_group: str = "") -> None:
        """
        Apply one `[action_code, action_data]` delta to the sender's mirror.
        """
        if sender_id is None:
            log.warning("shared state delta without sender topic=%s; dropped", topic)
            return
        sender_id = str(sender_id)
        remote = self.remotes.get(sender_id)
        if remote is None:
            # First contact: not synchronized yet. A full REQUEST round-trip
            # brings the mirror up to date; this delta is not replayed.
            self.remotes[sender_id] = deep_clone(self.defaults)
            log.debug("first contact from node=%s topic=%s; delta dropped", sender_id, topic)
            return

        if not is_sequence(payload) or len(payload) < 1:
            log.warning("malformed shared state payload topic=%s sender=%s", topic, sender_id)
            return
        action = parse_action(payload[0])
        data = payload[1] if len(payload) > 1 else None

        if action is ActionType.Reset:
            self.reset(sender_id)
            return
        if action is ActionType.ActChange:
            self.set_act_node(sender_id)
            return
        if action is ActionType.NoAction:
            log.warning("unknown action code %r topic=%s sender=%s", payload[0], topic, sender_id)
            return
        if not isinstance(data, Mapping):
            log.warning("action %s expects a map topic=%s sender=%s", action.name, topic, sender_id)
            return

        key = _store_key(topic)
        store = remote.get(key)
        if store is None:
            store = {}
            remote[key] = store

        if action is ActionType.Update:
            merge_into(store, data)
        elif action in (ActionType.Append, ActionType.Extend):
            _apply_append(store, data, topic=topic)
        elif action is ActionType.Replace:
            for k, v in data.items():
                store[k] = deep_clone(v)
        elif action is ActionType.Delete:
            _apply_delete(store, data)

        if sender_id == self.act_id:
            self.signal.emit(SubscriptionEvent(_signal_key(topic), store, sender_id, to_group))

    def _emit_all(self, node_id: str, store: dict[str, Any]) -> None:
        for topic, value in list(store.items()):
            self.signal.emit(SubscriptionEvent(_signal_key(topic), value, node_id, ""))


def _apply_append(store: dict[str, Any], data: Mapping[Any, Any], *, topic: str) -> None:
    # Append and Extend both push exactly one element.
    for k, v in data.items():
        if k not in store:
            store[k] = [deep_clone(v)]
            continue
        current = store[k]
        if not isinstance(current, list):
            log.warning("append target is not a sequence topic=%s key=%s; skipped", topic, k)
            continue
        current.append(deep_clone(v))


def _apply_delete(store: dict[str, Any], data: Mapping[Any, Any]) -> None:
    for k, v in data.items():
        if k not in store:
            # msgpack peers may send whole-number indices as floats.
            if isinstance(v, float) and v.is_integer():
                v = int(v)
            if not isinstance(v, int) or isinstance(v, bool):
                return
            idx = v
        else:
            target = store[k]
            if is_sequence(target):
                idx = index_of(list(target), v)
            elif is_map(target):
                keys = v if is_sequence(v) else [v]
                for item in keys:
                    try:
                        target.pop(item, None)
                    except TypeError:
                        # Unhashable key: nothing to delete.
                        continue
                return
            else:
                return
        if idx < 0:
            return
        for value in store.values():
            if isinstance(value, list) and idx < len(value):
                del value[idx]
