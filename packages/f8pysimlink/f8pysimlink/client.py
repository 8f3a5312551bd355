from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .actions import is_action
from .codec import Envelope, decode_envelope, encode_envelope
from .config import SimClientConfig, new_client_id
from .events import EventCallback, SubscriptionEvent
from .shared_state import SharedState
from .signal import Signal
from .subscription import GroupPair, Subscription, SubscriptionType
from .transport import Transport


log = logging.getLogger(__name__)

TOPIC_NODE_ADDED = "NODE-ADDED"
TOPIC_NODE_REMOVED = "NODE-REMOVED"
TOPIC_ACTNODE_CHANGED = "ACTNODE-CHANGED"
TOPIC_RESET = "RESET"

CMD_SUBSCRIBE = "SUBSCRIBE"
CMD_UNSUBSCRIBE = "UNSUBSCRIBE"
CMD_REQUEST = "REQUEST"

_MEMBERSHIP_TOPICS = (TOPIC_NODE_ADDED, TOPIC_NODE_REMOVED, TOPIC_ACTNODE_CHANGED)


class SimClient:
    """
    Client context for topic pub/sub and shared-state mirroring.

    - Owns the subscription registry, the per-node `SharedState` mirrors and the
      raw message `Signal`; nothing is process-global, so several clients can
      live side by side (and tests tear down by dropping the instance).
    - All entry points run synchronously inside transport callbacks; a
      multi-threaded host must serialize calls into one client.
    """

    def __init__(self, config: SimClientConfig | None = None, *, transport: Transport | None = None) -> None:
        self._config = config or SimClientConfig()
        self.client_id = str(self._config.client_id or "") or new_client_id()
        self.state = SharedState()
        self.signal = Signal("Subscription")
        self.subscriptions: dict[str, Subscription] = {}
        self.sim_nodes: list[str] = []
        self._transport: Transport | None = None
        self._error_once: set[str] = set()

        self.signal.connect(TOPIC_NODE_ADDED, self._on_node_added)
        self.signal.connect(TOPIC_NODE_REMOVED, self._on_node_removed)
        self.signal.connect(TOPIC_ACTNODE_CHANGED, self._on_actnode_changed)
        if transport is not None:
            self.attach(transport)

    @property
    def config(self) -> SimClientConfig:
        return self._config

    @property
    def act_id(self) -> str | None:
        return self.state.act_id

    @property
    def transport(self) -> Transport | None:
        return self._transport

    def attach(self, transport: Transport) -> None:
        """
        Bind this client to a transport's open/message/close/error callbacks.
        """
        self._transport = transport
        transport.bind(
            on_open=self.on_open,
            on_message=self.on_message,
            on_close=self.on_close,
            on_error=self.on_error,
        )
        # Internal handler: remote resets clear that node's mirror.
        if self.get_subscription(TOPIC_RESET) is None:
            self.subscribe(TOPIC_RESET, self._on_reset, raw=True)
        if transport.is_open():
            self.flush_pending()

    def is_connected(self) -> bool:
        return self._transport is not None and bool(self._transport.is_open())

    # --- transport callbacks -------------------------------------------
    def on_open(self) -> None:
        log.info("simlink[%s] connection opened", self.client_id)
        self.flush_pending()

    def on_close(self) -> None:
        log.info("simlink[%s] connection closed", self.client_id)

    def on_error(self, exc: BaseException) -> None:
        log.error("simlink[%s] transport error", self.client_id, exc_info=exc)

    def on_message(self, raw: bytes) -> None:
        try:
            envelope = decode_envelope(raw)
        except ValueError as exc:
            self._log_error_once("decode", "dropping undecodable message", exc)
            log.debug("simlink[%s] dropped %d undecodable bytes: %s", self.client_id, len(raw), exc)
            return
        self.dispatch(envelope)

    def _log_error_once(self, kind: str, message: str, exc: BaseException | None = None) -> None:
        # One error record per failure kind; repeats go to debug only.
        if kind in self._error_once:
            return
        self._error_once.add(kind)
        log.error("simlink[%s] %s", self.client_id, message, exc_info=exc)

    def dispatch(self, envelope: Envelope) -> None:
        """
        Route one decoded envelope to its topic's receivers.
        """
        topic = envelope.topic.upper()
        if topic not in self.subscriptions and topic not in _MEMBERSHIP_TOPICS:
            if not self._config.adopt_unsolicited_topics:
                log.warning("simlink[%s] message for unknown topic %s dropped", self.client_id, topic)
                return
            self._get_or_create(topic)
        self.signal.emit(SubscriptionEvent(topic, envelope.data, envelope.sender_id, envelope.to_group))

    # --- sending ----------------------------------------------------------
    def send(self, topic: str, data: Any = None, to_group: str = "") -> bool:
        """
        Send `[to_group, TOPIC, data]`; the target defaults to the active node.

        Returns False (and logs) when the transport is not open.
        """
        transport = self._transport
        if transport is None or not transport.is_open():
            log.warning("simlink[%s] not connected; cannot send %s", self.client_id, str(topic).upper())
            return False
        try:
            frame = encode_envelope(to_group or self.act_id or "", topic, data)
        except ValueError as exc:
            log.error("simlink[%s] encode failed topic=%s", self.client_id, topic, exc_info=exc)
            return False
        transport.send(frame)
        return True

    # --- subscriptions ----------------------------------------------------
    def _get_or_create(self, topic: str) -> Subscription:
        utopic = str(topic).upper()
        sub = self.subscriptions.get(utopic)
        if sub is None:
            sub = Subscription(utopic)
            self.subscriptions[utopic] = sub
            # Detect the topic type from its first message.
            self.signal.connect(utopic, self._detect_type, once=True)
        return sub

    def get_subscription(self, topic: str) -> Subscription | None:
        return self.subscriptions.get(str(topic).upper())

    def subscribe(
        self,
        topic: str,
        fn: EventCallback | None = None,
        *,
        broadcast: bool = True,
        raw: bool = False,
        actonly: bool | None = None,
        from_group: str | None = None,
        to_group: str | None = None,
    ) -> Subscription:
        sub = self._get_or_create(topic)
        if fn is not None:
            self.connect(sub, fn, raw=raw)
        if actonly is not None:
            sub.actonly = bool(actonly)
        if broadcast:
            self.request_subscription(
                sub.topic,
                self._config.default_from_group if from_group is None else from_group,
                self._config.default_to_group if to_group is None else to_group,
            )
        return sub

    def connect(self, sub: Subscription, fn: EventCallback, *, raw: bool = False) -> None:
        """
        Register a callback according to the topic's classification.
        """
        kind = sub.subscription_type
        if raw or kind is SubscriptionType.Regular:
            self.signal.connect(sub.topic, fn)
        elif kind is SubscriptionType.Unknown:
            sub.deferred.append(fn)
        else:
            self.state.signal.connect(sub.topic, fn)

    def request_subscription(self, topic: str, from_group: str = "", to_group: str = "") -> None:
        sub = self._get_or_create(topic)
        pair: GroupPair = (str(from_group), str(to_group))
        if sub.is_active(pair):
            return
        sub.subs.add(pair)
        if self.is_connected():
            self._send_subscribe(sub, pair)
        else:
            sub.requested.append(pair)

    def flush_pending(self) -> None:
        """
        Send every subscribe request queued while disconnected (FIFO per topic).
        """
        for sub in list(self.subscriptions.values()):
            while sub.requested:
                pair = sub.requested.popleft()
                sub.subs.add(pair)
                self._send_subscribe(sub, pair)

    def unsubscribe(self, topic: str, from_group: str | None = None, to_group: str | None = None) -> None:
        sub = self.get_subscription(topic)
        if sub is None:
            return
        pair: GroupPair = (
            self._config.default_from_group if from_group is None else str(from_group),
            self._config.default_to_group if to_group is None else str(to_group),
        )
        if not sub.is_active(pair):
            return
        sub.subs.discard(pair)
        if pair in sub.requested:
            sub.requested.remove(pair)
        if self.is_connected():
            self.send(CMD_UNSUBSCRIBE, {"topic": sub.topic, "fromGroup": pair[0], "toGroup": pair[1]})

    def _send_subscribe(self, sub: Subscription, pair: GroupPair) -> None:
        self.send(
            CMD_SUBSCRIBE,
            {"topic": sub.topic, "fromGroup": pair[0], "toGroup": pair[1], "actonly": bool(sub.actonly)},
        )

    def _detect_type(self, event: SubscriptionEvent) -> None:
        sub = self.subscriptions.get(event.topic)
        if sub is None:
            log.error("simlink[%s] received message for unknown subscription %s", self.client_id, event.topic)
            return
        data = event.data
        first = data[0] if isinstance(data, (list, tuple)) and data else None
        if is_action(first):
            if not sub.classify(SubscriptionType.SharedState):
                return
            self.state.add_topic(sub.topic)
            for fn in sub.drain_deferred():
                self.state.signal.connect(sub.topic, fn)
            self.signal.connect(sub.topic, self.state.on_shared_state_received)
            # The classifying message is applied here, exactly once.
            self.state.on_shared_state_received(event)
            return

        if not sub.classify(SubscriptionType.Regular):
            return
        for fn in sub.drain_deferred():
            try:
                fn(event)
            except Exception as exc:
                log.error("simlink[%s] subscriber callback failed topic=%s", self.client_id, sub.topic, exc_info=exc)
            self.signal.connect(sub.topic, fn)

    def topics_to_request(self) -> list[str]:
        return [
            sub.topic
            for sub in self.subscriptions.values()
            if sub.topic != TOPIC_RESET
            and sub.subscription_type in (SubscriptionType.SharedState, SubscriptionType.Unknown)
        ]

    # --- membership ---------------------------------------------------------
    def set_active_node(self, node_id: str) -> None:
        self.state.set_act_node(str(node_id))

    def add_nodes(self, node_ids: Iterable[str]) -> list[str]:
        """
        Track newly joined nodes and solicit a full state dump from each.

        Returns the ids that were accepted as simulation nodes.
        """
        prefix = self._config.node_prefix
        new_ids: list[str] = []
        for raw_id in node_ids:
            node_id = str(raw_id)
            if not node_id or node_id == self.client_id:
                continue
            if prefix and not node_id.startswith(prefix):
                continue
            if node_id in self.sim_nodes or node_id in new_ids:
                continue
            self.sim_nodes.append(node_id)
            new_ids.append(node_id)

        for node_id in new_ids:
            self.state.reset(node_id)
        if self.act_id is None and new_ids:
            self.set_active_node(new_ids[0])

        topics = self.topics_to_request()
        for node_id in new_ids:
            self.send(CMD_REQUEST, topics, to_group=node_id)
        return new_ids

    def _on_node_added(self, event: SubscriptionEvent) -> None:
        self.add_nodes(_as_id_list(event.data))

    def _on_node_removed(self, event: SubscriptionEvent) -> None:
        # Mirrors are kept; only the membership list forgets the node.
        for node_id in _as_id_list(event.data):
            if node_id in self.sim_nodes:
                self.sim_nodes.remove(node_id)
                log.info("simlink[%s] node %s left", self.client_id, node_id)

    def _on_actnode_changed(self, event: SubscriptionEvent) -> None:
        ids = _as_id_list(event.data)
        if not ids:
            log.warning("simlink[%s] ACTNODE-CHANGED without node id", self.client_id)
            return
        self.set_active_node(ids[0])

    def _on_reset(self, event: SubscriptionEvent) -> None:
        if event.sender_id:
            self.state.reset(event.sender_id)


def _as_id_list(data: Any) -> list[str]:
    if data is None:
        return []
    if isinstance(data, (list, tuple)):
        return [str(v) for v in data if v is not None]
    return [str(data)]
