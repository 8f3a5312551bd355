import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from f8pysimlink.client import SimClient  # noqa: E402
from f8pysimlink.codec import encode  # noqa: E402
from f8pysimlink.config import SimClientConfig  # noqa: E402
from f8pysimlink.events import SubscriptionEvent  # noqa: E402
from f8pysimlink.subscription import SubscriptionType  # noqa: E402
from f8pysimlink.testing import InMemoryTransport  # noqa: E402


def _client(*, open: bool = True, **cfg: object) -> tuple[SimClient, InMemoryTransport]:
    transport = InMemoryTransport(open=open)
    client = SimClient(SimClientConfig(client_id="me", **cfg), transport=transport)  # type: ignore[arg-type]
    transport.clear()
    return client, transport


class MembershipTests(unittest.TestCase):
    def test_node_added_resets_elects_and_requests_state(self) -> None:
        client, transport = _client()
        client.subscribe("pos")
        client.subscribe("chat")
        transport.deliver("CHAT", "hi", sender_id="S0")
        transport.clear()

        transport.deliver("NODE-ADDED", ["S1", "S2"])

        self.assertEqual(client.sim_nodes, ["S1", "S2"])
        self.assertEqual(client.act_id, "S1")
        self.assertEqual(client.state.remotes["S2"], {})
        requests = transport.sent_topic("REQUEST")
        self.assertEqual(requests, [["S1", "REQUEST", ["POS"]], ["S2", "REQUEST", ["POS"]]])

    def test_node_added_keeps_existing_active_node(self) -> None:
        client, transport = _client()
        transport.deliver("NODE-ADDED", "S1")
        transport.deliver("NODE-ADDED", ["S2"])
        self.assertEqual(client.act_id, "S1")
        self.assertEqual(client.sim_nodes, ["S1", "S2"])

    def test_node_added_skips_own_id_and_prefix_mismatch(self) -> None:
        client, transport = _client(node_prefix="S")
        transport.deliver("NODE-ADDED", ["me", "C1", "S3"])
        self.assertEqual(client.sim_nodes, ["S3"])
        self.assertEqual(client.act_id, "S3")
        self.assertEqual([f[0] for f in transport.sent_topic("REQUEST")], ["S3"])

    def test_actnode_changed_resyncs_observers(self) -> None:
        client, transport = _client()
        events: list[SubscriptionEvent] = []
        client.subscribe("pos", events.append)
        transport.deliver("NODE-ADDED", ["S1", "S2"])
        transport.deliver("POS", ["U", {"x": 1}], sender_id="S1")
        transport.deliver("POS", ["U", {"x": 2}], sender_id="S2")
        self.assertEqual([(e.sender_id, e.data) for e in events], [("S1", {"x": 1})])

        transport.deliver("ACTNODE-CHANGED", "S2")

        self.assertEqual(client.act_id, "S2")
        self.assertEqual(events[-1].sender_id, "S2")
        self.assertEqual(events[-1].data, {"x": 2})

    def test_repeated_node_added_keeps_known_mirrors(self) -> None:
        client, transport = _client()
        client.subscribe("pos")
        transport.deliver("NODE-ADDED", ["S1"])
        transport.deliver("POS", ["U", {"x": 1}], sender_id="S1")
        transport.clear()

        transport.deliver("NODE-ADDED", ["S1", "S2"])

        self.assertEqual(client.sim_nodes, ["S1", "S2"])
        self.assertEqual(client.state.remotes["S1"], {"pos": {"x": 1}})
        self.assertEqual([f[0] for f in transport.sent_topic("REQUEST")], ["S2"])

    def test_first_delta_from_unseen_node_is_dropped(self) -> None:
        client, transport = _client()
        client.subscribe("pos")
        transport.deliver("POS", ["U", {"x": 1}], sender_id="S9")
        self.assertEqual(client.state.remotes["S9"], {"pos": {}})

    def test_node_removed_keeps_mirror(self) -> None:
        client, transport = _client()
        client.subscribe("pos")
        transport.deliver("NODE-ADDED", ["S1", "S2"])
        transport.deliver("POS", ["U", {"x": 1}], sender_id="S2")

        transport.deliver("NODE-REMOVED", ["S2"])

        self.assertEqual(client.sim_nodes, ["S1"])
        self.assertEqual(client.state.remotes["S2"], {"pos": {"x": 1}})

    def test_reset_topic_clears_active_mirror(self) -> None:
        client, transport = _client()
        events: list[SubscriptionEvent] = []
        client.subscribe("pos", events.append)
        transport.deliver("NODE-ADDED", ["S1"])
        transport.deliver("POS", ["A", {"x": 5}], sender_id="S1")

        transport.deliver("RESET", None, sender_id="S1")

        self.assertEqual(client.state.remotes["S1"], {"pos": {}})
        self.assertEqual(events[-1].data, {})

    def test_send_defaults_to_active_node(self) -> None:
        client, transport = _client()
        transport.deliver("NODE-ADDED", ["S1"])
        transport.clear()

        self.assertTrue(client.send("op", None))
        self.assertTrue(client.send("hold", [1, 2], to_group="S2"))

        self.assertEqual(transport.sent_frames(), [["S1", "OP", None], ["S2", "HOLD", [1, 2]]])


class ErrorContainmentTests(unittest.TestCase):
    def test_undecodable_frames_are_dropped(self) -> None:
        client, transport = _client()
        seen: list[object] = []
        client.subscribe("chat", lambda e: seen.append(e.data))

        with self.assertLogs("f8pysimlink.client", level="ERROR"):
            transport.deliver_raw(b"\xc1")
        transport.deliver_raw(encode(["*", "CHAT", "S1"]))
        transport.deliver_raw(encode(["*", "", "S1", 1]))
        transport.deliver("CHAT", "ok", sender_id="S1")

        self.assertEqual(seen, ["ok"])

    def test_decode_failures_log_one_error(self) -> None:
        client, transport = _client()
        with self.assertLogs("f8pysimlink.client", level="ERROR") as logs:
            transport.deliver_raw(b"\xc1")
            transport.deliver_raw(encode(["*", "CHAT", "S1"]))
            transport.deliver_raw(b"\xc1\xc1")
        self.assertEqual(len(logs.records), 1)
        self.assertEqual(client.get_subscription("CHAT"), None)

    def test_unknown_topic_dropped_when_not_adopting(self) -> None:
        client, transport = _client(adopt_unsolicited_topics=False)
        with self.assertLogs("f8pysimlink.client", level="WARNING"):
            transport.deliver("FOO", 1, sender_id="S1")
        self.assertIsNone(client.get_subscription("FOO"))

    def test_unknown_topic_adopted_by_default(self) -> None:
        client, transport = _client()
        transport.deliver("FOO", 1, sender_id="S1")

        sub = client.get_subscription("FOO")
        assert sub is not None
        self.assertIs(sub.subscription_type, SubscriptionType.Regular)
        self.assertEqual(sub.subs, set())

    def test_send_while_disconnected_is_noop(self) -> None:
        client, transport = _client(open=False)
        with self.assertLogs("f8pysimlink.client", level="WARNING"):
            self.assertFalse(client.send("op", None))
        self.assertEqual(transport.sent, [])

    def test_transport_error_is_logged(self) -> None:
        _, transport = _client()
        with self.assertLogs("f8pysimlink.client", level="ERROR"):
            transport.fail(ConnectionError("lost"))

    def test_independent_clients_do_not_share_state(self) -> None:
        a, ta = _client()
        b, _ = _client()
        a.subscribe("pos")
        ta.deliver("NODE-ADDED", ["S1"])
        ta.deliver("POS", ["U", {"x": 1}], sender_id="S1")

        self.assertEqual(a.state.remotes["S1"], {"pos": {"x": 1}})
        self.assertEqual(b.state.remotes, {})
        self.assertIsNone(b.get_subscription("pos"))


if __name__ == "__main__":
    unittest.main()
