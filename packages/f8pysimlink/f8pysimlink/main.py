from __future__ import annotations

import argparse
import asyncio
import logging
import os

from .client import SimClient
from .config import SimClientConfig
from .events import SubscriptionEvent
from .ws_transport import WebSocketTransport, WebSocketTransportConfig


log = logging.getLogger(__name__)


def _print_event(event: SubscriptionEvent) -> None:
    print(f"[{event.topic}] from={event.sender_id} to={event.to_group}: {event.data!r}", flush=True)


async def run_monitor(config: SimClientConfig, topics: list[str]) -> None:
    transport = WebSocketTransport(WebSocketTransportConfig(url=config.ws_url))
    client = SimClient(config, transport=transport)
    for topic in topics:
        client.subscribe(topic, _print_event)
    await transport.connect()
    try:
        await transport.wait_closed()
    finally:
        await transport.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="F8SimLink monitor")
    parser.add_argument("--host", default=None, help="Server host (env F8_SIMLINK_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Server port (env F8_SIMLINK_PORT)")
    parser.add_argument("--client-id", default=None, help="Client id (env F8_SIMLINK_CLIENT_ID)")
    parser.add_argument("--node-prefix", default=None, help="Only track node ids with this prefix")
    parser.add_argument("--topic", action="append", default=[], help="Topic to subscribe (repeatable)")
    return parser


def _main(argv: list[str] | None = None) -> int:
    if not logging.getLogger().handlers:
        raw = (os.environ.get("F8_LOG_LEVEL") or "").strip().upper()
        level = getattr(logging, raw, logging.WARNING) if raw else logging.WARNING
        logging.basicConfig(level=level, format="%(levelname)s:%(name)s:%(message)s")
    args = build_parser().parse_args(argv)
    config = SimClientConfig.from_env(
        host=args.host,
        port=args.port,
        client_id=args.client_id,
        node_prefix=args.node_prefix,
    )
    try:
        asyncio.run(run_monitor(config, [str(t) for t in args.topic]))
    except KeyboardInterrupt:
        return 130
    except OSError as exc:
        log.error("cannot connect to %s: %s", config.ws_url, exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
