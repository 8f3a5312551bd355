from __future__ import annotations

import os
import uuid
from dataclasses import dataclass


def _env_or(default: str, key: str) -> str:
    v = os.environ.get(key)
    return v.strip() if v and v.strip() else default


def new_client_id() -> str:
    return uuid.uuid4().hex[:10]


@dataclass(frozen=True)
class SimClientConfig:
    """
    - node_prefix: only `NODE-ADDED` ids starting with this prefix are tracked
      as simulation nodes ("" accepts every id)
    - adopt_unsolicited_topics: create a Subscription for inbound topics nobody
      subscribed to; when False such messages are logged and dropped
    """

    client_id: str = ""
    host: str = "127.0.0.1"
    port: int = 5000
    node_prefix: str = ""
    adopt_unsolicited_topics: bool = True
    default_from_group: str = ""
    default_to_group: str = ""

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{int(self.port)}/ws/{self.client_id}"

    @staticmethod
    def from_env(**overrides: object) -> "SimClientConfig":
        raw_port = _env_or("5000", "F8_SIMLINK_PORT")
        try:
            port = int(raw_port)
        except ValueError:
            raise ValueError(f"F8_SIMLINK_PORT must be an integer (got {raw_port!r})") from None
        values: dict[str, object] = {
            "client_id": _env_or("", "F8_SIMLINK_CLIENT_ID") or new_client_id(),
            "host": _env_or("127.0.0.1", "F8_SIMLINK_HOST"),
            "port": port,
            "node_prefix": _env_or("", "F8_SIMLINK_NODE_PREFIX"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return SimClientConfig(**values)  # type: ignore[arg-type]
