from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import msgpack
import numpy as np


# msgpack extension type carrying numpy arrays as `[dtype, shape, bytes]`.
NDARRAY_EXT_TYPE = 42


@dataclass(frozen=True)
class Envelope:
    to_group: str
    topic: str
    sender_id: str
    data: Any


def _as_id(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return bytes(value).hex()
    return str(value)


def _ext_hook(code: int, data: bytes) -> Any:
    if code != NDARRAY_EXT_TYPE:
        return msgpack.ExtType(code, data)
    dtype, shape, buf = msgpack.unpackb(data, raw=False)
    arr = np.frombuffer(bytes(buf), dtype=np.dtype(dtype))
    if shape:
        arr = arr.reshape([int(n) for n in shape])
    return arr.tolist()


def _default(obj: Any) -> Any:
    if isinstance(obj, np.ndarray):
        arr = np.ascontiguousarray(obj)
        body = msgpack.packb([arr.dtype.str, list(arr.shape), arr.tobytes()], use_bin_type=True)
        return msgpack.ExtType(NDARRAY_EXT_TYPE, body)
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"cannot encode object of type {type(obj).__name__}")


def encode(obj: Any) -> bytes:
    """
    Encode a value into MsgPack bytes (numpy arrays use the ndarray extension).

    Raises:
        ValueError: if encoding fails.
    """
    try:
        return msgpack.packb(obj, use_bin_type=True, default=_default)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"msgpack encode failed: {exc}") from exc


def decode(raw: bytes) -> Any:
    """
    Decode MsgPack bytes into Python values (ndarray extension -> nested lists).

    Raises:
        ValueError: if bytes cannot be decoded.
    """
    try:
        return msgpack.unpackb(bytes(raw), raw=False, strict_map_key=False, ext_hook=_ext_hook)
    except (TypeError, ValueError, msgpack.ExtraData, msgpack.FormatError, msgpack.StackError) as exc:
        raise ValueError(f"msgpack decode failed: {exc}") from exc


def encode_envelope(to_group: str, topic: str, data: Any) -> bytes:
    """
    Outbound frame: `[to_group, TOPIC, data]`; the server stamps the sender.
    """
    return encode([str(to_group or ""), str(topic).upper(), data])


def decode_envelope(raw: bytes) -> Envelope:
    """
    Inbound frame: `[to_group, topic, sender_id, data]`.

    Raises:
        ValueError: if the bytes are not a valid 4-element envelope.
    """
    decoded = decode(raw)
    if not isinstance(decoded, (list, tuple)) or len(decoded) != 4:
        raise ValueError("envelope is not a 4-element array")
    to_group, topic, sender_id, data = decoded
    topic_s = _as_id(topic).strip()
    if not topic_s:
        raise ValueError("envelope topic is empty")
    return Envelope(to_group=_as_id(to_group), topic=topic_s.upper(), sender_id=_as_id(sender_id), data=data)
