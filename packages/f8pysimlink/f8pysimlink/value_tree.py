from __future__ import annotations

import copy
from collections.abc import Mapping
from enum import Enum
from typing import Any


class ValueKind(Enum):
    """
    Tagged view of a JSON-like value tree node.
    """

    scalar = "scalar"
    sequence = "sequence"
    map = "map"


def kind_of(value: Any) -> ValueKind:
    if isinstance(value, Mapping):
        return ValueKind.map
    if isinstance(value, (list, tuple)):
        return ValueKind.sequence
    return ValueKind.scalar


def is_map(value: Any) -> bool:
    return kind_of(value) is ValueKind.map


def is_sequence(value: Any) -> bool:
    return kind_of(value) is ValueKind.sequence


def deep_clone(value: Any) -> Any:
    """
    Return a fresh, independently owned copy of a value tree.

    Maps become `dict` and sequences become `list` so the clone is always
    mutable by the merge rules.
    """
    kind = kind_of(value)
    if kind is ValueKind.map:
        return {k: deep_clone(v) for k, v in value.items()}
    if kind is ValueKind.sequence:
        return [deep_clone(v) for v in value]
    return copy.deepcopy(value)


def merge_into(target: dict[Any, Any], update: Mapping[Any, Any]) -> None:
    """
    Recursively merge `update` into `target` in place.

    - keys only in `update` are added
    - map values present on both sides are merged key-by-key
    - sequence values present on both sides are merged index-by-index
      (see `merge_sequence`)
    - everything else is overwritten
    """
    for key, value in update.items():
        if key in target and _merge_structured(target[key], value):
            continue
        target[key] = deep_clone(value)


def merge_sequence(target: list[Any], update: list[Any] | tuple[Any, ...]) -> None:
    """
    Merge `update` into `target` position by position.

    Indices present in both are overwritten (or merged when both elements are
    maps or both are sequences), extra indices in `update` are appended and the
    tail of a longer `target` is left alone.
    """
    for i, value in enumerate(update):
        if i >= len(target):
            target.append(deep_clone(value))
        elif not _merge_structured(target[i], value):
            target[i] = deep_clone(value)


def _merge_structured(current: Any, value: Any) -> bool:
    if is_map(current) and is_map(value) and isinstance(current, dict):
        merge_into(current, value)
        return True
    if is_sequence(value) and isinstance(current, list):
        merge_sequence(current, value)
        return True
    return False


def index_of(seq: list[Any], value: Any) -> int:
    try:
        return seq.index(value)
    except ValueError:
        return -1
