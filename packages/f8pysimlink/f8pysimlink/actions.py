from __future__ import annotations

from enum import Enum
from typing import Any


class ActionType(str, Enum):
    """
    Delta operation kinds for shared-state topics.

    The wire representation is the single-character value; a shared-state
    payload is `[code, data]`.
    """

    Append = "A"
    Extend = "E"
    Delete = "D"
    Update = "U"
    Replace = "R"
    Reset = "X"
    ActChange = "C"
    NoAction = ""


_ACTION_CODES = frozenset(a.value for a in ActionType if a is not ActionType.NoAction)


def is_action(code: Any) -> bool:
    if isinstance(code, ActionType):
        return code is not ActionType.NoAction
    if not isinstance(code, str):
        return False
    return code in _ACTION_CODES


def parse_action(code: Any) -> ActionType:
    """
    Map a wire code to `ActionType` (`NoAction` for anything unrecognised).
    """
    if not is_action(code):
        return ActionType.NoAction
    return ActionType(code)
