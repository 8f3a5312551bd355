from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .client import SimClient


log = logging.getLogger(__name__)

TOPIC_STACK = "STACK"

# One argument (quoted, or up to whitespace/comma), then the remainder.
_RE_GETARG = re.compile(r"""\s*['"]?((?<=['"])[^'"]*|(?<!['"])[^\s,]*)['"]?\s*,?\s*(.*)""")


def get_next_arg(cmdline: str) -> tuple[str, str]:
    match = _RE_GETARG.match(str(cmdline or ""))
    if match is None:
        return "", ""
    return match.group(1), match.group(2)


def split_args(args: str) -> list[str]:
    out: list[str] = []
    rest = str(args or "")
    while rest:
        arg, remainder = get_next_arg(rest)
        if remainder == rest:
            break
        out.append(arg)
        rest = remainder
    return out


@dataclass
class Command:
    name: str
    callback: Callable[..., Any]
    brief: str = ""
    aliases: tuple[str, ...] = ()
    help: str = ""

    def __call__(self, *args: Any) -> Any:
        return self.callback(*args)


@dataclass
class CommandStack:
    """
    Local command dispatcher.

    Known commands run locally; unknown commands typed locally are forwarded
    to the server as a `STACK` message (targeting the active node by default).
    """

    client: "SimClient | None" = None
    commands: dict[str, Command] = field(default_factory=dict)
    cur_cmd: str = ""

    def command(
        self,
        name: str,
        fn: Callable[..., Any],
        *,
        brief: str = "",
        aliases: Iterable[str] = (),
        help: str = "",
    ) -> Command:
        uname = str(name).upper()
        cmd = Command(uname, fn, brief=brief, aliases=tuple(str(a).upper() for a in aliases), help=help)
        self.commands[uname] = cmd
        for alias in cmd.aliases:
            self.commands[alias] = cmd
        return cmd

    def get(self, name: str) -> Command | None:
        return self.commands.get(str(name).upper())

    def stack(self, cmdline: str, sender_id: str = "") -> Any:
        self.cur_cmd = str(cmdline)
        try:
            name, args = get_next_arg(cmdline)
            cmd = self.get(name)
            if cmd is None:
                if not sender_id:
                    self.forward()
                else:
                    log.warning("unknown command %r from %s", name, sender_id)
                return None
            return cmd(*split_args(args))
        finally:
            self.cur_cmd = ""

    def forward(self, cmdline: str = "", target_id: str = "") -> bool:
        if self.client is None:
            log.warning("no client attached; cannot forward %r", cmdline or self.cur_cmd)
            return False
        return self.client.send(TOPIC_STACK, cmdline or self.cur_cmd, to_group=target_id)
