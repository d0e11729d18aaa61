from __future__ import annotations

import logging
import os
import pwd
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .errors import MissingCommand, NotPrivileged, UnknownUser
from .executors import Executor
from .types import Configuration

logger = logging.getLogger(__name__)


@dataclass
class UserRecord:
    name: str
    home: Path
    uid: int
    gid: int


def lookup_user(username: str) -> Optional[UserRecord]:
    try:
        entry = pwd.getpwnam(username)
    except KeyError:
        return None
    return UserRecord(name=username, home=Path(entry.pw_dir), uid=entry.pw_uid, gid=entry.pw_gid)


@dataclass
class Readiness:
    interface: str
    interface_fallback: bool
    user: UserRecord


class PreflightChecker:
    """Fatal checks that must pass before the sequencer starts."""

    def __init__(
        self,
        executor: Executor,
        *,
        required_commands: Iterable[str],
        default_interface: str = "eth0",
        net_class_dir: Path = Path("/sys/class/net"),
    ):
        self.executor = executor
        self.required_commands = list(required_commands)
        self.default_interface = default_interface
        self.net_class_dir = net_class_dir
        self.user_lookup = lookup_user

    def check_privilege(self) -> None:
        if os.geteuid() != 0:
            raise NotPrivileged()

    def check_commands(self) -> None:
        for command in self.required_commands:
            if not self.executor.command_exists(command):
                raise MissingCommand(command)

    def check_user(self, username: str) -> UserRecord:
        record = self.user_lookup(username)
        if record is None:
            raise UnknownUser(username)
        return record

    def check(self, config: Configuration) -> Readiness:
        self.check_privilege()
        self.check_commands()
        user = self.check_user(config["USERNAME"])
        interface, fallback = self.select_interface(config["INTERFACE"])
        if fallback:
            config.derive("INTERFACE", interface)
        return Readiness(interface=interface, interface_fallback=fallback, user=user)

    def select_interface(self, configured: str) -> tuple[str, bool]:
        state = self.executor.read_file(self.net_class_dir / configured / "operstate")
        if state is not None and state.strip() == "up":
            return configured, False
        logger.warning(
            "Interface %s is unavailable or down (state=%s); falling back to %s",
            configured,
            state.strip() if state else "missing",
            self.default_interface,
        )
        return self.default_interface, True
