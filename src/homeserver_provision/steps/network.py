from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from .base import Step
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)


@dataclass
class NetworkManagerCli:
    executable: str = "nmcli"

    def profiles(self, executor: Executor) -> list[str]:
        result = executor.run(
            [self.executable, "-t", "-f", "NAME", "connection", "show"],
            check=False,
            mutable=False,
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def add_ethernet(self, executor: Executor, name: str, interface: str) -> None:
        executor.run(
            [self.executable, "connection", "add", "type", "ethernet", "ifname", interface, "con-name", name]
        )

    def modify(self, executor: Executor, name: str, setting: str, value: str) -> None:
        executor.run([self.executable, "connection", "modify", name, setting, value])

    def reload(self, executor: Executor) -> None:
        executor.run([self.executable, "connection", "reload"])

    def up(self, executor: Executor, name: str) -> None:
        executor.run([self.executable, "connection", "up", name])


class NetworkStep(Step):
    name = "networking"
    title = "Configure Networking"
    prompt = "Apply these network settings?"
    idempotent = False

    def __init__(self, settings):
        super().__init__(settings)
        self.nmcli = NetworkManagerCli()

    def precondition(self, config: Configuration, executor: Executor) -> Optional[str]:
        if not config.get("INTERFACE"):
            return "no network interface resolved"
        return None

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        interface = config["INTERFACE"]
        dns = ",".join(config.list_value("DNS_SERVERS"))
        settings = [
            ("ipv4.addresses", config["STATIC_IP"]),
            ("ipv4.gateway", config["GATEWAY"]),
            ("ipv4.dns", dns),
            ("ipv4.method", "manual"),
        ]
        changes: list[str] = []
        try:
            if interface not in self.nmcli.profiles(executor):
                logger.info("Creating connection profile %s", interface)
                self.nmcli.add_ethernet(executor, interface, interface)
                changes.append("profile-created")
            for setting, value in settings:
                self.nmcli.modify(executor, interface, setting, value)
            changes.append("ipv4")
            self.nmcli.reload(executor)
            self.nmcli.up(executor, interface)
            changes.append("up")
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"rc={exc.returncode}"
            return self.failed(f"nmcli failed: {detail}", changed=bool(changes))
        logger.info(
            "Interface %s: %s via %s, dns %s", interface, config["STATIC_IP"], config["GATEWAY"], dns
        )
        return self.result(", ".join(changes), changed=True)
