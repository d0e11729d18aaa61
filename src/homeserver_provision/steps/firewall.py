from __future__ import annotations

import logging
import subprocess

from .base import Step
from .ssh import resolve_ssh_port
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = "22"


class FirewallStep(Step):
    """Configure ufw around the (possibly new) SSH port and the Cockpit console."""

    name = "firewall"
    title = "UFW Firewall Setup"
    prompt = "Configure the UFW firewall?"

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        ssh_port = resolve_ssh_port(config, prompter)
        cockpit_port = config["COCKPIT_PORT"]
        rules = [
            ["ufw", "allow", "from", self.settings.trusted_subnet, "to", "any"],
            ["ufw", "allow", str(ssh_port)],
            ["ufw", "allow", f"{cockpit_port}/tcp"],
            ["ufw", "default", "deny", "incoming"],
            ["ufw", "default", "allow", "outgoing"],
            ["ufw", "logging", "on"],
        ]
        try:
            if str(ssh_port) != DEFAULT_SSH_PORT:
                removed = executor.run(["ufw", "delete", "allow", DEFAULT_SSH_PORT], check=False)
                if removed.ok:
                    logger.info("Removed rule allowing port %s", DEFAULT_SSH_PORT)
            for rule in rules:
                executor.run(rule)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"rc={exc.returncode}"
            return self.failed(f"{' '.join(exc.cmd)} failed: {detail}")

        details = [f"ssh={ssh_port}", f"cockpit={cockpit_port}/tcp"]
        if prompter.confirm("Enable UFW now?", default=True):
            try:
                executor.run(["ufw", "--force", "enable"])
            except subprocess.CalledProcessError as exc:
                return self.failed(f"ufw enable failed: {(exc.stderr or '').strip()}", changed=True)
            details.append("enabled")
        else:
            logger.warning("UFW rules configured but the firewall was left disabled")
            details.append("not-enabled")

        status = executor.run(["ufw", "status", "verbose"], check=False, mutable=False)
        for line in status.stdout.splitlines():
            logger.info("ufw: %s", line)
        return self.result(", ".join(details), changed=True)
