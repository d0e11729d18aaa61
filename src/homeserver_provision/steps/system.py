from __future__ import annotations

import logging
import subprocess

from .base import Step
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)

FORWARDING_SETTINGS = {
    "net.ipv4.ip_forward": "1",
    "net.ipv6.conf.all.forwarding": "1",
}


class IpForwardingStep(Step):
    """Persist packet forwarding so the host can act as a Tailscale router."""

    name = "ip-forwarding"
    title = "Enable IP Forwarding"
    prompt = "Enable IPv4/IPv6 forwarding?"

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        conf_file = self.settings.sysctl_file
        content = "".join(f"{name} = {value}\n" for name, value in FORWARDING_SETTINGS.items())
        changed, detail = executor.write_file(conf_file, content=content, mode=0o644)
        try:
            executor.run(["sysctl", "-p", str(conf_file)])
        except subprocess.CalledProcessError as exc:
            return self.failed(f"sysctl -p failed: {(exc.stderr or '').strip()}", changed=changed)
        return self.result(f"persist {detail}, runtime", changed=changed)


class RebootStep(Step):
    name = "reboot"
    title = "Reboot Server"
    prompt = "Reboot the server?"
    idempotent = False

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        if not prompter.confirm("Are you sure you want to reboot now?", default=False):
            return self.skipped("reboot cancelled")
        logger.info("Rebooting...")
        executor.run(["reboot"])
        return self.result("rebooting", changed=True)
