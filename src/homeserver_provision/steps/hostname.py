from __future__ import annotations

import logging

from .base import Step, summarize
from ..executors import Executor
from ..files import HostsFile
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)


class HostnameStep(Step):
    name = "hostname"
    title = "Configure Hostname"
    prompt = "Set the system hostname?"

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        hostname = config["HOSTNAME"]
        changes: list[str] = []

        current = executor.run(["hostnamectl", "--static"], check=False, mutable=False)
        if current.ok and current.stdout.strip() == hostname:
            logger.info("Hostname already set to %s", hostname)
        else:
            result = executor.run(["hostnamectl", "set-hostname", hostname], check=False)
            if not result.ok:
                logger.warning("hostnamectl failed: %s", result.stderr.strip())
                return self.failed(f"hostnamectl failed (rc={result.returncode})")
            changes.append(f"hostname->{hostname}")

        if HostsFile(self.settings.hosts_file, executor).set_loopback_name(hostname):
            changes.append("hosts")
        return self.result(summarize(changes), changed=bool(changes))
