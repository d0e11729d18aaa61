from __future__ import annotations

import logging
import subprocess

from .base import Step, summarize
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)


class TailscaleStep(Step):
    name = "tailscale"
    title = "Tailscale Setup"
    prompt = "Install and configure Tailscale?"
    idempotent = False

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        changes: list[str] = []
        try:
            if executor.command_exists("tailscale"):
                logger.info("Tailscale already installed")
            else:
                script = executor.run(
                    ["curl", "-fsSL", self.settings.tailscale_install_url], mutable=False
                ).stdout
                if not script.strip():
                    return self.failed(f"empty install script from {self.settings.tailscale_install_url}")
                executor.run(["sh"], input=script)
                changes.append("installed")

            if not prompter.confirm("Connect to Tailscale?", default=False):
                return self.result(summarize(changes) if changes else "not-connected", changed=bool(changes))

            command = ["tailscale", "up", f"--advertise-routes={config['TS_ADVERTISE_ROUTES']}"]
            if prompter.confirm("Advertise as exit node?", default=False):
                command.append("--advertise-exit-node")
            executor.run(command)
            changes.append("up")
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"rc={exc.returncode}"
            return self.failed(f"{' '.join(exc.cmd)} failed: {detail}", changed=bool(changes))
        return self.result(summarize(changes), changed=True)
