from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from .base import Step
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)


def unit_name(service: str) -> str:
    return service if "." in service.rsplit("@", 1)[-1] else f"{service}.service"


@dataclass
class SystemCtl:
    executable: str = "systemctl"

    def exists(self, executor: Executor, service: str) -> bool:
        result = executor.run(
            [self.executable, "show", "--property=LoadState", "--value", unit_name(service)],
            check=False,
            mutable=False,
        )
        # Template instances such as modprobe@drm have no unit file of their own.
        state = result.stdout.strip()
        return result.returncode == 0 and state not in ("", "not-found")

    def is_enabled(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-enabled", unit_name(service)], check=False, mutable=False)
        return result.returncode == 0

    def is_active(self, executor: Executor, service: str) -> bool:
        result = executor.run([self.executable, "is-active", unit_name(service)], check=False, mutable=False)
        return result.returncode == 0

    def enable(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "enable", unit_name(service)])

    def disable_now(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "disable", "--now", unit_name(service)])

    def restart(self, executor: Executor, service: str) -> None:
        executor.run([self.executable, "restart", unit_name(service)])


class ServiceDisableStep(Step):
    name = "services"
    title = "Disable Unused Services"
    prompt = "Disable unused services?"

    def __init__(self, settings):
        super().__init__(settings)
        self.systemctl = SystemCtl()

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        disabled: list[str] = []
        missing: list[str] = []
        errors: list[str] = []

        for service in self.settings.disabled_services:
            unit = unit_name(service)
            if not self.systemctl.exists(executor, service):
                logger.info("Service not found: %s", unit)
                missing.append(unit)
                continue
            if not self.systemctl.is_enabled(executor, service) and not self.systemctl.is_active(executor, service):
                logger.info("Already disabled: %s", unit)
                continue
            try:
                self.systemctl.disable_now(executor, service)
            except subprocess.CalledProcessError as exc:
                logger.warning("Could not disable %s: %s", unit, (exc.stderr or "").strip())
                errors.append(unit)
                continue
            logger.info("Disabled: %s", unit)
            disabled.append(unit)

        parts: list[str] = []
        if disabled:
            parts.append(f"disabled={','.join(disabled)}")
        if missing:
            parts.append(f"not-found={','.join(missing)}")
        if errors:
            parts.append(f"errors={','.join(errors)}")
            return self.failed(", ".join(parts), changed=bool(disabled))
        return self.result(", ".join(parts) if parts else "noop", changed=bool(disabled))
