from __future__ import annotations

import logging
from typing import Optional

from .base import Step, summarize
from ..executors import Executor
from ..files import FAN_OVERLAY_PREFIX, BootConfig
from ..prompts import Prompter, parse_int_in_range
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)

FAN_MIN_CELSIUS = 40
FAN_MAX_CELSIUS = 85


def parse_fan_temperature(text: str) -> Optional[int]:
    """Return the activation temperature in millidegrees, or None when invalid."""
    celsius = parse_int_in_range(text, FAN_MIN_CELSIUS, FAN_MAX_CELSIUS)
    if celsius is None:
        return None
    return celsius * 1000


class FanControlStep(Step):
    name = "fan"
    title = "Fan Control Setup"
    prompt = "Configure fan temperature control?"

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        answer = prompter.ask(
            f"Set fan activation temperature in °C ({FAN_MIN_CELSIUS}-{FAN_MAX_CELSIUS})"
        )
        millidegrees = parse_fan_temperature(answer)
        if millidegrees is None:
            return self.failed(f"invalid temperature {answer!r}")

        changes: list[str] = []
        boot_config = BootConfig(self.settings.boot_config, executor)
        if boot_config.set_fan_overlay(millidegrees):
            changes.append("boot-config")
        state_changed, _ = executor.write_file(
            self.settings.fan_state_file, content=f"{millidegrees}\n", mode=0o644
        )
        if state_changed:
            changes.append("state-file")

        if not executor.dry_run:
            expected = f"{FAN_OVERLAY_PREFIX},temp={millidegrees}"
            overlays = boot_config.fan_overlays()
            if overlays != [expected]:
                return self.failed(
                    f"{self.settings.boot_config} has {overlays!r} instead of {expected!r}",
                    changed=bool(changes),
                )
        logger.info("Fan temperature set to %s°C", millidegrees // 1000)
        if changes:
            logger.info("The new fan curve takes effect after a reboot")
        return self.result(summarize(changes), changed=bool(changes))
