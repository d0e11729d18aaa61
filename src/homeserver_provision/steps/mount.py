from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .base import Step, summarize
from ..executors import Executor
from ..files import FstabManager
from ..prompts import Prompter
from ..types import Configuration, MountTarget, StepResult

logger = logging.getLogger(__name__)


class MountMixin:
    def _find_device(self, executor: Executor, label: str) -> Optional[str]:
        result = executor.run(["blkid", "-L", label], check=False, mutable=False)
        device = result.stdout.strip()
        if result.returncode != 0 or not device:
            return None
        return device

    def _is_mounted(self, executor: Executor, mount_point: str) -> bool:
        result = executor.run(["mountpoint", "-q", mount_point], check=False, mutable=False)
        return result.returncode == 0

    def _mount(self, executor: Executor, device: str, mount_point: str) -> None:
        executor.run(["mount", device, mount_point])


class DataVolumeMountStep(Step, MountMixin):
    """Mount the labelled data volume and persist it in fstab."""

    name = "mount"
    title = "Mount Data NVMe"
    prompt = "Mount the data volume?"

    def target(self, config: Configuration) -> MountTarget:
        return MountTarget(
            label=self.settings.data_label,
            mount_point=str(self.settings.data_mount),
            fstype=self.settings.data_fstype,
            owner=config["USERNAME"],
        )

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        target = self.target(config)
        device = self._find_device(executor, target.label)
        if device is None:
            return self.failed(f"could not find device with label '{target.label}'")

        changes: list[str] = []
        if self._is_mounted(executor, target.mount_point):
            logger.info("%s is already mounted", target.mount_point)
        else:
            mount_dir = Path(target.mount_point)
            created, _ = executor.ensure_directory(mount_dir, mode=None)
            if created:
                changes.append("created")
            self._mount(executor, device, target.mount_point)
            changes.append("mounted")
            if target.owner:
                executor.set_ownership(mount_dir, target.owner)
            executor.run(["chmod", f"{target.mode:o}", target.mount_point])

        fstab = FstabManager(self.settings.fstab, executor)
        if fstab.ensure_label_entry(target.label, target.fstab_record()):
            changes.append("fstab")

        logger.info("Mounted %s (%s) at %s", target.label, device, target.mount_point)
        return self.result(summarize(changes), changed=bool(changes))
