from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .base import Step
from .services import SystemCtl
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
# Cockpit drops a login banner of its own next to ours.
COCKPIT_BANNER = "cockpit-motd"


def os_codename(executor: Executor, os_release: Path) -> str:
    content = executor.read_file(os_release) or ""
    for line in content.splitlines():
        key, _, value = line.partition("=")
        if key.strip() == "VERSION_CODENAME":
            parsed = shlex.split(value)
            if parsed:
                return parsed[0]
    raise RuntimeError(f"VERSION_CODENAME not found in {os_release}")


@dataclass
class DpkgQuery:
    executable: str = "dpkg-query"

    def check(self, executor: Executor, package: str) -> bool:
        result = executor.run(
            [self.executable, "-W", "-f", "${Status}", package],
            check=False,
            mutable=False,
        )
        return result.returncode == 0 and "install ok installed" in result.stdout


class AptPackageManager:
    name = "apt"

    def __init__(self) -> None:
        self.query = DpkgQuery()

    def update(self, executor: Executor) -> None:
        executor.run(["apt-get", "update"], env=APT_ENV)

    def install(self, executor: Executor, packages: list[str]) -> None:
        executor.run(["apt-get", "install", "-y", *packages], env=APT_ENV)

    def is_installed(self, executor: Executor, package: str) -> bool:
        return self.query.check(executor, package)

    def ensure_present(self, executor: Executor, packages: Iterable[str]) -> tuple[bool, str]:
        needed = [pkg for pkg in packages if not self.is_installed(executor, pkg)]
        if not needed:
            return False, "already-installed"
        logger.info("Installing %s", " ".join(needed))
        self.install(executor, needed)
        return True, f"installed={','.join(needed)}"

    def full_upgrade(self, executor: Executor) -> None:
        executor.run(["apt-get", "full-upgrade", "-y"], env=APT_ENV)
        executor.run(["apt-get", "autoremove", "-y"], env=APT_ENV)


class PackageInstallStep(Step):
    name = "packages"
    title = "Install Base Packages"
    prompt = "Update APT and install the base packages?"

    def __init__(self, settings):
        super().__init__(settings)
        self.apt = AptPackageManager()
        self.systemctl = SystemCtl()

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        try:
            self.apt.update(executor)
            changed, details = self.apt.ensure_present(executor, self.settings.base_packages)
        except subprocess.CalledProcessError as exc:
            return self.failed(f"apt-get failed (rc={exc.returncode}): {(exc.stderr or '').strip()}")
        if "cockpit" in self.settings.base_packages:
            try:
                if self._disable_cockpit_banner(executor):
                    changed = True
                    details += f", disabled={COCKPIT_BANNER}"
            except subprocess.CalledProcessError as exc:
                detail = (exc.stderr or "").strip()
                return self.failed(f"could not disable {COCKPIT_BANNER}: {detail}", changed=changed)
        return self.result(f"manager={self.apt.name} {details}", changed=changed)

    def _disable_cockpit_banner(self, executor: Executor) -> bool:
        if not self.systemctl.exists(executor, COCKPIT_BANNER):
            return False
        enabled = self.systemctl.is_enabled(executor, COCKPIT_BANNER)
        if not enabled and not self.systemctl.is_active(executor, COCKPIT_BANNER):
            return False
        logger.info("Disabling %s", COCKPIT_BANNER)
        self.systemctl.disable_now(executor, COCKPIT_BANNER)
        return True


class SystemUpgradeStep(Step):
    name = "upgrade"
    title = "Full System Upgrade"
    prompt = "Run a full system upgrade now?"
    idempotent = False

    def __init__(self, settings):
        super().__init__(settings)
        self.apt = AptPackageManager()

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        try:
            self.apt.update(executor)
            self.apt.full_upgrade(executor)
        except subprocess.CalledProcessError as exc:
            return self.failed(f"apt-get failed (rc={exc.returncode}): {(exc.stderr or '').strip()}")
        return self.result("upgraded", changed=True)
