from __future__ import annotations

import logging
import subprocess

from .base import Step, summarize
from .packages import AptPackageManager, os_codename
from .services import SystemCtl
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)


class DockerInstallStep(Step):
    name = "docker"
    title = "Install Docker"
    prompt = "Install Docker?"

    def __init__(self, settings):
        super().__init__(settings)
        self.apt = AptPackageManager()
        self.systemctl = SystemCtl()

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        changes: list[str] = []
        try:
            if executor.command_exists("docker"):
                logger.info("Docker already installed")
            else:
                self._add_repository(executor)
                self.apt.update(executor)
                self.apt.install(executor, self.settings.docker_packages)
                changes.append("installed")
            if not self.systemctl.is_enabled(executor, "docker"):
                self.systemctl.enable(executor, "docker")
                changes.append("enabled")
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"rc={exc.returncode}"
            return self.failed(f"{' '.join(exc.cmd)} failed: {detail}", changed=bool(changes))

        username = config["USERNAME"]
        group_errors: list[str] = []
        for group in self.settings.docker_groups:
            if not executor.run(["getent", "group", group], check=False, mutable=False).ok:
                logger.info("Group %s does not exist; skipping", group)
                continue
            if self._is_member(executor, username, group):
                continue
            result = executor.run(["usermod", "-aG", group, username], check=False)
            if result.ok:
                changes.append(f"group+{group}")
            else:
                logger.warning("Could not add %s to %s: %s", username, group, result.stderr.strip())
                group_errors.append(group)

        detail = summarize(changes)
        if group_errors:
            detail += f" (group errors: {','.join(group_errors)})"
        return self.result(detail, changed=bool(changes))

    @staticmethod
    def _is_member(executor: Executor, username: str, group: str) -> bool:
        result = executor.run(["id", "-nG", username], check=False, mutable=False)
        return result.ok and group in result.stdout.split()

    def _add_repository(self, executor: Executor) -> None:
        keyrings = self.settings.keyrings_dir
        key_path = keyrings / "docker.asc"
        executor.run(["install", "-m", "0755", "-d", str(keyrings)])
        executor.run(["curl", "-fsSL", f"{self.settings.docker_repo}/gpg", "-o", str(key_path)])
        executor.run(["chmod", "a+r", str(key_path)])

        arch = executor.run(["dpkg", "--print-architecture"], mutable=False).stdout.strip()
        codename = os_codename(executor, self.settings.os_release)
        source = (
            f"deb [arch={arch} signed-by={key_path}] {self.settings.docker_repo} {codename} stable\n"
        )
        executor.write_file(self.settings.apt_sources_dir / "docker.list", content=source, mode=0o644)
