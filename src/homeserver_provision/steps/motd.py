from __future__ import annotations

import logging
import stat
from pathlib import Path

from .base import Step, summarize
from ..executors import Executor
from ..files import LineFile
from ..preflight import lookup_user
from ..prompts import Prompter
from ..templates import render_template
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)

BANNER_SCRIPT = "00-custom"
EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class LoginBannerStep(Step):
    """Replace the stock MOTD with a system summary banner."""

    name = "motd"
    title = "Login Banner (MOTD)"
    prompt = "Install the custom login banner?"

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        changes: list[str] = []
        for issue in self.settings.issue_files:
            changed, _ = executor.write_file(issue, content="", mode=None)
            if changed:
                changes.append(issue.name)
        if executor.remove_path(self.settings.motd_file):
            changes.append("motd-removed")

        motd_dir = self.settings.motd_dir
        script = motd_dir / BANNER_SCRIPT
        if motd_dir.is_dir():
            for existing in sorted(motd_dir.iterdir()):
                if existing == script or not existing.is_file():
                    continue
                mode = stat.S_IMODE(existing.stat().st_mode)
                if mode & EXEC_BITS:
                    if not executor.dry_run:
                        existing.chmod(mode & ~EXEC_BITS)
                    logger.info("Disabled stock banner script %s", existing.name)
                    changes.append(f"-x {existing.name}")

        content = render_template(
            "motd.sh.j2",
            hostname=config["HOSTNAME"],
            data_mount=self.settings.data_mount,
        )
        changed, _ = executor.write_file(script, content=content, mode=0o755)
        if changed:
            changes.append(BANNER_SCRIPT)

        if self._install_alias(config, script, executor):
            changes.append("alias")
        return self.result(summarize(changes), changed=bool(changes))

    @staticmethod
    def _install_alias(config: Configuration, script: Path, executor: Executor) -> bool:
        record = lookup_user(config["USERNAME"])
        if record is None:
            return False
        alias = f"alias {config['HOSTNAME']}='sudo {script}'"
        bashrc = LineFile(record.home / ".bashrc", executor)
        return bashrc.append_if_absent(alias, lambda line: line.strip() == alias)
