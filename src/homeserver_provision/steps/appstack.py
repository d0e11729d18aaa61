"""Immich photo-management stack on the data volume."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

from .base import Step
from .mount import DataVolumeMountStep
from ..executors import Executor
from ..prompts import Prompter, ask_matching_secret
from ..templates import render_template
from ..types import Configuration, Outcome, StepResult

logger = logging.getLogger(__name__)

COMPOSE_FILE = "docker-compose.yml"
ENV_FILE = ".env"


class AppStackInstallStep(Step):
    name = "immich"
    title = "Immich Setup"
    prompt = "Install Immich?"
    idempotent = False

    def __init__(self, settings):
        super().__init__(settings)
        self.mount = DataVolumeMountStep(settings)

    @property
    def upload_dir(self) -> Path:
        return self.settings.app_dir / "library"

    @property
    def database_dir(self) -> Path:
        return self.settings.app_dir / "postgres"

    def precondition(self, config: Configuration, executor: Executor) -> Optional[str]:
        if not executor.command_exists("docker"):
            return "Docker is not installed"
        return None

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        try:
            mounted = self.mount.apply(config, executor, prompter)
        except subprocess.CalledProcessError as exc:
            mounted = self.mount.failed(f"{' '.join(exc.cmd)} failed (rc={exc.returncode})")
        if not mounted.succeeded:
            return self.result(
                f"data volume not mounted: {mounted.details}",
                outcome=Outcome.PRECONDITION_NOT_MET,
            )

        username = config["USERNAME"]
        app_dir = self.settings.app_dir
        for directory in (app_dir, self.upload_dir, self.database_dir):
            executor.ensure_directory(directory, mode=None)
        executor.set_ownership(app_dir, username, recursive=True)

        prompter.notify("Configure Immich DB Password")
        password = ask_matching_secret(prompter, "Password")

        try:
            executor.run(["curl", "-fsSL", self.settings.compose_url, "-o", str(app_dir / COMPOSE_FILE)])
        except subprocess.CalledProcessError as exc:
            return self.failed(f"could not fetch {self.settings.compose_url} (rc={exc.returncode})", changed=True)

        env_path = app_dir / ENV_FILE
        content = render_template(
            "immich.env.j2",
            upload_location=self.upload_dir,
            db_data_location=self.database_dir,
            timezone=self.settings.timezone,
            version=self.settings.app_version,
            db_password=password,
            db_username=self.settings.db_username,
            db_name=self.settings.db_name,
        )
        executor.write_file(env_path, content=content, mode=0o600)
        executor.set_ownership(env_path, username)

        try:
            executor.run(["docker", "compose", "up", "-d"], cwd=app_dir)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"rc={exc.returncode}"
            return self.failed(f"docker compose up failed: {detail}", changed=True)

        containers = executor.run(["docker", "ps"], check=False, mutable=False)
        for line in containers.stdout.splitlines():
            logger.info("%s", line)
        return self.result(f"started in {app_dir}", changed=True)


class AppStackRemoveStep(Step):
    name = "immich-remove"
    title = "Remove Immich + Data"
    prompt = "Remove the Immich stack?"
    idempotent = False

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        app_dir = self.settings.app_dir
        confirmed = prompter.confirm(
            f"This will stop and remove all Immich containers and delete data in {app_dir}. Proceed?",
            default=False,
        )
        if not confirmed:
            return self.skipped("operation cancelled")

        compose_file = app_dir / COMPOSE_FILE
        if compose_file.exists():
            down = executor.run(["docker", "compose", "-f", str(compose_file), "down"], check=False)
            if not down.ok:
                logger.warning("docker compose down failed: %s", down.stderr.strip())
        removed = executor.remove_path(app_dir)
        return self.result("removed" if removed else "noop", changed=removed)
