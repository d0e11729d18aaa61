from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import Iterable, Optional

from .errors import MissingConfigFile
from .executors import Executor
from .files import EnvironmentFile
from .prompts import Prompter
from .types import REQUIRED_KEYS, Configuration

logger = logging.getLogger(__name__)


def parse_env_source(text: str) -> dict[str, str]:
    """Parse shell-style ``KEY=value`` assignments (quotes, comments, ``export``)."""
    values: dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            tokens = shlex.split(stripped, comments=True)
        except ValueError as exc:
            raise ValueError(f"line {lineno}: {exc}") from exc
        if tokens and tokens[0] == "export":
            tokens = tokens[1:]
        for token in tokens:
            if "=" not in token:
                raise ValueError(f"line {lineno}: expected KEY=value, got {token!r}")
            key, value = token.split("=", 1)
            values[key.strip()] = value
    return values


class ConfigResolver:
    """Load the configuration source and fill in required keys interactively."""

    def __init__(
        self,
        source: Path,
        executor: Executor,
        prompter: Prompter,
        *,
        environment_file: Optional[Path] = Path("/etc/environment"),
    ):
        self.source = source
        self.executor = executor
        self.prompter = prompter
        self.environment_file = environment_file
        self._resolved: dict[str, str] = {}

    def resolve(self, required_keys: Iterable[str] = REQUIRED_KEYS) -> Configuration:
        if not self.source.exists():
            raise MissingConfigFile(self.source)
        values = parse_env_source(self.source.read_text())
        logger.debug("Loaded %d values from %s", len(values), self.source)

        for key in required_keys:
            if key in self._resolved:
                values[key] = self._resolved[key]
                continue
            value = values.get(key, "").strip()
            if not value:
                value = self._prompt_for(key)
            values[key] = value
            self._resolved[key] = value
            logger.info("%s=%s", key, value)
            self._persist(key, value)
        return Configuration(values)

    def _prompt_for(self, key: str) -> str:
        while True:
            answer = self.prompter.ask(
                f"Required variable '{key}' is not set. Please enter a value"
            ).strip()
            if answer:
                return answer
            self.prompter.notify(f"{key} cannot be empty.")

    def _persist(self, key: str, value: str) -> None:
        os.environ[key] = value
        if self.environment_file is None:
            return
        env_file = EnvironmentFile(self.environment_file, self.executor)
        if env_file.set(key, value):
            logger.debug("Persisted %s to %s", key, self.environment_file)
