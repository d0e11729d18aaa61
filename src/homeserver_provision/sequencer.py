from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from rich.console import Console
from rich.table import Table

from .config import ProvisionSettings
from .executors import Executor
from .prompts import Prompter
from .steps import AUTORUN_ORDER, STEP_REGISTRY, Step
from .types import Configuration, Outcome, StepResult

logger = logging.getLogger(__name__)

AUTO_RUN = "auto"
EXIT = "exit"

# Numbered entries after the auto-run choice; menu-only steps go last.
MENU_EXTRAS = ("immich-remove", "reboot", "packages", "ip-forwarding", "motd", "upgrade")


@dataclass
class MenuEntry:
    key: str
    label: str
    action: str


def build_menu(steps: dict[str, Step]) -> list[MenuEntry]:
    entries: list[MenuEntry] = []
    number = 1
    for name in AUTORUN_ORDER:
        entries.append(MenuEntry(str(number), steps[name].title, name))
        number += 1
    entries.append(MenuEntry(str(number), "Auto Run Full Setup", AUTO_RUN))
    number += 1
    for name in MENU_EXTRAS:
        if name in steps:
            entries.append(MenuEntry(str(number), steps[name].title, name))
            number += 1
    entries.append(MenuEntry("0", "Exit", EXIT))
    return entries


class Sequencer:
    """Dispatches steps from the interactive menu or in the fixed auto-run order."""

    def __init__(
        self,
        config: Configuration,
        settings: ProvisionSettings,
        executor: Executor,
        prompter: Prompter,
        *,
        reporter: Optional[Callable[[StepResult], None]] = None,
        console: Optional[Console] = None,
    ):
        self.config = config
        self.settings = settings
        self.executor = executor
        self.prompter = prompter
        self.reporter = reporter
        self.console = console or Console()
        self.steps: dict[str, Step] = {name: cls(settings) for name, cls in STEP_REGISTRY.items()}
        self.results: list[StepResult] = []

    def run_step(self, name: str) -> StepResult:
        step = self.steps.get(name)
        if step is None:
            raise KeyError(f"Unknown step '{name}'")
        result = self._execute(step)
        logger.debug("step=%s outcome=%s changed=%s", step.name, result.outcome.value, result.changed)
        self.results.append(result)
        if self.reporter:
            self.reporter(result)
        return result

    def _execute(self, step: Step) -> StepResult:
        if step.prompt and not self.prompter.confirm(step.prompt, default=True):
            return step.skipped("declined by operator")
        try:
            reason = step.precondition(self.config, self.executor)
            if reason:
                logger.warning("Skipping %s: %s", step.name, reason)
                return step.result(reason, outcome=Outcome.PRECONDITION_NOT_MET)
            return step.apply(self.config, self.executor, self.prompter)
        except Exception as exc:  # noqa: BLE001
            logger.error("step=%s failed: %s", step.name, exc)
            logger.debug("step=%s traceback", step.name, exc_info=True)
            return step.failed(str(exc) or exc.__class__.__name__)

    def run_auto(self) -> list[StepResult]:
        logger.info("Running full setup")
        return [self.run_step(name) for name in AUTORUN_ORDER]

    def menu(self) -> list[StepResult]:
        entries = build_menu(self.steps)
        by_key = {entry.key: entry for entry in entries}
        while True:
            self.console.print(self._render_menu(entries))
            choice = self.prompter.ask("Select an option").strip()
            entry = by_key.get(choice)
            if entry is None:
                self.prompter.notify("Invalid selection.")
                continue
            if entry.action == EXIT:
                self.prompter.notify("Exiting...")
                return self.results
            if entry.action == AUTO_RUN:
                self.run_auto()
            else:
                self.run_step(entry.action)

    @staticmethod
    def _render_menu(entries: list[MenuEntry]) -> Table:
        table = Table(title="System Setup Menu", show_header=False)
        table.add_column("key", justify="right", style="bold")
        table.add_column("action")
        for entry in entries:
            table.add_row(entry.key, entry.label)
        return table
