from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..config import ProvisionSettings
from ..executors import Executor
from ..prompts import Prompter
from ..types import Configuration, Outcome, StepResult


class Step(ABC):
    """One named, independently invocable host configuration action."""

    name: str = ""
    title: str = ""
    prompt: str = ""
    idempotent: bool = True

    def __init__(self, settings: ProvisionSettings):
        self.settings = settings

    def precondition(self, config: Configuration, executor: Executor) -> Optional[str]:
        """Return a reason when the step cannot run on this host right now."""
        return None

    @abstractmethod
    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        """Perform the step using ``executor``; ask ``prompter`` for any input."""

    def result(self, details: str, *, changed: bool = False, outcome: Outcome = Outcome.SUCCESS) -> StepResult:
        return StepResult(step=self.name, changed=changed, details=details, outcome=outcome)

    def failed(self, details: str, *, changed: bool = False) -> StepResult:
        return self.result(details, changed=changed, outcome=Outcome.FAILED)

    def skipped(self, details: str) -> StepResult:
        return self.result(details, outcome=Outcome.SKIPPED)


def summarize(changes: list[str]) -> str:
    return ", ".join(changes) if changes else "noop"
