from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from rich.console import Console
from rich.prompt import Confirm, Prompt

activity = logging.getLogger("homeserver_provision.activity")

T = TypeVar("T")


class Prompter:
    """Operator interaction used by the resolver, the sequencer and the steps."""

    def confirm(self, question: str, *, default: bool = False) -> bool:
        raise NotImplementedError

    def ask(self, question: str, *, default: Optional[str] = None) -> str:
        raise NotImplementedError

    def secret(self, question: str) -> str:
        raise NotImplementedError

    def notify(self, message: str) -> None:
        activity.info(message)


class ConsolePrompter(Prompter):
    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def confirm(self, question: str, *, default: bool = False) -> bool:
        answer = Confirm.ask(question, default=default, console=self.console)
        activity.info("%s -> %s", question, "yes" if answer else "no")
        return answer

    def ask(self, question: str, *, default: Optional[str] = None) -> str:
        if default is None:
            answer = Prompt.ask(question, console=self.console)
        else:
            answer = Prompt.ask(question, default=default, console=self.console)
        activity.info("%s -> %s", question, answer)
        return answer.strip()

    def secret(self, question: str) -> str:
        answer = Prompt.ask(question, password=True, console=self.console)
        activity.info("%s -> ********", question)
        return answer

    def notify(self, message: str) -> None:
        self.console.print(message)
        activity.info(message)


def ask_until_valid(
    prompter: Prompter,
    question: str,
    parse: Callable[[str], Optional[T]],
    error: str,
) -> T:
    """Keep asking until ``parse`` accepts the answer."""
    while True:
        value = parse(prompter.ask(question))
        if value is not None:
            return value
        prompter.notify(error)


def ask_matching_secret(prompter: Prompter, label: str) -> str:
    """Ask for a secret twice until both entries are identical and non-empty."""
    while True:
        first = prompter.secret(f"{label}")
        second = prompter.secret("Confirm")
        if first and first == second:
            return first
        prompter.notify("Mismatch. Try again.")


def parse_int_in_range(text: str, low: int, high: int) -> Optional[int]:
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    if low <= value <= high:
        return value
    return None
