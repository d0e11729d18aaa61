"""Fatal errors that stop a run before any step executes."""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for errors that terminate the whole run."""


class MissingConfigFile(ProvisionError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Configuration file {path} not found")


class NotPrivileged(ProvisionError):
    def __init__(self) -> None:
        super().__init__("This tool must be run as root")


class MissingCommand(ProvisionError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Required command '{name}' not found. Please install it.")


class UnknownUser(ProvisionError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"User '{name}' does not exist")
