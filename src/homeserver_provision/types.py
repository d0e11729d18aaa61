from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

REQUIRED_KEYS: tuple[str, ...] = (
    "HOSTNAME",
    "USERNAME",
    "INTERFACE",
    "STATIC_IP",
    "GATEWAY",
    "DNS_SERVERS",
    "SSH_CONFIG",
    "SSH_KEYS_URL",
    "COCKPIT_PORT",
    "TS_ADVERTISE_ROUTES",
)

# Values that may be (re)computed once during a run and are frozen afterwards.
DERIVED_FIELDS: frozenset[str] = frozenset({"SSH_PORT", "INTERFACE"})


@dataclass
class Configuration:
    """Resolved key/value configuration for one provisioning run."""

    values: Mapping[str, str]
    derived: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.values = MappingProxyType(dict(self.values))

    def __getitem__(self, key: str) -> str:
        if key in self.derived:
            return self.derived[key]
        return self.values[key]

    def __contains__(self, key: object) -> bool:
        return key in self.derived or key in self.values

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        try:
            return self[key]
        except KeyError:
            return default

    def derive(self, key: str, value: str) -> str:
        if key not in DERIVED_FIELDS:
            raise KeyError(f"{key} is not a derived field")
        if key in self.derived:
            raise ValueError(f"{key} was already derived as {self.derived[key]!r}")
        self.derived[key] = str(value)
        return self.derived[key]

    def is_derived(self, key: str) -> bool:
        return key in self.derived

    def list_value(self, key: str) -> list[str]:
        """Split a comma and/or whitespace separated value, keeping order."""
        raw = self.get(key) or ""
        return [item for item in raw.replace(",", " ").split() if item]


class Outcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    PRECONDITION_NOT_MET = "precondition-not-met"


@dataclass
class StepResult:
    step: str
    changed: bool
    details: str
    outcome: Outcome = Outcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome in {Outcome.FAILED, Outcome.PRECONDITION_NOT_MET}

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS


@dataclass
class MountTarget:
    label: str
    mount_point: str
    fstype: str = "ext4"
    owner: Optional[str] = None
    mode: int = 0o755
    options: str = "defaults"

    def fstab_record(self) -> str:
        return f"LABEL={self.label} {self.mount_point} {self.fstype} {self.options} 0 2"
