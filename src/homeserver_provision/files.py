"""Line-oriented system files that the steps edit in place.

Every mutation here reads the current content first and only writes when
the desired line is missing or different, so re-running a step never
duplicates entries.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable, Iterable, Optional

from .executors import Executor


class LineFile:
    def __init__(self, path: Path, executor: Executor, *, mode: Optional[int] = None):
        self.path = path
        self.executor = executor
        self.mode = mode

    def lines(self) -> list[str]:
        content = self.executor.read_file(self.path)
        if not content:
            return []
        return content.splitlines()

    def ensure_line(self, record: str, matches: Callable[[str], bool]) -> bool:
        """Replace every line accepted by ``matches`` with ``record`` (once)."""
        lines = self.lines()
        new_lines: list[str] = []
        replaced = False
        for line in lines:
            if matches(line):
                if not replaced:
                    new_lines.append(record)
                    replaced = True
                continue
            new_lines.append(line)
        if not replaced:
            new_lines.append(record)
        if new_lines == lines:
            return False
        self._write_lines(new_lines)
        return True

    def append_if_absent(self, record: str, matches: Callable[[str], bool]) -> bool:
        lines = self.lines()
        if any(matches(line) for line in lines):
            return False
        lines.append(record)
        self._write_lines(lines)
        return True

    def remove_lines(self, matches: Callable[[str], bool]) -> int:
        lines = self.lines()
        kept = [line for line in lines if not matches(line)]
        removed = len(lines) - len(kept)
        if removed:
            self._write_lines(kept)
        return removed

    def _write_lines(self, lines: Iterable[str]) -> None:
        text = "\n".join(lines)
        if text:
            text += "\n"
        self.executor.write_file(self.path, content=text, mode=self.mode)


class EnvironmentFile(LineFile):
    """``/etc/environment`` style ``KEY="value"`` entries."""

    def set(self, key: str, value: str) -> bool:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        pattern = re.compile(rf"^\s*(export\s+)?{re.escape(key)}=")
        return self.ensure_line(f'{key}="{escaped}"', lambda line: bool(pattern.match(line)))

    def entries(self, key: str) -> list[str]:
        pattern = re.compile(rf"^\s*(export\s+)?{re.escape(key)}=")
        return [line for line in self.lines() if pattern.match(line)]


class FstabManager(LineFile):
    def ensure_label_entry(self, label: str, record: str) -> bool:
        """Append ``record`` unless an entry for ``LABEL=<label>`` already exists."""

        def matches(line: str) -> bool:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                return False
            return stripped.split()[0] == f"LABEL={label}"

        return self.append_if_absent(record, matches)


FAN_OVERLAY_PREFIX = "dtoverlay=rpi-fan"


class BootConfig(LineFile):
    """Platform boot configuration (``config.txt``)."""

    @staticmethod
    def _is_fan_overlay(line: str) -> bool:
        return line.strip().startswith(FAN_OVERLAY_PREFIX)

    def fan_overlays(self) -> list[str]:
        return [line.strip() for line in self.lines() if self._is_fan_overlay(line)]

    def set_fan_overlay(self, millidegrees: int) -> bool:
        record = f"{FAN_OVERLAY_PREFIX},temp={millidegrees}"
        lines = [line for line in self.lines() if not self._is_fan_overlay(line)]
        lines.append(record)
        if lines == self.lines():
            return False
        self._write_lines(lines)
        return True


class HostsFile(LineFile):
    def set_loopback_name(self, hostname: str) -> bool:
        return self.ensure_line(
            f"127.0.1.1\t{hostname}",
            lambda line: line.split()[:1] == ["127.0.1.1"],
        )
