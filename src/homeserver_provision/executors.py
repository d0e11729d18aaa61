from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union
import logging
import os
import shutil
import stat
import subprocess

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    command: list[str]
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class Executor:
    """Base executor abstraction used by steps."""

    def __init__(self, *, dry_run: bool = False):
        self.dry_run = dry_run

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        mutable: bool = True,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run ``command``; mutating commands are only logged during dry-runs.

        ``mutable=False`` marks read-only probes, which always execute.
        """
        argv = [str(part) for part in command]
        shown = " ".join(argv)
        if self.dry_run and mutable:
            logger.info("(dry-run) $ %s", shown)
            return CommandResult(argv, "", "skipped (dry-run)", 0)

        merged_env = {**os.environ, **env} if env else None
        logger.info("$ %s", shown)
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            check=False,
            env=merged_env,
            cwd=None if cwd is None else str(cwd),
            input=input,
        )
        for stream, text in (("stdout", completed.stdout), ("stderr", completed.stderr)):
            if text:
                logger.debug("%s: %s", stream, text.rstrip())
        if check and completed.returncode != 0:
            raise subprocess.CalledProcessError(completed.returncode, argv, completed.stdout, completed.stderr)
        return CommandResult(argv, completed.stdout, completed.stderr, completed.returncode)

    def command_exists(self, name: str) -> bool:
        return shutil.which(name) is not None

    def set_ownership(self, path: Path, owner: str, *, recursive: bool = False) -> None:
        cmd = ["chown"]
        if recursive:
            cmd.append("-R")
        cmd.extend([f"{owner}:{owner}", str(path)])
        self.run(cmd)

    # File primitives -----------------------------------------------------
    def read_file(self, path: Path) -> Optional[str]:
        raise NotImplementedError

    def write_file(self, path: Path, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def ensure_directory(self, path: Path, *, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def copy_file(self, source: Path, dest: Path) -> bool:
        raise NotImplementedError

    def remove_path(self, path: Path) -> bool:
        raise NotImplementedError


class LocalExecutor(Executor):
    """Executor that acts directly on the local host.

    Every mutation compares the current state first and returns
    ``(changed, detail)`` so callers can report "noop" on re-runs.
    """

    def read_file(self, path: Path) -> Optional[str]:
        try:
            return path.read_text()
        except FileNotFoundError:
            return None

    def write_file(self, path: Path, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        reasons: list[str] = []
        stale = self.read_file(path) != content
        if stale:
            reasons.append("content")
        # The mode is narrowed before any new content is written.
        self._apply_mode(path, mode, reasons)
        if stale and not self.dry_run:
            path.parent.mkdir(parents=True, exist_ok=True)
            _write_text(path, content, mode)
        return bool(reasons), _describe(reasons)

    def ensure_directory(self, path: Path, *, mode: Optional[int]) -> tuple[bool, str]:
        reasons: list[str] = []
        if path.is_dir():
            pass
        elif path.exists():
            raise NotADirectoryError(f"{path} exists and is not a directory")
        else:
            reasons.append("created")
            if not self.dry_run:
                path.mkdir(parents=True, exist_ok=True)
        self._apply_mode(path, mode, reasons)
        return bool(reasons), _describe(reasons)

    def copy_file(self, source: Path, dest: Path) -> bool:
        if not source.exists():
            raise FileNotFoundError(f"{source} does not exist")
        if not self.dry_run:
            shutil.copy2(source, dest)
        return True

    def remove_path(self, path: Path) -> bool:
        if not (path.exists() or path.is_symlink()):
            return False
        if self.dry_run:
            logger.info("(dry-run) remove %s", path)
        elif path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
        return True

    def _apply_mode(self, path: Path, mode: Optional[int], reasons: list[str]) -> None:
        if mode is None:
            return
        try:
            current = stat.S_IMODE(path.stat().st_mode)
        except FileNotFoundError:
            current = None
        if current == mode:
            return
        reasons.append(f"mode->{mode:04o}")
        # In dry-run the path may not exist yet.
        if not self.dry_run and path.exists():
            os.chmod(path, mode)


def _describe(reasons: list[str]) -> str:
    return ", ".join(reasons) if reasons else "noop"


def _write_text(path: Path, content: str, mode: Optional[int]) -> None:
    if mode is None:
        path.write_text(content)
        return
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "w") as handle:
        handle.write(content)
    # The umask may have stripped bits at creation.
    os.chmod(path, mode)
