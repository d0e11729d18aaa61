from __future__ import annotations

import glob
import logging
import os
import re
import subprocess
from pathlib import Path
from typing import Iterator, Optional

from .base import Step, summarize
from .services import SystemCtl
from ..executors import Executor
from ..preflight import UserRecord, lookup_user
from ..prompts import Prompter, ask_until_valid, parse_int_in_range
from ..types import Configuration, StepResult

logger = logging.getLogger(__name__)

SSH_PORT_MIN = 1024
SSH_PORT_MAX = 65535
KEY_PREFIXES = ("ssh-", "ecdsa-", "sk-ssh-", "sk-ecdsa-")
MAX_INCLUDE_DEPTH = 16


def parse_ssh_port(text: str) -> Optional[int]:
    return parse_int_in_range(text, SSH_PORT_MIN, SSH_PORT_MAX)


def resolve_ssh_port(config: Configuration, prompter: Prompter) -> int:
    """Return the run's SSH port, asking the operator the first time only."""
    if config.is_derived("SSH_PORT"):
        return int(config["SSH_PORT"])
    port = ask_until_valid(
        prompter,
        f"Enter new SSH port ({SSH_PORT_MIN}-{SSH_PORT_MAX})",
        parse_ssh_port,
        "Invalid port. Try again.",
    )
    config.derive("SSH_PORT", str(port))
    return port


class AuthorizedKeyManager:
    def get_user(self, username: str) -> UserRecord:
        record = lookup_user(username)
        if record is None:
            raise ValueError(f"User '{username}' does not exist")
        return record

    def read(self, path: Path) -> str:
        try:
            return path.read_text()
        except FileNotFoundError:
            return ""

    def write(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    def chmod(self, path: Path, mode: int) -> None:
        os.chmod(path, mode)

    def chown(self, path: Path, uid: int, gid: int) -> None:
        os.chown(path, uid, gid)


def split_keys(content: str) -> list[str]:
    seen: list[str] = []
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#") and line not in seen:
            seen.append(line)
    return seen


def public_keys(content: str) -> list[str]:
    return [key for key in split_keys(content) if key.startswith(KEY_PREFIXES)]


class SshdConfigEditor:
    """Rewrite ``sshd_config`` directives in place and check the result."""

    def __init__(self, path: Path, executor: Executor):
        self.path = path
        self.executor = executor

    @staticmethod
    def _pattern(directive: str) -> re.Pattern[str]:
        return re.compile(rf"^#?{re.escape(directive)}\s+.*$", re.MULTILINE)

    def rewrite(self, directives: dict[str, str]) -> list[str]:
        content = self.executor.read_file(self.path) or ""
        appended: list[str] = []
        for directive, value in directives.items():
            line = f"{directive} {value}"
            content, count = self._pattern(directive).subn(line, content)
            if count == 0:
                content = self._insert_global(content, line)
                appended.append(directive)
        self.executor.write_file(self.path, content=content, mode=None)
        return appended

    @staticmethod
    def _insert_global(content: str, line: str) -> str:
        # Directives after a ``Match`` block only apply inside that block.
        match = re.search(r"^Match\s", content, re.MULTILINE)
        if match:
            return content[: match.start()] + line + "\n" + content[match.start():]
        if content and not content.endswith("\n"):
            content += "\n"
        return content + line + "\n"

    def _expand(self, pattern: str) -> list[Path]:
        # Relative Include paths are resolved against the sshd config directory.
        if not os.path.isabs(pattern):
            pattern = str(self.path.parent / pattern)
        return [Path(match) for match in sorted(glob.glob(pattern))]

    def _directives(self, path: Path, depth: int = 0) -> Iterator[list[str]]:
        for raw in (self.executor.read_file(path) or "").splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split(None, 1)
            if parts[0].lower() == "include" and len(parts) == 2:
                if depth >= MAX_INCLUDE_DEPTH:
                    raise ValueError(f"Include nesting too deep in {path}")
                for pattern in parts[1].split():
                    for included in self._expand(pattern):
                        yield from self._directives(included, depth + 1)
                continue
            yield parts

    def effective(self) -> dict[str, str]:
        """Global directive values as sshd resolves them, drop-ins included."""
        values: dict[str, str] = {}
        for parts in self._directives(self.path):
            if parts[0].lower() == "match":
                break
            # sshd honours the first occurrence of a directive.
            if len(parts) == 2:
                values.setdefault(parts[0].lower(), parts[1].strip())
        return values

    def verify(self, directives: dict[str, str]) -> list[str]:
        current = self.effective()
        return [name for name, value in directives.items() if current.get(name.lower()) != value]


class SshHardenStep(Step):
    name = "ssh"
    title = "SSH Setup"
    prompt = "Harden the SSH server (keys, port, no root/password login)?"
    idempotent = False

    def __init__(self, settings):
        super().__init__(settings)
        self.manager = AuthorizedKeyManager()
        self.systemctl = SystemCtl()

    def precondition(self, config: Configuration, executor: Executor) -> Optional[str]:
        if not Path(config["SSH_CONFIG"]).exists():
            return f"{config['SSH_CONFIG']} does not exist"
        return None

    def apply(self, config: Configuration, executor: Executor, prompter: Prompter) -> StepResult:
        changes: list[str] = []
        record = self.manager.get_user(config["USERNAME"])

        keys = self._fetch_keys(config["SSH_KEYS_URL"], executor)
        if not keys:
            pasted = prompter.ask(f"No keys could be fetched from {config['SSH_KEYS_URL']}. Paste a public key")
            keys = public_keys(pasted)
        if not keys:
            return self.failed("no authorized key available; refusing to disable password login")
        if self._install_keys(record, keys, executor):
            changes.append("authorized_keys")

        port = resolve_ssh_port(config, prompter)
        directives = {
            "Port": str(port),
            "PermitRootLogin": "no",
            "PasswordAuthentication": "no",
        }
        sshd_config = Path(config["SSH_CONFIG"])
        backup = sshd_config.with_name(sshd_config.name + ".bak")
        executor.copy_file(sshd_config, backup)
        logger.info("Backed up %s to %s", sshd_config, backup)

        editor = SshdConfigEditor(sshd_config, executor)
        appended = editor.rewrite(directives)
        if appended:
            logger.warning("Directives missing from %s were appended: %s", sshd_config, ", ".join(appended))
        if not executor.dry_run:
            mismatched = editor.verify(directives)
            if mismatched:
                return self.failed(
                    f"sshd_config not hardened, check {', '.join(mismatched)}", changed=bool(changes)
                )
        changes.append(f"port->{port}")

        try:
            self.systemctl.restart(executor, self.settings.ssh_service)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"rc={exc.returncode}"
            return self.failed(f"restart of {self.settings.ssh_service} failed: {detail}", changed=True)
        changes.append("restarted")
        return self.result(summarize(changes), changed=True)

    def _fetch_keys(self, url: str, executor: Executor) -> list[str]:
        result = executor.run(["curl", "-fsSL", url], check=False, mutable=False)
        if not result.ok:
            logger.warning("Failed to fetch SSH keys from %s (rc=%s)", url, result.returncode)
            return []
        return public_keys(result.stdout)

    def _install_keys(self, record: UserRecord, keys: list[str], executor: Executor) -> bool:
        ssh_dir = record.home / ".ssh"
        auth_file = ssh_dir / "authorized_keys"
        existing = split_keys(self.manager.read(auth_file))
        missing = [key for key in keys if key not in existing]
        if executor.dry_run:
            return bool(missing)
        if missing:
            content = "\n".join(existing + missing) + "\n"
            self.manager.write(auth_file, content)
        self.manager.chown(ssh_dir, record.uid, record.gid)
        self.manager.chmod(ssh_dir, 0o700)
        self.manager.chown(auth_file, record.uid, record.gid)
        self.manager.chmod(auth_file, 0o600)
        return bool(missing)
