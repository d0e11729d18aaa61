import subprocess
from pathlib import Path

import pytest

from homeserver_provision.preflight import UserRecord
from homeserver_provision.steps.ssh import (
    AuthorizedKeyManager,
    SshdConfigEditor,
    SshHardenStep,
    resolve_ssh_port,
)
from homeserver_provision.types import Configuration, Outcome

from fakes import BASE_VALUES, FakeExecutor, ScriptedPrompter, fail, ok

SSHD_CONFIG = """\
Include sshd_config.d/*.conf
#Port 22
#PermitRootLogin prohibit-password
PasswordAuthentication yes

Match User backup
    ForceCommand internal-sftp
"""

KEYS = "ssh-ed25519 AAAAC3 admin@laptop\nssh-rsa AAAAB3 admin@desktop\nnot-a-key\n"


class FakeManager(AuthorizedKeyManager):
    def __init__(self, home: Path):
        self.record = UserRecord(name="admin", home=home, uid=1000, gid=1000)
        self.contents: dict[Path, str] = {}
        self.chmod_calls: list[tuple[Path, int]] = []
        self.chown_calls: list[tuple[Path, int, int]] = []

    def get_user(self, username: str):  # type: ignore[override]
        return self.record

    def read(self, path: Path) -> str:  # type: ignore[override]
        return self.contents.get(path, "")

    def write(self, path: Path, content: str) -> None:  # type: ignore[override]
        self.contents[path] = content

    def chmod(self, path: Path, mode: int) -> None:  # type: ignore[override]
        self.chmod_calls.append((path, mode))

    def chown(self, path: Path, uid: int, gid: int) -> None:  # type: ignore[override]
        self.chown_calls.append((path, uid, gid))


class FakeSystemCtl:
    def __init__(self, fail_restart: bool = False):
        self.fail_restart = fail_restart
        self.restarted: list[str] = []

    def restart(self, executor, service: str) -> None:
        if self.fail_restart:
            raise subprocess.CalledProcessError(1, ["systemctl", "restart", service], "", "bad config")
        self.restarted.append(service)


@pytest.fixture
def sshd_config(tmp_path: Path) -> Path:
    path = tmp_path / "sshd_config"
    path.write_text(SSHD_CONFIG)
    return path


def make_step(settings, tmp_path: Path, systemctl=None):
    step = SshHardenStep(settings)
    step.manager = FakeManager(tmp_path / "home")
    step.systemctl = systemctl or FakeSystemCtl()
    return step


def ssh_config(path: Path) -> Configuration:
    return Configuration(dict(BASE_VALUES, SSH_CONFIG=str(path)))


def test_port_is_asked_until_in_range(config):
    prompter = ScriptedPrompter(answers=["22", "65536", "port", "²", "2222"])

    assert resolve_ssh_port(config, prompter) == 2222
    assert prompter.notices == ["Invalid port. Try again."] * 4
    assert config["SSH_PORT"] == "2222"

    # The derived port is reused, not asked again.
    assert resolve_ssh_port(config, ScriptedPrompter()) == 2222


def test_editor_rewrites_and_inserts_before_match(sshd_config: Path):
    editor = SshdConfigEditor(sshd_config, FakeExecutor())
    directives = {"Port": "2222", "PermitRootLogin": "no", "PasswordAuthentication": "no", "MaxAuthTries": "3"}

    appended = editor.rewrite(directives)

    assert appended == ["MaxAuthTries"]
    assert editor.verify(directives) == []
    text = sshd_config.read_text()
    assert "#Port" not in text
    assert text.index("MaxAuthTries 3") < text.index("Match User backup")


def test_editor_verify_reports_mismatch(sshd_config: Path):
    editor = SshdConfigEditor(sshd_config, FakeExecutor())
    assert editor.verify({"PasswordAuthentication": "no", "Port": "2222"}) == ["PasswordAuthentication", "Port"]


def test_harden_installs_keys_rewrites_and_restarts(settings, tmp_path: Path, sshd_config: Path):
    config = ssh_config(sshd_config)
    executor = FakeExecutor({("curl", "-fsSL", config["SSH_KEYS_URL"]): [ok(KEYS)]})
    step = make_step(settings, tmp_path)

    assert step.precondition(config, executor) is None
    result = step.apply(config, executor, ScriptedPrompter(answers=["2222"]))

    assert result.outcome is Outcome.SUCCESS
    assert "authorized_keys" in result.details
    assert "port->2222" in result.details
    auth_file = tmp_path / "home" / ".ssh" / "authorized_keys"
    assert step.manager.contents[auth_file] == "ssh-ed25519 AAAAC3 admin@laptop\nssh-rsa AAAAB3 admin@desktop\n"
    assert (auth_file, 0o600) in step.manager.chmod_calls
    assert (tmp_path / "sshd_config.bak").read_text() == SSHD_CONFIG
    text = sshd_config.read_text()
    assert "Port 2222\n" in text
    assert "PermitRootLogin no\n" in text
    assert "PasswordAuthentication no\n" in text
    assert step.systemctl.restarted == ["ssh"]


def test_pasted_key_is_used_when_fetch_fails(settings, tmp_path: Path, sshd_config: Path):
    config = ssh_config(sshd_config)
    executor = FakeExecutor({("curl", "-fsSL", config["SSH_KEYS_URL"]): [fail(22)]})
    step = make_step(settings, tmp_path)

    result = step.apply(config, executor, ScriptedPrompter(answers=["ssh-ed25519 AAAApasted admin", "2200"]))

    assert result.outcome is Outcome.SUCCESS
    auth_file = tmp_path / "home" / ".ssh" / "authorized_keys"
    assert step.manager.contents[auth_file] == "ssh-ed25519 AAAApasted admin\n"


def test_refuses_to_lock_out_without_keys(settings, tmp_path: Path, sshd_config: Path):
    config = ssh_config(sshd_config)
    executor = FakeExecutor({("curl", "-fsSL", config["SSH_KEYS_URL"]): [fail(22)]})
    step = make_step(settings, tmp_path)

    result = step.apply(config, executor, ScriptedPrompter(answers=[""]))

    assert result.outcome is Outcome.FAILED
    assert sshd_config.read_text() == SSHD_CONFIG
    assert not (tmp_path / "sshd_config.bak").exists()


def test_restart_failure_is_reported(settings, tmp_path: Path, sshd_config: Path):
    config = ssh_config(sshd_config)
    executor = FakeExecutor({("curl", "-fsSL", config["SSH_KEYS_URL"]): [ok(KEYS)]})
    step = make_step(settings, tmp_path, systemctl=FakeSystemCtl(fail_restart=True))

    result = step.apply(config, executor, ScriptedPrompter(answers=["2222"]))

    assert result.failed
    assert "bad config" in result.details


def test_missing_sshd_config_is_a_precondition(settings, tmp_path: Path):
    config = ssh_config(tmp_path / "absent")
    assert "does not exist" in make_step(settings, tmp_path).precondition(config, FakeExecutor())


def test_pasted_text_that_is_not_a_key_is_refused(settings, tmp_path: Path, sshd_config: Path):
    config = ssh_config(sshd_config)
    executor = FakeExecutor({("curl", "-fsSL", config["SSH_KEYS_URL"]): [fail(22)]})
    step = make_step(settings, tmp_path)

    result = step.apply(config, executor, ScriptedPrompter(answers=["hello world"]))

    assert result.outcome is Outcome.FAILED
    assert step.manager.contents == {}
    assert sshd_config.read_text() == SSHD_CONFIG
    assert step.systemctl.restarted == []


def test_verify_reads_included_drop_ins_first(sshd_config: Path):
    drop_ins = sshd_config.parent / "sshd_config.d"
    drop_ins.mkdir()
    (drop_ins / "50-cloud-init.conf").write_text("PasswordAuthentication yes\n")
    editor = SshdConfigEditor(sshd_config, FakeExecutor())
    directives = {"Port": "2222", "PasswordAuthentication": "no"}

    editor.rewrite(directives)

    assert editor.effective()["passwordauthentication"] == "yes"
    assert editor.verify(directives) == ["PasswordAuthentication"]


def test_conflicting_drop_in_fails_hardening(settings, tmp_path: Path, sshd_config: Path):
    drop_ins = sshd_config.parent / "sshd_config.d"
    drop_ins.mkdir()
    (drop_ins / "50-cloud-init.conf").write_text("PasswordAuthentication yes\n")
    config = ssh_config(sshd_config)
    executor = FakeExecutor({("curl", "-fsSL", config["SSH_KEYS_URL"]): [ok(KEYS)]})
    step = make_step(settings, tmp_path)

    result = step.apply(config, executor, ScriptedPrompter(answers=["2222"]))

    assert result.failed
    assert "PasswordAuthentication" in result.details
    assert step.systemctl.restarted == []
