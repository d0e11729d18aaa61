import stat

from homeserver_provision.steps.appstack import AppStackInstallStep, AppStackRemoveStep
from homeserver_provision.types import Outcome

from fakes import FakeExecutor, ScriptedPrompter, fail, ok

DEVICE = "/dev/nvme0n1p1"


def mounted_executor(settings, **kwargs) -> FakeExecutor:
    responses = {("blkid", "-L", settings.data_label): [ok(DEVICE)]}
    responses.update(kwargs.pop("responses", {}))
    return FakeExecutor(responses, which={"docker"}, **kwargs)


def test_install_requires_docker(settings, config):
    step = AppStackInstallStep(settings)
    assert step.precondition(config, FakeExecutor()) == "Docker is not installed"
    assert step.precondition(config, FakeExecutor(which={"docker"})) is None


def test_install_stops_when_volume_is_missing(settings, config):
    executor = FakeExecutor({("blkid", "-L", settings.data_label): [fail(2)]}, which={"docker"})

    result = AppStackInstallStep(settings).apply(config, executor, ScriptedPrompter())

    assert result.outcome is Outcome.PRECONDITION_NOT_MET
    assert not settings.app_dir.exists()
    assert not any(cmd[:2] == ("docker", "compose") for cmd in executor.commands)


def test_install_writes_env_and_starts_stack(settings, config):
    executor = mounted_executor(settings)
    prompter = ScriptedPrompter(secrets=["one", "two", "s3cret", "s3cret"])

    result = AppStackInstallStep(settings).apply(config, executor, prompter)

    assert result.outcome is Outcome.SUCCESS
    assert prompter.notices == ["Configure Immich DB Password", "Mismatch. Try again."]
    env_file = settings.app_dir / ".env"
    lines = env_file.read_text().splitlines()
    assert f"UPLOAD_LOCATION={settings.app_dir / 'library'}" in lines
    assert f"DB_DATA_LOCATION={settings.app_dir / 'postgres'}" in lines
    assert "DB_PASSWORD=s3cret" in lines
    assert "TZ=Europe/London" in lines
    assert "IMMICH_VERSION=release" in lines
    assert stat.S_IMODE(env_file.stat().st_mode) == 0o600
    assert (settings.app_dir / "library").is_dir()
    assert (settings.app_dir / "postgres").is_dir()
    assert ("chown", "-R", "admin:admin", str(settings.app_dir)) in executor.commands
    assert ("chown", "admin:admin", str(env_file)) in executor.commands
    compose_up = [call for call in executor.calls if call["command"] == ("docker", "compose", "up", "-d")]
    assert compose_up and compose_up[0]["cwd"] == settings.app_dir


def test_install_reports_compose_failure(settings, config):
    responses = {("docker", "compose", "up", "-d"): [fail(1, "pull access denied")]}
    executor = mounted_executor(settings, responses=responses)

    result = AppStackInstallStep(settings).apply(config, executor, ScriptedPrompter(secrets=["pw", "pw"]))

    assert result.outcome is Outcome.FAILED
    assert "pull access denied" in result.details


def test_remove_declined_keeps_data(settings, config):
    settings.app_dir.mkdir(parents=True)
    prompter = ScriptedPrompter(confirms=[False])

    result = AppStackRemoveStep(settings).apply(config, FakeExecutor(), prompter)

    assert result.outcome is Outcome.SKIPPED
    assert result.details == "operation cancelled"
    assert settings.app_dir.exists()
    assert str(settings.app_dir) in prompter.questions[0]


def test_remove_stops_containers_and_deletes_tree(settings, config):
    settings.app_dir.mkdir(parents=True)
    compose_file = settings.app_dir / "docker-compose.yml"
    compose_file.write_text("services: {}\n")
    executor = FakeExecutor()

    result = AppStackRemoveStep(settings).apply(config, executor, ScriptedPrompter(confirms=[True]))

    assert result.changed is True
    assert ("docker", "compose", "-f", str(compose_file), "down") in executor.commands
    assert not settings.app_dir.exists()
