import stat

from homeserver_provision.steps.hostname import HostnameStep
from homeserver_provision.steps.network import NetworkStep
from homeserver_provision.steps.packages import PackageInstallStep, SystemUpgradeStep, os_codename
from homeserver_provision.steps.system import IpForwardingStep, RebootStep
from homeserver_provision.steps.tailscale import TailscaleStep
from homeserver_provision.types import Outcome

from fakes import FakeExecutor, ScriptedPrompter, fail, ok


def test_reboot_declined_is_skipped(settings, config):
    executor = FakeExecutor()
    prompter = ScriptedPrompter(confirms=[False])

    result = RebootStep(settings).apply(config, executor, prompter)

    assert result.outcome is Outcome.SKIPPED
    assert result.details == "reboot cancelled"
    assert executor.commands == []
    assert prompter.questions == ["Are you sure you want to reboot now?"]


def test_reboot_confirmed(settings, config):
    executor = FakeExecutor()
    RebootStep(settings).apply(config, executor, ScriptedPrompter(confirms=[True]))
    assert executor.commands == [("reboot",)]


def test_ip_forwarding_writes_drop_in_once(settings, config):
    step = IpForwardingStep(settings)
    executor = FakeExecutor()

    first = step.apply(config, executor, ScriptedPrompter())
    second = step.apply(config, executor, ScriptedPrompter())

    assert first.changed is True
    assert second.changed is False
    assert settings.sysctl_file.read_text() == "net.ipv4.ip_forward = 1\nnet.ipv6.conf.all.forwarding = 1\n"
    assert stat.S_IMODE(settings.sysctl_file.stat().st_mode) == 0o644
    assert executor.commands.count(("sysctl", "-p", str(settings.sysctl_file))) == 2


def test_hostname_updates_hosts_file(settings, config):
    settings.hosts_file.parent.mkdir(parents=True)
    settings.hosts_file.write_text("127.0.0.1\tlocalhost\n127.0.1.1\traspberrypi\n")
    executor = FakeExecutor({("hostnamectl", "--static"): [ok("raspberrypi\n")]})

    result = HostnameStep(settings).apply(config, executor, ScriptedPrompter())

    assert result.details == "hostname->immichpi, hosts"
    assert ("hostnamectl", "set-hostname", "immichpi") in executor.commands
    assert "127.0.1.1\timmichpi" in settings.hosts_file.read_text()


def test_hostname_already_set_is_a_noop(settings, config):
    settings.hosts_file.parent.mkdir(parents=True)
    settings.hosts_file.write_text("127.0.1.1\timmichpi\n")
    executor = FakeExecutor({("hostnamectl", "--static"): [ok("immichpi\n")]})

    result = HostnameStep(settings).apply(config, executor, ScriptedPrompter())

    assert result.changed is False
    assert ("hostnamectl", "set-hostname", "immichpi") not in executor.commands


def test_hostname_failure_is_reported(settings, config):
    executor = FakeExecutor({("hostnamectl", "set-hostname", "immichpi"): [fail(1, "denied")]})
    result = HostnameStep(settings).apply(config, executor, ScriptedPrompter())
    assert result.outcome is Outcome.FAILED


def test_network_creates_profile_and_applies_static_address(settings, config):
    executor = FakeExecutor({("nmcli", "-t", "-f", "NAME", "connection", "show"): [ok("Wired connection 1\n")]})

    result = NetworkStep(settings).apply(config, executor, ScriptedPrompter())

    assert result.details == "profile-created, ipv4, up"
    assert executor.commands[1:] == [
        ("nmcli", "connection", "add", "type", "ethernet", "ifname", "eth0", "con-name", "eth0"),
        ("nmcli", "connection", "modify", "eth0", "ipv4.addresses", "10.1.1.20/24"),
        ("nmcli", "connection", "modify", "eth0", "ipv4.gateway", "10.1.1.1"),
        ("nmcli", "connection", "modify", "eth0", "ipv4.dns", "1.1.1.1,8.8.8.8"),
        ("nmcli", "connection", "modify", "eth0", "ipv4.method", "manual"),
        ("nmcli", "connection", "reload"),
        ("nmcli", "connection", "up", "eth0"),
    ]


def test_network_uses_fallback_interface(settings, config):
    config.derive("INTERFACE", "eth1")
    executor = FakeExecutor({("nmcli", "-t", "-f", "NAME", "connection", "show"): [ok("eth1\n")]})

    NetworkStep(settings).apply(config, executor, ScriptedPrompter())

    assert ("nmcli", "connection", "up", "eth1") in executor.commands
    assert not any(cmd[:3] == ("nmcli", "connection", "add") for cmd in executor.commands)


def test_tailscale_install_and_connect(settings, config):
    script = "#!/bin/sh\necho install\n"
    executor = FakeExecutor({("curl", "-fsSL", settings.tailscale_install_url): [ok(script)]})
    prompter = ScriptedPrompter(confirms=[True, True])

    result = TailscaleStep(settings).apply(config, executor, prompter)

    assert result.details == "installed, up"
    install = [call for call in executor.calls if call["command"] == ("sh",)]
    assert install[0]["input"] == script
    assert ("tailscale", "up", "--advertise-routes=10.1.1.0/24", "--advertise-exit-node") in executor.commands


def test_tailscale_connect_declined(settings, config):
    executor = FakeExecutor(which={"tailscale"})

    result = TailscaleStep(settings).apply(config, executor, ScriptedPrompter(confirms=[False]))

    assert result.changed is False
    assert result.details == "not-connected"
    assert executor.commands == []


def test_package_step_installs_only_missing(settings, config):
    settings.base_packages = ["git", "ufw"]
    status = ("dpkg-query", "-W", "-f", "${Status}")
    executor = FakeExecutor(
        {
            (*status, "git"): [ok("install ok installed")],
            (*status, "ufw"): [fail(1)],
        }
    )

    result = PackageInstallStep(settings).apply(config, executor, ScriptedPrompter())

    assert result.details == "manager=apt installed=ufw"
    assert ("apt-get", "install", "-y", "ufw") in executor.commands
    apt_calls = [call for call in executor.calls if call["command"][0] == "apt-get"]
    assert all(call["env"] == {"DEBIAN_FRONTEND": "noninteractive"} for call in apt_calls)


def test_package_step_disables_cockpit_banner(settings, config):
    settings.base_packages = ["cockpit"]
    executor = FakeExecutor(
        {
            ("dpkg-query", "-W", "-f", "${Status}", "cockpit"): [ok("install ok installed")],
            ("systemctl", "show", "--property=LoadState", "--value", "cockpit-motd.service"): [ok("loaded\n")],
        }
    )

    result = PackageInstallStep(settings).apply(config, executor, ScriptedPrompter())

    assert result.changed is True
    assert result.details == "manager=apt already-installed, disabled=cockpit-motd"
    assert ("systemctl", "disable", "--now", "cockpit-motd.service") in executor.commands


def test_package_step_without_cockpit_banner_unit(settings, config):
    settings.base_packages = ["cockpit"]
    executor = FakeExecutor({("dpkg-query", "-W", "-f", "${Status}", "cockpit"): [ok("install ok installed")]})

    result = PackageInstallStep(settings).apply(config, executor, ScriptedPrompter())

    assert result.changed is False
    assert not any(command[:2] == ("systemctl", "disable") for command in executor.commands)


def test_upgrade_runs_full_upgrade_then_autoremove(settings, config):
    executor = FakeExecutor()

    SystemUpgradeStep(settings).apply(config, executor, ScriptedPrompter())

    assert executor.commands == [
        ("apt-get", "update"),
        ("apt-get", "full-upgrade", "-y"),
        ("apt-get", "autoremove", "-y"),
    ]


def test_os_codename_reads_os_release(tmp_path):
    path = tmp_path / "os-release"
    path.write_text('PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"\nVERSION_CODENAME=bookworm\n')
    assert os_codename(FakeExecutor(), path) == "bookworm"
