from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_SETTINGS = Path("/etc/homeserver-provision/main.conf")


@dataclass
class ProvisionSettings:
    """Tool-level settings: where things live on the host and fixed policy."""

    config_file: Path = Path("config.env")
    environment_file: Path = Path("/etc/environment")
    log_file: Path = Path("/var/log/homeserver_setup.log")
    boot_config: Path = Path("/boot/firmware/config.txt")
    fan_state_file: Path = Path("/etc/fan_temp.conf")
    fstab: Path = Path("/etc/fstab")
    hosts_file: Path = Path("/etc/hosts")
    os_release: Path = Path("/etc/os-release")
    net_class_dir: Path = Path("/sys/class/net")
    sysctl_file: Path = Path("/etc/sysctl.d/99-homeserver-forwarding.conf")
    keyrings_dir: Path = Path("/etc/apt/keyrings")
    apt_sources_dir: Path = Path("/etc/apt/sources.list.d")
    motd_dir: Path = Path("/etc/update-motd.d")
    motd_file: Path = Path("/etc/motd")
    issue_files: list[Path] = field(default_factory=lambda: [Path("/etc/issue"), Path("/etc/issue.net")])
    default_interface: str = "eth0"
    trusted_subnet: str = "10.1.1.0/24"
    ssh_service: str = "ssh"
    disabled_services: list[str] = field(
        default_factory=lambda: [
            "bluetooth",
            "hciuart",
            "wpa_supplicant",
            "keyboard-setup",
            "modprobe@drm",
            "sys-kernel-tracing",
        ]
    )
    required_commands: list[str] = field(
        default_factory=lambda: [
            "nmcli",
            "curl",
            "ufw",
            "systemctl",
            "hostnamectl",
            "blkid",
            "mount",
            "mountpoint",
            "chown",
            "usermod",
            "getent",
            "apt-get",
            "dpkg",
            "sysctl",
            "id",
        ]
    )
    base_packages: list[str] = field(
        default_factory=lambda: [
            "git",
            "ufw",
            "curl",
            "ca-certificates",
            "gnupg",
            "network-manager",
            "openssh-server",
            "cockpit",
            "zram-tools",
            "htop",
            "lm-sensors",
        ]
    )
    docker_packages: list[str] = field(
        default_factory=lambda: [
            "docker-ce",
            "docker-ce-cli",
            "containerd.io",
            "docker-buildx-plugin",
            "docker-compose-plugin",
        ]
    )
    docker_groups: list[str] = field(default_factory=lambda: ["docker", "ssh-users"])
    docker_repo: str = "https://download.docker.com/linux/debian"
    tailscale_install_url: str = "https://tailscale.com/install.sh"
    data_label: str = "immich-nvme"
    data_mount: Path = Path("/immichpi")
    data_fstype: str = "ext4"
    app_dir: Path = Path("/immichpi/appdata/immich")
    compose_url: str = "https://raw.githubusercontent.com/cityplug/immichpi/refs/heads/main/docker-compose.yml"
    timezone: str = "Europe/London"
    app_version: str = "release"
    db_username: str = "postgres"
    db_name: str = "immich"


def _coerce(current: Any, value: Any) -> Any:
    if isinstance(current, Path):
        return Path(str(value))
    if isinstance(current, list):
        if isinstance(value, str):
            value = value.split()
        items = [str(item) for item in value]
        if current and isinstance(current[0], Path):
            return [Path(item) for item in items]
        return items
    return str(value)


def load_config(path: Path) -> ProvisionSettings:
    settings = ProvisionSettings()
    if not path.exists():
        return settings
    data = tomllib.loads(path.read_text())
    defaults = data.get("defaults", {})
    known = {item.name for item in fields(ProvisionSettings)}
    unknown = set(defaults) - known
    if unknown:
        raise ValueError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")
    for name, value in defaults.items():
        setattr(settings, name, _coerce(getattr(settings, name), value))
    return settings
