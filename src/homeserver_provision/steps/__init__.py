from .appstack import AppStackInstallStep, AppStackRemoveStep
from .base import Step
from .docker import DockerInstallStep
from .fan import FanControlStep
from .firewall import FirewallStep
from .hostname import HostnameStep
from .motd import LoginBannerStep
from .mount import DataVolumeMountStep
from .network import NetworkStep
from .packages import PackageInstallStep, SystemUpgradeStep
from .services import ServiceDisableStep
from .ssh import SshHardenStep
from .system import IpForwardingStep, RebootStep
from .tailscale import TailscaleStep

STEP_REGISTRY = {
    "hostname": HostnameStep,
    "networking": NetworkStep,
    "services": ServiceDisableStep,
    "ssh": SshHardenStep,
    "firewall": FirewallStep,
    "docker": DockerInstallStep,
    "tailscale": TailscaleStep,
    "fan": FanControlStep,
    "mount": DataVolumeMountStep,
    "immich": AppStackInstallStep,
    "immich-remove": AppStackRemoveStep,
    "reboot": RebootStep,
    "packages": PackageInstallStep,
    "ip-forwarding": IpForwardingStep,
    "motd": LoginBannerStep,
    "upgrade": SystemUpgradeStep,
}

AUTORUN_ORDER = (
    "hostname",
    "networking",
    "services",
    "ssh",
    "firewall",
    "docker",
    "tailscale",
    "fan",
    "mount",
    "immich",
)

__all__ = [
    "Step",
    "HostnameStep",
    "NetworkStep",
    "ServiceDisableStep",
    "SshHardenStep",
    "FirewallStep",
    "DockerInstallStep",
    "TailscaleStep",
    "FanControlStep",
    "DataVolumeMountStep",
    "AppStackInstallStep",
    "AppStackRemoveStep",
    "RebootStep",
    "PackageInstallStep",
    "IpForwardingStep",
    "LoginBannerStep",
    "SystemUpgradeStep",
    "STEP_REGISTRY",
    "AUTORUN_ORDER",
]
