from .step_10_load_config import LoadConfigStep
from .step_20_floating_ip import FloatingIPStep
from .step_30_firewall import FirewallStep
from .step_40_system_packages import SystemPackagesStep
from .step_50_web_server import WebServerStep
from .step_60_certbot import CertbotStep
from .step_70_certificate import CertificateStep
from .step_80_admin_user import AdminUserStep
from .step_90_completion_marker import CompletionMarkerStep

__all__ = [
    "LoadConfigStep",
    "FloatingIPStep",
    "FirewallStep",
    "SystemPackagesStep",
    "WebServerStep",
    "CertbotStep",
    "CertificateStep",
    "AdminUserStep",
    "CompletionMarkerStep",
]
