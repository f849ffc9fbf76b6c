"""Server provisioning and remote lifecycle."""

from hostpanel.modules.servers.domain.lifecycle import DeleteOutcome, LifecycleReconciler
from hostpanel.modules.servers.domain.provider_client import (
    ProviderClient,
    PterodactylClient,
    build_pterodactyl_client,
)
from hostpanel.modules.servers.domain.provisioning import (
    ServerProvisioner,
    create_from_provider_response,
)

__all__ = [
    "DeleteOutcome",
    "LifecycleReconciler",
    "ProviderClient",
    "PterodactylClient",
    "build_pterodactyl_client",
    "ServerProvisioner",
    "create_from_provider_response",
]
