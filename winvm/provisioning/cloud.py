"""Cloud VM provisioning: provider interface and provider factory.

Bridge between the session layer and VM providers. A session only ever
asks its provider to create a Windows VM and to destroy the VMs it made.
"""

import logging
from abc import ABC, abstractmethod

from winvm.provisioning.types import Credentials

logger = logging.getLogger(__name__)


class CloudProvider(ABC):
    """Abstract base for creating and destroying Windows VMs."""

    @abstractmethod
    def create_windows_vm(self) -> Credentials:
        """Create a Windows VM and return the credentials to reach it."""
        ...

    @abstractmethod
    def destroy_windows_vms(self) -> None:
        """Destroy every VM this provider created or adopted."""
        ...

    def adopt(self, credentials: Credentials) -> None:
        """Take over a VM created elsewhere so destroy_windows_vms() also removes it."""


def create_provider(config, image_id, instance_type, dry_run=False) -> CloudProvider:
    """Instantiate the provider named by config.provider.

    Raises:
        ValueError: for an unknown provider name.
    """
    provider = config.provider
    options = dict(config.provider_options or {})
    logger.debug(f"Provider: {provider} image={image_id} type={instance_type}")

    if provider == "cloudrift":
        from winvm.provisioning.cloudrift import CloudRiftProvider

        return CloudRiftProvider(
            image_id=image_id,
            instance_type=instance_type,
            dry_run=dry_run,
            **options,
        )

    raise ValueError(f"Unknown provider: {provider}")
