"""VM provisioning: credentials type, provider interface, providers."""

from winvm.provisioning.cloud import CloudProvider, create_provider
from winvm.provisioning.types import Credentials

__all__ = [
    "CloudProvider",
    "Credentials",
    "create_provider",
]
