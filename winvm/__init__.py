"""Harness for provisioning and driving Windows VMs in end-to-end tests."""

from winvm.config import SessionConfig, load_config
from winvm.errors import (
    ClientNotReadyError,
    ProvisioningError,
    RemoteCommandError,
    ServiceNotReadyError,
    SessionSetupError,
    TransferError,
    TransportError,
    WindowsVMError,
)
from winvm.provisioning import CloudProvider, Credentials
from winvm.remote import FileResult, RemoteSession, WindowsVM, new_windows_vm

__all__ = [
    "ClientNotReadyError",
    "CloudProvider",
    "Credentials",
    "FileResult",
    "ProvisioningError",
    "RemoteCommandError",
    "RemoteSession",
    "ServiceNotReadyError",
    "SessionConfig",
    "SessionSetupError",
    "TransferError",
    "TransportError",
    "WindowsVM",
    "WindowsVMError",
    "load_config",
    "new_windows_vm",
]
