"""Windows VM session: provision or adopt a VM and drive it over WinRM and SSH.

Control flow of new_windows_vm():

1. resolve the provider and create a VM, unless credentials were supplied
2. set up the WinRM client
3. unless skip_setup: wait for the OpenSSH services, then configure them
4. connect the SSH client

Steps 2-4 raise SessionSetupError carrying the half-built session so the
caller can still destroy the VM.
"""

import logging
from abc import ABC, abstractmethod

from winvm.config import SessionConfig
from winvm.errors import (
    ClientNotReadyError,
    ProvisioningError,
    RemoteCommandError,
    SessionSetupError,
    TransportError,
    WindowsVMError,
)
from winvm.provisioning.cloud import CloudProvider, create_provider
from winvm.provisioning.types import Credentials
from winvm.redact import register_secret
from winvm.remote import powershell, transfer
from winvm.remote.ssh_client import SSHClient
from winvm.remote.winrm_client import WinRMClient

logger = logging.getLogger(__name__)


class WindowsVM(ABC):
    """Interface for interacting with a Windows VM in the test suite."""

    @abstractmethod
    def copy_file(self, local_path: str, remote_dir: str) -> str:
        """Copy a local file into remote_dir, creating the directory if needed."""
        ...

    @abstractmethod
    def retrieve_files(self, remote_dir: str, local_dir: str) -> list[transfer.FileResult]:
        """Pull the files directly inside remote_dir into local_dir."""
        ...

    @abstractmethod
    def run(self, command: str, powershell: bool = False) -> tuple[str, str]:
        """Run a command over WinRM and return (stdout, stderr).

        Do not use for commands that must outlive the call: WinRM returns
        before such commands complete and the process gets killed. Use
        run_over_ssh() instead.
        """
        ...

    @abstractmethod
    def run_over_ssh(self, command: str, powershell: bool = False) -> str:
        """Run a command over SSH and return its combined stdout and stderr."""
        ...

    @property
    @abstractmethod
    def credentials(self) -> Credentials | None:
        """Credentials of the VM. Callers check for None before use."""
        ...

    @abstractmethod
    def reinitialize(self) -> None:
        """Re-establish the SSH connection."""
        ...

    @abstractmethod
    def destroy(self) -> None:
        """Destroy the VM."""
        ...

    @property
    @abstractmethod
    def build_wmcb(self) -> bool:
        """Whether the bootstrapper should be built locally instead of downloaded."""
        ...

    @build_wmcb.setter
    @abstractmethod
    def build_wmcb(self, value: bool) -> None:
        ...


class RemoteSession(WindowsVM):
    """WindowsVM backed by a provider, a WinRM client and an SSH client.

    winrm_factory and ssh_factory build the transport clients from
    (credentials, config); tests pass fakes here.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        provider: CloudProvider | None = None,
        credentials: Credentials | None = None,
        winrm_factory=None,
        ssh_factory=None,
    ):
        self.config = config or SessionConfig()
        self._provider = provider
        self._credentials = credentials
        self._winrm_factory = winrm_factory or _default_winrm_factory
        self._ssh_factory = ssh_factory or _default_ssh_factory
        self._winrm = None
        self._ssh = None
        self._build_wmcb = False

    def __repr__(self):
        host = self._credentials.ip_address if self._credentials else None
        return f"<RemoteSession host={host}>"

    # ── lifecycle ─────────────────────────────────────────────────

    def provision(self):
        """Create the VM through the provider, unless credentials are already set."""
        if self._credentials is not None:
            if not self._credentials.is_complete:
                raise ValueError("password or IP address not specified in credentials")
            if self._provider is not None:
                self._provider.adopt(self._credentials)
            return self._credentials
        if self._provider is None:
            raise ProvisioningError("no provider to create a Windows VM with")

        try:
            credentials = self._provider.create_windows_vm()
        except Exception as e:
            raise ProvisioningError(f"error creating Windows VM: {e}") from e
        self._credentials = credentials
        return credentials

    def setup(self, skip_setup=False):
        """Set up WinRM, configure OpenSSH unless skipped, then connect SSH.

        Raises:
            SessionSetupError: carrying this session, on any failure.
        """
        try:
            self.connect_winrm()
        except WindowsVMError as e:
            raise SessionSetupError(f"failed to setup winRM client for the Windows VM: {e}", self) from e

        if not skip_setup:
            try:
                powershell.wait_for_services(
                    self._run_powershell,
                    retries=self.config.readiness_retries,
                    interval=self.config.readiness_interval,
                )
                powershell.configure_openssh_server(self._run_powershell)
            except WindowsVMError as e:
                raise SessionSetupError(f"failed to configure OpenSSHServer on the Windows VM: {e}", self) from e

        try:
            self._connect_ssh()
        except WindowsVMError as e:
            raise SessionSetupError(f"failed to get ssh client for the Windows VM created: {e}", self) from e

    def connect_winrm(self):
        """Build the WinRM client for the current credentials."""
        if self._credentials is None:
            raise ClientNotReadyError("a WinRM client needs credentials, call provision() first")
        register_secret(self._credentials.password)
        self._winrm = self._winrm_factory(self._credentials, self.config)

    def reinitialize(self):
        try:
            self._connect_ssh()
        except WindowsVMError as e:
            raise TransportError(f"failed to reinitialize ssh client: {e}") from e

    def destroy(self):
        # Nothing was created, or it is already gone
        if self._provider is None or self._credentials is None:
            return
        self._close_ssh()
        logger.info(f"Destroying Windows VM {self._credentials.ip_address}")
        self._provider.destroy_windows_vms()
        self._provider = None

    def close(self):
        """Close the SSH connection, leaving the VM running."""
        self._close_ssh()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ── commands ──────────────────────────────────────────────────

    def run(self, command, powershell=False):
        if self._winrm is None:
            raise ClientNotReadyError("run cannot be called without a WinRM client")
        if powershell:
            command = self._wrap(command)

        exit_code, stdout, stderr = self._winrm.run(command)
        if exit_code != 0:
            raise RemoteCommandError(command, exit_code, stdout, stderr)
        return stdout, stderr

    def run_over_ssh(self, command, powershell=False):
        if self._ssh is None:
            raise ClientNotReadyError("run_over_ssh cannot be called without a ssh client")
        if powershell:
            command = self._wrap(command)

        exit_code, output = self._ssh.run(command)
        if exit_code != 0:
            raise RemoteCommandError(command, exit_code, stdout=output)
        return output

    # ── files ─────────────────────────────────────────────────────

    def copy_file(self, local_path, remote_dir):
        if self._ssh is None:
            raise ClientNotReadyError("copy_file cannot be called without a ssh client")
        return transfer.copy_file(self._ssh, local_path, remote_dir)

    def retrieve_files(self, remote_dir, local_dir):
        if self._ssh is None:
            raise ClientNotReadyError("retrieve_files cannot be called without a ssh client")
        return transfer.retrieve_files(self._ssh, remote_dir, local_dir)

    # ── accessors ─────────────────────────────────────────────────

    @property
    def credentials(self):
        return self._credentials

    @property
    def build_wmcb(self):
        return self._build_wmcb

    @build_wmcb.setter
    def build_wmcb(self, value):
        self._build_wmcb = bool(value)

    @property
    def winrm_client(self):
        return self._winrm

    @property
    def ssh_client(self):
        return self._ssh

    # ── internals ─────────────────────────────────────────────────

    def _wrap(self, command):
        return powershell.with_prefix(command, self.config.powershell_prefix)

    def _run_powershell(self, command):
        return self.run(command, powershell=True)

    def _close_ssh(self):
        if self._ssh is None:
            return
        try:
            self._ssh.close()
        except Exception as e:
            logger.error(f"error closing ssh client connection: {e}")
        self._ssh = None

    def _connect_ssh(self):
        if self._credentials is None:
            raise ClientNotReadyError("a ssh client needs credentials, call provision() first")
        self._close_ssh()
        self._ssh = self._ssh_factory(self._credentials, self.config)


def _default_winrm_factory(credentials, config):
    return WinRMClient(
        credentials.ip_address,
        config.username,
        credentials.password,
        port=credentials.port_for(config.winrm_port),
        use_tls=config.winrm_use_tls,
        insecure=config.winrm_insecure,
        transport=config.winrm_transport,
        timeout=config.winrm_timeout,
    )


def _default_ssh_factory(credentials, config):
    return SSHClient(
        credentials.ip_address,
        config.username,
        credentials.password,
        port=credentials.port_for(config.ssh_port),
        timeout=config.ssh_timeout,
    )


def new_windows_vm(
    image_id,
    instance_type,
    credentials=None,
    skip_setup=False,
    config=None,
    provider=None,
    winrm_factory=None,
    ssh_factory=None,
    dry_run=False,
):
    """Create and set up a Windows VM, returning a ready RemoteSession.

    If credentials are passed the VM is assumed to exist already and is
    only connected to. If no error is raised the VM exists and both
    transports can be used. If skip_setup is true the OpenSSH
    configuration steps are skipped.

    Raises:
        ValueError: supplied credentials lack an address or password.
        ProvisioningError: the provider could not be built or failed to create the VM.
        SessionSetupError: a later step failed; err.session can still be destroyed.
    """
    config = config or SessionConfig()

    if credentials is not None and not credentials.is_complete:
        raise ValueError("password or IP address not specified in credentials")

    if provider is None:
        try:
            provider = create_provider(config, image_id, instance_type, dry_run=dry_run)
        except (ValueError, ProvisioningError) as e:
            raise ProvisioningError(f"error instantiating cloud provider: {e}") from e

    session = RemoteSession(
        config=config,
        provider=provider,
        credentials=credentials,
        winrm_factory=winrm_factory,
        ssh_factory=ssh_factory,
    )
    session.provision()
    session.setup(skip_setup=skip_setup)
    return session
