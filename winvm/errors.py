"""Exception types raised by the Windows VM session and its transports."""


class WindowsVMError(Exception):
    """Base class for all winvm errors."""


class ClientNotReadyError(WindowsVMError):
    """A transport client is required but has not been established."""


class TransportError(WindowsVMError):
    """Dialing, connecting to or executing over a transport failed."""


class RemoteCommandError(WindowsVMError):
    """A remote command ran but exited with a non-zero status.

    The captured output is kept so callers can inspect partial results.
    For SSH execution stdout holds the combined stdout+stderr stream.
    """

    def __init__(self, command, exit_code, stdout="", stderr=""):
        super().__init__(f"{command} returned {exit_code} exit code")
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class TransferError(WindowsVMError):
    """An SFTP push or pull could not be performed."""


class ProvisioningError(WindowsVMError):
    """The provisioning collaborator failed to create or destroy a VM."""


class ServiceNotReadyError(WindowsVMError):
    """Remote services did not register within the allowed readiness polls."""


class SessionSetupError(WindowsVMError):
    """Session construction failed after the VM was obtained.

    The partially-built session is attached so the caller can still
    destroy the VM.
    """

    def __init__(self, message, session):
        super().__init__(message)
        self.session = session
