"""PowerShell helpers: command prefixing and OpenSSH server first-boot setup.

The OpenSSH server binaries are installed when the VM is created, but the
services still need the helper module, automatic startup and a first start
before SSH is reachable. All steps run over WinRM.
"""

import logging
import time

from winvm.config import POWERSHELL_PREFIX
from winvm.errors import RemoteCommandError, ServiceNotReadyError, WindowsVMError

logger = logging.getLogger(__name__)

SSH_SERVICES = ("sshd", "ssh-agent")

# (command, failure message) pairs, run strictly in order.
FIRST_BOOT_STEPS = [
    # NuGet is needed by the OpenSSHUtils module installation below
    (
        "Install-PackageProvider -Name NuGet -MinimumVersion 2.8.5.201 -Force",
        "failed to install dependent packages for OpenSSH server",
    ),
    # TODO: limit the module scope to the Administrator user once other users are not needed.
    (
        "Install-Module -Force OpenSSHUtils -Scope AllUsers",
        "failed to configure OpenSSHUtils for all users",
    ),
    (
        "Set-Service -Name ssh-agent -StartupType 'Automatic'",
        "failed to set up ssh-agent Windows Service",
    ),
    (
        "Set-Service -Name sshd -StartupType 'Automatic'",
        "failed to set up sshd Windows Service",
    ),
    (
        "Start-Service ssh-agent",
        "start ssh-agent failed",
    ),
    (
        "Start-Service sshd",
        "failed to start sshd",
    ),
]


def with_prefix(command, prefix=POWERSHELL_PREFIX):
    """Return command wrapped for non-interactive PowerShell execution."""
    return prefix + command


def get_service_command(services=SSH_SERVICES):
    return "Get-Service " + ", ".join(services)


def services_registered(output, services=SSH_SERVICES):
    """Check Get-Service table output for every service name.

    Get-Service prints one row per service: Status, Name, DisplayName.
    A service counts as registered when its name is a whole column value.
    """
    found = set()
    for line in output.splitlines():
        columns = line.split()
        if len(columns) >= 2:
            found.add(columns[1].lower())
    return all(s.lower() in found for s in services)


def wait_for_services(run, services=SSH_SERVICES, retries=12, interval=5, sleep=time.sleep):
    """Poll until every service in *services* is registered on the VM.

    Args:
        run: callable(command) -> (stdout, stderr), PowerShell-wrapped by the caller.
        retries: maximum number of Get-Service attempts.
        interval: seconds between attempts.
        sleep: injectable for tests.

    Raises:
        ServiceNotReadyError: if the services are still missing after *retries* polls.
    """
    command = get_service_command(services)
    for attempt in range(1, retries + 1):
        try:
            stdout, _ = run(command)
        except RemoteCommandError as e:
            # Get-Service exits non-zero while any of the services is missing
            stdout = e.stdout
        except WindowsVMError as e:
            logger.warning(f"Service poll {attempt}/{retries} failed: {e}")
            stdout = ""

        if services_registered(stdout, services):
            logger.info(f"Services registered: {', '.join(services)}")
            return
        if attempt < retries:
            logger.debug(f"Services not registered yet ({attempt}/{retries}), retrying in {interval}s")
            sleep(interval)

    raise ServiceNotReadyError(f"services {', '.join(services)} not registered after {retries} attempts")


def configure_openssh_server(run):
    """Run the first-boot OpenSSH configuration steps in order.

    Aborts on the first failing step; nothing is retried.

    Args:
        run: callable(command) -> (stdout, stderr), PowerShell-wrapped by the caller.
    """
    for command, message in FIRST_BOOT_STEPS:
        logger.info(f"Running: {command}")
        try:
            run(command)
        except WindowsVMError as e:
            raise WindowsVMError(f"{message}: {e}") from e
