"""WinRM transport: run a single command and capture stdout, stderr and exit status."""

import logging

import requests
import winrm
from winrm.exceptions import WinRMError, WinRMOperationTimeoutError, WinRMTransportError

from winvm.errors import TransportError

logger = logging.getLogger(__name__)

# Console output of cmd.exe and Windows PowerShell 5 defaults to this code page
DEFAULT_ENCODING = "cp1252"

_TRANSPORT_ERRORS = (WinRMError, WinRMTransportError, WinRMOperationTimeoutError, requests.RequestException)


def winrm_endpoint(host, port, use_tls=True):
    """Build the WS-Management endpoint URL for host:port."""
    scheme = "https" if use_tls else "http"
    return f"{scheme}://{host}:{port}/wsman"


class WinRMClient:
    """Thin wrapper around a pywinrm session.

    Construction does not touch the network; the first run() opens the
    remote shell. The timeout is fixed for the lifetime of the client.
    """

    def __init__(
        self,
        host,
        username,
        password,
        port=5986,
        use_tls=True,
        insecure=True,
        transport="basic",
        timeout=600,
        encoding=DEFAULT_ENCODING,
    ):
        self.host = host
        self.port = port
        self.endpoint = winrm_endpoint(host, port, use_tls)
        self.encoding = encoding
        # pywinrm requires the read timeout to exceed the operation timeout
        operation_timeout = max(timeout - 10, 1)
        try:
            self._session = winrm.Session(
                self.endpoint,
                auth=(username, password),
                transport=transport,
                server_cert_validation="ignore" if insecure else "validate",
                read_timeout_sec=timeout,
                operation_timeout_sec=operation_timeout,
            )
        except (WinRMError, ValueError) as e:
            raise TransportError(f"failed to set up winrm client: {e}") from e

    def __repr__(self):
        return f"<WinRMClient {self.endpoint}>"

    def run(self, command):
        """Execute *command* synchronously.

        Returns:
            (exit_code, stdout, stderr) tuple.

        Raises:
            TransportError: if the command could not be delivered or its output collected.
        """
        logger.debug(f"winrm {self.host}: {command}")
        try:
            response = self._session.run_cmd(command)
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"error while executing {command} remotely: {e}") from e

        stdout = response.std_out.decode(self.encoding, errors="replace")
        stderr = response.std_err.decode(self.encoding, errors="replace")
        return response.status_code, stdout, stderr
