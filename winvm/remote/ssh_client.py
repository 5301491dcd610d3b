"""SSH transport: per-call command channels and SFTP sessions over one connection."""

import contextlib
import logging
import socket

import paramiko

from winvm.errors import TransportError

logger = logging.getLogger(__name__)

_CONNECT_ERRORS = (paramiko.SSHException, socket.error, EOFError)


class SSHClient:
    """A password-authenticated SSH connection to a Windows VM.

    Host key verification is disabled: test VMs are created fresh and
    their keys are never known in advance.
    """

    def __init__(self, host, username, password, port=22, timeout=60, client_factory=paramiko.SSHClient):
        self.host = host
        self.port = port
        self.username = username
        self._client = client_factory()
        self._client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            self._client.connect(
                host,
                port=port,
                username=username,
                password=password,
                timeout=timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except _CONNECT_ERRORS as e:
            # Stops the transport thread paramiko may have started
            self._client.close()
            raise TransportError(f"failed to dial to ssh server {host}:{port}: {e}") from e
        logger.debug(f"Connected to {host}:{port} as {username}")

    def __repr__(self):
        return f"<SSHClient {self.username}@{self.host}:{self.port}>"

    def run(self, command):
        """Run *command* on a fresh session channel.

        stderr is merged into stdout. The channel is closed when the
        call returns, also on error.

        Returns:
            (exit_code, combined_output) tuple.
        """
        logger.debug(f"ssh {self.host}: {command}")
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise TransportError(f"ssh connection to {self.host} is not active")

        try:
            with contextlib.closing(transport.open_session()) as channel:
                channel.set_combine_stderr(True)
                channel.exec_command(command)
                output = channel.makefile("rb").read()
                exit_code = channel.recv_exit_status()
        except _CONNECT_ERRORS as e:
            raise TransportError(f"error while executing {command} over ssh: {e}") from e
        return exit_code, output.decode("utf-8", errors="replace")

    def open_sftp(self):
        """Open an SFTP session; the caller closes it."""
        try:
            return self._client.open_sftp()
        except _CONNECT_ERRORS as e:
            raise TransportError(f"sftp client initialization failed: {e}") from e

    def close(self):
        self._client.close()
