"""Shared pytest fixtures and transport fakes for all test modules."""

import io
import os
import stat
import subprocess
import sys
from types import SimpleNamespace

import pytest

import winvm.redact as redact_module
from winvm.config import SessionConfig
from winvm.errors import TransportError
from winvm.provisioning.cloud import CloudProvider
from winvm.provisioning.types import Credentials

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


# ── Fake WinRM ──────────────────────────────────────────────────────


class FakeWinRM:
    """Stands in for WinRMClient.

    responses maps a command substring to (exit_code, stdout, stderr);
    the first matching entry wins. Substrings in fail_on raise TransportError.
    """

    def __init__(self, responses=None, fail_on=()):
        self.responses = dict(responses or {})
        self.fail_on = list(fail_on)
        self.commands = []

    def run(self, command):
        self.commands.append(command)
        for needle in self.fail_on:
            if needle in command:
                raise TransportError(f"error while executing {command} remotely: connection reset")
        for needle, response in self.responses.items():
            if needle in command:
                return response
        return 0, "", ""


# ── Fake SFTP / SSH ─────────────────────────────────────────────────


def _norm(path):
    return path.replace("/", "\\").rstrip("\\")


class _RemoteFile(io.BytesIO):
    def __init__(self, sftp, path, data=b"", fail_read=False):
        super().__init__(data)
        self._sftp = sftp
        self._path = path
        self._fail_read = fail_read

    def read(self, size=-1):
        if self._fail_read:
            raise OSError(f"connection lost while reading {self._path}")
        return super().read(size)

    def close(self):
        if not self.closed:
            self._sftp.files[self._path] = self.getvalue()
            self._sftp.closed_handles.append(self._path)
        super().close()


class FakeSFTP:
    """In-memory SFTP tree keyed by backslash-normalised paths."""

    def __init__(self, files=None, dirs=(), fail_open=(), fail_read=()):
        self.files = {_norm(p): data for p, data in (files or {}).items()}
        self.dirs = {_norm(d) for d in dirs}
        for path in self.files:
            self._add_parents(path)
        self.fail_open = set(fail_open)
        self.fail_read = set(fail_read)
        self.closed = False
        self.closed_handles = []

    def _add_parents(self, path):
        parts = path.split("\\")[:-1]
        for i in range(1, len(parts) + 1):
            self.dirs.add("\\".join(parts[:i]))

    def stat(self, path):
        path = _norm(path)
        if path in self.dirs:
            return SimpleNamespace(st_mode=stat.S_IFDIR | 0o755)
        if path in self.files:
            return SimpleNamespace(st_mode=stat.S_IFREG | 0o644)
        raise FileNotFoundError(2, f"No such file: {path}")

    def mkdir(self, path):
        self.dirs.add(_norm(path))

    def open(self, path, mode="r"):
        path = _norm(path)
        name = path.rsplit("\\", 1)[-1]
        if name in self.fail_open:
            raise PermissionError(13, f"Permission denied: {path}")
        if "w" in mode:
            parent = path.rsplit("\\", 1)[0]
            if parent not in self.dirs:
                raise FileNotFoundError(2, f"No such directory: {parent}")
            return _RemoteFile(self, path)
        if path not in self.files:
            raise FileNotFoundError(2, f"No such file: {path}")
        return _RemoteFile(self, path, self.files[path], fail_read=name in self.fail_read)

    def listdir_attr(self, path):
        path = _norm(path)
        if path not in self.dirs:
            raise FileNotFoundError(2, f"No such directory: {path}")
        entries = []
        for d in sorted(self.dirs):
            if d.rsplit("\\", 1)[0] == path and d != path:
                entries.append(SimpleNamespace(filename=d.rsplit("\\", 1)[-1], st_mode=stat.S_IFDIR | 0o755))
        for f in sorted(self.files):
            if f.rsplit("\\", 1)[0] == path:
                entries.append(SimpleNamespace(filename=f.rsplit("\\", 1)[-1], st_mode=stat.S_IFREG | 0o644))
        return entries

    def close(self):
        self.closed = True


class FakeSSH:
    """Stands in for SSHClient, sharing one FakeSFTP tree across sessions."""

    def __init__(self, sftp=None, responses=None, fail_close=False):
        self.sftp = sftp or FakeSFTP()
        self.responses = dict(responses or {})
        self.fail_close = fail_close
        self.commands = []
        self.closed = False
        self.sftp_sessions = 0

    def run(self, command):
        self.commands.append(command)
        for needle, response in self.responses.items():
            if needle in command:
                return response
        return 0, ""

    def open_sftp(self):
        self.sftp_sessions += 1
        self.sftp.closed = False
        return self.sftp

    def close(self):
        self.closed = True
        if self.fail_close:
            raise OSError("socket already closed")


# ── Fake provider ───────────────────────────────────────────────────


class FakeProvider(CloudProvider):
    def __init__(self, credentials=None, events=None, create_error=None, destroy_error=None):
        self.credentials = credentials or Credentials(ip_address="10.0.0.5", password="Secr3tPassw0rd!", instance_id="i-123")
        self.events = events if events is not None else []
        self.create_error = create_error
        self.destroy_error = destroy_error
        self.create_calls = 0
        self.destroy_calls = 0
        self.adopted = []

    def create_windows_vm(self):
        self.create_calls += 1
        self.events.append("create")
        if self.create_error:
            raise self.create_error
        return self.credentials

    def destroy_windows_vms(self):
        self.destroy_calls += 1
        self.events.append("destroy")
        if self.destroy_error:
            raise self.destroy_error

    def adopt(self, credentials):
        self.adopted.append(credentials)


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def config():
    """Session config with a fast readiness poll."""
    return SessionConfig(readiness_retries=3, readiness_interval=0)


@pytest.fixture
def credentials():
    return Credentials(ip_address="10.0.0.5", password="Secr3tPassw0rd!", instance_id="i-123")


@pytest.fixture
def events():
    """Ordered log of provider and transport calls."""
    return []


@pytest.fixture
def fake_provider(events):
    return FakeProvider(events=events)


@pytest.fixture
def fake_sftp():
    return FakeSFTP()


@pytest.fixture
def fake_ssh(fake_sftp):
    return FakeSSH(sftp=fake_sftp)


@pytest.fixture
def transports(events, fake_sftp):
    """Factories for fake WinRM/SSH clients plus the instances they built."""
    built = SimpleNamespace(winrm=[], ssh=[], winrm_responses={"Get-Service": (0, SERVICES_OUTPUT, "")})

    def winrm_factory(creds, cfg):
        events.append("winrm")
        client = FakeWinRM(responses=built.winrm_responses)
        built.winrm.append(client)
        return client

    def ssh_factory(creds, cfg):
        events.append("ssh")
        client = FakeSSH(sftp=fake_sftp)
        built.ssh.append(client)
        return client

    built.winrm_factory = winrm_factory
    built.ssh_factory = ssh_factory
    return built


@pytest.fixture(autouse=True)
def _reset_redaction():
    """Keep runtime-registered secrets from leaking between tests."""
    yield
    redact_module._registered.clear()
    redact_module._pattern = None


@pytest.fixture(scope="session")
def run_cli():
    """Return a callable that invokes the winvm CLI as a subprocess."""

    def _run(*args, cwd=None):
        result = subprocess.run(
            [sys.executable, "-m", "winvm.winvm", *args],
            capture_output=True,
            text=True,
            cwd=cwd or PROJECT_ROOT,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


SERVICES_OUTPUT = """
Status   Name               DisplayName
------   ----               -----------
Stopped  ssh-agent          OpenSSH Authentication Agent
Stopped  sshd               OpenSSH SSH Server
"""
