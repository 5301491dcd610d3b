"""Session configuration: transport settings and provider selection."""

import logging
import os
from dataclasses import dataclass, field, fields

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "winvm.yaml"

# Prefix for every remote PowerShell command run on the Windows VM
POWERSHELL_PREFIX = "powershell.exe -NonInteractive -ExecutionPolicy Bypass "


@dataclass
class SessionConfig:
    """Settings shared by the WinRM and SSH transports of a session."""

    username: str = "Administrator"

    winrm_port: int = 5986
    winrm_use_tls: bool = True
    winrm_insecure: bool = True
    winrm_transport: str = "basic"
    # High because the Windows Server image is slow to come up
    winrm_timeout: int = 600

    ssh_port: int = 22
    ssh_timeout: int = 60

    powershell_prefix: str = POWERSHELL_PREFIX

    readiness_retries: int = 12
    readiness_interval: int = 5

    provider: str = "cloudrift"
    provider_options: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d):
        """Build a SessionConfig from a mapping, rejecting unknown keys."""
        if d is None:
            return cls()
        if not isinstance(d, dict):
            raise ValueError(f"Config must be a mapping, got {type(d).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        config = cls(**d)
        config.validate()
        return config

    def validate(self):
        """Raise ValueError for settings no transport could use."""
        if not self.username:
            raise ValueError("username must not be empty")
        for name in ("winrm_port", "ssh_port"):
            port = getattr(self, name)
            if not 0 < port < 65536:
                raise ValueError(f"{name} out of range: {port}")
        if self.winrm_timeout <= 0 or self.ssh_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if self.readiness_retries < 1:
            raise ValueError("readiness_retries must be at least 1")


def _expand_path(path: str) -> str:
    """Expand user home directory and environment variables in path."""
    return os.path.expanduser(os.path.expandvars(path))


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> SessionConfig:
    """Load a SessionConfig from a YAML file.

    An empty file yields the defaults.
    """
    config_path = _expand_path(config_path)
    if not os.path.isfile(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML config {config_path}: {e}") from e

    logger.debug(f"Loaded config from {config_path}")
    return SessionConfig.from_dict(raw)
