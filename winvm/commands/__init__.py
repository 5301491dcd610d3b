"""CLI command helpers shared by the vm and remote subcommands."""

import json
import logging
import os
import sys
from pathlib import Path

from winvm.config import DEFAULT_CONFIG_PATH, SessionConfig, load_config
from winvm.provisioning.types import Credentials

logger = logging.getLogger(__name__)


def resolve_config(config_path):
    """Load the config file if given or present in the working directory."""
    if config_path:
        return load_config(config_path)
    if os.path.isfile(DEFAULT_CONFIG_PATH):
        return load_config(DEFAULT_CONFIG_PATH)
    return SessionConfig()


def save_credentials(path, credentials: Credentials):
    """Write credentials to a JSON file readable by load_credentials()."""
    data = {
        "ip_address": credentials.ip_address,
        "password": credentials.password,
        "instance_id": credentials.instance_id,
        "port_mappings": {str(k): v for k, v in credentials.port_mappings.items()},
    }
    path = Path(path)
    path.write_text(json.dumps(data, indent=2))
    path.chmod(0o600)


def load_credentials(path) -> Credentials:
    """Read credentials written by save_credentials()."""
    data = json.loads(Path(path).read_text())
    return Credentials(
        ip_address=data.get("ip_address", ""),
        password=data.get("password", ""),
        instance_id=data.get("instance_id"),
        port_mappings={int(k): int(v) for k, v in (data.get("port_mappings") or {}).items()},
    )


def credentials_from_args(args) -> Credentials:
    """Credentials from --credentials FILE, or --host plus --password / WINVM_PASSWORD.

    Exits with status 1 if neither is usable.
    """
    if args.credentials:
        return load_credentials(args.credentials)
    password = args.password or os.environ.get("WINVM_PASSWORD", "")
    if not args.host or not password:
        logger.error("Error: use --credentials FILE, or --host with --password (fallback: WINVM_PASSWORD env var).")
        sys.exit(1)
    return Credentials(ip_address=args.host, password=password)


def add_config_arg(parser):
    parser.add_argument(
        "--config",
        default=None,
        help=f"Session config YAML (default: ./{DEFAULT_CONFIG_PATH} if present)",
    )


def add_target_args(parser):
    """Arguments selecting an existing VM."""
    add_config_arg(parser)
    parser.add_argument("--credentials", default=None, help="Credentials JSON written by 'vm create --output'")
    parser.add_argument("--host", default=None, help="VM IP address")
    parser.add_argument("--password", default=None, help="VM password (fallback: WINVM_PASSWORD env var)")
