"""VM lifecycle commands: create and destroy Windows VMs."""

import logging
import sys

from winvm.commands import add_config_arg, load_credentials, resolve_config, save_credentials
from winvm.errors import SessionSetupError, WindowsVMError
from winvm.provisioning.cloud import create_provider
from winvm.remote.session import RemoteSession, new_windows_vm

logger = logging.getLogger(__name__)


# ── CLI handlers ───────────────────────────────────────────────────


def handle_create(args):
    """CLI handler for 'vm create'."""
    config = resolve_config(args.config)

    if args.dry_run:
        provider = create_provider(config, args.image_id, args.instance_type, dry_run=True)
        provider.create_windows_vm()
        return

    try:
        session = new_windows_vm(
            args.image_id,
            args.instance_type,
            skip_setup=args.skip_setup,
            config=config,
        )
    except SessionSetupError as e:
        logger.error(f"Error: {e}")
        if not args.keep_on_error:
            logger.info("Destroying the partially set up VM...")
            try:
                e.session.destroy()
            except WindowsVMError as destroy_err:
                logger.error(f"Error destroying VM: {destroy_err}")
        sys.exit(1)
    except (ValueError, WindowsVMError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    credentials = session.credentials
    logger.info(f"Host:        {credentials.ip_address}")
    logger.info(f"Instance ID: {credentials.instance_id}")
    if args.output:
        save_credentials(args.output, credentials)
        logger.info(f"Credentials written to {args.output}")
    session.close()


def handle_destroy(args):
    """CLI handler for 'vm destroy'."""
    config = resolve_config(args.config)
    try:
        credentials = load_credentials(args.credentials)
        provider = create_provider(config, None, None, dry_run=args.dry_run)
        session = RemoteSession(config=config, provider=provider, credentials=credentials)
        session.provision()
        session.destroy()
    except (OSError, ValueError, WindowsVMError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    logger.info("VM destroyed.")


# ── Registration ───────────────────────────────────────────────────


def register_vm_command(subparsers):
    """Register the 'vm' command with create/destroy action subparsers."""
    vm_parser = subparsers.add_parser("vm", help="Manage Windows VM instances")
    action_subparsers = vm_parser.add_subparsers(dest="action", required=True)

    create_parser = action_subparsers.add_parser("create", help="Create and set up a Windows VM")
    add_config_arg(create_parser)
    create_parser.add_argument("--image-id", required=True, help="VM image to boot")
    create_parser.add_argument("--instance-type", required=True, help="Instance type / size")
    create_parser.add_argument("--skip-setup", action="store_true", help="Skip OpenSSH server configuration")
    create_parser.add_argument("--output", default=None, help="Write credentials JSON to this path")
    create_parser.add_argument("--keep-on-error", action="store_true", help="Do not destroy the VM if setup fails")
    create_parser.add_argument("--dry-run", action="store_true", help="Print provider requests without executing")
    create_parser.set_defaults(func=handle_create)

    destroy_parser = action_subparsers.add_parser("destroy", help="Destroy a Windows VM")
    add_config_arg(destroy_parser)
    destroy_parser.add_argument("--credentials", required=True, help="Credentials JSON written by 'vm create --output'")
    destroy_parser.add_argument("--dry-run", action="store_true", help="Print provider requests without executing")
    destroy_parser.set_defaults(func=handle_destroy)
