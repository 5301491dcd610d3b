"""Commands against an existing VM: run, copy, retrieve."""

import logging
import sys

from winvm.commands import add_target_args, credentials_from_args, resolve_config
from winvm.errors import RemoteCommandError, WindowsVMError
from winvm.remote.session import RemoteSession

logger = logging.getLogger(__name__)


def _session_from_args(args):
    config = resolve_config(args.config)
    session = RemoteSession(config=config, credentials=credentials_from_args(args))
    session.provision()
    return session


# ── CLI handlers ───────────────────────────────────────────────────


def handle_run(args):
    """CLI handler for 'run'."""
    command = " ".join(args.cmd)
    try:
        with _session_from_args(args) as session:
            if args.ssh:
                session.reinitialize()
                output = session.run_over_ssh(command, powershell=args.powershell)
                stderr = ""
            else:
                session.connect_winrm()
                output, stderr = session.run(command, powershell=args.powershell)
    except RemoteCommandError as e:
        if e.stdout:
            logger.info(e.stdout.rstrip())
        if e.stderr:
            logger.error(e.stderr.rstrip())
        logger.error(f"Error: {e}")
        sys.exit(e.exit_code or 1)
    except (ValueError, WindowsVMError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    if output:
        logger.info(output.rstrip())
    if stderr:
        logger.error(stderr.rstrip())


def handle_copy(args):
    """CLI handler for 'copy'."""
    try:
        with _session_from_args(args) as session:
            session.reinitialize()
            remote_path = session.copy_file(args.local_path, args.remote_dir)
    except (ValueError, WindowsVMError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    logger.info(f"Copied {args.local_path} -> {remote_path}")


def handle_retrieve(args):
    """CLI handler for 'retrieve'."""
    try:
        with _session_from_args(args) as session:
            session.reinitialize()
            results = session.retrieve_files(args.remote_dir, args.local_dir)
    except (ValueError, WindowsVMError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    for result in results:
        status = "ok" if result.ok else f"FAILED ({result.error})"
        logger.info(f"  {result.name}: {status}")
    failed = [r for r in results if not r.ok]
    logger.info(f"Retrieved {len(results) - len(failed)}/{len(results)} file(s) into {args.local_dir}")
    if failed:
        sys.exit(1)


# ── Registration ───────────────────────────────────────────────────


def register_remote_commands(subparsers):
    """Register the run, copy and retrieve subcommands."""
    run_parser = subparsers.add_parser("run", help="Run a command on a Windows VM")
    add_target_args(run_parser)
    run_parser.add_argument("--powershell", action="store_true", help="Run the command through PowerShell")
    run_parser.add_argument("--ssh", action="store_true", help="Run over SSH (for commands that keep running in the background)")
    run_parser.add_argument("cmd", nargs="+", help="Command to run")
    run_parser.set_defaults(func=handle_run)

    copy_parser = subparsers.add_parser("copy", help="Copy a local file to a directory on a Windows VM")
    add_target_args(copy_parser)
    copy_parser.add_argument("local_path", help="Local file")
    copy_parser.add_argument("remote_dir", help="Remote directory, created if missing")
    copy_parser.set_defaults(func=handle_copy)

    retrieve_parser = subparsers.add_parser("retrieve", help="Retrieve the files of one remote directory")
    add_target_args(retrieve_parser)
    retrieve_parser.add_argument("remote_dir", help="Remote directory (subdirectories are skipped)")
    retrieve_parser.add_argument("local_dir", help="Local directory, created if missing")
    retrieve_parser.set_defaults(func=handle_retrieve)
