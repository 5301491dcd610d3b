#!/usr/bin/env python3
"""Windows VM test harness CLI entrypoint."""

import argparse

from winvm.commands.remote import register_remote_commands
from winvm.commands.vm import register_vm_command
from winvm.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Provision and drive Windows VMs for end-to-end tests")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging, including transports")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_vm_command(subparsers)
    register_remote_commands(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
