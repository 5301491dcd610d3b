"""CLI logging: plain message output to stdout with secrets masked."""

import logging
import sys

from winvm.redact import SecretRedactingFilter


def setup_cli_logging(verbose=False):
    """Configure root logger with plain message format for CLI commands.

    Secrets are redacted from every record. paramiko is kept at WARNING
    unless verbose is set, its transport chatter is not useful otherwise.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    root.addFilter(SecretRedactingFilter())

    if not verbose:
        logging.getLogger("paramiko").setLevel(logging.WARNING)
