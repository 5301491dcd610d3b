"""Secret redaction for log records and echoed remote commands.

Secrets come from environment variables (API key, VM password given to the
CLI) and from values registered at runtime, such as the password a provider
returns for a freshly created VM.
"""

import logging
import os
import re

_SECRET_ENV_VARS = [
    "CLOUDRIFT_API_KEY",
    "WINVM_PASSWORD",
]

# Shorter values would mask ordinary words in command output
_MIN_SECRET_LENGTH = 8

MASK = "***"

_NEVER = re.compile(r"(?!)")

_registered: set[str] = set()

# Compiled lazily, reset whenever a secret is registered
_pattern: re.Pattern | None = None


def _secret_values() -> set[str]:
    values = {os.environ.get(var, "") for var in _SECRET_ENV_VARS} | _registered
    return {v for v in values if len(v) >= _MIN_SECRET_LENGTH}


def _compiled() -> re.Pattern:
    """One alternation over all known secrets, longest first."""
    global _pattern
    if _pattern is None:
        values = sorted(_secret_values(), key=len, reverse=True)
        _pattern = re.compile("|".join(re.escape(v) for v in values)) if values else _NEVER
    return _pattern


def register_secret(value: str) -> None:
    """Mask *value* from now on, e.g. the password of a provisioned VM."""
    global _pattern
    if not value or len(value) < _MIN_SECRET_LENGTH or value in _registered:
        return
    _registered.add(value)
    _pattern = None


def redact_secrets(text: str) -> str:
    return _compiled().sub(MASK, text)


def _mask(pattern, value):
    return pattern.sub(MASK, value) if isinstance(value, str) else value


class SecretRedactingFilter(logging.Filter):
    """Mask secrets in a record's message and in its string arguments.

    setup_cli_logging() installs it on the stdout handler, which sees
    records from every logger, and on the root logger.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        pattern = _compiled()
        if pattern is _NEVER:
            return True
        record.msg = pattern.sub(MASK, str(record.msg))
        if isinstance(record.args, dict):
            record.args = {k: _mask(pattern, v) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_mask(pattern, a) for a in record.args)
        return True
