"""Tests for winvm.redact and the CLI logging setup that applies it."""

import logging

import pytest

import winvm.redact as redact_module
from winvm.logging_setup import setup_cli_logging
from winvm.redact import SecretRedactingFilter, redact_secrets, register_secret


def _reset_cache():
    """Reset the module-level pattern cache so env changes take effect."""
    redact_module._pattern = None


# ── redact_secrets ──────────────────────────────────────────────


def test_redact_secrets_replaces_value(monkeypatch):
    monkeypatch.setenv("WINVM_PASSWORD", "Adm1nSuperSecret")
    _reset_cache()

    text = "Connecting as Administrator with Adm1nSuperSecret"
    assert redact_secrets(text) == "Connecting as Administrator with ***"

    _reset_cache()


def test_redact_secrets_short_values_ignored(monkeypatch):
    monkeypatch.setenv("WINVM_PASSWORD", "short")
    _reset_cache()

    text = "Password is short and should not be redacted"
    assert redact_secrets(text) == text

    _reset_cache()


def test_redact_secrets_no_env_vars(monkeypatch):
    for var in redact_module._SECRET_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    _reset_cache()

    text = "Nothing secret here"
    assert redact_secrets(text) == text

    _reset_cache()


def test_redact_secrets_multiple_values(monkeypatch):
    monkeypatch.setenv("WINVM_PASSWORD", "pw_TokenAAAA")
    monkeypatch.setenv("CLOUDRIFT_API_KEY", "cr_key_BBBB_long_enough")
    _reset_cache()

    text = "PW=pw_TokenAAAA CR=cr_key_BBBB_long_enough done"
    result = redact_secrets(text)
    assert "pw_TokenAAAA" not in result
    assert "cr_key_BBBB_long_enough" not in result
    assert result == "PW=*** CR=*** done"

    _reset_cache()


# ── register_secret ─────────────────────────────────────────────


def test_register_secret_redacts_runtime_value(monkeypatch):
    for var in redact_module._SECRET_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    _reset_cache()
    assert redact_secrets("pw=Runtime-Passw0rd") == "pw=Runtime-Passw0rd"

    register_secret("Runtime-Passw0rd")

    assert redact_secrets("pw=Runtime-Passw0rd") == "pw=***"


def test_register_secret_ignores_short_and_empty():
    register_secret("")
    register_secret("abc")
    assert redact_module._registered == set()


# ── SecretRedactingFilter ───────────────────────────────────────


def test_secret_redacting_filter(monkeypatch):
    monkeypatch.setenv("CLOUDRIFT_API_KEY", "cr_FilterTestKey99")
    _reset_cache()

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Using key cr_FilterTestKey99",
        args=None,
        exc_info=None,
    )
    filt.filter(record)
    assert record.msg == "Using key ***"

    _reset_cache()


def test_secret_redacting_filter_with_args(monkeypatch):
    monkeypatch.setenv("CLOUDRIFT_API_KEY", "cr_ArgsTestKey88")
    _reset_cache()

    filt = SecretRedactingFilter()
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Key: %s",
        args=("cr_ArgsTestKey88",),
        exc_info=None,
    )
    filt.filter(record)
    assert record.args == ("***",)

    _reset_cache()


# ── setup_cli_logging ───────────────────────────────────────────


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    paramiko_level = logging.getLogger("paramiko").level
    yield
    root.setLevel(level)
    for handler in list(root.handlers):
        if any(isinstance(f, SecretRedactingFilter) for f in handler.filters):
            root.removeHandler(handler)
    root.filters[:] = [f for f in root.filters if not isinstance(f, SecretRedactingFilter)]
    logging.getLogger("paramiko").setLevel(paramiko_level)


def test_cli_logging_redacts_registered_password(restore_root_logger, capsys):
    setup_cli_logging()
    register_secret("Vm-Passw0rd-123")

    logging.getLogger("winvm.test").info("connecting with Vm-Passw0rd-123")
    logging.getLogger("winvm.test").debug("hidden at INFO level")

    out = capsys.readouterr().out
    assert out == "connecting with ***\n"
    assert logging.getLogger("paramiko").level == logging.WARNING


def test_cli_logging_verbose(restore_root_logger):
    setup_cli_logging(verbose=True)
    assert logging.getLogger().level == logging.DEBUG
