"""SFTP file transfer: push one file to the VM, pull one directory level back."""

import contextlib
import logging
import os
import re
import shutil
import stat
from dataclasses import dataclass

import paramiko

from winvm.errors import TransferError, TransportError

logger = logging.getLogger(__name__)

# Largest payload paramiko puts in a single SFTP write
CHUNK_SIZE = 32768

_SFTP_ERRORS = (OSError, paramiko.SSHException)
_SEPARATORS = re.compile(r"[\\/]+")


@dataclass
class FileResult:
    """Outcome of pulling one remote file."""

    name: str
    local_path: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def remote_join(remote_dir, name):
    """Join a remote directory and a file name.

    Windows separators are used unless the directory is written with
    forward slashes only.
    """
    sep = "/" if "/" in remote_dir and "\\" not in remote_dir else "\\"
    return remote_dir.rstrip("\\/") + sep + name


def mkdir_all(sftp, remote_dir):
    """Create *remote_dir* and any missing parents (mkdir -p)."""
    sep = "/" if "/" in remote_dir and "\\" not in remote_dir else "\\"
    prefix = sep if remote_dir[:1] in ("/", "\\") else ""
    current = ""
    for part in _SEPARATORS.split(remote_dir):
        if not part:
            continue
        current = f"{current}{sep}{part}" if current else f"{prefix}{part}"
        # Drive roots (C:) always exist
        if part.endswith(":") and current == f"{prefix}{part}":
            continue
        try:
            attrs = sftp.stat(current)
        except FileNotFoundError:
            sftp.mkdir(current)
            continue
        if attrs.st_mode is not None and not stat.S_ISDIR(attrs.st_mode):
            raise NotADirectoryError(f"{current} exists and is not a directory")


def _open_sftp(ssh):
    try:
        return ssh.open_sftp()
    except TransportError as e:
        raise TransferError(str(e)) from e


def copy_file(ssh, local_path, remote_dir):
    """Copy *local_path* into *remote_dir* on the VM, creating the directory if needed.

    The remote handle is closed before returning so that a binary just
    copied can be executed right away. A failed copy is not cleaned up.

    Returns:
        The remote path of the copied file.
    """
    sftp = _open_sftp(ssh)
    with contextlib.closing(sftp):
        try:
            src = open(local_path, "rb")
        except OSError as e:
            raise TransferError(f"error opening {local_path} file to be transferred: {e}") from e

        with src:
            try:
                mkdir_all(sftp, remote_dir)
            except _SFTP_ERRORS as e:
                raise TransferError(f"error creating remote directory {remote_dir}: {e}") from e

            remote_path = remote_join(remote_dir, os.path.basename(local_path))
            try:
                dst = sftp.open(remote_path, "wb")
            except _SFTP_ERRORS as e:
                raise TransferError(f"error initializing {remote_path} file on Windows VM: {e}") from e

            try:
                shutil.copyfileobj(src, dst, CHUNK_SIZE)
            except _SFTP_ERRORS as e:
                raise TransferError(f"error copying {local_path} to the Windows VM: {e}") from e
            finally:
                dst.close()

    logger.debug(f"Copied {local_path} -> {remote_path}")
    return remote_path


def _retrieve_one(sftp, remote_dir, name, local_dir):
    local_path = os.path.join(local_dir, name)
    remote_path = remote_join(remote_dir, name)
    try:
        with open(local_path, "wb") as dst, sftp.open(remote_path, "rb") as src:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)
            dst.flush()
            os.fsync(dst.fileno())
    except _SFTP_ERRORS as e:
        logger.error(f"error retrieving file {name} from Windows VM: {e}")
        return FileResult(name=name, local_path=local_path, error=str(e) or type(e).__name__)
    return FileResult(name=name, local_path=local_path)


def retrieve_files(ssh, remote_dir, local_dir):
    """Pull every file directly inside *remote_dir* into *local_dir*.

    Best effort: a file that fails is logged, recorded in the result and
    skipped. Subdirectories are not descended into; pull each level
    separately. Only SFTP setup and listing *remote_dir* are fatal.

    Returns:
        list of FileResult, one per remote file.
    """
    try:
        os.makedirs(local_dir, exist_ok=True)
    except OSError as e:
        logger.error(f"could not create {local_dir}: {e}")

    sftp = _open_sftp(ssh)
    with contextlib.closing(sftp):
        try:
            entries = sftp.listdir_attr(remote_dir)
        except _SFTP_ERRORS as e:
            raise TransferError(f"error listing remote directory {remote_dir}: {e}") from e

        results = []
        for entry in entries:
            if entry.st_mode is not None and stat.S_ISDIR(entry.st_mode):
                continue
            results.append(_retrieve_one(sftp, remote_dir, entry.filename, local_dir))

    failed = [r.name for r in results if not r.ok]
    if failed:
        logger.warning(f"Retrieved {len(results) - len(failed)}/{len(results)} file(s) from {remote_dir}, failed: {', '.join(failed)}")
    return results
