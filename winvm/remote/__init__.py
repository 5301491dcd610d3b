"""Remote access to Windows VMs: WinRM and SSH transports, file transfer, sessions."""

from winvm.remote.session import RemoteSession, WindowsVM, new_windows_vm
from winvm.remote.transfer import FileResult

__all__ = [
    "FileResult",
    "RemoteSession",
    "WindowsVM",
    "new_windows_vm",
]
