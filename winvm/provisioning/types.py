"""Shared data types for VM providers."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Credentials:
    """Connection details for a Windows VM, as returned by a provider.

    port_mappings maps a port inside the VM to the externally reachable
    port, for providers that NAT their instances. Empty when the VM is
    reachable directly.
    """

    ip_address: str
    password: str
    instance_id: str | None = None
    port_mappings: dict[int, int] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        """True when both the address and the password are set."""
        return bool(self.ip_address) and bool(self.password)

    def port_for(self, internal_port: int) -> int:
        """Externally reachable port for a port inside the VM."""
        return self.port_mappings.get(internal_port, internal_port)

    def __repr__(self) -> str:
        return f"Credentials(ip_address={self.ip_address!r}, instance_id={self.instance_id!r}, password=***)"
