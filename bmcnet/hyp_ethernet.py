"""Hypervisor Ethernet interface state: DHCP and router advertisement settings."""

from __future__ import annotations

import enum
from typing import Any


class DHCPConf(enum.Enum):
    """Combined DHCP and router-advertisement configuration of an interface."""

    both = "both"
    v4v6stateless = "v4v6stateless"
    v6 = "v6"
    v6stateless = "v6stateless"
    v4 = "v4"
    none = "none"


class IPProtocol(enum.Enum):
    """Address family of an IP address."""

    IPv4 = "IPv4"
    IPv6 = "IPv6"


class HypEthInterface:
    """An Ethernet interface of the hypervisor, as seen from the BMC."""

    def __init__(self, path: str, interface_name: str, manager: Any) -> None:
        self.path = path
        self.interface_name = interface_name
        self.manager = manager
        self._dhcp4 = False
        self._dhcp6 = False
        self._ipv6_accept_ra = False

    def ip(
        self,
        address_type: IPProtocol,
        ip_address: str,
        prefix_length: int,
        gateway: str,
    ) -> str:
        """Check the address family and return the new address's object path.

        No address object is created for the hypervisor, so the path is empty.
        """
        protocol = IPProtocol(address_type)
        created_path = ""
        if protocol is IPProtocol.IPv6 or protocol is IPProtocol.IPv4:
            return created_path
        raise ValueError(f"Unknown protocol: {address_type!r}")

    def get_bios_attrs_map(self) -> dict[str, int | str]:
        """Return a copy of the manager's BIOS table attributes."""
        return dict(self.manager.bios_table_attrs)

    @property
    def dhcp4(self) -> bool:
        """Whether DHCPv4 is enabled."""
        return self._dhcp4

    @dhcp4.setter
    def dhcp4(self, value: bool) -> None:
        self._dhcp4 = bool(value)

    @property
    def dhcp6(self) -> bool:
        """Whether DHCPv6 is enabled."""
        return self._dhcp6

    @dhcp6.setter
    def dhcp6(self, value: bool) -> None:
        self._dhcp6 = bool(value)

    @property
    def ipv6_accept_ra(self) -> bool:
        """Whether IPv6 router advertisements are accepted."""
        return self._ipv6_accept_ra

    @ipv6_accept_ra.setter
    def ipv6_accept_ra(self, value: bool) -> None:
        self._ipv6_accept_ra = bool(value)

    @property
    def dhcp_enabled(self) -> DHCPConf:
        """The DHCP configuration derived from the individual flags."""
        if self._dhcp6:
            return DHCPConf.both if self._dhcp4 else DHCPConf.v6
        if self._dhcp4:
            return DHCPConf.v4v6stateless if self._ipv6_accept_ra else DHCPConf.v4
        return DHCPConf.v6stateless if self._ipv6_accept_ra else DHCPConf.none

    @dhcp_enabled.setter
    def dhcp_enabled(self, value: DHCPConf) -> None:
        value = DHCPConf(value)
        self._dhcp4 = value in (DHCPConf.v4, DHCPConf.v4v6stateless, DHCPConf.both)
        self._dhcp6 = value in (DHCPConf.v6, DHCPConf.both)
        self._ipv6_accept_ra = value in (
            DHCPConf.v6stateless,
            DHCPConf.v4v6stateless,
            DHCPConf.v6,
            DHCPConf.both,
        )

    def dhcp_is_enabled(self, family: IPProtocol) -> bool:
        """Whether DHCP is active for the given address family."""
        if family is IPProtocol.IPv6:
            return self._dhcp6
        if family is IPProtocol.IPv4:
            return self._dhcp4
        raise ValueError(f"Unknown protocol: {family!r}")