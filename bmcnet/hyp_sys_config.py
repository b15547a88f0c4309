"""Hypervisor system configuration kept in the BIOS attribute table."""

from __future__ import annotations

import logging
from typing import Any, Mapping

log = logging.getLogger(__name__)

HOSTNAME_ATTRIBUTE = "vmi_hostname"


class BiosError(Exception):
    """Raised when a BIOS attribute cannot be read or written."""


class BiosClient:
    """Access to the BIOS configuration attributes.

    Attributes are held as name -> (type, current value, default value).
    """

    def __init__(
        self, attributes: Mapping[str, tuple[str, int | str, int | str]] | None = None
    ) -> None:
        self._attributes: dict[str, tuple[str, int | str, int | str]] = dict(
            attributes or {}
        )

    def get_attribute(self, name: str) -> tuple[str, int | str, int | str]:
        """Return (type, current value, default value) of an attribute."""
        try:
            return self._attributes[name]
        except KeyError:
            raise BiosError(f"No such BIOS attribute: {name}") from None

    def set_attribute(self, name: str, value: int | str) -> None:
        """Change the current value of an existing attribute."""
        try:
            attr_type, _, default = self._attributes[name]
        except KeyError:
            raise BiosError(f"No such BIOS attribute: {name}") from None
        self._attributes[name] = (attr_type, value, default)

    def base_bios_table(self) -> list[tuple[str, tuple[Any, ...]]]:
        """Return the attribute table in base-table layout."""
        return [
            (name, (attr_type, False, name, "", "", current, default, []))
            for name, (attr_type, current, default) in self._attributes.items()
        ]


class HypSysConfig:
    """Hostname of the hypervisor, mirrored to the BIOS table."""

    def __init__(self, client: BiosClient, path: str, manager: Any) -> None:
        self.client = client
        self.path = path
        self.manager = manager
        self._host_name = ""

    @property
    def host_name(self) -> str:
        """The hypervisor hostname."""
        return self._host_name

    @host_name.setter
    def host_name(self, name: str) -> None:
        if name == self._host_name:
            return
        self._host_name = name
        self._set_host_name_in_bios(name)

    def set_host_name(self) -> None:
        """Load the hostname from the BIOS table."""
        self._host_name = self._get_host_name_from_bios()

    def _get_host_name_from_bios(self) -> str:
        try:
            _, current, _ = self.client.get_attribute(HOSTNAME_ATTRIBUTE)
        except BiosError as exc:
            log.error("Failed to get the hostname from bios table: %s", exc)
            return ""
        if not isinstance(current, str):
            raise TypeError(f"{HOSTNAME_ATTRIBUTE} is not a string attribute")
        return current

    def _set_host_name_in_bios(self, name: str) -> None:
        self.client.set_attribute(HOSTNAME_ATTRIBUTE, name)