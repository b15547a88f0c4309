"""Hypervisor network manager: BIOS table attributes and interface objects."""

from __future__ import annotations

import logging
from typing import Any

from bmcnet.hyp_ethernet import HypEthInterface
from bmcnet.hyp_sys_config import BiosClient, BiosError, HypSysConfig

log = logging.getLogger(__name__)

INT_TYPE = "Integer"
STR_TYPE = "String"
ENUM_TYPE = "Enumeration"

DEFAULT_HYP_NW_OBJPATH = "/xyz/openbmc_project/network/hypervisor"

_ATTR_PREFIX = "vmi"
_TYPE_INDEX = 0
_CURRENT_VALUE_INDEX = 5


class HypNetworkMgr:
    """Holds the hypervisor's BIOS network attributes and its interface objects."""

    def __init__(self, client: BiosClient, path: str = DEFAULT_HYP_NW_OBJPATH) -> None:
        self.client = client
        self.path = path
        self.bios_table_attrs: dict[str, int | str] = {}
        self.interfaces: dict[str, HypEthInterface] = {}
        self.system_conf: HypSysConfig | None = None

    def set_bios_table_attr(
        self, attr_name: str, attr_value: int | str, attr_type: str
    ) -> None:
        """Update a known attribute's value; unknown attributes are left out."""
        if attr_name not in self.bios_table_attrs:
            log.info(
                "set_bios_table_attr: Attribute %s is not found in biosTableAttrs",
                attr_name,
            )
            return
        current = self.bios_table_attrs[attr_name]
        if attr_type == INT_TYPE:
            expected: type = int
        elif attr_type == STR_TYPE:
            expected = str
        else:
            return
        if not isinstance(attr_value, expected) or isinstance(attr_value, bool):
            raise TypeError(f"Value of {attr_name} is not of type {attr_type}")
        if not isinstance(current, expected):
            raise TypeError(f"Stored value of {attr_name} is not of type {attr_type}")
        if attr_value != current:
            self.bios_table_attrs[attr_name] = attr_value

    def set_default_bios_table_attrs_on_intf(self, intf: str) -> None:
        """Add the default IPv4 attributes of an interface where missing."""
        defaults: dict[str, int | str] = {
            f"vmi_{intf}_ipv4_ipaddr": "0.0.0.0",
            f"vmi_{intf}_ipv4_gateway": "0.0.0.0",
            f"vmi_{intf}_ipv4_prefix_length": 0,
            f"vmi_{intf}_ipv4_method": "IPv4Static",
        }
        for name, value in defaults.items():
            self.bios_table_attrs.setdefault(name, value)

    def set_default_hostname_in_bios_table_attrs(self) -> None:
        """Add an empty hostname attribute if there is none."""
        self.bios_table_attrs.setdefault("vmi_hostname", "")

    def load_bios_table_attrs(self) -> None:
        """Read the hypervisor attributes from the base BIOS table."""
        try:
            table = self.client.base_bios_table()
        except BiosError as exc:
            log.error("Error in reading the BIOS table")
            raise RuntimeError("DBus call failed") from exc

        if not table:
            log.error("BaseBiosTable is empty. No attributes found!")
            return

        for name, fields in table:
            if not name.startswith(_ATTR_PREFIX):
                continue
            item_type: str = fields[_TYPE_INDEX]
            current: Any = fields[_CURRENT_VALUE_INDEX]
            if item_type.endswith(INT_TYPE):
                if isinstance(current, int) and not isinstance(current, bool):
                    self.bios_table_attrs.setdefault(name, current)
            elif item_type.endswith(STR_TYPE) or item_type.endswith(ENUM_TYPE):
                if isinstance(current, str):
                    self.bios_table_attrs.setdefault(name, current)
            else:
                log.error("Unsupported datatype: The attribute is of unknown type")

    def create_if_objects(self) -> None:
        """Load the BIOS attributes and create the eth0 and eth1 objects."""
        self.load_bios_table_attrs()
        if not self.bios_table_attrs:
            self.set_default_hostname_in_bios_table_attrs()

        log.info("Creating eth0 and eth1 objects")
        for name in ("eth0", "eth1"):
            self.interfaces.setdefault(
                name, HypEthInterface(f"{self.path}/{name}", name, self)
            )

    def create_sys_conf_obj(self) -> HypSysConfig:
        """Create (or replace) the system configuration object."""
        self.system_conf = HypSysConfig(self.client, f"{self.path}/config", self)
        return self.system_conf