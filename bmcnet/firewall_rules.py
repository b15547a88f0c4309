"""Firewall rule model: building iptables arguments and parsing saved rules."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass
from typing import Iterable

SYSTEM_IPTABLES_DIR = "/etc/iptables"
CUSTOM_IPTABLES_DIR = "/etc/interface/iptables"
TEMP_DIR = "/tmp"
IPTABLES_RULES = "iptables.rules"
IP6TABLES_RULES = "ip6tables.rules"

MAX_PORT_NUM = 65535
MAX_RULE_NUM = 64

IPTABLES = "iptables"
IP6TABLES = "ip6tables"


class Target(enum.Enum):
    """What a matching packet is subjected to."""

    ACCEPT = "ACCEPT"
    DROP = "DROP"


class Protocol(enum.Enum):
    """Protocol a rule matches on."""

    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    ALL = "ALL"


class IPVersion(enum.Enum):
    """Address family (or both) a request applies to."""

    IPV4 = "IPv4"
    IPV6 = "IPv6"
    BOTH = "BOTH"


class ControlBit(enum.IntFlag):
    """Bits telling which fields of a rule are in effect."""

    PROTOCOL = 0x01
    IP = 0x02
    PORT = 0x04
    MAC = 0x08
    TIMEOUT = 0x10


class FirewallError(Exception):
    """Raised when a rule is invalid or an operation fails."""


@dataclass
class FirewallRule:
    """One firewall rule as exchanged with clients."""

    target: Target = Target.ACCEPT
    control: int = 0
    protocol: Protocol = Protocol.ALL
    start_ip: str = ""
    end_ip: str = ""
    start_port: int = 0
    end_port: int = 0
    mac: str = ""
    start_time: str = ""
    stop_time: str = ""
    preload: bool = False

    def uses(self, bit: ControlBit) -> bool:
        """Whether the given control bit is set."""
        return bool(self.control & bit)


def protocol_name(protocol: Protocol, ipv6: bool) -> str:
    """Name of the protocol as iptables or ip6tables expects it."""
    if protocol is Protocol.TCP:
        return "tcp"
    if protocol is Protocol.UDP:
        return "udp"
    if protocol is Protocol.ICMP:
        return "icmpv6" if ipv6 else "icmp"
    return "all"


def _check_control(control: int) -> None:
    selectors = ControlBit.IP | ControlBit.MAC | ControlBit.PORT | ControlBit.PROTOCOL
    if control > ControlBit.TIMEOUT and not control & selectors:
        raise FirewallError(f"Invalid control bits: {control:#x}")


def _check_range_types(start_ip: str, end_ip: str) -> None:
    if not end_ip:
        return
    both_not_v6 = ":" not in start_ip and ":" not in end_ip
    both_not_v4 = "." not in start_ip and "." not in end_ip
    if not (both_not_v6 or both_not_v4):
        raise FirewallError(
            "Type of IP Range are different. "
            f"Start IP Address: {start_ip} End IP Address: {end_ip}"
        )


def _parse_address(text: str, ipv6: bool) -> int:
    try:
        if ipv6:
            return int(ipaddress.IPv6Address(text))
        return int(ipaddress.IPv4Address(text))
    except ValueError as exc:
        raise FirewallError(f"Invalid IP address: {text}") from exc


def _words(value: int) -> list[int]:
    return [(value >> shift) & 0xFFFFFFFF for shift in (96, 64, 32, 0)]


def _range_error(start_ip: str, end_ip: str) -> FirewallError:
    return FirewallError(
        f"Incorrect IP Range. Start IP Address: {start_ip} End IP Address: {end_ip}"
    )


def _address_params(rule: FirewallRule) -> str:
    start_ip, end_ip = rule.start_ip, rule.end_ip
    first: tuple[int, int] | None = None
    second: tuple[int, int] | None = None
    if ":" in start_ip and ":" in end_ip:
        first = (6, _parse_address(start_ip, True))
        second = (6, _parse_address(end_ip, True))
        if any(a > b for a, b in zip(_words(first[1]), _words(second[1]))):
            raise _range_error(start_ip, end_ip)
    elif "." in start_ip and "." in end_ip:
        first = (4, _parse_address(start_ip, False))
        second = (4, _parse_address(end_ip, False))
        if first[1] > second[1]:
            raise _range_error(start_ip, end_ip)

    if not end_ip or first == second:
        return f" -s {start_ip}"
    return f" -m iprange --src-range {start_ip}-{end_ip} "


def _build_params(rule: FirewallRule, action: str, strict: bool) -> str:
    params = f"{action} INPUT -j {'ACCEPT' if rule.target is Target.ACCEPT else 'DROP'}"

    if rule.uses(ControlBit.PROTOCOL):
        params += " -p " + protocol_name(rule.protocol, ":" in rule.start_ip)

    if rule.uses(ControlBit.IP):
        params += _address_params(rule)

    if rule.uses(ControlBit.PORT):
        if (
            not rule.uses(ControlBit.PROTOCOL)
            or rule.protocol is Protocol.ICMP
            or (strict and rule.start_port == 0)
        ):
            raise FirewallError("Port filtering needs a TCP/UDP protocol and port")
        end_port = rule.end_port if rule.end_port != 0 else MAX_PORT_NUM
        params += f" --dport {rule.start_port}:{end_port} "

    if rule.uses(ControlBit.MAC):
        params += " -m mac --mac-source " + rule.mac

    if rule.uses(ControlBit.TIMEOUT):
        if strict and (not rule.start_time or not rule.stop_time):
            raise FirewallError("Both start and stop time are required")
        if rule.start_time:
            params += " -m time --datestart " + rule.start_time
        if rule.stop_time:
            params += " -m time --datestop " + rule.stop_time

    return params


def _normalise_version(ip_version: object) -> IPVersion:
    try:
        return IPVersion(ip_version)
    except ValueError:
        return IPVersion.BOTH


def _plan(
    rule: FirewallRule, ip_version: object, action: str, strict: bool
) -> list[tuple[str, str]]:
    _check_control(rule.control)
    _check_range_types(rule.start_ip, rule.end_ip)
    version = _normalise_version(ip_version)
    params = _build_params(rule, action, strict)

    no_ip = not rule.uses(ControlBit.IP)
    is_v6_addr = ":" in rule.start_ip

    if no_ip and version is IPVersion.BOTH:
        v6_params = params.replace("icmp", "icmpv6", 1) if strict else params
        return [(IPTABLES, params), (IP6TABLES, v6_params)]
    if (no_ip and version is IPVersion.IPV4) or (
        not is_v6_addr and version in (IPVersion.BOTH, IPVersion.IPV4)
    ):
        return [(IPTABLES, params)]
    if (no_ip and version is IPVersion.IPV6) or (
        is_v6_addr and version in (IPVersion.BOTH, IPVersion.IPV6)
    ):
        return [(IP6TABLES, params)]
    raise FirewallError("Illegal parameter")


def plan_add_commands(rule: FirewallRule, ip_version: object) -> list[tuple[str, str]]:
    """Validate a rule and return the (tool, arguments) pairs that append it."""
    return _plan(rule, ip_version, "-A", strict=True)


def plan_delete_commands(
    rule: FirewallRule, ip_version: object
) -> list[tuple[str, str]]:
    """Validate a rule and return the (tool, arguments) pairs that delete it."""
    return _plan(rule, ip_version, "-D", strict=False)


def _parse_port(text: str) -> int:
    try:
        return int(text)
    except ValueError as exc:
        raise FirewallError(f"Invalid port: {text}") from exc


def parse_rule_line(line: str) -> FirewallRule | None:
    """Parse one line of iptables-save output; None if it is not an append rule."""
    if not line.startswith("-A"):
        return None
    rule = FirewallRule()
    tokens = iter(line.split())

    def value(option: str) -> str:
        try:
            return next(tokens)
        except StopIteration:
            raise FirewallError(f"Missing value for {option}") from None

    for token in tokens:
        if token == "--comment":
            if "Preload" in value(token):
                rule.preload = True
        elif token == "-j":
            rule.target = Target.ACCEPT if value(token) == "ACCEPT" else Target.DROP
        elif token == "-p":
            name = value(token)
            rule.protocol = {
                "tcp": Protocol.TCP,
                "udp": Protocol.UDP,
                "icmp": Protocol.ICMP,
                "ipv6-icmp": Protocol.ICMP,
            }.get(name, Protocol.ALL)
            rule.control |= ControlBit.PROTOCOL
        elif token == "-s":
            rule.start_ip = value(token)
            rule.control |= ControlBit.IP
        elif token == "--src-range":
            ips = value(token).split("-")
            if len(ips) < 2:
                raise FirewallError("Malformed source range")
            rule.start_ip, rule.end_ip = ips[0], ips[1]
            rule.control |= ControlBit.IP
        elif token == "--dport":
            ports = value(token)
            if ":" in ports:
                low, high = ports.split(":")[:2]
                rule.start_port, rule.end_port = _parse_port(low), _parse_port(high)
            else:
                rule.start_port = rule.end_port = _parse_port(ports)
            rule.control |= ControlBit.PORT
        elif token == "--mac-source":
            rule.mac = value(token)
            rule.control |= ControlBit.MAC
        elif token == "--datestart":
            rule.start_time = value(token)
            rule.control |= ControlBit.TIMEOUT
        elif token == "--datestop":
            rule.stop_time = value(token)
            rule.control |= ControlBit.TIMEOUT
    return rule


def parse_rules(lines: Iterable[str]) -> list[FirewallRule]:
    """Parse all append rules found in iptables-save output lines."""
    rules = []
    for line in lines:
        rule = parse_rule_line(line.rstrip("\n"))
        if rule is not None:
            rules.append(rule)
    return rules