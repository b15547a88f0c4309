"""Gratuitous ARP broadcasting on Ethernet interfaces."""

from __future__ import annotations

import array
import fcntl
import logging
import socket
import string
import struct
import threading
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

ETH_HDRLEN = 14
ARP_HDRLEN = 28
ARP_OP_REPLY = 2
MAC_LENGTH = 6
IPV4_LENGTH = 4
HWTYPE_ETHER = 1
ETHER_TYPE = 2

ETH_P_ALL = 0x0003
ETH_P_IP = 0x0800
ETH_P_ARP = 0x0806

IPV4_PREFIX = "169.254"
IPV6_PREFIX = "fe80::"

_IFNAMSIZ = 16
_IFREQ_SIZE = _IFNAMSIZ + (24 if struct.calcsize("P") == 8 else 16)

_SIOCGIFCONF = 0x8912
_SIOCGIFFLAGS = 0x8913
_SIOCGIFHWADDR = 0x8927

_IFF_LOOPBACK = 0x8
_IFF_RUNNING = 0x40

_ARP_FORMAT = struct.Struct("!HHBBH6s4s6s4s")
_BROADCAST_MAC = b"\xff" * MAC_LENGTH


@dataclass
class ArpHeader:
    """An ARP packet header as carried in an Ethernet frame."""

    hardware_type: int = HWTYPE_ETHER
    protocol_type: int = ETH_P_IP
    hardware_len: int = MAC_LENGTH
    protocol_len: int = IPV4_LENGTH
    opcode: int = ARP_OP_REPLY
    sender_mac: bytes = bytes(MAC_LENGTH)
    sender_ip: bytes = bytes(IPV4_LENGTH)
    target_mac: bytes = bytes(MAC_LENGTH)
    target_ip: bytes = bytes(IPV4_LENGTH)

    def pack(self) -> bytes:
        """Return the header in network byte order."""
        for name, value, size in (
            ("sender_mac", self.sender_mac, MAC_LENGTH),
            ("target_mac", self.target_mac, MAC_LENGTH),
            ("sender_ip", self.sender_ip, IPV4_LENGTH),
            ("target_ip", self.target_ip, IPV4_LENGTH),
        ):
            if len(value) != size:
                raise ValueError(f"{name} must be {size} bytes long")
        return _ARP_FORMAT.pack(
            self.hardware_type,
            self.protocol_type,
            self.hardware_len,
            self.protocol_len,
            self.opcode,
            bytes(self.sender_mac),
            bytes(self.sender_ip),
            bytes(self.target_mac),
            bytes(self.target_ip),
        )

    @classmethod
    def for_gratuitous(cls, mac: bytes, ip: bytes) -> ArpHeader:
        """Build a gratuitous ARP reply announcing ``ip`` at ``mac``."""
        return cls(
            hardware_type=HWTYPE_ETHER,
            protocol_type=ETH_P_IP,
            hardware_len=MAC_LENGTH,
            protocol_len=IPV4_LENGTH,
            opcode=ARP_OP_REPLY,
            sender_mac=bytes(mac),
            sender_ip=bytes(ip),
            target_mac=bytes(MAC_LENGTH),
            target_ip=bytes(ip),
        )


def build_frame(mac: bytes, header: ArpHeader) -> bytes:
    """Wrap an ARP header in a broadcast Ethernet frame sent from ``mac``."""
    if len(mac) != MAC_LENGTH:
        raise ValueError(f"MAC address must be {MAC_LENGTH} bytes long")
    return _BROADCAST_MAC + bytes(mac) + struct.pack("!H", ETH_P_ARP) + header.pack()


def _ifreq(name: str) -> bytes:
    encoded = name.encode()[: _IFNAMSIZ - 1]
    return encoded.ljust(_IFREQ_SIZE, b"\0")


def _ioctl_ifreq(request: int, name: str) -> bytes | None:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            return fcntl.ioctl(sock.fileno(), request, _ifreq(name))
    except OSError:
        return None


def _interface_flags(name: str) -> int | None:
    result = _ioctl_ifreq(_SIOCGIFFLAGS, name)
    if result is None:
        return None
    return struct.unpack_from("H", result, _IFNAMSIZ)[0]


def get_interfaces() -> list[str]:
    """Return the names of all non-loopback interfaces, sorted."""
    names = set()
    for _, name in socket.if_nameindex():
        flags = _interface_flags(name)
        if flags is not None and flags & _IFF_LOOPBACK:
            continue
        names.add(name)
    return sorted(names)


def if_index(interface_name: str) -> int:
    """Return the index of an interface; raise OSError if there is none."""
    return socket.if_nametoindex(interface_name)


def mac_from_string(text: str) -> bytes:
    """Parse a colon-separated MAC address into its six bytes."""
    parts = text.strip().split(":")
    if len(parts) != MAC_LENGTH or not all(
        1 <= len(part) <= 2 and all(ch in string.hexdigits for ch in part)
        for part in parts
    ):
        raise ValueError("Invalid mac address string")
    return bytes(int(part, 16) for part in parts)


def mac_to_string(mac: bytes) -> str:
    """Format six MAC address bytes as lower-case colon-separated hex."""
    if len(mac) != MAC_LENGTH:
        raise ValueError(f"MAC address must be {MAC_LENGTH} bytes long")
    return ":".join(f"{octet:02x}" for octet in mac)


def get_mac_address(interface_name: str) -> str | None:
    """Return the hardware address of an interface, or None if it cannot be read."""
    result = _ioctl_ifreq(_SIOCGIFHWADDR, interface_name)
    if result is None:
        log.error("ioctl failed for SIOCGIFHWADDR")
        return None
    start = _IFNAMSIZ + 2
    return mac_to_string(result[start : start + MAC_LENGTH])


def ip_from_string(address: str) -> bytes:
    """Parse a dotted IPv4 address into its four bytes."""
    try:
        return socket.inet_pton(socket.AF_INET, address)
    except (OSError, ValueError):
        raise ValueError("Invalid IP address string") from None


def ip_to_string(ip: bytes) -> str:
    """Format four IPv4 address bytes in dotted form."""
    try:
        return socket.inet_ntop(socket.AF_INET, bytes(ip))
    except (OSError, ValueError):
        raise ValueError("Invalid IP address string") from None


def is_link_local_ip(address: str) -> bool:
    """Whether the textual address lies in a link-local block."""
    return address.startswith(IPV4_PREFIX) or address.startswith(IPV6_PREFIX)


def _ipv4_assignments() -> list[tuple[str, bytes]]:
    """List (label, address) of every IPv4 address configured on the host."""
    entry = struct.Struct(f"{_IFNAMSIZ}sH2s4s{_IFREQ_SIZE - _IFNAMSIZ - 8}x")
    size = _IFREQ_SIZE * 32
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        while True:
            buffer = array.array("B", bytes(size))
            pointer, _ = buffer.buffer_info()
            request = struct.pack("iP", size, pointer)
            reply = fcntl.ioctl(sock.fileno(), _SIOCGIFCONF, request)
            length = struct.unpack_from("i", reply)[0]
            if length < size:
                break
            size *= 2
    data = buffer.tobytes()[: length - length % _IFREQ_SIZE]
    return [
        (raw_name.split(b"\0", 1)[0].decode(errors="replace"), addr)
        for raw_name, family, _, addr in entry.iter_unpack(data)
        if family == socket.AF_INET
    ]


def get_ip_addrs(interface_name: str) -> dict[str, list[bytes]]:
    """Map the interface to its IPv4 addresses if it is up, running and not loopback."""
    try:
        assignments = _ipv4_assignments()
    except OSError:
        log.error("Error occurred while listing interface addresses")
        return {}
    result: dict[str, list[bytes]] = {}
    for name, addr in assignments:
        if name != interface_name:
            continue
        flags = _interface_flags(name)
        if flags is None or flags & _IFF_LOOPBACK or not flags & _IFF_RUNNING:
            continue
        result.setdefault(name, []).append(addr)
    return result


@dataclass(eq=False)
class GARP:
    """Periodically broadcasts gratuitous ARP replies for an interface."""

    interface_name: str
    interval: int
    mac: bytes | None = field(default=None, init=False)
    ifindex: int | None = field(default=None, init=False)
    addresses: dict[str, list[bytes]] = field(default_factory=dict, init=False)
    ip: bytes | None = field(default=None, init=False)
    _stopped: threading.Event = field(
        default_factory=threading.Event, init=False, repr=False
    )

    def __init__(self, interface_name: str, interval: int) -> None:
        self.interface_name = interface_name
        self.interval = interval
        self.mac = None
        self.ifindex = None
        self.addresses = {}
        self.ip = None
        self._stopped = threading.Event()

    def stop(self) -> None:
        """Make a running broadcast loop return."""
        self._stopped.set()

    def broadcast_packet(self, start: bool) -> None:
        """Broadcast for every non-link-local address every ``interval`` ms."""
        seconds = self.interval / 1000
        while start and not self._stopped.is_set():
            if self.get_iface_details():
                for addr in self.addresses.get(self.interface_name, []):
                    text = ip_to_string(addr)
                    if is_link_local_ip(text):
                        continue
                    self.ip = addr
                    if not self.send_packet():
                        log.error(
                            "Unable to broadcast GARP in %s IP: %s",
                            self.interface_name,
                            text,
                        )
            self._stopped.wait(seconds)

    def send_packet(self) -> bool:
        """Send one gratuitous ARP frame for the current address."""
        if self.mac is None or self.ip is None:
            return False
        frame = build_frame(self.mac, ArpHeader.for_gratuitous(self.mac, self.ip))
        try:
            with socket.socket(
                socket.AF_PACKET, socket.SOCK_RAW, socket.htons(ETH_P_ALL)
            ) as sock:
                sent = sock.sendto(frame, (self.interface_name, 0, 0, 0, self.mac))
        except OSError:
            return False
        return sent > 0

    def get_iface_details(self) -> bool:
        """Read the interface's IPv4 addresses, MAC address and index."""
        self.addresses = get_ip_addrs(self.interface_name)
        source_mac = get_mac_address(self.interface_name)
        if not source_mac or not self.addresses:
            return False
        self.mac = mac_from_string(source_mac)
        self.ifindex = if_index(self.interface_name)
        return True