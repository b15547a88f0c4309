import pytest

from bmcnet.garp import (
    ARP_HDRLEN,
    ETH_HDRLEN,
    GARP,
    ArpHeader,
    build_frame,
    get_interfaces,
    get_ip_addrs,
    get_mac_address,
    if_index,
    ip_from_string,
    ip_to_string,
    is_link_local_ip,
    mac_from_string,
    mac_to_string,
)

MISSING_IFACE = "nosuchif0"
SAMPLE_MAC = "02:00:00:00:00:01"
SAMPLE_IP = "192.0.2.10"


def test_mac_round_trip():
    assert mac_to_string(mac_from_string(SAMPLE_MAC)) == SAMPLE_MAC


def test_mac_from_string_bytes():
    assert mac_from_string(SAMPLE_MAC) == b"\x02\x00\x00\x00\x00\x01"


def test_mac_short_octets_are_padded():
    assert mac_to_string(mac_from_string("2:a:0:0:0:1")) == "02:0a:00:00:00:01"


@pytest.mark.parametrize(
    "text", ["", "02:00:00:00:00", "02:00:00:00:00:01:03", "zz:00:00:00:00:01", "020:0:0:0:0:1"]
)
def test_mac_from_string_rejects_bad_input(text):
    with pytest.raises(ValueError):
        mac_from_string(text)


def test_mac_to_string_rejects_wrong_length():
    with pytest.raises(ValueError):
        mac_to_string(b"\x01\x02")


def test_ip_round_trip():
    assert ip_to_string(ip_from_string(SAMPLE_IP)) == SAMPLE_IP


def test_ip_from_string_bytes():
    assert ip_from_string(SAMPLE_IP) == bytes([192, 0, 2, 10])


@pytest.mark.parametrize("text", ["", "300.1.1.1", "fe80::1", "1.2.3"])
def test_ip_from_string_rejects_bad_input(text):
    with pytest.raises(ValueError):
        ip_from_string(text)


def test_ip_to_string_rejects_wrong_length():
    with pytest.raises(ValueError):
        ip_to_string(b"\x01\x02\x03")


@pytest.mark.parametrize(
    "address,expected",
    [
        ("169.254.0.17", True),
        ("169.254.10.17", True),
        ("fe80::1", True),
        (SAMPLE_IP, False),
        ("2001:db8::1", False),
    ],
)
def test_is_link_local_ip(address, expected):
    assert is_link_local_ip(address) is expected


def test_arp_header_packed_length():
    header = ArpHeader.for_gratuitous(mac_from_string(SAMPLE_MAC), ip_from_string(SAMPLE_IP))
    assert len(header.pack()) == ARP_HDRLEN


def test_gratuitous_header_fields():
    mac = mac_from_string(SAMPLE_MAC)
    ip = ip_from_string(SAMPLE_IP)
    packed = ArpHeader.for_gratuitous(mac, ip).pack()
    assert packed[0:2] == b"\x00\x01"  # hardware type ethernet
    assert packed[2:4] == b"\x08\x00"  # protocol type IPv4
    assert packed[4] == 6 and packed[5] == 4
    assert packed[6:8] == b"\x00\x02"  # ARP reply
    assert packed[8:14] == mac
    assert packed[14:18] == ip
    assert packed[18:24] == bytes(6)
    assert packed[24:28] == ip


def test_arp_header_rejects_bad_field_length():
    header = ArpHeader(sender_mac=b"\x01")
    with pytest.raises(ValueError):
        header.pack()


def test_build_frame_layout():
    mac = mac_from_string(SAMPLE_MAC)
    header = ArpHeader.for_gratuitous(mac, ip_from_string(SAMPLE_IP))
    frame = build_frame(mac, header)
    assert len(frame) == ETH_HDRLEN + ARP_HDRLEN
    assert frame[0:6] == b"\xff" * 6
    assert frame[6:12] == mac
    assert frame[12:14] == b"\x08\x06"
    assert frame[ETH_HDRLEN:] == header.pack()


def test_build_frame_rejects_bad_mac():
    header = ArpHeader()
    with pytest.raises(ValueError):
        build_frame(b"\x00\x01", header)


def test_get_interfaces_excludes_loopback_and_is_sorted():
    names = get_interfaces()
    assert "lo" not in names
    assert names == sorted(set(names))


def test_if_index_missing_interface():
    with pytest.raises(OSError):
        if_index(MISSING_IFACE)


def test_get_mac_address_missing_interface():
    assert get_mac_address(MISSING_IFACE) is None


def test_get_ip_addrs_missing_interface():
    assert get_ip_addrs(MISSING_IFACE) == {}


def test_get_ip_addrs_skips_loopback():
    assert get_ip_addrs("lo") == {}


def test_garp_details_fail_for_missing_interface():
    garp = GARP(MISSING_IFACE, 1000)
    assert garp.get_iface_details() is False
    assert garp.mac is None


def test_garp_send_without_details_fails():
    garp = GARP(MISSING_IFACE, 1000)
    assert garp.send_packet() is False


def test_garp_keeps_settings():
    garp = GARP("eth0", 250)
    assert (garp.interface_name, garp.interval) == ("eth0", 250)
    assert garp.addresses == {}


def test_garp_stopped_loop_returns():
    garp = GARP(MISSING_IFACE, 10)
    garp.stop()
    garp.broadcast_packet(True)
    assert garp.ip is None