import pytest

from bmcnet.firewall_rules import (
    ControlBit,
    FirewallError,
    FirewallRule,
    IPVersion,
    Protocol,
    Target,
    parse_rule_line,
    parse_rules,
    plan_add_commands,
    plan_delete_commands,
    protocol_name,
)


def test_protocol_names():
    assert protocol_name(Protocol.TCP, False) == "tcp"
    assert protocol_name(Protocol.UDP, True) == "udp"
    assert protocol_name(Protocol.ICMP, False) == "icmp"
    assert protocol_name(Protocol.ICMP, True) == "icmpv6"
    assert protocol_name(Protocol.ALL, False) == "all"


def test_add_tcp_port_rule_pinned():
    rule = FirewallRule(
        target=Target.ACCEPT,
        control=ControlBit.PROTOCOL | ControlBit.IP | ControlBit.PORT,
        protocol=Protocol.TCP,
        start_ip="192.168.0.10",
        start_port=22,
    )
    commands = plan_add_commands(rule, IPVersion.IPV4)
    assert commands == [
        ("iptables", "-A INPUT -j ACCEPT -p tcp -s 192.168.0.10 --dport 22:65535 ")
    ]


def test_add_round_trips_through_parser():
    rule = FirewallRule(
        target=Target.DROP,
        control=ControlBit.PROTOCOL | ControlBit.IP | ControlBit.PORT | ControlBit.MAC,
        protocol=Protocol.UDP,
        start_ip="10.0.0.1",
        end_ip="10.0.0.9",
        start_port=100,
        end_port=200,
        mac="02:00:00:00:00:01",
    )
    [(tool, params)] = plan_add_commands(rule, IPVersion.BOTH)
    assert tool == "iptables"
    parsed = parse_rule_line(params)
    assert parsed == rule


def test_add_timeout_round_trip():
    rule = FirewallRule(
        target=Target.ACCEPT,
        control=ControlBit.TIMEOUT | ControlBit.IP,
        start_ip="10.1.1.1",
        start_time="2024-01-01T00:00:00",
        stop_time="2024-12-31T00:00:00",
    )
    [(_, params)] = plan_add_commands(rule, IPVersion.IPV4)
    assert parse_rule_line(params) == rule


def test_same_start_and_end_uses_single_source():
    rule = FirewallRule(control=ControlBit.IP, start_ip="10.0.0.1", end_ip="10.0.0.1")
    [(_, params)] = plan_add_commands(rule, IPVersion.IPV4)
    assert "--src-range" not in params
    assert params.endswith(" -s 10.0.0.1")


def test_ipv6_range_goes_to_ip6tables_with_icmpv6():
    rule = FirewallRule(
        control=ControlBit.IP | ControlBit.PROTOCOL,
        protocol=Protocol.ICMP,
        start_ip="2001:db8::1",
        end_ip="2001:db8::ff",
    )
    [(tool, params)] = plan_add_commands(rule, IPVersion.BOTH)
    assert tool == "ip6tables"
    assert " -p icmpv6" in params
    parsed = parse_rule_line(params)
    assert (parsed.start_ip, parsed.end_ip) == ("2001:db8::1", "2001:db8::ff")


def test_add_both_without_ip_rewrites_icmp_for_ipv6():
    rule = FirewallRule(control=ControlBit.PROTOCOL, protocol=Protocol.ICMP)
    commands = plan_add_commands(rule, IPVersion.BOTH)
    assert [tool for tool, _ in commands] == ["iptables", "ip6tables"]
    assert " -p icmpv6" not in commands[0][1]
    assert " -p icmpv6" in commands[1][1]


def test_delete_both_uses_same_params():
    rule = FirewallRule(control=ControlBit.PROTOCOL, protocol=Protocol.ICMP)
    commands = plan_delete_commands(rule, IPVersion.BOTH)
    assert [tool for tool, _ in commands] == ["iptables", "ip6tables"]
    assert commands[0][1] == commands[1][1]
    assert commands[0][1].startswith("-D INPUT")


def test_version_only_selects_tool_without_ip():
    rule = FirewallRule(control=ControlBit.PROTOCOL, protocol=Protocol.TCP)
    assert [t for t, _ in plan_add_commands(rule, IPVersion.IPV6)] == ["ip6tables"]
    assert [t for t, _ in plan_add_commands(rule, IPVersion.IPV4)] == ["iptables"]


def test_invalid_control_bits():
    with pytest.raises(FirewallError):
        plan_add_commands(FirewallRule(control=0x20), IPVersion.IPV4)
    with pytest.raises(FirewallError):
        plan_delete_commands(FirewallRule(control=0x20), IPVersion.IPV4)


def test_mixed_range_types_rejected():
    rule = FirewallRule(control=ControlBit.IP, start_ip="10.0.0.1", end_ip="2001:db8::1")
    with pytest.raises(FirewallError):
        plan_add_commands(rule, IPVersion.BOTH)


def test_reversed_ranges_rejected():
    v4 = FirewallRule(control=ControlBit.IP, start_ip="10.0.0.9", end_ip="10.0.0.1")
    v6 = FirewallRule(control=ControlBit.IP, start_ip="2001:db8::9", end_ip="2001:db8::1")
    with pytest.raises(FirewallError):
        plan_add_commands(v4, IPVersion.IPV4)
    with pytest.raises(FirewallError):
        plan_delete_commands(v6, IPVersion.IPV6)


def test_port_requires_tcp_or_udp_protocol():
    no_proto = FirewallRule(control=ControlBit.PORT, start_port=80)
    icmp = FirewallRule(
        control=ControlBit.PORT | ControlBit.PROTOCOL,
        protocol=Protocol.ICMP,
        start_port=80,
    )
    with pytest.raises(FirewallError):
        plan_add_commands(no_proto, IPVersion.IPV4)
    with pytest.raises(FirewallError):
        plan_delete_commands(icmp, IPVersion.IPV4)


def test_zero_start_port_rejected_only_on_add():
    rule = FirewallRule(
        control=ControlBit.PORT | ControlBit.PROTOCOL, protocol=Protocol.TCP
    )
    with pytest.raises(FirewallError):
        plan_add_commands(rule, IPVersion.IPV4)
    [(_, params)] = plan_delete_commands(rule, IPVersion.IPV4)
    assert parse_rule_line("-A" + params[2:]).start_port == 0


def test_timeout_needs_both_times_on_add():
    rule = FirewallRule(control=ControlBit.TIMEOUT, start_time="2024-01-01T00:00:00")
    with pytest.raises(FirewallError):
        plan_add_commands(rule, IPVersion.IPV4)
    [(_, params)] = plan_delete_commands(rule, IPVersion.IPV4)
    assert "--datestop" not in params
    assert "--datestart 2024-01-01T00:00:00" in params


def test_illegal_version_for_address():
    rule = FirewallRule(control=ControlBit.IP, start_ip="10.0.0.1")
    with pytest.raises(FirewallError):
        plan_add_commands(rule, IPVersion.IPV6)


def test_parse_non_append_line():
    assert parse_rule_line(":INPUT ACCEPT [0:0]") is None
    assert parse_rule_line("COMMIT") is None


def test_parse_rules_from_save_output():
    lines = [
        "*filter",
        ":INPUT ACCEPT [0:0]",
        "-A INPUT -p icmp -m icmp --icmp-type 8 -m comment --comment Preload -j DROP",
        "-A INPUT -s 10.0.0.0/8 -j ACCEPT",
        "-A INPUT -p ipv6-icmp -m mac --mac-source 02:00:00:00:00:02 -j DROP",
        "COMMIT",
    ]
    rules = parse_rules(lines)
    assert len(rules) == 3
    assert rules[0].preload is True
    assert rules[0].protocol is Protocol.ICMP
    assert rules[0].target is Target.DROP
    assert rules[0].control == ControlBit.PROTOCOL
    assert rules[1].preload is False
    assert rules[1].start_ip == "10.0.0.0/8"
    assert rules[1].control == ControlBit.IP
    assert rules[2].protocol is Protocol.ICMP
    assert rules[2].mac == "02:00:00:00:00:02"
    assert rules[2].control == ControlBit.PROTOCOL | ControlBit.MAC


def test_parse_single_port_and_unknown_protocol():
    rule = parse_rule_line("-A INPUT -p sctp --dport 443 -j ACCEPT")
    assert rule.protocol is Protocol.ALL
    assert (rule.start_port, rule.end_port) == (443, 443)
    assert rule.control == ControlBit.PROTOCOL | ControlBit.PORT


def test_parse_missing_value_raises():
    with pytest.raises(FirewallError):
        parse_rule_line("-A INPUT -j")
    with pytest.raises(FirewallError):
        parse_rule_line("-A INPUT --dport abc -j DROP")