# bmcnet

Network helpers for a baseboard management controller. You use it as a library.

## Firewall rules

`bmcnet.firewall_rules` describes rules and turns them into tool arguments.
It does not run anything.

- `FirewallRule` holds a rule. Its fields are `target`, `control`, `protocol`,
  `start_ip`, `end_ip`, `start_port`, `end_port`, `mac`, `start_time`,
  `stop_time` and `preload`. `control` is a combination of `ControlBit` flags:
  `PROTOCOL`, `IP`, `PORT`, `MAC` and `TIMEOUT`. The flags say which fields
  take effect.
- `plan_add_commands(rule, ip_version)` checks a rule and returns
  `(tool, arguments)` pairs that append it. The tool is `iptables` or
  `ip6tables`. `plan_delete_commands` returns the pairs that delete it. Both
  raise `FirewallError` when the rule is invalid. Examples are mixed address
  families in a range, a reversed range, port filtering without TCP/UDP, or
  too many control bits.
- `parse_rule_line` and `parse_rules` read `iptables-save` output back into
  `FirewallRule` objects. Rules with a `Preload` comment get `preload=True`.

`bmcnet.firewall.FirewallConfiguration` applies rules on the host through a
`CommandRunner`, which uses `subprocess`. Creating it does the following:

1. Flushes both tables.
2. Adds the built-in preload rules, unless `preload=False`.
3. Saves the preload rules under `system_dir`, which defaults to
   `/etc/iptables`.
4. Restores any custom rules saved under `custom_dir`, which defaults to
   `/etc/interface/iptables`.

Its methods are `add_rule`, `del_rule`, `flush_all`, `get_rules`,
`reorder_rules`, `write_configuration_file`, `restore_configuration_file` and
`append_preload_rules`. At most 64 custom rules are kept per family. If
`reorder_rules` fails part way, it puts the previous rules back and raises
`FirewallError`.

```python
from bmcnet.firewall_rules import (
    ControlBit, FirewallRule, IPVersion, Protocol, Target, plan_add_commands,
)

rule = FirewallRule(
    target=Target.DROP,
    control=ControlBit.PROTOCOL | ControlBit.PORT,
    protocol=Protocol.TCP,
    start_port=22,
)
for tool, params in plan_add_commands(rule, IPVersion.BOTH):
    print(tool, params)
```

## Gratuitous ARP

`bmcnet.garp.GARP(interface_name, interval)` works as follows:

- `broadcast_packet(True)` sends a gratuitous ARP reply for each IPv4 address
  of the interface that is not link-local. It repeats this every `interval`
  milliseconds until `stop()` is called.
- `ArpHeader.for_gratuitous(mac, ip)` builds the ARP header.
- `build_frame(mac, header)` builds the broadcast Ethernet frame.

Helpers:

- `get_interfaces`
- `if_index`
- `get_mac_address`
- `get_ip_addrs`
- `mac_from_string` / `mac_to_string`
- `ip_from_string` / `ip_to_string`
- `is_link_local_ip`

Sending needs a raw `AF_PACKET` socket, so it only works on Linux with root
privileges.

## Hypervisor network settings

- `bmcnet.hyp_network_manager.HypNetworkMgr` reads the `vmi*` attributes from a
  `BiosClient`'s base table into `bios_table_attrs`. It fills in defaults with
  `set_default_bios_table_attrs_on_intf` and
  `set_default_hostname_in_bios_table_attrs`. `create_if_objects` creates the
  `eth0` and `eth1` interface objects. `create_sys_conf_obj` creates the
  system configuration object.
- `bmcnet.hyp_ethernet.HypEthInterface` holds `dhcp4`, `dhcp6`,
  `ipv6_accept_ra` and the combined `dhcp_enabled` setting, which is a
  `DHCPConf` value.
- `bmcnet.hyp_sys_config.HypSysConfig` loads the host name from the
  `vmi_hostname` attribute with `set_host_name`. When `host_name` is set to a
  new value, it is written back to the same attribute.

## What it does not do

The package has no command-line programs and no daemon. It does not publish
anything on D-Bus. `BiosClient` keeps attributes in memory only. It does not
talk to a BIOS configuration service. `HypEthInterface.ip` creates no address
object and returns an empty path.

## Tests

```
pip install .[test]
pytest
```