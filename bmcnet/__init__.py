"""BMC network helpers: iptables firewall rules, gratuitous ARP and hypervisor network settings."""

__version__ = "0.1.0"