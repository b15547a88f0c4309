"""Firewall configuration backed by iptables and ip6tables."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable

from bmcnet.firewall_rules import (
    CUSTOM_IPTABLES_DIR,
    IP6TABLES,
    IP6TABLES_RULES,
    IPTABLES,
    IPTABLES_RULES,
    MAX_RULE_NUM,
    SYSTEM_IPTABLES_DIR,
    TEMP_DIR,
    FirewallError,
    FirewallRule,
    IPVersion,
    parse_rules,
    plan_add_commands,
    plan_delete_commands,
)

log = logging.getLogger(__name__)

_IPV4_PRELOAD = (
    '-A INPUT -p icmp --icmp-type 8 -j DROP -m comment --comment "Preload"',
    '-A INPUT -p icmp --icmp-type 13 -j DROP -m comment --comment "Preload"',
    '-A INPUT -p icmp --icmp-type 14 -j DROP -m comment --comment "Preload"',
    '-A INPUT -p icmp --icmp-type 11 -j DROP -m comment --comment "Preload"',
    '-A OUTPUT -p icmp --icmp-type 11 -j DROP -m comment --comment "Preload"',
    "-A OUTPUT -p icmp --icmp-type timestamp-reply -j DROP "
    '-m comment --comment "Preload"',
)
_IPV6_PRELOAD = (
    '-A INPUT -p icmpv6 --icmpv6-type 128 -j DROP -m comment --comment "Preload"',
)

_SAVE_PRELOAD_ONLY = " | grep -E '^(:|#|\\*|.*COMMIT.*|.*Preload.*)'"
_SAVE_CUSTOM_ONLY = " | grep -v Preload"


class CommandRunner:
    """Runs the firewall tools on the host."""

    def run(self, tool: str, params: str) -> int:
        """Run a tool with a shell-style argument string; return its exit status."""
        result = subprocess.run(f"{tool} {params}", shell=True, check=False)
        return result.returncode

    def capture_to_file(self, command: str, path: Path | str) -> int:
        """Run a shell command and store its standard output in a file."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w") as out:
            result = subprocess.run(command, shell=True, stdout=out, check=False)
        return result.returncode

    def execute(self, *args: str) -> int:
        """Run a program given as an argument vector; return its exit status."""
        result = subprocess.run(list(args), check=False)
        return result.returncode


def _tool(ipv6: bool) -> str:
    return IP6TABLES if ipv6 else IPTABLES


def _rules_name(ipv6: bool) -> str:
    return IP6TABLES_RULES if ipv6 else IPTABLES_RULES


def _version(ip_version: object) -> IPVersion:
    try:
        return IPVersion(ip_version)
    except ValueError:
        raise FirewallError(f"Invalid IP version: {ip_version!r}") from None


class FirewallConfiguration:
    """Manages the firewall rules and keeps their saved copies up to date."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        system_dir: Path | str = SYSTEM_IPTABLES_DIR,
        custom_dir: Path | str = CUSTOM_IPTABLES_DIR,
        temp_dir: Path | str = TEMP_DIR,
        preload: bool = True,
    ) -> None:
        self.runner = runner if runner is not None else CommandRunner()
        self.system_dir = Path(system_dir)
        self.custom_dir = Path(custom_dir)
        self.temp_dir = Path(temp_dir)
        self.preload = preload

        for ipv6 in (False, True):
            self._flush_table(ipv6)
        for ipv6 in (False, True):
            self.append_preload_rules(ipv6)

        self.rules_files = [
            self.system_dir / IPTABLES_RULES,
            self.system_dir / IP6TABLES_RULES,
            self.custom_dir / IPTABLES_RULES,
            self.custom_dir / IP6TABLES_RULES,
        ]

        for ipv6 in (False, True):
            self.write_configuration_file(ipv6, True)
        for ipv6 in (False, True):
            self.restore_configuration_file(ipv6)

    def _flush_table(self, ipv6: bool) -> None:
        tool = _tool(ipv6)
        self.runner.execute(f"/usr/sbin/{tool}", "-F")

    def _run_plan(self, commands: Iterable[tuple[str, str]]) -> int:
        status = 0
        for tool, params in commands:
            status |= self.runner.run(tool, params)
        return status

    def _custom_rule_count(self, ip_version: IPVersion) -> int:
        return sum(1 for rule in self.get_rules(ip_version) if not rule.preload)

    def _add_rule_detail(self, rule: FirewallRule, ip_version: object) -> int:
        custom_v4 = self._custom_rule_count(IPVersion.IPV4)
        custom_v6 = self._custom_rule_count(IPVersion.IPV6)

        if rule.start_ip:
            if "." in rule.start_ip and custom_v4 >= MAX_RULE_NUM:
                raise FirewallError("Too many IPv4 rules")
            if ":" in rule.start_ip and custom_v6 >= MAX_RULE_NUM:
                raise FirewallError("Too many IPv6 rules")
        elif custom_v4 >= MAX_RULE_NUM or custom_v6 >= MAX_RULE_NUM:
            raise FirewallError("Too many rules")

        return self._run_plan(plan_add_commands(rule, ip_version))

    def _write_both(self) -> None:
        self.write_configuration_file(False, False)
        self.write_configuration_file(True, False)

    def add_rule(self, rule: FirewallRule, ip_version: object) -> None:
        """Append a rule; raise FirewallError if it is invalid or cannot be added."""
        try:
            status = self._add_rule_detail(rule, ip_version)
        except FirewallError:
            log.error("Failed to add rule")
            raise
        self._write_both()
        if status != 0:
            raise FirewallError(f"Adding the rule failed with status {status}")

    def del_rule(self, rule: FirewallRule, ip_version: object) -> None:
        """Delete a rule; raise FirewallError if it is invalid or cannot be deleted."""
        status = self._run_plan(plan_delete_commands(rule, ip_version))
        self._write_both()
        if status != 0:
            raise FirewallError(f"Deleting the rule failed with status {status}")

    def flush_all(self, ip_version: object) -> None:
        """Remove all rules of the given family and put the preload rules back."""
        version = _version(ip_version)
        families = {
            IPVersion.IPV4: (False,),
            IPVersion.IPV6: (True,),
            IPVersion.BOTH: (False, True),
        }[version]
        for ipv6 in families:
            self._flush_table(ipv6)
        for ipv6 in families:
            self.append_preload_rules(ipv6)
        for ipv6 in families:
            self.write_configuration_file(ipv6, False)

    def get_rules(self, ip_version: object) -> list[FirewallRule]:
        """Return the saved rules, preload ones first, for the given family."""
        version = _version(ip_version)
        if version is IPVersion.IPV4:
            self.write_configuration_file(False, False)
        elif version is IPVersion.IPV6:
            self.write_configuration_file(True, False)

        rules: list[FirewallRule] = []
        for path in self.rules_files:
            if version is IPVersion.IPV4 and IP6TABLES_RULES in path.name:
                continue
            if version is IPVersion.IPV6 and IPTABLES_RULES in path.name:
                continue
            try:
                with path.open() as handle:
                    rules.extend(parse_rules(handle))
            except OSError:
                continue
        return rules

    def reorder_rules(
        self, ip_version: object, rules: Iterable[FirewallRule]
    ) -> None:
        """Replace the custom rules of a family with the given ordered rules.

        On failure the previous rules are restored and FirewallError is raised.
        """
        version = _version(ip_version)
        ipv6 = version is not IPVersion.IPV4
        backup = self.temp_dir / _rules_name(ipv6)
        self.runner.capture_to_file(f"{_tool(ipv6)}-save{_SAVE_CUSTOM_ONLY}", backup)

        self.flush_all(version)

        for rule in rules:
            if rule.preload:
                continue
            try:
                status = self._add_rule_detail(rule, version)
                error: FirewallError | None = None
            except FirewallError as exc:
                status, error = -1, exc
            if status != 0:
                log.error("Failed to add rule")
                self.flush_all(version)
                if backup.exists():
                    self.runner.run(f"{_tool(ipv6)}-restore", f"--noflush {backup}")
                raise FirewallError("Failed to reorder rules") from error

        self._write_both()

    def write_configuration_file(self, ipv6: bool, initial: bool) -> None:
        """Save the preload rules (initial) or the custom rules of one family."""
        name = _rules_name(ipv6)
        if initial:
            command = f"{_tool(ipv6)}-save{_SAVE_PRELOAD_ONLY}"
            path = self.system_dir / name
        else:
            command = f"{_tool(ipv6)}-save{_SAVE_CUSTOM_ONLY}"
            path = self.custom_dir / name
        self.runner.capture_to_file(command, path)

    def restore_configuration_file(self, ipv6: bool) -> None:
        """Load the saved custom rules of one family, if there are any."""
        path = self.custom_dir / _rules_name(ipv6)
        if path.exists():
            self.runner.run(f"{_tool(ipv6)}-restore", f"--noflush {path}")

    def append_preload_rules(self, ipv6: bool) -> None:
        """Add the built-in rules of one family when preloading is enabled."""
        if not self.preload:
            return
        tool = _tool(ipv6)
        for params in _IPV6_PRELOAD if ipv6 else _IPV4_PRELOAD:
            self.runner.run(tool, params)