[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bmcnet"
version = "0.1.0"
description = "BMC network helpers: iptables firewall rule management, gratuitous ARP broadcasting and hypervisor network settings"
requires-python = ">=3.10"
dependencies = []
keywords = ["bmc", "firewall", "iptables", "ip6tables", "arp", "garp", "hypervisor", "networking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: System :: Networking :: Firewalls",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bmcnet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
