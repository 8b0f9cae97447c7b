[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "idevkit"
version = "0.1.0"
description = "Wire formats for talking to iOS devices: a minimal user-space TCP stack over raw IP packets, pcap capture, usbmuxd packet framing, CDTunnel framing and plist rendering"
requires-python = ">=3.10"
keywords = ["ios", "tcp", "ipv4", "ipv6", "pcap", "plist", "usbmuxd", "cdtunnel"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: System :: Networking",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "respx",
]

[tool.hatch.build.targets.wheel]
packages = ["idevkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
