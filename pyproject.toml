[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nlcraft"
version = "0.2.1"
description = "Minimal helpers to craft and parse Linux netlink messages: netlink sockets, attributes, generic netlink and IPVS control"
requires-python = ">=3.10"
dependencies = []
keywords = ["network", "netlink", "generic-netlink", "ipvs", "linux"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nlcraft"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
