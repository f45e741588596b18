[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "daeproxy"
version = "0.1.0"
description = "Control command and support library for a transparent proxy daemon: reload signalling, DNS upstreams, subscriptions, resolv.conf parsing and network dumps."
requires-python = ">=3.10"
keywords = ["proxy", "transparent-proxy", "dns", "subscription", "resolv.conf", "sysdump"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: Internet :: Name Service (DNS)",
    "Topic :: System :: Networking",
]
dependencies = [
    "dnspython",
    "cryptography",
    "click",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
dae = "daeproxy.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["daeproxy"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
