"""Host targets, operations and host-list loading for fanssh."""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import yaml

from .errors import ConfigurationError, ListParseWarning

DEFAULT_PORT = 22
DEFAULT_TIMEOUT = 30

YAML_SUFFIXES = (".yaml", ".yml")


@dataclass(frozen=True)
class HostTarget:
    """One destination and the credentials used to reach it."""

    address: str
    user: str
    password: str | None = None
    private_key: Path | None = None

    @property
    def host(self) -> str:
        return split_address(self.address)[0]

    @property
    def port(self) -> int:
        return split_address(self.address)[1]

    @property
    def has_credentials(self) -> bool:
        return bool(self.password) or self.private_key is not None


@dataclass(frozen=True)
class RunCommand:
    """Run a shell command on every host."""

    command: str


@dataclass(frozen=True)
class PushFile:
    """Copy a local file into a directory on every host."""

    local_path: Path
    remote_dir: str


Operation = Union[RunCommand, PushFile]


@dataclass
class Defaults:
    """Values applied to inventory hosts that do not set their own."""

    user: str | None = None
    port: int = DEFAULT_PORT
    password: str | None = None
    private_key: Path | None = None


@dataclass
class Settings:
    """Invocation settings as collected from the command line."""

    hosts: str = ""
    host_file: Path | None = None
    hostfile_mode: bool = False
    command: str = ""
    src: Path | None = None
    dst: str = ""
    user: str = ""
    password: str = ""
    private_key: Path | None = None
    out: Path | None = None
    timeout: int = DEFAULT_TIMEOUT
    known_hosts: Path | None = None
    log_dir: Path | None = None


def split_address(address: str) -> tuple[str, int]:
    """Split ``host[:port]`` (or ``[v6]:port``) into host and port."""
    address = address.strip()
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, _, port = address.partition(":")
    else:
        # bare hostname or unbracketed IPv6
        host, port = address, ""

    if not host:
        raise ConfigurationError(f"Invalid host address: {address!r}")
    if not port:
        return host, DEFAULT_PORT
    try:
        number = int(port)
    except ValueError:
        raise ConfigurationError(f"Invalid port in address: {address!r}") from None
    if not 1 <= number <= 65535:
        raise ConfigurationError(f"Port out of range in address: {address!r}")
    return host, number


def parse_host_list(hosts: str) -> list[str]:
    """Parse a comma-separated address list."""
    return [h.strip() for h in hosts.split(",") if h.strip()]


def read_list_file(path: str | Path, count: int) -> list[list[str]]:
    """Read whitespace-separated rows that have exactly ``count`` fields.

    Rows with a different field count are reported with a
    :class:`ListParseWarning` and skipped. Blank lines and ``#`` comments are
    ignored.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Host list not found: {path}")

    rows = []
    with open(path) as f:
        for lineno, line in enumerate(f, 1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            fields = stripped.split()
            if len(fields) == count:
                rows.append(fields)
            else:
                warnings.warn(
                    f"{path}:{lineno}: invalid row {stripped!r} "
                    f"(expected {count} fields, got {len(fields)})",
                    ListParseWarning,
                    stacklevel=2,
                )
    return rows


def load_inventory(path: str | Path) -> list[HostTarget]:
    """Load host targets from a YAML inventory file."""
    path = Path(path).resolve()

    if not path.exists():
        raise FileNotFoundError(f"Inventory file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Inventory must be a mapping: {path}")

    defaults = _parse_defaults(raw)
    hosts_raw = raw.get("hosts", [])
    if not hosts_raw:
        raise ConfigurationError("No hosts defined in inventory")

    return [_parse_host(host_raw, defaults) for host_raw in hosts_raw]


def _parse_defaults(raw: dict[str, Any]) -> Defaults:
    """Parse the defaults section."""
    defaults_raw = raw.get("defaults") or {}
    private_key = defaults_raw.get("private_key")
    return Defaults(
        user=defaults_raw.get("user"),
        port=defaults_raw.get("port", DEFAULT_PORT),
        password=defaults_raw.get("password"),
        private_key=Path(private_key).expanduser() if private_key else None,
    )


def _parse_host(host_raw: Any, defaults: Defaults) -> HostTarget:
    """Parse a single inventory host entry."""
    if isinstance(host_raw, str):
        host_raw = {"address": host_raw}

    address = host_raw.get("address")
    if not address:
        host = host_raw.get("host")
        if not host:
            raise ConfigurationError("Inventory host must have an 'address' or 'host' field")
        address = f"{host}:{host_raw.get('port', defaults.port)}"
    elif ":" not in address:
        address = f"{address}:{defaults.port}"

    user = host_raw.get("user", defaults.user)
    if not user:
        raise ConfigurationError(f"Host '{address}' has no user")

    private_key = defaults.private_key
    if "private_key" in host_raw:
        private_key = Path(host_raw["private_key"]).expanduser()

    return HostTarget(
        address=address,
        user=user,
        password=host_raw.get("password", defaults.password),
        private_key=private_key,
    )


def resolve_operation(settings: Settings) -> Operation:
    """Select the single operation requested by the settings."""
    if settings.command and settings.src:
        raise ConfigurationError("Choose either a command or a file to send, not both")
    if settings.command:
        return RunCommand(settings.command)
    if settings.src and settings.dst:
        return PushFile(settings.src, settings.dst)
    raise ConfigurationError(
        "Nothing to do: give a command (-c) or a source file and destination (-s, -d)"
    )


def resolve_targets(settings: Settings) -> list[HostTarget]:
    """Turn the host options into one immutable target per host.

    An explicit ``-H`` list wins over a host file. A host file either carries
    ``address user password`` rows, is a YAML inventory, or (with ``-f``)
    lists bare addresses that take their credentials from the flags.
    """
    if not settings.hosts and settings.host_file is None:
        raise ConfigurationError("A host list (-H) or host file (-C) is required")

    private_key = settings.private_key.expanduser() if settings.private_key else None

    if settings.hostfile_mode or settings.hosts:
        if settings.hostfile_mode:
            source = settings.host_file or Path(settings.hosts)
            addresses = [row[0] for row in read_list_file(source, 1)]
        else:
            addresses = parse_host_list(settings.hosts)

        if not settings.user:
            raise ConfigurationError("A user (-u) is required")
        if not settings.password and private_key is None:
            raise ConfigurationError("A password (-p) or private key (-P) is required")

        targets = [
            HostTarget(
                address=address,
                user=settings.user,
                password=settings.password or None,
                private_key=private_key,
            )
            for address in addresses
        ]
    elif settings.host_file.suffix in YAML_SUFFIXES:
        targets = load_inventory(settings.host_file)
    else:
        targets = [
            HostTarget(address=address, user=user, password=password, private_key=private_key)
            for address, user, password in read_list_file(settings.host_file, 3)
        ]

    if not targets:
        raise ConfigurationError("host list is empty")
    for target in targets:
        split_address(target.address)
    return targets
