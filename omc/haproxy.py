"""Inspect the backends configured in router haproxy.config files."""

from __future__ import annotations

import glob
import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, Iterator

from omc.helpers import OmcError

log = logging.getLogger(__name__)

HAPROXY_CONFIG_GLOB = "/ingress_controllers/*/*/haproxy.config"
HEADER = "NAMESPACE\tNAME\tINGRESSCONTROLLER\tSERVICES\tPORT\tTERMINATION"

_BACKEND_RE = re.compile(r"^backend ([a-z0-9\-_]*):([a-z0-9\-_]*):([a-z0-9\-_.]*)\Z")
_SERVER_RE = re.compile(r"^  server pod:([a-z0-9\-_:.]*) ")
_IC_RE = re.compile(r"ingress_controllers/([a-z0-9\-_]*)/")
_INT_RE = re.compile(r"[+-]?\d+\Z")

_TERMINATIONS = {
    "be_edge_http": "edge/Redirect",
    "be_secure": "reencrypt/Redirect",
    "be_tcp": "passthrough/Redirect",
    "be_http": "http",
}


@dataclass
class Port:
    """A service port, by number and optional name."""

    port_nr: int = 0
    port_name: str = ""

    def __str__(self) -> str:
        if self.port_name:
            return f"{self.port_name}({self.port_nr})"
        return str(self.port_nr)


@dataclass
class Service:
    """The service a backend sends traffic to."""

    service_name: str = ""
    port: Port | None = None


@dataclass
class Backend:
    """One haproxy backend, i.e. one route."""

    termination: str = ""
    namespace: str = ""
    route_name: str = ""
    ingress_controller: str = ""
    service: Service | None = None

    def __str__(self) -> str:
        service_name = self.service.service_name if self.service else ""
        port = self.service.port if self.service and self.service.port else None
        cells = [
            self.namespace,
            self.route_name,
            self.ingress_controller,
            service_name,
            str(port) if port is not None else "",
            _TERMINATIONS.get(self.termination, ""),
        ]
        return "".join(f"{cell}\t" for cell in cells)


def haproxy_config_files(root: str | os.PathLike) -> list[str]:
    """Find every router haproxy.config below a must-gather root."""
    return sorted(glob.glob(os.fspath(root) + HAPROXY_CONFIG_GLOB))


def ic_from_file_name(filename: str | os.PathLike) -> str:
    """Name of the ingress controller a config file belongs to, or ""."""
    match = _IC_RE.search(os.fspath(filename))
    return match.group(1) if match else ""


def is_backend_block(line: str, include_openshift: bool = False) -> Backend | None:
    """Return a Backend if the line opens a backend block, else None."""
    match = _BACKEND_RE.match(line)
    if not match:
        return None
    termination, namespace, route_name = match.groups()
    if not include_openshift and "openshift-" in namespace:
        return None
    return Backend(termination=termination, namespace=namespace, route_name=route_name)


def is_server_line(line: str) -> str:
    """Return the pod key of a server line, or "" if the line is not one."""
    match = _SERVER_RE.match(line)
    return match.group(1) if match else ""


def service_from_server_line(line: str) -> Service:
    """Build a Service from the pod key of a server line."""
    parts = line.split(":")
    if len(parts) < 5:
        raise OmcError(f"malformed server line {line!r}")
    raw_port = parts[4]
    if not _INT_RE.match(raw_port):
        log.warning("Failed to convert port value (%s) to an int.", raw_port)
        return Service(service_name=parts[1], port=Port(port_name=parts[2]))
    return Service(service_name=parts[1], port=Port(port_nr=int(raw_port), port_name=parts[2]))


def _lines(text: str) -> Iterator[str]:
    for line in text.split("\n"):
        yield line[:-1] if line.endswith("\r") else line


def parse_haproxy_config(filename: str | os.PathLike, wanted_namespace: str = "",
                         include_openshift: bool = False) -> list[Backend]:
    """Parse the backends of a config file, optionally for one namespace only."""
    ingress_controller = ic_from_file_name(filename)
    try:
        with open(filename, encoding="utf-8", errors="replace") as fh:
            text = fh.read()
    except OSError as exc:
        raise OmcError(str(exc)) from exc
    lines = _lines(text)
    backends: list[Backend] = []
    for line in lines:
        backend = is_backend_block(line, include_openshift)
        if backend is None:
            continue
        if wanted_namespace and backend.namespace != wanted_namespace:
            continue
        for inner in lines:
            server = is_server_line(inner)
            if server:
                backend.service = service_from_server_line(server)
                backend.ingress_controller = ingress_controller
                break
        backends.append(backend)
    return backends


def _align_right_with_tabs(lines: Iterable[str], tabwidth: int = 8, padding: int = 1) -> str:
    rows = [line.split("\t") for line in lines]
    if not rows:
        return ""
    ncols = max(len(row) - 1 for row in rows)
    widths = [0] * ncols
    for row in rows:
        for col, cell in enumerate(row[:-1]):
            widths[col] = max(widths[col], len(cell) + padding)
    out = []
    for row in rows:
        parts = []
        for col, cell in enumerate(row[:-1]):
            colw = -(-widths[col] // tabwidth) * tabwidth
            tabs = -(-(colw - len(cell)) // tabwidth)
            parts.append("\t" * tabs + cell)
        parts.append(row[-1])
        out.append("".join(parts))
    return "\n".join(out) + "\n"


def format_backends(root: str | os.PathLike, wanted_namespace: str = "",
                    include_openshift: bool = False) -> str:
    """Render the backends of every router config below root as a table."""
    lines = [HEADER]
    for config_file in haproxy_config_files(root):
        lines.extend(str(b) for b in parse_haproxy_config(config_file, wanted_namespace,
                                                         include_openshift))
    return _align_right_with_tabs(lines)