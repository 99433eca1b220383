"""Table rows for resource kinds that need dedicated printing."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from omc.helpers import OmcError, get_age

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Column:
    """A table column definition."""

    name: str
    type: str = "string"
    format: str = ""
    description: str = ""


@dataclass
class Table:
    """Column definitions and the rows printed under them."""

    columns: list[Column]
    rows: list[list[Any]] = field(default_factory=list)

    def render(self, no_headers: bool = False) -> str:
        """Render as left-aligned columns, three spaces apart, minimum width ten."""
        lines = [] if no_headers else [[c.name.upper() for c in self.columns]]
        lines.extend([_cell(v) for v in row] for row in self.rows)
        if not lines:
            return ""
        ncols = max(len(line) for line in lines)
        widths = [10] * max(ncols - 1, 0)
        for line in lines:
            for col, cell in enumerate(line[:-1]):
                widths[col] = max(widths[col], len(cell) + 3)
        out = []
        for line in lines:
            cells = [cell.ljust(widths[col]) for col, cell in enumerate(line[:-1])]
            cells.extend(line[-1:])
            out.append("".join(cells))
        return "\n".join(out) + "\n"


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


API_SERVICE_COLUMNS = [
    Column("Name", format="name"), Column("Service"), Column("Available"), Column("Age"),
]
CLUSTER_VERSION_COLUMNS = [
    Column("Name", format="name"), Column("Version"), Column("Available"),
    Column("Progressing"), Column("Since"), Column("Status"),
]
CUSTOM_RESOURCE_DEFINITION_COLUMNS = [Column("Name", format="name"), Column("Ceated At")]
SECURITY_CONTEXT_CONSTRAINTS_COLUMNS = [
    Column("Name", format="name"), Column("Priv"), Column("Caps"), Column("Selinux"),
    Column("RunAsUser"), Column("FSGroup"), Column("SupGroup"), Column("Priority"),
    Column("ReadOnlyRootFs"), Column("Volumes"),
]
OAUTH_CLIENT_COLUMNS = [
    Column("Name", format="name"), Column("Secret"), Column("WWW-Challenge", type="bool"),
    Column("Token-Max-Age"), Column("Redirect URIs"),
]


def _meta(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _parse_time(value: Any) -> datetime:
    if value is None or value == "":
        return _ZERO_TIME
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _rfc3339nano(value: Any) -> str:
    dt = _parse_time(value).astimezone(timezone.utc)
    text = (f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
            f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}")
    if dt.microsecond:
        text += f".{dt.microsecond:06d}".rstrip("0")
    return text + "Z"


def format_go_duration(seconds: int) -> str:
    """Format whole seconds like a duration string: 1h0m0s, 1m30s, 5s."""
    seconds = int(seconds)
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    hours, rem = divmod(abs(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


def print_api_service(obj: Mapping[str, Any]) -> list[Any]:
    """Row cells for an APIService."""
    spec = obj.get("spec") or {}
    service = "Local"
    if spec.get("service"):
        svc = spec["service"]
        service = f"{svc.get('namespace', '')}/{svc.get('name', '')}"
    available = "Unknown"
    for condition in (obj.get("status") or {}).get("conditions") or []:
        if condition.get("type") == "Available":
            available = condition.get("status", "")
            if available != "True":
                available = f"{available} ({condition.get('reason', '')})"
            break
    return [_meta(obj).get("name", ""), service, available, ""]


def print_cluster_version(obj: Mapping[str, Any], root: str | os.PathLike) -> list[Any]:
    """Row cells for a ClusterVersion; Since is measured against the must-gather."""
    status = obj.get("status") or {}
    version = ""
    for entry in status.get("history") or []:
        if entry.get("state") == "Completed":
            version = entry.get("version", "")
            break
    available = progressing = message = ""
    times: list[datetime] = []
    for condition in status.get("conditions") or []:
        ctype = condition.get("type")
        if ctype == "Available":
            available = condition.get("status", "")
        elif ctype == "Progressing":
            progressing = condition.get("status", "")
            message = condition.get("message", "")
        elif ctype != "Failing":
            continue
        times.append(_parse_time(condition.get("lastTransitionTime")))
    since = get_age(root, max(times, default=_ZERO_TIME))
    return [_meta(obj).get("name", ""), version, available, progressing, since, message]


def print_custom_resource_definition(obj: Mapping[str, Any]) -> list[Any]:
    """Row cells for a CustomResourceDefinition."""
    meta = _meta(obj)
    return [meta.get("name", ""), _rfc3339nano(meta.get("creationTimestamp"))]


def _quoted_list(values: list[Any]) -> str:
    return "[" + ",".join(f'"{v}"' for v in values) + "]"


def print_security_context_constraints(obj: Mapping[str, Any]) -> list[Any]:
    """Row cells for a SecurityContextConstraints."""
    capabilities = obj.get("allowedCapabilities") or []
    caps = _quoted_list(capabilities) if capabilities else "<no value>"
    priority = obj.get("priority")
    priority_text = "<no value>" if priority is None else str(int(priority))
    volume_list = obj.get("volumes") or []
    volumes = ""
    if volume_list:
        volumes = _quoted_list(volume_list)
    else:
        caps = "<no value>"

    def strategy(key: str) -> str:
        return (obj.get(key) or {}).get("type", "")

    return [
        _meta(obj).get("name", ""),
        bool(obj.get("allowPrivilegedContainer", False)),
        caps,
        strategy("seLinuxContext"),
        strategy("runAsUser"),
        strategy("fsGroup"),
        strategy("supplementalGroups"),
        priority_text,
        bool(obj.get("readOnlyRootFilesystem", False)),
        volumes,
    ]


def print_oauth_client(obj: Mapping[str, Any]) -> list[Any]:
    """Row cells for an OAuthClient."""
    max_age_seconds = obj.get("accessTokenMaxAgeSeconds")
    if max_age_seconds is None:
        max_age = "default"
    elif max_age_seconds == 0:
        max_age = "unexpiring"
    else:
        max_age = format_go_duration(max_age_seconds)
    return [
        _meta(obj).get("name", ""),
        obj.get("secret", ""),
        bool(obj.get("respondWithChallenges", False)),
        max_age,
        ",".join(obj.get("redirectURIs") or []),
    ]


_HANDLERS: dict[str, tuple[list[Column], Callable[[Mapping[str, Any], Any], list[Any]]]] = {
    "APIService": (API_SERVICE_COLUMNS, lambda o, r: print_api_service(o)),
    "ClusterVersion": (CLUSTER_VERSION_COLUMNS, print_cluster_version),
    "CustomResourceDefinition": (CUSTOM_RESOURCE_DEFINITION_COLUMNS,
                                 lambda o, r: print_custom_resource_definition(o)),
    "SecurityContextConstraints": (SECURITY_CONTEXT_CONSTRAINTS_COLUMNS,
                                   lambda o, r: print_security_context_constraints(o)),
    "OAuthClient": (OAUTH_CLIENT_COLUMNS, lambda o, r: print_oauth_client(o)),
}


def build_table(obj: Mapping[str, Any], root: str | os.PathLike) -> Table:
    """Build a one-row table for a kind handled here; raise OmcError otherwise."""
    kind = obj.get("kind", "")
    try:
        columns, handler = _HANDLERS[kind]
    except KeyError:
        raise OmcError(f"no table handler for kind {kind!r}") from None
    return Table(columns=list(columns), rows=[handler(obj, root)])