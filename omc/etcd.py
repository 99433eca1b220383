"""Etcd endpoint health and status tables from a must-gather's etcd_info."""

from __future__ import annotations

import json
import math
import os
import re
from pathlib import Path
from typing import Any, Sequence

from omc.helpers import OmcError

STATUS_FILE = "endpoint_status.json"
HEALTH_FILE = "endpoint_health.json"

STATUS_HEADERS = ["endpoint", "ID", "version", "db size/in use", "not used", "is leader",
                  "is learner", "raft term", "raft index", "raft applied index", "errors"]
HEALTH_HEADERS = ["endpoint", "health", "took", "error"]

_SIZES = ["B", "kB", "MB", "GB", "TB", "PB", "EB"]
_NUMERIC = re.compile(r"^-?\d+\.?\d*$")
_WRAP_WIDTH = 30


def human_bytes(size: int) -> str:
    """Render a byte count with SI units, e.g. 83017728 -> "83 MB"."""
    size = int(size)
    if size < 0:
        raise OmcError(f"negative byte count {size}")
    if size < 10:
        return f"{size} B"
    exponent = math.floor(math.log(size) / math.log(1000))
    exponent = min(exponent, len(_SIZES) - 1)
    value = math.floor(size / math.pow(1000, exponent) * 10 + 0.5) / 10
    if value < 10:
        return f"{value:.1f} {_SIZES[exponent]}"
    return f"{value:.0f} {_SIZES[exponent]}"


def _title(header: str) -> str:
    return header.replace("_", " ").upper()


def _wrap(text: str) -> list[str]:
    lines: list[str] = []
    for raw in text.split("\n"):
        if len(raw) <= _WRAP_WIDTH:
            lines.append(raw)
            continue
        words = raw.split()
        limit = max(_WRAP_WIDTH, max((len(w) for w in words), default=0))
        current = ""
        for word in words:
            if current and len(current) + 1 + len(word) > limit:
                lines.append(current)
                current = word
            else:
                current = f"{current} {word}" if current else word
        lines.append(current)
    return lines or [""]


def _center(text: str, width: int) -> str:
    gap = width - len(text)
    left = (gap + 1) // 2
    return " " * left + text + " " * (gap - left)


def render_grid_table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Render a bordered table: centred upper-case headers, numbers right-aligned."""
    titles = [_title(h) for h in headers]
    ncols = max([len(titles)] + [len(r) for r in rows])
    titles += [""] * (ncols - len(titles))
    wrapped = []
    for row in rows:
        cells = [_wrap("" if c is None else str(c)) for c in row]
        cells += [[""]] * (ncols - len(cells))
        wrapped.append(cells)
    widths = [len(t) for t in titles]
    for row in wrapped:
        for col, cell in enumerate(row):
            widths[col] = max(widths[col], max(len(line) for line in cell))
    separator = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    lines = [separator,
             "|" + "|".join(f" {_center(t, w)} " for t, w in zip(titles, widths)) + "|",
             separator]
    for row in wrapped:
        height = max(len(cell) for cell in row)
        for k in range(height):
            parts = []
            for cell, width in zip(row, widths):
                text = cell[k] if k < len(cell) else ""
                aligned = text.rjust(width) if _NUMERIC.match(text) else text.ljust(width)
                parts.append(f" {aligned} ")
            lines.append("|" + "|".join(parts) + "|")
    lines.append(separator)
    return "\n".join(lines) + "\n"


def _load_list(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_bytes())
    except (OSError, ValueError) as exc:
        raise OmcError(f'Error when trying to unmarshal file "{path}": {exc}') from exc
    if not isinstance(data, list) or not all(isinstance(e, dict) for e in data):
        raise OmcError(f'Error when trying to unmarshal file "{path}": expected a list')
    return data


def _bool(value: Any) -> str:
    return "true" if value else "false"


def endpoint_status(etcd_dir: str | os.PathLike) -> str:
    """Table of the endpoint statuses saved in endpoint_status.json."""
    rows = []
    for entry in _load_list(Path(etcd_dir) / STATUS_FILE):
        status = entry.get("Status") or {}
        header = status.get("header") or {}
        member_id = int(header.get("member_id", 0) or 0)
        db_size = int(status.get("dbSize", 0) or 0)
        in_use = int(status.get("dbSizeInUse", 0) or 0)
        if db_size == 0:
            raise OmcError(f"endpoint {entry.get('Endpoint', '')} reports a zero db size")
        rows.append([
            entry.get("Endpoint", "") or "",
            f"{member_id:x}",
            status.get("version", "") or "",
            f"{human_bytes(db_size)}/{human_bytes(in_use)}",
            f"{100 - in_use * 100 // db_size}%",
            _bool(int(status.get("leader", 0) or 0) == member_id),
            _bool(status.get("isLearner", False)),
            str(int(status.get("raftTerm", 0) or 0)),
            str(int(status.get("raftIndex", 0) or 0)),
            str(int(status.get("raftAppliedIndex", 0) or 0)),
            ", ".join(status.get("errors") or []),
        ])
    return render_grid_table(STATUS_HEADERS, rows)


def endpoint_health(etcd_dir: str | os.PathLike) -> str:
    """Table of the endpoint health checks saved in endpoint_health.json."""
    rows = [
        [entry.get("endpoint", "") or "", _bool(entry.get("health", False)),
         entry.get("took", "") or "", entry.get("error", "") or ""]
        for entry in _load_list(Path(etcd_dir) / HEALTH_FILE)
    ]
    return render_grid_table(HEALTH_HEADERS, rows)