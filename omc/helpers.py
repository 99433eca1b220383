"""Shared helpers: table rendering, ages, label selectors and JSONPath output."""

from __future__ import annotations

import json
import os
import random
import re
import string
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import yaml

_CHARSET = string.ascii_lowercase + string.ascii_uppercase + string.digits
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class OmcError(Exception):
    """Raised when a command cannot complete."""


def rand_string(length: int) -> str:
    """Return a random alphanumeric string of the given length."""
    return "".join(random.choice(_CHARSET) for _ in range(length))


def format_table(headers: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    """Render a borderless, left-aligned table with upper-case headers."""
    header = [h.replace("_", " ").upper() for h in headers]
    body = [[str(cell) for cell in row] for row in rows]
    all_rows = [header, *body] if header else body
    if not all_rows:
        return ""
    ncols = max(len(r) for r in all_rows)
    widths = [0] * ncols
    for row in all_rows:
        for col, cell in enumerate(row):
            widths[col] = max(widths[col], len(cell))
    lines = []
    for row in all_rows:
        cells = [cell.ljust(widths[col]) for col, cell in enumerate(row)]
        lines.append("   ".join(cells).rstrip())
    return "\n".join(lines) + "\n"


def _as_timedelta(diff: timedelta | float) -> timedelta:
    return diff if isinstance(diff, timedelta) else timedelta(seconds=diff)


def format_diff_time(diff: timedelta | float) -> str:
    """Format an age in the compact style used for resource listings."""
    diff = _as_timedelta(diff)
    seconds = diff.total_seconds()
    minutes = seconds / 60
    hours = seconds / 3600
    if hours > 48:
        if hours > 200000:
            return "Unknown"
        return f"{int(hours / 24)}d"
    if 10 < hours < 48:
        return f"{int(minutes / 60)}h"
    if minutes > 60:
        remain = int(minutes) % 60
        if remain > 0:
            return f"{int(minutes / 60)}h{remain}m"
        return f"{int(minutes / 60)}h"
    if seconds > 60:
        remain = int(seconds) % 60
        if remain > 0 and minutes < 4:
            return f"{int(minutes)}m{remain}s"
        return f"{int(minutes)}m"
    return f"{int(seconds)}s"


def short_human_duration(diff: timedelta | float) -> str:
    """Format a duration as a single short unit (s, m, h, d, y)."""
    diff = _as_timedelta(diff)
    total = diff.total_seconds()
    seconds = int(total)
    if seconds < -1:
        return "<invalid>"
    if seconds < 0:
        return "0s"
    if seconds < 60:
        return f"{seconds}s"
    minutes = int(total / 60)
    if minutes < 60:
        return f"{minutes}m"
    hours = int(total / 3600)
    if hours < 24:
        return f"{hours}h"
    if hours < 24 * 365:
        return f"{hours // 24}d"
    return f"{int(total / 3600 / 24 / 365)}y"


_STEP = re.compile(r"\.([^.\[\]]+)|\[(\*|-?\d+)\]")


def _evaluate(expr: str, current: Any, root: Any) -> list[Any]:
    expr = expr.strip()
    if expr.startswith("$"):
        values, expr = [root], expr[1:]
    elif expr.startswith("@"):
        values, expr = [current], expr[1:]
    else:
        values = [current]
    if expr in ("", "."):
        return values
    pos = 0
    while pos < len(expr):
        match = _STEP.match(expr, pos)
        if not match:
            raise OmcError(f"unrecognized jsonpath expression {expr!r}")
        pos = match.end()
        key, index = match.group(1), match.group(2)
        nxt: list[Any] = []
        for value in values:
            if key is not None:
                if isinstance(value, Mapping) and key in value:
                    nxt.append(value[key])
            elif isinstance(value, list):
                if index == "*":
                    nxt.extend(value)
                else:
                    i = int(index)
                    if -len(value) <= i < len(value):
                        nxt.append(value[i])
            elif index == "*" and isinstance(value, Mapping):
                nxt.extend(value.values())
        values = nxt
    return values


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _parse_template(template: str) -> list:
    nodes: list = []
    stack: list[tuple[str, list]] = []
    current = nodes
    pos = 0
    while pos < len(template):
        start = template.find("{", pos)
        if start < 0:
            current.append(("text", template[pos:]))
            break
        if start > pos:
            current.append(("text", template[pos:start]))
        end = template.find("}", start)
        if end < 0:
            raise OmcError(f"unclosed action in jsonpath {template!r}")
        action = template[start + 1:end].strip()
        pos = end + 1
        if action.startswith("range "):
            body: list = []
            current.append(("range", action[6:].strip(), body))
            stack.append(("range", current))
            current = body
        elif action == "end":
            if not stack:
                raise OmcError(f"not in range, nothing to end in {template!r}")
            current = stack.pop()[1]
        elif action.startswith('"') and action.endswith('"') and len(action) >= 2:
            current.append(("text", action[1:-1].encode().decode("unicode_escape")))
        else:
            _evaluate(action, {}, {})
            current.append(("expr", action))
    if stack:
        raise OmcError(f"unclosed range in jsonpath {template!r}")
    return nodes


def _execute(nodes: list, current: Any, root: Any, out: list[str]) -> None:
    for node in nodes:
        if node[0] == "text":
            out.append(node[1])
        elif node[0] == "expr":
            out.append(" ".join(_format_value(v) for v in _evaluate(node[1], current, root)))
        else:
            for item in _evaluate(node[1], current, root):
                _execute(node[2], item, root, out)


def render_json_path(data: Any, template: str) -> str:
    """Render a kubectl-style JSONPath template against data."""
    try:
        nodes = _parse_template(template)
    except OmcError as exc:
        raise OmcError(f"error parsing jsonpath {template}, {exc}") from exc
    out: list[str] = []
    _execute(nodes, data, data, out)
    return "".join(out)


def get_json_template(output: str) -> str:
    """Return the template after "jsonpath=", or "" for other formats."""
    if not output.startswith("jsonpath="):
        return ""
    template = output[len("jsonpath="):]
    if not template:
        raise OmcError("template format specified but no template given")
    return template


def select_row(row: Sequence[str], all_namespaces: bool, show_labels: bool,
               labels: str, output: str, column: int) -> list[str]:
    """Choose the cells of a row shown for the given output options."""
    selected: list[str] = []
    start = 0 if all_namespaces else 1
    if output == "":
        selected = list(row[start:column])
    elif output == "wide":
        selected = list(row[start:])
    if show_labels:
        selected.append(labels)
    return selected


def extract_labels(labels: Mapping[str, str] | None) -> str:
    """Join labels as k=v pairs, or "<none>" when there are none."""
    if not labels:
        return "<none>"
    return ",".join(f"{k}={v}" for k, v in labels.items())


def extract_label(labels: Mapping[str, str] | None, key: str) -> str:
    """Return one label value, or "" if absent."""
    return (labels or {}).get(key, "")


def read_yaml(path: str | os.PathLike) -> bytes:
    """Read a YAML file, dropping stray three-character lines."""
    try:
        text = Path(path).read_bytes()
    except OSError as exc:
        raise OmcError(str(exc)) from exc
    lines = [line + b"\n" for line in text.splitlines()]
    return b"".join(line for line in lines if len(line) != 4)


def _to_datetime(value: datetime | str | None) -> datetime:
    if value is None or value == "":
        return _ZERO_TIME
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _reference_time(root: str | os.PathLike) -> datetime | None:
    for name in ("timestamp", "namespaces", "cluster-scoped-resources"):
        try:
            mtime = os.stat(Path(root) / name).st_mtime
        except OSError:
            continue
        return datetime.fromtimestamp(mtime, tz=timezone.utc)
    return None


def get_age(root: str | os.PathLike, creation_timestamp: datetime | str | None) -> str:
    """Age of a resource relative to when the must-gather was taken."""
    reference = _reference_time(root)
    if reference is None:
        return "Unknown"
    return format_diff_time(reference - _to_datetime(creation_timestamp))


def translate_timestamp(root: str | os.PathLike, timestamp: datetime | str | None) -> str:
    """Short age relative to the must-gather namespaces directory."""
    if timestamp is None or timestamp == "":
        return "<unknown>"
    try:
        mtime = os.stat(Path(root) / "namespaces").st_mtime
    except OSError as exc:
        raise OmcError(str(exc)) from exc
    reference = datetime.fromtimestamp(mtime, tz=timezone.utc)
    return short_human_duration(reference - _to_datetime(timestamp))


def match_labels(labels: str, selector: str) -> bool:
    """Match a comma-joined k=v label string against a selector."""
    if selector == "":
        return True
    present = labels.split(",")
    for term in selector.split(","):
        if "=" not in term:
            term = "app=" + term
        if "!=" in term:
            if term.replace("!=", "=") in present:
                return False
        elif "==" in term:
            if term.replace("==", "=") not in present:
                return False
        elif term not in present:
            return False
    return True


def _split_pair(term: str, sep: str) -> tuple[str, str]:
    parts = term.split(sep)
    if len(parts) != 2:
        raise OmcError("invalid labels input")
    return parts[0], parts[1]


def match_labels_from_map(labels: Mapping[str, str] | None, selector: str) -> bool:
    """Match a label mapping against a selector; raise on malformed terms."""
    if selector == "":
        return True
    labels = labels or {}
    for term in selector.split(","):
        if "!=" in term:
            key, val = _split_pair(term, "!=")
            if labels.get(key, "") == val:
                return False
        elif "==" in term:
            key, val = _split_pair(term, "==")
            if key not in labels or labels[key] != val:
                return False
        elif "=" in term:
            key, val = _split_pair(term, "=")
            if key not in labels or labels[key] != val:
                return False
        else:
            key, val = _split_pair("app=" + term, "=")
            if labels.get(key, "") != val:
                return False
    return True


def format_output(resource: Any, columns: int, output: str, all_namespaces: bool,
                  show_labels: bool, headers: Sequence[str],
                  data: Iterable[Sequence[str]], json_path_template: str) -> str:
    """Render rows as a table, or the resource as yaml/json/jsonpath."""
    if output in ("", "wide"):
        start = 0 if all_namespaces else 1
        chosen = list(headers[start:columns] if output == "" else headers[start:])
        if show_labels:
            chosen.append("labels")
        return format_table(chosen, data)
    if output == "yaml":
        return yaml.safe_dump(resource, default_flow_style=False) + "\n"
    if output == "json":
        return json.dumps(resource, indent=2) + "\n"
    if output.startswith("jsonpath="):
        return render_json_path(resource, json_path_template)
    return ""


def cat(path: str | os.PathLike) -> str:
    """Return the contents of a file, raising OmcError if it is missing."""
    p = Path(path)
    if not p.exists():
        raise OmcError(f"could not find file {path}")
    try:
        return p.read_text()
    except OSError as exc:
        raise OmcError(f"could not read file {path}") from exc