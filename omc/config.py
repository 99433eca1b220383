"""The omc configuration file: saved must-gather contexts and settings."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class Context:
    """A saved must-gather."""

    id: str = ""
    path: str = ""
    current: str = ""
    project: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "path": self.path, "current": self.current,
                "project": self.project}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Context":
        return cls(id=data.get("id", "") or "", path=data.get("path", "") or "",
                   current=data.get("current", "") or "",
                   project=data.get("project", "") or "")


@dataclass
class Config:
    """Contents of omc.json."""

    contexts: list[Context] = field(default_factory=list)
    use_local_crds: bool = False
    diff_cmd: str = ""
    default_project: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "contexts": [c.to_dict() for c in self.contexts],
            "useLocalCRDs": self.use_local_crds,
            "diffCmd": self.diff_cmd,
            "defaultProject": self.default_project,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        return cls(
            contexts=[Context.from_dict(c) for c in data.get("contexts") or []],
            use_local_crds=bool(data.get("useLocalCRDs", False)),
            diff_cmd=data.get("diffCmd", "") or "",
            default_project=data.get("defaultProject", "") or "",
        )

    @classmethod
    def load(cls, path: str | os.PathLike) -> "Config":
        """Load a config file; a missing or unreadable file gives an empty one."""
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, ValueError):
            return cls()
        return cls.from_dict(data) if isinstance(data, dict) else cls()

    def save(self, path: str | os.PathLike) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=1))


def default_config_path(home: str | os.PathLike | None = None) -> Path:
    """Location of omc.json under the given (or the user's) home directory."""
    base = Path(home) if home is not None else Path.home()
    return base / ".omc" / "omc.json"


def create_config_file(path: str | os.PathLike) -> Config:
    """Write an empty configuration file."""
    config = Config()
    config.save(path)
    return config


def set_config(use_local_crds: bool, diff_cmd: str, default_project: str,
               home: str | os.PathLike | None = None) -> Config:
    """Update the settings in omc.json, keeping saved contexts."""
    path = default_config_path(home)
    config = Config.load(path)
    config.use_local_crds = use_local_crds
    config.diff_cmd = diff_cmd
    config.default_project = default_project
    config.save(path)
    return config


def delete_context(config_file: str | os.PathLike, path: str = "",
                   context_id: str = "", delete_all: bool = False) -> Config:
    """Remove saved contexts matching an id or path, or all of them."""
    if delete_all:
        return create_config_file(config_file)
    path = path.rstrip("/") if path.endswith("/") else path
    existing = Config.load(config_file)
    remaining = [
        Context(c.id, c.path, c.current, c.project)
        for c in existing.contexts
        if not (c.id == context_id or c.path == path)
    ]
    config = Config(contexts=remaining)
    config.save(config_file)
    return config