"""Resolve resource aliases and validate the arguments of "get"."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import yaml

from omc.helpers import OmcError

log = logging.getLogger(__name__)

ALL_RESOURCES = (
    "pods.core,services.core,daemonsets.apps,deployments.apps,replicasets.apps,"
    "statefulsets.apps,replicationcontrollers.core,deploymentconfigs.apps.openshift.io,"
    "builds.build.openshift.io,buildconfigs.build.openshift.io,jobs.batch,cronjobs.batch,"
    "routes.route.openshift.io,ingresses.networking.k8s.io,"
)
_NAME_FORM_MSG = (
    "there is no need to specify a resource type as a separate argument when passing "
    "arguments in resource/name form (e.g. 'omc get resource/<resource_name>' instead "
    "of 'omc get resource resource/<resource_name>'"
)
_DNS1123_SUBDOMAIN = re.compile(
    r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*"
)
_DNS1123_SUBDOMAIN_MAX = 253


class UnknownResourceError(OmcError):
    """Raised when an alias matches no known resource or CRD."""


@dataclass(frozen=True)
class ResourceType:
    """A resolved resource: plural name, API group and scope."""

    plural: str
    group: str
    namespaced: bool

    @property
    def key(self) -> str:
        return f"{self.plural}.{self.group}"


@dataclass
class GetArgs:
    """Requested resource types, each with the names asked for (empty means all)."""

    resources: dict[str, set[str]] = field(default_factory=dict)
    single_resource: bool = False
    show_kind: bool = False


def is_dns1123_subdomain(name: str) -> bool:
    """True if name is a valid DNS-1123 subdomain."""
    return (len(name) <= _DNS1123_SUBDOMAIN_MAX
            and _DNS1123_SUBDOMAIN.fullmatch(name) is not None)


def _extension(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def read_dir_for_resources(path: str | os.PathLike) -> list[Path]:
    """Non-empty .yaml files and directories with resource-like names, by name."""
    log.debug("opening '%s'", path)
    try:
        entries = sorted(Path(path).iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise OmcError(f"failed to read dir: {exc}") from exc
    resources = []
    for entry in entries:
        name = entry.name
        if not is_dns1123_subdomain(name):
            continue
        try:
            is_dir = entry.is_dir()
            size = entry.stat().st_size
        except OSError:
            continue
        if (_extension(name) == ".yaml" or is_dir) and size > 0:
            resources.append(entry)
    return resources


def load_known_resources(path: str | os.PathLike) -> dict[str, dict[str, Any]]:
    """Load the alias table mapping names to plural, group and scope."""
    try:
        data = yaml.safe_load(Path(path).read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise OmcError(str(exc)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise OmcError(f"known resources file {path} is not a mapping")
    return data


def _from_spec(spec: Mapping[str, Any]) -> ResourceType:
    names = spec.get("names") or {}
    return ResourceType(plural=names.get("plural", "") or "",
                        group=spec.get("group", "") or "",
                        namespaced=spec.get("scope") == "Namespaced")


class ResourceResolver:
    """Resolves aliases via the known-resources table and CRDs on disk."""

    def __init__(self, known_resources: Mapping[str, Mapping[str, Any]] | None = None,
                 root: str | os.PathLike = "", home: str | os.PathLike | None = None):
        self.known_resources = dict(known_resources or {})
        self.root = root
        self.home = home
        self.alias_to_crd: dict[str, dict[str, Any]] = {}

    def _known(self, name: str) -> ResourceType | None:
        value = self.known_resources.get(name)
        if value is None:
            return None
        return ResourceType(plural=value["plural"], group=value["group"],
                            namespaced=bool(value["namespaced"]))

    def resolve(self, alias: str) -> ResourceType:
        """Resolve an alias such as "po", "pods.core" or a CRD name."""
        if "." in alias:
            plural, _, group = alias.partition(".")
            known = self._known(plural)
            if known is not None and known.group.startswith(group):
                log.debug('Alias "%s" is a known resource.', alias)
                return known
        known = self._known(alias)
        if known is not None:
            log.debug('Alias "%s" is a known resource.', alias)
            return known
        log.debug('Alias "%s" resource not known.', alias)
        spec = self.alias_to_crd.get(alias)
        if spec is not None:
            return _from_spec(spec)
        return self._resolve_from_crds(alias)

    def _crd_dirs(self) -> Iterable[Path]:
        yield (Path(self.root) / "cluster-scoped-resources" / "apiextensions.k8s.io"
               / "customresourcedefinitions")
        home = Path(self.home) if self.home is not None else Path.home()
        yield home / ".omc" / "customresourcedefinitions"

    def _resolve_from_crds(self, alias: str) -> ResourceType:
        for crds_dir in self._crd_dirs():
            try:
                files = read_dir_for_resources(crds_dir)
            except OmcError as exc:
                log.warning("%s", exc)
                continue
            for crd_path in files:
                found = self._match_crd(alias, crd_path)
                if found is not None:
                    return found
            log.debug('No customResource found with name or alias "%s" in path: "%s".',
                      alias, crds_dir)
        raise UnknownResourceError(f'No customResource found with name or alias "{alias}".')

    def _match_crd(self, alias: str, crd_path: Path) -> ResourceType | None:
        try:
            crd = yaml.safe_load(crd_path.read_bytes())
        except (OSError, yaml.YAMLError):
            return None
        if crd is None:
            crd = {}
        if not isinstance(crd, dict):
            return None
        spec = crd.get("spec") or {}
        if not isinstance(spec, dict):
            return None
        names = spec.get("names") or {}
        group = spec.get("group", "") or ""
        kind = (names.get("kind", "") or "").lower()
        plural = (names.get("plural", "") or "").lower()
        singular_raw = names.get("singular", "") or ""
        singular = singular_raw.lower()
        short_names = names.get("shortNames") or []
        if "." in alias:
            short_alias, _, wanted_group = alias.partition(".")
            if not group.startswith(wanted_group):
                return None
            if short_alias in (plural, singular) or short_alias in short_names:
                self.alias_to_crd[f"{kind}.{group}"] = spec
                return _from_spec(spec)
        self.alias_to_crd[f"{kind}.{group}"] = spec
        if (alias in (kind, plural, singular) or alias in short_names
                or f"{singular_raw}.{group}" == alias):
            self.alias_to_crd[alias] = spec
            log.debug('Alias "%s" found in path "%s".', alias, crd_path)
            return _from_spec(spec)
        return None


def _resolve_type(resolver: ResourceResolver, resource_type: str) -> ResourceType:
    try:
        return resolver.resolve(resource_type)
    except UnknownResourceError as exc:
        raise UnknownResourceError(f'resource type "{resource_type}" not known.') from exc


def validate_args(args: Sequence[str], resolver: ResourceResolver) -> GetArgs:
    """Turn "get" arguments into the requested resource types and names."""
    if list(args) == ["all"]:
        args = [ALL_RESOURCES]
    args = [arg.lower() for arg in args]
    result = GetArgs()
    if len(args) == 1 and "/" not in args[0]:
        arg = args[0]
        if "," in arg:
            result.show_kind = True
            trimmed = arg[:-1] if arg.endswith(",") else arg
            trimmed = trimmed[1:] if trimmed.startswith(",") else trimmed
            types = trimmed.split(",")
        else:
            types = [arg]
        for resource_type in types:
            resolved = _resolve_type(resolver, resource_type)
            key = resource_type if "." in resource_type else resolved.key
            result.resources[key] = set()
    elif args and "/" in args[0]:
        if len(args) == 1:
            result.single_resource = True
        for arg in args:
            if "/" not in arg:
                raise OmcError(_NAME_FORM_MSG)
            parts = arg.split("/")
            resource_type, name = parts[0], parts[1]
            resolved = _resolve_type(resolver, resource_type)
            result.resources.setdefault(resolved.key, set()).add(name)
        if len(result.resources) > 1:
            result.show_kind = True
    elif len(args) > 1:
        resolved = _resolve_type(resolver, args[0])
        names: set[str] = set()
        result.resources[resolved.key] = names
        if len(args) == 2:
            result.single_resource = True
        for name in args[1:]:
            if "/" in name:
                raise OmcError(_NAME_FORM_MSG)
            names.add(name)
    return result