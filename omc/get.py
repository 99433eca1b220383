"""The "get" command: collect resources from a must-gather and print them."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from omc.helpers import (
    OmcError,
    get_age,
    get_json_template,
    match_labels_from_map,
    render_json_path,
)
from omc.printers import Column, Table, build_table
from omc.resources import GetArgs, ResourceResolver, read_dir_for_resources, validate_args

log = logging.getLogger(__name__)

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _Loader(yaml.SafeLoader):
    """Safe loader that keeps timestamps as strings, as the API serialises them."""


_Loader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for key, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

_HANDLED_KINDS = {
    "APIService", "ClusterVersion", "CustomResourceDefinition",
    "SecurityContextConstraints", "OAuthClient",
}


def _load_yaml(path: Path) -> Any:
    try:
        return yaml.load(path.read_bytes(), Loader=_Loader)
    except yaml.YAMLError as exc:
        raise OmcError(f"Error when trying to unmarshal file: {path}") from exc


def _load_object(path: Path) -> dict[str, Any]:
    loaded = _load_yaml(path)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise OmcError(f"Error when trying to unmarshal file: {path}")
    return loaded


def _load_items(path: Path) -> list[dict[str, Any]]:
    loaded = _load_object(path)
    items = loaded.get("items") or []
    if not isinstance(items, list):
        raise OmcError(f"Error when trying to unmarshal file: {path}")
    return [item for item in items if isinstance(item, dict) and item]


def _name(obj: Mapping[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("name", "") or ""


def _namespace(obj: Mapping[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("namespace", "") or ""


def _wanted(obj: Mapping[str, Any], names: set[str]) -> bool:
    return not names or _name(obj) in names


def _list_of(items: list[Any]) -> dict[str, Any]:
    return {"apiVersion": "v1", "items": items, "kind": "List"}


class Getter:
    """Collects the requested resources and renders them in the chosen format."""

    def __init__(self, root: str | os.PathLike, namespace: str = "",
                 all_namespaces: bool = False, output: str = "",
                 no_headers: bool = False, show_managed_fields: bool = False,
                 label_selector: str = "",
                 known_resources: Mapping[str, Mapping[str, Any]] | None = None,
                 home: str | os.PathLike | None = None,
                 resolver: ResourceResolver | None = None):
        self.root = Path(root)
        self.all_namespaces = all_namespaces
        self.namespace = "" if all_namespaces else namespace
        self.output = output
        self.wide = output == "wide"
        self.no_headers = no_headers
        self.show_managed_fields = show_managed_fields
        self.label_selector = label_selector
        self.resolver = resolver or ResourceResolver(known_resources, root, home)
        self.single_resource = False
        self.items: list[dict[str, Any]] = []
        self.jsonpath_items: list[dict[str, Any]] = []
        self.last_kind = ""
        self.current_kind = ""
        self._table: Table | None = None
        self._out: list[str] = []
        self._scopes: dict[tuple[str, str], bool] = {}

    # collection

    def run(self, args: Iterable[str]) -> str:
        """Collect and render the resources named by "get" arguments."""
        args = list(args)
        if not args:
            raise OmcError("you must specify the type of resource to get")
        request = validate_args(args, self.resolver)
        self.single_resource = request.single_resource
        for key in sorted(request.resources):
            resolved = self.resolver.resolve(key)
            self._scopes[(resolved.plural, resolved.group)] = resolved.namespaced
            names = request.resources.get(resolved.key, set())
            self.collect(resolved.plural, resolved.group, names)
        return self.render(request)

    def _is_namespaced(self, plural: str, group: str) -> bool:
        cached = self._scopes.get((plural, group))
        if cached is not None:
            return cached
        try:
            namespaced = self.resolver.resolve(f"{plural}.{group}").namespaced
        except OmcError:
            namespaced = False
        self._scopes[(plural, group)] = namespaced
        return namespaced

    def collect(self, plural: str, group: str, names: Iterable[str] = ()) -> None:
        """Read every object of one resource type, keeping the wanted names."""
        wanted = set(names)
        if plural in ("namespaces", "projects"):
            self._collect_namespaces(wanted)
        elif plural == "podnetworkconnectivitychecks":
            self._collect_connectivity_checks(wanted)
        elif self._is_namespaced(plural, group):
            self._collect_namespaced(plural, group, wanted)
        else:
            self._collect_cluster_scoped(plural, group, wanted)

    def _namespaces(self) -> list[str]:
        if not self.all_namespaces:
            return [self.namespace]
        try:
            return [p.name for p in read_dir_for_resources(self.root / "namespaces")]
        except OmcError:
            return []

    def _pods_from_dirs(self, namespace: str) -> list[dict[str, Any]]:
        pods_dir = self.root / "namespaces" / namespace / "pods"
        try:
            entries = read_dir_for_resources(pods_dir)
        except OmcError as exc:
            log.debug("Failed to read resources: %s", exc)
            return []
        pods = []
        for entry in entries:
            pod_path = pods_dir / entry.name / f"{entry.name}.yaml"
            if not pod_path.is_file():
                raise OmcError(f"error reading {pod_path}")
            pod = _load_object(pod_path)
            if pod:
                pods.append(pod)
        return pods

    def _collect_namespaced(self, plural: str, group: str, wanted: set[str]) -> None:
        for namespace in self._namespaces():
            items_path = self.root / "namespaces" / namespace / group / f"{plural}.yaml"
            if items_path.is_file():
                if plural == "pods" and items_path.stat().st_size == 0:
                    items = self._pods_from_dirs(namespace)
                else:
                    items = _load_items(items_path)
                for item in items:
                    if _wanted(item, wanted):
                        self.handle_object(item)
                continue
            resource_dir = self.root / "namespaces" / namespace / group / plural
            if not resource_dir.exists():
                continue
            try:
                files = read_dir_for_resources(resource_dir)
            except OmcError as exc:
                log.debug("Failed to read resources: %s", exc)
                continue
            for entry in files:
                item = _load_object(entry)
                if _wanted(item, wanted):
                    self.handle_object(item)

    def _collect_cluster_scoped(self, plural: str, group: str, wanted: set[str]) -> None:
        base = self.root / "cluster-scoped-resources" / group
        items_path = base / f"{plural}.yaml"
        if items_path.is_file():
            for item in _load_items(items_path):
                if _wanted(item, wanted):
                    self.handle_object(item)
            return
        try:
            files = read_dir_for_resources(base / plural)
        except OmcError as exc:
            log.debug("Failed to read resources: %s", exc)
            return
        for entry in files:
            item = _load_object(entry)
            if isinstance(item.get("items"), list):
                raise OmcError(
                    f'error: file "{entry}" contains a "List" objectKind, '
                    "while it should contain a single resource.")
            if _wanted(item, wanted):
                self.handle_object(item)

    def _collect_namespaces(self, wanted: set[str]) -> None:
        if wanted:
            names = sorted(wanted)
        else:
            try:
                names = sorted(p.name for p in (self.root / "namespaces").iterdir())
            except OSError:
                names = []
        for name in names:
            path = self.root / "namespaces" / name / f"{name}.yaml"
            if path.is_file():
                self.handle_object(_load_object(path))

    def _collect_connectivity_checks(self, wanted: set[str]) -> None:
        path = (self.root / "pod_network_connectivity_check"
                / "podnetworkconnectivitychecks.yaml")
        if not path.is_file():
            return
        for item in _load_items(path):
            if _wanted(item, wanted):
                self.handle_object(item)

    # per-object handling

    def _strip_managed_fields(self, obj: dict[str, Any]) -> dict[str, Any]:
        if self.show_managed_fields:
            return obj
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict) or "managedFields" not in metadata:
            return obj
        metadata = {k: v for k, v in metadata.items() if k != "managedFields"}
        return {**obj, "metadata": metadata}

    def _custom_columns_table(self, obj: Mapping[str, Any]) -> Table:
        spec = self.output[len("custom-columns="):]
        columns: list[Column] = []
        row: list[Any] = []
        for part in spec.split(","):
            header, sep, expr = part.partition(":")
            if not sep or not header:
                raise OmcError(f"custom-columns format specified but invalid: {part!r}")
            columns.append(Column(header))
            value = render_json_path(obj, "{" + expr + "}")
            row.append(value if value else "<none>")
        return Table(columns=columns, rows=[row])

    def _default_table(self, obj: Mapping[str, Any]) -> Table:
        age = get_age(self.root, (obj.get("metadata") or {}).get("creationTimestamp"))
        if self.all_namespaces:
            return Table(columns=[Column("Namespace"), Column("Name", format="name"),
                                  Column("Age")],
                         rows=[[_namespace(obj), _name(obj), age]])
        return Table(columns=[Column("Name", format="name"), Column("Age")],
                     rows=[[_name(obj), age]])

    def _object_table(self, obj: Mapping[str, Any]) -> Table:
        if self.output.startswith("custom-columns="):
            return self._custom_columns_table(obj)
        if obj.get("kind") in _HANDLED_KINDS:
            return build_table(obj, self.root)
        return self._default_table(obj)

    def handle_object(self, obj: dict[str, Any]) -> None:
        """Filter one object and add it to the pending output."""
        obj_namespace = _namespace(obj)
        if self.namespace and obj_namespace and self.namespace != obj_namespace:
            return
        try:
            labels_ok = match_labels_from_map((obj.get("metadata") or {}).get("labels"),
                                              self.label_selector)
        except OmcError:
            labels_ok = False
        if not labels_ok:
            return
        kind = obj.get("kind", "") or ""
        self.last_kind = kind
        if self.output in ("yaml", "json"):
            self.items.append(self._strip_managed_fields(obj))
            return
        if self.output.startswith("jsonpath="):
            stripped = self._strip_managed_fields(obj)
            self.items.append(stripped)
            self.jsonpath_items.append(stripped)
            return
        if self.output == "name":
            api_version = obj.get("apiVersion", "") or ""
            if api_version == "v1":
                self._out.append(f"{kind.lower()}/{_name(obj)}\n")
            else:
                group = api_version.split("/")[0]
                self._out.append(f"{kind.lower()}.{group}/{_name(obj)}\n")
            return
        table = self._object_table(obj)
        if self._table is not None and self.current_kind == kind:
            self._table.rows.extend(table.rows)
            return
        if self._table is not None:
            self._out.append(self._table.render(self.no_headers))
        if self.current_kind:
            self._out.append("\n")
        self.current_kind = kind
        self._table = Table(columns=list(table.columns), rows=list(table.rows))

    # rendering

    def _not_found(self, resources: str, include_namespace: bool) -> str:
        if include_namespace and self.namespace:
            return f"No resources {resources} found in {self.namespace} namespace.\n"
        return f"No resources {resources} found.\n"

    def _includes_cluster_scoped(self, keys: Iterable[str]) -> bool:
        for key in keys:
            try:
                if not self.resolver.resolve(key).namespaced:
                    return True
            except OmcError:
                return True
        return False

    def render(self, request: GetArgs) -> str:
        """Render everything collected so far for the given request."""
        keys = sorted(request.resources)
        resources = ",".join(keys)
        single = self.single_resource or request.single_resource
        if self.output == "json":
            if single and len(self.items) == 1:
                return json.dumps(self.items[0], indent=2, sort_keys=True) + "\n"
            if not single and self.items:
                return json.dumps(_list_of(self.items), indent=2, sort_keys=True) + "\n"
            return self._not_found(resources, True)
        if self.output.startswith("jsonpath="):
            template = get_json_template(self.output)
            if single and len(self.items) == 1:
                return render_json_path(self.items[0], template)
            if not single and self.items:
                return render_json_path(_list_of(self.jsonpath_items), template)
            return self._not_found(resources, True)
        if self.output == "yaml":
            if single and len(self.items) == 1:
                return yaml.safe_dump(self.items[0], default_flow_style=False)
            if self.items:
                return yaml.safe_dump(_list_of(self.items), default_flow_style=False)
            return self._not_found(resources, True)
        if self.last_kind == self.current_kind and self._table is not None:
            self._out.append(self._table.render(self.no_headers))
            self._table = None
        text = "".join(self._out)
        if not text:
            return self._not_found(resources, not self._includes_cluster_scoped(keys))
        return text