import json

import pytest
import yaml

from omc.get import Getter
from omc.helpers import OmcError
from omc.resources import UnknownResourceError, validate_args

KNOWN = {
    "pods": {"plural": "pods", "group": "core", "namespaced": True},
    "po": {"plural": "pods", "group": "core", "namespaced": True},
    "pod": {"plural": "pods", "group": "core", "namespaced": True},
    "clusterversion": {"plural": "clusterversions", "group": "config.openshift.io",
                       "namespaced": False},
    "clusterversions": {"plural": "clusterversions", "group": "config.openshift.io",
                        "namespaced": False},
    "namespaces": {"plural": "namespaces", "group": "core", "namespaced": False},
    "ns": {"plural": "namespaces", "group": "core", "namespaced": False},
}


def _crd(plural, kind, scope):
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{plural}.operator.openshift.io"},
        "spec": {
            "group": "operator.openshift.io",
            "scope": scope,
            "names": {"plural": plural, "singular": kind.lower(), "kind": kind},
        },
    }


def _pod(name, labels=None, managed=False):
    meta = {"name": name, "namespace": "default",
            "creationTimestamp": "2023-01-01T00:00:00Z"}
    if labels:
        meta["labels"] = labels
    if managed:
        meta["managedFields"] = [{"manager": "kubelet"}]
    return {"apiVersion": "v1", "kind": "Pod", "metadata": meta}


@pytest.fixture
def root(tmp_path):
    base = tmp_path / "mg"
    crds = base / "cluster-scoped-resources" / "apiextensions.k8s.io" / "customresourcedefinitions"
    crds.mkdir(parents=True)
    for plural, kind, scope in [
        ("fakeclusterscopedresources", "FakeClusterScopedResource", "Cluster"),
        ("fakenamespacescopedresources", "FakeNamespaceScopedResource", "Namespaced"),
    ]:
        (crds / f"{plural}.operator.openshift.io.yaml").write_text(
            yaml.safe_dump(_crd(plural, kind, scope)))
    core = base / "namespaces" / "default" / "core"
    core.mkdir(parents=True)
    pods = {"apiVersion": "v1", "kind": "List", "items": [
        _pod("foo", {"app": "web"}, managed=True), _pod("bar", {"app": "db"})]}
    (core / "pods.yaml").write_text(yaml.safe_dump(pods))
    (base / "namespaces" / "default" / "default.yaml").write_text(yaml.safe_dump(
        {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "default"}}))
    cv_dir = base / "cluster-scoped-resources" / "config.openshift.io" / "clusterversions"
    cv_dir.mkdir(parents=True)
    (cv_dir / "version.yaml").write_text(yaml.safe_dump({
        "apiVersion": "config.openshift.io/v1", "kind": "ClusterVersion",
        "metadata": {"name": "version"},
        "status": {"history": [{"state": "Completed", "version": "4.12.0"}],
                   "conditions": [{"type": "Available", "status": "True",
                                   "lastTransitionTime": "2023-01-01T00:00:00Z"}]},
    }))
    return base


def _getter(root, tmp_path, **kwargs):
    return Getter(root, known_resources=KNOWN, home=tmp_path / "home", **kwargs)


@pytest.mark.parametrize("namespace,rtype,want", [
    ("", ["fakeclusterscopedresources.operator.openshift.io"],
     "No resources fakeclusterscopedresources.operator.openshift.io found.\n"),
    ("default", ["fakeclusterscopedresources.operator.openshift.io"],
     "No resources fakeclusterscopedresources.operator.openshift.io found.\n"),
    ("", ["fakenamespacescopedresources.operator.openshift.io"],
     "No resources fakenamespacescopedresources.operator.openshift.io found.\n"),
    ("default", ["fakenamespacescopedresources.operator.openshift.io"],
     "No resources fakenamespacescopedresources.operator.openshift.io found in default namespace.\n"),
    ("", ["fakeclusterscopedresources.operator.openshift.io,fakenamespacescopedresources.operator.openshift.io"],
     "No resources fakeclusterscopedresources.operator.openshift.io,fakenamespacescopedresources.operator.openshift.io found.\n"),
    ("default", ["fakeclusterscopedresources.operator.openshift.io,fakenamespacescopedresources.operator.openshift.io"],
     "No resources fakeclusterscopedresources.operator.openshift.io,fakenamespacescopedresources.operator.openshift.io found.\n"),
])
def test_handle_empty_wide_output(root, tmp_path, namespace, rtype, want):
    getter = _getter(root, tmp_path, namespace=namespace)
    request = validate_args(rtype, getter.resolver)
    assert want in getter.render(request)


def test_run_empty_crd_through_run(root, tmp_path):
    getter = _getter(root, tmp_path, namespace="default")
    out = getter.run(["fakenamespacescopedresources.operator.openshift.io"])
    assert out == ("No resources fakenamespacescopedresources.operator.openshift.io "
                   "found in default namespace.\n")


def test_name_output(root, tmp_path):
    out = _getter(root, tmp_path, namespace="default", output="name").run(["pods"])
    assert out == "pod/foo\npod/bar\n"


def test_name_output_with_group(root, tmp_path):
    out = _getter(root, tmp_path, output="name").run(["clusterversion"])
    assert out == "clusterversion.config.openshift.io/version\n"


def test_json_single_resource_strips_managed_fields(root, tmp_path):
    out = _getter(root, tmp_path, namespace="default", output="json").run(["pod/foo"])
    data = json.loads(out)
    assert data["metadata"]["name"] == "foo"
    assert "managedFields" not in data["metadata"]
    assert data["metadata"]["creationTimestamp"] == "2023-01-01T00:00:00Z"


def test_json_show_managed_fields(root, tmp_path):
    getter = _getter(root, tmp_path, namespace="default", output="json",
                     show_managed_fields=True)
    data = json.loads(getter.run(["pod/foo"]))
    assert data["metadata"]["managedFields"] == [{"manager": "kubelet"}]


def test_yaml_list(root, tmp_path):
    out = _getter(root, tmp_path, namespace="default", output="yaml").run(["pods"])
    data = yaml.safe_load(out)
    assert data["kind"] == "List"
    assert [item["metadata"]["name"] for item in data["items"]] == ["foo", "bar"]


def test_label_selector(root, tmp_path):
    getter = _getter(root, tmp_path, namespace="default", output="name",
                     label_selector="app=db")
    assert getter.run(["pods"]) == "pod/bar\n"


def test_jsonpath_list(root, tmp_path):
    getter = _getter(root, tmp_path, namespace="default",
                     output="jsonpath={.items[*].metadata.name}")
    assert getter.run(["pods"]) == "foo bar"


def test_custom_columns(root, tmp_path):
    getter = _getter(root, tmp_path, namespace="default",
                     output="custom-columns=NAME:.metadata.name")
    assert getter.run(["pod", "foo"]) == "NAME\nfoo\n"


def test_default_table(root, tmp_path):
    out = _getter(root, tmp_path, namespace="default").run(["pods"])
    lines = out.splitlines()
    assert lines[0].startswith("NAME")
    assert lines[1].startswith("foo")
    assert lines[2].startswith("bar")


def test_cluster_version_table(root, tmp_path):
    out = _getter(root, tmp_path).run(["clusterversion"])
    lines = out.splitlines()
    assert lines[0].split() == ["NAME", "VERSION", "AVAILABLE", "PROGRESSING", "SINCE",
                                "STATUS"]
    assert lines[1].split()[:3] == ["version", "4.12.0", "True"]


def test_namespaces(root, tmp_path):
    out = _getter(root, tmp_path, output="name").run(["ns"])
    assert out == "namespace/default\n"


def test_other_namespace_filtered(root, tmp_path):
    out = _getter(root, tmp_path, namespace="other").run(["pods"])
    assert out == "No resources pods.core found in other namespace.\n"


def test_empty_pods_file_falls_back_to_pod_dirs(root, tmp_path):
    (root / "namespaces" / "default" / "core" / "pods.yaml").write_text("")
    pod_dir = root / "namespaces" / "default" / "pods" / "baz"
    pod_dir.mkdir(parents=True)
    (pod_dir / "baz.yaml").write_text(yaml.safe_dump(_pod("baz")))
    out = _getter(root, tmp_path, namespace="default", output="name").run(["pods"])
    assert out == "pod/baz\n"


def test_list_in_cluster_scoped_dir_is_error(root, tmp_path):
    cv_dir = root / "cluster-scoped-resources" / "config.openshift.io" / "clusterversions"
    (cv_dir / "broken.yaml").write_text(yaml.safe_dump({"kind": "List", "items": []}))
    with pytest.raises(OmcError, match="contains a \"List\" objectKind"):
        _getter(root, tmp_path).run(["clusterversion"])


def test_unknown_resource(root, tmp_path):
    with pytest.raises(UnknownResourceError):
        _getter(root, tmp_path).run(["nosuchthing"])


def test_no_args(root, tmp_path):
    with pytest.raises(OmcError):
        _getter(root, tmp_path).run([])


def test_all_namespaces_table_has_namespace_column(root, tmp_path):
    out = _getter(root, tmp_path, namespace="default", all_namespaces=True).run(["pods"])
    lines = out.splitlines()
    assert lines[0].split()[:2] == ["NAMESPACE", "NAME"]
    assert lines[1].split()[:2] == ["default", "foo"]