from pathlib import Path

import pytest

from omc.haproxy import (
    Backend,
    Port,
    Service,
    format_backends,
    haproxy_config_files,
    ic_from_file_name,
    is_backend_block,
    is_server_line,
    parse_haproxy_config,
    service_from_server_line,
)
from omc.helpers import OmcError

CONFIG = """global
  maxconn 20000

backend be_secure:openshift-monitoring:thanos-querier
  mode http
  server pod:thanos-querier-abc-1:thanos-querier:web:10.128.2.10:9091 10.128.2.10:9091 cookie aaa weight 1

backend be_http:testdata:rails-postgresql-example
  mode http
  server pod:rails-postgresql-example-1-xyz:rails-postgresql-example:web:10.129.2.20:8080 10.129.2.20:8080 cookie bbb weight 1

backend be_http:testdata:app.example.com
  server pod:hello-node-595bfd9b77-4rm94:hello-node::10.129.2.15:8080 10.129.2.15:8080 cookie ccc weight 1

backend be_edge_http:other-testdata:hello-node-secure
  server pod:hello-node-595bfd9b77-4rm94:hello-node::10.129.2.15:8080 10.129.2.15:8080 cookie ddd weight 1
"""


@pytest.fixture
def root(tmp_path):
    default = tmp_path / "ingress_controllers" / "default" / "router-default-abc123-a1b1c3"
    default.mkdir(parents=True)
    (default / "haproxy.config").write_text(CONFIG)
    shard = tmp_path / "ingress_controllers" / "shard" / "router-default-xyz789-x7y8z9"
    shard.mkdir(parents=True)
    (shard / "haproxy.config").write_text("global\n")
    return tmp_path


@pytest.fixture
def config_file(root):
    return root / "ingress_controllers" / "default" / "router-default-abc123-a1b1c3" / "haproxy.config"


def _rails():
    return Backend(namespace="testdata", route_name="rails-postgresql-example",
                   ingress_controller="default",
                   service=Service("rails-postgresql-example", Port(8080, "web")),
                   termination="be_http")


def _app():
    return Backend(namespace="testdata", route_name="app.example.com",
                   ingress_controller="default",
                   service=Service("hello-node", Port(8080, "")), termination="be_http")


def _secure():
    return Backend(namespace="other-testdata", route_name="hello-node-secure",
                   ingress_controller="default",
                   service=Service("hello-node", Port(8080, "")), termination="be_edge_http")


def _thanos():
    return Backend(namespace="openshift-monitoring", route_name="thanos-querier",
                   ingress_controller="default",
                   service=Service("thanos-querier", Port(9091, "web")), termination="be_secure")


def test_parse_excludes_openshift(config_file):
    assert parse_haproxy_config(config_file, "", False) == [_rails(), _app(), _secure()]


def test_parse_includes_openshift(config_file):
    assert parse_haproxy_config(config_file, "", True) == [_thanos(), _rails(), _app(), _secure()]


def test_parse_matching_namespace(config_file):
    assert parse_haproxy_config(config_file, "testdata", True) == [_rails(), _app()]


def test_parse_missing_file_raises(tmp_path):
    with pytest.raises(OmcError):
        parse_haproxy_config(tmp_path / "nope" / "haproxy.config")


def test_haproxy_config_files(root):
    found = haproxy_config_files(str(root))
    assert len(found) == 2
    assert all(Path(f).name == "haproxy.config" for f in found)


def test_haproxy_config_files_none(root):
    assert haproxy_config_files(str(root) + "/fake") == []


def test_ic_from_file_name():
    name = "./testdata/ingress_controllers/default/router-default-abc123-a1b1c3/haproxy.config"
    assert ic_from_file_name(name) == "default"


def test_ic_from_file_name_no_match():
    assert ic_from_file_name("/tmp/haproxy.config") == ""


@pytest.mark.parametrize("line,include,expected", [
    ("backend be_edge_http:testdata:hello-node", True,
     Backend(termination="be_edge_http", namespace="testdata", route_name="hello-node")),
    ("backend be_edge_http:testdata:hello-node.example.com", True,
     Backend(termination="be_edge_http", namespace="testdata",
             route_name="hello-node.example.com")),
    ("nonbackend be_edge_http:testdata:hello-node", True, None),
    ("backend be_edge_http:openshift-namespace:hello-node", False, None),
])
def test_is_backend_block(line, include, expected):
    assert is_backend_block(line, include) == expected


@pytest.mark.parametrize("line,expected", [
    ("  server pod:hello-node-595bfd9b77-4rm94:hello-node::10.129.2.15:8080 10.129.2.15:8080 "
     "cookie 863159b6f80f224951e08d6c052520a4 weight 1",
     "hello-node-595bfd9b77-4rm94:hello-node::10.129.2.15:8080"),
    ("nonserver po", ""),
])
def test_is_server_line(line, expected):
    assert is_server_line(line) == expected


@pytest.mark.parametrize("line,expected", [
    ("hello-node-595bfd9b77-4rm94:hello-node:web:10.129.2.15:8080",
     Service("hello-node", Port(8080, "web"))),
    ("hello-node-595bfd9b77-4rm94:hello-node::10.129.2.15:8080",
     Service("hello-node", Port(8080))),
    ("hello-node-595bfd9b77-4rm94:hello-node:web:10.129.2.15:eighthy-eighty",
     Service("hello-node", Port(port_name="web"))),
])
def test_service_from_server_line(line, expected):
    assert service_from_server_line(line) == expected


def test_service_from_short_line_raises():
    with pytest.raises(OmcError):
        service_from_server_line("hello-node:web")


@pytest.mark.parametrize("line,expected", [
    ("hello-node-595bfd9b77-4rm94:hello-node:web:10.129.2.15:8080", "web(8080)"),
    ("hello-node-595bfd9b77-4rm94:hello-node::10.129.2.15:8080", "8080"),
])
def test_port_string(line, expected):
    assert str(service_from_server_line(line).port) == expected


def test_backend_string():
    assert str(_rails()) == (
        "testdata\trails-postgresql-example\tdefault\trails-postgresql-example\tweb(8080)\thttp\t"
    )


def test_format_backends(root):
    out = format_backends(root)
    lines = out.rstrip("\n").split("\n")
    tokens = [[c for c in line.split("\t") if c] for line in lines]
    assert tokens[0] == ["NAMESPACE", "NAME", "INGRESSCONTROLLER", "SERVICES", "PORT", "TERMINATION"]
    assert tokens[1:] == [
        ["testdata", "rails-postgresql-example", "default", "rails-postgresql-example",
         "web(8080)", "http"],
        ["testdata", "app.example.com", "default", "hello-node", "8080", "http"],
        ["other-testdata", "hello-node-secure", "default", "hello-node", "8080", "edge/Redirect"],
    ]


def test_format_backends_namespace(root):
    out = format_backends(root, "other-testdata", True)
    assert len(out.rstrip("\n").split("\n")) == 2
    assert "hello-node-secure" in out