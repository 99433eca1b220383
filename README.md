# omc

`omc` reads an OpenShift must-gather directory and shows what it holds.
Nothing connects to a cluster: all data comes from the files collected in the
must-gather.

## Installation

```
pip install .
```

The test suite uses pytest; `pip install ".[test]"` installs it.

## Command line

Every command reads the must-gather below `--root` (default: the current
directory). On failure a command prints `error: ...` to stderr and exits
with status 1.

### get

```
omc --root /path/to/must-gather get pods
omc --root /path/to/must-gather get pods/my-pod -o yaml
omc --root /path/to/must-gather get deployments,services -A
```

Arguments are a type (`pods`), a type with names (`pods a b`), `type/name`
pairs, a comma separated list of types, or `all`.

- `-n/--namespace` (default `default`), `-A/--all-namespaces`
- `-o/--output`: `yaml`, `json`, `name`, `jsonpath=<template>`,
  `custom-columns=<HEADER>:<expr>,...`, or empty for a table
- `-l/--selector`: label selector supporting `=`, `==` and `!=`
- `--no-headers`, `--show-managed-fields`
- `--known-resources FILE`: a YAML file mapping aliases to `plural`,
  `group` and `namespaced`

Types not in the known-resources file are looked up in the must-gather's
CustomResourceDefinitions and in `~/.omc/customresourcedefinitions`.

Tables have dedicated columns for APIService, ClusterVersion,
CustomResourceDefinition, SecurityContextConstraints and OAuthClient. Every
other kind is shown as name and age (with the namespace under `-A`).

### certs inspect

```
omc --root /path/to/must-gather certs inspect cm,secret,csr -A
```

Lists the certificates found in config maps (`ca-bundle.crt`, `ca.crt`,
`service-ca.crt`), secrets (`tls.crt` and the same CA keys) and issued
certificate signing requests, with subject, validity period, names it is
valid for, issuer, groups and usages. Options: `-n`, `-A`, `-o json|yaml|wide`,
`--list-non-certs`, `--show-parse-failure`.

### haproxy backends

```
omc --root /path/to/must-gather haproxy backends --include-openshift
```

Lists the backends of every `ingress_controllers/*/*/haproxy.config`, with
namespace, route, ingress controller, service, port and termination.
Backends in `openshift-*` namespaces are left out unless `--include-openshift`
is given; `-n` restricts the list to one namespace.

### etcd (alias etcdctl)

```
omc --root /path/to/must-gather etcd status
omc --root /path/to/must-gather etcd health
```

Render `etcd_info/endpoint_status.json` and `etcd_info/endpoint_health.json`
as tables.

### config and delete

`omc config --default-project NS --diff-command CMD --use-local-crds` stores
these settings in `~/.omc/omc.json`, keeping the saved contexts.
`omc delete PATH`, `omc delete -i ID` and `omc delete -a` remove saved
contexts from that file (or from the file given with `--config`).

## Library use

```python
from omc.haproxy import parse_haproxy_config
from omc.etcd import endpoint_health
from omc.get import Getter

for backend in parse_haproxy_config("haproxy.config", "", False):
    print(backend)

print(endpoint_health("/path/to/must-gather/etcd_info/"))
print(Getter("/path/to/must-gather", namespace="default", output="name").run(["pods"]))
```

`omc.config.Config` loads and saves the configuration file,
`omc.certs.Inspector` inspects single objects as well as whole must-gather
directories, and `omc.helpers` holds the age formatting, label selector
matching and JSONPath rendering used by the commands.

## What it does not do

- No table of built-in resource aliases ships with the package; supply one
  with `--known-resources`, otherwise only CustomResourceDefinitions are
  recognised.
- There are no kind-specific table columns for pods, deployments and other
  built-in kinds beyond the five listed above.
- There is no `describe` command, no collection of CRDs from a live cluster,
  and no command to add or switch must-gather contexts; `config` and
  `delete` only edit the settings file.