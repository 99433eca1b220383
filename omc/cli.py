"""Command-line entry point."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable, Sequence

from omc.certs import DEFAULT_RESOURCE_TYPES, Inspector
from omc.config import default_config_path, delete_context, set_config
from omc.etcd import endpoint_health, endpoint_status
from omc.get import Getter
from omc.haproxy import format_backends
from omc.helpers import OmcError
from omc.resources import load_known_resources


def _show_help(parser: argparse.ArgumentParser) -> Callable[[argparse.Namespace], int]:
    def run(_args: argparse.Namespace) -> int:
        parser.print_help()
        return 0
    return run


def _etcd_dir(args: argparse.Namespace) -> Path:
    return Path(args.root) / "etcd_info"


def _etcd_health(args: argparse.Namespace) -> int:
    sys.stdout.write(endpoint_health(_etcd_dir(args)))
    return 0


def _etcd_status(args: argparse.Namespace) -> int:
    sys.stdout.write(endpoint_status(_etcd_dir(args)))
    return 0


def _certs_inspect(args: argparse.Namespace) -> int:
    types = args.types.lower().split(",") if args.types else list(DEFAULT_RESOURCE_TYPES)
    inspector = Inspector(list_non_certs=args.list_non_certs,
                          show_parse_failure=args.show_parse_failure, out=sys.stdout)
    text = inspector.inspect_resources(args.root, types, args.namespace,
                                       args.all_namespaces, args.output)
    if text:
        sys.stdout.write(text)
    return 0


def _haproxy_backends(args: argparse.Namespace) -> int:
    sys.stdout.write(format_backends(args.root, args.namespace or "", args.include_openshift))
    return 0


def _get(args: argparse.Namespace) -> int:
    if not args.resources:
        args.get_parser.print_help()
        return 0
    known = load_known_resources(args.known_resources) if args.known_resources else None
    getter = Getter(args.root, namespace=args.namespace, all_namespaces=args.all_namespaces,
                    output=args.output, no_headers=args.no_headers,
                    show_managed_fields=args.show_managed_fields,
                    label_selector=args.selector, known_resources=known)
    sys.stdout.write(getter.run(args.resources))
    return 0


def _config(args: argparse.Namespace) -> int:
    set_config(args.use_local_crds, args.diff_command, args.default_project)
    return 0


def _delete(args: argparse.Namespace) -> int:
    config_file = args.config or default_config_path()
    delete_context(config_file, args.path or "", args.id, args.all)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="omc", description="Inspect must-gather data.")
    parser.add_argument("--root", default=".", help="must-gather root directory")
    parser.add_argument("--config", default=None, help="path of the omc.json file")
    parser.set_defaults(func=_show_help(parser))
    sub = parser.add_subparsers(dest="command")

    certs = sub.add_parser("certs", help="Inspect cluster certificates.")
    certs.set_defaults(func=_show_help(certs))
    certs_sub = certs.add_subparsers(dest="certs_command")
    inspect = certs_sub.add_parser("inspect", help="certificate inspect")
    inspect.add_argument("types", nargs="?", help="comma separated resource types")
    inspect.add_argument("-n", "--namespace", default="default")
    inspect.add_argument("-A", "--all-namespaces", action="store_true",
                         help="list the requested object(s) across all namespaces")
    inspect.add_argument("--list-non-certs", action="store_true",
                         help="list resources regardless if they contain a certificate")
    inspect.add_argument("--show-parse-failure", action="store_true",
                         help="list the output of parse attempts for resources")
    inspect.add_argument("-o", "--output", default="", help="json|yaml|wide")
    inspect.set_defaults(func=_certs_inspect)

    etcd = sub.add_parser("etcd", aliases=["etcdctl"], help="Shows etcd health and status.")
    etcd.set_defaults(func=_show_help(etcd))
    etcd_sub = etcd.add_subparsers(dest="etcd_command")
    etcd_sub.add_parser("health", help="Etcd health").set_defaults(func=_etcd_health)
    etcd_sub.add_parser("status", help="Etcd status").set_defaults(func=_etcd_status)

    haproxy = sub.add_parser("haproxy", help="Inspect haproxy config.")
    haproxy.set_defaults(func=_show_help(haproxy))
    haproxy_sub = haproxy.add_subparsers(dest="haproxy_command")
    backends = haproxy_sub.add_parser("backends", help="Inspect haproxy configured backends.")
    backends.add_argument("-n", "--namespace", default=None)
    backends.add_argument("--include-openshift", action="store_true",
                          help="include backends from openshift-* namespaces")
    backends.set_defaults(func=_haproxy_backends)

    get = sub.add_parser("get", help="Get objects in tabular or structured format.")
    get.add_argument("resources", nargs="*")
    get.add_argument("-n", "--namespace", default="default")
    get.add_argument("-A", "--all-namespaces", action="store_true")
    get.add_argument("--no-headers", action="store_true")
    get.add_argument("--show-managed-fields", action="store_true")
    get.add_argument("--show-labels", action="store_true")
    get.add_argument("-o", "--output", default="")
    get.add_argument("-l", "--selector", default="")
    get.add_argument("--known-resources", default=None,
                     help="yaml file mapping aliases to plural, group and scope")
    get.set_defaults(func=_get, get_parser=get)

    config = sub.add_parser("config", help="Set omc settings.")
    config.add_argument("--use-local-crds", action="store_true")
    config.add_argument("--diff-command", default="")
    config.add_argument("--default-project", default="")
    config.set_defaults(func=_config)

    delete = sub.add_parser("delete", help="Delete a saved must-gather.")
    delete.add_argument("path", nargs="?")
    delete.add_argument("-i", "--id", default="")
    delete.add_argument("-a", "--all", action="store_true")
    delete.set_defaults(func=_delete)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return int(exc.code or 0)
    try:
        return args.func(args)
    except OmcError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())