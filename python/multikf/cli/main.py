#!/usr/bin/env python3
"""
multikf/cli/main.py

Command-line entry point. Each invocation builds one MultikfSettings and one
machine factory, performs a single operation on a single machine, and exits:

    multikf add mycluster --with_workers 1 --export_ports 8080:80
    multikf export mycluster -f
    multikf get pods mycluster --namespace kube-system
    multikf connect kubeflow mycluster
    multikf list
    multikf delete mycluster

Errors are logged with the operation and machine they concern, and the exit
status is non-zero.
"""

from __future__ import annotations

import os
import sys
import json
import asyncio
import argparse
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

import multikf
from multikf.errors import ConfigurationError, MultikfError
from multikf.machine.base import MachineCURDFactory
from multikf.machine.factory import new_machine_factory
from multikf.models.k8s import DEFAULT_VERSION, list_versions, new_kind_k8s_version
from multikf.models.machine import (
    MachineSpecification,
    parse_export_ports,
    parse_node_labels,
)
from multikf.models.provisioner import Provisioner, parse_provisioner
from multikf.models.settings import MultikfSettings
from multikf.plugins.base import ManifestPlugin, add_plugins

logger = logging.getLogger(__name__)

KUBEFLOW_GATEWAY_SERVICE = "svc/istio-ingressgateway"
KUBEFLOW_GATEWAY_NAMESPACE = "istio-system"
KUBEFLOW_GATEWAY_PORT = 80


def build_settings(args: argparse.Namespace) -> MultikfSettings:
    """
    Settings from the environment, overridden by whichever global flags were given.

    Raises:
        ConfigurationError: If the provisioner token (flag or environment) is unknown.
    """
    overrides: Dict[str, Any] = {}
    if args.dir is not None:
        overrides["root_dir"] = args.dir
    if args.provisioner is not None:
        overrides["provisioner"] = parse_provisioner(args.provisioner)
    if args.verbose is not None:
        overrides["verbose"] = args.verbose
    try:
        return MultikfSettings(**overrides)
    except ValidationError as exc:
        known = ", ".join(p.value for p in Provisioner)
        raise ConfigurationError(
            f"invalid settings (provisioner must be one of {known}): {exc}"
        ) from exc


def build_specification(args: argparse.Namespace) -> MachineSpecification:
    """Turn the `add` flags into a MachineSpecification."""
    try:
        version = new_kind_k8s_version(args.with_k8s_version, args.with_k8s_sha256)
    except ValueError as exc:
        raise ConfigurationError(str(exc), operation="add", machine=args.name) from exc

    return MachineSpecification(
        name=args.name,
        cpus=args.cpus,
        memory_gigabytes=args.memoryg,
        gpu_count=args.use_gpus,
        api_server_ip=args.with_ip,
        exported_ports=parse_export_ports(args.export_ports),
        worker_count=args.with_workers,
        node_labels=parse_node_labels(args.with_labels),
        audit_enabled=args.with_audit,
        audit_policy_absolute_path=(
            os.path.abspath(args.audit_policy) if args.audit_policy else ""
        ),
        local_path=os.path.abspath(args.use_localpath) if args.use_localpath else "",
        kubernetes_version=version,
        force_overwrite=args.force_overwrite,
    )


async def cmd_add(factory: MachineCURDFactory, args: argparse.Namespace) -> None:
    machine = factory.new_machine(args.name, build_specification(args))
    await machine.up(force=args.force)
    plugins = [ManifestPlugin(manifest) for manifest in args.with_manifest]
    await add_plugins(machine, plugins)


async def cmd_delete(factory: MachineCURDFactory, args: argparse.Namespace) -> None:
    await factory.new_machine(args.name).destroy(force=args.force)


async def cmd_export(factory: MachineCURDFactory, args: argparse.Namespace) -> None:
    path = await factory.new_machine(args.name).export_kubeconfig(
        args.kubeconfig_path or None, overwrite=args.force
    )
    print(path)


async def cmd_list(factory: MachineCURDFactory, args: argparse.Namespace) -> None:
    rows: List[Dict[str, str]] = []
    for machine in factory.list_machines():
        info = await machine.info()
        rows.append(info.to_row())
    print(json.dumps(rows, indent=2))


async def cmd_connect_kubeflow(
    factory: MachineCURDFactory, args: argparse.Namespace
) -> None:
    code = await factory.new_machine(args.name).portforward(
        KUBEFLOW_GATEWAY_SERVICE,
        KUBEFLOW_GATEWAY_NAMESPACE,
        KUBEFLOW_GATEWAY_PORT,
        local_port=args.port,
    )
    if code != 0:
        raise MultikfError(
            f"kubectl port-forward exited with {code}",
            operation="connect kubeflow",
            machine=args.name,
        )


async def cmd_get_pods(factory: MachineCURDFactory, args: argparse.Namespace) -> None:
    print(await factory.new_machine(args.name).get_pods(args.namespace))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multikf",
        description=(
            "multikf uses docker (kind) or vagrant to provision single-node "
            "Kubernetes clusters on this machine."
        ),
    )
    parser.add_argument("--dir", default=None, help="root dir (default: .multikfdir)")
    parser.add_argument(
        "--provisioner",
        default=None,
        help="provisioner, possible values: docker and vagrant (default: docker)",
    )
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="stream the output of kind/vagrant (default: true)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("version", help="print the version of multikf")

    versions = ", ".join(v.version for v in list_versions())
    add = sub.add_parser("add", help="add a guest machine")
    add.add_argument("name")
    add.add_argument("--cpus", type=int, default=1)
    add.add_argument("--memoryg", type=int, default=1, help="memory in gigabytes")
    add.add_argument("--use_gpus", type=int, default=0)
    add.add_argument("--with_ip", default="0.0.0.0", help="kube API address")
    add.add_argument(
        "--export_ports",
        default="",
        help="host:container pairs, comma separated (e.g. 8443:443,8080:80)",
    )
    add.add_argument("--with_workers", type=int, default=0)
    add.add_argument("--with_labels", default="", help="key1=value1,key2=value2")
    add.add_argument("--with_audit", action="store_true", help="enable k8s auditing")
    add.add_argument("--audit_policy", default="", help="audit policy file")
    add.add_argument("--use_localpath", default="", help="host dir mounted in every node")
    add.add_argument(
        "--with_k8s_version",
        default=DEFAULT_VERSION,
        help=f"kubernetes version, known: {versions}",
    )
    add.add_argument("--with_k8s_sha256", default="", help="node image sha256")
    add.add_argument(
        "--with_manifest",
        action="append",
        default=[],
        help="manifest applied after the cluster is up (repeatable)",
    )
    add.add_argument(
        "-f", "--force", action="store_true", help="recreate a running machine"
    )
    add.add_argument(
        "--force_overwrite",
        action="store_true",
        help="overwrite previously rendered configuration",
    )

    delete = sub.add_parser("delete", help="delete a guest machine")
    delete.add_argument("name")
    delete.add_argument("-f", "--force", action="store_true", help="do not prompt")

    sub.add_parser("list", help="list guest machines")

    export = sub.add_parser("export", help="export kubeconfig of a guest machine")
    export.add_argument("name")
    export.add_argument(
        "--kubeconfig_path", default="", help="default: <dir>/<name>/kubeconfig"
    )
    export.add_argument(
        "-f", "--force", action="store_true", help="overwrite an existing file"
    )

    connect = sub.add_parser("connect", help="connect to a service of a guest machine")
    connect_sub = connect.add_subparsers(dest="target", required=True)
    kubeflow = connect_sub.add_parser("kubeflow", help="forward the kubeflow gateway")
    kubeflow.add_argument("name")
    kubeflow.add_argument("--port", type=int, default=None, help="local port")

    get = sub.add_parser("get", help="get resources of a guest machine")
    get_sub = get.add_subparsers(dest="resource", required=True)
    pods = get_sub.add_parser("pods", help="list pods")
    pods.add_argument("name")
    pods.add_argument("--namespace", default="", help="default: all namespaces")

    return parser


_COMMANDS = {
    "add": cmd_add,
    "delete": cmd_delete,
    "export": cmd_export,
    "list": cmd_list,
    "connect": cmd_connect_kubeflow,
    "get": cmd_get_pods,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "version":
        print(f"multikf {multikf.__version__}")
        return 0

    try:
        settings = build_settings(args)
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        factory = new_machine_factory(
            settings.provisioner, settings.root_dir, verbose=settings.verbose
        )
        asyncio.run(_COMMANDS[args.command](factory, args))
    except MultikfError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
