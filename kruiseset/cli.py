"""Command line entry point for the ``set`` commands, working on manifest files."""

from __future__ import annotations

import argparse
import sys
from typing import TextIO

import yaml

from kruiseset.common import AggregateError, load_objects, parse_dry_run
from kruiseset.image import SetImageOptions, get_resources_and_images
from kruiseset.resources import SetResourcesOptions
from kruiseset.selector import SetSelectorOptions, get_resources_and_selector
from kruiseset.serviceaccount import SetServiceAccountOptions
from kruiseset.subject import SubjectOptions, add_subjects

LOCAL_RESOURCE_ERROR = (
    "error: you must specify resources by --filename when --local is set.\n"
    "Example resource specifications include:\n"
    "   '-f rsrc.yaml'\n"
    "   '--filename=rsrc.json'"
)
NO_SERVER_ERROR = "resources can only be read with --filename: no server connection is configured"


def _add_common(parser: argparse.ArgumentParser, *, selector: bool = True, select_all: bool = True) -> None:
    parser.add_argument("-f", "--filename", action="append", default=[], dest="filenames",
                        help="Filename, directory, or '-' identifying the resources")
    parser.add_argument("-o", "--output", default="", help="Output format: name, yaml or json")
    parser.add_argument("--local", action="store_true", help="Do not contact a server")
    parser.add_argument("--dry-run", nargs="?", const="unchanged", default="none",
                        help='Must be "none", "server", or "client"')
    parser.add_argument("-n", "--namespace", default="default", help="Namespace to use")
    if select_all:
        parser.add_argument("--all", action="store_true",
                            help="Select all resources of the specified types")
    if selector:
        parser.add_argument("-l", "--selector", default="", help="Label query to filter on")


def _objects(resources: list[str], args: argparse.Namespace) -> list[dict]:
    if resources:
        raise ValueError(LOCAL_RESOURCE_ERROR if args.local else NO_SERVER_ERROR)
    return load_objects(args.filenames)


def _run_image(args: argparse.Namespace, out: TextIO) -> None:
    dry_run = parse_dry_run(args.dry_run)
    resources, images = get_resources_and_images(args.args)
    options = SetImageOptions(
        objects=_objects(resources, args),
        resources=resources,
        container_images=images,
        filenames=args.filenames,
        selector=args.selector,
        all=args.all,
        local=args.local,
        dry_run=dry_run,
        output=args.output,
        out=out,
    )
    options.validate()
    options.run()


def _run_resources(args: argparse.Namespace, out: TextIO) -> None:
    dry_run = parse_dry_run(args.dry_run)
    options = SetResourcesOptions(
        objects=_objects(args.args, args),
        filenames=args.filenames,
        selector=args.selector,
        container_selector=args.containers,
        all=args.all,
        local=args.local,
        dry_run=dry_run,
        output=args.output,
        limits=args.limits,
        requests=args.requests,
        out=out,
    )
    options.validate()
    options.run()


def _run_selector(args: argparse.Namespace, out: TextIO) -> None:
    dry_run = parse_dry_run(args.dry_run)
    resources, selector = get_resources_and_selector(args.args)
    options = SetSelectorOptions(
        objects=_objects(resources, args),
        resources=resources,
        selector=selector,
        resource_version=args.resource_version,
        local=args.local,
        dry_run=dry_run,
        output=args.output,
        out=out,
    )
    options.run()


def _run_serviceaccount(args: argparse.Namespace, out: TextIO) -> None:
    options = SetServiceAccountOptions(
        filenames=args.filenames,
        all=args.all,
        local=args.local,
        dry_run=parse_dry_run(args.dry_run),
        output=args.output,
        out=out,
    )
    options.complete(args.args)
    options.run()


def _run_subject(args: argparse.Namespace, out: TextIO) -> None:
    dry_run = parse_dry_run(args.dry_run)
    options = SubjectOptions(
        objects=_objects(args.args, args),
        filenames=args.filenames,
        selector=args.selector,
        all=args.all,
        local=args.local,
        dry_run=dry_run,
        output=args.output,
        users=args.user,
        groups=args.group,
        service_accounts=args.serviceaccount,
        namespace=args.namespace,
        out=out,
    )
    options.validate()
    options.run(add_subjects)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kruiseset", description="Set specific features on objects")
    commands = parser.add_subparsers(dest="command", required=True)

    image = commands.add_parser("image", help="Update image of a pod template")
    _add_common(image)
    image.add_argument("args", nargs="*", help="CONTAINER_NAME=CONTAINER_IMAGE pairs")
    image.set_defaults(handler=_run_image)

    resources = commands.add_parser(
        "resources", help="Update resource requests/limits on objects with pod templates"
    )
    _add_common(resources)
    resources.add_argument("-c", "--containers", default="*",
                           help="Names of containers to change; may use wildcards")
    resources.add_argument("--limits", default="", help="For example 'cpu=100m,memory=256Mi'")
    resources.add_argument("--requests", default="", help="For example 'cpu=100m,memory=256Mi'")
    resources.add_argument("args", nargs="*")
    resources.set_defaults(handler=_run_resources)

    selector = commands.add_parser("selector", help="Set the selector on a resource")
    _add_common(selector, selector=False, select_all=False)
    selector.add_argument("--resource-version", default="",
                          help="Only update if this is the current resource version")
    selector.add_argument("args", nargs="*", help="Resources followed by the selector expression")
    selector.set_defaults(handler=_run_selector)

    account = commands.add_parser("serviceaccount", aliases=["sa"],
                                  help="Update ServiceAccount of a resource")
    _add_common(account, selector=False)
    account.add_argument("args", nargs="*", help="Resources followed by SERVICE_ACCOUNT")
    account.set_defaults(handler=_run_serviceaccount)

    subject = commands.add_parser(
        "subject", help="Update User, Group or ServiceAccount in a RoleBinding/ClusterRoleBinding"
    )
    _add_common(subject)
    subject.add_argument("--user", action="append", default=[], help="Usernames to bind to the role")
    subject.add_argument("--group", action="append", default=[], help="Groups to bind to the role")
    subject.add_argument("--serviceaccount", action="append", default=[],
                         help="Service accounts to bind to the role, as namespace:name")
    subject.add_argument("args", nargs="*")
    subject.set_defaults(handler=_run_subject)
    return parser


def _message(exc: Exception) -> str:
    text = str(exc)
    return text if text.startswith("error") else f"error: {text}"


def main(argv=None) -> int:
    """Run one ``set`` command; return the process exit status."""
    args = _build_parser().parse_args(argv)
    try:
        args.handler(args, sys.stdout)
    except (ValueError, OSError, AggregateError, yaml.YAMLError) as exc:
        print(_message(exc), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())