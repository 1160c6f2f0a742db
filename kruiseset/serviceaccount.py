"""Update the service account of resources that carry a pod template."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, TextIO

from kruiseset.common import (
    DryRun,
    calculate_patches,
    load_objects,
    object_name,
    print_object,
    raise_aggregate,
    update_pod_spec,
)

RESOURCE_MISSING = """You must provide one or more resources by argument or filename.
Example resource specifications include:
   '-f rsrc.yaml'
   '--filename=rsrc.json'
   '<resource> <name>'
   '<resource>'"""


@dataclass
class SetServiceAccountOptions:
    """Everything needed to set the service account of pod templates.

    ``client`` is needed when resources are named on the command line or
    changes go to a server. It must offer ``fetch(resources, select_all)``
    returning the named objects and ``patch(obj, body, dry_run)`` returning
    the object as the server stored it.
    """

    objects: list[dict] = field(default_factory=list)
    filenames: list[str] = field(default_factory=list)
    service_account_name: str = ""
    all: bool = False
    local: bool = False
    dry_run: DryRun = DryRun.NONE
    output: str = ""
    client: Any = None
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def complete(self, args: list[str]) -> None:
        """Take the service account and resources from ``args`` and gather the objects."""
        if self.local and self.dry_run is DryRun.SERVER:
            raise ValueError(
                "cannot specify --local and --dry-run=server - did you mean --dry-run=client?"
            )
        if not args:
            raise ValueError("serviceaccount is required")
        self.service_account_name = args[-1]
        resources = [] if self.local else list(args[:-1])
        if not self.filenames and not resources:
            raise ValueError(RESOURCE_MISSING)
        objects = load_objects(self.filenames)
        if resources:
            if self.client is None:
                raise ValueError("a client is required to fetch resources from a server")
            objects.extend(self.client.fetch(resources, select_all=self.all))
        self.objects = objects

    def _print(self, obj: dict) -> None:
        if self.output:
            print_object(obj, self.output, self.out)
        else:
            self.out.write(f"{object_name(obj)} serviceaccount updated{self.dry_run.suffix}\n")

    def _mutate(self, obj: dict) -> dict:
        def apply(spec: dict | None) -> None:
            if spec is None:
                raise ValueError(
                    f"the object does not have a pod template: {obj.get('kind')}"
                )
            spec["serviceAccountName"] = self.service_account_name

        update_pod_spec(obj, apply)
        return obj

    def run(self) -> None:
        """Set the service account, then print or send each object."""
        offline = self.local or self.dry_run is DryRun.CLIENT
        if self.client is None and not offline:
            raise ValueError("a client is required unless running locally or as a client dry run")
        errors: list[Any] = []
        for patch in calculate_patches(self.objects, self._mutate):
            if patch.error is not None:
                errors.append(f"error: {object_name(patch.obj)} {patch.error}")
                continue
            if offline:
                try:
                    self._print(patch.obj)
                except ValueError as exc:
                    errors.append(exc)
                continue
            try:
                actual = self.client.patch(
                    patch.obj, patch.after, dry_run=self.dry_run is DryRun.SERVER
                )
            except Exception as exc:  # whatever the client reports is collected
                errors.append(f"failed to patch ServiceAccountName {exc}")
                continue
            try:
                self._print(actual)
            except ValueError as exc:
                errors.append(exc)
        raise_aggregate(errors)