"""Update resource requests and limits of containers in pod templates."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, TextIO

from kruiseset.common import (
    DryRun,
    calculate_patches,
    object_name,
    pod_spec_of,
    print_object,
    raise_aggregate,
    update_pod_spec,
)
from kruiseset.quantities import (
    ResourceRequirements,
    handle_resource_requirements,
    select_containers,
)

_KRUISE_GROUP = "apps.kruise.io"


def _is_fetched_workload(obj: dict) -> bool:
    api_version = obj.get("apiVersion") or ""
    kind = obj.get("kind")
    if kind == "CloneSet":
        return api_version.split("/", 1)[0] == _KRUISE_GROUP
    if kind == "StatefulSet":
        return api_version == f"{_KRUISE_GROUP}/v1beta1"
    return False


@dataclass
class SetResourcesOptions:
    """Everything needed to set compute resource requirements on objects.

    ``client`` is needed for changes sent to a server. It must offer
    ``get(obj)``, ``replace(obj)`` and ``patch(obj, body, dry_run)``.
    """

    objects: list[dict] = field(default_factory=list)
    filenames: list[str] = field(default_factory=list)
    kustomize: str = ""
    selector: str = ""
    container_selector: str = "*"
    all: bool = False
    local: bool = False
    dry_run: DryRun = DryRun.NONE
    output: str = ""
    limits: str = ""
    requests: str = ""
    requirements: ResourceRequirements = field(default_factory=ResourceRequirements)
    client: Any = None
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def validate(self) -> None:
        """Check the options and parse the requested limits and requests."""
        if self.local and self.dry_run is DryRun.SERVER:
            raise ValueError(
                "cannot specify --local and --dry-run=server - did you mean --dry-run=client?"
            )
        if self.all and self.selector:
            raise ValueError("cannot set --all and --selector at the same time")
        if not self.limits and not self.requests:
            raise ValueError(
                "you must specify an update to requests or limits "
                "(in the form of --requests/--limits)"
            )
        self.requirements = handle_resource_requirements(self.limits, self.requests)

    def _print(self, obj: dict) -> None:
        if self.output:
            print_object(obj, self.output, self.out)
        else:
            self.out.write(
                f"{object_name(obj)} resource requirements updated{self.dry_run.suffix}\n"
            )

    def _apply(self, container: dict) -> None:
        for name, wanted, given in (
            ("limits", self.requirements.limits, self.limits),
            ("requests", self.requirements.requests, self.requests),
        ):
            if given:
                resources = container.setdefault("resources", {})
                if not resources.get(name):
                    resources[name] = {}
            for key, value in (wanted or {}).items():
                container["resources"][name][key] = value

    def _run_fetched(self, first: dict) -> None:
        if self.client is not None:
            res = self.client.get(first)
        elif self.local:
            res = first
        else:
            raise ValueError("a client is required unless running locally")
        spec = pod_spec_of(res)
        containers = select_containers(spec.get("containers") or [], self.container_selector)
        if not containers:
            return
        for container in containers:
            self._apply(container)
        if not self.local:
            self.client.replace(res)
        self._print(res)

    def _mutate(self, obj: dict, errors: list[Any]) -> dict | None:
        transformed = False

        def apply(spec: dict | None) -> None:
            nonlocal transformed
            containers = select_containers((spec or {}).get("containers") or [], self.container_selector)
            if not containers:
                errors.append(f"error: unable to find container named {self.container_selector}")
                return
            for container in containers:
                self._apply(container)
                transformed = True

        update_pod_spec(obj, apply)
        return obj if transformed else None

    def run(self) -> None:
        """Apply the requirements, then print or send each changed object."""
        if not self.objects:
            return
        first = self.objects[0]
        if _is_fetched_workload(first):
            self._run_fetched(first)
            return
        if self.client is None and not (self.local or self.dry_run is DryRun.CLIENT):
            raise ValueError("a client is required unless running locally or as a client dry run")
        errors: list[Any] = []
        patches = calculate_patches(self.objects, lambda obj: self._mutate(obj, errors))
        for patch in patches:
            name = object_name(patch.obj)
            if patch.error is not None:
                errors.append(f"error: {name} {patch.error}")
                continue
            if not patch.patch:
                continue
            if self.local or self.dry_run is DryRun.CLIENT:
                try:
                    self._print(patch.obj)
                except ValueError as exc:
                    errors.append(exc)
                continue
            try:
                actual = self.client.patch(
                    patch.obj, patch.patch, dry_run=self.dry_run is DryRun.SERVER
                )
            except Exception as exc:  # whatever the client reports is collected
                errors.append(f"failed to patch resources update to pod template {exc}")
                continue
            try:
                self._print(actual)
            except ValueError as exc:
                errors.append(exc)
        raise_aggregate(errors)