"""Update the container images of resources that carry a pod template."""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TextIO

from kruiseset.common import (
    DryRun,
    calculate_patches,
    get_resources_and_pairs,
    object_name,
    parse_pairs,
    print_object,
    raise_aggregate,
    update_pod_spec,
)

WILDCARD = "*"


def resolve_image(image: str) -> str:
    """Resolve an image reference; images are used as given."""
    return image


def set_image(containers: list[dict], container_name: str, image: str) -> bool:
    """Set the image of the named container (or all for ``*``); report whether any matched."""
    found = False
    for container in containers:
        if container.get("name") == container_name or container_name == WILDCARD:
            container["image"] = image
            found = True
    return found


def get_resources_and_images(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split arguments into resources and a container-name to image mapping."""
    resources, image_args = get_resources_and_pairs(args, "image")
    return resources, parse_pairs(image_args, "image")


def has_wildcard_key(container_images: dict[str, str]) -> bool:
    """Whether the mapping addresses all containers with ``*``."""
    return WILDCARD in container_images


@dataclass
class SetImageOptions:
    """Everything needed to update container images on a set of objects.

    ``client`` is required for changes sent to a server; it must offer
    ``patch(obj, body, dry_run)`` returning the object as the server stored it.
    """

    objects: list[dict] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    container_images: dict[str, str] = field(default_factory=dict)
    filenames: list[str] = field(default_factory=list)
    kustomize: str = ""
    selector: str = ""
    all: bool = False
    local: bool = False
    dry_run: DryRun = DryRun.NONE
    output: str = ""
    client: Any = None
    resolver: Callable[[str], str] = resolve_image
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def validate(self) -> None:
        """Raise :class:`AggregateError` listing every problem with the options."""
        errors = []
        if self.all and self.selector:
            errors.append("cannot set --all and --selector at the same time")
        if not self.resources and not self.filenames and not self.kustomize:
            errors.append(
                "one or more resources must be specified as <resource> <name> or <resource>/<name>"
            )
        if not self.container_images:
            errors.append("at least one image update is required")
        elif len(self.container_images) > 1 and has_wildcard_key(self.container_images):
            errors.append(
                "all containers are already specified by *, "
                "but saw more than one container_name=container_image pairs"
            )
        if self.local and self.dry_run is DryRun.SERVER:
            errors.append(
                "cannot specify --local and --dry-run=server - did you mean --dry-run=client?"
            )
        raise_aggregate(errors)

    def _print(self, obj: dict) -> None:
        if self.output:
            print_object(obj, self.output, self.out)
        else:
            self.out.write(f"{object_name(obj)} image updated{self.dry_run.suffix}\n")

    def _apply_images(self, obj: dict, errors: list[str]) -> dict:
        def apply(spec: dict | None) -> None:
            holder = spec if spec is not None else obj.setdefault("spec", {})
            for name, image in self.container_images.items():
                try:
                    resolved = self.resolver(image)
                except Exception as exc:  # resolvers are supplied by callers
                    errors.append(
                        f'error: unable to resolve image "{image}" for container "{name}": {exc}'
                    )
                    if name == WILDCARD:
                        break
                    continue
                init_found = set_image(holder.get("initContainers") or [], name, resolved)
                found = set_image(holder.get("containers") or [], name, resolved)
                if not (found or init_found):
                    errors.append(f'error: unable to find container named "{name}"')

        update_pod_spec(obj, apply)
        return obj

    def run(self) -> None:
        """Update the images, then print or send each changed object."""
        if self.client is None and not (self.local or self.dry_run is DryRun.CLIENT):
            raise ValueError("a client is required unless running locally or as a client dry run")
        errors: list[Any] = []
        patches = calculate_patches(self.objects, lambda obj: self._apply_images(obj, errors))
        for patch in patches:
            if patch.error is not None:
                errors.append(f"error: {object_name(patch.obj)} {patch.error}")
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
                    patch.obj, patch.after, dry_run=self.dry_run is DryRun.SERVER
                )
            except Exception as exc:  # whatever the client reports is collected
                errors.append(f"failed to patch image update to pod template: {exc}")
                continue
            try:
                self._print(actual)
            except ValueError as exc:
                errors.append(exc)
        raise_aggregate(errors)