"""Set the selector of a resource; only Services support it."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, TextIO

from kruiseset.common import DryRun, calculate_patches, object_name, print_object
from kruiseset.labels import LabelSelector, parse_to_label_selector


def update_selector_for_object(obj: dict, selector: LabelSelector) -> None:
    """Replace the selector of ``obj`` with the labels of ``selector``."""
    if obj.get("kind") != "Service":
        raise ValueError("setting a selector is only supported for Services")
    if selector.match_expressions:
        described = "[" + " ".join(str(expr) for expr in selector.match_expressions) + "]"
        raise ValueError(f"match expression {described} not supported on this object")
    obj.setdefault("spec", {})["selector"] = dict(selector.match_labels)


def get_resources_and_selector(args: list[str]) -> tuple[list[str], LabelSelector | None]:
    """Split arguments into resources and the selector given as the last argument."""
    if not args:
        return [], None
    return list(args[:-1]), parse_to_label_selector(args[-1])


@dataclass
class SetSelectorOptions:
    """Everything needed to set the selector on a set of objects.

    ``client`` is needed for changes sent to a server; it must offer
    ``patch(obj, body, dry_run)`` returning the object as the server stored it.
    """

    objects: list[dict] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    selector: LabelSelector | None = None
    resource_version: str = ""
    local: bool = False
    dry_run: DryRun = DryRun.NONE
    output: str = ""
    client: Any = None
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def validate(self) -> None:
        """Make sure a selector was given."""
        if self.selector is None:
            raise ValueError("one selector is required")

    def _print(self, obj: dict) -> None:
        if self.output:
            print_object(obj, self.output, self.out)
        else:
            self.out.write(f"{object_name(obj)} selector updated{self.dry_run.suffix}\n")

    def _mutate(self, obj: dict) -> dict:
        if self.resource_version:
            obj.setdefault("metadata", {})["resourceVersion"] = self.resource_version
        update_selector_for_object(obj, self.selector)
        return obj

    def run(self) -> None:
        """Set the selector on each object, then print or send it; stop at the first error."""
        self.validate()
        write_to_server = not (self.local or self.dry_run is DryRun.CLIENT)
        if write_to_server and self.client is None:
            raise ValueError("a client is required unless running locally or as a client dry run")
        for obj in self.objects:
            if self.resource_version:
                # Clearing it first makes the resource version part of the patch.
                (obj.get("metadata") or {}).pop("resourceVersion", None)
            (patch,) = calculate_patches([obj], self._mutate)
            if patch.error is not None:
                raise patch.error
            if not write_to_server:
                self._print(obj)
                continue
            actual = self.client.patch(obj, patch.after, dry_run=self.dry_run is DryRun.SERVER)
            self._print(actual)