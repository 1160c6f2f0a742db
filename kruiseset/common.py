"""Shared building blocks for the ``set`` commands: errors, patches, pod specs, I/O."""

from __future__ import annotations

import copy
import enum
import json
import sys
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

import yaml

_MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")

# Kinds whose pod template lives at spec.template.spec.
_TEMPLATE_KINDS = frozenset(
    {
        "Deployment",
        "DaemonSet",
        "ReplicaSet",
        "StatefulSet",
        "Job",
        "ReplicationController",
        "CloneSet",
    }
)


def _aggregate_message(errors: list[Any]) -> str:
    if not errors:
        return ""
    if len(errors) == 1:
        return str(errors[0])
    seen: list[str] = []
    for error in errors:
        message = str(error)
        if message not in seen:
            seen.append(message)
    if len(seen) == 1:
        return seen[0]
    return "[" + ", ".join(seen) + "]"


class AggregateError(Exception):
    """Several errors reported together; duplicate messages are shown once."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(_aggregate_message(self.errors))


def raise_aggregate(errors: Iterable[Any]) -> None:
    """Raise an :class:`AggregateError` if ``errors`` holds anything."""
    collected = list(errors)
    if collected:
        raise AggregateError(collected)


class DryRun(enum.Enum):
    """How far a change is carried out."""

    NONE = "none"
    CLIENT = "client"
    SERVER = "server"

    @property
    def suffix(self) -> str:
        """Text appended to the operation message for this strategy."""
        return {
            DryRun.NONE: "",
            DryRun.CLIENT: " (dry run)",
            DryRun.SERVER: " (server dry run)",
        }[self]


def parse_dry_run(value: str) -> DryRun:
    """Turn a ``--dry-run`` flag value into a :class:`DryRun`."""
    mapping = {
        "none": DryRun.NONE,
        "false": DryRun.NONE,
        "client": DryRun.CLIENT,
        "unchanged": DryRun.CLIENT,
        "true": DryRun.CLIENT,
        "server": DryRun.SERVER,
    }
    try:
        return mapping[value]
    except KeyError:
        raise ValueError(
            f'Invalid dry-run value ({value}). Must be "none", "server", or "client".'
        ) from None


@dataclass
class Patch:
    """The outcome of mutating one object: its states before and after, and the diff."""

    obj: dict
    before: dict
    after: dict | None = None
    patch: dict | None = None
    error: Exception | None = None


def merge_patch(before: dict, after: dict) -> dict:
    """Compute a JSON merge patch that turns ``before`` into ``after``."""
    if not isinstance(before, dict) or not isinstance(after, dict):
        raise TypeError("merge patches are computed between two objects")
    patch: dict = {key: None for key in before if key not in after}
    for key, value in after.items():
        if key not in before:
            patch[key] = copy.deepcopy(value)
        elif before[key] != value:
            if isinstance(before[key], dict) and isinstance(value, dict):
                patch[key] = merge_patch(before[key], value)
            else:
                patch[key] = copy.deepcopy(value)
    return patch


def calculate_patches(
    objects: Iterable[dict], mutate: Callable[[dict], dict | None]
) -> list[Patch]:
    """Apply ``mutate`` to every object and record what changed.

    ``mutate`` changes the object in place and returns it, or returns ``None``
    when nothing is to be written. Errors are kept on the patch rather than raised.
    """
    patches = []
    for obj in objects:
        result = Patch(obj=obj, before=copy.deepcopy(obj))
        try:
            mutated = mutate(obj)
        except Exception as exc:  # each object fails on its own
            result.error = exc
        else:
            if mutated is not None:
                result.after = copy.deepcopy(mutated)
                result.patch = merge_patch(result.before, result.after)
        patches.append(result)
    return patches


def _group_of(obj: dict) -> str:
    api_version = obj.get("apiVersion", "") or ""
    return api_version.rsplit("/", 1)[0] if "/" in api_version else ""


def object_name(obj: dict) -> str:
    """The ``kind[.group]/name`` form used to identify an object in output."""
    kind = (obj.get("kind") or "").lower()
    group = _group_of(obj)
    name = (obj.get("metadata") or {}).get("name", "")
    qualified = f"{kind}.{group}" if group else kind
    return f"{qualified}/{name}"


def pod_spec_of(obj: dict) -> dict | None:
    """Return the pod spec an object carries, creating empty levels as needed.

    A SidecarSet has no pod template, so ``None`` is returned for it.
    """
    kind = obj.get("kind")
    if kind == "SidecarSet":
        return None
    if kind == "Pod":
        return obj.setdefault("spec", {})
    if kind in _TEMPLATE_KINDS:
        template = obj.setdefault("spec", {}).setdefault("template", {}) or {}
        obj["spec"]["template"] = template
        return template.setdefault("spec", {})
    if kind == "CronJob":
        job_spec = obj.setdefault("spec", {}).setdefault("jobTemplate", {}).setdefault("spec", {})
        return job_spec.setdefault("template", {}).setdefault("spec", {})
    raise ValueError(f"the object is not a pod or does not have a pod template: {kind}")


def update_pod_spec(obj: dict, fn: Callable[[dict | None], None]) -> dict | None:
    """Call ``fn`` on the pod spec of ``obj`` and return that spec."""
    spec = pod_spec_of(obj)
    fn(spec)
    return spec


def _is_pair(arg: str) -> bool:
    return ("=" in arg and not arg.startswith("=")) or (arg.endswith("-") and arg != "-")


def get_resources_and_pairs(args: Iterable[str], pair_type: str) -> tuple[list[str], list[str]]:
    """Split arguments into resources and the ``key=value`` pairs that follow them."""
    resources: list[str] = []
    pairs: list[str] = []
    for arg in args:
        if _is_pair(arg):
            pairs.append(arg)
        elif pairs:
            raise ValueError(f"all resources must be specified before {pair_type} changes: {arg}")
        else:
            resources.append(arg)
    return resources, pairs


def parse_pairs(pair_args: Iterable[str], pair_type: str) -> dict[str, str]:
    """Parse ``key=value`` arguments into a mapping."""
    pairs: dict[str, str] = {}
    invalid: list[str] = []
    for arg in pair_args:
        if "=" in arg and not arg.startswith("="):
            key, value = arg.split("=", 1)
            pairs[key] = value
        else:
            invalid.append(arg)
    if invalid:
        raise ValueError(f"invalid {pair_type} format: {', '.join(invalid)}")
    return pairs


def _flatten(doc: dict, source: str) -> Iterator[dict]:
    kind = doc.get("kind")
    if not kind:
        raise ValueError(f"{source}: object has no kind")
    if kind.endswith("List") and isinstance(doc.get("items"), list):
        for item in doc["items"]:
            yield from _flatten(item, source)
    else:
        yield doc


def _sources(path: str) -> Iterator[tuple[str, str]]:
    if path == "-":
        yield "<stdin>", sys.stdin.read()
        return
    location = Path(path)
    if location.is_dir():
        for child in sorted(location.iterdir()):
            if child.is_file() and child.suffix in _MANIFEST_SUFFIXES:
                yield str(child), child.read_text(encoding="utf-8")
    else:
        yield path, location.read_text(encoding="utf-8")


def load_objects(paths: Iterable[str]) -> list[dict]:
    """Read resource objects from YAML or JSON files, directories or ``-``."""
    objects: list[dict] = []
    for path in paths:
        for source, text in _sources(path):
            for doc in yaml.safe_load_all(text):
                if doc is None:
                    continue
                if not isinstance(doc, dict):
                    raise ValueError(f"{source}: not a resource object")
                objects.extend(_flatten(doc, source))
    return objects


def print_object(obj: dict, output: str, out: TextIO) -> None:
    """Write ``obj`` to ``out`` in the ``name``, ``yaml`` or ``json`` format."""
    if output == "name":
        out.write(object_name(obj) + "\n")
    elif output == "yaml":
        out.write(yaml.safe_dump(obj, default_flow_style=False, sort_keys=True))
    elif output == "json":
        out.write(json.dumps(obj, indent=4, sort_keys=True) + "\n")
    else:
        raise ValueError(f'unable to match a printer suitable for the output format "{output}"')