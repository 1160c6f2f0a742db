"""Resource quantities, requirement lists and container selection."""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass

FORMAT_PATTERN = r"^([+-]?[0-9.]+)([eEinumkKMGTP]*[-+]?[0-9]*)$"

_GENERAL = re.compile(FORMAT_PATTERN)
_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
_SUFFIX = re.compile(r"(?:Ki|Mi|Gi|Ti|Pi|Ei|[numkMGTPE]|[eE][+-]?\d+)?")


@dataclass
class ResourceRequirements:
    """Compute resource limits and requests; ``None`` means not given."""

    limits: dict[str, str] | None = None
    requests: dict[str, str] | None = None


def _check_quantity(text: str) -> str:
    match = _GENERAL.match(text)
    if match is None or not _NUMBER.fullmatch(match.group(1)):
        raise ValueError(f"quantities must match the regular expression '{FORMAT_PATTERN}'")
    if not _SUFFIX.fullmatch(match.group(2)):
        raise ValueError("unable to parse quantity's suffix")
    return text


def parse_resource_list(spec: str) -> dict[str, str] | None:
    """Parse ``name=quantity`` statements separated by commas.

    An empty specification yields ``None``.
    """
    if not spec:
        return None
    result: dict[str, str] = {}
    for statement in spec.split(","):
        parts = statement.split("=")
        if len(parts) != 2:
            raise ValueError(
                f"Invalid argument syntax {statement}, expected <resource>=<value>"
            )
        name, quantity = parts
        result[name] = _check_quantity(quantity)
    return result


def handle_resource_requirements(limits: str, requests: str) -> ResourceRequirements:
    """Build :class:`ResourceRequirements` from ``--limits`` and ``--requests`` values."""
    return ResourceRequirements(
        limits=parse_resource_list(limits),
        requests=parse_resource_list(requests),
    )


def select_containers(containers: list[dict], selector: str) -> list[dict]:
    """Return the containers whose names match the shell-style ``selector``."""
    return [
        container
        for container in containers
        if fnmatch.fnmatchcase(container.get("name", ""), selector)
    ]