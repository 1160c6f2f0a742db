"""Add users, groups and service accounts to RoleBindings and ClusterRoleBindings."""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TextIO

from kruiseset.common import (
    DryRun,
    calculate_patches,
    object_name,
    print_object,
    raise_aggregate,
)

RBAC_GROUP = "rbac.authorization.k8s.io"
USER_KIND = "User"
GROUP_KIND = "Group"
SERVICE_ACCOUNT_KIND = "ServiceAccount"

_BINDING_KINDS = frozenset({"RoleBinding", "ClusterRoleBinding"})
_SERVICE_ACCOUNT_FORMAT = "serviceaccount must be <namespace>:<name>"


@dataclass(frozen=True)
class Subject:
    """One subject of a role binding."""

    kind: str
    name: str
    api_group: str = ""
    namespace: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Subject:
        """Build a subject from its manifest form."""
        return cls(
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            api_group=data.get("apiGroup", ""),
            namespace=data.get("namespace", ""),
        )

    def to_dict(self) -> dict:
        """The manifest form, leaving out empty optional fields."""
        result = {"kind": self.kind}
        if self.api_group:
            result["apiGroup"] = self.api_group
        result["name"] = self.name
        if self.namespace:
            result["namespace"] = self.namespace
        return result


UpdateSubjects = Callable[[list[Subject], list[Subject]], "tuple[bool, list[Subject]]"]


def add_subjects(existing: list[Subject], targets: list[Subject]) -> tuple[bool, list[Subject]]:
    """Append every target not already among ``existing``; report whether any was added."""
    updated = list(existing)
    transformed = False
    for item in targets:
        if item not in existing:
            updated.append(item)
            transformed = True
    return transformed, updated


def update_subject_for_object(obj: dict, subjects: list[Subject], fn: UpdateSubjects) -> bool:
    """Apply ``fn`` to the subjects of a binding in place; return whether it changed."""
    if obj.get("kind") not in _BINDING_KINDS:
        raise ValueError("setting subjects is only supported for RoleBinding/ClusterRoleBinding")
    existing = [Subject.from_dict(item) for item in obj.get("subjects") or []]
    transformed, result = fn(existing, list(subjects))
    if result:
        obj["subjects"] = [subject.to_dict() for subject in result]
    else:
        obj.pop("subjects", None)
    return transformed


@dataclass
class SubjectOptions:
    """Everything needed to update the subjects of role bindings.

    ``client`` is needed for changes sent to a server; it must offer
    ``patch(obj, body, dry_run)`` returning the object as the server stored it.
    """

    objects: list[dict] = field(default_factory=list)
    filenames: list[str] = field(default_factory=list)
    selector: str = ""
    all: bool = False
    local: bool = False
    dry_run: DryRun = DryRun.NONE
    output: str = ""
    users: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    service_accounts: list[str] = field(default_factory=list)
    namespace: str = "default"
    client: Any = None
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def validate(self) -> None:
        """Raise ``ValueError`` for the first problem found with the options."""
        if self.local and self.dry_run is DryRun.SERVER:
            raise ValueError(
                "cannot specify --local and --dry-run=server - did you mean --dry-run=client?"
            )
        if self.all and self.selector:
            raise ValueError("cannot set --all and --selector at the same time")
        if not (self.users or self.groups or self.service_accounts):
            raise ValueError("you must specify at least one value of user, group or serviceaccount")
        for account in self.service_accounts:
            tokens = account.split(":")
            if len(tokens) != 2 or not tokens[1]:
                raise ValueError(_SERVICE_ACCOUNT_FORMAT)
            if not tokens[0] and any(
                obj.get("kind") == "ClusterRoleBinding" for obj in self.objects
            ):
                raise ValueError(
                    f"{_SERVICE_ACCOUNT_FORMAT}, namespace must be specified"
                )

    def _subjects(self) -> list[Subject]:
        subjects = [Subject(USER_KIND, user, api_group=RBAC_GROUP) for user in sorted(set(self.users))]
        subjects += [
            Subject(GROUP_KIND, group, api_group=RBAC_GROUP) for group in sorted(set(self.groups))
        ]
        for account in sorted(set(self.service_accounts)):
            tokens = account.split(":")
            namespace = tokens[0] or self.namespace
            subjects.append(Subject(SERVICE_ACCOUNT_KIND, tokens[1], namespace=namespace))
        return subjects

    def _print(self, obj: dict) -> None:
        if self.output:
            print_object(obj, self.output, self.out)
        else:
            self.out.write(f"{object_name(obj)} subjects updated{self.dry_run.suffix}\n")

    def run(self, fn: UpdateSubjects = add_subjects) -> None:
        """Update the subjects with ``fn``, then print or send each changed binding."""
        offline = self.local or self.dry_run is DryRun.CLIENT
        if self.client is None and not offline:
            raise ValueError("a client is required unless running locally or as a client dry run")
        subjects = self._subjects()

        def mutate(obj: dict) -> dict | None:
            return obj if update_subject_for_object(obj, subjects, fn) else None

        errors: list[Any] = []
        for patch in calculate_patches(self.objects, mutate):
            name = object_name(patch.obj)
            if patch.error is not None:
                errors.append(f"error: {name} {patch.error}")
                continue
            if not patch.patch:
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
                errors.append(f"failed to patch subjects to rolebinding: {exc}")
                continue
            try:
                self._print(actual)
            except ValueError as exc:
                errors.append(exc)
        raise_aggregate(errors)