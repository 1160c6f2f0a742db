import copy
import io

import pytest

from kruiseset.common import DryRun
from kruiseset.labels import LabelSelector, LabelSelectorRequirement, SelectorParseError
from kruiseset.selector import (
    SetSelectorOptions,
    get_resources_and_selector,
    update_selector_for_object,
)

BEFORE = {
    "matchLabels": {"fee": "true"},
    "matchExpressions": [{"key": "foo", "operator": "In", "values": ["on", "yes"]}],
}


def _obj(api_version, kind, spec=None):
    obj = {"apiVersion": api_version, "kind": kind, "metadata": {}}
    if spec is not None:
        obj["spec"] = spec
    return obj


@pytest.mark.parametrize(
    "obj, want_err",
    [
        (_obj("v1", "ReplicationController"), True),
        (_obj("v1", "Service"), False),
        (_obj("extensions/v1beta1", "Deployment", {"selector": copy.deepcopy(BEFORE)}), True),
        (_obj("extensions/v1beta1", "DaemonSet", {"selector": copy.deepcopy(BEFORE)}), True),
        (_obj("extensions/v1beta1", "ReplicaSet", {"selector": copy.deepcopy(BEFORE)}), True),
        (_obj("batch/v1", "Job", {"selector": copy.deepcopy(BEFORE)}), True),
        (_obj("v1", "PersistentVolumeClaim", {"selector": copy.deepcopy(BEFORE)}), True),
        (_obj("v1", "ServiceAccount"), True),
    ],
)
def test_update_selector_for_object_types(obj, want_err):
    if want_err:
        with pytest.raises(ValueError, match="only supported for Services"):
            update_selector_for_object(obj, LabelSelector())
    else:
        update_selector_for_object(obj, LabelSelector())
        assert obj["spec"]["selector"] == {}


@pytest.mark.parametrize(
    "labels",
    [{}, {"b": "u"}],
)
def test_update_new_selector_values(labels):
    service = _obj("v1", "Service")
    update_selector_for_object(service, LabelSelector(match_labels=labels, match_expressions=[]))
    assert service["spec"]["selector"] == labels


@pytest.mark.parametrize("labels", [{}, {"fee": "false", "x": "y"}])
def test_update_old_selector_values(labels):
    service = _obj("v1", "Service", {"selector": {"fee": "true"}})
    update_selector_for_object(service, LabelSelector(match_labels=labels, match_expressions=[]))
    assert service["spec"]["selector"] == labels


@pytest.mark.parametrize("labels", [{}, {"b": "u"}])
def test_update_selector_rejects_expressions(labels):
    service = _obj("v1", "Service", {"selector": {"fee": "true"}})
    selector = LabelSelector(
        match_labels=labels,
        match_expressions=[LabelSelectorRequirement("a", "In", ["x", "y"])],
    )
    with pytest.raises(ValueError, match=r"match expression \[\{a In \[x y\]\}\] not supported"):
        update_selector_for_object(service, selector)


def test_get_resources_and_selector_basic_match():
    resources, selector = get_resources_and_selector(["rc/foo", "healthy=true"])
    assert resources == ["rc/foo"]
    assert selector == LabelSelector(match_labels={"healthy": "true"}, match_expressions=[])


def test_get_resources_and_selector_basic_expression():
    resources, selector = get_resources_and_selector(["rc/foo", "buildType notin (debug, test)"])
    assert resources == ["rc/foo"]
    assert selector == LabelSelector(
        match_labels={},
        match_expressions=[LabelSelectorRequirement("buildType", "NotIn", ["debug", "test"])],
    )


def test_get_resources_and_selector_error():
    with pytest.raises(SelectorParseError):
        get_resources_and_selector(["rc/foo", "buildType notthis (debug, test)"])


def test_get_resources_and_selector_empty():
    assert get_resources_and_selector([]) == ([], None)


def _service():
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"namespace": "some-ns", "name": "cassandra", "resourceVersion": "1"},
    }


def test_selector_run_local_prints_name():
    out = io.StringIO()
    _, selector = get_resources_and_selector(["environment=qa"])
    service = _service()
    options = SetSelectorOptions(
        objects=[service], selector=selector, local=True, output="name", out=out
    )
    options.run()
    assert "service/cassandra" in out.getvalue()
    assert service["spec"]["selector"] == {"environment": "qa"}


def test_selector_default_message_reports_dry_run():
    out = io.StringIO()
    options = SetSelectorOptions(
        objects=[_service()],
        selector=LabelSelector({"environment": "qa"}, []),
        dry_run=DryRun.CLIENT,
        out=out,
    )
    options.run()
    assert out.getvalue() == "service/cassandra selector updated (dry run)\n"


def test_validate_requires_selector():
    with pytest.raises(ValueError, match="one selector is required"):
        SetSelectorOptions().validate()


class _FakeClient:
    def __init__(self):
        self.calls = []

    def patch(self, obj, body, dry_run=False):
        self.calls.append((body, dry_run))
        return copy.deepcopy(obj)


def test_selector_remote_sends_resource_version():
    client = _FakeClient()
    out = io.StringIO()
    options = SetSelectorOptions(
        objects=[_service()],
        selector=LabelSelector({"environment": "qa"}, []),
        resource_version="5",
        dry_run=DryRun.SERVER,
        output="name",
        client=client,
        out=out,
    )
    options.run()
    body, dry_run = client.calls[0]
    assert body["metadata"]["resourceVersion"] == "5"
    assert body["spec"]["selector"] == {"environment": "qa"}
    assert dry_run is True
    assert out.getvalue() == "service/cassandra\n"


def test_selector_remote_without_client_fails():
    options = SetSelectorOptions(objects=[_service()], selector=LabelSelector())
    with pytest.raises(ValueError, match="a client is required"):
        options.run()


def test_selector_run_stops_on_unsupported_object():
    out = io.StringIO()
    options = SetSelectorOptions(
        objects=[_obj("v1", "ReplicationController")],
        selector=LabelSelector({"a": "b"}, []),
        local=True,
        out=out,
    )
    with pytest.raises(ValueError, match="only supported for Services"):
        options.run()
    assert out.getvalue() == ""