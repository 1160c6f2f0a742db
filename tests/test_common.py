import copy
import io

import pytest

from kruiseset.common import (
    AggregateError,
    DryRun,
    Patch,
    calculate_patches,
    get_resources_and_pairs,
    load_objects,
    merge_patch,
    object_name,
    parse_dry_run,
    parse_pairs,
    pod_spec_of,
    print_object,
    raise_aggregate,
    update_pod_spec,
)

MULTI = """\
apiVersion: v1
kind: ReplicationController
metadata:
  name: first-rc
spec:
  template:
    spec:
      containers:
      - name: first
        image: nginx
---
apiVersion: v1
kind: ReplicationController
metadata:
  name: second-rc
spec:
  template:
    spec:
      containers:
      - name: second
        image: nginx
"""


def _apply_merge_patch(target, patch):
    result = copy.deepcopy(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _apply_merge_patch(result[key], value)
        else:
            result[key] = value
    return result


def test_aggregate_single_message():
    error = AggregateError(["only one"])
    assert str(error) == "only one"
    assert error.errors == ["only one"]


def test_aggregate_multiple_messages_are_bracketed():
    assert str(AggregateError(["a", ValueError("b")])) == "[a, b]"


def test_aggregate_duplicates_collapse():
    assert str(AggregateError(["same", "same"])) == "same"


def test_raise_aggregate():
    raise_aggregate([])
    with pytest.raises(AggregateError) as info:
        raise_aggregate(["x", "y"])
    assert info.value.errors == ["x", "y"]


@pytest.mark.parametrize(
    "value,expected",
    [("none", DryRun.NONE), ("client", DryRun.CLIENT), ("server", DryRun.SERVER)],
)
def test_parse_dry_run(value, expected):
    assert parse_dry_run(value) is expected


def test_parse_dry_run_rejects_unknown():
    with pytest.raises(ValueError):
        parse_dry_run("maybe")


def test_dry_run_suffix():
    assert parse_dry_run("none").suffix == ""
    assert parse_dry_run("client").suffix == " (dry run)"


def test_merge_patch_no_change_is_empty():
    obj = {"a": {"b": 1}, "c": [1, 2]}
    assert merge_patch(obj, copy.deepcopy(obj)) == {}


def test_merge_patch_round_trip():
    before = {"a": {"b": 1, "c": 2}, "d": "x", "e": [1]}
    after = {"a": {"b": 1, "c": 3}, "e": [2], "f": {"g": True}}
    patch = merge_patch(before, after)
    assert _apply_merge_patch(before, patch) == after
    assert "b" not in patch["a"]
    assert patch["d"] is None


def test_merge_patch_requires_objects():
    with pytest.raises(TypeError):
        merge_patch([], {})


def test_calculate_patches_records_changes_and_errors():
    good = {"kind": "Pod", "metadata": {"name": "p"}, "spec": {}}
    bad = {"kind": "Pod", "metadata": {"name": "q"}}

    def mutate(obj):
        if obj["metadata"]["name"] == "q":
            raise ValueError("broken")
        obj["spec"]["serviceAccountName"] = "sa"
        return obj

    patches = calculate_patches([good, bad], mutate)
    assert isinstance(patches[0], Patch)
    assert patches[0].patch == {"spec": {"serviceAccountName": "sa"}}
    assert patches[0].before["spec"] == {}
    assert str(patches[1].error) == "broken"
    assert patches[1].patch is None


def test_calculate_patches_none_means_no_patch():
    patches = calculate_patches([{"kind": "Pod"}], lambda obj: None)
    assert patches[0].patch is None and patches[0].error is None


def test_object_name_core_group():
    rc = {"apiVersion": "v1", "kind": "ReplicationController", "metadata": {"name": "cassandra"}}
    assert object_name(rc) == "replicationcontroller/cassandra"


def test_object_name_with_group():
    dep = {"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {"name": "nginx"}}
    assert object_name(dep) == "deployment.apps/nginx"


def test_pod_spec_of_template_kinds_created():
    rc = {"kind": "ReplicationController"}
    spec = pod_spec_of(rc)
    assert spec is rc["spec"]["template"]["spec"]


def test_pod_spec_of_pod_and_cronjob():
    pod = {"kind": "Pod", "spec": {"containers": []}}
    assert pod_spec_of(pod) is pod["spec"]
    cron = {"kind": "CronJob"}
    assert pod_spec_of(cron) is cron["spec"]["jobTemplate"]["spec"]["template"]["spec"]


def test_pod_spec_of_sidecarset_is_none():
    assert pod_spec_of({"kind": "SidecarSet"}) is None


def test_pod_spec_of_unsupported():
    with pytest.raises(ValueError, match="does not have a pod template"):
        pod_spec_of({"kind": "Service"})


def test_update_pod_spec_calls_fn():
    dep = {"kind": "Deployment"}
    update_pod_spec(dep, lambda spec: spec.update(serviceAccountName="sa1"))
    assert dep["spec"]["template"]["spec"]["serviceAccountName"] == "sa1"


def test_get_resources_and_pairs():
    resources, pairs = get_resources_and_pairs(["cloneset", "sample", "nginx=nginx:1.9.1"], "image")
    assert resources == ["cloneset", "sample"]
    assert pairs == ["nginx=nginx:1.9.1"]


def test_get_resources_and_pairs_order_enforced():
    with pytest.raises(ValueError, match="all resources must be specified before image changes: rc"):
        get_resources_and_pairs(["a=b", "rc"], "image")


def test_parse_pairs():
    assert parse_pairs(["busybox=busybox", "nginx=nginx:1.9.1"], "image") == {
        "busybox": "busybox",
        "nginx": "nginx:1.9.1",
    }


def test_parse_pairs_invalid():
    with pytest.raises(ValueError, match="invalid image format: nginx-"):
        parse_pairs(["nginx-"], "image")


def test_load_objects_multi_document_and_list(tmp_path):
    (tmp_path / "multi.yaml").write_text(MULTI)
    (tmp_path / "list.yaml").write_text(
        "apiVersion: v1\nkind: List\nitems:\n- apiVersion: v1\n  kind: Pod\n  metadata:\n    name: p\n"
    )
    objects = load_objects([str(tmp_path / "multi.yaml"), str(tmp_path / "list.yaml")])
    assert [o["metadata"]["name"] for o in objects] == ["first-rc", "second-rc", "p"]


def test_load_objects_directory(tmp_path):
    (tmp_path / "a.yaml").write_text(MULTI)
    (tmp_path / "ignored.txt").write_text("not yaml: [")
    assert len(load_objects([str(tmp_path)])) == 2


def test_load_objects_requires_kind(tmp_path):
    (tmp_path / "bad.yaml").write_text("metadata:\n  name: x\n")
    with pytest.raises(ValueError, match="no kind"):
        load_objects([str(tmp_path / "bad.yaml")])


def test_print_object_name(tmp_path):
    (tmp_path / "multi.yaml").write_text(MULTI)
    out = io.StringIO()
    for obj in load_objects([str(tmp_path / "multi.yaml")]):
        print_object(obj, "name", out)
    assert out.getvalue() == "replicationcontroller/first-rc\nreplicationcontroller/second-rc\n"


def test_print_object_yaml_round_trip(tmp_path):
    import yaml

    obj = {"kind": "Pod", "metadata": {"name": "p"}, "spec": {"serviceAccountName": "sa"}}
    out = io.StringIO()
    print_object(obj, "yaml", out)
    assert yaml.safe_load(out.getvalue()) == obj
    assert "serviceAccountName: sa" in out.getvalue()


def test_print_object_unknown_format():
    with pytest.raises(ValueError):
        print_object({"kind": "Pod"}, "table", io.StringIO())