# kruiseset

`kruiseset` updates workload manifests: it sets container images, compute
resource requests and limits, service selectors, pod service accounts and
role binding subjects. Manifests are read from YAML or JSON files (or from
standard input with `-f -`), changed in memory, and written to standard
output. The files themselves are never rewritten.

It understands pods and the usual pod-template workloads (deployments,
stateful sets, daemon sets, replica sets, jobs, cron jobs, replication
controllers) as well as CloneSets. Images can also be set on the
containers and init containers of a SidecarSet.

## Installation

```
pip install kruiseset
```

Python 3.10 or later is required. The only dependency is PyYAML.

## Command line

The package installs one command, `kruise-set`, with these sub-commands:

- `image` — `CONTAINER=IMAGE` pairs; `*=IMAGE` sets every container and
  init container.
- `resources` — `--limits` and `--requests` such as `cpu=200m,memory=512Mi`;
  `-c/--containers` picks containers by shell-style pattern (default `*`).
- `selector` — replaces the selector of a Service with the given label
  expression; set-based expressions are rejected. `--resource-version`
  sets the object's resource version as well.
- `serviceaccount` (alias `sa`) — the last argument is the service account
  name.
- `subject` — `--user`, `--group` and `--serviceaccount=namespace:name`,
  each repeatable; subjects already bound are not added twice.

All of them take `-f/--filename` (repeatable; a directory reads its
`.yaml`, `.yml` and `.json` files), `-o/--output` (`name`, `yaml` or
`json`), `--local`, `--dry-run` and `-n/--namespace`. Run

```
kruise-set --help
kruise-set image --help
```

for the full list. Without `-o`, each changed object is reported as a line
such as `cloneset.apps.kruise.io/sample image updated`.

For `image`, `resources`, `serviceaccount` and `subject`, problems found
along the way, such as a container name that matches nothing, are
collected and reported together after every object has been processed.
`selector` stops at the first object it cannot update. The command exits
with status 1 on any error.

## What it does not do

The package has no connection to a cluster API server. On the command
line, resources can only be given with `-f`; naming a resource such as
`cloneset sample` is an error, and `--dry-run=server` or a run without
`--local`/`--dry-run=client` on file input fails because no client is
configured.

The option classes accept a `client` object that you supply for
server-side work; depending on the class it must offer `patch(obj, body,
dry_run)`, `get(obj)`, `replace(obj)` or `fetch(resources, select_all)`.

## Library use

Setting an image on every matching container:

```python
from kruiseset.image import set_image

containers = [{"name": "nginx", "image": "nginx"}, {"name": "busybox", "image": "busybox"}]
found = set_image(containers, "nginx", "nginx:1.9.1")
# found is True; only the "nginx" container changed.
```

Parsing a label selector in the usual `-l` syntax:

```python
from kruiseset.labels import parse_to_label_selector

selector = parse_to_label_selector("environment=qa")
expression = parse_to_label_selector("buildType notin (debug, test)")
```

Turning `--limits` / `--requests` strings into resource requirements:

```python
from kruiseset.quantities import handle_resource_requirements

requirements = handle_resource_requirements("cpu=200m,memory=512Mi", "cpu=100m,memory=256Mi")
```

Adding subjects to a role binding without duplicating existing ones:

```python
from kruiseset.subject import Subject, add_subjects

existing = [Subject(kind="User", api_group="rbac.authorization.k8s.io", name="a")]
changed, subjects = add_subjects(
    existing, [Subject(kind="User", api_group="rbac.authorization.k8s.io", name="b")]
)
```

The option classes `SetImageOptions`, `SetResourcesOptions`,
`SetSelectorOptions`, `SetServiceAccountOptions` and `SubjectOptions`
(in `kruiseset.image`, `.resources`, `.selector`, `.serviceaccount` and
`.subject`) carry a whole update from validation to output.
`kruiseset.common` holds the shared pieces: `load_objects`,
`print_object`, `calculate_patches`, `merge_patch`, `parse_dry_run` and
`AggregateError`, which the image, resources, service account and
subject updates raise when one or more objects could not be updated.

## Running the tests

```
pip install -e ".[test]"
pytest
```