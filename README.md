# osdtool

`osdtool` is a library of building blocks for site reliability work on managed
OpenShift clusters. It needs Python 3.10 or later and depends on PyYAML and
semver.

## What is in it

- `osdtool.servicelog_models`: the service log data types `Message`,
  `GoodReply`, `ServiceLogShort`, `ClusterListGoodReply`, `BadReply` and
  `ClustersFile`, each with `from_dict`.
- `osdtool.servicelog`: preparing and checking service logs. This includes
  template loading, `${PARAM}` substitution, cluster search filters, reply
  validation and the `PostReport` tally.
- `osdtool.support_models`: `LimitedSupport`, `GoodReply` and `BadReply` for
  limited support reasons.
- `osdtool.org`: search queries, API paths and reply parsing for
  organizations, their subscriptions, users and labels.
- `osdtool.egress`: `EgressVerification` works out the subnet, security group
  and proxy settings for an AWS egress check and returns them as a
  `ValidateEgressInput`.
- `osdtool.packet_capture`: builds the capture DaemonSet or Pod, waits for it,
  copies the capture files with `oc cp` and deletes the objects again.
- `osdtool.sts`: `policy` and `policy_diff` extract the AWS credentials
  requests of one or two releases with `oc adm release extract` (run through
  `bash`) and compare them with `diff`.
- `osdtool.federated_role`: `ApplyOptions` loads a federated role document
  from a URL or a file. `matching_accesses` finds the account accesses that use
  that role.
- `osdtool.upgrade`: maps platform names to release asset names, compares
  versions and installs a binary from a gzipped tar archive.
- `osdtool.fileutils`, `osdtool.netutils` and `osdtool.output`: helpers for
  files, URLs and printing responses as text, JSON or YAML.

## Service log templates

```python
from osdtool.servicelog_models import Message

message = Message.from_dict({
    "severity": "Info",
    "service_name": "SREManualAction",
    "summary": "Maintenance on ${CLUSTER_NAME}",
    "description": "Scheduled work starts at ${START}.",
})

message.search_flag("${CLUSTER_NAME}")        # True
message.replace_with_flag("${CLUSTER_NAME}", "prod-1")
message.find_leftovers()                      # ["${START}"]
```

`osdtool.servicelog` connects these pieces:

- `parse_user_parameters(["START=noon"])` returns `[("${START}", "noon")]`.
- `replace_flags` fills in one parameter in the message and in the filters, and
  returns the new filters.
- `check_leftovers` raises if placeholders are still unfilled, apart from the
  ones you exclude, such as `CLUSTER_UUID_PLACEHOLDER`.
- `load_template` reads a template from a file or a URL. `internal_template`
  returns the fixed template for internal-only logs.
- `build_cluster_filters` combines cluster identifiers, `-q` style queries, the
  text of query files (from `read_filter_files`) and cluster lists into search
  filters.
- `validate_good_response` and `validate_bad_response` parse the API's replies.
  `PostReport.record_response` uses them to sort clusters into successful and
  failed, and `PostReport.summary()` renders the result as text.
- `build_list_search` builds the search expression for listing a cluster's
  service logs.

Errors are raised as `ServiceLogError`.

## Organizations

```python
from osdtool.org import check_org_id, get_search_query, format_roles

check_org_id(["my-org-id"])            # "my-org-id"
check_org_id([])                       # raises OrgError

get_search_query("alice", "", True)    # "search=username like '%alice%'"
get_search_query("", "12345", False)   # "search=ebs_account_id='12345'"

format_roles(["a", "b"])               # "b a "
```

The `parse_org_list`, `parse_subscriptions`, `parse_labels` and
`parse_current_organization` functions read JSON reply bodies.
`filter_active` keeps only active subscriptions. `to_json` renders results as
indented JSON.

## Egress verification

You can give `EgressVerification` explicit overrides (`subnet_id`,
`security_group_id`, `region`). Otherwise, give it a `Cluster` and an AWS
client object that provides `describe_subnets` and `describe_security_groups`.
For a `cluster_id`, it needs a `cluster_lookup` and an `aws_client_factory`.
`generate_validate_egress_input(region)` returns the assembled
`ValidateEgressInput`. `default_validate_egress_input` raises `EgressError`
for regions that `is_supported_region` rejects.

## Upgrades

```python
from osdtool.upgrade import parse_goos, parse_goarch, needs_upgrade

parse_goos("linux")                  # "Linux"
parse_goarch("amd64")                # "x86_64"
needs_upgrade("0.9.0", "v0.10.0")    # True
```

`extract_binary(archive, name, destination)` writes the archive member `name`
into `destination`. It writes a temporary file first and then renames it over
the target. It returns the installed path, or `None` if the archive has no
such member.

## Files and URLs

```python
from osdtool.fileutils import file_exists, folder_exists, create_file
from osdtool.netutils import is_valid_url

is_valid_url("https://example.com/template.json")   # True
is_valid_url("not a url")                           # False
```

`create_file` creates any missing parent directories. It raises
`FileExistsError` if the file is already there, so nothing is ever truncated.
`is_online` raises `OfflineError` unless the URL answers with a 2xx status.

## What it does not do

The package has no command-line program. It does not talk to the cluster
management, accounts or service log APIs by itself. You send the requests and
pass the reply bodies to the parsing functions. For the Kubernetes cluster and
AWS, you supply the client objects. The package does not run the egress check
itself. It also does not download releases or look up the latest release
version.