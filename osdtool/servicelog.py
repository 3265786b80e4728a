"""Preparing, posting and listing cluster service logs."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from .fileutils import file_exists, folder_exists
from .netutils import OfflineError, curl_this, is_online, is_valid_url
from .servicelog_models import _PLACEHOLDER, BadReply, GoodReply, Message

log = logging.getLogger(__name__)

TARGET_API_PATH = "/api/service_logs/v1/cluster_logs"
CLUSTER_UUID_PLACEHOLDER = "${CLUSTER_UUID}"

_PARAM_SYNTAX = "Wrong syntax of '-p' flag. Please use it like this: '-p FOO=BAR'"
_INTERRUPTED = "cannot send message due to program interruption"


class ServiceLogError(Exception):
    """A service log could not be prepared, sent or verified."""


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def parse_user_parameters(params: Iterable[str]) -> list[tuple[str, str]]:
    """Turn ``FOO=BAR`` parameters into ``("${FOO}", "BAR")`` pairs."""
    pairs: list[tuple[str, str]] = []
    for param in params:
        if "=" not in param:
            raise ServiceLogError(_PARAM_SYNTAX)
        name, value = param.split("=", 1)
        if not name or not value:
            raise ServiceLogError(_PARAM_SYNTAX)
        pairs.append((f"${{{name}}}", value))
    return pairs


def access_file(file_path: str) -> bytes:
    """Return the contents of a local file or of a URL."""
    if is_valid_url(file_path):
        try:
            is_online(file_path)
        except OfflineError as exc:
            raise ServiceLogError(f"host {_quote(file_path)} is not accessible") from exc
        try:
            return curl_this(file_path)
        except OfflineError as exc:
            raise ServiceLogError(str(exc)) from exc

    path = os.path.normpath(file_path)
    if file_exists(path):
        try:
            with open(path, "rb") as handle:
                return handle.read()
        except OSError as exc:
            raise ServiceLogError(f"cannot read the file.\nError: {exc}") from exc
    if folder_exists(path):
        raise ServiceLogError(f"the provided path {_quote(path)} is a directory, not a file")
    raise ServiceLogError(f"cannot read the file {_quote(path)}")


def read_filter_files(paths: Iterable[str]) -> str:
    """Combine the queries of several filter files with a logical AND."""
    parts = [
        "(" + access_file(path).decode("utf-8").strip() + ")" for path in paths
    ]
    return " and ".join(parts)


def find_leftovers(text: str) -> list[str]:
    """Return the ``${...}`` placeholders found in ``text``."""
    return _PLACEHOLDER.findall(text)


def check_leftovers(message: Message, filters: str, excludes: Sequence[str]) -> None:
    """Raise if the template or filters still hold placeholders not in ``excludes``."""
    unused = message.find_leftovers() + find_leftovers(filters)
    missing = [name for name in unused if name not in excludes]
    for name in missing:
        bare = name.replace("${", "").replace("}", "")
        log.error(
            "The one of the template files is using '%s' parameter, but '--param' flag "
            "is not set for this one. Use '-p %s=\"FOOBAR\"' to fix this.",
            name,
            bare,
        )
    if len(missing) == 1:
        raise ServiceLogError("Please define this missing parameter properly.")
    if len(missing) > 1:
        raise ServiceLogError(f"Please define all {len(missing)} missing parameters properly.")


def replace_flags(message: Message, filters: str, flag_name: str, flag_value: str) -> str:
    """Substitute a parameter in ``message`` and ``filters``; return the new filters."""
    if not flag_value:
        raise ServiceLogError(
            f"The selected template is using '{flag_name}' parameter, but '{flag_name}' "
            f"flag was not set. Use '-p {flag_name}=\"FOOBAR\"' to fix this."
        )

    found = False
    if message.search_flag(flag_name):
        found = True
        message.replace_with_flag(flag_name, flag_value)
    if flag_name in filters:
        found = True
        filters = filters.replace(flag_name, flag_value)

    if not found:
        raise ServiceLogError(
            f"The selected template is not using '{flag_name}' parameter, but '--param' "
            f"flag was set. Do not use '-p {flag_name}={flag_value}' to fix this."
        )
    return filters


def internal_template() -> Message:
    """The fixed template for internal-only service logs."""
    return Message(
        severity="Info",
        service_name="SREManualAction",
        summary="INTERNAL ONLY, DO NOT SHARE WITH CUSTOMER",
        description="${MESSAGE}",
        internal_only=True,
    )


def load_template(template: str, internal_only: bool = False) -> Message:
    """Load the message template from a file or URL, or the internal one."""
    if internal_only:
        return internal_template()
    if not template:
        raise ServiceLogError("Template file is not provided. Use '-t' to fix this.")

    contents = access_file(template)
    try:
        return Message.from_dict(json.loads(contents))
    except ValueError as exc:
        raise ServiceLogError(f"Cannot not parse the JSON template.\nError: {exc}") from exc


def _cluster_query(identifier: str) -> str:
    return (
        f"(id = '{identifier}' or external_id = '{identifier}' "
        f"or display_name = '{identifier}')"
    )


def build_cluster_filters(
    cluster_ids: Sequence[str],
    filter_params: Sequence[str],
    filters_from_file: str,
    clusters_file_ids: Sequence[str] | None,
) -> list[str]:
    """Assemble the search queries that select the clusters to message."""
    if not cluster_ids and not filter_params and clusters_file_ids is None:
        raise ServiceLogError("No cluster identifier has been found.")
    if len(cluster_ids) > 1:
        log.info("Too many arguments. Expected 1 got %d", len(cluster_ids))

    filters = list(filter_params)
    if cluster_ids:
        if filters:
            log.warning(
                "A cluster identifier was passed with the '-q' flag. This will apply "
                "logical AND between the search query and the cluster given, "
                "potentially resulting in no matches"
            )
        filters.append(" or ".join(_cluster_query(cid) for cid in cluster_ids))

    if filters_from_file:
        if filters:
            log.warning(
                "Search queries were passed using both the '-q' and '-f' flags. This "
                "will apply logical AND between the queries, potentially resulting in "
                "no matches"
            )
        filters.append(" ".join(filters_from_file.strip().split("\n")))

    if clusters_file_ids is not None:
        filters.append(" or ".join(_cluster_query(cid) for cid in clusters_file_ids))

    return filters


def _load_json(body: bytes | str) -> Any:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise ServiceLogError("server returned invalid JSON") from exc


def validate_good_response(body: bytes | str, message: Message) -> GoodReply:
    """Parse a successful reply and check that it echoes ``message``."""
    data = _load_json(body)
    try:
        reply = GoodReply.from_dict(data)
    except ValueError as exc:
        raise ServiceLogError(f"cannot not parse the JSON template.\nError: {exc}") from exc

    checks = (
        ("severity", "wrong severity information was passed", reply.severity, message.severity),
        ("service_name", "wrong service_name information was passed", reply.service_name, message.service_name),
        ("cluster_uuid", "to different cluster", reply.cluster_uuid, message.cluster_uuid),
        ("summary", "wrong summary information was passed", reply.summary, message.summary),
        ("description", "wrong description information was passed", reply.description, message.description),
    )
    for _, problem, got, wanted in checks:
        if got != wanted:
            sent = "message sent, but " + problem
            raise ServiceLogError(f"{sent} (wanted {_quote(wanted)}, got {_quote(got)})")
    return reply


def validate_bad_response(body: bytes | str) -> BadReply:
    """Parse an error reply from the service log API."""
    data = _load_json(body)
    try:
        return BadReply.from_dict(data)
    except ValueError as exc:
        raise ServiceLogError(f"cannot parse the error JSON message {_quote(str(exc))}") from exc


def _table(entries: Mapping[str, str]) -> str:
    rows = [("ID", "Status"), *entries.items()]
    width = max(len(row[0]) for row in rows) + 3
    return "\n".join((ident.ljust(width) + status).rstrip() for ident, status in rows)


@dataclass
class PostReport:
    """The outcome of posting a service log to a set of clusters."""

    successful: dict[str, str] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    def record_response(self, status: int, body: bytes | str, message: Message) -> bool:
        """Record the server's reply for ``message``; return whether it succeeded."""
        uuid = message.cluster_uuid
        if status < 400:
            try:
                validate_good_response(body, message)
            except ServiceLogError as exc:
                self.failed[uuid] = str(exc)
                return False
            self.successful[uuid] = f"Message has been successfully sent to {uuid}"
            return True
        try:
            self.failed[uuid] = validate_bad_response(body).reason
        except ServiceLogError as exc:
            self.failed[uuid] = str(exc)
        return False

    def record_failure(self, cluster_uuid: str, reason: str) -> None:
        """Record that a cluster could not be messaged."""
        self.failed[cluster_uuid] = reason

    def mark_interrupted(self, cluster_uuids: Iterable[str]) -> None:
        """Mark every cluster not yet messaged as failed by interruption."""
        for uuid in cluster_uuids:
            if uuid not in self.successful:
                self.failed[uuid] = _INTERRUPTED

    def summary(self) -> str:
        """Render the counts and the per-cluster outcome."""
        lines = [f"Success: {len(self.successful)}, Failed: {len(self.failed)}"]
        if self.successful:
            lines += ["", "Successful clusters:", _table(self.successful)]
        if self.failed:
            lines += ["", "Failed clusters:", _table(self.failed)]
        return "\n".join(lines)


def build_list_search(
    cluster_id: str, external_id: str, all_messages: bool, internal_only: bool
) -> str:
    """Build the ``search`` parameter for listing a cluster's service logs."""
    if external_id:
        query = f"cluster_uuid = '{external_id}'"
    else:
        query = f"cluster_id = '{cluster_id}'"
    if not all_messages:
        query += " and service_name = 'SREManualAction'"
    if internal_only:
        query += " and internal_only = 'true'"
    return query