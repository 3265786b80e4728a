"""Applying AWS federated role definitions."""

from __future__ import annotations

import io
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import yaml

AWS_ACCOUNT_ID_LABEL = "awsAccountID"
UID_LABEL = "uid"


class UsageError(Exception):
    """The command was called with conflicting or missing flags."""


class FederatedRoleError(Exception):
    """A federated role could not be loaded or applied."""


def _decode(text: str) -> dict[str, Any]:
    try:
        documents = yaml.safe_load_all(io.StringIO(text))
        first = next(iter(documents), None)
    except yaml.YAMLError as exc:
        raise FederatedRoleError(f"cannot decode federated role: {exc}") from exc
    if not isinstance(first, dict):
        raise FederatedRoleError("federated role document must be a mapping")
    return first


@dataclass
class ApplyOptions:
    """Where to read the federated role from."""

    url: str = ""
    file: str = ""
    verbose: bool = False

    def complete(self) -> str:
        """Check the flags; return the URL or file the role is read from."""
        if not self.file and not self.url:
            raise UsageError("Flags file and url cannot be empty at the same time")
        if self.file and self.url:
            raise UsageError("Flags file and url cannot be set at the same time")
        return self.url or self.file

    def _read_url(self) -> str:
        try:
            with urllib.request.urlopen(self.url) as response:
                status = response.status
                body = response.read()
        except urllib.error.HTTPError as exc:
            status = exc.code
            exc.close()
            body = b""
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise FederatedRoleError(f"failed to GET {self.url}: {exc}") from exc
        if status // 100 != 2:
            raise FederatedRoleError(
                f"failed to GET {self.url}, status code {status}"
            )
        return body.decode("utf-8")

    def _read_file(self) -> str:
        path = os.path.abspath(self.file)
        with open(path, encoding="utf-8") as handle:
            return handle.read()

    def load_federated_role(self) -> dict[str, Any]:
        """Read and decode the federated role from the URL or file."""
        text = self._read_url() if self.url else self._read_file()
        return _decode(text)


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def matching_accesses(
    role: Mapping[str, Any], accesses: Iterable[Mapping[str, Any]]
) -> list[tuple[Mapping[str, Any], str, str]]:
    """Find the account accesses using ``role``, with their account id and uid."""
    role_meta = _metadata(role)
    role_key = (role_meta.get("namespace", ""), role_meta.get("name", ""))
    matches: list[tuple[Mapping[str, Any], str, str]] = []
    for access in accesses:
        ref = (access.get("spec") or {}).get("awsFederatedRole") or {}
        if (ref.get("namespace", ""), ref.get("name", "")) != role_key:
            continue
        meta = _metadata(access)
        labels = meta.get("labels") or {}
        where = f"{meta.get('namespace', '')}/{meta.get('name', '')}"
        if AWS_ACCOUNT_ID_LABEL not in labels:
            raise FederatedRoleError(
                "unable to get AWS AccountID label for AWS federated account "
                f"access CR {where}"
            )
        if UID_LABEL not in labels:
            raise FederatedRoleError(
                f"unable to get UID label for AWS federated account access CR {where}"
            )
        matches.append((access, labels[AWS_ACCOUNT_ID_LABEL], labels[UID_LABEL]))
    return matches