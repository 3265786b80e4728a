"""Looking up organizations, their clusters, users and labels."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from .servicelog_models import _mapping, _strings, _text

ORGANIZATIONS_API_PATH = "/api/accounts_mgmt/v1/organizations"
ACCOUNTS_API_PATH = "/api/accounts_mgmt/v1/accounts"
CURRENT_ACCOUNT_API_PATH = "/api/accounts_mgmt/v1/current_account"
SUBSCRIPTIONS_API_PATH = "/api/accounts_mgmt/v1/subscriptions"

STATUS_ACTIVE = "Active"


class OrgError(Exception):
    """An organization query was malformed or its reply could not be read."""


class SearchType(enum.IntEnum):
    """How organizations are searched for."""

    NONE = 0
    USER = 1
    EBS = 2


@dataclass
class Organization:
    """An organization as reported by the accounts API."""

    id: str = ""
    external_id: str = ""
    name: str = ""
    ebs_account_id: str = ""
    created: str = ""
    updated: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Organization:
        data = _mapping(data)
        return cls(
            id=_text(data, "id"),
            external_id=_text(data, "external_id"),
            name=_text(data, "name"),
            ebs_account_id=_text(data, "ebs_account_id"),
            created=_text(data, "created_at"),
            updated=_text(data, "updated_at"),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "name": self.name,
            "ebs_account_id": self.ebs_account_id,
            "created_at": self.created,
            "updated_at": self.updated,
        }


@dataclass
class Subscription:
    """A cluster subscription belonging to an organization."""

    cluster_id: str = ""
    display_name: str = ""
    status: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Subscription:
        data = _mapping(data)
        return cls(
            cluster_id=_text(data, "cluster_id"),
            display_name=_text(data, "display_name"),
            status=_text(data, "status"),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "cluster_id": self.cluster_id,
            "display_name": self.display_name,
            "status": self.status,
        }


@dataclass
class Label:
    """A key/value label attached to an organization."""

    id: str = ""
    key: str = ""
    value: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Label:
        data = _mapping(data)
        return cls(id=_text(data, "id"), key=_text(data, "key"), value=_text(data, "value"))

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "key": self.key, "value": self.value}


@dataclass
class UserModel:
    """A user of an organization with the roles it holds."""

    user_name: str = ""
    user_id: str = ""
    roles: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"user-name": self.user_name, "user-id": self.user_id, "roles": list(self.roles)}


def check_org_id(args: Sequence[str]) -> str:
    """Return the single organization id in ``args``, or raise."""
    if len(args) == 0:
        raise OrgError("organization id was not provided. please provide a organization id")
    if len(args) != 1:
        raise OrgError(f"too many arguments. expected 1 got {len(args)}")
    return args[0]


def get_search_type(user: str, ebs_account_id: str) -> SearchType:
    """Pick the search type; a user name takes precedence."""
    if user:
        return SearchType.USER
    if ebs_account_id:
        return SearchType.EBS
    return SearchType.NONE


def get_search_query(user: str, ebs_account_id: str, part_match: bool = False) -> str:
    """Build the ``search=`` parameter for an organization lookup."""
    search_type = get_search_type(user, ebs_account_id)
    if search_type is SearchType.USER:
        prepend = "%" if part_match else ""
        return f"search=username like '{prepend}{user}%'"
    if search_type is SearchType.EBS:
        return f"search=ebs_account_id='{ebs_account_id}'"
    raise OrgError("invalid search params")


def search_api_path(search_type: SearchType) -> str:
    """Return the API path queried for ``search_type``."""
    if search_type is SearchType.USER:
        return ACCOUNTS_API_PATH
    if search_type is SearchType.EBS:
        return ORGANIZATIONS_API_PATH
    raise OrgError("invalid search params")


def _load(body: bytes | str) -> Any:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise OrgError(f"invalid JSON reply: {exc}") from exc


def _items(body: bytes | str) -> list[Any]:
    data = _load(body)
    try:
        raw = _mapping(data).get("items")
    except ValueError as exc:
        raise OrgError(str(exc)) from exc
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise OrgError("field 'items' must be a list")
    return raw


def _convert(cls: Any, items: Iterable[Any]) -> list[Any]:
    try:
        return [cls.from_dict(item) for item in items]
    except ValueError as exc:
        raise OrgError(str(exc)) from exc


def parse_org_list(body: bytes | str, search_type: SearchType) -> list[Organization]:
    """Read the organizations from a search reply."""
    if search_type is SearchType.USER:
        accounts = _items(body)
        try:
            return [
                Organization.from_dict(_mapping(account).get("organization") or {})
                for account in accounts
            ]
        except ValueError as exc:
            raise OrgError(str(exc)) from exc
    if search_type is SearchType.EBS:
        return _convert(Organization, _items(body))
    return []


def parse_current_organization(body: bytes | str) -> Organization:
    """Read the organization of the current account."""
    data = _load(body)
    try:
        return Organization.from_dict(_mapping(data).get("organization") or {})
    except ValueError as exc:
        raise OrgError(str(exc)) from exc


def clusters_search_parameter(org_id: str) -> str:
    """Build the ``search=`` parameter selecting an organization's subscriptions."""
    return f"search=organization_id='{org_id}'"


def parse_subscriptions(body: bytes | str) -> list[Subscription]:
    """Read the subscriptions from a reply."""
    return _convert(Subscription, _items(body))


def filter_active(subscriptions: Iterable[Subscription], only_active: bool) -> list[Subscription]:
    """Keep only active subscriptions when ``only_active`` is set."""
    return [s for s in subscriptions if not only_active or s.status == STATUS_ACTIVE]


def describe_path(org_id: str) -> str:
    """API path describing one organization."""
    return f"{ORGANIZATIONS_API_PATH}/{org_id}"


def labels_path(org_id: str) -> str:
    """API path listing an organization's labels."""
    return f"{ORGANIZATIONS_API_PATH}/{org_id}/labels"


def parse_labels(body: bytes | str) -> list[Label]:
    """Read the labels from a reply."""
    return _convert(Label, _items(body))


def check_roles(roles: Iterable[str], role_args: Iterable[str]) -> bool:
    """Tell whether any of ``roles`` is among ``role_args``."""
    wanted = set(role_args)
    return any(role in wanted for role in roles)


def format_roles(roles: Sequence[str]) -> str:
    """Join roles for display, last first, each followed by a space."""
    return "".join(f"{role} " for role in reversed(roles))


def _plain(data: Any) -> Any:
    to_dict = getattr(data, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(data, dict):
        return {key: _plain(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [_plain(item) for item in data]
    return data


def to_json(data: Any) -> str:
    """Render ``data`` as indented JSON; lists of records go under ``items``."""
    return json.dumps(_plain(data), indent=2, ensure_ascii=False)