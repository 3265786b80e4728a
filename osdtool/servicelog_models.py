"""Data types exchanged with the service log API."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\$\{[^{}]*\}")
_FRACTION = re.compile(r"\.(\d+)")


def _mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    return data


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _flag(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


def _number(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _strings(data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"field {key!r} must be a list of strings")
    return list(value)


def _parse_time(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp; a missing value gives None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"invalid timestamp {value!r}")
    text = value
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        raise ValueError(f"invalid timestamp {value!r}: missing time zone")
    return parsed


@dataclass
class Message:
    """A service log message template."""

    severity: str = ""
    service_name: str = ""
    cluster_uuid: str = ""
    cluster_id: str = ""
    summary: str = ""
    description: str = ""
    internal_only: bool = False
    event_stream_id: str = ""
    subscription_id: str = ""

    def _text_fields(self) -> list[str]:
        return [f.name for f in fields(self) if f.name != "internal_only"]

    def replace_with_flag(self, variable: str, value: str) -> None:
        """Replace every occurrence of ``variable`` in the text fields."""
        for name in self._text_fields():
            setattr(self, name, getattr(self, name).replace(variable, value))

    def search_flag(self, placeholder: str) -> bool:
        """Tell whether any text field contains ``placeholder``."""
        return any(placeholder in getattr(self, name) for name in self._text_fields())

    def find_leftovers(self) -> list[str]:
        """Return the ``${...}`` placeholders still present in the message."""
        text = (
            self.severity
            + self.service_name
            + self.cluster_uuid
            + self.summary
            + self.description
            + self.event_stream_id
        )
        return _PLACEHOLDER.findall(text)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "severity": self.severity,
            "service_name": self.service_name,
        }
        if self.cluster_uuid:
            data["cluster_uuid"] = self.cluster_uuid
        if self.cluster_id:
            data["cluster_id"] = self.cluster_id
        data["summary"] = self.summary
        data["description"] = self.description
        data["internal_only"] = self.internal_only
        data["event_stream_id"] = self.event_stream_id
        if self.subscription_id:
            data["subscription_id"] = self.subscription_id
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Message:
        data = _mapping(data)
        return cls(
            severity=_text(data, "severity"),
            service_name=_text(data, "service_name"),
            cluster_uuid=_text(data, "cluster_uuid"),
            cluster_id=_text(data, "cluster_id"),
            summary=_text(data, "summary"),
            description=_text(data, "description"),
            internal_only=_flag(data, "internal_only"),
            event_stream_id=_text(data, "event_stream_id"),
            subscription_id=_text(data, "subscription_id"),
        )


@dataclass
class GoodReply:
    """A successful reply after posting a service log."""

    id: str = ""
    kind: str = ""
    href: str = ""
    timestamp: datetime | None = None
    severity: str = ""
    service_name: str = ""
    cluster_uuid: str = ""
    summary: str = ""
    description: str = ""
    event_stream_id: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> GoodReply:
        data = _mapping(data)
        return cls(
            id=_text(data, "id"),
            kind=_text(data, "kind"),
            href=_text(data, "href"),
            timestamp=_parse_time(data.get("timestamp")),
            severity=_text(data, "severity"),
            service_name=_text(data, "service_name"),
            cluster_uuid=_text(data, "cluster_uuid"),
            summary=_text(data, "summary"),
            description=_text(data, "description"),
            event_stream_id=_text(data, "event_stream_id"),
            created_at=_parse_time(data.get("created_at")),
        )


@dataclass
class ServiceLogShort:
    """A condensed service log entry."""

    summary: str = ""
    description: str = ""
    created_at: datetime | None = None
    severity: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> ServiceLogShort:
        data = _mapping(data)
        return cls(
            summary=_text(data, "summary"),
            description=_text(data, "description"),
            created_at=_parse_time(data.get("created_at")),
            severity=_text(data, "severity"),
        )


@dataclass
class ClusterListGoodReply:
    """A page of service logs for a cluster."""

    kind: str = ""
    page: int = 0
    size: int = 0
    total: int = 0
    items: list[GoodReply] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ClusterListGoodReply:
        data = _mapping(data)
        raw_items = data.get("items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ValueError("field 'items' must be a list")
        return cls(
            kind=_text(data, "kind"),
            page=_number(data, "page"),
            size=_number(data, "size"),
            total=_number(data, "total"),
            items=[GoodReply.from_dict(item) for item in raw_items],
        )


@dataclass
class BadReply:
    """An error reply from the service log API."""

    id: str = ""
    kind: str = ""
    href: str = ""
    code: str = ""
    reason: str = ""
    operation_id: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> BadReply:
        data = _mapping(data)
        return cls(
            id=_text(data, "id"),
            kind=_text(data, "kind"),
            href=_text(data, "href"),
            code=_text(data, "code"),
            reason=_text(data, "reason"),
            operation_id=_text(data, "operation_id"),
        )


@dataclass
class ClustersFile:
    """A list of cluster identifiers read from a file."""

    clusters: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> ClustersFile:
        data = _mapping(data)
        return cls(clusters=_strings(data, "clusters"))