"""Data types for limited support reasons."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .servicelog_models import _mapping, _parse_time, _text


@dataclass
class LimitedSupport:
    """A limited support reason template."""

    id: str = ""
    template_id: str = ""
    summary: str = ""
    details: str = ""
    detection_type: str = ""

    def replace_with_flag(self, variable: str, value: str) -> None:
        """Replace ``variable`` in the summary and details."""
        self.summary = self.summary.replace(variable, value)
        self.details = self.details.replace(variable, value)

    def search_flag(self, placeholder: str) -> bool:
        """Tell whether the summary or details contain ``placeholder``."""
        return placeholder in self.summary or placeholder in self.details

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id:
            data["id"] = self.id
        if self.template_id:
            data["template_id"] = self.template_id
        data["summary"] = self.summary
        data["details"] = self.details
        data["detection_type"] = self.detection_type
        return data

    @classmethod
    def from_dict(cls, data: Any) -> LimitedSupport:
        data = _mapping(data)
        return cls(
            id=_text(data, "id"),
            template_id=_text(data, "template_id"),
            summary=_text(data, "summary"),
            details=_text(data, "details"),
            detection_type=_text(data, "detection_type"),
        )


@dataclass
class GoodReply:
    """A successful reply after posting a limited support reason."""

    id: str = ""
    kind: str = ""
    href: str = ""
    details: str = ""
    detection_type: str = ""
    summary: str = ""
    creation_timestamp: datetime | None = None

    @classmethod
    def from_dict(cls, data: Any) -> GoodReply:
        data = _mapping(data)
        return cls(
            id=_text(data, "id"),
            kind=_text(data, "kind"),
            href=_text(data, "href"),
            details=_text(data, "details"),
            detection_type=_text(data, "detection_type"),
            summary=_text(data, "summary"),
            creation_timestamp=_parse_time(data.get("creation_timestamp")),
        )


@dataclass
class BadReply:
    """An error reply; ``details`` holds the detail descriptions."""

    id: str = ""
    kind: str = ""
    href: str = ""
    code: str = ""
    reason: str = ""
    details: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> BadReply:
        data = _mapping(data)
        raw = data.get("details")
        if raw is None:
            raw = []
        if not isinstance(raw, list):
            raise ValueError("field 'details' must be a list")
        return cls(
            id=_text(data, "id"),
            kind=_text(data, "kind"),
            href=_text(data, "href"),
            code=_text(data, "code"),
            reason=_text(data, "reason"),
            details=[_text(_mapping(item), "description") for item in raw],
        )