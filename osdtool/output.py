"""Printing command responses as text, JSON or YAML."""

from __future__ import annotations

import dataclasses
import json
from datetime import datetime
from typing import Any

import yaml


def _plain(resp: Any) -> Any:
    to_dict = getattr(resp, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(resp) and not isinstance(resp, type):
        return dataclasses.asdict(resp)
    return resp


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def print_response(output: str, resp: Any) -> None:
    """Print ``resp`` as JSON or YAML, or as its string form otherwise."""
    if output == "json":
        print(json.dumps(_plain(resp), indent=4, ensure_ascii=False, default=_json_default))
    elif output == "yaml":
        print(yaml.safe_dump(_plain(resp), sort_keys=False, allow_unicode=True))
    else:
        print(resp)