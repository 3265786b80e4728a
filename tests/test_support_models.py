from datetime import datetime, timezone

import pytest

from osdtool.support_models import BadReply, GoodReply, LimitedSupport


def test_limited_support_round_trip():
    reason = LimitedSupport(
        id="id-1",
        template_id="tpl",
        summary="summary",
        details="details",
        detection_type="manual",
    )
    assert LimitedSupport.from_dict(reason.to_dict()) == reason


def test_limited_support_omits_empty_ids():
    data = LimitedSupport(summary="s", details="d", detection_type="manual").to_dict()
    assert list(data) == ["summary", "details", "detection_type"]


def test_replace_with_flag_only_touches_text():
    reason = LimitedSupport(summary="${X} down", details="see ${X}", detection_type="${X}")
    reason.replace_with_flag("${X}", "api")
    assert reason.summary == "api down"
    assert reason.details == "see api"
    assert reason.detection_type == "${X}"


def test_search_flag():
    reason = LimitedSupport(details="needs ${Y}", detection_type="${Z}")
    assert reason.search_flag("${Y}") is True
    assert reason.search_flag("${Z}") is False


def test_from_dict_rejects_wrong_type():
    with pytest.raises(ValueError):
        LimitedSupport.from_dict({"summary": ["a"]})


def test_good_reply():
    reply = GoodReply.from_dict(
        {"id": "r1", "summary": "s", "creation_timestamp": "2023-01-02T03:04:05Z"}
    )
    assert reply.id == "r1"
    assert reply.creation_timestamp == datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_bad_reply_details():
    reply = BadReply.from_dict(
        {"reason": "invalid", "details": [{"description": "first"}, {"description": "second"}]}
    )
    assert reply.reason == "invalid"
    assert reply.details == ["first", "second"]


def test_bad_reply_rejects_bad_details():
    with pytest.raises(ValueError):
        BadReply.from_dict({"details": "oops"})