import uuid
from datetime import datetime, time, timezone

import pytest

from tests.fakes import make_rule
from tiaen.services.automation_rules import (
    AddTagAction,
    CreateTicketAction,
    KeywordTrigger,
    RuleConfigError,
    RuleContext,
    SendMessageAction,
    SentimentTrigger,
    TimeTrigger,
    decode_rule,
    load_rules,
)


def _ctx(body="", message_count=2, sentiment="neutral", now=None) -> RuleContext:
    return RuleContext(
        body=body,
        message_count=message_count,
        sentiment=sentiment,
        now=now or datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc),
    )


class TestDecodeRule:
    def test_keyword_list(self):
        rule = decode_rule(make_rule("keyword", {"keywords": ["preço", "valor"]}, "send_message", {"message": "R$ 10"}))

        assert isinstance(rule.trigger, KeywordTrigger)
        assert rule.trigger.keywords == ("preço", "valor")
        assert isinstance(rule.action, SendMessageAction)

    def test_keyword_comma_separated_value(self):
        rule = decode_rule(make_rule("keyword", {"value": "price, cost"}, "add_tag", {"value": "sales"}))

        assert rule.trigger.keywords == ("price", "cost")
        assert isinstance(rule.action, AddTagAction)
        assert rule.action.tags == ("sales",)

    def test_create_ticket_defaults_to_high_priority(self):
        rule = decode_rule(make_rule("first_message", {}, "create_ticket", {}))
        assert isinstance(rule.action, CreateTicketAction)
        assert rule.action.priority == "high"

    def test_unknown_trigger_type(self):
        with pytest.raises(RuleConfigError, match="unknown trigger type"):
            decode_rule(make_rule("schedule", {}, "send_message", {"message": "x"}))

    def test_send_message_requires_text(self):
        with pytest.raises(RuleConfigError, match="invalid action config"):
            decode_rule(make_rule("first_message", {}, "send_message", {}))

    def test_keyword_requires_keywords(self):
        with pytest.raises(RuleConfigError):
            decode_rule(make_rule("keyword", {"keywords": []}, "send_message", {"message": "x"}))

    def test_time_window_from_value(self):
        rule = decode_rule(make_rule("time", {"value": "09:00-18:00"}, "add_tag", {"tags": ["office"]}))
        assert rule.trigger.start == time(9, 0)
        assert rule.trigger.end == time(18, 0)

    def test_unknown_timezone(self):
        with pytest.raises(RuleConfigError):
            decode_rule(make_rule("time", {"start": "09:00", "end": "18:00", "timezone": "Mars/Base"}, "add_tag", {"tag": "x"}))


class TestTriggers:
    def test_keyword_is_case_insensitive_substring(self):
        trigger = KeywordTrigger(keywords=("PREÇO",))
        assert trigger.matches(_ctx(body="qual o preço do plano?"))
        assert not trigger.matches(_ctx(body="bom dia"))

    def test_sentiment(self):
        trigger = SentimentTrigger(sentiments=("negative",))
        assert trigger.matches(_ctx(sentiment="negative"))
        assert not trigger.matches(_ctx(sentiment="neutral"))
        assert not trigger.matches(_ctx(sentiment=None))

    def test_time_window(self):
        trigger = TimeTrigger(start="09:00", end="18:00")
        assert trigger.matches(_ctx(now=datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)))
        assert not trigger.matches(_ctx(now=datetime(2024, 1, 3, 18, 0, tzinfo=timezone.utc)))

    def test_overnight_window(self):
        trigger = TimeTrigger(start="22:00", end="06:00")
        assert trigger.matches(_ctx(now=datetime(2024, 1, 3, 23, 30, tzinfo=timezone.utc)))
        assert trigger.matches(_ctx(now=datetime(2024, 1, 3, 5, 0, tzinfo=timezone.utc)))
        assert not trigger.matches(_ctx(now=datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)))

    def test_time_window_in_local_timezone(self):
        trigger = TimeTrigger(start="09:00", end="18:00", timezone="America/Sao_Paulo")
        # 11:00 UTC is 08:00 in São Paulo
        assert not trigger.matches(_ctx(now=datetime(2024, 1, 3, 11, 0, tzinfo=timezone.utc)))
        assert trigger.matches(_ctx(now=datetime(2024, 1, 3, 13, 0, tzinfo=timezone.utc)))

    def test_days_filter(self):
        trigger = TimeTrigger(start="00:00", end="23:59", days=["sat", "sun"])
        # 2024-01-03 is a Wednesday, 2024-01-06 a Saturday
        assert not trigger.matches(_ctx(now=datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)))
        assert trigger.matches(_ctx(now=datetime(2024, 1, 6, 12, 0, tzinfo=timezone.utc)))


class TestLoadRules:
    def test_order_is_priority_then_id(self):
        ids = sorted(uuid.uuid4() for _ in range(4))
        rules = [
            make_rule("first_message", {}, "add_tag", {"tag": "a"}, rule_id=ids[0]),
            make_rule("first_message", {}, "add_tag", {"tag": "b"}, rule_id=ids[1], priority=2),
            make_rule("first_message", {}, "add_tag", {"tag": "c"}, rule_id=ids[2], priority=1),
            make_rule("first_message", {}, "add_tag", {"tag": "d"}, rule_id=ids[3], priority=1),
        ]

        decoded, errors = load_rules(list(reversed(rules)))

        assert errors == []
        assert [r.id for r in decoded] == [ids[2], ids[3], ids[1], ids[0]]

    def test_invalid_rules_are_reported_and_skipped(self):
        good = make_rule("first_message", {}, "add_tag", {"tag": "a"})
        bad = make_rule("keyword", {}, "send_message", {"message": "x"})

        decoded, errors = load_rules([good, bad])

        assert [r.id for r in decoded] == [good.id]
        assert len(errors) == 1
        assert errors[0].rule_id == bad.id
