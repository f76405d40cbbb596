"""Typed automation rule configs.

Rule rows store trigger/action payloads as free-form JSON. They are decoded
once, when rules are loaded, into frozen pydantic models; a row that does not
decode raises `RuleConfigError` and is skipped rather than failing per event.
"""

from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Type, Union
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from tiaen.models import AutomationRule

SENTIMENTS = ("positive", "neutral", "negative")
PRIORITIES = ("low", "medium", "high", "urgent")
_DAY_NAMES = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}


class RuleConfigError(Exception):
    def __init__(self, rule_id: Any, message: str):
        self.rule_id = rule_id
        super().__init__(f"Rule {rule_id}: {message}")


@dataclass(frozen=True)
class RuleContext:
    """What a trigger may look at for one event."""

    body: str
    message_count: int
    sentiment: Optional[str]
    now: datetime


def _split_value(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


class _Config(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# Triggers


class KeywordTrigger(_Config):
    type: Literal["keyword"] = "keyword"
    keywords: Tuple[str, ...] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _from_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "keywords" not in data and "value" in data:
            data = {**data, "keywords": data["value"]}
        return data

    @field_validator("keywords", mode="before")
    @classmethod
    def _split(cls, v: Any) -> Tuple[str, ...]:
        return tuple(_split_value(v))

    def matches(self, ctx: RuleContext) -> bool:
        body = ctx.body.casefold()
        return any(keyword.casefold() in body for keyword in self.keywords)


class FirstMessageTrigger(_Config):
    type: Literal["first_message"] = "first_message"

    def matches(self, ctx: RuleContext) -> bool:
        return ctx.message_count == 1


class SentimentTrigger(_Config):
    type: Literal["sentiment"] = "sentiment"
    sentiments: Tuple[Literal["positive", "neutral", "negative"], ...] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _from_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "sentiments" not in data:
            raw = data.get("sentiment", data.get("value"))
            if raw is not None:
                data = {**data, "sentiments": raw}
        return data

    @field_validator("sentiments", mode="before")
    @classmethod
    def _split(cls, v: Any) -> Tuple[str, ...]:
        return tuple(s.lower() for s in _split_value(v))

    def matches(self, ctx: RuleContext) -> bool:
        return (ctx.sentiment or "").lower() in self.sentiments


class TimeTrigger(_Config):
    """Wall-clock window [start, end); windows with end <= start wrap past midnight."""

    type: Literal["time"] = "time"
    start: time
    end: time
    days: Optional[Tuple[int, ...]] = None
    timezone: str = "UTC"

    @model_validator(mode="before")
    @classmethod
    def _from_value(cls, data: Any) -> Any:
        # "09:00-18:00"
        if isinstance(data, dict) and "start" not in data and isinstance(data.get("value"), str):
            start, sep, end = data["value"].partition("-")
            if sep:
                data = {**data, "start": start.strip(), "end": end.strip()}
        return data

    @field_validator("days", mode="before")
    @classmethod
    def _parse_days(cls, v: Any) -> Optional[Tuple[int, ...]]:
        if v is None:
            return None
        days = []
        for item in _split_value(v):
            key = item.lower()[:3]
            if key in _DAY_NAMES:
                days.append(_DAY_NAMES[key])
            elif item.isdigit() and 0 <= int(item) <= 6:
                days.append(int(item))
            else:
                raise ValueError(f"invalid day: {item}")
        return tuple(days)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v}") from e
        return v

    def matches(self, ctx: RuleContext) -> bool:
        now = ctx.now if ctx.now.tzinfo else ctx.now.replace(tzinfo=timezone.utc)
        local = now.astimezone(ZoneInfo(self.timezone))
        if self.days is not None and local.weekday() not in self.days:
            return False
        current = local.time().replace(tzinfo=None)
        if self.start < self.end:
            return self.start <= current < self.end
        return current >= self.start or current < self.end


Trigger = Union[KeywordTrigger, FirstMessageTrigger, SentimentTrigger, TimeTrigger]

TRIGGER_TYPES: Dict[str, Type[_Config]] = {
    "keyword": KeywordTrigger,
    "first_message": FirstMessageTrigger,
    "sentiment": SentimentTrigger,
    "time": TimeTrigger,
}


# Actions


class SendMessageAction(_Config):
    type: Literal["send_message"] = "send_message"
    message: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _from_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "message" not in data:
            raw = data.get("text", data.get("value"))
            if raw is not None:
                data = {**data, "message": raw}
        return data


class TransferAgentAction(_Config):
    type: Literal["transfer_agent"] = "transfer_agent"
    agent_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "agent_id" not in data and data.get("value"):
            data = {**data, "agent_id": str(data["value"])}
        return data


class AddTagAction(_Config):
    type: Literal["add_tag"] = "add_tag"
    tags: Tuple[str, ...] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _from_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "tags" not in data:
            raw = data.get("tag", data.get("value"))
            if raw is not None:
                data = {**data, "tags": raw}
        return data

    @field_validator("tags", mode="before")
    @classmethod
    def _split(cls, v: Any) -> Tuple[str, ...]:
        return tuple(_split_value(v))


class CreateTicketAction(_Config):
    type: Literal["create_ticket"] = "create_ticket"
    priority: Literal["low", "medium", "high", "urgent"] = "high"
    title: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "title" not in data and data.get("value"):
            data = {**data, "title": str(data["value"])}
        return data


Action = Union[SendMessageAction, TransferAgentAction, AddTagAction, CreateTicketAction]

ACTION_TYPES: Dict[str, Type[_Config]] = {
    "send_message": SendMessageAction,
    "transfer_agent": TransferAgentAction,
    "add_tag": AddTagAction,
    "create_ticket": CreateTicketAction,
}


@dataclass(frozen=True)
class DecodedRule:
    id: UUID
    name: str
    priority: Optional[int]
    trigger: Trigger
    action: Action

    @property
    def sort_key(self) -> tuple:
        # Prioritised rules first (ascending), then the rest; identifier breaks ties.
        return (self.priority is None, self.priority if self.priority is not None else 0, str(self.id))


def _decode(kind: str, types: Dict[str, Type[_Config]], config: Any, rule_id: Any, label: str):
    model = types.get(kind)
    if model is None:
        raise RuleConfigError(rule_id, f"unknown {label} type: {kind!r}")
    payload = dict(config or {})
    payload.pop("type", None)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise RuleConfigError(rule_id, f"invalid {label} config: {e.errors(include_url=False)}") from e


def decode_rule(rule: AutomationRule) -> DecodedRule:
    """Raises RuleConfigError when the trigger or action payload is invalid."""
    if not isinstance(rule.trigger_config or {}, dict):
        raise RuleConfigError(rule.id, "trigger_config must be an object")
    if not isinstance(rule.action_config or {}, dict):
        raise RuleConfigError(rule.id, "action_config must be an object")
    return DecodedRule(
        id=rule.id,
        name=rule.name,
        priority=rule.priority,
        trigger=_decode(rule.trigger_type, TRIGGER_TYPES, rule.trigger_config, rule.id, "trigger"),
        action=_decode(rule.action_type, ACTION_TYPES, rule.action_config, rule.id, "action"),
    )


def load_rules(rules: Sequence[AutomationRule]) -> Tuple[List[DecodedRule], List[RuleConfigError]]:
    """Decode rules and return them in evaluation order, with the decode errors."""
    decoded: List[DecodedRule] = []
    errors: List[RuleConfigError] = []
    for rule in rules:
        try:
            decoded.append(decode_rule(rule))
        except RuleConfigError as e:
            errors.append(e)
    decoded.sort(key=lambda r: r.sort_key)
    return decoded, errors
