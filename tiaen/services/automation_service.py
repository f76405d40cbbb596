"""First-match-wins automation rule engine."""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from tiaen.logging_config import get_logger
from tiaen.models import Conversation
from tiaen.services.automation_rules import (
    AddTagAction,
    CreateTicketAction,
    DecodedRule,
    RuleConfigError,
    RuleContext,
    SendMessageAction,
    TransferAgentAction,
    load_rules,
)
from tiaen.services.dispatch_service import Dispatcher
from tiaen.services.event_normalizer import InboundEvent
from tiaen.services.result import ErrorKind, Result
from tiaen.services.store import Store, StoreError

logger = get_logger("automation_service")

TICKET_TAG = "ticket"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationExecutionError(Exception):
    pass


@dataclass
class ActionResult:
    claimed: bool
    rule_id: Optional[UUID] = None
    rule_name: Optional[str] = None
    action: Optional[str] = None
    reply_text: Optional[str] = None


def _merge_tags(current: Optional[List[str]], extra) -> List[str]:
    merged = list(current or [])
    for tag in extra:
        if tag not in merged:
            merged.append(tag)
    return merged


class AutomationEngine:
    def __init__(
        self,
        store: Store,
        dispatcher: Dispatcher,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock or _utcnow

    def load(self) -> Tuple[List[DecodedRule], List[RuleConfigError]]:
        return load_rules(self.store.get_active_automation_rules())

    def find_match(self, rules: List[DecodedRule], ctx: RuleContext) -> Optional[DecodedRule]:
        for rule in rules:
            if rule.trigger.matches(ctx):
                return rule
        return None

    def evaluate(self, event: InboundEvent, conversation: Conversation) -> Result[ActionResult]:
        """Run the first matching rule's action.

        A failure result means the rule set could not be loaded or the action
        failed; callers treat it as unclaimed.
        """
        try:
            rules, errors = self.load()
            message_count = self.store.count_messages(conversation.id)
        except StoreError as e:
            return Result.failure(f"Automation rules unavailable: {e}", ErrorKind.AUTOMATION_EXECUTION_ERROR)

        for error in errors:
            logger.debug("Skipping invalid automation rule", extra={"context": {"error": str(error)}})

        ctx = RuleContext(
            body=event.body,
            message_count=message_count,
            sentiment=conversation.sentiment,
            now=self.clock(),
        )
        try:
            rule = self.find_match(rules, ctx)
        except Exception as e:
            logger.warning("Automation trigger evaluation failed", extra={"context": {"error": str(e)}})
            return Result.failure(f"Automation trigger failed: {e}", ErrorKind.AUTOMATION_EXECUTION_ERROR)
        if rule is None:
            return Result.success(ActionResult(claimed=False))

        started = time.monotonic()
        trigger_data = {"type": rule.trigger.type, "body": event.body[:500], "message_count": message_count}
        try:
            reply_text = self._execute(rule, event, conversation)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.warning(
                "Automation action failed",
                extra={"context": {"rule_id": str(rule.id), "action": rule.action.type, "error": str(e)}},
            )
            self._audit(rule, conversation, "failed", trigger_data, str(e), elapsed_ms)
            return Result.failure(f"Rule {rule.name} failed: {e}", ErrorKind.AUTOMATION_EXECUTION_ERROR)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        self._audit(rule, conversation, "success", trigger_data, None, elapsed_ms)
        logger.info(
            "Automation rule claimed event",
            extra={
                "context": {
                    "rule_id": str(rule.id),
                    "rule": rule.name,
                    "action": rule.action.type,
                    "conversation_id": str(conversation.id),
                }
            },
        )
        return Result.success(
            ActionResult(
                claimed=True,
                rule_id=rule.id,
                rule_name=rule.name,
                action=rule.action.type,
                reply_text=reply_text,
            )
        )

    def _execute(self, rule: DecodedRule, event: InboundEvent, conversation: Conversation) -> Optional[str]:
        action = rule.action

        if isinstance(action, SendMessageAction):
            sent = self.dispatcher.send(
                conversation.id,
                event.contact_phone,
                action.message,
                instance_id=event.instance_id,
                metadata={"automation_rule_id": str(rule.id), "automation_rule": rule.name},
            )
            if not sent.ok:
                raise AutomationExecutionError(sent.error)
            return action.message

        if isinstance(action, TransferAgentAction):
            fields = {"status": "pending"}
            if action.agent_id:
                fields["assigned_agent_id"] = action.agent_id
            self.store.update_conversation(conversation.id, **fields)
            return None

        if isinstance(action, AddTagAction):
            self.store.update_conversation(conversation.id, tags=_merge_tags(conversation.tags, action.tags))
            return None

        if isinstance(action, CreateTicketAction):
            context = dict(conversation.context or {})
            context["ticket"] = {
                "title": action.title or rule.name,
                "rule_id": str(rule.id),
                "created_at": self.clock().isoformat(),
            }
            self.store.update_conversation(
                conversation.id,
                priority=action.priority,
                tags=_merge_tags(conversation.tags, [TICKET_TAG]),
                context=context,
            )
            return None

        raise AutomationExecutionError(f"unsupported action: {action.type}")

    def _audit(
        self,
        rule: DecodedRule,
        conversation: Conversation,
        status: str,
        trigger_data: dict,
        error_message: Optional[str],
        elapsed_ms: int,
    ) -> None:
        try:
            self.store.record_automation_execution(
                rule_id=rule.id,
                conversation_id=conversation.id,
                status=status,
                trigger_data=trigger_data,
                action_data=rule.action.model_dump(mode="json"),
                error_message=error_message,
                execution_time_ms=elapsed_ms,
            )
        except StoreError as e:
            logger.warning(
                "Automation execution audit failed",
                extra={"context": {"rule_id": str(rule.id), "error": str(e)}},
            )


def validate_active_rules(store: Store) -> Tuple[int, List[RuleConfigError]]:
    """Decode every active rule; returns (valid count, decode errors). Raises StoreError."""
    decoded, errors = load_rules(store.get_active_automation_rules())
    for error in errors:
        logger.error(
            "Invalid automation rule",
            extra={"context": {"rule_id": str(error.rule_id), "error": str(error)}},
        )
    return len(decoded), errors
