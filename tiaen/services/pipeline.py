"""Per-event conversation pipeline.

normalize -> identify contact -> resolve conversation -> persist inbound
message -> automation -> (unclaimed text messages) retrieval -> dispatch.

Everything before the inbound message is persisted is fatal for the event;
everything after is best effort and ends the run at DONE with the error
recorded on the conversation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional
from uuid import UUID

from tiaen.config import Settings
from tiaen.logging_config import EventLoggerAdapter, get_logger
from tiaen.models import Conversation
from tiaen.services.automation_service import AutomationEngine
from tiaen.services.conversation_service import record_pipeline_error, resolve_conversation, update_sentiment
from tiaen.services.dispatch_service import Dispatcher
from tiaen.services.event_normalizer import IgnoredEvent, InboundEvent, normalize
from tiaen.services.gateway_service import EvolutionGateway, Gateway
from tiaen.services.identity_service import resolve_contact
from tiaen.services.instance_service import apply_instance_event
from tiaen.services.llm.base import ModelProvider
from tiaen.services.llm.openai_provider import OpenAIProvider
from tiaen.services.message_service import save_inbound_message
from tiaen.services.pipeline_state import PipelineState, transition
from tiaen.services.rag_service import RetrievalOrchestrator
from tiaen.services.result import Result
from tiaen.services.sentiment_service import analyze_sentiment
from tiaen.services.store import Store

logger = get_logger("pipeline")


@dataclass
class PipelineOutcome:
    state: PipelineState = PipelineState.RECEIVED
    trace: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    contact_id: Optional[UUID] = None
    conversation_id: Optional[UUID] = None
    inbound_message_id: Optional[UUID] = None
    outbound_message_id: Optional[UUID] = None
    claimed: bool = False
    rule_id: Optional[UUID] = None
    reply: Optional[str] = None
    ignored: Optional[IgnoredEvent] = None
    errors: List[dict] = field(default_factory=list)

    def advance(self, state: PipelineState) -> None:
        self.state = transition(self.state, state)
        self.trace.append(state)

    def fail(self, stage: str, result: Result) -> None:
        self.errors.append({"stage": stage, "error": result.error, "code": result.error_code})


class PipelineCoordinator:
    def __init__(
        self,
        store: Store,
        model: ModelProvider,
        gateway: Gateway,
        *,
        system_prompt: str,
        channel: str = "whatsapp",
        temperature: float = 0.7,
        max_tokens: int = 500,
        similarity_threshold: float = 0.7,
        top_k: int = 5,
        skew_tolerance_seconds: float = 5.0,
        sentiment_analysis_enabled: bool = False,
        default_instance: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.model = model
        self.channel = channel
        self.skew_tolerance_seconds = skew_tolerance_seconds
        self.sentiment_analysis_enabled = sentiment_analysis_enabled
        self.dispatcher = Dispatcher(store, gateway, default_instance)
        self.automation = AutomationEngine(store, self.dispatcher, clock=clock)
        self.retrieval = RetrievalOrchestrator(
            store,
            model,
            system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            similarity_threshold=similarity_threshold,
            top_k=top_k,
        )

    @classmethod
    def from_settings(cls, store: Store, config: Settings) -> "PipelineCoordinator":
        model = OpenAIProvider(
            api_key=config.openai_api_key,
            default_model=config.completion_model,
            embedding_model=config.embedding_model,
            base_url=config.openai_base_url,
            timeout_seconds=config.model_timeout_seconds,
        )
        gateway = EvolutionGateway(
            base_url=config.evolution_api_url,
            api_key=config.evolution_api_key,
            default_instance=config.evolution_default_instance,
            timeout_seconds=config.gateway_timeout_seconds,
        )
        return cls(
            store,
            model,
            gateway,
            system_prompt=config.rag_system_prompt,
            channel=config.channel,
            temperature=config.rag_temperature,
            max_tokens=config.rag_max_tokens,
            similarity_threshold=config.rag_similarity_threshold,
            top_k=config.rag_top_k,
            skew_tolerance_seconds=config.message_skew_tolerance_seconds,
            sentiment_analysis_enabled=config.sentiment_analysis_enabled,
            default_instance=config.evolution_default_instance,
        )

    def handle(self, payload: Any) -> PipelineOutcome:
        """Process one webhook payload. Never raises."""
        outcome = PipelineOutcome()
        try:
            self._run(payload, outcome)
        except Exception as e:
            logger.exception("Unhandled pipeline error", extra={"context": {"state": outcome.state.value}})
            outcome.errors.append({"stage": outcome.state.value, "error": str(e), "code": "unknown"})
            if outcome.state not in (PipelineState.DONE, PipelineState.DROPPED):
                outcome.state = PipelineState.DONE
                outcome.trace.append(PipelineState.DONE)
        return outcome

    def _run(self, payload: Any, outcome: PipelineOutcome) -> None:
        normalized = normalize(payload)
        if not normalized.ok:
            outcome.fail("normalize", normalized)
            outcome.advance(PipelineState.DROPPED)
            return
        outcome.advance(PipelineState.NORMALIZED)

        if isinstance(normalized.value, IgnoredEvent):
            outcome.ignored = normalized.value
            apply_instance_event(self.store, normalized.value)
            outcome.advance(PipelineState.DONE)
            return

        event: InboundEvent = normalized.value
        log = EventLoggerAdapter(logger, {"provider_message_id": event.provider_message_id})

        contact_result = resolve_contact(self.store, event, self.channel)
        if not contact_result.ok:
            log.error("Contact resolution failed", extra={"context": {"error": contact_result.error}})
            outcome.fail("identify", contact_result)
            outcome.advance(PipelineState.DONE)
            return
        contact = contact_result.value
        outcome.contact_id = contact.id
        outcome.advance(PipelineState.IDENTIFIED)

        conversation_result = resolve_conversation(self.store, contact, self.channel)
        if not conversation_result.ok:
            log.error("Conversation resolution failed", extra={"context": {"error": conversation_result.error}})
            outcome.fail("resolve_conversation", conversation_result)
            outcome.advance(PipelineState.DONE)
            return
        conversation = conversation_result.value
        outcome.conversation_id = conversation.id
        log.extra = {**log.extra, "conversation_id": str(conversation.id)}
        outcome.advance(PipelineState.CONVERSATION_RESOLVED)

        message_result = save_inbound_message(self.store, conversation, event, self.skew_tolerance_seconds)
        if not message_result.ok:
            log.error("Inbound message persist failed", extra={"context": {"error": message_result.error}})
            outcome.fail("persist_message", message_result)
            outcome.advance(PipelineState.DONE)
            return
        outcome.inbound_message_id = message_result.value.id
        outcome.advance(PipelineState.MESSAGE_PERSISTED)

        if event.is_from_bot:
            log.info("Bot echo persisted")
            outcome.advance(PipelineState.DONE)
            return

        if self.sentiment_analysis_enabled and event.type == "text":
            sentiment = analyze_sentiment(self.model, event.body)
            if update_sentiment(self.store, conversation.id, sentiment):
                conversation.sentiment = sentiment

        automation = self.automation.evaluate(event, conversation)
        outcome.advance(PipelineState.AUTOMATION_EVALUATED)
        if not automation.ok:
            self._record_failure(outcome, conversation, "automation", automation)
        elif automation.value.claimed:
            outcome.claimed = True
            outcome.rule_id = automation.value.rule_id
            outcome.reply = automation.value.reply_text
            outcome.advance(PipelineState.DONE)
            return

        if event.type != "text":
            log.info("Non-text message, skipping retrieval", extra={"context": {"type": event.type}})
            outcome.advance(PipelineState.DONE)
            return

        outcome.advance(PipelineState.RETRIEVING)
        answer = self.retrieval.respond(conversation.summary, event.body, conversation_id=conversation.id)
        if not answer.ok:
            self._record_failure(outcome, conversation, "retrieval", answer)
            outcome.advance(PipelineState.DONE)
            return

        outcome.advance(PipelineState.RESPONDING)
        rag = answer.value
        dispatched = self.dispatcher.send(
            conversation.id,
            event.contact_phone,
            rag.answer,
            instance_id=event.instance_id,
            metadata={
                "rag_response": True,
                "confidence": rag.confidence,
                "sources": rag.sources,
                "suggested_actions": rag.suggested_actions,
            },
        )
        if not dispatched.ok:
            self._record_failure(outcome, conversation, "dispatch", dispatched)
            outcome.advance(PipelineState.DONE)
            return

        outcome.reply = rag.answer
        if dispatched.value.message is not None:
            outcome.outbound_message_id = dispatched.value.message.id
        outcome.advance(PipelineState.DISPATCHED)
        outcome.advance(PipelineState.DONE)

    def _record_failure(
        self,
        outcome: PipelineOutcome,
        conversation: Conversation,
        stage: str,
        result: Result,
    ) -> None:
        outcome.fail(stage, result)
        logger.warning(
            "Pipeline stage failed",
            extra={
                "context": {
                    "conversation_id": str(conversation.id),
                    "stage": stage,
                    "code": result.error_code,
                    "error": result.error,
                }
            },
        )
        record_pipeline_error(self.store, conversation, stage, result.error or "", result.error_code)
