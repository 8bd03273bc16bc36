"""Inbound message pipeline: route, dedup, opt-out, quota, classify, respond."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from chatdesk.logging_config import LoggerAdapter, get_logger
from chatdesk.models import Conversation, Customer
from chatdesk.services.automation_service import AutomationEventType, create_automation_event
from chatdesk.services.conversation_service import (
    find_or_create_conversation,
    on_inbound_message,
    set_needs_agent,
    update_intent,
)
from chatdesk.services.customer_service import set_opted_out, upsert_customer
from chatdesk.services.intent_rules import Intent, IntentResult, match_opt_out
from chatdesk.services.intent_service import classify_intent
from chatdesk.services.language_service import DEFAULT_LANGUAGE, parse_language, resolve_language
from chatdesk.services.llm.base import LLMProvider
from chatdesk.services.message_service import (
    attach_intent,
    get_recent_history,
    message_exists,
    save_inbound_message,
)
from chatdesk.services.outbound_service import send_text
from chatdesk.services.policy_service import TenantPolicySnapshot, get_tenant_policies
from chatdesk.services.quota_service import check_inbound_quota
from chatdesk.services.response_engine import ReplyContext, ResponseEngine
from chatdesk.services.state_machine import is_human_owned
from chatdesk.services.tenant_router import TenantRouteInfo, TenantRouter
from chatdesk.services.usage_service import increment_usage
from chatdesk.services.webhook_parser import InboundMessage, PayloadParseError, parse_webhook_payload
from chatdesk.services.whatsapp_client import WhatsAppClient

logger = get_logger("webhook_service")

OPT_OUT_REPLY = "You've been unsubscribed. We won't send you any more messages. Reply START to re-subscribe."
OPT_IN_REPLY = "Welcome back! You've been re-subscribed. How can I help you today?"
QUOTA_EXCEEDED_REPLY = (
    "We're currently experiencing high message volume. A team member will respond to you shortly."
)


class MessageOutcome:
    NO_TENANT = "no_tenant"
    DUPLICATE = "duplicate"
    OPTED_OUT = "opted_out"
    OPT_OUT = "opt_out"
    OPT_IN = "opt_in"
    QUOTA_EXCEEDED = "quota_exceeded"
    AGENT_OWNED = "agent_owned"
    REPLIED = "replied"
    NOT_REPLIED = "not_replied"
    ERROR = "error"


class WebhookPipeline:
    def __init__(
        self,
        tenant_router: TenantRouter,
        client: WhatsAppClient,
        provider: Optional[LLMProvider] = None,
    ):
        self.tenant_router = tenant_router
        self.client = client
        self.provider = provider
        self.responses = ResponseEngine(client, provider)

    def process_payload(self, db: Session, payload: Any) -> dict[str, int]:
        """Process every message in a webhook payload. One message failing never stops its siblings."""
        try:
            messages = parse_webhook_payload(payload)
        except PayloadParseError as e:
            logger.warning("Unparseable webhook payload", extra={"context": {"error": str(e)[:500]}})
            return {}

        outcomes: dict[str, int] = {}
        for message in messages:
            try:
                outcome = self.process_message(db, message)
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(
                    f"Inbound message processing failed: {e}",
                    extra={
                        "context": {
                            "wa_message_id": message.wa_message_id,
                            "phone_number_id": message.phone_number_id,
                        }
                    },
                    exc_info=True,
                )
                outcome = MessageOutcome.ERROR
            outcomes[outcome] = outcomes.get(outcome, 0) + 1
        return outcomes

    def process_message(self, db: Session, message: InboundMessage) -> str:
        route = self.tenant_router.resolve(message.phone_number_id, db=db)
        if route is None:
            logger.warning(
                "Message for unknown tenant dropped",
                extra={"context": {"phone_number_id": message.phone_number_id}},
            )
            return MessageOutcome.NO_TENANT

        log = LoggerAdapter(
            logger, {"tenant_id": str(route.tenant_id), "wa_message_id": message.wa_message_id}
        )

        if message_exists(db, message.wa_message_id):
            log.info("Duplicate message ignored")
            return MessageOutcome.DUPLICATE

        customer = upsert_customer(db, route.tenant_id, message.from_wa_id, message.contact_name)
        body = message.body

        opt_result = match_opt_out(body) if body else None
        if opt_result is not None:
            if opt_result.intent == Intent.OPT_OUT and not customer.opted_out:
                self._handle_opt_change(db, route, customer, message, opt_result, opted_out=True)
                log.info("Customer opted out", context={"customer_id": str(customer.id)})
                return MessageOutcome.OPT_OUT
            if opt_result.intent == Intent.OPT_IN and customer.opted_out:
                self._handle_opt_change(db, route, customer, message, opt_result, opted_out=False)
                log.info("Customer opted back in", context={"customer_id": str(customer.id)})
                return MessageOutcome.OPT_IN

        if customer.opted_out:
            log.info("Message from opted-out customer ignored")
            return MessageOutcome.OPTED_OUT

        conversation = find_or_create_conversation(db, route.tenant_id, customer.id, route.phone_number_id)
        on_inbound_message(conversation, datetime.now(timezone.utc))

        quota = check_inbound_quota(db, route.tenant_id)
        if not quota.allowed:
            self._handle_quota_exceeded(db, route, conversation, customer, message)
            log.warning("Inbound quota exceeded", context={"used": quota.used, "limit": quota.limit})
            return MessageOutcome.QUOTA_EXCEEDED

        increment_usage(db, route.tenant_id, "inbound")
        inbound = save_inbound_message(
            db,
            conversation,
            wa_message_id=message.wa_message_id,
            body=body,
            message_type=message.type,
            metadata=self._message_metadata(message),
        )

        if is_human_owned(conversation.status):
            log.info("Conversation owned by agent, skipping bot reply", context={"status": conversation.status})
            return MessageOutcome.AGENT_OWNED

        # release counter and conversation locks before remote calls
        db.commit()

        policies = get_tenant_policies(db, route.tenant_id)
        result = self._classify(db, route, conversation, message, policies, inbound.id)
        attach_intent(inbound, result.intent.value, result.confidence)
        update_intent(conversation, result.intent.value)

        language = self._resolve_language(conversation, body, policies)

        sent = self.responses.respond(
            ReplyContext(
                db=db,
                route=route,
                conversation=conversation,
                customer=customer,
                text=body or "",
                result=result,
                language=language,
                policies=policies,
                inbound_message_id=inbound.id,
            )
        )
        if sent is None:
            return MessageOutcome.NOT_REPLIED
        return MessageOutcome.REPLIED

    def _classify(
        self,
        db: Session,
        route: TenantRouteInfo,
        conversation: Conversation,
        message: InboundMessage,
        policies: TenantPolicySnapshot,
        inbound_id,
    ) -> IntentResult:
        selection = message.interactive
        if selection is not None and selection.type == "list_reply":
            return IntentResult(
                intent=Intent.PRODUCT_INQUIRY,
                confidence=0.95,
                extracted_query=selection.id,
                source="interactive",
            )
        history = get_recent_history(db, conversation.id, limit=3, exclude_id=inbound_id)
        return classify_intent(
            db,
            route.tenant_id,
            message.body,
            policies=policies,
            provider=self.provider,
            history=history,
        )

    @staticmethod
    def _resolve_language(conversation: Conversation, body: Optional[str], policies: TenantPolicySnapshot) -> str:
        try:
            return resolve_language(conversation, body or "", policies).value
        except Exception as e:
            logger.warning(
                "Language resolution failed",
                extra={"context": {"conversation_id": str(conversation.id), "error": str(e)}},
            )
            fallback = parse_language(conversation.language) or parse_language(policies.default_language)
            return (fallback or DEFAULT_LANGUAGE).value

    @staticmethod
    def _message_metadata(message: InboundMessage) -> dict[str, Any]:
        metadata: dict[str, Any] = {"timestamp": message.timestamp.isoformat()}
        if message.interactive is not None:
            metadata["interactive"] = {
                "type": message.interactive.type,
                "id": message.interactive.id,
                "title": message.interactive.title,
                "description": message.interactive.description,
            }
        return metadata

    def _handle_opt_change(
        self,
        db: Session,
        route: TenantRouteInfo,
        customer: Customer,
        message: InboundMessage,
        opt_result: IntentResult,
        *,
        opted_out: bool,
    ) -> None:
        set_opted_out(db, customer, opted_out)
        conversation = find_or_create_conversation(db, route.tenant_id, customer.id, route.phone_number_id)
        on_inbound_message(conversation)
        save_inbound_message(
            db,
            conversation,
            wa_message_id=message.wa_message_id,
            body=message.body,
            message_type=message.type,
            metadata=self._message_metadata(message),
            intent=opt_result.intent.value,
            confidence=opt_result.confidence,
        )
        reply = OPT_OUT_REPLY if opted_out else OPT_IN_REPLY
        send_text(db, self.client, route, conversation, customer, reply, sent_by="system")

        if opted_out:
            create_automation_event(
                db,
                route.tenant_id,
                AutomationEventType.CUSTOMER_OPTED_OUT,
                {"customerId": str(customer.id), "customerPhone": customer.wa_id},
            )

    def _handle_quota_exceeded(
        self,
        db: Session,
        route: TenantRouteInfo,
        conversation: Conversation,
        customer: Customer,
        message: InboundMessage,
    ) -> None:
        save_inbound_message(
            db,
            conversation,
            wa_message_id=message.wa_message_id,
            body=message.body,
            message_type=message.type,
            metadata=self._message_metadata(message),
        )
        set_needs_agent(db, conversation, reason="quota_exceeded")
        db.commit()

        # best effort, the customer has already been handed to an agent
        try:
            send_text(db, self.client, route, conversation, customer, QUOTA_EXCEEDED_REPLY, sent_by="system")
        except Exception as e:
            logger.warning(
                "Quota notice not sent",
                extra={"context": {"conversation_id": str(conversation.id), "error": str(e)}},
            )

        create_automation_event(
            db,
            route.tenant_id,
            AutomationEventType.INBOUND_QUOTA_EXCEEDED,
            {"conversationId": str(conversation.id), "customerPhone": customer.wa_id},
        )
