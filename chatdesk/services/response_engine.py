"""Builds and sends the bot reply for a classified inbound message."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.models import Conversation, Customer
from chatdesk.services.ai_service import generate_reply
from chatdesk.services.automation_service import AutomationEventType, create_automation_event
from chatdesk.services.case_service import build_case_subject, create_case
from chatdesk.services.conversation_service import set_needs_agent
from chatdesk.services.intent_rules import Intent, IntentResult, extract_order_number
from chatdesk.services.intent_service import PRODUCT_INTENTS, should_handoff
from chatdesk.services.llm.base import LLMProvider
from chatdesk.services.message_service import get_last_inbound_text, get_recent_history
from chatdesk.services.order_service import handle_order_status_inquiry
from chatdesk.services.outbound_service import send_list, send_product, send_text
from chatdesk.services.policy_service import TenantPolicySnapshot
from chatdesk.services.product_search import (
    build_product_sections,
    format_product_card,
    get_product_by_retailer_id,
    looks_like_retailer_id,
    search_products,
)
from chatdesk.services.quota_service import check_ai_quota
from chatdesk.services.template_service import build_template_variables, render_template, resolve_template
from chatdesk.services.tenant_router import TenantRouteInfo
from chatdesk.services.usage_service import increment_usage
from chatdesk.services.whatsapp_client import SendResult, WhatsAppClient

logger = get_logger("response_engine")

HANDOFF_DEFAULT_REPLY = "I'm connecting you with a human agent. Please hold on, someone will be with you shortly."
GENERIC_DEFAULT_REPLY = 'Thanks for your message! How can I help you today? Type "agent" to speak with a human.'
NO_PRODUCTS_DEFAULT_REPLY = (
    "Sorry, I couldn't find any products matching that. "
    'Try another name, or type "agent" to speak with our team.'
)
PRODUCT_NOT_FOUND_TEMPLATE = "product_not_found"
PRODUCT_LIST_BUTTON = "View products"


@dataclass
class ReplyContext:
    db: Session
    route: TenantRouteInfo
    conversation: Conversation
    customer: Customer
    text: str
    result: IntentResult
    language: str
    policies: TenantPolicySnapshot
    inbound_message_id: Optional[object] = None


class ResponseEngine:
    def __init__(self, client: WhatsAppClient, provider: Optional[LLMProvider] = None):
        self.client = client
        self.provider = provider

    def respond(self, ctx: ReplyContext) -> Optional[SendResult]:
        intent = ctx.result.intent
        # subscription keywords are only acted on by the opt-out gate
        if intent in (Intent.OPT_OUT, Intent.OPT_IN):
            return None
        if should_handoff(ctx.result):
            return self.handle_handoff(ctx)
        if intent == Intent.ORDER_STATUS:
            return self.handle_order_status(ctx)
        if intent in PRODUCT_INTENTS:
            return self.handle_product_inquiry(ctx)
        return self.handle_templated(ctx)

    def _render(self, ctx: ReplyContext, template_key: str, default: Optional[str], **variables) -> Optional[str]:
        template = resolve_template(ctx.db, ctx.conversation.tenant_id, template_key, ctx.language, ctx.policies.tone)
        if template is None:
            return default
        values = build_template_variables(ctx.policies, customer_name=ctx.customer.name, **variables)
        return render_template(template.body, values)

    def _send_text(self, ctx: ReplyContext, body: str, **metadata) -> SendResult:
        metadata.setdefault("intent", ctx.result.intent.value)
        return send_text(ctx.db, self.client, ctx.route, ctx.conversation, ctx.customer, body, metadata=metadata)

    def handle_handoff(self, ctx: ReplyContext) -> SendResult:
        transition = set_needs_agent(ctx.db, ctx.conversation, reason=ctx.result.intent.value)
        if not transition.ok:
            logger.warning(
                "Handoff transition rejected",
                extra={"context": {"conversation_id": str(ctx.conversation.id), "error": transition.error}},
            )

        body = self._render(ctx, Intent.SPEAK_TO_HUMAN.value, HANDOFF_DEFAULT_REPLY)
        send_result = self._send_text(ctx, body, handoff=True)

        is_complaint = ctx.result.intent == Intent.COMPLAINT
        priority = "high" if is_complaint else "medium"
        subject = build_case_subject(get_last_inbound_text(ctx.db, ctx.conversation.id))
        case = create_case(
            ctx.db,
            ctx.conversation,
            subject=subject,
            priority=priority,
            tags=[ctx.result.intent.value],
        )

        payload = {
            "caseId": str(case.id),
            "conversationId": str(ctx.conversation.id),
            "customerId": str(ctx.customer.id),
            "customerPhone": ctx.customer.wa_id,
            "customerName": ctx.customer.name,
            "intent": ctx.result.intent.value,
            "priority": priority,
            "subject": subject,
        }
        create_automation_event(ctx.db, ctx.conversation.tenant_id, AutomationEventType.CASE_CREATED, payload)
        if is_complaint:
            create_automation_event(
                ctx.db, ctx.conversation.tenant_id, AutomationEventType.HIGH_PRIORITY_CASE, payload
            )
        return send_result

    def handle_order_status(self, ctx: ReplyContext) -> SendResult:
        order_number = ctx.result.extracted_query or extract_order_number(ctx.text)
        reply, found = handle_order_status_inquiry(
            ctx.db, ctx.conversation.tenant_id, ctx.customer.phone or ctx.customer.wa_id, order_number
        )
        return self._send_text(ctx, reply, order_number=order_number, order_found=found)

    def handle_product_inquiry(self, ctx: ReplyContext) -> SendResult:
        tenant_id = ctx.conversation.tenant_id
        query = (ctx.result.extracted_query or ctx.text or "").strip()

        if looks_like_retailer_id(query):
            product = get_product_by_retailer_id(ctx.db, tenant_id, query)
            if product is not None:
                return self._send_product_detail(ctx, product)

        products = search_products(ctx.db, tenant_id, query)
        logger.info(
            "Product search",
            extra={"context": {"tenant_id": str(tenant_id), "query": query, "results": len(products)}},
        )

        if not products:
            body = self._render(ctx, PRODUCT_NOT_FOUND_TEMPLATE, NO_PRODUCTS_DEFAULT_REPLY)
            return self._send_text(ctx, body, query=query)
        if len(products) == 1:
            return self._send_product_detail(ctx, products[0])

        sections = build_product_sections(products)
        body = f"I found {len(products)} products for you. Tap below to browse them."
        return send_list(
            ctx.db,
            self.client,
            ctx.route,
            ctx.conversation,
            ctx.customer,
            body=body,
            button=PRODUCT_LIST_BUTTON,
            sections=sections,
        )

    def _send_product_detail(self, ctx: ReplyContext, product) -> SendResult:
        if ctx.route.catalog_id:
            return send_product(
                ctx.db,
                self.client,
                ctx.route,
                ctx.conversation,
                ctx.customer,
                product_retailer_id=product.retailer_id,
                body=product.name,
            )
        return self._send_text(ctx, format_product_card(product), product_retailer_id=product.retailer_id)

    def handle_templated(self, ctx: ReplyContext) -> SendResult:
        body = self._render(ctx, ctx.result.intent.value, None)
        source = "template"

        if body is None:
            body = self._generate(ctx)
            source = "model"
        if not body:
            body = GENERIC_DEFAULT_REPLY
            source = "default"

        return self._send_text(ctx, body, reply_source=source)

    def _generate(self, ctx: ReplyContext) -> Optional[str]:
        if self.provider is None or not ctx.policies.ai_enabled:
            return None
        tenant_id = ctx.conversation.tenant_id
        if not check_ai_quota(ctx.db, tenant_id).allowed:
            return None

        history = get_recent_history(ctx.db, ctx.conversation.id, limit=3, exclude_id=ctx.inbound_message_id)
        reply = generate_reply(self.provider, ctx.text, ctx.policies, ctx.language, history)
        if reply is not None:
            increment_usage(ctx.db, tenant_id, "ai_calls")
        return reply
