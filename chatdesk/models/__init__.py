from chatdesk.models.automation_event import AutomationEvent
from chatdesk.models.conversation import Conversation
from chatdesk.models.customer import Customer
from chatdesk.models.message import Message
from chatdesk.models.order import Order, OrderItem, Shipment
from chatdesk.models.product import Product
from chatdesk.models.reply_template import ReplyTemplate
from chatdesk.models.support_case import SupportCase
from chatdesk.models.tenant import (
    Tenant,
    TenantPolicies,
    TenantQuotaOverride,
    TenantSubscription,
    TenantWhatsApp,
)
from chatdesk.models.usage_counter import UsageCounter
from chatdesk.models.webhook_job import WebhookJob

__all__ = [
    "Tenant",
    "TenantWhatsApp",
    "TenantPolicies",
    "TenantSubscription",
    "TenantQuotaOverride",
    "Customer",
    "Conversation",
    "Message",
    "ReplyTemplate",
    "Product",
    "Order",
    "OrderItem",
    "Shipment",
    "SupportCase",
    "AutomationEvent",
    "UsageCounter",
    "WebhookJob",
]
