"""Intent classification: rule cascade first, remote model as fallback."""

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.services.ai_service import classify_with_model
from chatdesk.services.intent_rules import (
    RULE_CONFIDENCE_THRESHOLD,
    Intent,
    IntentResult,
    run_rules,
)
from chatdesk.services.llm.base import LLMProvider
from chatdesk.services.policy_service import TenantPolicySnapshot
from chatdesk.services.quota_service import check_ai_quota
from chatdesk.services.usage_service import increment_usage

logger = get_logger("intent_service")

MODEL_CONFIDENCE_THRESHOLD = RULE_CONFIDENCE_THRESHOLD
HANDOFF_CONFIDENCE_THRESHOLD = 0.3
HANDOFF_INTENTS = {Intent.SPEAK_TO_HUMAN, Intent.COMPLAINT}
PRODUCT_INTENTS = {Intent.PRODUCT_INQUIRY, Intent.PRICE_INQUIRY, Intent.AVAILABILITY_STOCK}


def fallback_result() -> IntentResult:
    return IntentResult(intent=Intent.OTHER, confidence=0.1, source="fallback")


def _log_result(tenant_id: UUID, result: IntentResult) -> IntentResult:
    logger.info(
        "Intent classified",
        extra={
            "context": {
                "tenant_id": str(tenant_id),
                "intent": result.intent.value,
                "confidence": result.confidence,
                "source": result.source,
            }
        },
    )
    return result


def classify_intent(
    db: Session,
    tenant_id: UUID,
    text: Optional[str],
    *,
    policies: TenantPolicySnapshot,
    provider: Optional[LLMProvider] = None,
    history: Optional[list[dict]] = None,
) -> IntentResult:
    """Classify an inbound message. Never raises on model failures."""
    if not text or not text.strip():
        return _log_result(tenant_id, IntentResult(intent=Intent.OTHER, confidence=0.0, source="fallback"))

    rule_result = run_rules(text)
    if rule_result is not None:
        return _log_result(tenant_id, rule_result)

    if provider is None or not policies.ai_enabled:
        return _log_result(tenant_id, fallback_result())

    quota = check_ai_quota(db, tenant_id)
    if not quota.allowed:
        logger.info(
            "AI quota exhausted, skipping model classification",
            extra={"context": {"tenant_id": str(tenant_id), "used": quota.used, "limit": quota.limit}},
        )
        return _log_result(tenant_id, fallback_result())

    try:
        model_result = classify_with_model(provider, text, history)
    except Exception as e:
        logger.warning(
            "Model classification failed",
            extra={"context": {"tenant_id": str(tenant_id), "error": str(e)}},
        )
        return _log_result(tenant_id, fallback_result())

    increment_usage(db, tenant_id, "ai_calls")

    if model_result.confidence < MODEL_CONFIDENCE_THRESHOLD:
        return _log_result(tenant_id, fallback_result())
    return _log_result(tenant_id, model_result)


def should_handoff(result: IntentResult) -> bool:
    if result.intent in HANDOFF_INTENTS:
        return True
    return result.intent == Intent.OTHER and result.confidence < HANDOFF_CONFIDENCE_THRESHOLD
