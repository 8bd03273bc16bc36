"""Remote model calls: intent classification fallback and free-form reply generation."""

import json
import re
import time
from typing import Optional

from chatdesk.config import settings
from chatdesk.logging_config import get_logger
from chatdesk.services.intent_rules import Intent, IntentResult
from chatdesk.services.llm.base import LLMError, LLMProvider
from chatdesk.services.policy_service import TenantPolicySnapshot

logger = get_logger("ai_service")

# Opt-out/opt-in are decided by rules only.
MODEL_INTENT_LABELS = tuple(i.value for i in Intent if i not in (Intent.OPT_OUT, Intent.OPT_IN))

CLASSIFY_SYSTEM_PROMPT = """You classify customer messages sent to a retail business on WhatsApp.
Return ONLY a JSON object: {{"intent": "<label>", "confidence": <0..1>, "extractedQuery": "<product or order reference, or empty>"}}
Valid labels: {labels}.
Use "other" when nothing fits."""

TONE_INSTRUCTIONS = {
    "FRIENDLY": "Be warm and friendly. One emoji at most.",
    "FORMAL": "Be polite and formal. No emojis.",
    "SHORT": "Answer in one short sentence.",
}

LANGUAGE_NAMES = {"EN": "English", "SI": "Sinhala", "TA": "Tamil"}

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def _timeout_seconds() -> float:
    return max(settings.ai_timeout_ms, 100) / 1000


def parse_classification(content: str) -> IntentResult:
    """Parse the model's JSON answer. Unknown labels become `other` with zero confidence; confidence is clamped to [0, 1]."""
    match = JSON_OBJECT_PATTERN.search(content or "")
    if not match:
        raise LLMError("Model response has no JSON object")
    try:
        data = json.loads(match.group(0))
    except ValueError as e:
        raise LLMError(f"Model response is not valid JSON: {e}") from e

    label = str(data.get("intent", "")).strip().lower()
    if label in MODEL_INTENT_LABELS:
        intent = Intent(label)
        try:
            confidence = float(data.get("confidence", 0))
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(max(confidence, 0.0), 1.0)
    else:
        intent, confidence = Intent.OTHER, 0.0

    extracted = data.get("extractedQuery") or data.get("extracted_query") or None
    if extracted is not None:
        extracted = str(extracted).strip() or None
    return IntentResult(intent=intent, confidence=confidence, extracted_query=extracted, source="model")


def classify_with_model(
    provider: LLMProvider,
    text: str,
    history: Optional[list[dict]] = None,
) -> IntentResult:
    """Single classification call. Raises on provider errors; callers decide the fallback."""
    messages = [{"role": "system", "content": CLASSIFY_SYSTEM_PROMPT.format(labels=", ".join(MODEL_INTENT_LABELS))}]
    for turn in (history or [])[-3:]:
        messages.append({"role": turn["role"], "content": turn["content"]})
    messages.append({"role": "user", "content": text})

    started = time.monotonic()
    response = provider.generate(
        messages,
        temperature=0.0,
        max_tokens=120,
        timeout_seconds=_timeout_seconds(),
        json_mode=True,
    )
    result = parse_classification(response.content)
    logger.debug(
        "Model classification",
        extra={
            "context": {
                "intent": result.intent.value,
                "confidence": result.confidence,
                "elapsed_ms": round((time.monotonic() - started) * 1000, 2),
            }
        },
    )
    return result


def truncate_reply(text: str, limit: Optional[int] = None) -> str:
    limit = limit or settings.ai_reply_max_chars
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def build_reply_prompt(policies: TenantPolicySnapshot, language: str) -> str:
    lines = [
        f"You are the WhatsApp assistant for {policies.business_name or 'a retail business'}.",
        TONE_INSTRUCTIONS.get(policies.tone, TONE_INSTRUCTIONS["FRIENDLY"]),
        f"Reply in {LANGUAGE_NAMES.get(language, 'English')}.",
        f"Keep the reply under {settings.ai_reply_max_chars} characters.",
        "Only state facts from the business info below. If unsure, offer to connect the customer with a human.",
    ]
    facts = []
    if policies.location:
        facts.append(f"Location: {policies.location}")
    if policies.shipping_policy:
        facts.append(f"Shipping policy: {policies.shipping_policy}")
    if policies.return_policy:
        facts.append(f"Return policy: {policies.return_policy}")
    if facts:
        lines.append("Business info:\n" + "\n".join(facts))
    return "\n".join(lines)


def generate_reply(
    provider: Optional[LLMProvider],
    text: str,
    policies: TenantPolicySnapshot,
    language: str,
    history: Optional[list[dict]] = None,
) -> Optional[str]:
    """Model-written reply capped to the channel length, or None on any failure."""
    if provider is None or not policies.ai_enabled:
        return None

    messages = [{"role": "system", "content": build_reply_prompt(policies, language)}]
    for turn in (history or [])[-3:]:
        messages.append({"role": turn["role"], "content": turn["content"]})
    messages.append({"role": "user", "content": text})

    try:
        response = provider.generate(messages, temperature=0.4, max_tokens=200, timeout_seconds=_timeout_seconds())
    except Exception as e:
        logger.warning(
            "Model reply generation failed",
            extra={"context": {"tenant_id": policies.tenant_id, "error": str(e)}},
        )
        return None

    content = (response.content or "").strip()
    if not content:
        return None
    return truncate_reply(content)
