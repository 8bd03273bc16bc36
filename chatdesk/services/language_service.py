import re
from enum import Enum
from typing import Optional

from chatdesk.logging_config import get_logger
from chatdesk.models import Conversation
from chatdesk.services.policy_service import TenantPolicySnapshot

logger = get_logger("language_service")


class Language(str, Enum):
    EN = "EN"
    SI = "SI"  # Sinhala
    TA = "TA"  # Tamil


DEFAULT_LANGUAGE = Language.EN

# Minimum script-specific characters before auto-detection switches language
SCRIPT_DETECTION_THRESHOLD = 3

SINHALA_CHARS = re.compile(r"[\u0D80-\u0DFF]")
TAMIL_CHARS = re.compile(r"[\u0B80-\u0BFF]")

LANGUAGE_KEYWORDS = {
    Language.EN: {"english", "in english", "speak english", "english please"},
    Language.SI: {"සිංහල", "sinhala", "in sinhala", "sinhala please", "සිංහලෙන්"},
    Language.TA: {"தமிழ்", "tamil", "in tamil", "tamil please", "தமிழில்"},
}


def _normalize(text: str) -> str:
    normalized = re.sub(r"[!?.,;:'\"()]", " ", text.lower())
    return re.sub(r"\s+", " ", normalized).strip()


def parse_language(value: Optional[str]) -> Optional[Language]:
    if not value:
        return None
    try:
        return Language(value.upper())
    except ValueError:
        return None


def extract_keyword_language(text: str) -> Optional[Language]:
    """Explicit language request, e.g. "in tamil" or "සිංහල"."""
    if not text:
        return None
    normalized = _normalize(text)
    for language, keywords in LANGUAGE_KEYWORDS.items():
        if normalized in keywords:
            return language
    return None


def detect_language(text: str) -> Optional[Language]:
    """Script-based detection. Returns None when no script reaches the threshold."""
    if not text:
        return None
    sinhala = len(SINHALA_CHARS.findall(text))
    tamil = len(TAMIL_CHARS.findall(text))

    if sinhala >= SCRIPT_DETECTION_THRESHOLD and sinhala > tamil:
        return Language.SI
    if tamil >= SCRIPT_DETECTION_THRESHOLD and tamil > sinhala:
        return Language.TA
    return None


def resolve_language(
    conversation: Conversation,
    text: str,
    policies: TenantPolicySnapshot,
) -> Language:
    """Pick the conversation language and remember it on the conversation.

    Order: explicit keyword, script auto-detection (if the tenant enables it),
    the language already stuck to the conversation, the tenant default.
    """
    language = extract_keyword_language(text)
    source = "keyword"

    if language is None and policies.auto_detect_language:
        language = detect_language(text)
        source = "detected"

    if language is None:
        language = parse_language(conversation.language)
        source = "sticky"

    if language is None:
        language = parse_language(policies.default_language) or DEFAULT_LANGUAGE
        source = "tenant_default"

    if conversation.language != language.value:
        logger.info(
            "Conversation language set",
            extra={
                "context": {
                    "conversation_id": str(conversation.id),
                    "language": language.value,
                    "source": source,
                }
            },
        )
    conversation.language = language.value
    return language
