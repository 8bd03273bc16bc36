"""Deterministic intent rules.

Each matcher is a pure function of the message text returning an
IntentResult or None. RULE_CASCADE fixes their priority order.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class Intent(str, Enum):
    GREETING = "greeting"
    PRODUCT_INQUIRY = "product_inquiry"
    PRICE_INQUIRY = "price_inquiry"
    AVAILABILITY_STOCK = "availability_stock"
    ORDER_STATUS = "order_status"
    DELIVERY_INFO = "delivery_info"
    REFUND_CANCEL = "refund_cancel"
    COMPLAINT = "complaint"
    HOURS_LOCATION = "hours_location"
    SPEAK_TO_HUMAN = "speak_to_human"
    OPT_OUT = "opt_out"
    OPT_IN = "opt_in"
    OTHER = "other"


@dataclass(frozen=True)
class IntentResult:
    intent: Intent
    confidence: float
    extracted_query: Optional[str] = None
    source: str = "rule"  # rule, model, fallback, interactive


RULE_CONFIDENCE_THRESHOLD = 0.5

OPT_IN_EXACT = re.compile(r"^(start|subscribe|opt\s*in)$", re.IGNORECASE)
OPT_IN_PHRASES = re.compile(r"\b(start\s*messaging|subscribe\s*again|opt\s*back\s*in)\b", re.IGNORECASE)
OPT_OUT_EXACT = re.compile(r"^(stop|unsubscribe|opt\s*out|quit)$", re.IGNORECASE)
OPT_OUT_PHRASES = (
    re.compile(r"\b(don'?t|do\s+not)\s+(message|text|contact)\s+me\b", re.IGNORECASE),
    re.compile(r"\bstop\s+(messaging|texting|contacting)\s+me\b", re.IGNORECASE),
    re.compile(r"\b(remove\s+me|take\s+me\s+off|leave\s+me\s+alone)\b", re.IGNORECASE),
)

AGENT_REQUEST_PATTERNS = (
    re.compile(r"\b(agent|human|person|real\s+person|live\s+(agent|chat|person))\b", re.IGNORECASE),
    re.compile(
        r"\b(speak|talk|chat|connect)\s+(to|with)\s+(a\s+|an\s+|the\s+)?"
        r"(human|agent|person|someone|representative|rep)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(customer\s+(service|support|care)|support\s+team)\b", re.IGNORECASE),
    re.compile(r"\b(need\s+help|help\s+me|can\s+someone\s+help)\b", re.IGNORECASE),
    re.compile(r"\b(operator|manager|supervisor)\b", re.IGNORECASE),
)

COMPLAINT_PATTERNS = (
    re.compile(r"\b(complain(t|ts|ing|ed)?|terrible|horrible|awful|worst|unacceptable)\b", re.IGNORECASE),
    re.compile(r"\b(angry|furious|disgusted|frustrated|disappointed|upset)\b", re.IGNORECASE),
    re.compile(r"\b(rip\s*off|scam(med)?|fraud|cheat(ed)?|lied|lying)\b", re.IGNORECASE),
    re.compile(r"\b(broken|damaged|defective|wrong\s+(item|product|order))\b", re.IGNORECASE),
    re.compile(r"\b(never\s+again|never\s+buying|report|sue|lawyer|legal)\b", re.IGNORECASE),
    re.compile(r"\bthis\s+is\s+(ridiculous|absurd|outrageous|unbelievable)\b", re.IGNORECASE),
)

GREETING_PATTERNS = (
    re.compile(
        r"^(hi|hello|hey|hola|good\s*(morning|afternoon|evening|day)|howdy|greetings|sup|what'?s?\s*up)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^(yo|hii+|helloo+|heyy+)\b", re.IGNORECASE),
)

REFUND_CANCEL_PATTERNS = (
    re.compile(r"\b(refund|return|money\s+back|get\s+my\s+money)\b", re.IGNORECASE),
    re.compile(r"\b(cancel(l?ation|led|ling)?)\b", re.IGNORECASE),
    re.compile(r"\b(exchange|swap|replace(ment)?)\b", re.IGNORECASE),
    re.compile(r"\b(don'?t\s+want|changed\s+my\s+mind)\b", re.IGNORECASE),
)

# "#ORD-2601-0001", "ORD2601-0001", "AB 12345". A digit must follow the letter prefix.
ORDER_NUMBER_PATTERN = re.compile(r"(?<![\w-])#?([A-Z]{2,4}[-\s]?\d[\dA-Z-]{2,19})\b", re.IGNORECASE)

ORDER_TRACKING_PATTERNS = (
    re.compile(r"\b(where\s*(is|are)\s*my\s*order|track(ing)?|order\s*status)\b", re.IGNORECASE),
    re.compile(r"\b(when\s*(will|does)\s*(it|my\s*order)\s*(arrive|come|deliver|ship))\b", re.IGNORECASE),
    re.compile(r"\b(shipping\s*status|delivery\s*status|dispatch(ed)?)\b", re.IGNORECASE),
    re.compile(r"\b(order\s*(#|no\.?|number)|order\s*#?\s*\d[\dA-Z-]*|tracking\s*(number|id|code))", re.IGNORECASE),
    re.compile(r"\b(haven'?t\s*received|not\s*received|still\s*waiting)\b", re.IGNORECASE),
)

HOURS_LOCATION_PATTERNS = (
    re.compile(r"\b(hours|open(ing)?|close[sd]?|business\s*hours|working\s*hours)\b", re.IGNORECASE),
    re.compile(r"\b(when\s*(are\s*you|do\s*you)\s*open)\b", re.IGNORECASE),
    re.compile(r"\b(location|address|where\s*(are\s*you|is\s*(your|the)\s*store))\b", re.IGNORECASE),
    re.compile(r"\b(directions|map|find\s*(you|us|the\s*store))\b", re.IGNORECASE),
    re.compile(r"\b(store\s*hours|shop\s*hours|timing)\b", re.IGNORECASE),
)

PRODUCT_INQUIRY_PATTERNS = (
    re.compile(r"\b(price|cost|how\s*much)\b", re.IGNORECASE),
    re.compile(r"\b(do\s*you\s*(have|sell|carry|stock)|available|in\s*stock)\b", re.IGNORECASE),
    re.compile(r"\b(looking\s*for|interested\s*in|want\s*to\s*buy|need\s*a)\b", re.IGNORECASE),
    re.compile(r"\b(product|item|catalog(ue)?|collection)\b", re.IGNORECASE),
    re.compile(r"\b(show\s*me|tell\s*me\s*about|info\s*(about|on))\b", re.IGNORECASE),
    re.compile(r"\b(what\s*do\s*you\s*(sell|offer|have))\b", re.IGNORECASE),
    re.compile(r"\b(buy|purchase|order)\b", re.IGNORECASE),
)

PRODUCT_QUERY_PREFIXES = (
    re.compile(r"^(do\s*you\s*(have|sell|carry|stock)\s*)", re.IGNORECASE),
    re.compile(r"^(i('?m|\s*am)\s*(looking\s*for|interested\s*in)\s*)", re.IGNORECASE),
    re.compile(r"^(how\s*much\s*(is|does|for)\s*(a|the|an)?\s*)", re.IGNORECASE),
    re.compile(r"^(what('?s|\s+is)\s*the\s*(price|cost)\s*(of|for)\s*)", re.IGNORECASE),
    re.compile(r"^(show\s*me\s*(the|a|your)?\s*)", re.IGNORECASE),
    re.compile(r"^(tell\s*me\s*about\s*(the|a|your)?\s*)", re.IGNORECASE),
    re.compile(r"^(can\s*i\s*(get|buy|have|order)\s*(a|an|the|some)?\s*)", re.IGNORECASE),
    re.compile(r"^(i\s*(want|need)\s*(a|an|the|some|to\s*buy)?\s*)", re.IGNORECASE),
)


def _strip_terminal_punctuation(text: str) -> str:
    return re.sub(r"[.!?\s]+$", "", text.strip())


def _any_match(patterns, text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def extract_order_number(text: str) -> Optional[str]:
    """Order number token, uppercased with whitespace turned into dashes."""
    if not text:
        return None
    match = ORDER_NUMBER_PATTERN.search(text)
    if not match:
        return None
    return re.sub(r"\s+", "-", match.group(1).upper())


def extract_product_query(text: str) -> str:
    query = text.strip()
    for prefix in PRODUCT_QUERY_PREFIXES:
        query = prefix.sub("", query)
    return re.sub(r"\?+$", "", query).strip()


def match_opt_out(text: str) -> Optional[IntentResult]:
    """Opt-in is checked first so "start messaging" never reads as a stop request."""
    normalized = _strip_terminal_punctuation(text)
    if OPT_IN_EXACT.match(normalized) or OPT_IN_PHRASES.search(normalized):
        return IntentResult(Intent.OPT_IN, 0.95)
    if OPT_OUT_EXACT.match(normalized) or _any_match(OPT_OUT_PHRASES, normalized):
        return IntentResult(Intent.OPT_OUT, 0.95)
    return None


def match_agent_request(text: str) -> Optional[IntentResult]:
    if _any_match(AGENT_REQUEST_PATTERNS, text):
        return IntentResult(Intent.SPEAK_TO_HUMAN, 0.95)
    return None


def match_complaint(text: str) -> Optional[IntentResult]:
    if _any_match(COMPLAINT_PATTERNS, text):
        return IntentResult(Intent.COMPLAINT, 0.8)
    return None


def match_greeting(text: str) -> Optional[IntentResult]:
    if _any_match(GREETING_PATTERNS, text.strip()):
        return IntentResult(Intent.GREETING, 0.9)
    return None


def match_refund_cancel(text: str) -> Optional[IntentResult]:
    if _any_match(REFUND_CANCEL_PATTERNS, text):
        return IntentResult(Intent.REFUND_CANCEL, 0.85)
    return None


def match_order_tracking(text: str) -> Optional[IntentResult]:
    order_number = extract_order_number(text)
    if order_number:
        return IntentResult(Intent.ORDER_STATUS, 0.95, extracted_query=order_number)
    if _any_match(ORDER_TRACKING_PATTERNS, text):
        return IntentResult(Intent.ORDER_STATUS, 0.85)
    return None


def match_hours_location(text: str) -> Optional[IntentResult]:
    if _any_match(HOURS_LOCATION_PATTERNS, text):
        return IntentResult(Intent.HOURS_LOCATION, 0.85)
    return None


def match_product_inquiry(text: str) -> Optional[IntentResult]:
    if _any_match(PRODUCT_INQUIRY_PATTERNS, text):
        return IntentResult(Intent.PRODUCT_INQUIRY, 0.7, extracted_query=extract_product_query(text))
    return None


RuleMatcher = Callable[[str], Optional[IntentResult]]

# Priority order: first match at or above the threshold wins.
RULE_CASCADE: tuple[RuleMatcher, ...] = (
    match_opt_out,
    match_agent_request,
    match_complaint,
    match_greeting,
    match_refund_cancel,
    match_order_tracking,
    match_hours_location,
    match_product_inquiry,
)


def run_rules(text: str) -> Optional[IntentResult]:
    if not text or not text.strip():
        return None
    for matcher in RULE_CASCADE:
        result = matcher(text)
        if result is not None and result.confidence >= RULE_CONFIDENCE_THRESHOLD:
            return result
    return None
