"""Operator alerts posted to a chat webhook (Slack-compatible JSON body)."""

from typing import Optional

import httpx

from chatdesk.config import settings
from chatdesk.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_PREFIX = {"INFO": "[info]", "WARNING": "[warning]", "ERROR": "[error]", "CRITICAL": "[CRITICAL]"}


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to the operators channel.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    if not settings.alert_webhook_url:
        logger.warning(f"Alert not configured: {level} - {message}", extra={"context": context or {}})
        return False

    text = f"{LEVEL_PREFIX.get(level, '[alert]')} {message}"
    if context:
        text += "\n" + "\n".join(f"  {k}: {v}" for k, v in context.items())

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(settings.alert_webhook_url, json={"text": text})
            return response.is_success
    except Exception as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("WARNING", message, context)


def alert_error(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("ERROR", message, context)


def alert_critical(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("CRITICAL", message, context)
