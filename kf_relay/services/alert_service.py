"""Alert service for sending operator notifications to Telegram."""

from typing import Optional

import httpx

from kf_relay.config import Settings, get_settings
from kf_relay.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_MARKERS = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}


async def send_alert(
    level: str,
    message: str,
    context: Optional[dict] = None,
    settings: Optional[Settings] = None,
) -> bool:
    """Send alert to Telegram.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict
        settings: Overrides the cached application settings

    Returns:
        True if sent successfully
    """
    settings = settings or get_settings()
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    text = f"{LEVEL_MARKERS.get(level, '📢')} *{level}*\n\n{message}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n```\n{context_str}\n```"

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage",
                json={"chat_id": settings.alert_chat_id, "text": text, "parse_mode": "Markdown"},
            )
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


async def alert_error(message: str, context: Optional[dict] = None, settings: Optional[Settings] = None) -> bool:
    """Shortcut for ERROR level alert."""
    return await send_alert("ERROR", message, context, settings)

