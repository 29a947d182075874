import httpx
from loguru import logger

from src.config.settings import settings

ALERT_HEADER = "⚠️ *Curriculum Access Alert*"


async def send_slack(message: str) -> bool:
    """Posts an operator alert to the Slack webhook."""
    if not settings.SLACK_WEBHOOK_URL:
        return False

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(settings.SLACK_WEBHOOK_URL, json={"text": f"{ALERT_HEADER}\n\n{message}"})
            resp.raise_for_status()
        return True
    except Exception as e:
        logger.error(f"Slack notification failed: {e}")
        return False


async def send_telegram(message: str) -> bool:
    """Posts an operator alert to the Telegram chat."""
    if not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_CHAT_ID:
        return False

    url = f"https://api.telegram.org/bot{settings.TELEGRAM_BOT_TOKEN}/sendMessage"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(
                url,
                json={
                    "chat_id": settings.TELEGRAM_CHAT_ID,
                    "text": f"{ALERT_HEADER}\n\n{message}",
                    "parse_mode": "Markdown",
                },
            )
            resp.raise_for_status()
        return True
    except Exception as e:
        logger.error(f"Telegram notification failed: {e}")
        return False


async def notify(message: str) -> None:
    """Alerts operators about a consistency gap they must close by hand.

    Slack first, Telegram as fallback. Never raises.
    """
    if await send_slack(message):
        return

    logger.warning("Primary notification (Slack) skipped or failed. Trying Telegram.")
    if not await send_telegram(message):
        logger.critical(f"All notification channels failed. Undelivered alert: {message}")
