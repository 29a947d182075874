import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from src.core.notifications import ALERT_HEADER, notify, send_slack, send_telegram


class TestOperatorAlerts(unittest.IsolatedAsyncioTestCase):
    """Test suite for operator alert delivery and channel fallback."""

    def _mock_client(self, mock_client_class: MagicMock) -> AsyncMock:
        mock_client = AsyncMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client.post.return_value = MagicMock()
        return mock_client

    @patch("src.core.notifications.settings")
    @patch("src.core.notifications.httpx.AsyncClient")
    async def test_send_slack_prefixes_alert(self, mock_client_class: MagicMock, mock_settings: MagicMock) -> None:
        mock_settings.SLACK_WEBHOOK_URL = "https://hooks.slack.com/fake"
        mock_client = self._mock_client(mock_client_class)

        self.assertTrue(await send_slack("Profile `a@x.com` deleted."))

        payload = mock_client.post.call_args.kwargs["json"]
        self.assertTrue(payload["text"].startswith(ALERT_HEADER))
        self.assertIn("a@x.com", payload["text"])

    @patch("src.core.notifications.settings")
    @patch("src.core.notifications.httpx.AsyncClient")
    async def test_send_slack_failure_returns_false(
        self, mock_client_class: MagicMock, mock_settings: MagicMock
    ) -> None:
        mock_settings.SLACK_WEBHOOK_URL = "https://hooks.slack.com/fake"
        mock_client = self._mock_client(mock_client_class)
        mock_client.post.side_effect = httpx.TimeoutException("Connection dropped")

        self.assertFalse(await send_slack("alert"))

    @patch("src.core.notifications.settings")
    async def test_unconfigured_channels_short_circuit(self, mock_settings: MagicMock) -> None:
        mock_settings.SLACK_WEBHOOK_URL = None
        mock_settings.TELEGRAM_BOT_TOKEN = None
        mock_settings.TELEGRAM_CHAT_ID = None

        self.assertFalse(await send_slack("alert"))
        self.assertFalse(await send_telegram("alert"))

    @patch("src.core.notifications.settings")
    @patch("src.core.notifications.httpx.AsyncClient")
    async def test_send_telegram_success(self, mock_client_class: MagicMock, mock_settings: MagicMock) -> None:
        mock_settings.TELEGRAM_BOT_TOKEN = "bot123"
        mock_settings.TELEGRAM_CHAT_ID = "chat123"
        mock_client = self._mock_client(mock_client_class)

        self.assertTrue(await send_telegram("alert"))

        self.assertIn("/botbot123/sendMessage", mock_client.post.call_args.args[0])
        self.assertEqual(mock_client.post.call_args.kwargs["json"]["chat_id"], "chat123")

    @patch("src.core.notifications.send_telegram")
    @patch("src.core.notifications.send_slack")
    async def test_notify_primary_success(self, mock_send_slack: AsyncMock, mock_send_telegram: AsyncMock) -> None:
        mock_send_slack.return_value = True

        await notify("alert")

        mock_send_slack.assert_awaited_once()
        mock_send_telegram.assert_not_called()

    @patch("src.core.notifications.logger")
    @patch("src.core.notifications.send_telegram")
    @patch("src.core.notifications.send_slack")
    async def test_notify_total_failure_logs_critical(
        self, mock_send_slack: AsyncMock, mock_send_telegram: AsyncMock, mock_logger: MagicMock
    ) -> None:
        mock_send_slack.return_value = False
        mock_send_telegram.return_value = False

        await notify("alert")

        mock_send_telegram.assert_awaited_once()
        mock_logger.warning.assert_called_once()
        mock_logger.critical.assert_called_once()


if __name__ == "__main__":
    unittest.main()
